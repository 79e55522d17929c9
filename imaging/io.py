from __future__ import annotations

from pathlib import Path

import cv2

from .image import ImageError, NormalizedImage


def load_image(path: str | Path) -> NormalizedImage:
    """Read an image file as normalized grayscale."""
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None:
        raise ImageError(f"could not read image from {path}")
    return NormalizedImage.from_bgr(img)


def save_image(path: str | Path, image: NormalizedImage, quality: int = 100) -> None:
    """Write a normalized image as 8-bit grayscale (JPEG quality applies to .jpg)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    ok = cv2.imwrite(str(path), image.to_uint8(), [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ImageError(f"could not write image to {path}")
