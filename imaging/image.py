from __future__ import annotations

from typing import Tuple

import cv2
import numpy as np


class ImageError(Exception):
    """Base class for imaging errors."""


class DimensionMismatch(ImageError, ValueError):
    """Two images (or an image and a mask) used together have different sizes."""

    def __init__(self, op: str, a_shape: Tuple[int, int], b_shape: Tuple[int, int]) -> None:
        super().__init__(
            f"{op}: dimension mismatch (width x height) "
            f"{a_shape[1]}x{a_shape[0]} vs {b_shape[1]}x{b_shape[0]}"
        )
        self.op = op
        self.a_shape = a_shape
        self.b_shape = b_shape


class NormalizedImage:
    """Single-channel float32 image, stored row-major as ``(height, width)``.

    Pixels are addressed as ``(x, y)`` via :meth:`pixel`. The backing array is
    read-only, so an instance can be shared freely between threads; every
    operator in :mod:`imaging` returns a fresh image instead of mutating its
    inputs.
    """

    __slots__ = ("_data",)

    def __init__(self, data: np.ndarray) -> None:
        arr = np.array(data, dtype=np.float32, copy=True)
        if arr.ndim != 2:
            raise ImageError(f"expected a 2-D array, got shape {arr.shape}")
        if arr.shape[0] == 0 or arr.shape[1] == 0:
            raise ImageError(f"image must be non-empty, got shape {arr.shape}")
        arr.flags.writeable = False
        self._data = arr

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def from_array(cls, data: np.ndarray, normalise: bool = True) -> "NormalizedImage":
        """Build an image from raw values, rescaling into [0, 1] by default."""
        arr = np.asarray(data, dtype=np.float32)
        if normalise:
            arr = normalise_array(arr)
        return cls(arr)

    @classmethod
    def from_bgr(cls, img: np.ndarray) -> "NormalizedImage":
        """Convert a decoded color (BGR) or gray uint8 frame to a normalized image.

        The dynamic range is stretched so the dimmest pixel maps to 0 and the
        brightest to 1.
        """
        arr = np.asarray(img)
        if arr.ndim == 3 and arr.shape[2] == 3:
            gray = cv2.cvtColor(arr, cv2.COLOR_BGR2GRAY)
        elif arr.ndim == 3 and arr.shape[2] == 4:
            gray = cv2.cvtColor(arr, cv2.COLOR_BGRA2GRAY)
        elif arr.ndim == 2:
            gray = arr
        else:
            raise ImageError(f"unsupported frame shape {arr.shape}")
        return cls.from_array(gray.astype(np.float32))

    @classmethod
    def zeros(cls, width: int, height: int) -> "NormalizedImage":
        return cls(np.zeros((height, width), dtype=np.float32))

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def width(self) -> int:
        return int(self._data.shape[1])

    @property
    def height(self) -> int:
        return int(self._data.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        return self._data.shape  # type: ignore[return-value]

    def pixel(self, x: int, y: int) -> float:
        return float(self._data[y, x])

    def same_size(self, other: "NormalizedImage") -> bool:
        return self._data.shape == other._data.shape

    def to_uint8(self) -> np.ndarray:
        """Scale to 8-bit gray for display or JPEG output."""
        return np.clip(np.rint(self._data * 255.0), 0, 255).astype(np.uint8)

    def __repr__(self) -> str:
        return f"NormalizedImage(width={self.width}, height={self.height})"


def normalise_array(arr: np.ndarray) -> np.ndarray:
    """Rescale ``arr`` into [0, 1]; a constant array maps to all zeros.

    Infinities are clamped to the float64 range and NaN is treated as 0.
    """
    arr = np.nan_to_num(arr.astype(np.float64), nan=0.0)
    lo = float(arr.min())
    hi = float(arr.max())
    if lo == hi:
        return np.zeros(arr.shape, dtype=np.float32)
    # halve before subtracting so hi - lo cannot overflow
    half = arr / 2.0 - lo / 2.0
    return (half / (hi / 2.0 - lo / 2.0)).astype(np.float32)


def require_same_size(op: str, a: NormalizedImage, b: NormalizedImage) -> None:
    if not a.same_size(b):
        raise DimensionMismatch(op, a.shape, b.shape)
