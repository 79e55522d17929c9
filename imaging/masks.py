from __future__ import annotations

from typing import Optional

import numpy as np

from .image import NormalizedImage, require_same_size
from .pool import RowPool, resolve


def mask(
    image: NormalizedImage, mask_image: NormalizedImage, pool: Optional[RowPool] = None
) -> NormalizedImage:
    """Keep pixels where the mask exceeds 0.5; zero everything else."""
    require_same_size("mask", image, mask_image)
    src, m = image.data, mask_image.data
    out = np.empty(src.shape, dtype=np.float32)

    def _rows(start: int, stop: int) -> None:
        out[start:stop] = np.where(m[start:stop] > 0.5, src[start:stop], 0.0)

    resolve(pool).run(image.height, _rows)
    return NormalizedImage(out)
