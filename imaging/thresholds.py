"""Binary thresholds. Outputs hold only 0.0 and 1.0 and are not renormalised."""

from __future__ import annotations

from typing import Callable, Optional

import numpy as np

from .image import NormalizedImage
from .pool import RowPool, resolve

_Rule = Callable[[np.ndarray], np.ndarray]


def _apply(image: NormalizedImage, rule: _Rule, pool: Optional[RowPool]) -> NormalizedImage:
    # Fan out along whichever axis is longer.
    src = image.data
    out = np.empty(src.shape, dtype=np.float32)
    if image.width > image.height:

        def _cols(start: int, stop: int) -> None:
            out[:, start:stop] = rule(src[:, start:stop])

        resolve(pool).run(image.width, _cols)
    else:

        def _rows(start: int, stop: int) -> None:
            out[start:stop] = rule(src[start:stop])

        resolve(pool).run(image.height, _rows)
    return NormalizedImage(out)


def single_threshold(
    image: NormalizedImage, threshold: float, pool: Optional[RowPool] = None
) -> NormalizedImage:
    """0 where ``pixel < threshold``, otherwise 1."""
    t = np.float32(threshold)
    return _apply(image, lambda x: (x >= t).astype(np.float32), pool)


def dual_threshold(
    image: NormalizedImage, threshold_a: float, threshold_b: float, pool: Optional[RowPool] = None
) -> NormalizedImage:
    """1 strictly between the two thresholds (in either order), otherwise 0."""
    upper, lower = max(threshold_a, threshold_b), min(threshold_a, threshold_b)
    hi, lo = np.float32(upper), np.float32(lower)
    return _apply(image, lambda x: ((x > lo) & (x < hi)).astype(np.float32), pool)
