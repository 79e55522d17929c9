"""Distance and similarity metrics between two images.

Size mismatches raise :class:`DimensionMismatch`, the same as the arithmetic
operators.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .image import NormalizedImage, require_same_size

ZNCC_MAX = 1.0


@dataclass(frozen=True)
class ErrorMetrics:
    """Sum, mean and root of a per-pixel error, computed in one pass."""

    root: float
    mean: float
    total: float


def square_error(a: NormalizedImage, b: NormalizedImage) -> ErrorMetrics:
    """RMSE / MSE / SSE."""
    require_same_size("square_error", a, b)
    diff = a.data.astype(np.float64) - b.data.astype(np.float64)
    sse = float(np.sum(diff * diff))
    mse = sse / float(diff.size)
    return ErrorMetrics(root=math.sqrt(mse), mean=mse, total=sse)


def absolute_error(a: NormalizedImage, b: NormalizedImage) -> ErrorMetrics:
    """RMAE / MAE / SAE.

    ``root`` is ``sqrt(MAE)``, which is not a root-mean metric in the usual
    sense; it is kept for comparability with :func:`square_error`.
    """
    require_same_size("absolute_error", a, b)
    diff = a.data.astype(np.float64) - b.data.astype(np.float64)
    sae = float(np.sum(np.abs(diff)))
    mae = sae / float(diff.size)
    return ErrorMetrics(root=math.sqrt(mae), mean=mae, total=sae)


def cross_correlation(a: NormalizedImage, b: NormalizedImage) -> float:
    """Zero-normalised cross-correlation in [-1, 1].

    An image against an identical copy gives ``ZNCC_MAX`` (1.0). If either
    image is constant (std 0) the correlation is undefined and 0.0 is
    returned.
    """
    require_same_size("cross_correlation", a, b)
    da = a.data.astype(np.float64)
    db = b.data.astype(np.float64)
    ca = da - da.mean()
    cb = db - db.mean()
    std_a = math.sqrt(float(np.mean(ca * ca)))
    std_b = math.sqrt(float(np.mean(cb * cb)))
    if std_a == 0.0 or std_b == 0.0:
        return 0.0
    zncc = float(np.sum(ca * cb)) / (std_a * std_b) / float(da.size)
    return max(-ZNCC_MAX, min(ZNCC_MAX, zncc))
