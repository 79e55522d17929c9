from __future__ import annotations

import math

import numpy as np

from .image import NormalizedImage


def dimensions(image: NormalizedImage) -> tuple[int, int]:
    """Return ``(width, height)``."""
    return image.width, image.height


def min_max(image: NormalizedImage) -> tuple[float, float]:
    """Dimmest and brightest pixel values, in one pass."""
    data = image.data
    return float(data.min()), float(data.max())


def mean_std(image: NormalizedImage) -> tuple[float, float]:
    """Mean and population standard deviation.

    Two passes in float64: sum for the mean, then the sum of squared
    deviations from it. Values are bounded to normalized magnitudes, so the
    simple formulation is accurate enough and easy to verify.
    """
    data = image.data.astype(np.float64)
    n = float(data.size)
    mean = float(data.sum()) / n
    dev = data - mean
    var = float(np.sum(dev * dev)) / n
    return mean, math.sqrt(var)
