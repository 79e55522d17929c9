"""Pixelwise trigonometric operators.

Each one works on the absolute pixel value and normalises its output.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .arithmetic import _unary
from .image import NormalizedImage
from .pool import RowPool

_HALF_PI = np.float32(math.pi * 0.5)


def sin(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    return _unary(image, lambda x, o: np.sin(np.abs(x), out=o), pool)


def asin(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    # |x| > 1 is outside the domain; clip so the result stays finite
    return _unary(image, lambda x, o: np.arcsin(np.clip(np.abs(x), 0.0, 1.0), out=o), pool)


def cos(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    return _unary(image, lambda x, o: np.cos(np.abs(x), out=o), pool)


def acos(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    return _unary(image, lambda x, o: np.arccos(np.clip(np.abs(x), 0.0, 1.0), out=o), pool)


def tan(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    """Tangent, with exactly pi/2 mapped to 0."""

    def _tan(x: np.ndarray, o: np.ndarray) -> None:
        np.tan(np.abs(x), out=o)
        o[x == _HALF_PI] = 0.0

    return _unary(image, _tan, pool)


def atan(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    return _unary(image, lambda x, o: np.arctan(np.abs(x), out=o), pool)
