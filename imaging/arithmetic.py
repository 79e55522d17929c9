"""Pixelwise arithmetic on normalized images.

Every operator returning an image normalises its output into [0, 1]; an
output with no dynamic range (min == max) becomes all zeros. Binary operators
raise :class:`DimensionMismatch` before any work is done when the operands
differ in size.
"""

from __future__ import annotations

from typing import Callable, Literal, Optional

import numpy as np

from .image import NormalizedImage, normalise_array, require_same_size
from .pool import RowPool, resolve

ZeroPolicy = Literal["pixel", "row"]

_BinaryRow = Callable[[np.ndarray, np.ndarray, np.ndarray], None]
_UnaryRow = Callable[[np.ndarray, np.ndarray], None]


def normalise(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    """Rescale so the smallest pixel is 0 and the largest is 1."""
    src = image.data
    lo = float(src.min())
    hi = float(src.max())
    out = np.zeros(src.shape, dtype=np.float32)
    if lo == hi:
        return NormalizedImage(out)
    span = hi - lo

    def _rows(start: int, stop: int) -> None:
        out[start:stop] = (src[start:stop].astype(np.float64) - lo) / span

    resolve(pool).run(image.height, _rows)
    return NormalizedImage(out)


def _binary(
    op: str,
    a: NormalizedImage,
    b: NormalizedImage,
    kernel: _BinaryRow,
    pool: Optional[RowPool],
) -> NormalizedImage:
    require_same_size(op, a, b)
    # float64 so quotients and reciprocals of float32 subnormals stay finite
    da, db = a.data.astype(np.float64), b.data.astype(np.float64)
    out = np.empty(da.shape, dtype=np.float64)

    def _rows(start: int, stop: int) -> None:
        kernel(da[start:stop], db[start:stop], out[start:stop])

    resolve(pool).run(a.height, _rows)
    return NormalizedImage(normalise_array(out))


def _unary(image: NormalizedImage, kernel: _UnaryRow, pool: Optional[RowPool]) -> NormalizedImage:
    src = image.data.astype(np.float64)
    out = np.empty(src.shape, dtype=np.float64)

    def _rows(start: int, stop: int) -> None:
        kernel(src[start:stop], out[start:stop])

    resolve(pool).run(image.height, _rows)
    return NormalizedImage(normalise_array(out))


def add(a: NormalizedImage, b: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    return _binary("add", a, b, lambda x, y, o: np.add(x, y, out=o), pool)


def subtract(
    a: NormalizedImage, b: NormalizedImage, pool: Optional[RowPool] = None
) -> NormalizedImage:
    return _binary("subtract", a, b, lambda x, y, o: np.subtract(x, y, out=o), pool)


def cross_product(
    a: NormalizedImage, b: NormalizedImage, pool: Optional[RowPool] = None
) -> NormalizedImage:
    """Elementwise (Hadamard) product."""
    return _binary("cross_product", a, b, lambda x, y, o: np.multiply(x, y, out=o), pool)


def divide(
    a: NormalizedImage,
    b: NormalizedImage,
    pool: Optional[RowPool] = None,
    zero_policy: ZeroPolicy = "pixel",
) -> NormalizedImage:
    """Elementwise ``a / b`` with a zero divisor producing 0.

    ``zero_policy="pixel"`` (default) computes every pixel and only zeroes
    those whose divisor is exactly 0. ``zero_policy="row"`` stops processing a
    row at its first zero divisor, leaving that pixel and the rest of the row
    at 0.
    """
    if zero_policy not in ("pixel", "row"):
        raise ValueError(f"unknown zero_policy: {zero_policy!r}")

    def _pixel(x: np.ndarray, y: np.ndarray, o: np.ndarray) -> None:
        o[...] = 0.0
        np.divide(x, y, out=o, where=y != 0)

    def _row(x: np.ndarray, y: np.ndarray, o: np.ndarray) -> None:
        _pixel(x, y, o)
        zero = y == 0
        hit = zero.any(axis=1)
        if hit.any():
            first = zero.argmax(axis=1)
            cols = np.arange(o.shape[1])
            o[(cols[None, :] >= first[:, None]) & hit[:, None]] = 0.0

    return _binary("divide", a, b, _pixel if zero_policy == "pixel" else _row, pool)


def sqrt(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    """Square root of the absolute value of each pixel."""
    return _unary(image, lambda x, o: np.sqrt(np.abs(x), out=o), pool)


def invert(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    """Reciprocal of each pixel, with 0 -> 1 and 1 -> 0 special-cased."""

    def _inv(x: np.ndarray, o: np.ndarray) -> None:
        o[...] = 0.0
        np.reciprocal(x, out=o, where=x != 0)
        o[x == 0] = 1.0
        o[x == 1] = 0.0

    return _unary(image, _inv, pool)
