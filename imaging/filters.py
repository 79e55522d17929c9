"""Convolution and gradient filters built on the row pool."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np

from . import arithmetic, trig
from .image import NormalizedImage, normalise_array
from .kernels import (
    SEP_SOBEL_X_PT1,
    SEP_SOBEL_X_PT2,
    SEP_SOBEL_Y_PT1,
    SEP_SOBEL_Y_PT2,
    as_kernel,
)
from .pool import RowPool, resolve

_LOG = logging.getLogger(__name__)

# Stage-level concurrency (two independent Sobel passes). Kept apart from the
# row pool so a stage waiting on its rows never occupies a row worker.
_stage_executor: Optional[ThreadPoolExecutor] = None
_stage_lock = threading.Lock()


def _stages() -> ThreadPoolExecutor:
    global _stage_executor
    with _stage_lock:
        if _stage_executor is None:
            _stage_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="imaging-stage")
        return _stage_executor


def convolution(
    image: NormalizedImage, kernel, pool: Optional[RowPool] = None
) -> NormalizedImage:
    """Zero-padded 2-D convolution (kernel applied without flipping).

    The image is padded by ``k // 2`` on each side so the kernel's centre
    element sits over the output pixel; even-sized kernels centre on the
    element just below/right of the middle. Output is normalised.
    """
    k = as_kernel(kernel)
    kh, kw = k.shape
    top, left = kh // 2, kw // 2
    src = image.data
    h, w = src.shape
    padded = np.pad(
        src.astype(np.float64),
        ((top, kh - 1 - top), (left, kw - 1 - left)),
        mode="constant",
        constant_values=0.0,
    )
    weights = k.astype(np.float64)
    out = np.empty((h, w), dtype=np.float32)

    def _rows(start: int, stop: int) -> None:
        acc = np.zeros((stop - start, w), dtype=np.float64)
        for ky in range(kh):
            for kx in range(kw):
                wt = weights[ky, kx]
                if wt == 0.0:
                    continue
                acc += wt * padded[start + ky : stop + ky, kx : kx + w]
        out[start:stop] = acc

    resolve(pool).run(h, _rows)
    return NormalizedImage(normalise_array(out))


def sep_convolution(
    image: NormalizedImage, first, second, pool: Optional[RowPool] = None
) -> NormalizedImage:
    """Apply two 1-D kernels in sequence, normalising after each pass."""
    once = convolution(image, first, pool=pool)
    twice = convolution(once, second, pool=pool)
    return arithmetic.normalise(twice, pool=pool)


def sobel_pair(
    image: NormalizedImage, pool: Optional[RowPool] = None
) -> tuple[NormalizedImage, NormalizedImage]:
    """Run the separable Sobel-X and Sobel-Y passes concurrently, row kernel first."""
    stages = _stages()
    fx = stages.submit(sep_convolution, image, SEP_SOBEL_X_PT2, SEP_SOBEL_X_PT1, pool)
    fy = stages.submit(sep_convolution, image, SEP_SOBEL_Y_PT1, SEP_SOBEL_Y_PT2, pool)
    return fx.result(), fy.result()


def gradient_magnitude(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    """sqrt(gx^2 + gy^2) of the Sobel responses, normalised."""
    gx, gy = sobel_pair(image, pool=pool)
    stages = _stages()
    fx2 = stages.submit(arithmetic.cross_product, gx, gx, pool)
    fy2 = stages.submit(arithmetic.cross_product, gy, gy, pool)
    summed = arithmetic.add(fx2.result(), fy2.result(), pool=pool)
    return arithmetic.sqrt(summed, pool=pool)


def pixel_orientation(image: NormalizedImage, pool: Optional[RowPool] = None) -> NormalizedImage:
    """atan(|gy / gx|) per pixel, using the zero-guarded divide."""
    gx, gy = sobel_pair(image, pool=pool)
    quotient = arithmetic.divide(gy, gx, pool=pool)
    return trig.atan(quotient, pool=pool)
