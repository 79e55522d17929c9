"""Normalized single-channel image kernels: arithmetic, filters, stats, metrics."""

from .arithmetic import add, cross_product, divide, invert, normalise, sqrt, subtract
from .filters import convolution, gradient_magnitude, pixel_orientation, sep_convolution
from .image import DimensionMismatch, ImageError, NormalizedImage
from .masks import mask
from .metrics import ZNCC_MAX, ErrorMetrics, absolute_error, cross_correlation, square_error
from .pool import RowPool, default_pool
from .stats import dimensions, mean_std, min_max
from .thresholds import dual_threshold, single_threshold

__all__ = [
    "NormalizedImage",
    "ImageError",
    "DimensionMismatch",
    "RowPool",
    "default_pool",
    "add",
    "subtract",
    "cross_product",
    "divide",
    "sqrt",
    "invert",
    "normalise",
    "convolution",
    "sep_convolution",
    "gradient_magnitude",
    "pixel_orientation",
    "dimensions",
    "min_max",
    "mean_std",
    "single_threshold",
    "dual_threshold",
    "mask",
    "ErrorMetrics",
    "square_error",
    "absolute_error",
    "cross_correlation",
    "ZNCC_MAX",
]

__version__ = "0.1.0"
