"""Fixed convolution kernels.

Kernels are plain float32 arrays laid out like images: ``kernel[row, col]``
with rows along y. ``SOBEL_X`` responds to intensity changes along x.
"""

from __future__ import annotations

import numpy as np


def as_kernel(weights) -> np.ndarray:
    """Validate and convert nested weights into a read-only 2-D kernel."""
    k = np.array(weights, dtype=np.float32, copy=True)
    if k.ndim != 2 or k.shape[0] == 0 or k.shape[1] == 0:
        raise ValueError(f"kernel must be a non-empty 2-D grid, got shape {k.shape}")
    k.flags.writeable = False
    return k


SOBEL_X = as_kernel(
    [
        [-1, 0, 1],
        [-2, 0, 2],
        [-1, 0, 1],
    ]
)

SOBEL_Y = as_kernel(
    [
        [-1, -2, -1],
        [0, 0, 0],
        [1, 2, 1],
    ]
)

# SOBEL_X == SEP_SOBEL_X_PT1 (column) x SEP_SOBEL_X_PT2 (row)
SEP_SOBEL_X_PT1 = as_kernel([[1], [2], [1]])
SEP_SOBEL_X_PT2 = as_kernel([[-1, 0, 1]])

# SOBEL_Y == SEP_SOBEL_Y_PT2 (column) x SEP_SOBEL_Y_PT1 (row)
SEP_SOBEL_Y_PT1 = as_kernel([[1, 2, 1]])
SEP_SOBEL_Y_PT2 = as_kernel([[-1], [0], [1]])

LAPLACIAN = as_kernel(
    [
        [-1, -1, -1, -1, -1],
        [-1, -1, -1, -1, -1],
        [-1, -1, 24, -1, -1],
        [-1, -1, -1, -1, -1],
        [-1, -1, -1, -1, -1],
    ]
)
