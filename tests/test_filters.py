from __future__ import annotations

import numpy as np
import pytest

from imaging import filters, kernels
from imaging.arithmetic import normalise
from imaging.image import NormalizedImage


def _step_edge(size: int = 8) -> NormalizedImage:
    arr = np.zeros((size, size), dtype=np.float32)
    arr[:, size // 2 :] = 1.0
    return NormalizedImage(arr)


def test_separable_sobel_factors_match_full_kernels():
    sx = np.outer(kernels.SEP_SOBEL_X_PT1.ravel(), kernels.SEP_SOBEL_X_PT2.ravel())
    sy = np.outer(kernels.SEP_SOBEL_Y_PT2.ravel(), kernels.SEP_SOBEL_Y_PT1.ravel())
    np.testing.assert_array_equal(sx, kernels.SOBEL_X)
    np.testing.assert_array_equal(sy, kernels.SOBEL_Y)


def test_kernels_are_read_only_and_validated():
    with pytest.raises(ValueError):
        kernels.LAPLACIAN[0, 0] = 0.0
    with pytest.raises(ValueError):
        kernels.as_kernel([1, 2, 3])
    assert kernels.LAPLACIAN.shape == (5, 5)
    assert kernels.LAPLACIAN.sum() == pytest.approx(0.0)


def test_identity_kernel_equals_normalised_input(pool, gradient_array):
    img = NormalizedImage(gradient_array)
    out = filters.convolution(img, [[1.0]], pool=pool)
    np.testing.assert_allclose(out.data, normalise(img).data, atol=1e-6)


def test_sobel_x_peaks_on_vertical_edge(pool):
    out = filters.convolution(_step_edge(), kernels.SOBEL_X, pool=pool)
    # interior rows: +4 either side of the edge, -4 at the zero-padded right border
    assert out.pixel(3, 3) == pytest.approx(1.0)
    assert out.pixel(4, 3) == pytest.approx(1.0)
    assert out.pixel(7, 3) == pytest.approx(0.0)
    assert out.pixel(0, 3) == pytest.approx(0.5)


def test_laplacian_of_constant_image_is_flat_inside(pool):
    img = NormalizedImage(np.ones((10, 10), dtype=np.float32))
    out = filters.convolution(img, kernels.LAPLACIAN, pool=pool)
    # only the zero padding produces a response; corners see the fewest neighbours
    assert not out.data[2:8, 2:8].any()
    assert out.pixel(0, 0) == pytest.approx(1.0)
    assert out.pixel(9, 9) == pytest.approx(1.0)


def test_pool_does_not_change_results(pool, gradient_array):
    img = NormalizedImage.from_array(gradient_array)
    a = filters.convolution(img, kernels.LAPLACIAN, pool=pool)
    b = filters.convolution(img, kernels.LAPLACIAN)
    np.testing.assert_array_equal(a.data, b.data)


def test_gradient_magnitude_and_orientation_shapes(pool):
    img = _step_edge(12)
    mag = filters.gradient_magnitude(img, pool=pool)
    ori = filters.pixel_orientation(img, pool=pool)
    for out in (mag, ori):
        assert out.shape == img.shape
        assert np.isfinite(out.data).all()
        assert float(out.data.min()) >= 0.0
        assert float(out.data.max()) <= 1.0
    assert float(mag.data.max()) == pytest.approx(1.0)


def test_sep_convolution_output_is_normalised(pool, gradient_array):
    img = NormalizedImage.from_array(gradient_array)
    out = filters.sep_convolution(img, kernels.SEP_SOBEL_X_PT1, kernels.SEP_SOBEL_X_PT2, pool=pool)
    assert float(out.data.min()) == pytest.approx(0.0)
    assert float(out.data.max()) == pytest.approx(1.0)


def test_sobel_pair_runs_row_kernel_first(pool, gradient_array):
    img = NormalizedImage(gradient_array)
    gx, gy = filters.sobel_pair(img, pool=pool)
    want_x = filters.sep_convolution(
        img, kernels.SEP_SOBEL_X_PT2, kernels.SEP_SOBEL_X_PT1, pool=pool
    )
    want_y = filters.sep_convolution(
        img, kernels.SEP_SOBEL_Y_PT1, kernels.SEP_SOBEL_Y_PT2, pool=pool
    )
    np.testing.assert_allclose(gx.data, want_x.data, atol=1e-6)
    np.testing.assert_allclose(gy.data, want_y.data, atol=1e-6)
