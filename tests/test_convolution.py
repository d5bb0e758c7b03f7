import math

import numpy as np
import pytest

from filtercam.convolution import GaussianKernel, gaussian_blur, get_kernel
from filtercam.pixel_buffer import PixelBuffer


def test_radius_zero_is_a_single_unit_weight():
    kernel = GaussianKernel(0)
    assert kernel.weights.tolist() == [1.0]
    assert kernel.is_identity


def test_radius_zero_leaves_buffer_untouched(random_buffer):
    before = random_buffer.copy()
    gaussian_blur(random_buffer, 0)
    assert random_buffer == before


def test_weights_follow_gaussian_density():
    kernel = GaussianKernel(2)
    sigma = 1.0
    expected = [math.exp(-(i * i) / (2 * sigma * sigma)) / (sigma * math.sqrt(2 * math.pi)) for i in range(-2, 3)]
    assert kernel.weights == pytest.approx(expected)
    assert kernel.weights.tolist() == kernel.weights[::-1].tolist()


def test_fractional_radius_rounds_window_up():
    kernel = GaussianKernel(0.5)
    assert kernel.half_width == 1
    assert len(kernel.weights) == 3


def test_negative_radius_rejected():
    with pytest.raises(ValueError):
        GaussianKernel(-1)


@pytest.mark.parametrize("radius", [0.5, 1, 2.5, 4])
def test_uniform_buffer_is_unchanged(radius):
    buffer = PixelBuffer.solid(9, 7, (200, 100, 50, 255))
    gaussian_blur(buffer, radius)
    assert buffer == PixelBuffer.solid(9, 7, (200, 100, 50, 255))


def test_impulse_spreads_by_normalized_weights():
    buffer = PixelBuffer.blank(5, 5)
    buffer.set_pixel(2, 2, (255, 255, 255, 255))

    gaussian_blur(buffer, 1)

    # Normalized 1D weights for radius 1: e^-2 / (1 + 2e^-2) either side of 1 / (1 + 2e^-2)
    assert buffer.get_pixel(2, 2) == (158, 158, 158, 158)
    assert buffer.get_pixel(2, 1) == (21, 21, 21, 21)
    assert buffer.get_pixel(1, 1) == (3, 3, 3, 3)
    assert buffer.get_pixel(0, 0) == (0, 0, 0, 0)


def test_alpha_is_blurred_like_colour():
    buffer = PixelBuffer.solid(6, 1, (10, 10, 10, 255))
    buffer.data[0, 3:, 3] = 0
    gaussian_blur(buffer, 1)
    alpha = buffer.data[0, :, 3].tolist()
    assert alpha[0] == 255
    assert 0 < alpha[3] < 255
    assert alpha[2] > alpha[3]


def test_edges_are_clamped_not_darkened():
    # A bright edge column must not fade toward black at the border
    buffer = PixelBuffer.solid(4, 4, (0, 0, 0, 255))
    buffer.data[:, 0, :3] = 240
    gaussian_blur(buffer, 1)
    assert buffer.get_pixel(0, 0)[0] > 200


def test_dimensions_unchanged(random_buffer):
    gaussian_blur(random_buffer, 3)
    assert random_buffer.size == (23, 17)


def test_kernels_are_cached_per_radius():
    assert get_kernel(1.5) is get_kernel(1.5)
    assert get_kernel(1.5) is not get_kernel(2)
