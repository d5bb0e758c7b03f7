"""
Separable Gaussian blur.

A 2D Gaussian kernel factors into a horizontal and a vertical 1D pass,
so each pixel costs O(r) per pass instead of O(r^2).
"""

import math
from typing import Dict

import numpy as np

from filtercam.pixel_buffer import PixelBuffer, to_channel


class GaussianKernel:
    """
    1D Gaussian weights for a given radius.

    Offsets run over [-ceil(radius), ceil(radius)] and the weight for
    offset i is exp(-i^2 / (2 sigma^2)) / (sigma * sqrt(2 pi)) with
    sigma = radius / 2. A radius of 0 gives the single weight 1.0.
    """

    def __init__(self, radius: float):
        if radius < 0:
            raise ValueError(f"Blur radius must be >= 0, got {radius}")
        self.radius = radius
        self.half_width = int(math.ceil(radius))
        self.weights = self._compute_weights()

    def _compute_weights(self) -> np.ndarray:
        if self.half_width == 0:
            return np.array([1.0])

        sigma = self.radius / 2
        offsets = np.arange(-self.half_width, self.half_width + 1, dtype=np.float64)
        return np.exp(-(offsets ** 2) / (2 * sigma * sigma)) / (sigma * math.sqrt(2 * math.pi))

    @property
    def is_identity(self) -> bool:
        return self.half_width == 0

    def _pass(self, source: np.ndarray, axis: int) -> np.ndarray:
        """Weighted sum along one axis with clamped (edge-replicated) neighbours."""
        k = self.half_width
        pad = [(0, 0)] * source.ndim
        pad[axis] = (k, k)
        padded = np.pad(source, pad, mode="edge")

        length = source.shape[axis]
        result = np.zeros(source.shape, dtype=np.float64)
        for index, weight in enumerate(self.weights):
            window = np.take(padded, np.arange(index, index + length), axis=axis)
            result += weight * window

        # Clamped reads still use every weight, so this is the weight sum actually applied
        return result / self.weights.sum()

    def apply(self, buffer: PixelBuffer) -> None:
        """Blur all four channels in place: horizontal pass, then vertical."""
        if self.is_identity:
            return

        intermediate = self._pass(buffer.data.astype(np.float64), axis=1)
        buffer.data[...] = to_channel(self._pass(intermediate, axis=0))

    def __repr__(self) -> str:
        return f"GaussianKernel(radius={self.radius})"


_kernel_cache: Dict[float, GaussianKernel] = {}


def get_kernel(radius: float) -> GaussianKernel:
    """Kernels are immutable, so one per radius is shared across frames."""
    kernel = _kernel_cache.get(radius)
    if kernel is None:
        kernel = GaussianKernel(radius)
        _kernel_cache[radius] = kernel
    return kernel


def gaussian_blur(buffer: PixelBuffer, radius: float) -> None:
    get_kernel(radius).apply(buffer)
