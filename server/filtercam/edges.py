"""
Sobel edge detection.

Computes the gradient magnitude of one colour channel with the 3x3 Sobel
kernels. The 1-pixel border has no full neighbourhood: its magnitude is
reported as 0 and it is never classified as an edge.
"""

import numpy as np

from filtercam.pixel_buffer import PixelBuffer


class SobelEdgeDetector:
    """
    Classifies pixels as edge / non-edge.

    Args:
        threshold: Magnitude above which a pixel is an edge
        channel: Channel index to differentiate (0 = red)
    """

    def __init__(self, threshold: float = 50, channel: int = 0):
        if channel not in (0, 1, 2, 3):
            raise ValueError(f"Channel must be 0-3, got {channel}")
        self.threshold = threshold
        self.channel = channel

    def gradient_magnitude(self, buffer: PixelBuffer) -> np.ndarray:
        """sqrt(Gx^2 + Gy^2) per pixel as a (height, width) float array."""
        height, width = buffer.height, buffer.width
        magnitude = np.zeros((height, width), dtype=np.float64)
        if width < 3 or height < 3:
            return magnitude

        c = buffer.data[:, :, self.channel].astype(np.float64)

        # Neighbourhood slices relative to the interior block [1:-1, 1:-1]
        top_left, top, top_right = c[:-2, :-2], c[:-2, 1:-1], c[:-2, 2:]
        left, right = c[1:-1, :-2], c[1:-1, 2:]
        bottom_left, bottom, bottom_right = c[2:, :-2], c[2:, 1:-1], c[2:, 2:]

        gx = (top_right + 2 * right + bottom_right) - (top_left + 2 * left + bottom_left)
        gy = (bottom_left + 2 * bottom + bottom_right) - (top_left + 2 * top + top_right)

        magnitude[1:-1, 1:-1] = np.sqrt(gx * gx + gy * gy)
        return magnitude

    def edge_mask(self, buffer: PixelBuffer) -> np.ndarray:
        """Boolean (height, width) mask, True where magnitude > threshold."""
        return self.gradient_magnitude(buffer) > self.threshold

    @staticmethod
    def interior_mask(width: int, height: int) -> np.ndarray:
        """Pixels that have a full 3x3 neighbourhood."""
        mask = np.zeros((height, width), dtype=bool)
        if width >= 3 and height >= 3:
            mask[1:-1, 1:-1] = True
        return mask
