"""
Pixel Buffer - raw RGBA frame storage

Every filter works on a PixelBuffer: one frame's pixels as a
(height, width, 4) uint8 numpy array in R, G, B, A order.

Effects mutate the buffer in place and never change its geometry.
"""

import io
from typing import Sequence, Tuple

import cv2
import numpy as np
from PIL import Image


class DimensionMismatchError(ValueError):
    """Buffer geometry does not match the declared width/height."""


def to_channel(values: np.ndarray) -> np.ndarray:
    """
    Convert float channel values to bytes.

    Rounds half up (floor(v + 0.5)) and clamps to [0, 255].
    """
    return np.clip(np.floor(values + 0.5), 0, 255).astype(np.uint8)


class PixelBuffer:
    """
    RGBA pixel storage for a single frame.

    The array is owned by whoever is processing the frame. Effects get
    the buffer, mutate `data` in place and hand it back.
    """

    CHANNELS = 4

    def __init__(self, data: np.ndarray):
        if data.dtype != np.uint8 or data.ndim != 3 or data.shape[2] != self.CHANNELS:
            raise DimensionMismatchError(
                f"Expected a (height, width, 4) uint8 array, got {data.shape} {data.dtype}"
            )
        self.data = data

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_bytes(cls, raw: bytes, width: int, height: int) -> "PixelBuffer":
        """Wrap raw RGBA bytes. Length must be width * height * 4."""
        expected = width * height * cls.CHANNELS
        if len(raw) != expected:
            raise DimensionMismatchError(
                f"Buffer of {len(raw)} bytes does not match {width}x{height} RGBA ({expected} bytes)"
            )
        data = np.frombuffer(raw, dtype=np.uint8).reshape(height, width, cls.CHANNELS).copy()
        return cls(data)

    @classmethod
    def from_bgr(cls, frame: np.ndarray) -> "PixelBuffer":
        """Convert an OpenCV BGR frame. Alpha is fully opaque."""
        return cls(cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA))

    @classmethod
    def from_image_bytes(cls, image_bytes: bytes) -> "PixelBuffer":
        """Decode an encoded image (JPEG, PNG, ...) into RGBA."""
        img = Image.open(io.BytesIO(image_bytes))
        return cls(np.array(img.convert("RGBA")))

    @classmethod
    def blank(cls, width: int, height: int) -> "PixelBuffer":
        return cls(np.zeros((height, width, cls.CHANNELS), dtype=np.uint8))

    @classmethod
    def solid(cls, width: int, height: int, rgba: Sequence[int]) -> "PixelBuffer":
        """Buffer where every pixel has the same colour."""
        buffer = cls.blank(width, height)
        buffer.fill(rgba)
        return buffer

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    # ------------------------------------------------------------------
    # Pixel access
    # ------------------------------------------------------------------

    def get_pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        """Read (r, g, b, a). Coordinates must be inside the buffer."""
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} buffer")
        r, g, b, a = self.data[y, x]
        return int(r), int(g), int(b), int(a)

    def get_pixel_clamped(self, x: int, y: int) -> Tuple[int, int, int, int]:
        """Read (r, g, b, a) with edge replication for out-of-range coordinates."""
        x = min(max(x, 0), self.width - 1)
        y = min(max(y, 0), self.height - 1)
        return self.get_pixel(x, y)

    def set_pixel(self, x: int, y: int, rgba: Sequence[float]) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} buffer")
        self.data[y, x] = to_channel(np.asarray(rgba, dtype=np.float64))

    def fill(self, rgba: Sequence[float]) -> None:
        self.data[:, :] = to_channel(np.asarray(rgba, dtype=np.float64))

    # ------------------------------------------------------------------
    # Copy / export
    # ------------------------------------------------------------------

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.data.copy())

    def copy_from(self, other: "PixelBuffer") -> None:
        """Overwrite this buffer's pixels with another buffer of the same size."""
        if other.size != self.size:
            raise DimensionMismatchError(
                f"Cannot copy {other.width}x{other.height} into {self.width}x{self.height}"
            )
        np.copyto(self.data, other.data)

    def tobytes(self) -> bytes:
        return self.data.tobytes()

    def to_bgr(self) -> np.ndarray:
        """BGR copy for OpenCV display and encoding."""
        return cv2.cvtColor(self.data, cv2.COLOR_RGBA2BGR)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.size == other.size and bool(np.array_equal(self.data, other.data))

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"


def check_geometry(buffer: PixelBuffer, width: int, height: int) -> None:
    """Fail loudly when the declared geometry does not match the buffer."""
    if buffer.width != width or buffer.height != height:
        raise DimensionMismatchError(
            f"Declared {width}x{height} but buffer is {buffer.width}x{buffer.height}"
        )
