"""Shared pytest configuration and fixtures for the filter engine test suite."""

import os
import sys
import tempfile
import threading
import time
from pathlib import Path

# Settings are read at import time, so these must be set before filtercam loads
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("PHOTOS_DIR", tempfile.mkdtemp(prefix="filtercam-photos-"))
os.environ.setdefault("CAMERA_RETRY_DELAY", "0")

# Ensure the server directory is importable without an install
SERVER_ROOT = Path(__file__).parent.parent / "server"
if str(SERVER_ROOT) not in sys.path:
    sys.path.insert(0, str(SERVER_ROOT))

import numpy as np
import pytest

from filtercam.camera import VideoSource
from filtercam.dispatch import EffectRegistry
from filtercam.effects import EffectId
from filtercam.models import FilterDescriptor, PhotoRecord
from filtercam.pixel_buffer import PixelBuffer
from filtercam.services import PhotoStore, StorageError


# =============================================================================
# Fakes
# =============================================================================

class FakeSource(VideoSource):
    """
    Scripted video source.

    start_errors are raised by successive start() calls (None = succeed).
    With repeat=True the last frame is served forever.
    """

    def __init__(self, frames=None, start_errors=None, repeat=False, delay=0.0):
        self.frames = list(frames or [])
        self.start_errors = list(start_errors or [])
        self.repeat = repeat
        self.delay = delay
        self.start_calls = 0
        self.stop_calls = 0
        self.running = False
        self._last = None

    def start(self):
        self.start_calls += 1
        if self.start_errors:
            error = self.start_errors.pop(0)
            if error is not None:
                raise error
        self.running = True

    def stop(self):
        self.stop_calls += 1
        self.running = False

    def read(self):
        if not self.running:
            return None
        if self.delay:
            time.sleep(self.delay)
        if self.frames:
            self._last = self.frames[0]
            self.frames.pop(0)
            return self._last.copy()
        if self.repeat and self._last is not None:
            return self._last.copy()
        return None

    @property
    def resolution(self):
        frame = self.frames[0] if self.frames else self._last
        if frame is None:
            return (0, 0)
        return (frame.shape[1], frame.shape[0])

    @property
    def is_running(self):
        return self.running


class FakeStore(PhotoStore):
    def __init__(self, fail=False, gate=None):
        self.fail = fail
        self.gate = gate
        self.saved = []

    def save(self, image_bytes, filter_id, description=None):
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail:
            raise StorageError("Failed to save photo")
        self.saved.append((image_bytes, filter_id, description))
        return PhotoRecord(
            id=f"pht_{len(self.saved)}",
            filter_id=filter_id,
            url=f"/photos/pht_{len(self.saved)}.jpg",
            description=description,
            created_at="2024-01-15T10:30:00Z",
        )


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def descriptors():
    """One descriptor per effect, ids deliberately unrelated to names."""
    return [
        FilterDescriptor(id=f"flt_{index:02d}", name=effect_id.value, category="Basic")
        for index, effect_id in enumerate(EffectId)
    ]


@pytest.fixture
def registry(descriptors):
    return EffectRegistry(descriptors)


@pytest.fixture
def gray_buffer():
    """The 4x4 mid-gray frame used across effect scenarios."""
    return PixelBuffer.solid(4, 4, (128, 128, 128, 255))


@pytest.fixture
def random_buffer():
    rng = np.random.default_rng(1234)
    return PixelBuffer(rng.integers(0, 256, size=(17, 23, 4), dtype=np.uint8))


@pytest.fixture
def bgr_frame():
    """Small BGR camera frame with a horizontal ramp."""
    frame = np.zeros((12, 16, 3), dtype=np.uint8)
    frame[:, :, 0] = 40                                       # blue
    frame[:, :, 1] = np.arange(16, dtype=np.uint8)[None, :] * 10  # green ramp
    frame[:, :, 2] = 200                                      # red
    return frame


@pytest.fixture
def upload_gate():
    return threading.Event()
