from unittest import mock

import numpy as np
import pytest

from conftest import FakeSource
from filtercam.camera import (
    CameraAborted,
    CameraBusy,
    CameraError,
    CameraNotFound,
    CameraPermissionDenied,
    WebcamSource,
    acquire_camera,
)


# =============================================================================
# Error taxonomy
# =============================================================================

@pytest.mark.parametrize(
    "error_cls, category, retryable",
    [
        (CameraPermissionDenied, "permission_denied", False),
        (CameraNotFound, "not_found", False),
        (CameraBusy, "busy", False),
        (CameraAborted, "aborted", True),
    ],
)
def test_error_categories(error_cls, category, retryable):
    error = error_cls(device=2)
    assert isinstance(error, CameraError)
    assert error.category == category
    assert error.retryable is retryable
    assert error.device == 2
    assert str(error) == error_cls.default_message


def test_custom_message_overrides_default():
    assert CameraBusy("in use by obs").message == "in use by obs"


# =============================================================================
# acquire_camera
# =============================================================================

def test_aborted_is_retried_with_fixed_delay():
    source = FakeSource(start_errors=[CameraAborted(), CameraAborted(), None])
    sleeps = []

    assert acquire_camera(source, attempts=3, delay=0.25, sleep=sleeps.append) is source

    assert source.start_calls == 3
    assert sleeps == [0.25, 0.25]
    assert source.is_running


def test_exhausted_retries_reraise_last_error():
    source = FakeSource(start_errors=[CameraAborted(), CameraAborted()])
    sleeps = []

    with pytest.raises(CameraAborted):
        acquire_camera(source, attempts=2, delay=1, sleep=sleeps.append)

    assert source.start_calls == 2
    assert sleeps == [1]


@pytest.mark.parametrize("error_cls", [CameraPermissionDenied, CameraNotFound, CameraBusy])
def test_terminal_errors_are_not_retried(error_cls):
    source = FakeSource(start_errors=[error_cls(), None])
    sleeps = []

    with pytest.raises(error_cls):
        acquire_camera(source, attempts=5, delay=1, sleep=sleeps.append)

    assert source.start_calls == 1
    assert sleeps == []


def test_attempts_must_be_positive():
    with pytest.raises(ValueError):
        acquire_camera(FakeSource(), attempts=0)


# =============================================================================
# WebcamSource
# =============================================================================

def make_capture(opened=True, frame=None):
    cap = mock.MagicMock()
    cap.isOpened.return_value = opened
    cap.read.return_value = (frame is not None, frame)
    return cap


@pytest.fixture
def device_present():
    with mock.patch.object(WebcamSource, "_check_device_node"):
        yield


def test_webcam_not_opened_is_aborted(device_present):
    cap = make_capture(opened=False)
    with mock.patch("filtercam.camera.cv2.VideoCapture", return_value=cap):
        with pytest.raises(CameraAborted):
            WebcamSource(device=1).start()
    cap.release.assert_called_once()


def test_webcam_without_frames_is_busy(device_present):
    cap = make_capture(opened=True, frame=None)
    with mock.patch("filtercam.camera.cv2.VideoCapture", return_value=cap):
        with pytest.raises(CameraBusy):
            WebcamSource(device=1).start()
    cap.release.assert_called_once()


def test_webcam_start_and_stop(device_present):
    frame = np.zeros((48, 64, 3), dtype=np.uint8)
    cap = make_capture(opened=True, frame=frame)
    source = WebcamSource(device=0, width=640, height=480)

    with mock.patch("filtercam.camera.cv2.VideoCapture", return_value=cap):
        source.start()

    assert source.is_running
    assert source.resolution == (64, 48)
    assert source.read() is frame
    assert source.get_device_info()["resolution"] == "64x48"

    source.stop()
    source.stop()
    cap.release.assert_called_once()
    assert not source.is_running
    assert source.read() is None


def test_missing_device_node_is_not_found():
    with mock.patch("filtercam.camera.sys.platform", "linux"), \
         mock.patch("filtercam.camera.os.path.exists", return_value=False):
        with pytest.raises(CameraNotFound):
            WebcamSource(device=7).start()


def test_unreadable_device_node_is_permission_denied():
    with mock.patch("filtercam.camera.sys.platform", "linux"), \
         mock.patch("filtercam.camera.os.path.exists", return_value=True), \
         mock.patch("filtercam.camera.os.access", return_value=False):
        with pytest.raises(CameraPermissionDenied):
            WebcamSource(device=7).start()
