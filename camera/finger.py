"""
camera/finger.py — Fingertip PPG source backed by the camera
=============================================================
With a fingertip pressed over the lens (and the torch on) the frame is
almost uniformly red; its mean red level rises and falls slightly with
each pulse of blood through the finger.  That mean red value is the
intensity sample handed to the pipeline.

Finger detection
----------------
A frame counts as "finger present" only when

    MIN_RED_THRESHOLD ≤ mean red ≤ MAX_RED_FOR_FINGER
    mean brightness   ≥ MIN_BRIGHTNESS_FOR_FINGER

Otherwise `sample()` returns None and the controller reports
`finger_detected = False` for that tick.

This module only depends on numpy; the camera object is anything with
`open()`, `get_latest_frame()` and `release()` (normally
`camera.capture.CameraCapture`), which keeps OpenCV out of the import
path until a camera source is actually requested.
"""

import numpy as np

from config import MAX_RED_FOR_FINGER, MIN_BRIGHTNESS_FOR_FINGER, MIN_RED_THRESHOLD
from ppg.sources import SignalSource
from utils.logger import get_logger

logger = get_logger("camera.finger")


def frame_intensity(frame: np.ndarray) -> tuple[float, float]:
    """
    Return (mean red, mean brightness) of a BGR frame.

    Brightness is the unweighted mean over all three channels.
    """
    red = float(frame[:, :, 2].mean())
    brightness = float(frame.mean())
    return red, brightness


def finger_present(red: float, brightness: float) -> bool:
    return (
        MIN_RED_THRESHOLD <= red <= MAX_RED_FOR_FINGER
        and brightness >= MIN_BRIGHTNESS_FOR_FINGER
    )


class CameraPPGSource(SignalSource):
    """Samples the mean red level of the latest camera frame."""

    def __init__(self, camera=None):
        if camera is None:
            # Imported lazily so the API boots without OpenCV installed
            from camera.capture import CameraCapture
            camera = CameraCapture()
        self._camera = camera
        self._available = False

    def begin(self, now_ms: float) -> None:
        self._available = self._camera.open()
        if not self._available:
            logger.error("Camera unavailable — the session will produce no reading.")

    def sample(self, now_ms: float) -> float | None:
        if not self._available:
            return None
        frame = self._camera.get_latest_frame()
        if frame is None:
            return None
        red, brightness = frame_intensity(frame)
        if not finger_present(red, brightness):
            return None
        return red

    def end(self) -> None:
        if self._available:
            self._camera.release()
        self._available = False
