"""
camera/capture.py — Background frame grabber for fingertip PPG
================================================================
The sampling tick runs every 250 ms and must never block on camera I/O,
so a daemon thread keeps reading frames and stores only the newest one.
`CameraPPGSource` calls `open()` when measuring begins, polls
`get_latest_frame()` on each tick and calls `release()` at the end.

The torch should be on while the fingertip covers the lens; OpenCV has no
portable torch control, so that is left to the device driver.
"""

import threading

import cv2
import numpy as np

from config import CAMERA_FPS, CAMERA_HEIGHT, CAMERA_INDEX, CAMERA_WIDTH
from utils.logger import get_logger

logger = get_logger("camera.capture")


class CameraCapture:
    """One camera device plus the thread that drains it."""

    def __init__(self, device_index: int = CAMERA_INDEX):
        self._device_index = device_index
        self._cap: cv2.VideoCapture | None = None
        self._frame: np.ndarray | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    def open(self) -> bool:
        """Open the device and start grabbing; False if it cannot be opened."""
        if self.is_open:
            return True

        cap = cv2.VideoCapture(self._device_index)
        for prop, value in (
            (cv2.CAP_PROP_FRAME_WIDTH, CAMERA_WIDTH),
            (cv2.CAP_PROP_FRAME_HEIGHT, CAMERA_HEIGHT),
            (cv2.CAP_PROP_FPS, CAMERA_FPS),
        ):
            cap.set(prop, value)

        if not cap.isOpened():
            cap.release()
            logger.error("Cannot open camera %d (permissions, or in use elsewhere?).", self._device_index)
            return False

        self._cap = cap
        self._stop.clear()
        self._thread = threading.Thread(target=self._grab_frames, name="ppg-camera", daemon=True)
        self._thread.start()
        logger.info(
            "Camera %d open at %dx%d.", self._device_index,
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)), int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
        return True

    def release(self) -> None:
        """Stop grabbing, free the device and forget the last frame."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        with self._lock:
            self._frame = None
        logger.info("Camera %d released.", self._device_index)

    def get_latest_frame(self) -> np.ndarray | None:
        """Newest BGR frame (a copy), or None before the first one arrives."""
        with self._lock:
            return None if self._frame is None else self._frame.copy()

    def _grab_frames(self) -> None:
        cap = self._cap
        while cap is not None and not self._stop.is_set():
            ok, frame = cap.read()
            if not ok:
                logger.warning("Camera %d stopped delivering frames.", self._device_index)
                return
            with self._lock:
                self._frame = frame
