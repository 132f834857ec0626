"""
OpenCV camera source with pyzbar barcode decoding.

acquire(frame_sink) opens the capture device and starts a QTimer on the UI
thread that grabs a frame, converts it to grayscale and runs pyzbar on it.
The sink is called as frame_sink(handle, text) for each evaluated frame,
with text None when no barcode was found. After the first decoded text the
handle stops reporting; ScanController releases it.
"""

from typing import Callable, Optional

import cv2
from pyzbar import pyzbar
from PySide6.QtCore import QTimer

from exceptions import AcquisitionError
from logger import get_logger

logger = get_logger(__name__)

FrameSink = Callable[["CameraHandle", Optional[str]], None]


def decode_frame(frame) -> Optional[str]:
    """
    Return the text of the first barcode in a BGR frame, or None.

    Frames without a readable symbol are the normal case and are not errors.
    """
    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    for symbol in pyzbar.decode(gray):
        try:
            return symbol.data.decode('utf-8')
        except UnicodeDecodeError:
            logger.debug(f"Skipping {symbol.type} symbol with non UTF-8 payload")
    return None


class CameraHandle:
    """
    A running capture. release() stops polling and frees the device.

    release() is idempotent.
    """

    def __init__(self, capture, frame_sink: FrameSink, poll_interval_ms: int):
        self._capture = capture
        self._frame_sink = frame_sink
        self._decoded = False
        self._released = False

        self._timer = QTimer()
        self._timer.setInterval(poll_interval_ms)
        self._timer.timeout.connect(self._poll)

    @property
    def released(self) -> bool:
        return self._released

    def start(self):
        self._timer.start()

    def _poll(self):
        if self._released or self._decoded:
            return

        ok, frame = self._capture.read()
        if not ok or frame is None:
            self._frame_sink(self, None)
            return

        text = decode_frame(frame)
        if text is not None:
            self._decoded = True
            self._timer.stop()
        self._frame_sink(self, text)

    def release(self):
        if self._released:
            return
        self._released = True
        self._timer.stop()
        self._capture.release()
        logger.debug("Camera device released")


class OpenCvCameraSource:
    """
    Acquires a cv2.VideoCapture device for barcode scanning.

    Attributes:
        device_id (int): OpenCV device index.
        poll_interval_ms (int): Delay between evaluated frames.
    """

    def __init__(self, device_id: int = 0, poll_interval_ms: int = 100):
        self.device_id = device_id
        self.poll_interval_ms = poll_interval_ms

    def acquire(self, frame_sink: FrameSink) -> CameraHandle:
        """
        Open the camera and start decoding frames.

        Raises:
            AcquisitionError: If the device cannot be opened.
        """
        try:
            capture = cv2.VideoCapture(self.device_id)
        except cv2.error as e:
            raise AcquisitionError(f"Cannot open camera device {self.device_id}: {e}")

        if not capture.isOpened():
            capture.release()
            raise AcquisitionError(f"Cannot open camera device {self.device_id}")

        logger.info(f"Camera {self.device_id} opened, polling every {self.poll_interval_ms}ms")
        handle = CameraHandle(capture, frame_sink, self.poll_interval_ms)
        handle.start()
        return handle
