"""
Camera barcode scanning state machine.

    IDLE --start()--> STARTING --acquired--> ACTIVE --decoded--> IDLE (code emitted)
                         |                     |
                         +----stop()/error-----+--stop()/teardown()--> IDLE

The camera handle lives in a single cell (self._handle) owned by the
controller. Release always targets whatever the cell holds at that moment.
Each acquisition gets a generation number, and frame callbacks carrying a
handle from an earlier generation are ignored, so a late callback can never
release or report for a newer session.
"""

from enum import Enum
from typing import Optional

from PySide6.QtCore import QObject, Signal

from exceptions import AcquisitionError
from logger import get_logger

logger = get_logger(__name__)


class ScanState(str, Enum):
    IDLE = "IDLE"
    STARTING = "STARTING"
    ACTIVE = "ACTIVE"


class ScanController(QObject):
    """
    Owns the lifecycle of the camera/decoder resource.

    The camera source is any object with acquire(frame_sink) returning a
    handle with release(). The source calls frame_sink(handle, text) for
    every evaluated frame; text is None when no symbol was found.

    Attributes:
        code_decoded (Signal): Emitted once per session with the decoded text.
        scan_error (Signal): Emitted with an operator message when the camera
                             cannot be acquired.
        state_changed (Signal): Emitted with the new ScanState value.
    """
    code_decoded = Signal(str)
    scan_error = Signal(str)
    state_changed = Signal(str)

    def __init__(self, camera_source):
        super().__init__()
        self.camera_source = camera_source
        self._state = ScanState.IDLE
        self._handle = None
        self._generation = 0
        self._stop_requested = False

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state != ScanState.IDLE

    def _set_state(self, state: ScanState):
        if state != self._state:
            logger.debug(f"Scan state {self._state.value} -> {state.value}")
            self._state = state
            self.state_changed.emit(state.value)

    def _release_current(self):
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                handle.release()
            except Exception as e:
                logger.error(f"Failed to release camera: {e}", exc_info=True)

    def start(self) -> bool:
        """
        Start a scan session.

        Returns:
            True if the camera is now active. False when a session is
            already running or the camera could not be acquired (scan_error
            is emitted in that case).
        """
        if self._state != ScanState.IDLE:
            logger.debug(f"start() ignored in state {self._state.value}")
            return False

        self._generation += 1
        generation = self._generation
        self._stop_requested = False
        self._set_state(ScanState.STARTING)
        session = {"released": False}

        def frame_sink(handle, text: Optional[str]):
            self._on_frame(generation, session, handle, text)

        try:
            handle = self.camera_source.acquire(frame_sink)
        except AcquisitionError as e:
            logger.error(f"Camera access error: {e}")
            self._handle = None
            self._set_state(ScanState.IDLE)
            self.scan_error.emit(e.get_display_message())
            return False

        if generation != self._generation or self._stop_requested or self._state != ScanState.STARTING:
            # stop(), teardown() or a decode happened while acquiring
            logger.info("Scan session ended during camera start-up, releasing camera")
            if not session["released"]:
                try:
                    handle.release()
                except Exception as e:
                    logger.error(f"Failed to release camera: {e}", exc_info=True)
            if generation == self._generation:
                self._set_state(ScanState.IDLE)
            return False

        self._handle = handle
        self._set_state(ScanState.ACTIVE)
        logger.info("Camera scanning started")
        return True

    def _on_frame(self, generation: int, session: dict, handle, text: Optional[str]):
        if generation != self._generation or self._state == ScanState.IDLE:
            logger.debug("Ignoring frame from a finished scan session")
            return

        if text is None:
            # No symbol in this frame, keep scanning
            return

        logger.info(f"Scanned code: {text}")
        if self._handle is None:
            # Decoded before acquire() returned; release the handle the source gave us
            self._stop_requested = True
            session["released"] = True
            try:
                handle.release()
            except Exception as e:
                logger.error(f"Failed to release camera: {e}", exc_info=True)
        else:
            self._release_current()

        self._generation += 1
        self._set_state(ScanState.IDLE)
        self.code_decoded.emit(text)

    def stop(self) -> bool:
        """
        Stop the running session without emitting a result.

        Returns:
            True if a session was stopped.
        """
        if self._state == ScanState.IDLE:
            return False

        if self._state == ScanState.STARTING:
            # acquire() has not returned; start() releases the handle when it does
            self._stop_requested = True

        self._release_current()
        self._generation += 1
        self._set_state(ScanState.IDLE)
        logger.info("Camera scanning stopped")
        return True

    def toggle(self) -> bool:
        """Start when idle, otherwise stop. Returns True if now scanning."""
        if self._state == ScanState.IDLE:
            return self.start()
        self.stop()
        return False

    def teardown(self):
        """
        Release the camera unconditionally. Called when the screen closes.

        Safe to call in any state and more than once.
        """
        if self._handle is not None or self._state != ScanState.IDLE:
            logger.info("Releasing camera on teardown")
        self._stop_requested = True
        self._release_current()
        self._generation += 1
        self._set_state(ScanState.IDLE)
