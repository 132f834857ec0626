"""
Background thread for calls to the transaction service.

Keeps the checkout screen responsive while a request is waiting on the
network. The worker only runs the network part of an operation; results are
delivered through signals and applied on the UI thread by the receiver.
"""

from typing import Any, Callable

from PySide6.QtCore import QThread, Signal

from logger import get_logger

logger = get_logger(__name__)


class RemoteCallWorker(QThread):
    """
    Runs a single callable in a background thread.

    Both signals carry the worker itself first, so one receiver slot can
    serve many workers.

    Signals:
        succeeded: Emitted with (worker, return value).
        failed: Emitted with (worker, exception raised).
    """

    succeeded = Signal(object, object)
    failed = Signal(object, object)

    def __init__(self, name: str, fn: Callable[[], Any]):
        super().__init__()
        self.setObjectName(name)
        self._fn = fn

    def run(self):
        try:
            logger.debug(f"Remote call '{self.objectName()}' started")
            result = self._fn()
        except Exception as e:
            logger.error(f"Remote call '{self.objectName()}' failed: {e}")
            self.failed.emit(self, e)
            return
        self.succeeded.emit(self, result)
