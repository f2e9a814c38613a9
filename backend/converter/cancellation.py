"""
Stop flag for a running batch.

Set from the event loop (/api/cancel, a websocket "cancel" message) and read by the coordinator
between files. A file that is already being converted in a worker thread runs to completion.
"""
import logging
import threading
from typing import Optional

from converter.conversion.errors import Cancelled

logger = logging.getLogger("converter.cancellation")


class CancellationToken:
    def __init__(self) -> None:
        self._requested = threading.Event()
        self.source: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._requested.is_set()

    def cancel(self, source: str = "client") -> bool:
        """Request a stop. Returns False if a stop was already requested; the first source is kept."""
        if self._requested.is_set():
            return False
        self.source = source
        self._requested.set()
        return True

    def raise_if_cancelled(self, session_id: str) -> None:
        if self._requested.is_set():
            logger.info("Batch %s stopping (cancelled by %s)", session_id, self.source)
            raise Cancelled(session_id)
