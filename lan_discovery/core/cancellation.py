"""
Cooperative cancellation signal shared between a caller and a running scan.
"""

import threading
from typing import Optional

from ..utils.error_handler import ScanCancelledError


class CancellationToken:
    """
    Caller-owned stop flag polled by scanners at well-defined points.

    Nothing is interrupted preemptively: scanners check the token before each
    unit of work and let in-flight operations finish within their timeouts.
    """

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Cancellation requested") -> None:
        """Signal every holder of this token to stop issuing new work."""
        if not self._event.is_set():
            self.reason = reason
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, partial_results: Optional[list] = None) -> None:
        """
        Raise ScanCancelledError if cancellation was requested.

        Args:
            partial_results: Results gathered so far, attached to the error
        """
        if self._event.is_set():
            raise ScanCancelledError(self.reason or "Scan cancelled", partial_results)

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation."""
        return self._event.wait(timeout)
