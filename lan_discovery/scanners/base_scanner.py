"""
Base scanner for LAN Discovery Module.

Every discovery technique (ARP, SNMP, mDNS, SSDP) shares the same plumbing:
optional logging, timing of a scan run, absorbing per-unit failures through the
ErrorHandler and polling a cancellation token between units of work.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from ..core.cancellation import CancellationToken
from ..utils.error_handler import ErrorContext, ErrorHandler, ErrorSeverity, ErrorType
from ..utils.logger import Logger


class BaseScanner:
    """
    Common plumbing for all discovery scanners.

    Subclasses define their own public entry point (``scan``, ``probe`` or
    ``discover``) because the techniques take different inputs; what they
    share is how they log, time themselves and report absorbed failures.
    """

    scanner_type = "BASE"

    def __init__(self, logger: Optional[Logger] = None, error_handler: Optional[ErrorHandler] = None):
        """
        Initialize the base scanner.

        Args:
            logger: Logger instance for outputting scan progress and errors
            error_handler: ErrorHandler receiving absorbed per-unit failures
        """
        self.logger = logger
        self.error_handler = error_handler
        self.scan_start_time: Optional[datetime] = None
        self.scan_end_time: Optional[datetime] = None

    def _start_scan_timer(self) -> None:
        """Start the scan timing measurement."""
        self.scan_start_time = datetime.now()

    def _end_scan_timer(self) -> float:
        """
        End the scan timing measurement and return duration.

        Returns:
            Scan duration in seconds as a float
        """
        self.scan_end_time = datetime.now()
        if self.scan_start_time:
            return (self.scan_end_time - self.scan_start_time).total_seconds()
        return 0.0

    @staticmethod
    def _is_cancelled(cancel: Optional[CancellationToken]) -> bool:
        return cancel is not None and cancel.is_cancelled

    def _record_failure(
        self,
        error: Exception,
        operation: str,
        target: Optional[str] = None,
        error_type: ErrorType = ErrorType.NETWORK_ERROR,
        severity: ErrorSeverity = ErrorSeverity.LOW,
        additional_info: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Report an absorbed per-unit failure.

        Goes to the ErrorHandler when one is attached, otherwise to the debug
        log, so failures are never silently dropped.
        """
        if self.error_handler:
            context = ErrorContext(
                error_type=error_type,
                severity=severity,
                operation=operation,
                component=type(self).__name__,
                target=target,
                additional_info=additional_info,
            )
            self.error_handler.handle_error(error, context)
        else:
            suffix = f" for {target}" if target else ""
            self._log_debug(f"{self.scanner_type} {operation} failed{suffix}: {error}")

    def _log_info(self, message: str) -> None:
        """Log an info message if logger is available."""
        if self.logger:
            self.logger.info(message)

    def _log_warning(self, message: str) -> None:
        """Log a warning message if logger is available."""
        if self.logger:
            self.logger.warning(message)

    def _log_error(self, message: str) -> None:
        """Log an error message if logger is available."""
        if self.logger:
            self.logger.error(message)

    def _log_debug(self, message: str) -> None:
        """Log a debug message if logger is available."""
        if self.logger:
            self.logger.debug(message)
