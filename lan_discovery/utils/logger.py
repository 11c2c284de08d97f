"""
Colored console logging for LAN discovery operations.

This module provides a Logger class built on colorama with distinct colors per
log level, section headers and simple table output. Scanners
log from many worker threads at once, so every write goes through a single
module-level lock to keep lines from interleaving.
"""

import sys
import threading
from datetime import datetime
from enum import Enum
from typing import List, Optional
from colorama import Fore, Style, init

# Initialize colorama for cross-platform colored output
init(autoreset=True)

_output_lock = threading.Lock()


class LogLevel(Enum):
    """Enumeration for different log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
}

# Minimum level shared by every logger that was not given an explicit level
_global_min_level = LogLevel.INFO


class Logger:
    """
    Logger with colored console output and table rendering.

    Instances created without an explicit ``min_level`` follow the global
    level configured through :func:`set_log_level`, so ``--verbose`` reaches
    loggers that were created before the flag was parsed.
    """

    LEVEL_COLORS = {
        LogLevel.DEBUG: Fore.CYAN,
        LogLevel.INFO: Fore.GREEN,
        LogLevel.WARNING: Fore.YELLOW,
        LogLevel.ERROR: Fore.RED,
    }

    LEVEL_SYMBOLS = {
        LogLevel.DEBUG: "🔍",
        LogLevel.INFO: "ℹ️",
        LogLevel.WARNING: "⚠️",
        LogLevel.ERROR: "❌",
    }

    def __init__(self, name: str = "LanDiscovery", min_level: Optional[LogLevel] = None):
        """
        Initialize the Logger.

        Args:
            name: Name of the logger, shown in debug output
            min_level: Minimum log level to display (default: follow global level)
        """
        self.name = name
        self._min_level = min_level

    @property
    def min_level(self) -> LogLevel:
        """Effective minimum level for this logger."""
        return self._min_level or _global_min_level

    @min_level.setter
    def min_level(self, level: LogLevel) -> None:
        self._min_level = level

    def _should_log(self, level: LogLevel) -> bool:
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self.min_level]

    def _format_timestamp(self) -> str:
        return datetime.now().strftime("%H:%M:%S")

    def _emit(self, text: str, error: bool = False) -> None:
        with _output_lock:
            print(text, file=sys.stderr if error else sys.stdout, flush=True)

    def _log(self, level: LogLevel, message: str, **kwargs) -> None:
        """
        Format and print one log line.

        Args:
            level: Log level
            message: Message to log
            **kwargs: Extra context rendered as ``key=value`` pairs
        """
        if not self._should_log(level):
            return

        timestamp = self._format_timestamp()
        color = self.LEVEL_COLORS[level]
        symbol = self.LEVEL_SYMBOLS[level]

        formatted_message = (
            f"{Style.DIM}[{timestamp}]{Style.RESET_ALL} "
            f"{color}{symbol} {level.value:<7}{Style.RESET_ALL} "
        )
        if level == LogLevel.DEBUG:
            formatted_message += f"{Style.DIM}{self.name}:{Style.RESET_ALL} "
        formatted_message += message

        if kwargs:
            details = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
            formatted_message += f" {Style.DIM}({details}){Style.RESET_ALL}"

        self._emit(formatted_message, error=level == LogLevel.ERROR)

    def debug(self, message: str, **kwargs) -> None:
        """Log a debug message."""
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log a warning message."""
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(
        self, message: str, exception: Optional[Exception] = None, **kwargs
    ) -> None:
        """
        Log an error message.

        Args:
            message: Error message
            exception: Optional exception object for additional context
            **kwargs: Additional context information
        """
        if exception:
            kwargs["exception"] = f"{type(exception).__name__}: {str(exception)}"
        self._log(LogLevel.ERROR, message, **kwargs)

    def success(self, message: str, **kwargs) -> None:
        """
        Log a success message (INFO level with its own styling).

        Args:
            message: Success message
            **kwargs: Additional context information
        """
        if not self._should_log(LogLevel.INFO):
            return

        timestamp = self._format_timestamp()
        formatted_message = (
            f"{Style.DIM}[{timestamp}]{Style.RESET_ALL} "
            f"{Fore.GREEN}✅ SUCCESS {Style.RESET_ALL} "
            f"{Style.BRIGHT}{message}{Style.RESET_ALL}"
        )

        if kwargs:
            details = " | ".join([f"{k}={v}" for k, v in kwargs.items()])
            formatted_message += f" {Style.DIM}({details}){Style.RESET_ALL}"

        self._emit(formatted_message)

    def section(self, title: str) -> None:
        """
        Print a section header for organizing output.

        Args:
            title: Section title
        """
        if not self._should_log(LogLevel.INFO):
            return

        separator = "=" * 60
        self._emit(
            f"\n{Fore.BLUE}{Style.BRIGHT}{separator}\n"
            f"  {title.upper()}\n"
            f"{separator}{Style.RESET_ALL}\n"
        )

    def table_header(self, headers: List[str], widths: List[int]) -> None:
        """
        Print a formatted table header.

        Args:
            headers: List of header names
            widths: List of column widths
        """
        if not self._should_log(LogLevel.INFO):
            return

        header_row = " | ".join(
            [f"{header:<{width}}" for header, width in zip(headers, widths)]
        )
        separator = "-+-".join(["-" * width for width in widths])
        self._emit(
            f"{Style.BRIGHT}{header_row}{Style.RESET_ALL}\n"
            f"{Style.DIM}{separator}{Style.RESET_ALL}"
        )

    def table_row(self, values: List[str], widths: List[int]) -> None:
        """
        Print a formatted table row, truncating values to their column width.

        Args:
            values: List of values to display
            widths: List of column widths
        """
        if not self._should_log(LogLevel.INFO):
            return

        row = " | ".join(
            [f"{str(value)[:width]:<{width}}" for value, width in zip(values, widths)]
        )

        self._emit(row)

    def network_info(self, interface: str, host_ip: str, netmask: str, range_size: int) -> None:
        """
        Display the interface being scanned.

        Args:
            interface: Interface name
            host_ip: Interface IPv4 address
            netmask: Interface subnet mask
            range_size: Number of candidate host addresses
        """
        if not self._should_log(LogLevel.INFO):
            return

        self._emit(
            f"\n{Fore.CYAN}{Style.BRIGHT}🌐 NETWORK CONFIGURATION{Style.RESET_ALL}\n"
            f"  Interface:     {Style.BRIGHT}{interface}{Style.RESET_ALL}\n"
            f"  Host IP:       {Style.BRIGHT}{host_ip}{Style.RESET_ALL}\n"
            f"  Netmask:       {Style.BRIGHT}{netmask}{Style.RESET_ALL}\n"
            f"  Candidates:    {Style.BRIGHT}{range_size}{Style.RESET_ALL}\n"
        )


# Global logger instance
logger = Logger()


def set_log_level(level: LogLevel) -> None:
    """
    Set the global log level.

    Args:
        level: Minimum log level to display
    """
    global _global_min_level
    _global_min_level = level


def get_logger(name: str = "LanDiscovery") -> Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name

    Returns:
        Logger instance following the global log level
    """
    return Logger(name)
