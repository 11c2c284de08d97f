"""
Error taxonomy and centralized error handling for the LAN Discovery Module.

Only two conditions stop a scan session: a ConfigurationError (the selected
interface cannot be scanned) and a cooperative cancellation. Everything else is
a per-unit failure that is logged, counted and skipped.
"""

import platform
import shutil
import threading
from typing import Optional, Any, Dict, List, Tuple
from enum import Enum
from dataclasses import dataclass

from .logger import Logger, get_logger


class ErrorType(Enum):
    """Enumeration for different types of errors."""
    NETWORK_ERROR = "network_error"
    PERMISSION_ERROR = "permission_error"
    TOOL_MISSING_ERROR = "tool_missing_error"
    CONFIGURATION_ERROR = "configuration_error"
    TIMEOUT_ERROR = "timeout_error"
    SUBPROCESS_ERROR = "subprocess_error"
    PARSE_ERROR = "parse_error"


class ErrorSeverity(Enum):
    """Enumeration for error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """
    Context information for error handling.

    Attributes:
        error_type: Type of error that occurred
        severity: Severity level of the error
        operation: Operation that was being performed when error occurred
        component: Component/module where error occurred
        target: Host address the operation was aimed at, if any
        additional_info: Additional context information
    """
    error_type: ErrorType
    severity: ErrorSeverity
    operation: str
    component: str
    target: Optional[str] = None
    additional_info: Dict[str, Any] = None

    def __post_init__(self):
        if self.additional_info is None:
            self.additional_info = {}


class LanDiscoveryError(Exception):
    """Base exception class for LAN Discovery Module."""

    def __init__(self, message: str, error_context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.error_context = error_context


class ConfigurationError(LanDiscoveryError):
    """The selected interface or address input cannot be scanned."""
    pass


class ScanCancelledError(LanDiscoveryError):
    """
    Raised when a scan stops because cancellation was requested.

    Attributes:
        partial_results: Devices gathered before the stop was observed
    """

    def __init__(self, message: str = "Scan cancelled", partial_results: Optional[list] = None):
        super().__init__(message)
        self.partial_results = partial_results or []


class ErrorHandler:
    """
    Centralized handler for absorbed per-unit and per-phase failures.

    Logs each error at a level derived from its severity, keeps per-type
    counters and prints troubleshooting hints for the error types a user can
    act on (missing tools, missing privileges).
    """

    def __init__(self, logger: Optional[Logger] = None):
        """
        Initialize the ErrorHandler.

        Args:
            logger: Logger instance for error reporting
        """
        self.logger = logger or get_logger(__name__)
        self._lock = threading.Lock()
        self.error_statistics: Dict[ErrorType, int] = {error_type: 0 for error_type in ErrorType}
        self._hinted: set = set()

    def handle_error(self, error: Exception, context: ErrorContext) -> None:
        """
        Record and log an error that the caller has decided to absorb.

        Args:
            error: The exception that occurred
            context: Error context information
        """
        tool_name = context.additional_info.get("tool_name", "")
        hint_key = (context.error_type, tool_name)
        with self._lock:
            self.error_statistics[context.error_type] += 1
            first_occurrence = hint_key not in self._hinted
            self._hinted.add(hint_key)

        self._log_error(error, context)

        if not first_occurrence:
            return
        if context.error_type == ErrorType.PERMISSION_ERROR:
            self._suggest_permission_solutions()
        elif context.error_type == ErrorType.TOOL_MISSING_ERROR:
            self._suggest_tool_installation(tool_name)

    def get_statistics(self) -> Dict[str, int]:
        """Return non-zero error counters keyed by error type value."""
        with self._lock:
            return {
                error_type.value: count
                for error_type, count in self.error_statistics.items()
                if count
            }

    def _log_error(self, error: Exception, context: ErrorContext) -> None:
        """
        Log error information with appropriate detail level.

        Args:
            error: The exception that occurred
            context: Error context information
        """
        error_msg = f"Error in {context.component}.{context.operation}: {str(error)}"
        if context.target:
            error_msg += f" (target {context.target})"

        if context.severity == ErrorSeverity.CRITICAL:
            self.logger.error(error_msg, exception=error)
        elif context.severity == ErrorSeverity.HIGH:
            self.logger.error(error_msg)
        elif context.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_msg)
        else:
            self.logger.debug(error_msg)

    def _suggest_permission_solutions(self) -> None:
        self.logger.info("Permission solutions:")
        if platform.system().lower() == "windows":
            self.logger.info("  • Run the terminal as Administrator")
            self.logger.info("  • Install Npcap for the scapy ARP method")
        else:
            self.logger.info("  • Run with sudo: sudo python -m lan_discovery")
            self.logger.info("  • Or use method: ping in arp_config.yml")

    def _suggest_tool_installation(self, tool_name: str) -> None:
        suggestions = {
            "ping": ["Ubuntu/Debian: sudo apt-get install iputils-ping"],
            "ip": ["Ubuntu/Debian: sudo apt-get install iproute2"],
            "arp": ["Ubuntu/Debian: sudo apt-get install net-tools"],
            "nmblookup": ["Ubuntu/Debian: sudo apt-get install samba-common-bin"],
        }
        if tool_name in suggestions:
            self.logger.info(f"Installation suggestions for {tool_name}:")
            for suggestion in suggestions[tool_name]:
                self.logger.info(f"  • {suggestion}")


class ToolValidator:
    """
    Checks for the external commands the ping strategy relies on.

    Missing optional tools only reduce what a scan can learn (no NetBIOS names,
    no neighbor table), so validation reports rather than aborts.
    """

    REQUIRED_TOOLS = {
        "windows": ["ping", "arp"],
        "default": ["ping"],
    }

    OPTIONAL_TOOLS = {
        "windows": ["nbtstat"],
        "default": ["ip", "arp", "nmblookup"],
    }

    def __init__(self, error_handler: ErrorHandler):
        """
        Initialize the ToolValidator.

        Args:
            error_handler: ErrorHandler used to report missing tools
        """
        self.error_handler = error_handler
        self.logger = error_handler.logger
        system = platform.system().lower()
        self._key = "windows" if system == "windows" else "default"

    def validate_all_tools(self) -> Tuple[bool, List[str]]:
        """
        Check required and optional tools.

        Returns:
            Tuple of (all required tools present, list of missing tool names)
        """
        missing = []
        required_ok = True

        for tool in self.REQUIRED_TOOLS[self._key]:
            if not self.validate_tool(tool):
                missing.append(tool)
                required_ok = False

        for tool in self.OPTIONAL_TOOLS[self._key]:
            if not self.validate_tool(tool, required=False):
                missing.append(tool)

        return required_ok, missing

    def validate_tool(self, tool_name: str, required: bool = True) -> bool:
        """
        Check whether a tool is on PATH.

        Args:
            tool_name: Command name
            required: Whether a missing tool is reported as an error

        Returns:
            True if the tool was found
        """
        tool_path = shutil.which(tool_name)
        if tool_path:
            self.logger.debug(f"Found {tool_name} at: {tool_path}")
            return True

        context = ErrorContext(
            error_type=ErrorType.TOOL_MISSING_ERROR,
            severity=ErrorSeverity.HIGH if required else ErrorSeverity.LOW,
            operation="validate_tool",
            component="ToolValidator",
            additional_info={"tool_name": tool_name},
        )
        self.error_handler.handle_error(
            LanDiscoveryError(f"Tool '{tool_name}' not found in PATH"), context
        )
        return False
