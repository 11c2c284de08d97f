"""
Utility functions and helper classes.
"""

from .logger import Logger, LogLevel, logger, set_log_level, get_logger
from .error_handler import (
    ErrorHandler, ToolValidator, ErrorContext, ErrorType, ErrorSeverity,
    LanDiscoveryError, ConfigurationError, ScanCancelledError
)
from .mac_vendor import MacVendorResolver
from . import network_utils

__all__ = [
    'Logger',
    'LogLevel',
    'logger',
    'set_log_level',
    'get_logger',
    'ErrorHandler',
    'ToolValidator',
    'ErrorContext',
    'ErrorType',
    'ErrorSeverity',
    'LanDiscoveryError',
    'ConfigurationError',
    'ScanCancelledError',
    'MacVendorResolver',
    'network_utils'
]
