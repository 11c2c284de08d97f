"""
Core components for LAN discovery functionality.
"""

from .data_models import (
    DiscoveryMethod,
    ScanState,
    InterfaceInfo,
    Device,
    ScanSession
)
from .address_range import calculate_address_range
from .cancellation import CancellationToken
from .device_registry import DeviceRegistry

__all__ = [
    'DiscoveryMethod',
    'ScanState',
    'InterfaceInfo',
    'Device',
    'ScanSession',
    'calculate_address_range',
    'CancellationToken',
    'DeviceRegistry'
]
