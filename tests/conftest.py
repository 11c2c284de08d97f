"""Shared fixtures for the lan_discovery test suite."""

from datetime import datetime
from unittest.mock import Mock

import pytest

from lan_discovery.core.data_models import Device, DiscoveryMethod, InterfaceInfo
from lan_discovery.utils.error_handler import ErrorHandler
from lan_discovery.utils.logger import Logger


@pytest.fixture
def mock_logger():
    return Mock(spec=Logger)


@pytest.fixture
def error_handler(mock_logger):
    return ErrorHandler(mock_logger)


@pytest.fixture
def interface():
    return InterfaceInfo(name="eth0", ip_address="10.0.0.5", netmask="255.255.255.0")


def make_device(ip, mac="", name="", method=DiscoveryMethod.ARP, **kwargs):
    """Build a single-source sighting."""
    return Device(
        ip=ip,
        mac=mac,
        name=name,
        last_seen=kwargs.pop("last_seen", datetime(2024, 1, 1, 12, 0, 0)),
        discovery_methods={method},
        **kwargs,
    )
