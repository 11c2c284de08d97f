"""
Local interface enumeration for choosing what to scan.

This module provides the NetworkDetector class, which lists the host's up
IPv4 interfaces through psutil and picks a sensible default when the caller
does not name one.
"""

import ipaddress
import socket
from typing import List, Optional

import psutil

from .data_models import InterfaceInfo
from ..utils.error_handler import ConfigurationError
from ..utils.logger import Logger, get_logger
from ..utils.network_utils import normalize_mac

# Interface names that are usually virtual adapters rather than the LAN
VIRTUAL_KEYWORDS = (
    "virtualbox", "vmware", "hyper-v", "docker", "vethernet", "veth",
    "br-", "virbr", "teredo", "isatap", "bluetooth", "tailscale", "zerotier",
)


class NetworkDetector:
    """
    Enumerates scan-capable interfaces.

    An interface qualifies when the OS reports it up and it carries a
    non-loopback, non-link-local IPv4 address with a netmask.
    """

    def __init__(self, logger: Optional[Logger] = None):
        """Initialize the NetworkDetector."""
        self.logger = logger or get_logger(__name__)

    def list_interfaces(self) -> List[InterfaceInfo]:
        """
        List the up IPv4 interfaces of this host.

        Returns:
            List[InterfaceInfo]: One entry per interface, in OS order
        """
        stats = psutil.net_if_stats()
        interfaces = []

        for name, addresses in psutil.net_if_addrs().items():
            if name in stats and not stats[name].isup:
                continue

            ipv4 = None
            mac = None
            for address in addresses:
                if address.family == socket.AF_INET and self._is_usable_ip(address.address):
                    ipv4 = ipv4 or address
                elif address.family == psutil.AF_LINK:
                    mac = normalize_mac(address.address) or None

            if ipv4 is None or not ipv4.netmask:
                continue

            interfaces.append(InterfaceInfo(
                name=name,
                ip_address=ipv4.address,
                netmask=ipv4.netmask,
                mac_address=mac,
                is_up=True,
            ))

        self.logger.debug(f"Usable interfaces: {[i.name for i in interfaces]}")
        return interfaces

    def get_interface(self, name: Optional[str] = None) -> InterfaceInfo:
        """
        Select an interface by name, or the default one.

        Args:
            name: Interface name; None picks the default interface

        Returns:
            InterfaceInfo: The selected interface

        Raises:
            ConfigurationError: If the named interface does not exist or is
                not usable, or if no usable interface exists at all
        """
        interfaces = self.list_interfaces()

        if name:
            for interface in interfaces:
                if interface.name == name:
                    return interface
            raise ConfigurationError(
                f"Interface '{name}' not found or has no usable IPv4 address"
            )

        if not interfaces:
            raise ConfigurationError("No up interface with an IPv4 address was found")

        selected = self._select_default(interfaces)
        self.logger.info(f"Selected interface: {selected.name} - IP: {selected.ip_address}")
        return selected

    def _select_default(self, interfaces: List[InterfaceInfo]) -> InterfaceInfo:
        """Prefer the interface carrying the default route, then a non-virtual one."""
        route_ip = self._get_default_route_ip()
        if route_ip:
            for interface in interfaces:
                if interface.ip_address == route_ip:
                    return interface

        for interface in interfaces:
            if not any(keyword in interface.name.lower() for keyword in VIRTUAL_KEYWORDS):
                return interface
        return interfaces[0]

    def _get_default_route_ip(self) -> Optional[str]:
        """
        Local address the OS would use for outbound traffic.

        Connecting a UDP socket sends nothing; it only selects a route.
        """
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect(("8.8.8.8", 80))
                return s.getsockname()[0]
        except OSError as e:
            self.logger.debug(f"Default route lookup failed: {e}")
            return None

    @staticmethod
    def _is_usable_ip(ip: str) -> bool:
        try:
            address = ipaddress.IPv4Address(ip)
        except ipaddress.AddressValueError:
            return False
        return not (address.is_loopback or address.is_link_local or address.is_multicast)
