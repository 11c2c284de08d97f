"""
Network helper functions shared by the scanners.

IPv4 validation, MAC address normalization and reverse DNS lookups.
"""

import ipaddress
import re
import socket
from typing import Optional

_MAC_SEPARATORS = re.compile(r"[:\-\.\s]")
_HEX_MAC = re.compile(r"^[0-9A-F]{12}$")

# Neighbor-table placeholders that never identify a real device
_IGNORED_MACS = {"000000000000", "FFFFFFFFFFFF"}


def is_valid_ip(ip_address: str) -> bool:
    """
    Check if a string represents a valid IPv4 address.

    Args:
        ip_address: String to validate as IPv4 address

    Returns:
        bool: True if valid IPv4 address, False otherwise
    """
    try:
        ipaddress.IPv4Address(ip_address)
        return True
    except (ipaddress.AddressValueError, ValueError):
        return False


def normalize_mac(mac: Optional[str]) -> str:
    """
    Normalize a MAC address to uppercase hex with no separators.

    ``aa:bb:cc:dd:ee:01``, ``AA-BB-CC-DD-EE-01`` and ``aabb.ccdd.ee01`` all
    become ``AABBCCDDEE01``. Anything that is not twelve hex digits after
    stripping separators normalizes to an empty string.

    Args:
        mac: MAC address in any common notation

    Returns:
        str: Normalized MAC or "" if the input is not a MAC address
    """
    if not mac:
        return ""
    candidate = _MAC_SEPARATORS.sub("", mac.strip()).upper()
    # Windows and some BSD tools print single-digit octets without padding
    if len(candidate) != 12 and re.fullmatch(r"([0-9A-Fa-f]{1,2}[:\-]){5}[0-9A-Fa-f]{1,2}", mac.strip()):
        candidate = "".join(part.zfill(2) for part in re.split(r"[:\-]", mac.strip())).upper()
    return candidate if _HEX_MAC.match(candidate) else ""


def is_usable_mac(mac: Optional[str]) -> bool:
    """True for a well-formed unicast MAC that is not a placeholder."""
    normalized = normalize_mac(mac)
    if not normalized or normalized in _IGNORED_MACS:
        return False
    # Multicast bit set in the first octet
    return not int(normalized[:2], 16) & 0x01


def format_mac(mac: str, separator: str = ":") -> str:
    """
    Render a MAC address in grouped notation.

    Args:
        mac: MAC address in any notation accepted by normalize_mac
        separator: Separator placed between octets

    Returns:
        str: Grouped MAC (e.g. ``AA:BB:CC:DD:EE:01``) or "" if invalid
    """
    normalized = normalize_mac(mac)
    if not normalized:
        return ""
    return separator.join(normalized[i:i + 2] for i in range(0, 12, 2))


def reverse_dns(ip_address: str) -> Optional[str]:
    """
    Attempt to resolve an IP address to a hostname.

    Args:
        ip_address: IP address to resolve

    Returns:
        Optional[str]: Hostname if resolution succeeded and did not just echo
        the address back, None otherwise
    """
    try:
        hostname = socket.gethostbyaddr(ip_address)[0]
    except (socket.herror, socket.gaierror, socket.timeout, OSError):
        return None
    if not hostname or hostname == ip_address:
        return None
    return hostname
