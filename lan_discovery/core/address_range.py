"""
Candidate host address computation for an interface address and mask.
"""

import ipaddress
from typing import List

from ..utils.error_handler import ConfigurationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _parse(ip_address: str, netmask: str) -> ipaddress.IPv4Network:
    try:
        return ipaddress.IPv4Network(f"{ip_address}/{netmask}", strict=False)
    except (ipaddress.AddressValueError, ipaddress.NetmaskValueError, ValueError) as e:
        raise ConfigurationError(f"Invalid interface address {ip_address}/{netmask}: {e}")


def calculate_address_range(ip_address: str, netmask: str) -> List[str]:
    """
    Compute the ordered host addresses between network and broadcast address.

    Network address is ``address AND mask``, broadcast is ``address OR NOT
    mask``; both are excluded. Only the last octet is varied: the first three
    octets come from the network address and the last runs from the network's
    last octet + 1 to the broadcast's last octet - 1. Masks wider than /24
    therefore cover only the first /24 slice of the subnet (a known
    limitation, logged as a warning).

    Args:
        ip_address: Interface IPv4 address, e.g. "192.168.1.10"
        netmask: Dotted mask ("255.255.255.0") or prefix length ("24")

    Returns:
        List[str]: Host addresses, e.g. 192.168.1.1 ... 192.168.1.254

    Raises:
        ConfigurationError: If the address or mask cannot be parsed
    """
    network = _parse(ip_address, netmask)

    network_octets = network.network_address.packed
    broadcast_octets = network.broadcast_address.packed
    prefix = ".".join(str(octet) for octet in network_octets[:3])

    if network.prefixlen < 24:
        logger.warning(
            f"Subnet {network} is wider than /24; only the last octet is enumerated "
            f"({prefix}.x), remaining hosts are not probed"
        )

    return [
        f"{prefix}.{last}"
        for last in range(network_octets[3] + 1, broadcast_octets[3])
    ]
