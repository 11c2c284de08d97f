"""
Hostname resolution chain used by the ARP phase.

Reverse DNS first, then a NetBIOS node status query (``nbtstat -A`` on
Windows, ``nmblookup -A`` elsewhere), then a synthesized placeholder name.
"""

import platform
import re
import subprocess
from typing import Optional

from .base_scanner import BaseScanner
from ..utils.error_handler import ErrorType
from ..utils.logger import Logger
from ..utils.network_utils import reverse_dns

# Workstation service record (<00>) in nbtstat / nmblookup node status output
NETBIOS_NAME_PATTERN = re.compile(r"(\S+)\s+<00>")

NETBIOS_TIMEOUT = 5


def unknown_device_name(ip_address: str) -> str:
    return f"Unknown Device ({ip_address})"


class HostnameResolver(BaseScanner):
    """Resolves a display name for an IPv4 address."""

    scanner_type = "HOSTNAME"

    def __init__(self, logger: Optional[Logger] = None, error_handler=None, use_netbios: bool = True):
        """
        Initialize the resolver.

        Args:
            logger: Logger instance
            error_handler: ErrorHandler receiving absorbed lookup failures
            use_netbios: Whether to fall back to NetBIOS name queries
        """
        super().__init__(logger, error_handler)
        self.use_netbios = use_netbios
        self._system = platform.system().lower()
        self._netbios_available = True

    def resolve(self, ip_address: str) -> str:
        """
        Resolve a name for ``ip_address``; never fails.

        Returns:
            Hostname, NetBIOS name, or "Unknown Device (ip)"
        """
        hostname = reverse_dns(ip_address)
        if hostname:
            self._log_debug(f"Reverse DNS: {ip_address} -> {hostname}")
            return hostname

        if self.use_netbios:
            netbios_name = self.query_netbios(ip_address)
            if netbios_name:
                self._log_debug(f"NetBIOS: {ip_address} -> {netbios_name}")
                return netbios_name

        return unknown_device_name(ip_address)

    def query_netbios(self, ip_address: str) -> Optional[str]:
        """
        Ask the host for its NetBIOS workstation name.

        Args:
            ip_address: Target address

        Returns:
            The first ``<00>`` name in the node status output, or None
        """
        if not self._netbios_available:
            return None

        if self._system == "windows":
            cmd = ["nbtstat", "-A", ip_address]
        else:
            cmd = ["nmblookup", "-A", ip_address]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=NETBIOS_TIMEOUT,
            )
        except FileNotFoundError as e:
            # Not installed; stop trying for the rest of the run
            self._netbios_available = False
            self._record_failure(
                e, "netbios_lookup", ip_address, ErrorType.TOOL_MISSING_ERROR,
                additional_info={"tool_name": cmd[0]},
            )
            return None
        except (subprocess.TimeoutExpired, OSError) as e:
            self._record_failure(e, "netbios_lookup", ip_address, ErrorType.TIMEOUT_ERROR)
            return None

        return parse_netbios_name(result.stdout)


def parse_netbios_name(output: str) -> Optional[str]:
    """
    Extract the workstation name from node status output.

    Args:
        output: stdout of nbtstat -A / nmblookup -A

    Returns:
        The name or None when no ``<00>`` record is listed
    """
    if not output:
        return None
    match = NETBIOS_NAME_PATTERN.search(output)
    return match.group(1) if match else None
