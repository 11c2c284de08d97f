"""
mDNS discoverer for LAN Discovery Module.

Sends one DNS-SD service enumeration query to the mDNS multicast group and
treats every host that answers as present. Reply payloads are not parsed.
"""

import socket
import struct
import time
from datetime import datetime
from typing import Callable, List, Optional, Set

from .base_scanner import BaseScanner
from ..core.cancellation import CancellationToken
from ..core.data_models import Device, DiscoveryMethod
from ..utils.error_handler import ErrorSeverity, ErrorType
from ..utils.logger import Logger
from ..utils.network_utils import reverse_dns

MDNS_ADDRESS = "224.0.0.251"
MDNS_PORT = 5353

SERVICE_ENUMERATION_NAME = "_services._dns-sd._udp.local"
DNS_TYPE_PTR = 12
DNS_CLASS_IN = 1

SightingCallback = Callable[[Device], None]


def build_query(name: str = SERVICE_ENUMERATION_NAME, qtype: int = DNS_TYPE_PTR) -> bytes:
    """
    Build a one-question DNS query message.

    Args:
        name: Fully qualified query name
        qtype: Record type (PTR for service enumeration)

    Returns:
        bytes: Wire-format DNS message with ID 0 and no flags
    """
    header = struct.pack("!6H", 0, 0, 1, 0, 0, 0)
    question = b"".join(
        bytes([len(label)]) + label.encode("ascii") for label in name.split(".")
    )
    return header + question + b"\x00" + struct.pack("!2H", qtype, DNS_CLASS_IN)


class MDNSDiscoverer(BaseScanner):
    """
    Timed multicast listener for mDNS responders.

    Any datagram that reaches the query socket during the listening window
    counts as a sighting of its source address.
    """

    scanner_type = "mDNS"

    def __init__(
        self,
        logger: Optional[Logger] = None,
        error_handler=None,
        poll_timeout: float = 1.0,
        interface_ip: Optional[str] = None,
    ):
        """
        Initialize the mDNS discoverer.

        Args:
            logger: Logger instance
            error_handler: ErrorHandler instance for absorbed failures
            poll_timeout: Seconds each receive waits before re-checking time
            interface_ip: Local address to send the multicast query from
        """
        super().__init__(logger, error_handler)
        self.poll_timeout = poll_timeout
        self.interface_ip = interface_ip

    def discover(
        self,
        duration: float = 5,
        cancel: Optional[CancellationToken] = None,
        on_sighting: Optional[SightingCallback] = None,
    ) -> List[Device]:
        """
        Query and listen for ``duration`` seconds.

        Args:
            duration: Listening window in seconds
            cancel: Cancellation token checked between reads
            on_sighting: Called with each new sighting as it arrives

        Returns:
            One Device per distinct responding IP, tagged mDNS
        """
        self._log_info(f"Starting mDNS discovery ({duration}s)")
        self._start_scan_timer()

        sightings: List[Device] = []
        seen: Set[str] = set()

        try:
            sock = self._open_socket()
        except OSError as e:
            self._record_failure(e, "open_socket", error_type=ErrorType.NETWORK_ERROR, severity=ErrorSeverity.MEDIUM)
            return sightings

        try:
            sock.sendto(build_query(), (MDNS_ADDRESS, MDNS_PORT))

            deadline = time.monotonic() + duration
            while time.monotonic() < deadline and not self._is_cancelled(cancel):
                try:
                    _, (source_ip, _) = sock.recvfrom(9000)
                except socket.timeout:
                    continue

                if source_ip in seen:
                    continue
                seen.add(source_ip)

                sighting = self._create_sighting(source_ip)
                sightings.append(sighting)
                if on_sighting:
                    on_sighting(sighting.copy())
        except OSError as e:
            self._record_failure(e, "listen", error_type=ErrorType.NETWORK_ERROR, severity=ErrorSeverity.MEDIUM)
        finally:
            self._close_socket(sock)

        self._log_info(
            f"mDNS discovery finished: {len(sightings)} responders in {self._end_scan_timer():.2f}s"
        )
        return sightings

    def _create_sighting(self, ip_address: str) -> Device:
        return Device(
            ip=ip_address,
            name=reverse_dns(ip_address) or f"mDNS Device ({ip_address})",
            is_online=True,
            last_seen=datetime.now(),
            discovery_methods={DiscoveryMethod.MDNS},
        )

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", 0))
            local_ip = self.interface_ip or "0.0.0.0"
            membership = socket.inet_aton(MDNS_ADDRESS) + socket.inet_aton(local_ip)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, membership)
            if self.interface_ip:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(self.interface_ip))
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 255)
            sock.settimeout(self.poll_timeout)
        except OSError:
            sock.close()
            raise
        return sock

    def _close_socket(self, sock: socket.socket) -> None:
        local_ip = self.interface_ip or "0.0.0.0"
        try:
            sock.setsockopt(
                socket.IPPROTO_IP,
                socket.IP_DROP_MEMBERSHIP,
                socket.inet_aton(MDNS_ADDRESS) + socket.inet_aton(local_ip),
            )
        except OSError as e:
            self._log_debug(f"mDNS drop membership failed: {e}")
        finally:
            sock.close()
