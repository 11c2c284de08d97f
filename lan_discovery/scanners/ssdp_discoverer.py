"""
SSDP discoverer for LAN Discovery Module.

Multicasts one M-SEARCH request, collects unicast replies for a fixed window
and fetches each responder's UPnP device description over HTTP.
"""

import socket
import time
import xml.etree.ElementTree as ET
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set
from urllib.parse import urlparse

import requests

from .base_scanner import BaseScanner
from ..core.cancellation import CancellationToken
from ..core.data_models import Device, DiscoveryMethod
from ..utils.error_handler import ErrorSeverity, ErrorType
from ..utils.logger import Logger
from ..utils.network_utils import is_valid_ip

SSDP_ADDRESS = "239.255.255.250"
SSDP_PORT = 1900

# Concurrent description fetches per discovery run
FETCH_WORKERS = 8

M_SEARCH = (
    "M-SEARCH * HTTP/1.1\r\n"
    f"HOST: {SSDP_ADDRESS}:{SSDP_PORT}\r\n"
    'MAN: "ssdp:discover"\r\n'
    "MX: 3\r\n"
    "ST: ssdp:all\r\n"
    "\r\n"
)

SightingCallback = Callable[[Device], None]


def parse_ssdp_headers(response: str) -> Dict[str, str]:
    """
    Parse the header block of an SSDP reply.

    Args:
        response: Decoded datagram (HTTP/1.1 200 OK status line + headers)

    Returns:
        Header mapping with upper-cased names
    """
    headers = {}
    for line in response.splitlines()[1:]:
        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        headers[name.strip().upper()] = value.strip()
    return headers


def parse_device_description(xml_text: str) -> Dict[str, str]:
    """
    Extract friendlyName/modelName/modelDescription from a UPnP description.

    The ``urn:schemas-upnp-org:device-1-0`` namespace is matched by local
    name so descriptions with or without it parse the same way.

    Args:
        xml_text: Device description document

    Returns:
        Mapping with keys name, custom_name, location (possibly empty)

    Raises:
        ET.ParseError: If the document is not well-formed XML
    """
    root = ET.fromstring(xml_text)

    device_element = None
    for element in root.iter():
        if element.tag.rsplit("}", 1)[-1] == "device":
            device_element = element
            break

    def child_text(tag: str) -> str:
        if device_element is None:
            return ""
        for child in device_element:
            if child.tag.rsplit("}", 1)[-1] == tag:
                return (child.text or "").strip()
        return ""

    return {
        "name": child_text("friendlyName"),
        "custom_name": child_text("modelName"),
        "location": child_text("modelDescription"),
    }


class SSDPDiscoverer(BaseScanner):
    """
    Timed SSDP listener that enriches each responder from its description URL.

    A failure for one responder (no LOCATION header, HTTP error, bad XML)
    drops only that responder.
    """

    scanner_type = "SSDP"

    def __init__(
        self,
        logger: Optional[Logger] = None,
        error_handler=None,
        poll_timeout: float = 1.0,
        http_timeout: float = 5.0,
        session: Optional[requests.Session] = None,
        interface_ip: Optional[str] = None,
    ):
        """
        Initialize the SSDP discoverer.

        Args:
            logger: Logger instance
            error_handler: ErrorHandler instance for absorbed failures
            poll_timeout: Seconds each receive waits before re-checking time
            http_timeout: Timeout for fetching device descriptions
            session: requests Session used for description fetches
            interface_ip: Local address to send the M-SEARCH from
        """
        super().__init__(logger, error_handler)
        self.poll_timeout = poll_timeout
        self.http_timeout = http_timeout
        self.session = session or requests.Session()
        self.interface_ip = interface_ip

    def discover(
        self,
        duration: float = 5,
        cancel: Optional[CancellationToken] = None,
        on_sighting: Optional[SightingCallback] = None,
    ) -> List[Device]:
        """
        Search and listen for ``duration`` seconds.

        Args:
            duration: Listening window in seconds
            cancel: Cancellation token checked between reads
            on_sighting: Called with each new sighting as it arrives

        Returns:
            One Device per responding IP whose description could be read
        """
        self._log_info(f"Starting SSDP discovery ({duration}s)")
        self._start_scan_timer()

        sightings: List[Device] = []
        seen: Set[str] = set()
        tried_locations: Set[str] = set()

        try:
            sock = self._open_socket()
        except OSError as e:
            self._record_failure(e, "open_socket", error_type=ErrorType.NETWORK_ERROR, severity=ErrorSeverity.MEDIUM)
            return sightings

        pending: Dict[Future, str] = {}
        executor = ThreadPoolExecutor(max_workers=FETCH_WORKERS)
        try:
            sock.sendto(M_SEARCH.encode("ascii"), (SSDP_ADDRESS, SSDP_PORT))

            deadline = time.monotonic() + duration
            while time.monotonic() < deadline and not self._is_cancelled(cancel):
                self._collect_finished(pending, seen, sightings, on_sighting)
                try:
                    data, (source_ip, _) = sock.recvfrom(65507)
                except socket.timeout:
                    continue

                # A device usually answers once per service type
                if source_ip in seen:
                    continue

                location = self._description_location(data, source_ip, tried_locations)
                if location:
                    future = executor.submit(self._fetch_sighting, location, source_ip, deadline)
                    pending[future] = source_ip

            if not self._is_cancelled(cancel):
                self._collect_finished(pending, seen, sightings, on_sighting)
        except OSError as e:
            self._record_failure(e, "listen", error_type=ErrorType.NETWORK_ERROR, severity=ErrorSeverity.MEDIUM)
        finally:
            sock.close()
            # Fetches still running at the deadline are abandoned
            for future in pending:
                future.cancel()
            executor.shutdown(wait=False)

        self._log_info(
            f"SSDP discovery finished: {len(sightings)} devices in {self._end_scan_timer():.2f}s"
        )
        return sightings

    def _collect_finished(
        self,
        pending: Dict[Future, str],
        seen: Set[str],
        sightings: List[Device],
        on_sighting: Optional[SightingCallback],
    ) -> None:
        """Report the sightings of completed description fetches, in this thread."""
        for future in [f for f in pending if f.done()]:
            source_ip = pending.pop(future)
            sighting = future.result()
            if sighting is None or sighting.ip in seen:
                continue
            seen.add(source_ip)
            seen.add(sighting.ip)
            sightings.append(sighting)
            if on_sighting:
                on_sighting(sighting.copy())

    def _description_location(self, data: bytes, source_ip: str, tried_locations: Set[str]) -> Optional[str]:
        """
        Return the LOCATION of a reply unless it was already fetched.

        Each description URL is fetched at most once per discovery run.
        """
        headers = parse_ssdp_headers(data.decode("utf-8", errors="replace"))
        location = headers.get("LOCATION")
        if not location:
            self._log_debug(f"SSDP reply from {source_ip} has no LOCATION header")
            return None
        if location in tried_locations:
            return None
        tried_locations.add(location)
        return location

    def _fetch_sighting(self, location: str, source_ip: str, deadline: float) -> Optional[Device]:
        """
        Fetch and parse one device description.

        The HTTP timeout never reaches past the end of the listening window.

        Returns:
            Device tagged SSDP, or None if the fetch or the parse failed
        """
        timeout = max(0.1, min(self.http_timeout, deadline - time.monotonic()))
        try:
            response = self.session.get(location, timeout=timeout)
            response.raise_for_status()
            description = parse_device_description(response.text)
        except requests.RequestException as e:
            self._record_failure(e, "fetch_description", source_ip)
            return None
        except ET.ParseError as e:
            self._record_failure(e, "parse_description", source_ip, ErrorType.PARSE_ERROR)
            return None

        # The description URL names the device's own address when it is a literal IP
        host = urlparse(location).hostname
        ip_address = host if host and is_valid_ip(host) else source_ip

        self._log_debug(f"SSDP device {ip_address}: {description['name'] or 'unnamed'}")
        return Device(
            ip=ip_address,
            name=description["name"],
            custom_name=description["custom_name"],
            location=description["location"],
            is_online=True,
            last_seen=datetime.now(),
            discovery_methods={DiscoveryMethod.SSDP},
        )

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, 2)
            if self.interface_ip:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, socket.inet_aton(self.interface_ip))
            sock.bind((self.interface_ip or "", 0))
            sock.settimeout(self.poll_timeout)
        except OSError:
            sock.close()
            raise
        return sock
