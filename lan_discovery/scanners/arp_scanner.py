"""
ARP Scanner implementation for LAN Discovery Module.

Discovers live hosts on the interface's subnet with a parallel ICMP sweep,
then harvests the OS neighbor (ARP) table for hardware addresses, including
hosts that ignore ping but answered ARP, and finally resolves names.
"""

import platform
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .base_scanner import BaseScanner
from .hostname_resolver import HostnameResolver
from ..config.config_loader import ARPConfig
from ..core.address_range import calculate_address_range
from ..core.cancellation import CancellationToken
from ..core.data_models import Device, DiscoveryMethod, InterfaceInfo
from ..utils.error_handler import ErrorSeverity, ErrorType, ScanCancelledError
from ..utils.logger import Logger
from ..utils.network_utils import is_usable_mac, is_valid_ip, normalize_mac

DeviceCallback = Callable[[Device], None]

NEIGHBOR_TABLE_TIMEOUT = 10


class ARPScanner(BaseScanner):
    """
    Ping sweep + neighbor table scanner.

    ``scan`` follows the same five steps for every strategy: resolve the
    interface, compute candidates, find live hosts, merge the neighbor table,
    resolve missing names. Subclasses replace only the live-host step.
    """

    scanner_type = "ARP"

    def __init__(
        self,
        config: Optional[ARPConfig] = None,
        logger: Optional[Logger] = None,
        error_handler=None,
        hostname_resolver: Optional[HostnameResolver] = None,
    ):
        """
        Initialize the ARP scanner.

        Args:
            config: ARP configuration (defaults to ARPConfig())
            logger: Logger instance for outputting scan progress and errors
            error_handler: ErrorHandler instance for absorbed per-host failures
            hostname_resolver: Name resolution chain (built from config if omitted)
        """
        super().__init__(logger, error_handler)
        self.config = config or ARPConfig()
        self.hostname_resolver = hostname_resolver or HostnameResolver(
            logger, error_handler, use_netbios=self.config.resolve_netbios
        )
        self._lock = threading.Lock()
        self._system = platform.system().lower()
        self._ping_available = True

    def scan(
        self,
        interface: InterfaceInfo,
        cancel: Optional[CancellationToken] = None,
        on_device: Optional[DeviceCallback] = None,
    ) -> List[Device]:
        """
        Discover devices on the subnet of ``interface``.

        Args:
            interface: Interface to scan from
            cancel: Cancellation token checked before each unit of work
            on_device: Called with a snapshot of every live host as it is found

        Returns:
            List of Devices tagged with DiscoveryMethod.ARP

        Raises:
            ConfigurationError: If the interface lacks an IPv4 address or mask
            ScanCancelledError: If cancellation was requested; carries the
                devices found so far
        """
        host_ip, netmask = interface.ipv4_config()
        targets = calculate_address_range(host_ip, netmask)

        self._log_info(
            f"Starting ARP scan of {len(targets)} addresses on {interface.name} "
            f"using {self.config.method} method"
        )
        self._start_scan_timer()

        devices: Dict[str, Device] = {}

        self._discover_live_hosts(targets, devices, cancel, on_device)
        self._check_cancel(cancel, devices)

        self._merge_neighbor_table(targets, devices)
        self._check_cancel(cancel, devices)

        self._resolve_missing_names(devices, cancel)
        self._check_cancel(cancel, devices)

        scan_duration = self._end_scan_timer()
        with_mac = sum(1 for d in devices.values() if d.mac)
        self._log_info(
            f"ARP scan completed. Found {len(devices)} devices "
            f"({with_mac} with MAC) in {scan_duration:.2f} seconds"
        )
        return self._ordered(devices)

    def _check_cancel(self, cancel: Optional[CancellationToken], devices: Dict[str, Device]) -> None:
        if self._is_cancelled(cancel):
            self._log_warning(f"ARP scan cancelled with {len(devices)} devices found")
            raise ScanCancelledError(
                cancel.reason or "ARP scan cancelled", self._ordered(devices)
            )

    def _ordered(self, devices: Dict[str, Device]) -> List[Device]:
        with self._lock:
            snapshot = [device.copy() for device in devices.values()]
        return sorted(snapshot, key=lambda d: tuple(int(p) for p in d.ip.split(".")))

    def _new_device(self, ip_address: str, mac: str = "", name: str = "") -> Device:
        return Device(
            ip=ip_address,
            mac=normalize_mac(mac),
            name=name,
            is_online=True,
            last_seen=datetime.now(),
            discovery_methods={DiscoveryMethod.ARP},
        )

    def _discover_live_hosts(
        self,
        targets: List[str],
        devices: Dict[str, Device],
        cancel: Optional[CancellationToken],
        on_device: Optional[DeviceCallback],
    ) -> None:
        """
        Ping every target in parallel and record responders.

        Args:
            targets: Candidate addresses
            devices: Result map (ip -> Device) updated in place
            cancel: Cancellation token
            on_device: Live-host callback
        """
        with ThreadPoolExecutor(max_workers=self.config.parallel_threads) as executor:
            future_to_target = {
                executor.submit(self._probe_host, target, cancel): target
                for target in targets
            }

            for future in as_completed(future_to_target):
                target = future_to_target[future]
                if self._is_cancelled(cancel):
                    for pending in future_to_target:
                        pending.cancel()
                try:
                    device = future.result()
                except Exception as e:
                    self._record_failure(e, "ping", target)
                    continue
                if device is None:
                    continue

                with self._lock:
                    devices[device.ip] = device
                if on_device:
                    on_device(device.copy())

        self._log_info(f"Ping sweep finished: {len(devices)} hosts responded")

    def _probe_host(self, target: str, cancel: Optional[CancellationToken]) -> Optional[Device]:
        """
        Ping one address and name it if it answers.

        Returns:
            Device for a responding host, None otherwise (or when cancelled)
        """
        if self._is_cancelled(cancel):
            return None
        if not self._ping_single_target(target):
            return None
        return self._new_device(target, name=self.hostname_resolver.resolve(target))

    def _ping_single_target(self, target: str) -> bool:
        """
        Send one ICMP echo to ``target``.

        Args:
            target: IP address to ping

        Returns:
            True if the host replied within the configured timeout
        """
        if not self._ping_available:
            return False

        timeout = self.config.timeout

        if self._system == "windows":
            cmd = ["ping", "-n", "1", "-w", str(timeout * 1000), target]
        elif self._system == "darwin":
            cmd = ["ping", "-c", "1", "-W", str(timeout * 1000), target]
        else:
            cmd = ["ping", "-c", "1", "-W", str(timeout), target]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout + 2,
            )
        except subprocess.TimeoutExpired:
            self._log_debug(f"Ping timeout: {target}")
            return False
        except FileNotFoundError as e:
            # Reported once; the remaining targets are skipped
            with self._lock:
                first_failure = self._ping_available
                self._ping_available = False
            if first_failure:
                self._record_failure(
                    e, "ping", target, ErrorType.TOOL_MISSING_ERROR, ErrorSeverity.HIGH,
                    additional_info={"tool_name": cmd[0]},
                )
            return False

        is_alive = analyze_ping_output(result.stdout + result.stderr, target, self._system)
        self._log_debug(f"Ping {'successful' if is_alive else 'failed'}: {target}")
        return is_alive

    def _merge_neighbor_table(self, targets: List[str], devices: Dict[str, Device]) -> None:
        """
        Attach MACs from the neighbor table and add hosts only seen there.

        Entries outside the scanned range (other interfaces, multicast
        groups, broadcast) are ignored.
        """
        table = self._get_neighbor_table()
        in_range = set(targets)
        added = 0

        with self._lock:
            for ip_address, mac in table.items():
                if ip_address not in in_range:
                    continue
                device = devices.get(ip_address)
                if device is None:
                    devices[ip_address] = self._new_device(ip_address, mac)
                    added += 1
                elif not device.mac:
                    device.mac = mac

        self._log_info(
            f"Neighbor table: {len(table)} entries, {added} additional hosts"
        )

    def _get_neighbor_table(self) -> Dict[str, str]:
        """
        Read the OS IPv4 neighbor table.

        Returns:
            Dictionary mapping IP addresses to normalized MAC addresses
        """
        if self._system == "windows":
            output = self._run_table_command(["arp", "-a"])
            table = parse_windows_arp_table(output)
        else:
            output = self._run_table_command(["ip", "-4", "neigh", "show"])
            table = parse_ip_neigh_table(output)
            if not table:
                table = parse_unix_arp_table(self._run_table_command(["arp", "-an"]))

        self._log_debug(f"Neighbor table contains {len(table)} entries")
        return table

    def _run_table_command(self, cmd: List[str]) -> str:
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=NEIGHBOR_TABLE_TIMEOUT,
            )
        except FileNotFoundError as e:
            self._record_failure(
                e, "neighbor_table", error_type=ErrorType.TOOL_MISSING_ERROR,
                additional_info={"tool_name": cmd[0]},
            )
            return ""
        except (subprocess.TimeoutExpired, OSError) as e:
            self._record_failure(e, "neighbor_table", error_type=ErrorType.SUBPROCESS_ERROR)
            return ""

        if result.returncode != 0:
            self._log_debug(f"{' '.join(cmd)} exited with {result.returncode}")
            return ""
        return result.stdout

    def _resolve_missing_names(
        self, devices: Dict[str, Device], cancel: Optional[CancellationToken]
    ) -> None:
        """Resolve names in parallel for entries that still have none."""
        with self._lock:
            unnamed = [ip for ip, device in devices.items() if not device.name]
        if not unnamed:
            return

        self._log_info(f"Resolving names for {len(unnamed)} hosts")

        def resolve(ip_address: str) -> Optional[str]:
            if self._is_cancelled(cancel):
                return None
            return self.hostname_resolver.resolve(ip_address)

        workers = max(1, min(self.config.parallel_threads, len(unnamed)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_ip = {executor.submit(resolve, ip): ip for ip in unnamed}

            for future in as_completed(future_to_ip):
                ip_address = future_to_ip[future]
                try:
                    name = future.result()
                except Exception as e:
                    self._record_failure(e, "resolve_name", ip_address)
                    continue
                if name:
                    with self._lock:
                        devices[ip_address].name = name


def analyze_ping_output(output: str, target: str, system: str) -> bool:
    """
    Decide from ping output whether the host actually replied.

    The return code alone is unreliable: Windows returns 0 for "Destination
    host unreachable" replies sent by the local router.

    Args:
        output: Raw ping command output
        target: Target IP address
        system: Operating system (windows/linux/darwin)

    Returns:
        bool: True if the target itself replied
    """
    if not output:
        return False

    output_lower = output.lower()

    failure_indicators = [
        "destination host unreachable",
        "request timed out",
        "could not find host",
        "general failure",
        "transmit failed",
        "no route to host",
        "network is unreachable",
        "100% packet loss",
        "100.0% packet loss",
    ]
    if any(indicator in output_lower for indicator in failure_indicators):
        return False

    if system == "windows":
        if "received = 1" in output_lower:
            return True
        return f"reply from {target}:" in output_lower and "ttl=" in output_lower

    if "1 received" in output_lower or "1 packets received" in output_lower:
        return True
    return f"bytes from {target}" in output_lower and "ttl=" in output_lower


def parse_windows_arp_table(output: str) -> Dict[str, str]:
    """
    Parse ``arp -a`` output on Windows.

    Format: ``192.168.1.1          00-11-22-33-44-55     dynamic``
    """
    table = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or not is_valid_ip(parts[0]):
            continue
        if is_usable_mac(parts[1]):
            table[parts[0]] = normalize_mac(parts[1])
    return table


def parse_ip_neigh_table(output: str) -> Dict[str, str]:
    """
    Parse ``ip neigh`` output.

    Format: ``192.168.1.1 dev eth0 lladdr 00:11:22:33:44:55 REACHABLE``;
    FAILED/INCOMPLETE entries carry no lladdr and are skipped.
    """
    table = {}
    for line in output.splitlines():
        parts = line.split()
        if "lladdr" not in parts or not parts or not is_valid_ip(parts[0]):
            continue
        mac_idx = parts.index("lladdr") + 1
        if mac_idx < len(parts) and is_usable_mac(parts[mac_idx]):
            table[parts[0]] = normalize_mac(parts[mac_idx])
    return table


def parse_unix_arp_table(output: str) -> Dict[str, str]:
    """
    Parse BSD/net-tools ``arp -a`` output.

    Format: ``hostname (192.168.1.1) at 00:11:22:33:44:55 [ether] on eth0``
    """
    table = {}
    for line in output.splitlines():
        if "(" not in line or ")" not in line or " at " not in line:
            continue
        ip_part = line.split("(", 1)[1].split(")", 1)[0]
        mac_part = line.split(" at ", 1)[1].split()[0]
        if is_valid_ip(ip_part) and is_usable_mac(mac_part):
            table[ip_part] = normalize_mac(mac_part)
    return table
