"""
MAC address to vendor/adapter description resolution with a process-lifetime cache.

Descriptions come from the operating system's own hardware inventory (WMI
adapters on Windows, sysfs and the udev hardware database on Linux), so only
adapters the OS knows about produce a description; anything else resolves to
an empty string. Every answer, empty ones included, is cached, so the
inventory is queried at most once per MAC.
"""

import json
import os
import platform
import subprocess
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

import psutil

from .logger import Logger, get_logger
from .network_utils import format_mac, normalize_mac

# Generic platform-vendor text that says nothing about the hardware
BOILERPLATE_MARKERS = ("Microsoft",)

INVENTORY_TIMEOUT = 15

SYSFS_NET = "/sys/class/net"


def compose_description(records: Iterable[Dict[str, str]]) -> str:
    """
    Join adapter record fields into one description.

    Fields are taken in the order manufacturer, product name, adapter type,
    description; blank and boilerplate fragments are dropped and repeats are
    kept only once.

    Args:
        records: Inventory records with optional manufacturer, product_name,
            adapter_type and description keys

    Returns:
        Fragments joined with " - ", or "" if nothing useful remained
    """
    fragments: List[str] = []
    for record in records:
        for key in ("manufacturer", "product_name", "adapter_type", "description"):
            value = (record.get(key) or "").strip()
            if not value:
                continue
            if any(marker in value for marker in BOILERPLATE_MARKERS):
                continue
            if value not in fragments:
                fragments.append(value)
    return " - ".join(fragments)


class MacVendorResolver:
    """
    Cached lookup of a descriptive vendor/adapter string for a MAC address.

    The cache is seeded lazily, once, from the local machine's adapters
    (psutil + OS inventory). Lookups for one MAC are serialized on a per-MAC
    lock so concurrent callers never trigger a second inventory query.
    """

    def __init__(self, logger: Optional[Logger] = None):
        """
        Initialize the resolver.

        Args:
            logger: Logger instance
        """
        self.logger = logger or get_logger(__name__)
        self._system = platform.system().lower()
        self._cache: Dict[str, str] = {}
        self._cache_lock = threading.Lock()
        self._key_locks: Dict[str, threading.Lock] = defaultdict(threading.Lock)
        self._seed_lock = threading.Lock()
        self._seeded = False

    def resolve(self, mac: Optional[str], query: bool = True) -> str:
        """
        Return a description for ``mac``.

        Args:
            mac: MAC address in any common notation
            query: When False, answer from the cache only and never start an
                inventory query

        Returns:
            Description string, "" when unknown or when ``mac`` is not valid
        """
        normalized = normalize_mac(mac)
        if not normalized:
            return ""

        if not query:
            with self._cache_lock:
                return self._cache.get(normalized, "")

        self._ensure_seeded()

        with self._cache_lock:
            if normalized in self._cache:
                return self._cache[normalized]
            key_lock = self._key_locks[normalized]

        with key_lock:
            with self._cache_lock:
                if normalized in self._cache:
                    return self._cache[normalized]

            try:
                description = compose_description(self._query_inventory(normalized))
            except (OSError, subprocess.SubprocessError, ValueError) as e:
                self.logger.debug(f"Adapter inventory query failed for {normalized}: {e}")
                description = ""

            with self._cache_lock:
                self._cache[normalized] = description
            if description:
                self.logger.debug(f"Vendor for {normalized}: {description}")
            return description

    def cached(self) -> Dict[str, str]:
        """Snapshot of the cache (normalized MAC -> description)."""
        with self._cache_lock:
            return dict(self._cache)

    def _ensure_seeded(self) -> None:
        with self._seed_lock:
            if self._seeded:
                return
            self._seeded = True

        try:
            self._seed_local_adapters()
        except (OSError, subprocess.SubprocessError, ValueError) as e:
            self.logger.debug(f"Could not load local adapter information: {e}")

    def _seed_local_adapters(self) -> None:
        """Cache descriptions for this machine's own adapters."""
        local_macs = set()
        for addresses in psutil.net_if_addrs().values():
            for address in addresses:
                if address.family == psutil.AF_LINK:
                    normalized = normalize_mac(address.address)
                    if normalized and normalized != "000000000000":
                        local_macs.add(normalized)

        if not local_macs:
            return

        by_mac: Dict[str, List[Dict[str, str]]] = defaultdict(list)
        for record in self._query_inventory():
            record_mac = normalize_mac(record.get("mac"))
            if record_mac in local_macs:
                by_mac[record_mac].append(record)

        with self._cache_lock:
            for mac, records in by_mac.items():
                description = compose_description(records)
                if description:
                    self._cache.setdefault(mac, description)
                    self.logger.debug(f"Cached local adapter: {mac} -> {description}")

    def _query_inventory(self, mac: Optional[str] = None) -> List[Dict[str, str]]:
        """
        Query the OS hardware inventory for adapter records.

        Args:
            mac: Normalized MAC to filter on, or None for every adapter

        Returns:
            Records with keys mac, manufacturer, product_name, adapter_type,
            description
        """
        if self._system == "windows":
            records = self._query_windows_adapters(mac)
        elif self._system == "linux":
            records = self._query_linux_adapters()
        else:
            return []

        if mac is None:
            return records
        return [record for record in records if normalize_mac(record.get("mac")) == mac]

    def _query_windows_adapters(self, mac: Optional[str]) -> List[Dict[str, str]]:
        where = f" | Where-Object {{ $_.MACAddress -eq '{format_mac(mac)}' }}" if mac else ""
        script = (
            f"$a = @(Get-CimInstance Win32_NetworkAdapter{where} | "
            "Select-Object MACAddress,Manufacturer,ProductName,AdapterType,Description); "
            f"$c = @(Get-CimInstance Win32_NetworkAdapterConfiguration{where} | "
            "Select-Object MACAddress,Description); "
            "ConvertTo-Json -Compress -InputObject @($a + $c)"
        )
        result = subprocess.run(
            ["powershell", "-NoProfile", "-NonInteractive", "-Command", script],
            capture_output=True,
            text=True,
            timeout=INVENTORY_TIMEOUT,
        )
        if result.returncode != 0 or not result.stdout.strip():
            return []

        payload = json.loads(result.stdout)
        if isinstance(payload, dict):
            payload = [payload]

        return [
            {
                "mac": item.get("MACAddress") or "",
                "manufacturer": item.get("Manufacturer") or "",
                "product_name": item.get("ProductName") or "",
                "adapter_type": item.get("AdapterType") or "",
                "description": item.get("Description") or "",
            }
            for item in payload
            if isinstance(item, dict)
        ]

    def _query_linux_adapters(self) -> List[Dict[str, str]]:
        if not os.path.isdir(SYSFS_NET):
            return []

        records = []
        for interface in sorted(os.listdir(SYSFS_NET)):
            base = os.path.join(SYSFS_NET, interface)
            address = _read_text(os.path.join(base, "address"))
            if not normalize_mac(address):
                continue

            properties = self._udev_properties(base)
            if os.path.isdir(os.path.join(base, "wireless")):
                adapter_type = "Wireless"
            elif _read_text(os.path.join(base, "type")) == "1":
                adapter_type = "Ethernet 802.3"
            else:
                adapter_type = ""

            records.append({
                "mac": address,
                "manufacturer": properties.get("ID_VENDOR_FROM_DATABASE", ""),
                "product_name": properties.get("ID_MODEL_FROM_DATABASE", ""),
                "adapter_type": adapter_type,
                "description": properties.get("ID_NET_DRIVER", ""),
            })
        return records

    def _udev_properties(self, sysfs_path: str) -> Dict[str, str]:
        try:
            result = subprocess.run(
                ["udevadm", "info", "--query=property", f"--path={sysfs_path}"],
                capture_output=True,
                text=True,
                timeout=INVENTORY_TIMEOUT,
            )
        except FileNotFoundError:
            return {}

        properties = {}
        for line in result.stdout.splitlines():
            if "=" in line:
                key, value = line.split("=", 1)
                properties[key] = value
        return properties


def _read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().strip()
    except OSError:
        return ""
