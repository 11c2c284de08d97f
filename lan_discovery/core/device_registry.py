"""
Lock-guarded device registry that reconciles sightings into one record per device.

Merge policy for a sighting against an existing entry (matched by MAC when both
carry one, otherwise by IP):

- discovery methods are unioned
- SNMP sightings overwrite name, custom name and location with the values they
  carry; every other source only fills fields that are still empty
- manufacturer fills only when empty
- the first non-empty MAC wins; learning a MAC for an IP-keyed entry re-keys it
- is_online and last_seen always take the sighting's values
"""

import threading
from typing import Dict, List, Optional, Tuple

from .data_models import Device, DiscoveryMethod
from ..utils.network_utils import normalize_mac

_DESCRIPTIVE_FIELDS = ("name", "custom_name", "location")


class DeviceRegistry:
    """
    Thread-safe map of identity to Device.

    All reads and writes happen under one lock; no network I/O or callback
    is ever performed while it is held. Callers receive snapshot copies so
    later merges never mutate an object a caller already holds.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._devices: Dict[str, Device] = {}
        self._ip_index: Dict[str, str] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)

    def merge(self, sighting: Device) -> Tuple[Device, bool]:
        """
        Fold one sighting into the registry.

        Args:
            sighting: Device observed by a single scanner

        Returns:
            Tuple of (snapshot of the resulting entry, whether anything changed)
        """
        mac = normalize_mac(sighting.mac)

        with self._lock:
            existing = self._find(sighting.ip, mac)

            if existing is None:
                device = sighting.copy()
                device.mac = mac
                self._store(device)
                return device.copy(), True

            before = existing.copy()
            old_identity = existing.identity
            self._apply(existing, sighting, mac)

            if existing.identity != old_identity:
                del self._devices[old_identity]
            if before.ip != existing.ip and self._ip_index.get(before.ip) == old_identity:
                del self._ip_index[before.ip]
            self._store(existing)

            return existing.copy(), existing != before

    def get(self, identity: str) -> Optional[Device]:
        """Look up a snapshot by MAC or IP."""
        with self._lock:
            device = self._devices.get(normalize_mac(identity) or identity)
            if device is None and identity in self._ip_index:
                device = self._devices.get(self._ip_index[identity])
            return device.copy() if device else None

    def snapshot(self) -> List[Device]:
        """Return copies of every entry, ordered by IP address."""
        with self._lock:
            devices = [device.copy() for device in self._devices.values()]
        return sorted(devices, key=lambda d: tuple(int(p) for p in d.ip.split(".")) if d.ip else ())

    def _find(self, ip: str, mac: str) -> Optional[Device]:
        if mac and mac in self._devices:
            return self._devices[mac]

        identity = self._ip_index.get(ip)
        candidate = self._devices.get(identity) if identity else None
        if candidate is None:
            return None
        # Two different non-empty MACs on one IP are two devices
        if mac and candidate.mac and candidate.mac != mac:
            return None
        return candidate

    def _store(self, device: Device) -> None:
        self._devices[device.identity] = device
        if device.ip:
            self._ip_index[device.ip] = device.identity

    @staticmethod
    def _apply(existing: Device, sighting: Device, mac: str) -> None:
        authoritative = DiscoveryMethod.SNMP in sighting.discovery_methods

        existing.discovery_methods |= sighting.discovery_methods

        for field_name in _DESCRIPTIVE_FIELDS:
            incoming = getattr(sighting, field_name)
            if not incoming:
                continue
            if authoritative or not getattr(existing, field_name):
                setattr(existing, field_name, incoming)

        if sighting.manufacturer and not existing.manufacturer:
            existing.manufacturer = sighting.manufacturer

        if mac and not existing.mac:
            existing.mac = mac

        if sighting.ip:
            existing.ip = sighting.ip
        existing.is_online = sighting.is_online
        existing.last_seen = sighting.last_seen
