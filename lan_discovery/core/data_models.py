"""
Core data models and enums for the LAN Discovery Module.

This module defines the device record that every scanner produces and the
registry merges, the interface descriptor a scan runs against, and the
per-invocation scan session.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from ..utils.error_handler import ConfigurationError


class DiscoveryMethod(Enum):
    """Protocol tags recording which techniques observed a device."""
    ARP = "ARP"
    SNMP = "SNMP"
    MDNS = "mDNS"
    SSDP = "SSDP"


class ScanState(Enum):
    """Lifecycle states of a scan session."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ScanState.COMPLETED, ScanState.CANCELLED, ScanState.FAILED)


@dataclass
class InterfaceInfo:
    """
    Descriptor of the local interface a scan runs against.

    Attributes:
        name: OS interface name (e.g. eth0, "Wi-Fi")
        ip_address: IPv4 address bound to the interface
        netmask: IPv4 subnet mask in dotted notation
        mac_address: Hardware address of the interface, if known
        is_up: Whether the OS reports the interface as up
    """
    name: str
    ip_address: Optional[str] = None
    netmask: Optional[str] = None
    mac_address: Optional[str] = None
    is_up: bool = True

    def ipv4_config(self) -> Tuple[str, str]:
        """
        Return the interface address and mask.

        Raises:
            ConfigurationError: If the address or the mask is missing
        """
        if not self.ip_address:
            raise ConfigurationError(f"Interface {self.name} has no IPv4 address")
        if not self.netmask:
            raise ConfigurationError(f"Interface {self.name} has no IPv4 subnet mask")
        return self.ip_address, self.netmask


@dataclass
class Device:
    """
    Merged record for one network endpoint.

    A Device produced by a single scanner, tagged with that scanner's
    DiscoveryMethod only, is a sighting. The registry folds sightings into
    one Device per identity.

    Attributes:
        ip: Current IPv4 address
        mac: Normalized hardware address (uppercase, no separators) or ""
        name: Display name (hostname, SNMP sysName, UPnP friendlyName...)
        custom_name: Secondary name such as a UPnP model name
        location: Location or description text
        manufacturer: Vendor or adapter description
        is_online: Liveness as of the most recent observation
        last_seen: Timestamp of the most recent observation
        discovery_methods: Protocols that observed this device
    """
    ip: str
    mac: str = ""
    name: str = ""
    custom_name: str = ""
    location: str = ""
    manufacturer: str = ""
    is_online: bool = True
    last_seen: datetime = field(default_factory=datetime.now)
    discovery_methods: Set[DiscoveryMethod] = field(default_factory=set)

    @property
    def identity(self) -> str:
        """Registry key: MAC when known, IP otherwise."""
        return self.mac or self.ip

    def copy(self) -> "Device":
        """Return an independent snapshot of this device."""
        return copy.deepcopy(self)

    def methods_label(self) -> str:
        """Discovery methods as a stable comma-separated string."""
        order = list(DiscoveryMethod)
        return ",".join(
            method.value for method in sorted(self.discovery_methods, key=order.index)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "name": self.name,
            "ip": self.ip,
            "mac": self.mac,
            "is_online": self.is_online,
            "custom_name": self.custom_name,
            "location": self.location,
            "manufacturer": self.manufacturer,
            "last_seen": self.last_seen.isoformat(),
            "discovery_methods": self.methods_label().split(",") if self.discovery_methods else [],
        }


@dataclass
class ScanSession:
    """
    State of one orchestrator invocation.

    Attributes:
        interface: Interface being scanned
        address_range: Candidate host addresses computed for the interface
        state: Current lifecycle state
        started_at: When the session entered RUNNING
        finished_at: When the session reached a terminal state
        devices: Final registry snapshot, filled at session end
        errors: Absorbed per-phase failures
        phase_durations: Seconds spent per phase name
    """
    interface: InterfaceInfo
    address_range: List[str] = field(default_factory=list)
    state: ScanState = ScanState.IDLE
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    devices: List[Device] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    phase_durations: Dict[str, float] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        if not self.started_at:
            return 0.0
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()
