"""
Packet-level ARP strategy using scapy.

Broadcasts ARP who-has requests for the candidate range instead of pinging,
so hosts that drop ICMP are still found and MACs come straight from the
replies. Needs raw socket privileges (root, or Npcap on Windows).
"""

from typing import Dict, List, Optional

from scapy.all import ARP, Ether, srp

from .arp_scanner import ARPScanner, DeviceCallback
from ..core.cancellation import CancellationToken
from ..core.data_models import Device
from ..utils.error_handler import ErrorSeverity, ErrorType

# Addresses per srp() call
CHUNK_SIZE = 64


class ScapyARPScanner(ARPScanner):
    """ARP scanner whose live-host step sends raw ARP requests."""

    scanner_type = "ARP-SCAPY"

    def _discover_live_hosts(
        self,
        targets: List[str],
        devices: Dict[str, Device],
        cancel: Optional[CancellationToken],
        on_device: Optional[DeviceCallback],
    ) -> None:
        for start in range(0, len(targets), CHUNK_SIZE):
            if self._is_cancelled(cancel):
                return
            chunk = targets[start:start + CHUNK_SIZE]

            try:
                answered = self._send_arp_requests(chunk)
            except PermissionError as e:
                self._record_failure(
                    e, "arp_request", error_type=ErrorType.PERMISSION_ERROR, severity=ErrorSeverity.HIGH
                )
                return
            except OSError as e:
                self._record_failure(e, "arp_request", f"{chunk[0]}-{chunk[-1]}")
                continue

            for ip_address, mac in answered.items():
                if self._is_cancelled(cancel):
                    return
                device = self._new_device(
                    ip_address, mac, self.hostname_resolver.resolve(ip_address)
                )
                with self._lock:
                    devices[ip_address] = device
                if on_device:
                    on_device(device.copy())

        self._log_info(f"ARP requests answered by {len(devices)} hosts")

    def _send_arp_requests(self, chunk: List[str]) -> Dict[str, str]:
        """
        Broadcast one ARP request per address and collect replies.

        Returns:
            Mapping of responding IP to its hardware address
        """
        packet = Ether(dst="ff:ff:ff:ff:ff:ff") / ARP(pdst=chunk)
        kwargs = {"timeout": self.config.timeout, "verbose": False}
        if self.config.interface:
            kwargs["iface"] = self.config.interface

        answered, _ = srp(packet, **kwargs)

        replies = {}
        for _, response in answered:
            replies[response[ARP].psrc] = response[ARP].hwsrc
            self._log_debug(f"ARP response: {response[ARP].psrc} -> {response[ARP].hwsrc}")
        return replies
