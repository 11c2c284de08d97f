"""
Scanner modules for LAN Discovery.

This package contains the discovery techniques: the ARP scanner (ping sweep
plus neighbor table, or raw ARP requests through scapy), the SNMP prober and
the mDNS and SSDP multicast discoverers. The scapy strategy is not imported
here so that scapy is only loaded when it is selected.
"""

from .base_scanner import BaseScanner
from .hostname_resolver import HostnameResolver
from .arp_scanner import ARPScanner
from .snmp_prober import SNMPProber
from .mdns_discoverer import MDNSDiscoverer
from .ssdp_discoverer import SSDPDiscoverer

__all__ = [
    'BaseScanner',
    'HostnameResolver',
    'ARPScanner',
    'SNMPProber',
    'MDNSDiscoverer',
    'SSDPDiscoverer'
]
