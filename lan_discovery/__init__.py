"""
LAN Discovery Module

A Python module that discovers live hosts on a local IPv4 subnet using ping
sweeps with neighbor-cache harvesting, SNMP, mDNS and SSDP, and reconciles the
results into one deduplicated device inventory.
"""

__version__ = "1.0.0"
__author__ = "LAN Discovery Team"
