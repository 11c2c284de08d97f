"""
Configuration module for LAN Discovery.
Provides configuration loading and validation for all scanner types.
"""

from .config_loader import ConfigLoader, ARPConfig, SNMPConfig, DiscoveryConfig

__all__ = ['ConfigLoader', 'ARPConfig', 'SNMPConfig', 'DiscoveryConfig']
