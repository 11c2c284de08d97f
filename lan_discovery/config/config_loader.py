"""
Configuration loader for LAN Discovery Module.
Handles loading and validation of YAML configuration files with fallback to defaults.
"""

import yaml
from typing import Any, Callable, Dict, Optional, TypeVar
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from ..utils.logger import Logger, get_logger

ConfigT = TypeVar("ConfigT")


@dataclass
class ARPConfig:
    """Configuration for the ARP phase (ping sweep or scapy)."""
    timeout: int = 1
    method: str = "ping"  # ping, scapy
    parallel_threads: int = 100
    interface: Optional[str] = None
    resolve_netbios: bool = True


@dataclass
class SNMPConfig:
    """Configuration for SNMP probing."""
    communities: list = field(default_factory=lambda: ["public", "private"])
    version: int = 2
    timeout: int = 2
    retries: int = 1
    max_parallel: int = 20
    port: int = 161


@dataclass
class DiscoveryConfig:
    """Configuration for the multicast discovery phase and phase toggles."""
    mdns_duration: int = 5
    ssdp_duration: int = 5
    http_timeout: int = 5
    poll_timeout: int = 1
    enable_snmp: bool = True
    enable_mdns: bool = True
    enable_ssdp: bool = True


class ConfigLoader:
    """
    Loads and validates YAML configuration files for the discovery scanners.
    Provides fallback to default configurations when files are missing.
    """

    ARP_FILE = "arp_config.yml"
    SNMP_FILE = "snmp_config.yml"
    DISCOVERY_FILE = "discovery_config.yml"

    def __init__(self, config_dir: Optional[str] = None, logger: Optional[Logger] = None):
        """
        Initialize ConfigLoader.

        Args:
            config_dir: Directory containing configuration files.
                       Defaults to the config directory relative to this file.
            logger: Logger instance (defaults to a module logger)
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent
        else:
            self.config_dir = Path(config_dir)

        self.logger = logger or get_logger(__name__)

    def load_arp_config(self, config_file: str = ARP_FILE) -> ARPConfig:
        """
        Load ARP configuration from YAML file.

        Args:
            config_file: Name of the ARP configuration file

        Returns:
            ARPConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, "arp", "ARP")
        if data is None:
            return ARPConfig()

        defaults = ARPConfig()
        return ARPConfig(
            timeout=self._validate_positive_int(data.get("timeout", defaults.timeout), "timeout", defaults.timeout),
            method=self._validate_method(data.get("method", defaults.method)),
            parallel_threads=self._validate_positive_int(
                data.get("parallel_threads", defaults.parallel_threads), "parallel_threads", defaults.parallel_threads
            ),
            interface=data.get("interface"),
            resolve_netbios=self._validate_bool(data.get("resolve_netbios", True), "resolve_netbios", True),
        )

    def load_snmp_config(self, config_file: str = SNMP_FILE) -> SNMPConfig:
        """
        Load SNMP configuration from YAML file.

        Args:
            config_file: Name of the SNMP configuration file

        Returns:
            SNMPConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, "snmp", "SNMP")
        if data is None:
            return SNMPConfig()

        defaults = SNMPConfig()
        return SNMPConfig(
            communities=self._validate_communities(data.get("communities", defaults.communities)),
            version=self._validate_snmp_version(data.get("version", defaults.version)),
            timeout=self._validate_positive_int(data.get("timeout", defaults.timeout), "timeout", defaults.timeout),
            retries=self._validate_non_negative_int(data.get("retries", defaults.retries), "retries", defaults.retries),
            max_parallel=self._validate_positive_int(
                data.get("max_parallel", defaults.max_parallel), "max_parallel", defaults.max_parallel
            ),
            port=self._validate_positive_int(data.get("port", defaults.port), "port", defaults.port),
        )

    def load_discovery_config(self, config_file: str = DISCOVERY_FILE) -> DiscoveryConfig:
        """
        Load multicast discovery configuration from YAML file.

        Args:
            config_file: Name of the discovery configuration file

        Returns:
            DiscoveryConfig object with loaded or default configuration
        """
        data = self._read_section(config_file, "discovery", "discovery")
        if data is None:
            return DiscoveryConfig()

        defaults = DiscoveryConfig()
        values: Dict[str, Any] = {}
        for config_field in fields(DiscoveryConfig):
            default = getattr(defaults, config_field.name)
            raw = data.get(config_field.name, default)
            if isinstance(default, bool):
                values[config_field.name] = self._validate_bool(raw, config_field.name, default)
            else:
                values[config_field.name] = self._validate_positive_int(raw, config_field.name, default)
        return DiscoveryConfig(**values)

    def _read_section(self, config_file: str, section: str, label: str) -> Optional[Dict[str, Any]]:
        """
        Read one top-level section of a YAML file.

        Returns:
            The section mapping, or None when the caller should use defaults
        """
        config_path = self.config_dir / config_file

        if not config_path.exists():
            self.logger.warning(f"{label} config file not found at {config_path}. Using default configuration.")
            return None

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing {label} config file {config_path}: {e}")
            self.logger.warning(f"Using default {label} configuration.")
            return None
        except OSError as e:
            self.logger.error(f"Unable to read {label} config file {config_path}: {e}")
            self.logger.warning(f"Using default {label} configuration.")
            return None

        if not isinstance(config_data, dict) or not isinstance(config_data.get(section), dict):
            self.logger.warning(f"Invalid {label} config structure in {config_path}. Using default configuration.")
            return None

        return config_data[section]

    def _validate_positive_int(self, value: Any, field_name: str, default: int) -> int:
        """
        Validate that a value is a positive integer.

        Args:
            value: Value to validate
            field_name: Name of the field for error messages
            default: Default value to use if validation fails

        Returns:
            Validated integer value or default
        """
        return self._validate_int(value, field_name, default, lambda v: v > 0, "positive")

    def _validate_non_negative_int(self, value: Any, field_name: str, default: int) -> int:
        return self._validate_int(value, field_name, default, lambda v: v >= 0, "zero or positive")

    def _validate_int(
        self, value: Any, field_name: str, default: int, check: Callable[[int], bool], expected: str
    ) -> int:
        if isinstance(value, bool):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default
        try:
            int_value = int(value)
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default
        if not check(int_value):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be {expected}. Using default: {default}")
            return default
        return int_value

    def _validate_bool(self, value: Any, field_name: str, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        self.logger.warning(f"Invalid {field_name}: {value}. Must be true or false. Using default: {default}")
        return default

    def _validate_method(self, method: str) -> str:
        """
        Validate ARP scanning method.

        Args:
            method: Method to validate

        Returns:
            Validated method or default
        """
        valid_methods = ["ping", "scapy"]
        if method not in valid_methods:
            self.logger.warning(f"Invalid ARP method: {method}. Must be one of {valid_methods}. Using default: ping")
            return "ping"
        return method

    def _validate_snmp_version(self, version: Any) -> int:
        # Only community-based versions are probed
        if version in (1, 2):
            return version
        self.logger.warning(f"Unsupported SNMP version: {version}. Must be 1 or 2. Using default: 2")
        return 2

    def _validate_communities(self, communities: Any) -> list:
        if not isinstance(communities, list):
            self.logger.warning(f"Invalid SNMP communities: {communities}. Must be a list. Using default.")
            return SNMPConfig().communities

        valid = [str(c) for c in communities if isinstance(c, (str, int)) and str(c)]
        if not valid:
            self.logger.warning("No valid SNMP communities found. Using default: ['public', 'private']")
            return SNMPConfig().communities
        return valid

    def create_default_configs(self) -> None:
        """
        Create default configuration files if they don't exist.
        """
        self._create_default_config(self.ARP_FILE, "arp", ARPConfig(), "ARP")
        self._create_default_config(self.SNMP_FILE, "snmp", SNMPConfig(), "SNMP")
        self._create_default_config(self.DISCOVERY_FILE, "discovery", DiscoveryConfig(), "discovery")

    def _create_default_config(self, file_name: str, section: str, config: Any, label: str) -> None:
        config_path = self.config_dir / file_name
        if config_path.exists():
            return

        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                yaml.dump({section: asdict(config)}, f, default_flow_style=False, indent=2)
            self.logger.info(f"Created default {label} config at {config_path}")
        except OSError as e:
            self.logger.error(f"Failed to create default {label} config: {e}")
