"""Tests for YAML configuration loading and validation."""

from unittest.mock import Mock

import pytest
import yaml

from lan_discovery.config.config_loader import ARPConfig, ConfigLoader, DiscoveryConfig, SNMPConfig


@pytest.fixture
def loader(tmp_path):
    return ConfigLoader(str(tmp_path), Mock())


def write_yaml(directory, name, data):
    with open(directory / name, "w", encoding="utf-8") as f:
        yaml.safe_dump(data, f)


class TestConfigLoader:

    def test_missing_files_use_defaults(self, loader):
        assert loader.load_arp_config() == ARPConfig()
        assert loader.load_snmp_config() == SNMPConfig()
        assert loader.load_discovery_config() == DiscoveryConfig()
        assert loader.logger.warning.call_count == 3

    def test_packaged_defaults_load(self):
        loader = ConfigLoader(logger=Mock())
        assert loader.load_arp_config() == ARPConfig()
        assert loader.load_snmp_config() == SNMPConfig()
        assert loader.load_discovery_config() == DiscoveryConfig()
        loader.logger.warning.assert_not_called()

    def test_valid_arp_values(self, loader, tmp_path):
        write_yaml(tmp_path, "arp_config.yml", {"arp": {
            "method": "scapy", "timeout": 2, "parallel_threads": 32,
            "interface": "eth1", "resolve_netbios": False,
        }})

        assert loader.load_arp_config() == ARPConfig(
            timeout=2, method="scapy", parallel_threads=32, interface="eth1", resolve_netbios=False
        )

    def test_invalid_fields_fall_back_individually(self, loader, tmp_path):
        write_yaml(tmp_path, "arp_config.yml", {"arp": {
            "method": "nmap", "timeout": -1, "parallel_threads": "many",
        }})

        config = loader.load_arp_config()

        assert config.method == "ping"
        assert config.timeout == 1
        assert config.parallel_threads == 100

    def test_snmp_values(self, loader, tmp_path):
        write_yaml(tmp_path, "snmp_config.yml", {"snmp": {
            "communities": ["lab", ""], "version": 1, "retries": 0, "max_parallel": 5,
        }})

        config = loader.load_snmp_config()

        assert config.communities == ["lab"]
        assert config.version == 1
        assert config.retries == 0
        assert config.max_parallel == 5
        assert config.timeout == 2

    def test_unsupported_snmp_version_and_bad_communities(self, loader, tmp_path):
        write_yaml(tmp_path, "snmp_config.yml", {"snmp": {"communities": "public", "version": 3}})

        config = loader.load_snmp_config()

        assert config.communities == ["public", "private"]
        assert config.version == 2

    def test_discovery_toggles(self, loader, tmp_path):
        write_yaml(tmp_path, "discovery_config.yml", {"discovery": {
            "enable_snmp": False, "mdns_duration": 3, "enable_ssdp": "yes", "ssdp_duration": 0,
        }})

        config = loader.load_discovery_config()

        assert config.enable_snmp is False
        assert config.mdns_duration == 3
        assert config.enable_ssdp is True
        assert config.ssdp_duration == 5

    def test_malformed_yaml_uses_defaults(self, loader, tmp_path):
        (tmp_path / "arp_config.yml").write_text("arp: [unclosed", encoding="utf-8")

        assert loader.load_arp_config() == ARPConfig()
        loader.logger.error.assert_called_once()

    def test_wrong_structure_uses_defaults(self, loader, tmp_path):
        write_yaml(tmp_path, "snmp_config.yml", {"arp": {"timeout": 3}})
        assert loader.load_snmp_config() == SNMPConfig()

    def test_create_default_configs_round_trip(self, tmp_path):
        target = tmp_path / "configs"
        loader = ConfigLoader(str(target), Mock())

        loader.create_default_configs()

        assert sorted(p.name for p in target.iterdir()) == [
            "arp_config.yml", "discovery_config.yml", "snmp_config.yml"
        ]
        assert loader.load_snmp_config() == SNMPConfig()
        assert loader.load_discovery_config() == DiscoveryConfig()

    def test_create_default_configs_keeps_existing_files(self, loader, tmp_path):
        write_yaml(tmp_path, "arp_config.yml", {"arp": {"timeout": 4}})

        loader.create_default_configs()

        assert loader.load_arp_config().timeout == 4
