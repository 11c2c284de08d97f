"""Tests for sighting reconciliation in DeviceRegistry."""

import threading
from datetime import datetime

from lan_discovery.core.data_models import DiscoveryMethod
from lan_discovery.core.device_registry import DeviceRegistry

from .conftest import make_device


class TestDeviceRegistryMerge:

    def test_new_sighting_creates_entry(self):
        registry = DeviceRegistry()
        device, changed = registry.merge(make_device("10.0.0.1", "aa:bb:cc:dd:ee:01", "router"))

        assert changed is True
        assert len(registry) == 1
        assert device.mac == "AABBCCDDEE01"
        assert device.identity == "AABBCCDDEE01"

    def test_merge_is_idempotent(self):
        registry = DeviceRegistry()
        sighting = make_device("10.0.0.1", "AABBCCDDEE01", "router")
        registry.merge(sighting)
        before = registry.snapshot()

        _, changed = registry.merge(sighting)

        assert changed is False
        assert registry.snapshot() == before

    def test_ip_only_then_mac_promotes_identity(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.7", name="printer"))
        device, _ = registry.merge(make_device("10.0.0.7", "AABBCCDDEE07"))

        assert len(registry) == 1
        assert device.identity == "AABBCCDDEE07"
        assert device.name == "printer"
        assert registry.get("AABBCCDDEE07") is not None
        assert registry.get("10.0.0.7").mac == "AABBCCDDEE07"

    def test_snmp_name_wins_over_later_sources(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.2", "AABBCCDDEE02"))
        registry.merge(make_device("10.0.0.2", "AABBCCDDEE02", "switch1", DiscoveryMethod.SNMP))
        device, _ = registry.merge(make_device("10.0.0.2", name="other", method=DiscoveryMethod.MDNS))

        assert device.name == "switch1"
        assert device.discovery_methods == {DiscoveryMethod.ARP, DiscoveryMethod.SNMP, DiscoveryMethod.MDNS}

    def test_snmp_overwrites_existing_name_and_location(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.2", name="Unknown Device (10.0.0.2)", location="rack"))
        device, changed = registry.merge(
            make_device("10.0.0.2", name="switch1", location="closet", method=DiscoveryMethod.SNMP)
        )

        assert changed is True
        assert device.name == "switch1"
        assert device.location == "closet"

    def test_snmp_empty_values_do_not_erase(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.2", name="host", location="rack"))
        device, _ = registry.merge(make_device("10.0.0.2", method=DiscoveryMethod.SNMP))

        assert device.name == "host"
        assert device.location == "rack"

    def test_other_sources_fill_only_empty_fields(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.3", name="tv"))
        device, _ = registry.merge(make_device(
            "10.0.0.3", name="Living Room TV", method=DiscoveryMethod.SSDP,
            custom_name="Model X", location="Smart TV",
        ))

        assert device.name == "tv"
        assert device.custom_name == "Model X"
        assert device.location == "Smart TV"

    def test_manufacturer_fills_only_when_empty(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.4", "AABBCCDDEE04", manufacturer="Intel"))
        device, _ = registry.merge(make_device("10.0.0.4", "AABBCCDDEE04", manufacturer="Realtek"))

        assert device.manufacturer == "Intel"

    def test_liveness_and_last_seen_take_sighting_values(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.5", last_seen=datetime(2024, 1, 1)))
        later = datetime(2024, 1, 2)
        device, changed = registry.merge(make_device("10.0.0.5", last_seen=later, is_online=False))

        assert changed is True
        assert device.last_seen == later
        assert device.is_online is False

    def test_different_macs_on_same_ip_are_separate_devices(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.6", "AABBCCDDEE06"))
        registry.merge(make_device("10.0.0.6", "AABBCCDDEE66"))

        assert len(registry) == 2

    def test_mac_match_tracks_ip_change(self):
        registry = DeviceRegistry()
        registry.merge(make_device("10.0.0.8", "AABBCCDDEE08"))
        device, _ = registry.merge(make_device("10.0.0.9", "AABBCCDDEE08"))

        assert len(registry) == 1
        assert device.ip == "10.0.0.9"
        assert registry.get("10.0.0.8") is None

    def test_returned_snapshot_is_independent(self):
        registry = DeviceRegistry()
        device, _ = registry.merge(make_device("10.0.0.1", name="a"))
        device.name = "mutated"
        device.discovery_methods.add(DiscoveryMethod.SSDP)

        stored = registry.get("10.0.0.1")
        assert stored.name == "a"
        assert stored.discovery_methods == {DiscoveryMethod.ARP}

    def test_snapshot_ordered_by_ip(self):
        registry = DeviceRegistry()
        for ip in ("10.0.0.20", "10.0.0.3", "10.0.0.100"):
            registry.merge(make_device(ip))

        assert [d.ip for d in registry.snapshot()] == ["10.0.0.3", "10.0.0.20", "10.0.0.100"]

    def test_concurrent_merges_keep_one_entry_per_identity(self):
        registry = DeviceRegistry()

        def worker(method):
            for i in range(1, 51):
                registry.merge(make_device(f"10.0.0.{i}", method=method))

        threads = [threading.Thread(target=worker, args=(m,)) for m in DiscoveryMethod]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(registry) == 50
        assert all(d.discovery_methods == set(DiscoveryMethod) for d in registry.snapshot())
