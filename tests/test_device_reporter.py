"""Tests for inventory report output."""

import csv
import json
from datetime import datetime

import pytest

from lan_discovery.core.data_models import DiscoveryMethod, InterfaceInfo, ScanSession, ScanState
from lan_discovery.utils.device_reporter import CSV_HEADER, DeviceReporter, load_csv, merge_previous_inventory

from .conftest import make_device


@pytest.fixture
def session():
    switch = make_device("10.0.0.1", "AABBCCDDEE01", "switch1", location="closet, rack 2",
                         manufacturer="Intel Corporation")
    switch.discovery_methods = {DiscoveryMethod.SNMP, DiscoveryMethod.ARP}
    tv = make_device("10.0.0.7", name="Living Room TV", method=DiscoveryMethod.SSDP, custom_name="Vision 55")
    return ScanSession(
        interface=InterfaceInfo(name="eth0", ip_address="10.0.0.5", netmask="255.255.255.0"),
        address_range=[f"10.0.0.{i}" for i in range(1, 255)],
        state=ScanState.COMPLETED,
        started_at=datetime(2024, 3, 1, 9, 30, 0),
        finished_at=datetime(2024, 3, 1, 9, 30, 42),
        devices=[switch, tv],
        phase_durations={"arp": 12.5},
    )


class TestDeviceReporter:

    def test_json_report(self, tmp_path, session):
        path = DeviceReporter(str(tmp_path)).write(session, "json")

        assert path.endswith("lan_discovery_20240301_093000.json")
        with open(path, encoding="utf-8") as f:
            report = json.load(f)
        assert report["scan_metadata"]["interface"] == "eth0"
        assert report["scan_metadata"]["addresses_scanned"] == 254
        assert report["scan_metadata"]["state"] == "completed"
        assert report["scan_metadata"]["duration"] == 42
        assert report["devices"][0]["discovery_methods"] == ["ARP", "SNMP"]
        assert report["devices"][1]["custom_name"] == "Vision 55"

    def test_csv_report(self, tmp_path, session):
        path = DeviceReporter(str(tmp_path)).write(session, "csv")

        with open(path, encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == CSV_HEADER
        assert rows[1] == [
            "switch1", "10.0.0.1", "AABBCCDDEE01", "True", "", "closet, rack 2",
            "Intel Corporation", "2024-01-01T12:00:00", "ARP,SNMP",
        ]
        assert rows[2][8] == "SSDP"

    def test_csv_loads_back(self, tmp_path, session):
        path = DeviceReporter(str(tmp_path)).write(session, "csv")

        devices = load_csv(path)

        assert devices == session.devices

    def test_file_collision_gets_suffix(self, tmp_path, session):
        reporter = DeviceReporter(str(tmp_path))

        first = reporter.write(session, "json")
        second = reporter.write(session, "json")

        assert first != second
        assert second.endswith("lan_discovery_20240301_093000_001.json")

    def test_creates_output_directory(self, tmp_path, session):
        target = tmp_path / "nested" / "reports"
        DeviceReporter(str(target)).write(session, "csv")
        assert len(list(target.iterdir())) == 1

    def test_unsupported_format(self, tmp_path, session):
        with pytest.raises(ValueError):
            DeviceReporter(str(tmp_path)).write(session, "xml")


class TestMergePreviousInventory:

    def test_unseen_devices_are_carried_offline(self):
        current = [
            make_device("10.0.0.1", "AABBCCDDEE01", "router"),
            make_device("10.0.0.7", name="tv"),
        ]
        previous = [
            make_device("10.0.0.2", "AABBCCDDEE01", "router-old"),
            make_device("10.0.0.7", "AABBCCDDEE07", "tv-old"),
            make_device("10.0.0.30", name="printer"),
            make_device("10.0.0.1", "AABBCCDDEE99", "replaced-nic"),
        ]

        merged = merge_previous_inventory(current, previous)

        assert [d.name for d in merged] == ["router", "tv", "printer", "replaced-nic"]
        assert [d.is_online for d in merged] == [True, True, False, False]
        assert merged[2].last_seen == datetime(2024, 1, 1, 12, 0, 0)

    def test_empty_previous_inventory(self):
        current = [make_device("10.0.0.1")]
        assert merge_previous_inventory(current, []) == current
