"""Tests for ScanOrchestrator phase sequencing, merging and cancellation."""

import threading
import time
from unittest.mock import Mock

import pytest

from lan_discovery.config.config_loader import ARPConfig, DiscoveryConfig, SNMPConfig
from lan_discovery.core.cancellation import CancellationToken
from lan_discovery.core.data_models import DiscoveryMethod, InterfaceInfo, ScanState
from lan_discovery.core.scanner_orchestrator import ScanOrchestrator
from lan_discovery.scanners.arp_scanner import ARPScanner
from lan_discovery.scanners.mdns_discoverer import MDNSDiscoverer
from lan_discovery.scanners.scapy_arp_scanner import ScapyARPScanner
from lan_discovery.scanners.snmp_prober import SNMPProber
from lan_discovery.scanners.ssdp_discoverer import SSDPDiscoverer
from lan_discovery.utils.error_handler import ConfigurationError, ScanCancelledError
from lan_discovery.utils.mac_vendor import MacVendorResolver

from .conftest import make_device


def arp_returning(devices):
    def scan(interface, cancel=None, on_device=None):
        for device in devices:
            if on_device:
                on_device(device.copy())
        return [device.copy() for device in devices]
    return scan


def discover_emitting(sightings):
    def discover(duration, cancel=None, on_sighting=None):
        for sighting in sightings:
            on_sighting(sighting.copy())
        return list(sightings)
    return discover


@pytest.fixture
def parts(mock_logger, error_handler):
    arp = Mock(spec=ARPScanner)
    arp.scan.side_effect = arp_returning([])
    snmp = Mock(spec=SNMPProber)
    snmp.probe.return_value = None
    mdns = Mock(spec=MDNSDiscoverer)
    mdns.discover.side_effect = discover_emitting([])
    ssdp = Mock(spec=SSDPDiscoverer)
    ssdp.discover.side_effect = discover_emitting([])
    vendor = Mock(spec=MacVendorResolver)
    vendor.resolve.return_value = ""
    return {
        "arp_scanner": arp,
        "snmp_prober": snmp,
        "mdns_discoverer": mdns,
        "ssdp_discoverer": ssdp,
        "vendor_resolver": vendor,
        "logger": mock_logger,
        "error_handler": error_handler,
    }


def build(parts, **overrides):
    kwargs = dict(
        arp_config=ARPConfig(),
        snmp_config=SNMPConfig(),
        discovery_config=DiscoveryConfig(mdns_duration=0, ssdp_duration=0),
    )
    kwargs.update(parts)
    kwargs.update(overrides)
    return ScanOrchestrator(**kwargs)


class TestScanOrchestrator:

    def test_initial_state_is_idle(self, parts):
        assert build(parts).state == ScanState.IDLE

    def test_full_scan_merges_all_phases(self, parts, interface):
        parts["arp_scanner"].scan.side_effect = arp_returning([
            make_device("10.0.0.1", "AABBCCDDEE01", "Unknown Device (10.0.0.1)"),
            make_device("10.0.0.7", name="Unknown Device (10.0.0.7)"),
        ])
        parts["vendor_resolver"].resolve.side_effect = lambda mac: "Intel Corporation" if mac else ""
        parts["snmp_prober"].probe.side_effect = lambda ip, cancel=None: (
            {"name": "switch1", "location": "closet", "description": "IOS"} if ip == "10.0.0.1" else None
        )
        parts["mdns_discoverer"].discover.side_effect = discover_emitting([
            make_device("10.0.0.1", name="other", method=DiscoveryMethod.MDNS),
            make_device("10.0.0.12", name="speaker.local", method=DiscoveryMethod.MDNS),
        ])
        parts["ssdp_discoverer"].discover.side_effect = discover_emitting([
            make_device("10.0.0.7", name="TV", method=DiscoveryMethod.SSDP, custom_name="Vision 55"),
        ])
        updates = []

        session = build(parts).scan(interface, on_device=updates.append)

        assert session.state == ScanState.COMPLETED
        assert len(session.address_range) == 254
        by_ip = {d.ip: d for d in session.devices}
        assert list(by_ip) == ["10.0.0.1", "10.0.0.7", "10.0.0.12"]

        switch = by_ip["10.0.0.1"]
        assert switch.name == "switch1"
        assert switch.location == "closet"
        assert switch.manufacturer == "Intel Corporation"
        assert switch.discovery_methods == {DiscoveryMethod.ARP, DiscoveryMethod.SNMP, DiscoveryMethod.MDNS}

        tv = by_ip["10.0.0.7"]
        assert tv.name == "Unknown Device (10.0.0.7)"
        assert tv.custom_name == "Vision 55"
        assert tv.manufacturer == ""
        assert tv.discovery_methods == {DiscoveryMethod.ARP, DiscoveryMethod.SSDP}

        assert {u.ip for u in updates} == {"10.0.0.1", "10.0.0.7", "10.0.0.12"}
        assert set(session.phase_durations) == {"arp", "snmp", "multicast"}
        assert session.errors == []

    def test_snmp_probes_every_registry_device(self, parts, interface):
        parts["arp_scanner"].scan.side_effect = arp_returning([
            make_device(f"10.0.0.{i}") for i in range(1, 6)
        ])

        build(parts).scan(interface)

        probed = sorted(call.args[0] for call in parts["snmp_prober"].probe.call_args_list)
        assert probed == sorted(f"10.0.0.{i}" for i in range(1, 6))

    def test_snmp_concurrency_is_bounded(self, parts, interface):
        parts["arp_scanner"].scan.side_effect = arp_returning([
            make_device(f"10.0.0.{i}") for i in range(1, 21)
        ])
        lock = threading.Lock()
        active = {"now": 0, "max": 0}

        def probe(ip, cancel=None):
            with lock:
                active["now"] += 1
                active["max"] = max(active["max"], active["now"])
            time.sleep(0.02)
            with lock:
                active["now"] -= 1
            return None

        parts["snmp_prober"].probe.side_effect = probe

        build(parts, snmp_config=SNMPConfig(max_parallel=3)).scan(interface)

        assert 1 <= active["max"] <= 3

    def test_disabled_phases_are_skipped(self, parts, interface):
        parts["arp_scanner"].scan.side_effect = arp_returning([make_device("10.0.0.1")])
        config = DiscoveryConfig(enable_snmp=False, enable_mdns=False, enable_ssdp=False)

        session = build(parts, discovery_config=config).scan(interface)

        assert session.state == ScanState.COMPLETED
        parts["snmp_prober"].probe.assert_not_called()
        parts["mdns_discoverer"].discover.assert_not_called()
        parts["ssdp_discoverer"].discover.assert_not_called()
        assert set(session.phase_durations) == {"arp"}

    def test_configuration_error_fails_session(self, parts):
        orchestrator = build(parts)

        with pytest.raises(ConfigurationError):
            orchestrator.scan(InterfaceInfo(name="eth0", ip_address="10.0.0.5"))

        assert orchestrator.state == ScanState.FAILED
        parts["arp_scanner"].scan.assert_not_called()
        assert parts["error_handler"].get_statistics() == {"configuration_error": 1}

    def test_phase_failure_is_absorbed(self, parts, interface):
        parts["arp_scanner"].scan.side_effect = RuntimeError("ping sweep crashed")
        parts["mdns_discoverer"].discover.side_effect = discover_emitting([
            make_device("10.0.0.30", name="printer.local", method=DiscoveryMethod.MDNS),
        ])

        session = build(parts).scan(interface)

        assert session.state == ScanState.COMPLETED
        assert any("arp phase failed" in error for error in session.errors)
        assert [d.ip for d in session.devices] == ["10.0.0.30"]

    def test_failing_discoverer_does_not_stop_the_other(self, parts, interface):
        parts["mdns_discoverer"].discover.side_effect = OSError("multicast unavailable")
        parts["ssdp_discoverer"].discover.side_effect = discover_emitting([
            make_device("10.0.0.40", name="TV", method=DiscoveryMethod.SSDP),
        ])

        session = build(parts).scan(interface)

        assert [d.ip for d in session.devices] == ["10.0.0.40"]
        assert any("mdns" in error for error in session.errors)

    def test_observer_errors_do_not_abort_scan(self, parts, interface):
        parts["arp_scanner"].scan.side_effect = arp_returning([make_device("10.0.0.1")])

        def observer(device):
            raise ValueError("ui closed")

        session = build(parts).scan(interface, on_device=observer)

        assert session.state == ScanState.COMPLETED
        assert len(session.devices) == 1

    def test_arp_cancellation_keeps_partial_results(self, parts, interface):
        cancel = CancellationToken()

        def scan(interface, cancel=None, on_device=None):
            found = make_device("10.0.0.1", "AABBCCDDEE01")
            on_device(found.copy())
            cancel.cancel("stop")
            raise ScanCancelledError("stop", [found])

        parts["arp_scanner"].scan.side_effect = scan
        parts["vendor_resolver"].resolve.return_value = "Intel Corporation"

        session = build(parts).scan(interface, cancel=cancel)

        assert session.state == ScanState.CANCELLED
        assert [d.ip for d in session.devices] == ["10.0.0.1"]
        assert session.devices[0].manufacturer == "Intel Corporation"
        parts["snmp_prober"].probe.assert_not_called()
        parts["mdns_discoverer"].discover.assert_not_called()

    def test_cancellation_mid_scan_is_bounded_and_silences_callbacks(self, parts, interface):
        cancel = CancellationToken()

        def slow_scan(interface, cancel=None, on_device=None):
            found = []
            for i in range(1, 255):
                if cancel.is_cancelled:
                    raise ScanCancelledError("stopped", found)
                device = make_device(f"10.0.0.{i}")
                found.append(device)
                on_device(device.copy())
                time.sleep(0.01)
            return found

        parts["arp_scanner"].scan.side_effect = slow_scan
        orchestrator = build(parts)
        states_seen = []
        result = {}

        def observer(device):
            states_seen.append(orchestrator.state)

        worker = threading.Thread(
            target=lambda: result.setdefault("session", orchestrator.scan(interface, observer, cancel))
        )
        worker.start()
        time.sleep(0.1)
        cancelled_at = time.monotonic()
        cancel.cancel()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert time.monotonic() - cancelled_at < 2
        session = result["session"]
        assert session.state == ScanState.CANCELLED
        assert orchestrator.state == ScanState.CANCELLED
        assert 0 < len(session.devices) < 254
        assert all(state == ScanState.RUNNING for state in states_seen)
        parts["snmp_prober"].probe.assert_not_called()

        count = len(states_seen)
        time.sleep(0.05)
        assert len(states_seen) == count

    def test_cancel_stops_vendor_lookups(self, parts, interface):
        cancel = CancellationToken()
        found = [make_device(f"10.0.0.{i}", f"AABBCCDDEE{i:02d}") for i in range(1, 11)]
        parts["arp_scanner"].scan.side_effect = lambda interface, cancel=None, on_device=None: [
            device.copy() for device in found
        ]
        queried = []

        def resolve(mac, query=True):
            if not query:
                return ""
            queried.append(mac)
            time.sleep(0.3)
            return "Intel Corporation"

        parts["vendor_resolver"].resolve.side_effect = resolve
        timer = threading.Timer(0.2, cancel.cancel)
        timer.start()
        started = time.monotonic()

        session = build(parts).scan(interface, cancel=cancel)

        timer.join()
        assert time.monotonic() - started < 1.0
        assert session.state == ScanState.CANCELLED
        assert len(queried) == 1
        assert len(session.devices) == 10
        parts["snmp_prober"].probe.assert_not_called()

    def test_cancel_during_snmp_stops_new_probes(self, parts, interface):
        cancel = CancellationToken()
        parts["arp_scanner"].scan.side_effect = arp_returning([
            make_device(f"10.0.0.{i}") for i in range(1, 101)
        ])
        probed = []

        def probe(ip, cancel=None):
            probed.append(ip)
            cancel.cancel()
            return None

        parts["snmp_prober"].probe.side_effect = probe

        session = build(parts, snmp_config=SNMPConfig(max_parallel=2)).scan(interface, cancel=cancel)

        assert session.state == ScanState.CANCELLED
        assert len(probed) < 100
        parts["mdns_discoverer"].discover.assert_not_called()

    def test_scapy_method_selects_packet_strategy(self, mock_logger, error_handler):
        orchestrator = ScanOrchestrator(
            arp_config=ARPConfig(method="scapy"),
            snmp_config=SNMPConfig(),
            discovery_config=DiscoveryConfig(),
            vendor_resolver=Mock(spec=MacVendorResolver),
            logger=mock_logger,
            error_handler=error_handler,
        )
        assert isinstance(orchestrator.arp_scanner, ScapyARPScanner)

    def test_ping_method_selects_ping_strategy(self, mock_logger, error_handler):
        orchestrator = ScanOrchestrator(
            arp_config=ARPConfig(),
            snmp_config=SNMPConfig(),
            discovery_config=DiscoveryConfig(),
            vendor_resolver=Mock(spec=MacVendorResolver),
            logger=mock_logger,
            error_handler=error_handler,
        )
        assert type(orchestrator.arp_scanner) is ARPScanner

    def test_orchestrator_can_scan_again_after_finishing(self, parts, interface):
        parts["arp_scanner"].scan.side_effect = arp_returning([make_device("10.0.0.1")])
        orchestrator = build(parts)

        first = orchestrator.scan(interface)
        second = orchestrator.scan(interface)

        assert first.state == second.state == ScanState.COMPLETED
        assert first is not second
