"""Tests for the mDNS multicast discoverer (socket mocked)."""

import socket
import struct
import time
from unittest.mock import Mock, patch

import pytest

from lan_discovery.core.cancellation import CancellationToken
from lan_discovery.core.data_models import DiscoveryMethod
from lan_discovery.scanners.mdns_discoverer import MDNS_ADDRESS, MDNS_PORT, MDNSDiscoverer, build_query

MODULE = "lan_discovery.scanners.mdns_discoverer"


def scripted_socket(datagrams):
    """Socket whose recvfrom replays ``datagrams`` then keeps timing out."""
    pending = list(datagrams)
    sock = Mock()

    def recvfrom(_size):
        if pending:
            item = pending.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        time.sleep(0.01)
        raise socket.timeout()

    sock.recvfrom.side_effect = recvfrom
    return sock


class TestBuildQuery:

    def test_service_enumeration_query(self):
        query = build_query()
        assert struct.unpack("!6H", query[:12]) == (0, 0, 1, 0, 0, 0)
        assert b"\x09_services\x07_dns-sd\x04_udp\x05local\x00" in query
        assert struct.unpack("!2H", query[-4:]) == (12, 1)


class TestMDNSDiscoverer:

    @pytest.fixture
    def discoverer(self):
        return MDNSDiscoverer(poll_timeout=0.01)

    def test_each_responding_ip_is_one_sighting(self, discoverer):
        sock = scripted_socket([
            (b"\x00" * 12, ("10.0.0.20", 5353)),
            socket.timeout(),
            (b"\x00" * 40, ("10.0.0.20", 5353)),
            (b"garbage", ("10.0.0.21", 5353)),
        ])
        seen = []
        names = {"10.0.0.20": "tv.local"}

        with patch.object(discoverer, "_open_socket", return_value=sock), \
             patch(f"{MODULE}.reverse_dns", side_effect=names.get):
            sightings = discoverer.discover(duration=0.2, on_sighting=seen.append)

        assert [s.ip for s in sightings] == ["10.0.0.20", "10.0.0.21"]
        assert [s.name for s in sightings] == ["tv.local", "mDNS Device (10.0.0.21)"]
        assert all(s.discovery_methods == {DiscoveryMethod.MDNS} for s in sightings)
        assert [s.ip for s in seen] == ["10.0.0.20", "10.0.0.21"]
        sock.sendto.assert_called_once_with(build_query(), (MDNS_ADDRESS, MDNS_PORT))
        sock.close.assert_called_once()

    def test_stops_when_cancelled(self, discoverer):
        cancel = CancellationToken()
        cancel.cancel()
        sock = scripted_socket([(b"", ("10.0.0.20", 5353))])

        started = time.monotonic()
        with patch.object(discoverer, "_open_socket", return_value=sock):
            sightings = discoverer.discover(duration=5, cancel=cancel)

        assert sightings == []
        assert time.monotonic() - started < 1
        sock.close.assert_called_once()

    def test_socket_open_failure_returns_empty(self, discoverer):
        with patch.object(discoverer, "_open_socket", side_effect=OSError("no multicast route")):
            assert discoverer.discover(duration=0.1) == []

    def test_receive_error_ends_with_what_was_seen(self, discoverer):
        sock = scripted_socket([(b"", ("10.0.0.30", 5353)), OSError("network down")])

        with patch.object(discoverer, "_open_socket", return_value=sock), \
             patch(f"{MODULE}.reverse_dns", return_value=None):
            sightings = discoverer.discover(duration=5)

        assert [s.ip for s in sightings] == ["10.0.0.30"]
        sock.close.assert_called_once()
