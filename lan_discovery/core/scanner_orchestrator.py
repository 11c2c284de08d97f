"""
Scan Orchestrator for LAN Discovery Module.

This module provides the ScanOrchestrator class that runs one discovery
session: ARP → SNMP → mDNS + SSDP, merging every sighting into a
DeviceRegistry and streaming changed devices to the caller as they happen.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Callable, Dict, Optional

from .address_range import calculate_address_range
from .cancellation import CancellationToken
from .data_models import Device, DiscoveryMethod, InterfaceInfo, ScanSession, ScanState
from .device_registry import DeviceRegistry
from ..config.config_loader import ARPConfig, ConfigLoader, DiscoveryConfig, SNMPConfig
from ..scanners.arp_scanner import ARPScanner
from ..scanners.mdns_discoverer import MDNSDiscoverer
from ..scanners.snmp_prober import SNMPProber
from ..scanners.ssdp_discoverer import SSDPDiscoverer
from ..utils.error_handler import (
    ConfigurationError,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    ErrorType,
    ScanCancelledError,
)
from ..utils.logger import Logger, get_logger
from ..utils.mac_vendor import MacVendorResolver

DeviceObserver = Callable[[Device], None]


class ScanOrchestrator:
    """
    Sequences the discovery phases of a scan session.

    The observer passed to ``scan`` may be called concurrently from worker
    threads. It is never called once the session has left RUNNING: the
    transition to a terminal state waits for callbacks already in progress.
    """

    def __init__(
        self,
        config_dir: Optional[str] = None,
        arp_config: Optional[ARPConfig] = None,
        snmp_config: Optional[SNMPConfig] = None,
        discovery_config: Optional[DiscoveryConfig] = None,
        arp_scanner: Optional[ARPScanner] = None,
        snmp_prober: Optional[SNMPProber] = None,
        mdns_discoverer: Optional[MDNSDiscoverer] = None,
        ssdp_discoverer: Optional[SSDPDiscoverer] = None,
        vendor_resolver: Optional[MacVendorResolver] = None,
        logger: Optional[Logger] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Initialize the scan orchestrator.

        Configurations not passed in are loaded from ``config_dir``. Scanners
        not passed in are built from the configurations; the multicast
        discoverers are then bound to the scanned interface at scan time.

        Args:
            config_dir: Directory containing configuration files (optional)
            arp_config: ARP phase configuration
            snmp_config: SNMP phase configuration
            discovery_config: Multicast phase configuration and phase toggles
            arp_scanner: ARP scanner to use instead of the configured strategy
            snmp_prober: SNMP prober to use
            mdns_discoverer: mDNS discoverer to use
            ssdp_discoverer: SSDP discoverer to use
            vendor_resolver: MAC vendor resolver (shared across sessions)
            logger: Logger instance
            error_handler: ErrorHandler absorbing phase failures
        """
        self.logger = logger or get_logger(__name__)
        self.error_handler = error_handler or ErrorHandler(self.logger)

        config_loader = ConfigLoader(config_dir, self.logger)
        self.arp_config = arp_config or config_loader.load_arp_config()
        self.snmp_config = snmp_config or config_loader.load_snmp_config()
        self.discovery_config = discovery_config or config_loader.load_discovery_config()

        self.arp_scanner = arp_scanner or self._create_arp_scanner()
        self.snmp_prober = snmp_prober or SNMPProber(self.snmp_config, self.logger, self.error_handler)
        self.mdns_discoverer = mdns_discoverer
        self.ssdp_discoverer = ssdp_discoverer
        self.vendor_resolver = vendor_resolver or MacVendorResolver(self.logger)

        self._state = ScanState.IDLE
        self._callback_guard = threading.Condition()
        self._callbacks_in_flight = 0
        self._on_device: Optional[DeviceObserver] = None
        self._cancel: Optional[CancellationToken] = None

    @property
    def state(self) -> ScanState:
        with self._callback_guard:
            return self._state

    def _create_arp_scanner(self) -> ARPScanner:
        if self.arp_config.method == "scapy":
            # scapy is only imported when the packet strategy is selected
            from ..scanners.scapy_arp_scanner import ScapyARPScanner
            return ScapyARPScanner(self.arp_config, self.logger, self.error_handler)
        return ARPScanner(self.arp_config, self.logger, self.error_handler)

    def scan(
        self,
        interface: InterfaceInfo,
        on_device: Optional[DeviceObserver] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> ScanSession:
        """
        Run a complete discovery session on ``interface``.

        Args:
            interface: Interface whose subnet is scanned
            on_device: Called with a snapshot of each new or changed device
            cancel: Caller-owned cancellation token

        Returns:
            ScanSession: Terminal session (COMPLETED or CANCELLED) with the
            final device snapshot

        Raises:
            ConfigurationError: If the interface cannot be scanned; the
                session state is FAILED
            RuntimeError: If a scan is already running on this orchestrator
        """
        with self._callback_guard:
            if self._state == ScanState.RUNNING:
                raise RuntimeError("A scan is already running")
            self._on_device = on_device
            self._cancel = cancel or CancellationToken()
            self._state = ScanState.RUNNING

        cancel = self._cancel
        registry = DeviceRegistry()
        session = ScanSession(interface=interface, state=ScanState.RUNNING, started_at=datetime.now())

        self.logger.section("LAN DISCOVERY SCAN")

        try:
            host_ip, netmask = interface.ipv4_config()
            session.address_range = calculate_address_range(host_ip, netmask)
            self.logger.network_info(interface.name, host_ip, netmask, len(session.address_range))

            self._run_phase(session, "arp", self._execute_arp_phase, interface, registry, cancel)
            cancel.raise_if_cancelled()

            if self.discovery_config.enable_snmp:
                self._run_phase(session, "snmp", self._execute_snmp_phase, registry, cancel)
                cancel.raise_if_cancelled()

            if self.discovery_config.enable_mdns or self.discovery_config.enable_ssdp:
                self._run_phase(
                    session, "multicast", self._execute_multicast_phase, interface, session, registry, cancel
                )
                cancel.raise_if_cancelled()

        except ScanCancelledError as e:
            self.logger.warning(f"Scan cancelled: {e}")
            self._finish(session, registry, ScanState.CANCELLED)
            return session
        except ConfigurationError as e:
            self.error_handler.handle_error(e, ErrorContext(
                error_type=ErrorType.CONFIGURATION_ERROR,
                severity=ErrorSeverity.CRITICAL,
                operation="scan",
                component=type(self).__name__,
                target=interface.name,
            ))
            self._finish(session, registry, ScanState.FAILED)
            raise
        except Exception:
            self._finish(session, registry, ScanState.FAILED)
            raise

        self._finish(session, registry, ScanState.COMPLETED)
        self.logger.success(
            f"Scan completed: {len(session.devices)} devices in {session.duration:.2f} seconds"
        )
        return session

    def _finish(self, session: ScanSession, registry: DeviceRegistry, state: ScanState) -> None:
        self._transition(state)
        session.state = state
        session.finished_at = datetime.now()
        session.devices = registry.snapshot()

        error_stats = self.error_handler.get_statistics()
        if error_stats:
            self.logger.debug(f"Absorbed errors by type: {error_stats}")

    def _transition(self, state: ScanState) -> None:
        """Enter ``state``; terminal states wait for in-progress callbacks."""
        with self._callback_guard:
            self._state = state
            if state.is_terminal:
                while self._callbacks_in_flight:
                    self._callback_guard.wait()

    def _run_phase(self, session: ScanSession, name: str, phase: Callable, *args) -> None:
        """
        Run one phase, timing it and absorbing unexpected failures.

        Cancellation and configuration errors propagate; anything else is
        recorded in the session and the scan moves on to the next phase.
        """
        self.logger.section(f"{name.upper()} PHASE")
        phase_start = time.monotonic()
        try:
            phase(*args)
        except (ScanCancelledError, ConfigurationError):
            raise
        except Exception as e:
            context = ErrorContext(
                error_type=ErrorType.NETWORK_ERROR,
                severity=ErrorSeverity.HIGH,
                operation=f"{name}_phase",
                component=type(self).__name__,
            )
            self.error_handler.handle_error(e, context)
            session.errors.append(f"{name} phase failed: {e}")
        finally:
            session.phase_durations[name] = time.monotonic() - phase_start

    def _merge(self, registry: DeviceRegistry, sighting: Device) -> None:
        device, changed = registry.merge(sighting)
        if changed:
            self._notify(device)

    def _notify(self, device: Device) -> None:
        with self._callback_guard:
            if self._state != ScanState.RUNNING or self._on_device is None:
                return
            if self._cancel is not None and self._cancel.is_cancelled:
                return
            observer = self._on_device
            self._callbacks_in_flight += 1

        try:
            observer(device)
        except Exception as e:
            self.logger.warning(f"Device observer failed for {device.ip}: {e}")
        finally:
            with self._callback_guard:
                self._callbacks_in_flight -= 1
                if not self._callbacks_in_flight:
                    self._callback_guard.notify_all()

    def _decorate(self, device: Device, cancel: CancellationToken) -> Device:
        """
        Fill the manufacturer of a MAC-bearing ARP sighting.

        Once cancellation is requested only cached descriptions are used, so
        no new inventory query starts.
        """
        if device.mac and not device.manufacturer:
            device.manufacturer = self.vendor_resolver.resolve(device.mac, query=not cancel.is_cancelled)
        return device

    def _execute_arp_phase(
        self, interface: InterfaceInfo, registry: DeviceRegistry, cancel: CancellationToken
    ) -> None:
        def on_arp_device(device: Device) -> None:
            self._merge(registry, self._decorate(device, cancel))

        try:
            devices = self.arp_scanner.scan(interface, cancel, on_device=on_arp_device)
        except ScanCancelledError as e:
            for device in e.partial_results or []:
                registry.merge(self._decorate(device, cancel))
            raise

        for device in devices:
            self._merge(registry, self._decorate(device, cancel))

        cancel.raise_if_cancelled()
        self.logger.info(f"ARP phase: {len(registry)} devices in registry")

    def _execute_snmp_phase(self, registry: DeviceRegistry, cancel: CancellationToken) -> None:
        targets = registry.snapshot()
        if not targets:
            self.logger.info("No devices to probe with SNMP")
            return

        self.logger.info(
            f"Probing {len(targets)} devices with SNMP "
            f"(max {self.snmp_config.max_parallel} in parallel)"
        )
        responded = 0

        with ThreadPoolExecutor(max_workers=self.snmp_config.max_parallel) as executor:
            future_to_device = {
                executor.submit(self._probe_device, device, cancel): device
                for device in targets
            }

            for future in as_completed(future_to_device):
                device = future_to_device[future]
                if cancel.is_cancelled:
                    for pending in future_to_device:
                        pending.cancel()
                    continue
                try:
                    result = future.result()
                except Exception as e:
                    self.error_handler.handle_error(e, ErrorContext(
                        error_type=ErrorType.NETWORK_ERROR,
                        severity=ErrorSeverity.LOW,
                        operation="probe",
                        component=type(self.snmp_prober).__name__,
                        target=device.ip,
                    ))
                    continue
                if not result:
                    continue

                responded += 1
                self._merge(registry, Device(
                    ip=device.ip,
                    mac=device.mac,
                    name=result.get("name", ""),
                    location=result.get("location", ""),
                    is_online=True,
                    last_seen=datetime.now(),
                    discovery_methods={DiscoveryMethod.SNMP},
                ))

        self.logger.info(f"SNMP phase: {responded} of {len(targets)} devices answered")

    def _probe_device(self, device: Device, cancel: CancellationToken) -> Optional[Dict[str, str]]:
        if cancel.is_cancelled:
            return None
        return self.snmp_prober.probe(device.ip, cancel=cancel)

    def _execute_multicast_phase(
        self,
        interface: InterfaceInfo,
        session: ScanSession,
        registry: DeviceRegistry,
        cancel: CancellationToken,
    ) -> None:
        config = self.discovery_config

        def on_sighting(sighting: Device) -> None:
            self._merge(registry, sighting)

        with ThreadPoolExecutor(max_workers=2) as executor:
            future_to_name = {}
            if config.enable_mdns:
                discoverer = self.mdns_discoverer or MDNSDiscoverer(
                    self.logger, self.error_handler, config.poll_timeout, interface.ip_address
                )
                future_to_name[
                    executor.submit(discoverer.discover, config.mdns_duration, cancel, on_sighting)
                ] = "mdns"
            if config.enable_ssdp:
                discoverer = self.ssdp_discoverer or SSDPDiscoverer(
                    self.logger,
                    self.error_handler,
                    config.poll_timeout,
                    config.http_timeout,
                    interface_ip=interface.ip_address,
                )
                future_to_name[
                    executor.submit(discoverer.discover, config.ssdp_duration, cancel, on_sighting)
                ] = "ssdp"

            for future in as_completed(future_to_name):
                name = future_to_name[future]
                try:
                    sightings = future.result()
                except Exception as e:
                    self.error_handler.handle_error(e, ErrorContext(
                        error_type=ErrorType.NETWORK_ERROR,
                        severity=ErrorSeverity.MEDIUM,
                        operation="discover",
                        component=name,
                    ))
                    session.errors.append(f"{name} discovery failed: {e}")
                    continue
                self.logger.info(f"{name} discovery: {len(sightings)} responders")
