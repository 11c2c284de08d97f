"""
Main entry point for the LAN Discovery Module.

This module provides the command-line interface for the discovery tool,
including argument parsing, pre-flight checks, a live device table and
graceful cancellation on SIGINT/SIGTERM.
"""

import argparse
import csv
import signal
import sys
from pathlib import Path
from typing import Optional

from . import __version__
from .config.config_loader import ConfigLoader
from .core.cancellation import CancellationToken
from .core.data_models import Device, ScanSession, ScanState
from .core.network_detector import NetworkDetector
from .core.scanner_orchestrator import ScanOrchestrator
from .utils.device_reporter import DeviceReporter, load_csv, merge_previous_inventory
from .utils.error_handler import ConfigurationError, ErrorHandler, ToolValidator
from .utils.logger import LogLevel, get_logger, set_log_level

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 130

TABLE_HEADERS = ["IP", "MAC", "Name", "Manufacturer", "Methods"]
TABLE_WIDTHS = [15, 12, 32, 30, 16]


class LanDiscoveryApp:
    """
    Main application class for the LAN Discovery Module.

    Handles the CLI, pre-flight checks and the scan lifecycle.
    """

    def __init__(self):
        """Initialize the application."""
        self.logger = get_logger(__name__)
        self.error_handler = ErrorHandler(self.logger)
        self.cancel_token = CancellationToken()
        self.orchestrator: Optional[ScanOrchestrator] = None

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        """
        Handle shutdown signals.

        The first signal requests a graceful stop; the scan winds down and
        the partial inventory is still reported. A second one exits at once.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_names = {signal.SIGINT: "SIGINT", signal.SIGTERM: "SIGTERM"}
        signal_name = signal_names.get(signum, f"Signal {signum}")

        if not self.cancel_token.is_cancelled:
            self.logger.warning(f"Received {signal_name} - stopping scan, press Ctrl+C again to force quit")
            self.cancel_token.cancel(f"Interrupted by {signal_name}")
        else:
            self.logger.error("Force shutdown requested - terminating immediately")
            sys.exit(EXIT_ERROR)

    def _perform_preflight_checks(self) -> bool:
        """
        Check for the external commands the ping strategy uses.

        Returns:
            bool: True if every required tool is available
        """
        self.logger.section("PRE-FLIGHT CHECKS")
        required_ok, missing = ToolValidator(self.error_handler).validate_all_tools()

        if required_ok and not missing:
            self.logger.success("All pre-flight checks passed")
        elif required_ok:
            self.logger.warning(f"Optional tools not found: {', '.join(missing)}")
        else:
            self.logger.error("Required tools are missing - see messages above")
        return required_ok

    def list_interfaces(self) -> int:
        """Print the interfaces a scan can run on."""
        interfaces = NetworkDetector(self.logger).list_interfaces()
        if not interfaces:
            self.logger.warning("No up interface with an IPv4 address was found")
            return EXIT_ERROR

        widths = [24, 15, 15, 12]
        self.logger.table_header(["Interface", "IP", "Netmask", "MAC"], widths)
        for interface in interfaces:
            self.logger.table_row(
                [interface.name, interface.ip_address, interface.netmask, interface.mac_address or ""],
                widths,
            )
        return EXIT_OK

    def _print_device(self, device: Device) -> None:
        self.logger.table_row(
            [device.ip, device.mac, device.name, device.manufacturer, device.methods_label()],
            TABLE_WIDTHS,
        )

    def _merge_previous(self, session: ScanSession, path: str) -> None:
        """Add devices from an earlier CSV inventory that this scan missed."""
        try:
            previous = load_csv(path)
        except (OSError, csv.Error) as e:
            self.logger.warning(f"Could not load previous inventory {path}: {e}")
            return

        found = len(session.devices)
        session.devices = merge_previous_inventory(session.devices, previous)
        self.logger.info(
            f"Previous inventory: {len(previous)} devices, {len(session.devices) - found} carried over as offline"
        )

    def run(self, args: argparse.Namespace) -> int:
        """
        Run one discovery scan.

        Args:
            args: Parsed command line arguments

        Returns:
            int: Exit code (0 completed, 130 cancelled, 1 failure)
        """
        if args.config_dir and not Path(args.config_dir).is_dir():
            self.logger.error(f"Configuration directory does not exist: {args.config_dir}")
            return EXIT_ERROR

        config_loader = ConfigLoader(args.config_dir, self.logger)
        if args.init_config:
            config_loader.create_default_configs()
            return EXIT_OK

        arp_config = config_loader.load_arp_config()
        snmp_config = config_loader.load_snmp_config()
        discovery_config = config_loader.load_discovery_config()

        if args.no_snmp:
            discovery_config.enable_snmp = False
        if args.no_multicast:
            discovery_config.enable_mdns = False
            discovery_config.enable_ssdp = False

        if arp_config.method == "ping" and not self._perform_preflight_checks():
            self.logger.error("Cannot run the ping sweep without the required tools")
            return EXIT_ERROR

        try:
            interface = NetworkDetector(self.logger).get_interface(args.interface or arp_config.interface)
            if args.interface:
                arp_config.interface = args.interface

            self.orchestrator = ScanOrchestrator(
                arp_config=arp_config,
                snmp_config=snmp_config,
                discovery_config=discovery_config,
                logger=self.logger,
                error_handler=self.error_handler,
            )

            self.logger.section("DEVICES")
            self.logger.table_header(TABLE_HEADERS, TABLE_WIDTHS)
            session = self.orchestrator.scan(interface, on_device=self._print_device, cancel=self.cancel_token)

        except ConfigurationError as e:
            self.logger.error(f"Configuration error: {e}")
            return EXIT_ERROR
        except Exception as e:
            self.logger.error(f"LAN discovery failed: {e}", exception=e)
            return EXIT_ERROR

        if args.previous:
            self._merge_previous(session, args.previous)

        self.logger.section("INVENTORY")
        self.logger.table_header(TABLE_HEADERS, TABLE_WIDTHS)
        for device in session.devices:
            self._print_device(device)

        for error in session.errors:
            self.logger.warning(error)

        try:
            report_path = DeviceReporter(args.output_dir).write(session, args.format)
            self.logger.success(f"Inventory saved to: {report_path}")
        except OSError as e:
            self.logger.error(f"Could not save inventory: {e}")
            return EXIT_ERROR

        if session.state == ScanState.CANCELLED:
            self.logger.warning(f"Scan cancelled with {len(session.devices)} devices found")
            return EXIT_CANCELLED
        return EXIT_OK


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="lan_discovery",
        description="LAN Discovery Module - find devices on the local subnet using ARP, SNMP, mDNS and SSDP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m lan_discovery                           # Scan the default interface
  python -m lan_discovery --list-interfaces         # Show scannable interfaces
  python -m lan_discovery --interface eth0          # Scan a specific interface
  python -m lan_discovery --format csv              # Save the inventory as CSV
  python -m lan_discovery --no-snmp --no-multicast  # ARP phase only
  python -m lan_discovery --previous old.csv        # Keep devices missing from this scan
        """
    )

    parser.add_argument(
        "--list-interfaces",
        action="store_true",
        help="List interfaces with an IPv4 address and exit"
    )

    parser.add_argument(
        "--interface", "-i",
        type=str,
        help="Interface to scan. Defaults to the interface carrying the default route"
    )

    parser.add_argument(
        "--config-dir",
        type=str,
        help="Directory containing arp_config.yml, snmp_config.yml and discovery_config.yml. "
             "Defaults to lan_discovery/config/"
    )

    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write default configuration files into the config directory and exit"
    )

    parser.add_argument(
        "--previous",
        type=str,
        metavar="CSV",
        help="Earlier CSV inventory; devices not seen in this scan are kept as offline"
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default="lan_discovery_results",
        help="Directory for inventory reports (default: lan_discovery_results)"
    )

    parser.add_argument(
        "--format",
        choices=["json", "csv"],
        default="json",
        help="Inventory report format (default: json)"
    )

    parser.add_argument(
        "--no-snmp",
        action="store_true",
        help="Skip the SNMP phase"
    )

    parser.add_argument(
        "--no-multicast",
        action="store_true",
        help="Skip the mDNS and SSDP phase"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"LAN Discovery Module {__version__}"
    )

    return parser


def main(argv: Optional[list] = None) -> int:
    """
    Main entry point for the LAN Discovery Module.

    Returns:
        int: Exit code
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(LogLevel.DEBUG)

    app = LanDiscoveryApp()
    if args.list_interfaces:
        return app.list_interfaces()
    return app.run(args)


if __name__ == "__main__":
    sys.exit(main())
