"""
Inventory report writer for LAN Discovery Module.

Writes the final device list of a scan session as JSON (session metadata +
devices) or as a flat CSV inventory, and reads CSV inventories back.
"""

import csv
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.data_models import Device, DiscoveryMethod, ScanSession
from .logger import get_logger

CSV_HEADER = [
    "Name",
    "IP",
    "MAC",
    "IsOnline",
    "CustomName",
    "Location",
    "Manufacturer",
    "LastSeen",
    "DiscoveryMethod",
]

SUPPORTED_FORMATS = ("json", "csv")


class DeviceReporter:
    """
    Handles generation of inventory files from scan sessions.

    Output files are named ``lan_discovery_YYYYMMDD_HHMMSS.<ext>`` after the
    session start time; an existing file gets a numeric suffix instead of
    being overwritten.
    """

    def __init__(self, output_directory: str = "lan_discovery_results"):
        """
        Initialize the reporter.

        Args:
            output_directory: Directory where reports will be saved
        """
        self.output_directory = Path(output_directory)
        self.logger = get_logger(__name__)

    def write(self, session: ScanSession, fmt: str = "json") -> str:
        """
        Write the session inventory to disk.

        Args:
            session: Finished (or cancelled) scan session
            fmt: "json" or "csv"

        Returns:
            str: Path to the generated file

        Raises:
            ValueError: If the format is not supported
            OSError: If the file cannot be written
        """
        fmt = fmt.lower()
        if fmt not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported report format: {fmt}")

        self.output_directory.mkdir(parents=True, exist_ok=True)
        filepath = self._handle_file_collision(
            self.output_directory / self._generate_filename(session.started_at or datetime.now(), fmt)
        )

        try:
            if fmt == "json":
                with open(filepath, "w", encoding="utf-8") as f:
                    json.dump(self._convert_to_json_format(session), f, indent=2, ensure_ascii=False)
            else:
                with open(filepath, "w", encoding="utf-8", newline="") as f:
                    self._write_csv_rows(f, session.devices)
        except OSError as e:
            self.logger.error(f"Failed to write report to {filepath}: {e}")
            raise

        self.logger.info(f"Report written: {filepath} ({len(session.devices)} devices)")
        return str(filepath)

    def _convert_to_json_format(self, session: ScanSession) -> Dict[str, Any]:
        interface = session.interface
        return {
            "scan_metadata": {
                "interface": interface.name,
                "host_ip": interface.ip_address,
                "netmask": interface.netmask,
                "addresses_scanned": len(session.address_range),
                "state": session.state.value,
                "started_at": session.started_at.isoformat() if session.started_at else None,
                "finished_at": session.finished_at.isoformat() if session.finished_at else None,
                "duration": round(session.duration, 2),
                "phase_durations": {k: round(v, 2) for k, v in session.phase_durations.items()},
                "errors": list(session.errors),
            },
            "devices": [device.to_dict() for device in session.devices],
        }

    @staticmethod
    def _write_csv_rows(stream, devices: List[Device]) -> None:
        writer = csv.writer(stream)
        writer.writerow(CSV_HEADER)
        for device in devices:
            writer.writerow([
                device.name,
                device.ip,
                device.mac,
                "True" if device.is_online else "False",
                device.custom_name,
                device.location,
                device.manufacturer,
                device.last_seen.isoformat(),
                device.methods_label(),
            ])

    def _generate_filename(self, timestamp: datetime, fmt: str) -> str:
        return f"lan_discovery_{timestamp.strftime('%Y%m%d_%H%M%S')}.{fmt}"

    def _handle_file_collision(self, filepath: Path) -> Path:
        """
        Handle filename collisions by adding an incremental suffix.

        Args:
            filepath: Original file path

        Returns:
            Path: Unique file path
        """
        if not filepath.exists():
            return filepath

        counter = 1
        while True:
            new_filepath = filepath.parent / f"{filepath.stem}_{counter:03d}{filepath.suffix}"
            if not new_filepath.exists():
                self.logger.debug(f"File collision detected, using filename: {new_filepath.name}")
                return new_filepath

            counter += 1
            if counter > 999:
                raise OSError(f"Too many file collisions for {filepath}")


def load_csv(path: str) -> List[Device]:
    """
    Read a CSV inventory written by DeviceReporter.

    Unknown discovery method tags are ignored; a missing or unparseable
    LastSeen becomes the load time.

    Args:
        path: CSV file path

    Returns:
        Devices in file order
    """
    devices = []
    by_value = {method.value: method for method in DiscoveryMethod}

    with open(path, "r", encoding="utf-8", newline="") as f:
        for row in csv.DictReader(f):
            methods = {
                by_value[tag.strip()]
                for tag in (row.get("DiscoveryMethod") or "").split(",")
                if tag.strip() in by_value
            }
            devices.append(Device(
                ip=row.get("IP") or "",
                mac=row.get("MAC") or "",
                name=row.get("Name") or "",
                custom_name=row.get("CustomName") or "",
                location=row.get("Location") or "",
                manufacturer=row.get("Manufacturer") or "",
                is_online=(row.get("IsOnline") or "").strip().lower() == "true",
                last_seen=_parse_timestamp(row.get("LastSeen")),
                discovery_methods=methods,
            ))
    return devices


def _parse_timestamp(value: Optional[str]) -> datetime:
    try:
        return datetime.fromisoformat(value) if value else datetime.now()
    except ValueError:
        return datetime.now()


def merge_previous_inventory(devices: List[Device], previous: List[Device]) -> List[Device]:
    """
    Carry devices from an earlier inventory that this scan did not see.

    A previous device matches a current one by MAC when both carry one,
    otherwise by IP. Unmatched previous devices are appended marked offline
    with their old LastSeen; matched ones are dropped in favor of the scan.

    Args:
        devices: Devices found by the current scan
        previous: Devices loaded from an earlier CSV inventory

    Returns:
        Current devices followed by the carried-over ones
    """
    macs = {device.mac for device in devices if device.mac}
    ips_without_mac = {device.ip for device in devices if not device.mac}
    ips = {device.ip for device in devices}

    carried = []
    for device in previous:
        if device.mac:
            if device.mac in macs or device.ip in ips_without_mac:
                continue
        elif device.ip in ips:
            continue
        device.is_online = False
        carried.append(device)
    return devices + carried
