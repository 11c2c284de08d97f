"""
SNMP prober for LAN Discovery Module.

Queries a single host for its MIB-II system group (sysDescr, sysName,
sysLocation) with a community-based GET, using the pysnmp 7.x asyncio API.
"""

import asyncio
from typing import Dict, Optional

from pysnmp.hlapi.v3arch.asyncio import (
    SnmpEngine,
    CommunityData,
    UdpTransportTarget,
    ContextData,
    ObjectType,
    ObjectIdentity,
    get_cmd,
)
from pysnmp.error import PySnmpError

from .base_scanner import BaseScanner
from ..config.config_loader import SNMPConfig
from ..core.cancellation import CancellationToken
from ..utils.error_handler import ErrorType
from ..utils.logger import Logger

SYS_DESCR_OID = "1.3.6.1.2.1.1.1.0"
SYS_NAME_OID = "1.3.6.1.2.1.1.5.0"
SYS_LOCATION_OID = "1.3.6.1.2.1.1.6.0"

SYSTEM_OIDS = (SYS_DESCR_OID, SYS_NAME_OID, SYS_LOCATION_OID)


class SNMPProber(BaseScanner):
    """
    Stateless single-host SNMP system-info query.

    Communities are tried in configured order; the first response without an
    error indication or error status wins. Each call builds and closes its own
    SnmpEngine, so ``probe`` is safe to call from many worker threads at once.
    """

    scanner_type = "SNMP"

    def __init__(self, config: Optional[SNMPConfig] = None, logger: Optional[Logger] = None, error_handler=None):
        """
        Initialize the SNMP prober.

        Args:
            config: SNMP configuration (defaults to SNMPConfig())
            logger: Logger instance for outputting probe results
            error_handler: ErrorHandler instance for absorbed failures
        """
        super().__init__(logger, error_handler)
        self.config = config or SNMPConfig()

    def probe(self, ip_address: str, cancel: Optional[CancellationToken] = None) -> Optional[Dict[str, str]]:
        """
        Query ``ip_address`` for its system description, name and location.

        Args:
            ip_address: Target IPv4 address
            cancel: Checked before each community is tried

        Returns:
            ``{"name", "location", "description"}`` from the first community
            that answered, or None if none did
        """
        for community in self.config.communities:
            if self._is_cancelled(cancel):
                return None
            try:
                values = asyncio.run(self._async_get_system(ip_address, community))
            except (PySnmpError, OSError, asyncio.TimeoutError) as e:
                self._record_failure(e, f"get[{community}]", ip_address, ErrorType.TIMEOUT_ERROR)
                continue

            if values is None:
                continue

            result = {
                "name": values.get(SYS_NAME_OID, ""),
                "location": values.get(SYS_LOCATION_OID, ""),
                "description": values.get(SYS_DESCR_OID, ""),
            }
            self._log_debug(f"SNMP response from {ip_address} (community {community}): {result['name']}")
            return result

        return None

    async def _async_get_system(self, ip_address: str, community: str) -> Optional[Dict[str, str]]:
        """
        Issue one GET for the system OIDs.

        Args:
            ip_address: Target IPv4 address
            community: Community string

        Returns:
            OID to value mapping, or None on error indication / error status
        """
        snmp_engine = SnmpEngine()
        try:
            transport_target = await UdpTransportTarget.create(
                (ip_address, self.config.port),
                timeout=self.config.timeout,
                retries=self.config.retries,
            )

            errorIndication, errorStatus, errorIndex, varBinds = await get_cmd(
                snmp_engine,
                self._create_auth_data(community),
                transport_target,
                ContextData(),
                *[ObjectType(ObjectIdentity(oid)) for oid in SYSTEM_OIDS],
                lookupMib=False,
            )
        finally:
            snmp_engine.close_dispatcher()

        if errorIndication:
            self._log_debug(f"SNMP {ip_address}/{community}: {errorIndication}")
            return None

        if errorStatus:
            problematic = varBinds[int(errorIndex) - 1][0] if errorIndex else "?"
            self._log_debug(
                f"SNMP {ip_address}/{community}: {errorStatus.prettyPrint()} at {problematic}"
            )
            return None

        values = {}
        for name, value in varBinds:
            value_str = value.prettyPrint()
            # noSuchObject / noSuchInstance come back as values, not errors, in v2c
            if value_str.startswith("No Such"):
                value_str = ""
            values[name.prettyPrint()] = value_str
        return values

    def _create_auth_data(self, community: str) -> CommunityData:
        if self.config.version == 1:
            return CommunityData(community, mpModel=0)  # SNMPv1
        return CommunityData(community, mpModel=1)  # SNMPv2c
