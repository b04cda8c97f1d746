"""
Zabbix inventory lookup.

Looks up a single host by exact name, restricted to hosts whose
inventory OS field contains "Windows". A host that exists under the
name but is not tagged Windows counts as absent.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from .auth import Session
from .client import ZabbixClient
from .rpc import RpcFailure

logger = logging.getLogger(__name__)

WINDOWS_OS_SEARCH = "Windows"


class InterfaceType(IntEnum):
    """Zabbix host interface types."""
    AGENT = 1
    SNMP = 2
    IPMI = 3
    JMX = 4


class AddressMode(IntEnum):
    """Zabbix ``useip`` flag."""
    USE_DNS = 0
    USE_IP = 1


class HostStatus(str, Enum):
    """Monitoring status of a Zabbix host."""
    ENABLED = "enabled"
    DISABLED = "disabled"

    @classmethod
    def from_api(cls, value: Any) -> "HostStatus":
        # Zabbix: 0 = monitored, 1 = unmonitored
        return cls.DISABLED if str(value) == "1" else cls.ENABLED


class LookupStatus(str, Enum):
    """Outcome of an inventory lookup."""
    FOUND = "found"
    ABSENT = "absent"
    FAILED = "failed"


@dataclass
class NetworkInterface:
    """Host interface as stored in Zabbix."""
    type: InterfaceType
    is_primary: bool
    address_mode: AddressMode
    ip: str = ""
    dns_name: str = ""
    port: int = 10050

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port out of range: {self.port}")

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "NetworkInterface":
        return cls(
            type=InterfaceType(int(item.get("type", InterfaceType.AGENT))),
            is_primary=str(item.get("main", "0")) == "1",
            address_mode=AddressMode(int(item.get("useip", AddressMode.USE_IP))),
            ip=item.get("ip") or "",
            dns_name=item.get("dns") or "",
            port=int(item.get("port", 10050)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.name.lower(),
            "is_primary": self.is_primary,
            "address_mode": self.address_mode.name.lower(),
            "ip": self.ip,
            "dns_name": self.dns_name,
            "port": self.port,
        }


@dataclass
class MonitoredHostRecord:
    """A host as known to Zabbix."""
    host_id: str
    name: str
    status: HostStatus = HostStatus.ENABLED
    interfaces: List[NetworkInterface] = field(default_factory=list)
    inventory_os: str = ""

    @property
    def primary_interface(self) -> Optional[NetworkInterface]:
        return next((i for i in self.interfaces if i.is_primary), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host_id": self.host_id,
            "name": self.name,
            "status": self.status.value,
            "interfaces": [i.to_dict() for i in self.interfaces],
            "inventory_os": self.inventory_os,
        }


@dataclass
class LookupResult:
    """Tagged lookup outcome: found (with record), absent, or failed (with reason)."""
    host_name: str
    status: LookupStatus
    record: Optional[MonitoredHostRecord] = None
    failure: Optional[RpcFailure] = None

    @classmethod
    def found(cls, host_name: str, record: MonitoredHostRecord) -> "LookupResult":
        return cls(host_name=host_name, status=LookupStatus.FOUND, record=record)

    @classmethod
    def absent(cls, host_name: str) -> "LookupResult":
        return cls(host_name=host_name, status=LookupStatus.ABSENT)

    @classmethod
    def failed(cls, host_name: str, failure: RpcFailure) -> "LookupResult":
        return cls(host_name=host_name, status=LookupStatus.FAILED, failure=failure)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host_name": self.host_name,
            "status": self.status.value,
            "record": self.record.to_dict() if self.record else None,
            "failure": self.failure.to_dict() if self.failure else None,
        }


def build_host_get_params(host_name: str) -> Dict[str, Any]:
    """host.get parameters: exact name AND inventory OS containing Windows."""
    return {
        "output": ["host", "status"],
        "selectInterfaces": "extend",
        "selectInventory": ["os"],
        "filter": {"host": [host_name]},
        "searchInventory": {"os": WINDOWS_OS_SEARCH},
    }


def parse_host_record(item: Dict[str, Any]) -> MonitoredHostRecord:
    """
    Parse one host.get element.

    Interfaces that cannot be parsed (e.g. a port given as a user macro)
    are skipped; the host itself still exists.
    """
    interfaces = []
    for raw in item.get("interfaces") or []:
        if not isinstance(raw, dict):
            logger.debug(f"Skipping non-object interface of {item.get('host')}: {raw!r}")
            continue
        try:
            interfaces.append(NetworkInterface.from_api(raw))
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping interface of {item.get('host')}: {e}")

    # Inventory is [] when inventory is disabled for the host
    inventory = item.get("inventory")
    inventory_os = inventory.get("os", "") if isinstance(inventory, dict) else ""

    return MonitoredHostRecord(
        host_id=str(item.get("hostid", "")),
        name=item.get("host", ""),
        status=HostStatus.from_api(item.get("status", "0")),
        interfaces=interfaces,
        inventory_os=inventory_os or "",
    )


async def find_windows_host(
    client: ZabbixClient,
    session: Session,
    host_name: str,
) -> LookupResult:
    """
    Find a Windows-tagged Zabbix host by exact name.

    Args:
        client: Zabbix client
        session: Authenticated session
        host_name: Host name, already case-normalized by the caller

    Returns:
        LookupResult: FOUND with the first matching record, ABSENT when
        Zabbix returned an empty list, FAILED when the call failed
    """
    result = await client.send(
        "host.get",
        build_host_get_params(host_name),
        auth=session.api_key,
    )

    if not result.success:
        logger.warning(
            f"host.get failed for {host_name}: {result.failure.detail}"
            + (f" (code {result.failure.code})" if result.failure.code is not None else "")
        )
        return LookupResult.failed(host_name, result.failure)

    hosts = result.payload
    if not isinstance(hosts, list):
        failure = RpcFailure.transport(
            f"host.get returned {type(hosts).__name__}, expected list"
        )
        logger.warning(f"host.get failed for {host_name}: {failure}")
        return LookupResult.failed(host_name, failure)

    if not hosts:
        logger.debug(f"{host_name}: not in Zabbix Windows inventory")
        return LookupResult.absent(host_name)

    try:
        record = parse_host_record(hosts[0] if isinstance(hosts[0], dict) else {})
    except (AttributeError, TypeError, ValueError) as e:
        failure = RpcFailure.transport(f"malformed host.get result: {e}")
        logger.warning(f"host.get failed for {host_name}: {failure}")
        return LookupResult.failed(host_name, failure)

    logger.debug(f"{host_name}: found as hostid {record.host_id}")
    return LookupResult.found(host_name, record)
