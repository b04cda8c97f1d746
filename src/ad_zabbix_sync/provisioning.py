"""
Zabbix host provisioning.

Creates one monitored host per call with a single primary agent
interface and a single host group. No templates are attached and no
inventory fields are prefilled; templates are linked out-of-band.

Zabbix itself rejects duplicate host names, so no pre-check is made.
Feed this module the missing hosts of a reconciliation report.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field, field_validator, model_validator

from .auth import Session
from .client import ZabbixClient
from .directory import DirectoryHost
from .inventory import AddressMode, InterfaceType
from .rpc import FailureKind, RpcFailure

logger = logging.getLogger(__name__)

DEFAULT_AGENT_PORT = 10050
LOOPBACK_IP = "127.0.0.1"


class HostDefaults(BaseModel):
    """Settings shared by every host created in one batch."""

    group_id: str = Field(
        ...,
        min_length=1,
        description="Zabbix host group id"
    )
    use_ip: bool = Field(
        default=True,
        description="Agent interface connects by IP (False: by DNS name)"
    )
    ip: str = Field(
        default=LOOPBACK_IP,
        description="Interface IP address"
    )
    dns_name: str = Field(
        default="",
        description="Interface DNS name"
    )
    agent_port: int = Field(
        default=DEFAULT_AGENT_PORT,
        ge=1,
        le=65535,
        description="Zabbix agent port"
    )
    inventory_mode: int = Field(
        default=0,
        ge=-1,
        le=1,
        description="-1 disabled, 0 manual, 1 automatic"
    )

    @field_validator('group_id', mode='before')
    @classmethod
    def coerce_group_id(cls, v):
        return str(v) if isinstance(v, int) else v

    def spec_for(self, host: DirectoryHost) -> "HostCreateSpec":
        """
        HostCreateSpec for a directory host.

        The Zabbix host name is the lower-cased directory name, which is
        what the inventory lookup searches for. In DNS mode the interface
        DNS name falls back to the host's AD DNSHostName, then its name.
        """
        dns_name = self.dns_name or (host.dns_hostname or host.name).lower()
        return HostCreateSpec(
            name=host.comparison_name,
            **self.model_dump(include=set(HostDefaults.model_fields) - {'dns_name'}),
            dns_name=dns_name,
        )


class HostCreateSpec(HostDefaults):
    """Everything needed to create one Zabbix host."""

    name: str = Field(
        ...,
        min_length=1,
        description="Technical host name"
    )

    @model_validator(mode='after')
    def check_address(self):
        if not self.use_ip and not self.dns_name:
            raise ValueError('dns_name required when use_ip is False')
        return self


@dataclass
class ProvisionResult:
    """Per-host outcome of a create attempt."""
    host_name: str
    success: bool
    host_id: Optional[str] = None
    failure: Optional[RpcFailure] = None

    @property
    def detail(self) -> Optional[str]:
        """Actionable failure detail for the operator."""
        return self.failure.detail if self.failure else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "host_name": self.host_name,
            "success": self.success,
            "host_id": self.host_id,
            "failure": self.failure.to_dict() if self.failure else None,
        }


def build_create_params(spec: HostCreateSpec) -> Dict[str, Any]:
    """host.create parameters for one host."""
    return {
        "host": spec.name,
        "interfaces": [{
            "type": int(InterfaceType.AGENT),
            "main": 1,
            "useip": int(AddressMode.USE_IP if spec.use_ip else AddressMode.USE_DNS),
            "ip": spec.ip,
            "dns": spec.dns_name,
            "port": str(spec.agent_port),
        }],
        "groups": [{"groupid": spec.group_id}],
        "templates": [],
        "inventory_mode": spec.inventory_mode,
        "inventory": {},
    }


async def create_host(
    client: ZabbixClient,
    session: Session,
    spec: HostCreateSpec,
) -> ProvisionResult:
    """
    Create one Zabbix host.

    Args:
        client: Zabbix client
        session: Authenticated session
        spec: Host to create

    Returns:
        ProvisionResult with the new host id, or the failure. Never raises
        for API or transport errors.
    """
    result = await client.send(
        "host.create",
        build_create_params(spec),
        auth=session.api_key,
    )

    if not result.success:
        failure = result.failure
        logger.warning(
            f"host.create failed for {spec.name}: {failure.detail}"
            + (f" (code {failure.code})" if failure.code is not None else "")
        )
        return ProvisionResult(host_name=spec.name, success=False, failure=failure)

    payload = result.payload
    host_ids = payload.get("hostids") if isinstance(payload, dict) else None
    if not host_ids:
        failure = RpcFailure(
            kind=FailureKind.PROTOCOL,
            message="host.create returned no host id",
        )
        logger.warning(f"host.create for {spec.name} returned no host id: {payload!r}")
        return ProvisionResult(host_name=spec.name, success=False, failure=failure)

    host_id = str(host_ids[0])
    logger.info(f"Created Zabbix host {spec.name} (hostid {host_id})")
    return ProvisionResult(host_name=spec.name, success=True, host_id=host_id)


async def provision_hosts(
    client: ZabbixClient,
    session: Session,
    hosts: Sequence[DirectoryHost],
    defaults: HostDefaults,
) -> List[ProvisionResult]:
    """
    Create Zabbix hosts one at a time.

    A failure for one host does not stop the batch; there is no
    all-or-nothing guarantee.

    Returns:
        One ProvisionResult per input host, in input order
    """
    results = []
    for host in hosts:
        spec = defaults.spec_for(host)
        results.append(await create_host(client, session, spec))

    created = sum(1 for r in results if r.success)
    logger.info(f"Provisioned {created}/{len(results)} hosts")
    return results
