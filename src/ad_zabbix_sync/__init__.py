"""AD to Zabbix Sync - Active Directory / Zabbix host reconciliation"""

__version__ = "0.1.0"

# JSON-RPC client
from .rpc import RpcRequest, RpcResponse, RpcFailure, RpcResult, FailureKind, decode_response
from .client import (
    ZabbixClient,
    ZabbixClientError,
    ZabbixTransportError,
    ZabbixProtocolError,
    ZabbixAuthenticationError,
)
from .auth import Session, login

# Directory
from .directory import DirectoryHost, DirectoryLister, DirectoryError

# Zabbix inventory and provisioning
from .inventory import (
    MonitoredHostRecord,
    NetworkInterface,
    LookupResult,
    LookupStatus,
    find_windows_host,
)
from .provisioning import HostDefaults, HostCreateSpec, ProvisionResult, create_host, provision_hosts

# Reconciliation
from .reconcile import ReconciliationEngine, ReconciliationReport, find_missing_hosts

__all__ = [
    # Version
    "__version__",

    # JSON-RPC
    "RpcRequest",
    "RpcResponse",
    "RpcFailure",
    "RpcResult",
    "FailureKind",
    "decode_response",
    "ZabbixClient",
    "ZabbixClientError",
    "ZabbixTransportError",
    "ZabbixProtocolError",
    "ZabbixAuthenticationError",
    "Session",
    "login",

    # Directory
    "DirectoryHost",
    "DirectoryLister",
    "DirectoryError",

    # Inventory
    "MonitoredHostRecord",
    "NetworkInterface",
    "LookupResult",
    "LookupStatus",
    "find_windows_host",

    # Provisioning
    "HostDefaults",
    "HostCreateSpec",
    "ProvisionResult",
    "create_host",
    "provision_hosts",

    # Reconciliation
    "ReconciliationEngine",
    "ReconciliationReport",
    "find_missing_hosts",
]
