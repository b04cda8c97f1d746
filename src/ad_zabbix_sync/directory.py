"""
Active Directory computer listing.

Lists the enabled computer objects below a search base (an OU
distinguished name). The result is the authoritative host population
for one reconciliation pass.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class DirectoryError(Exception):
    """The directory could not produce a host list."""
    pass


@dataclass(frozen=True)
class DirectoryHost:
    """Computer object from AD. Identity is the case-insensitive name."""
    name: str
    enabled: bool = True
    dns_hostname: Optional[str] = None
    distinguished_name: Optional[str] = None
    operating_system: Optional[str] = None

    @property
    def comparison_name(self) -> str:
        """Lower-cased name used for exclusion matching and Zabbix lookups."""
        return self.name.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "dns_hostname": self.dns_hostname,
            "distinguished_name": self.distinguished_name,
            "operating_system": self.operating_system,
        }


def _ps_quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + value.replace("'", "''") + "'"


class DirectoryLister:
    """
    Lists enabled computers from Active Directory.

    Runs Get-ADComputer through a PowerShell runner, so requires:
    - The ActiveDirectory module on the runner's host
    - Read access to the search base for the runner's account
    """

    def __init__(self, runner, timeout_seconds: int = 120):
        """
        Initialize lister.

        Args:
            runner: WinRMPowerShellRunner or LocalPowerShellRunner
            timeout_seconds: Script timeout
        """
        self.runner = runner
        self.timeout_seconds = timeout_seconds

    def build_script(self, search_base: str, domain_controller: Optional[str] = None) -> str:
        """PowerShell that emits enabled computers under search_base as a JSON array."""
        server_line = f"$params.Server = {_ps_quote(domain_controller)}" if domain_controller else ""
        return f'''
        Import-Module ActiveDirectory -ErrorAction Stop

        $params = @{{
            SearchBase = {_ps_quote(search_base)}
            Filter = 'Enabled -eq $true'
            Properties = @('DNSHostName', 'OperatingSystem', 'Enabled')
        }}
        {server_line}

        $computers = Get-ADComputer @params -ErrorAction Stop

        $result = @(foreach ($comp in $computers) {{
            [PSCustomObject]@{{
                Name = $comp.Name
                DNSHostName = $comp.DNSHostName
                DistinguishedName = $comp.DistinguishedName
                OperatingSystem = $comp.OperatingSystem
                Enabled = $comp.Enabled
            }}
        }})

        ConvertTo-Json -InputObject $result -Depth 3 -Compress
        '''

    async def list_enabled_computers(
        self,
        search_base: str,
        domain_controller: Optional[str] = None,
    ) -> List[DirectoryHost]:
        """
        List enabled computer objects below search_base.

        Args:
            search_base: OU distinguished name, e.g. "OU=Servers,DC=corp,DC=local"
            domain_controller: Optional DC to query instead of the default

        Returns:
            Enabled hosts in directory order

        Raises:
            DirectoryError: Query failed or returned unparsable output
        """
        logger.info(f"Listing enabled computers under {search_base}"
                    + (f" via {domain_controller}" if domain_controller else ""))

        result = await self.runner.run_script(
            self.build_script(search_base, domain_controller),
            timeout=self.timeout_seconds,
        )

        if not result.success:
            raise DirectoryError(f"AD query on {result.target} failed: {result.error}")

        hosts = self.parse_output(result.stdout)
        logger.info(f"Directory returned {len(hosts)} enabled computers")
        return hosts

    def parse_output(self, output: str) -> List[DirectoryHost]:
        """Parse ConvertTo-Json output into DirectoryHost objects."""
        output = (output or "").strip()
        if not output:
            return []

        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            logger.debug(f"Raw output: {output[:500]}")
            raise DirectoryError(f"Failed to parse AD query output: {e}")

        # Single object when the array wrapper is lost
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise DirectoryError(f"Unexpected AD query output type: {type(data).__name__}")

        hosts = []
        for item in data:
            host = self._parse_computer(item)
            if host is not None and host.enabled:
                hosts.append(host)
        return hosts

    def _parse_computer(self, item: Any) -> Optional[DirectoryHost]:
        """Parse one AD computer object."""
        if not isinstance(item, dict) or not item.get('Name'):
            logger.warning(f"Skipping AD object without a name: {item!r}")
            return None

        enabled = item.get('Enabled')
        return DirectoryHost(
            name=item['Name'],
            enabled=enabled is True,
            dns_hostname=item.get('DNSHostName') or None,
            distinguished_name=item.get('DistinguishedName') or None,
            operating_system=item.get('OperatingSystem') or None,
        )
