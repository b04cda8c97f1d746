"""
Reconciliation run and command line entry point.

One run:
1. List enabled computers in the configured OU (fatal on failure)
2. Log in to Zabbix (fatal on failure)
3. Reconcile the directory against the Zabbix Windows inventory
4. Optionally create the missing hosts, one request per host
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .auth import login
from .client import ZabbixAuthenticationError, ZabbixClient, ZabbixClientError
from .config import DEFAULT_CONFIG_PATH, SyncConfig, load_config
from .directory import DirectoryError, DirectoryLister
from .powershell import LocalPowerShellRunner, WinRMPowerShellRunner
from .provisioning import HostDefaults, ProvisionResult, provision_hosts
from .reconcile import ReconciliationEngine, ReconciliationReport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2


@dataclass
class SyncOutcome:
    """Everything one run produced."""
    report: ReconciliationReport
    provisioned: List[ProvisionResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def exit_code(self) -> int:
        if self.report.failed or any(not r.success for r in self.provisioned):
            return EXIT_PARTIAL
        return EXIT_OK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reconciliation": self.report.to_dict(),
            "provisioning": {
                "dry_run": self.dry_run,
                "created": sum(1 for r in self.provisioned if r.success),
                "failed": sum(1 for r in self.provisioned if not r.success),
                "results": [r.to_dict() for r in self.provisioned],
            },
        }


def build_directory_lister(config: SyncConfig) -> DirectoryLister:
    """WinRM runner when directory_host is set, local PowerShell otherwise."""
    if config.directory_host:
        runner = WinRMPowerShellRunner(
            hostname=config.directory_host,
            username=config.directory_username or "",
            password=config.directory_password or "",
            port=config.directory_port,
            use_ssl=config.directory_use_ssl,
            verify_ssl=config.directory_verify_ssl,
            transport=config.directory_transport,
            cert_pem=config.directory_cert_pem,
            cert_key_pem=config.directory_cert_key_pem,
        )
    else:
        runner = LocalPowerShellRunner()
    return DirectoryLister(runner, timeout_seconds=config.directory_timeout)


def host_defaults_from_config(config: SyncConfig) -> HostDefaults:
    return HostDefaults(
        group_id=config.group_id,
        use_ip=config.use_ip,
        ip=config.default_ip,
        dns_name=config.default_dns,
        agent_port=config.agent_port,
        inventory_mode=config.inventory_mode,
    )


async def run_sync(
    config: SyncConfig,
    provision: bool = False,
    dry_run: bool = False,
    lister: Optional[DirectoryLister] = None,
    client: Optional[ZabbixClient] = None,
) -> SyncOutcome:
    """
    Run one reconciliation pass.

    Args:
        config: Sync configuration
        provision: Create the missing hosts in Zabbix
        dry_run: With provision, only log the hosts that would be created
        lister: Directory lister (default: built from config)
        client: Zabbix client (default: built from config)

    Returns:
        SyncOutcome with the report and per-host provisioning results

    Raises:
        DirectoryError: AD query failed
        ZabbixAuthenticationError: Login rejected
        ZabbixTransportError: Login request failed
    """
    lister = lister or build_directory_lister(config)
    hosts = await lister.list_enabled_computers(config.search_base, config.domain_controller)

    async with (client or ZabbixClient.from_config(config)) as zabbix:
        session = await login(zabbix, config.zabbix_user, config.zabbix_password)

        engine = ReconciliationEngine(
            zabbix,
            session,
            max_concurrency=config.lookup_concurrency,
            treat_failures_as_missing=config.treat_failures_as_missing,
        )
        report = await engine.reconcile(hosts, config.exclude_pattern)
        outcome = SyncOutcome(report=report, dry_run=dry_run)

        if not provision or not report.missing:
            return outcome

        if dry_run:
            for host in report.missing:
                logger.info(f"[dry-run] Would create Zabbix host {host.comparison_name}")
            return outcome

        outcome.provisioned = await provision_hosts(
            zabbix,
            session,
            report.missing,
            host_defaults_from_config(config),
        )

    return outcome


def _log_summary(outcome: SyncOutcome) -> None:
    report = outcome.report
    for host in report.missing:
        logger.info(f"Missing from Zabbix: {host.name}")
    for result in report.failed:
        logger.warning(f"Needs review: {result.host_name}: {result.failure.detail}")
    for result in outcome.provisioned:
        if result.success:
            logger.info(f"Created {result.host_name} (hostid {result.host_id})")
        else:
            logger.error(f"Could not create {result.host_name}: {result.detail}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for ad-zabbix-sync."""
    parser = argparse.ArgumentParser(
        description="Reconcile Active Directory computers against Zabbix"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to YAML configuration (default: {DEFAULT_CONFIG_PATH})"
    )
    parser.add_argument(
        "--provision",
        action="store_true",
        help="Create missing hosts in Zabbix"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="With --provision, only show what would be created"
    )
    parser.add_argument(
        "--report",
        type=Path,
        help="Write the JSON report to this file"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level or "INFO"),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FATAL

    if not args.log_level:
        logging.getLogger().setLevel(config.log_level)

    try:
        outcome = asyncio.run(run_sync(config, provision=args.provision, dry_run=args.dry_run))
    except DirectoryError as e:
        logger.error(f"Directory listing failed: {e}")
        return EXIT_FATAL
    except ZabbixAuthenticationError as e:
        logger.error(f"Zabbix login failed: {e}")
        return EXIT_FATAL
    except ZabbixClientError as e:
        logger.error(f"Zabbix unreachable: {e}")
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_FATAL

    _log_summary(outcome)

    if args.report:
        try:
            args.report.write_text(json.dumps(outcome.to_dict(), indent=2))
        except OSError as e:
            logger.error(f"Could not write report to {args.report}: {e}")
            return EXIT_PARTIAL
        logger.info(f"Report written to {args.report}")

    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
