"""
Reconciliation Engine - AD to Zabbix gap analysis.

One-way diff of the AD computer population against the Zabbix Windows
inventory. Produces the directory hosts that are not monitored.

Outcome per directory host:
- excluded: lower-cased name matches the exclusion pattern, never looked up
- found: Zabbix has a Windows-tagged host with that name
- missing: Zabbix returned no such host
- failed: the lookup itself failed; flagged for operator review
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Pattern, Sequence, Union

from .auth import Session
from .client import ZabbixClient
from .directory import DirectoryHost
from .inventory import LookupResult, LookupStatus, find_windows_host

logger = logging.getLogger(__name__)


def compile_exclusion_pattern(
    pattern: Union[str, Pattern, None],
) -> Optional[Pattern]:
    """
    Compile an operator-supplied exclusion regex.

    Raises:
        ValueError: Pattern is not a valid regular expression
    """
    if pattern is None or pattern == "":
        return None
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ValueError(f"Invalid exclusion pattern {pattern!r}: {e}")


@dataclass
class ReconciliationReport:
    """Result of one reconciliation pass. Every list keeps directory order."""

    missing: List[DirectoryHost] = field(default_factory=list)
    found: List[LookupResult] = field(default_factory=list)
    excluded: List[DirectoryHost] = field(default_factory=list)
    failed: List[LookupResult] = field(default_factory=list)
    directory_count: int = 0
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def checked_count(self) -> int:
        """Number of hosts that were looked up."""
        return self.directory_count - len(self.excluded)

    @property
    def needs_review(self) -> bool:
        return bool(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for report output."""
        return {
            "summary": {
                "directory_count": self.directory_count,
                "checked_count": self.checked_count,
                "missing_count": len(self.missing),
                "found_count": len(self.found),
                "excluded_count": len(self.excluded),
                "failed_count": len(self.failed),
            },
            "missing": [h.to_dict() for h in self.missing],
            "found": [r.to_dict() for r in self.found],
            "excluded": [h.name for h in self.excluded],
            "failed": [r.to_dict() for r in self.failed],
            "checked_at": self.checked_at.isoformat(),
        }


class ReconciliationEngine:
    """
    Compare AD computers against the Zabbix Windows inventory.

    Hosts are checked one at a time by default. With max_concurrency > 1
    lookups run through a bounded pool and the report is reassembled in
    directory order.
    """

    def __init__(
        self,
        client: ZabbixClient,
        session: Session,
        max_concurrency: int = 1,
        treat_failures_as_missing: bool = False,
    ):
        """
        Initialize engine.

        Args:
            client: Zabbix client
            session: Authenticated session
            max_concurrency: Parallel lookups (1 = strictly sequential)
            treat_failures_as_missing: Count failed lookups as missing
                instead of flagging them for review (legacy behaviour)
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.client = client
        self.session = session
        self.max_concurrency = max_concurrency
        self.treat_failures_as_missing = treat_failures_as_missing

    async def _lookup(self, host: DirectoryHost) -> LookupResult:
        return await find_windows_host(self.client, self.session, host.comparison_name)

    async def _lookup_all(self, hosts: List[DirectoryHost]) -> List[LookupResult]:
        """Look up hosts, returning results in the same order."""
        if self.max_concurrency == 1:
            return [await self._lookup(host) for host in hosts]

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(host: DirectoryHost) -> LookupResult:
            async with semaphore:
                return await self._lookup(host)

        # gather preserves argument order
        return list(await asyncio.gather(*(bounded(h) for h in hosts)))

    async def reconcile(
        self,
        hosts: Sequence[DirectoryHost],
        exclusion_pattern: Union[str, Pattern, None] = None,
    ) -> ReconciliationReport:
        """
        Find directory hosts absent from Zabbix.

        Args:
            hosts: Directory hosts in directory order
            exclusion_pattern: Regex searched in each lower-cased name;
                matching hosts are skipped without a lookup

        Returns:
            ReconciliationReport; ``missing`` is an order-preserving
            subsequence of ``hosts``

        Raises:
            ValueError: exclusion_pattern is not a valid regex
        """
        pattern = compile_exclusion_pattern(exclusion_pattern)
        report = ReconciliationReport(directory_count=len(hosts))

        to_check: List[DirectoryHost] = []
        for host in hosts:
            if pattern is not None and pattern.search(host.comparison_name):
                logger.debug(f"Excluded {host.name} (matches {pattern.pattern!r})")
                report.excluded.append(host)
            else:
                to_check.append(host)

        logger.info(
            f"Checking {len(to_check)} hosts against Zabbix "
            f"({len(report.excluded)} excluded)"
        )

        results = await self._lookup_all(to_check)

        for host, result in zip(to_check, results):
            if result.status == LookupStatus.FOUND:
                report.found.append(result)
            elif result.status == LookupStatus.ABSENT:
                report.missing.append(host)
            elif self.treat_failures_as_missing:
                logger.warning(f"Lookup for {host.name} failed, counting as missing: {result.failure}")
                report.missing.append(host)
            else:
                logger.warning(f"Lookup for {host.name} failed, flagged for review: {result.failure}")
                report.failed.append(result)

        logger.info(
            f"Reconciliation complete: {len(report.missing)} missing, "
            f"{len(report.found)} found, {len(report.excluded)} excluded, "
            f"{len(report.failed)} failed"
        )
        return report


# Convenience function when only the missing list is needed
async def find_missing_hosts(
    client: ZabbixClient,
    session: Session,
    hosts: Sequence[DirectoryHost],
    exclusion_pattern: Union[str, Pattern, None] = None,
    **engine_kwargs,
) -> List[DirectoryHost]:
    """
    Return directory hosts confirmed absent from Zabbix.

    Args:
        client: Zabbix client
        session: Authenticated session
        hosts: Directory hosts
        exclusion_pattern: Optional exclusion regex
        **engine_kwargs: Passed to ReconciliationEngine

    Returns:
        Missing hosts in directory order
    """
    engine = ReconciliationEngine(client, session, **engine_kwargs)
    report = await engine.reconcile(hosts, exclusion_pattern)
    return report.missing
