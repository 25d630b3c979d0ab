"""OSV.dev provider - public vulnerability query API, no authentication."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from pastoralist.security.matching import normalize_severity
from pastoralist.security.types import PackageRef, ProviderConfig, SecurityAlert
from pastoralist.utils.limit import ConcurrencyLimiter
from pastoralist.utils.logging import logger
from pastoralist.utils.rate_limiter import get_rate_limiter
from pastoralist.utils.retry import retry

from .base import BaseSecurityProvider

OSV_QUERY_URL = "https://api.osv.dev/v1/query"
OSV_VULN_URL = "https://osv.dev/vulnerability/"
ECOSYSTEM = "npm"


class OSVProvider(BaseSecurityProvider):
    """Queries OSV once per package, bounded by a ConcurrencyLimiter.

    A shared ``client`` may be injected (tests pass one built on
    httpx.MockTransport); otherwise one AsyncClient is opened per fetch.
    """

    def __init__(self, config: ProviderConfig | None = None, client: httpx.AsyncClient | None = None, **kwargs):
        super().__init__(config, **kwargs)
        self.client = client

    @property
    def provider_name(self) -> str:
        return "osv"

    async def fetch_alerts(self, packages: list[PackageRef]) -> list[SecurityAlert]:
        if not packages:
            return []

        logger.debug(f"OSV checking {len(packages)} packages")

        if self.client is not None:
            results = await self._query_all(self.client, packages)
        else:
            async with httpx.AsyncClient(timeout=self.config.http_timeout) as client:
                results = await self._query_all(client, packages)

        alerts: list[SecurityAlert] = []
        failures = []
        for pkg, outcome in zip(packages, results):
            if isinstance(outcome, Exception):
                logger.debug(f"Failed to check {pkg.name}@{pkg.version}: {outcome}")
                failures.append(f"{pkg.name}@{pkg.version}")
                continue
            alerts.extend(convert_osv_vulns(pkg, outcome))

        if failures:
            self.fail(f"{len(failures)} of {len(packages)} OSV queries failed ({', '.join(failures[:5])})")

        return alerts

    async def _query_all(self, client: httpx.AsyncClient, packages: list[PackageRef]) -> list[Any]:
        limiter = ConcurrencyLimiter(max(1, self.config.concurrency))
        futures = [limiter.run(lambda pkg=pkg: self._query_with_retry(client, pkg)) for pkg in packages]
        return await asyncio.gather(*futures, return_exceptions=True)

    async def _query_with_retry(self, client: httpx.AsyncClient, pkg: PackageRef) -> list[dict[str, Any]]:
        return await retry(
            lambda: self._query(client, pkg),
            retries=self.config.retries,
            factor=self.config.retry_factor,
            min_timeout=self.config.retry_min_timeout,
            max_timeout=self.config.retry_max_timeout,
        )

    async def _query(self, client: httpx.AsyncClient, pkg: PackageRef) -> list[dict[str, Any]]:
        await get_rate_limiter("osv").acquire()
        response = await client.post(
            OSV_QUERY_URL,
            json={"package": {"name": pkg.name, "ecosystem": ECOSYSTEM}, "version": pkg.version},
        )
        response.raise_for_status()
        data = response.json()
        vulns = data.get("vulns") if isinstance(data, dict) else None
        return vulns if isinstance(vulns, list) else []


def _first_range_events(vuln: dict[str, Any]) -> list[dict[str, Any]]:
    affected = vuln.get("affected") or []
    if not affected or not isinstance(affected[0], dict):
        return []
    ranges = affected[0].get("ranges") or []
    if not ranges or not isinstance(ranges[0], dict):
        return []
    return [e for e in ranges[0].get("events") or [] if isinstance(e, dict)]


def extract_patched_version(vuln: dict[str, Any]) -> str | None:
    return next((e["fixed"] for e in _first_range_events(vuln) if e.get("fixed")), None)


def extract_version_range(vuln: dict[str, Any]) -> str:
    """'>= introduced < fixed', or '>= introduced' when no fix exists."""
    events = _first_range_events(vuln)
    if not events:
        return ""
    introduced = next((e["introduced"] for e in events if e.get("introduced")), "0")
    fixed = extract_patched_version(vuln)
    return f">= {introduced} < {fixed}" if fixed else f">= {introduced}"


def extract_severity(vuln: dict[str, Any]) -> str:
    db_specific = vuln.get("database_specific") or {}
    severity = db_specific.get("severity")
    if not severity:
        scores = vuln.get("severity") or []
        if scores and isinstance(scores[0], dict):
            severity = scores[0].get("score")
    return normalize_severity(severity)


def extract_cve(vuln: dict[str, Any]) -> str | None:
    return next((a for a in vuln.get("aliases") or [] if isinstance(a, str) and a.startswith("CVE-")), None)


def convert_osv_vulns(pkg: PackageRef, vulns: list[dict[str, Any]]) -> list[SecurityAlert]:
    alerts = []
    for vuln in vulns:
        if not isinstance(vuln, dict):
            continue
        patched = extract_patched_version(vuln)
        references = vuln.get("references") or []
        url = references[0].get("url") if references and isinstance(references[0], dict) else None
        alerts.append(
            SecurityAlert(
                package_name=pkg.name,
                current_version=pkg.version,
                vulnerable_versions=extract_version_range(vuln),
                patched_version=patched,
                severity=extract_severity(vuln),
                title=vuln.get("summary") or vuln.get("details") or f"Vulnerability in {pkg.name}",
                description=vuln.get("details"),
                cve=extract_cve(vuln),
                url=url or f"{OSV_VULN_URL}{vuln.get('id', '')}",
                fix_available=bool(patched),
            )
        )
    return alerts
