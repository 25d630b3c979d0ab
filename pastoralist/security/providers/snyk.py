"""Snyk provider - wraps ``snyk test --json``."""

from __future__ import annotations

from typing import Any

from pastoralist.errors import ProviderUnavailableError
from pastoralist.security.installer import CLIInstaller
from pastoralist.security.matching import normalize_severity
from pastoralist.security.types import PackageRef, ProviderConfig, SecurityAlert
from pastoralist.utils.constants import AUTH_MESSAGES
from pastoralist.utils.logging import logger

from .base import BaseSecurityProvider, scan_output

SNYK_PACKAGE = "snyk"
SNYK_COMMAND = "snyk"
SNYK_VULN_URL = "https://snyk.io/vuln/"


class SnykCLIProvider(BaseSecurityProvider):
    """Runs a Snyk scan of the working directory.

    The CLI reads the lockfile itself, so ``packages`` is only used for the
    debug log.
    """

    def __init__(self, config: ProviderConfig | None = None, installer: CLIInstaller | None = None, **kwargs):
        super().__init__(config, **kwargs)
        self.installer = installer or CLIInstaller(
            runner=self.runner,
            cli_timeout=self.config.cli_timeout,
            install_timeout=self.config.install_timeout,
        )

    @property
    def provider_name(self) -> str:
        return "snyk"

    async def is_authenticated(self) -> bool:
        if self.config.token:
            return True
        result = await self.run([SNYK_COMMAND, "config", "get", "api"], timeout=self.config.cli_timeout)
        return result.success and bool(result.stdout.strip())

    async def authenticate(self) -> bool:
        if not self.config.token:
            logger.warning(AUTH_MESSAGES["SNYK_AUTH_REQUIRED"])
            return False
        result = await self.run(
            [SNYK_COMMAND, "config", "set", f"api={self.config.token}"], timeout=self.config.cli_timeout
        )
        if result.success:
            logger.debug("Authenticated with Snyk using provided token")
        return result.success

    async def validate_prerequisites(self) -> None:
        """Raises ProviderUnavailableError when the CLI or credentials are missing."""
        if not await self.installer.ensure_installed(SNYK_PACKAGE, SNYK_COMMAND):
            raise ProviderUnavailableError("Snyk CLI not available, skipping Snyk scan")

        if await self.is_authenticated():
            return

        if not await self.authenticate():
            raise ProviderUnavailableError("Snyk authentication failed, skipping Snyk scan")

    async def fetch_alerts(self, packages: list[PackageRef]) -> list[SecurityAlert]:
        logger.warning("Snyk provider is experimental")
        try:
            await self.validate_prerequisites()
        except ProviderUnavailableError as e:
            return self.unavailable(str(e))

        logger.debug(f"Running snyk test for {len(packages)} declared packages")
        result = await self.run([SNYK_COMMAND, "test", "--json"], timeout=self.config.scan_timeout)
        data = scan_output(self, result)
        if data is None:
            return []
        return convert_snyk_result(data)


def _vulnerabilities(data: Any) -> list[dict[str, Any]]:
    """Vulnerability dicts from one result object or a list of them.

    Anything that does not look like ``{"vulnerabilities": [...]}`` yields
    nothing.
    """
    results = data if isinstance(data, list) else [data]
    vulns = []
    for result in results:
        if not isinstance(result, dict):
            continue
        entries = result.get("vulnerabilities")
        if isinstance(entries, list):
            vulns.extend(v for v in entries if isinstance(v, dict))
    return vulns


def extract_patched_version(vuln: dict[str, Any]) -> str | None:
    fixed_in = vuln.get("fixedIn")
    if isinstance(fixed_in, list) and fixed_in:
        return str(fixed_in[0])

    upgrade_path = vuln.get("upgradePath")
    if isinstance(upgrade_path, list) and len(upgrade_path) > 1:
        last = upgrade_path[-1]
        if isinstance(last, str) and "@" in last.lstrip("@"):
            return last.rsplit("@", 1)[1]

    return None


def _vulnerable_range(vuln: dict[str, Any]) -> str:
    vulnerable = (vuln.get("semver") or {}).get("vulnerable")
    if isinstance(vulnerable, list):
        return str(vulnerable[0]) if vulnerable else ""
    return vulnerable or ""


def convert_snyk_result(data: Any) -> list[SecurityAlert]:
    alerts = []
    for vuln in _vulnerabilities(data):
        patched = extract_patched_version(vuln)
        cves = (vuln.get("identifiers") or {}).get("CVE") or []
        alerts.append(
            SecurityAlert(
                package_name=vuln.get("packageName") or vuln.get("name") or "",
                current_version=vuln.get("version") or "",
                vulnerable_versions=_vulnerable_range(vuln),
                patched_version=patched,
                severity=normalize_severity(vuln.get("severity")),
                title=vuln.get("title") or f"Vulnerability in {vuln.get('packageName') or vuln.get('name')}",
                description=vuln.get("description"),
                cve=cves[0] if cves else None,
                url=vuln.get("url") or f"{SNYK_VULN_URL}{vuln.get('id', '')}",
                fix_available=bool(patched),
            )
        )
    return alerts
