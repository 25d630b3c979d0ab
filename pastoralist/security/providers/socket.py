"""Socket provider - wraps ``socket report create --format json``."""

from __future__ import annotations

from typing import Any

from pastoralist.errors import ProviderUnavailableError
from pastoralist.security.installer import CLIInstaller
from pastoralist.security.matching import normalize_severity
from pastoralist.security.types import PackageRef, ProviderConfig, SecurityAlert
from pastoralist.utils.constants import AUTH_MESSAGES, ENV_SOCKET_TOKEN
from pastoralist.utils.logging import logger

from .base import BaseSecurityProvider, scan_output

SOCKET_PACKAGE = "@socketsecurity/cli"
SOCKET_COMMAND = "socket"


class SocketCLIProvider(BaseSecurityProvider):
    """Socket report of the working directory. Requires an API key."""

    def __init__(self, config: ProviderConfig | None = None, installer: CLIInstaller | None = None, **kwargs):
        super().__init__(config, **kwargs)
        self.installer = installer or CLIInstaller(
            runner=self.runner,
            cli_timeout=self.config.cli_timeout,
            install_timeout=self.config.install_timeout,
        )

    @property
    def provider_name(self) -> str:
        return "socket"

    async def validate_prerequisites(self) -> None:
        if not await self.installer.ensure_installed(SOCKET_PACKAGE, SOCKET_COMMAND):
            raise ProviderUnavailableError("Socket CLI not available, skipping Socket scan")

        if not self.config.token:
            raise ProviderUnavailableError(AUTH_MESSAGES["SOCKET_AUTH_REQUIRED"])

    async def fetch_alerts(self, packages: list[PackageRef]) -> list[SecurityAlert]:
        logger.warning("Socket provider is experimental")
        try:
            await self.validate_prerequisites()
        except ProviderUnavailableError as e:
            return self.unavailable(str(e))

        logger.debug(f"Running socket report for {len(packages)} declared packages")
        result = await self.run(
            [SOCKET_COMMAND, "report", "create", "--format", "json"],
            timeout=self.config.scan_timeout,
            env={ENV_SOCKET_TOKEN: self.config.token},
        )
        data = scan_output(self, result)
        if data is None:
            return []
        return convert_socket_result(data)


def convert_socket_result(data: Any) -> list[SecurityAlert]:
    """Alerts from ``{"packages": [{"name", "version", "issues": [...]}]}``.

    Socket never reports a fixed version, so no alert carries a fix.
    """
    if not isinstance(data, dict) or not isinstance(data.get("packages"), list):
        return []

    alerts = []
    for pkg in data["packages"]:
        if not isinstance(pkg, dict) or not isinstance(pkg.get("issues"), list):
            continue
        name = pkg.get("name") or ""
        version = pkg.get("version") or ""
        for issue in pkg["issues"]:
            if not isinstance(issue, dict):
                continue
            is_cve = issue.get("type") == "vulnerability"
            alerts.append(
                SecurityAlert(
                    package_name=name,
                    current_version=version,
                    vulnerable_versions=f"<= {version}" if is_cve else "",
                    patched_version=None,
                    severity=normalize_severity(issue.get("severity")),
                    title=issue.get("title") or issue.get("type") or f"Issue in {name}",
                    description=issue.get("description"),
                    cve=issue.get("cve") if is_cve else None,
                    url=issue.get("url") or f"https://socket.dev/npm/package/{name}/overview/{version}",
                    fix_available=False,
                )
            )
    return alerts
