"""Data types shared by providers, matching and the security checker."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from pastoralist.utils.constants import (
    DEFAULT_CLI_TIMEOUT,
    DEFAULT_GH_CLI_TIMEOUT,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_INSTALL_TIMEOUT,
    DEFAULT_SCAN_TIMEOUT,
)

Severity = Literal["low", "medium", "high", "critical"]

SEVERITIES: tuple[str, ...] = ("low", "medium", "high", "critical")


@dataclass(frozen=True)
class PackageRef:
    """A declared dependency with its range prefix stripped."""

    name: str
    version: str


@dataclass(frozen=True)
class SecurityAlert:
    """A normalized vulnerability report from any provider.

    ``current_version`` is empty until matching copies the alert with the
    project's declared version filled in.
    """

    package_name: str
    current_version: str
    vulnerable_versions: str
    severity: Severity
    title: str
    patched_version: str | None = None
    description: str | None = None
    cve: str | None = None
    url: str | None = None
    fix_available: bool = False


@dataclass
class SecurityOverride:
    package_name: str
    from_version: str
    to_version: str
    reason: str
    severity: Severity
    cve: str | None = None
    description: str | None = None
    url: str | None = None


@dataclass
class OverrideUpdate:
    """An applied security override for which a newer patch exists."""

    package_name: str
    current_override: str
    newer_version: str
    reason: str
    added_date: str | None = None


@dataclass
class SecurityCheckResult:
    alerts: list[SecurityAlert] = field(default_factory=list)
    overrides: list[SecurityOverride] = field(default_factory=list)
    updates: list[OverrideUpdate] = field(default_factory=list)
    packages_scanned: int = 0
    backup_path: Path | None = None
    latest_compatible: dict[str, str] = field(default_factory=dict)

    @property
    def vulnerable_count(self) -> int:
        return len({(a.package_name, a.current_version) for a in self.alerts})


@dataclass
class MockSettings:
    """Deterministic GitHub provider behaviour for tests and demos."""

    enabled: bool = False
    force_vulnerable: bool = False
    alerts_file: str | None = None


@dataclass
class ProviderConfig:
    """Everything a provider needs, resolved by the caller.

    Providers never consult the process environment themselves.
    """

    token: str | None = None
    owner: str | None = None
    repo: str | None = None
    strict: bool = False
    cwd: str | None = None
    mock: MockSettings = field(default_factory=MockSettings)
    cli_timeout: float = DEFAULT_CLI_TIMEOUT
    scan_timeout: float = DEFAULT_SCAN_TIMEOUT
    install_timeout: float = DEFAULT_INSTALL_TIMEOUT
    gh_timeout: float = DEFAULT_GH_CLI_TIMEOUT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    concurrency: int = 10
    retries: int = 3
    retry_factor: float = 2
    retry_min_timeout: float = 1000
    retry_max_timeout: float = 30000

    @classmethod
    def from_runtime(cls, runtime: dict[str, Any] | None, **kwargs: Any) -> ProviderConfig:
        """Build a config from a load_runtime_config() dict plus explicit fields."""
        if not runtime:
            return cls(**kwargs)

        timeouts = runtime.get("timeouts", {})
        limits = runtime.get("limits", {})
        retry_cfg = runtime.get("retry", {})
        defaults = cls()

        return cls(
            cli_timeout=timeouts.get("cli", defaults.cli_timeout),
            scan_timeout=timeouts.get("scan", defaults.scan_timeout),
            install_timeout=timeouts.get("install", defaults.install_timeout),
            gh_timeout=timeouts.get("gh_cli", defaults.gh_timeout),
            http_timeout=timeouts.get("http", defaults.http_timeout),
            concurrency=limits.get("osv_concurrency", defaults.concurrency),
            retries=retry_cfg.get("retries", defaults.retries),
            retry_factor=retry_cfg.get("factor", defaults.retry_factor),
            retry_min_timeout=retry_cfg.get("min_timeout", defaults.retry_min_timeout),
            retry_max_timeout=retry_cfg.get("max_timeout", defaults.retry_max_timeout),
            **kwargs,
        )


@dataclass
class SecurityCheckOptions:
    """Options for one SecurityChecker.check_security() call.

    Attributes:
        providers: Provider names, run in parallel; unknown names mean OSV
        interactive: Let the prompt collaborator review overrides
        auto_fix: Back up and write overrides into the manifest
        dep_paths: Glob patterns for workspace package.json files
        root: Directory that dep_paths and the default manifest resolve against
        package_json_path: Manifest written by auto_fix (root/package.json if unset)
        strict: Provider failures raise instead of contributing nothing
        token: Token used by every provider without an entry in ``tokens``
        tokens: Per-provider tokens, e.g. {"github": ..., "snyk": ...}
        resolve_latest: Look up newer same-major npm releases for each fix
    """

    providers: list[str] = field(default_factory=lambda: ["osv"])
    interactive: bool = False
    auto_fix: bool = False
    dep_paths: list[str] = field(default_factory=list)
    root: str = "."
    package_json_path: str | None = None
    strict: bool = False
    token: str | None = None
    tokens: dict[str, str] = field(default_factory=dict)
    owner: str | None = None
    repo: str | None = None
    resolve_latest: bool = False
    mock: MockSettings = field(default_factory=MockSettings)
    runtime: dict[str, Any] | None = None

    def token_for(self, provider: str) -> str | None:
        return self.tokens.get(provider) or self.token
