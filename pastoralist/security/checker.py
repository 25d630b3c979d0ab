"""Security checker - drives providers and reconciles their alerts with a manifest.

One check_security() call:
    1. extract declared packages (empty -> empty result, no provider calls)
    2. fetch from every provider in parallel, or reuse a cached result
    3. deduplicate, keeping alerts for declared root packages (a parseable
       range must contain the declared version)
    4. match the same alerts against workspace manifests from dep_paths
    5. optionally look up newer same-major releases on npm
    6. generate override proposals and detect superseded security overrides
    7. optionally let a prompt review the proposals
    8. optionally back up and write the manifest
"""

from __future__ import annotations

import asyncio
import glob
from pathlib import Path
from typing import Any

from pastoralist.errors import ConfigurationError
from pastoralist.manifest import apply_auto_fix, read_manifest, restore_backup
from pastoralist.registry import NpmRegistry
from pastoralist.security.interactive import SecurityPrompt
from pastoralist.security.matching import (
    deduplicate_alerts,
    extract_packages,
    find_override_updates,
    find_reported_packages,
    find_vulnerable_packages,
    format_security_report,
    generate_overrides,
    generate_package_overrides,
    merge_new_vulnerabilities,
)
from pastoralist.security.providers import get_provider
from pastoralist.security.providers.base import BaseSecurityProvider
from pastoralist.security.types import (
    PackageRef,
    ProviderConfig,
    SecurityAlert,
    SecurityCheckOptions,
    SecurityCheckResult,
    SecurityOverride,
)
from pastoralist.utils.logging import logger
from pastoralist.utils.lru import LRUCache
from pastoralist.utils.rate_limiter import reset_rate_limiters

DEFAULT_CACHE_MAX = 500
DEFAULT_CACHE_TTL_MS = 60 * 60 * 1000


class SecurityChecker:
    """Multi-provider vulnerability check for one package.json.

    Args:
        options: Default options for every check_security() call
        prompt: Reviewer for proposed overrides, required when interactive
        providers: Pre-built providers; built from options.providers if omitted
        cache: Provider result cache shared across calls
        registry: npm lookups for resolve_latest
    """

    def __init__(
        self,
        options: SecurityCheckOptions | None = None,
        *,
        prompt: SecurityPrompt | None = None,
        providers: list[BaseSecurityProvider] | None = None,
        cache: LRUCache | None = None,
        registry: NpmRegistry | None = None,
    ):
        self.options = options or SecurityCheckOptions()
        if self.options.interactive and prompt is None:
            raise ConfigurationError("Interactive mode requires a prompt to be provided")

        self.prompt = prompt
        self.providers = providers if providers is not None else self._create_providers(self.options)

        limits = (self.options.runtime or {}).get("limits", {})
        self.cache = cache if cache is not None else LRUCache(
            max=limits.get("cache_max", DEFAULT_CACHE_MAX),
            ttl=limits.get("cache_ttl_ms", DEFAULT_CACHE_TTL_MS),
        )
        self.registry = registry if registry is not None else NpmRegistry(
            concurrency=limits.get("registry_concurrency", 5)
        )

    @staticmethod
    def _create_providers(options: SecurityCheckOptions) -> list[BaseSecurityProvider]:
        names = options.providers or ["osv"]
        return [
            get_provider(
                name,
                ProviderConfig.from_runtime(
                    options.runtime,
                    token=options.token_for(name),
                    owner=options.owner,
                    repo=options.repo,
                    strict=options.strict,
                    cwd=options.root,
                    mock=options.mock,
                ),
            )
            for name in names
        ]

    @property
    def provider_names(self) -> list[str]:
        return [p.provider_name for p in self.providers]

    def _cache_key(self, packages: list[PackageRef]) -> str:
        package_keys = "|".join(sorted(f"{p.name}@{p.version}" for p in packages))
        provider_keys = "|".join(sorted(self.provider_names))
        return f"{provider_keys}:{package_keys}"

    async def _fetch_from(self, provider: BaseSecurityProvider, packages: list[PackageRef]) -> list[SecurityAlert]:
        try:
            return await provider.fetch_alerts(packages)
        except Exception:
            if provider.config.strict or self.options.strict:
                raise
            logger.opt(exception=True).warning(f"{provider.provider_name} provider failed, contributing no alerts")
            return []

    async def fetch_alerts(self, packages: list[PackageRef]) -> list[SecurityAlert]:
        """Flattened alerts from every provider, cached by provider set and packages."""
        key = self._cache_key(packages)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached security results")
            return list(cached)

        results = await asyncio.gather(*(self._fetch_from(p, packages) for p in self.providers))
        alerts = [alert for provider_alerts in results for alert in provider_alerts]
        self.cache.set(key, alerts)
        logger.debug(f"Found {len(alerts)} security alerts from {len(self.providers)} provider(s)")
        return list(alerts)

    async def check_security(
        self, manifest: dict[str, Any], options: SecurityCheckOptions | None = None
    ) -> SecurityCheckResult:
        """Run one check. ``options`` overrides the constructor's options for this call."""
        opts = options or self.options
        if opts.interactive and self.prompt is None:
            raise ConfigurationError("Interactive mode requires a prompt to be provided")

        logger.debug("Starting security check")
        packages = extract_packages(manifest)
        if not packages:
            logger.debug("No packages to check")
            return SecurityCheckResult()

        alerts = deduplicate_alerts(await self.fetch_alerts(packages))

        vulnerable = deduplicate_alerts(find_reported_packages(manifest, alerts))

        if opts.dep_paths:
            logger.debug("Scanning workspace packages for vulnerabilities")
            workspace = self.find_workspace_vulnerabilities(opts.dep_paths, opts.root, alerts)
            vulnerable = merge_new_vulnerabilities(vulnerable, workspace)

        logger.debug(f"Found {len(vulnerable)} vulnerable packages in dependencies")

        latest: dict[str, str] = {}
        if opts.resolve_latest:
            latest = await self.registry.fetch_latest_compatible_versions(
                [(a.package_name, a.patched_version) for a in vulnerable if a.fix_available and a.patched_version]
            )

        overrides = generate_overrides(vulnerable)
        updates = find_override_updates(manifest, alerts)
        if updates:
            logger.debug(f"Found {len(updates)} override updates available")

        if opts.interactive and vulnerable:
            overrides = self.prompt.review(vulnerable, overrides)

        result = SecurityCheckResult(
            alerts=vulnerable,
            overrides=overrides,
            updates=updates,
            packages_scanned=len(packages),
            latest_compatible=latest,
        )

        if opts.auto_fix and overrides:
            path = opts.package_json_path or str(Path(opts.root) / "package.json")
            result.backup_path = self.apply_auto_fix(overrides, path)

        return result

    def find_workspace_vulnerabilities(
        self, dep_paths: list[str], root: str, alerts: list[SecurityAlert]
    ) -> list[SecurityAlert]:
        """Vulnerable packages declared by workspace manifests matching ``dep_paths``.

        Anything under node_modules is ignored. Unreadable or malformed
        manifests are skipped.
        """
        found: list[SecurityAlert] = []
        for package_file in resolve_workspace_manifests(dep_paths, root):
            try:
                pkg_json = read_manifest(package_file)
            except (OSError, ValueError) as e:
                logger.debug(f"Failed to check {package_file}: {e}")
                continue
            found = merge_new_vulnerabilities(found, find_vulnerable_packages(pkg_json, alerts))
        return found

    def generate_package_overrides(self, overrides: list[SecurityOverride]) -> dict[str, str]:
        return generate_package_overrides(overrides)

    def format_security_report(self, alerts: list[SecurityAlert], overrides: list[SecurityOverride]) -> str:
        return format_security_report(alerts, overrides)

    def apply_auto_fix(self, overrides: list[SecurityOverride], package_json_path: str | Path | None = None) -> Path:
        """Back up and rewrite the manifest. Returns the backup path.

        Raises:
            AutoFixError: the manifest could not be backed up or written
        """
        path = Path(package_json_path) if package_json_path else Path(self.options.root) / "package.json"
        provider = self.provider_names[0] if self.providers else None
        return apply_auto_fix(path, self.generate_package_overrides(overrides), overrides, provider)

    def rollback_auto_fix(self, backup_path: str | Path) -> Path:
        return restore_backup(backup_path)


def resolve_workspace_manifests(dep_paths: list[str], root: str) -> list[Path]:
    """Sorted, de-duplicated files matching ``dep_paths`` under ``root``."""
    matches: set[Path] = set()
    root_path = Path(root)
    for pattern in dep_paths:
        full = pattern if Path(pattern).is_absolute() else str(root_path / pattern)
        for match in glob.glob(full, recursive=True):
            path = Path(match)
            if "node_modules" in path.parts or not path.is_file():
                continue
            matches.add(path.resolve())
    return sorted(matches)


def run_security_check(
    manifest: dict[str, Any],
    options: SecurityCheckOptions | None = None,
    *,
    prompt: SecurityPrompt | None = None,
    providers: list[BaseSecurityProvider] | None = None,
) -> SecurityCheckResult:
    """Synchronous entry point; runs check_security() in a fresh event loop."""
    reset_rate_limiters()
    checker = SecurityChecker(options, prompt=prompt, providers=providers)
    return asyncio.run(checker.check_security(manifest))
