"""npm registry lookups for newer releases of patched packages.

Width is bounded by a ConcurrencyLimiter, speed by the shared npm rate
limiter, and each package document is cached for the life of the
NpmRegistry instance so one run never fetches it twice.
"""

from __future__ import annotations

import asyncio
from functools import cmp_to_key
from typing import Any
from urllib.parse import quote

import httpx

from pastoralist.utils.constants import DEFAULT_HTTP_TIMEOUT
from pastoralist.utils.limit import ConcurrencyLimiter
from pastoralist.utils.logging import logger
from pastoralist.utils.lru import LRUCache
from pastoralist.utils.rate_limiter import get_rate_limiter
from pastoralist.utils.retry import retry
from pastoralist.utils.semver import compare_versions, is_prerelease, major_version

NPM_REGISTRY_URL = "https://registry.npmjs.org"


class NpmRegistry:
    """Async client for registry.npmjs.org package documents."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        concurrency: int = 5,
        cache: LRUCache | None = None,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        retries: int = 2,
        min_timeout: float = 500,
        max_timeout: float = 3000,
    ):
        self.client = client
        self.concurrency = concurrency
        self.cache = cache if cache is not None else LRUCache(max=500, ttl=60 * 60 * 1000)
        self.timeout = timeout
        self.retries = retries
        self.min_timeout = min_timeout
        self.max_timeout = max_timeout

    async def fetch_package_info(self, client: httpx.AsyncClient, name: str) -> dict[str, Any] | None:
        """Full package document, or None when it cannot be fetched."""
        if name in self.cache:
            return self.cache.get(name)

        async def fetch() -> dict[str, Any]:
            await get_rate_limiter("npm").acquire()
            response = await client.get(
                f"{NPM_REGISTRY_URL}/{quote(name, safe='@')}",
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            return response.json()

        try:
            info = await retry(fetch, retries=self.retries, min_timeout=self.min_timeout, max_timeout=self.max_timeout)
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Failed to fetch {name} from npm registry: {e}")
            return None

        if not isinstance(info, dict):
            return None
        self.cache.set(name, info)
        return info

    async def fetch_latest_version(self, client: httpx.AsyncClient, name: str) -> str | None:
        info = await self.fetch_package_info(client, name)
        if not info:
            return None
        return (info.get("dist-tags") or {}).get("latest")

    async def fetch_latest_compatible_version(
        self, client: httpx.AsyncClient, name: str, min_version: str
    ) -> str | None:
        """Highest stable release with the same major as ``min_version`` and not below it."""
        info = await self.fetch_package_info(client, name)
        if not info:
            return None

        target_major = major_version(min_version)
        compatible = [
            v
            for v in (info.get("versions") or {})
            if major_version(v) == target_major
            and not is_prerelease(v)
            and compare_versions(v, min_version) >= 0
        ]
        if not compatible:
            return None

        return max(compatible, key=cmp_to_key(compare_versions))

    async def fetch_latest_compatible_versions(self, packages: list[tuple[str, str]]) -> dict[str, str]:
        """Map name -> newest compatible release for (name, min_version) pairs.

        The first min_version given for a name is the one used. Names with no
        compatible release are left out.
        """
        unique: dict[str, str] = {}
        for name, min_version in packages:
            unique.setdefault(name, min_version)

        if not unique:
            return {}

        if self.client is not None:
            return await self._fetch_all(self.client, unique)
        async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
            return await self._fetch_all(client, unique)

    async def _fetch_all(self, client: httpx.AsyncClient, unique: dict[str, str]) -> dict[str, str]:
        limiter = ConcurrencyLimiter(self.concurrency)
        names = list(unique)
        futures = [
            limiter.run(lambda name=name: self.fetch_latest_compatible_version(client, name, unique[name]))
            for name in names
        ]
        versions = await asyncio.gather(*futures)
        return {name: version for name, version in zip(names, versions) if version}

