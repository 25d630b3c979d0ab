"""Security providers - one interface over OSV, GitHub Dependabot, Snyk and Socket.

Provides a registry pattern for provider implementations:
- OSV (api.osv.dev) - default, no authentication
- GitHub (Dependabot alerts via gh CLI or REST)
- Snyk (snyk CLI)
- Socket (socket CLI)

Usage:
    from pastoralist.security.providers import get_provider

    provider = get_provider("github", ProviderConfig(token=token))
    alerts = await provider.fetch_alerts(packages)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pastoralist.utils.logging import logger

if TYPE_CHECKING:
    from pastoralist.security.types import ProviderConfig

    from .base import BaseSecurityProvider

DEFAULT_PROVIDER = "osv"

# Lazy imports to avoid circular dependencies
_REGISTRY: dict[str, type[BaseSecurityProvider]] | None = None


def _init_registry() -> dict[str, type[BaseSecurityProvider]]:
    """Initialize the registry with all provider implementations."""
    global _REGISTRY
    if _REGISTRY is not None:
        return _REGISTRY

    from .github import GitHubSecurityProvider
    from .osv import OSVProvider
    from .snyk import SnykCLIProvider
    from .socket import SocketCLIProvider

    _REGISTRY = {
        "osv": OSVProvider,
        "github": GitHubSecurityProvider,
        "snyk": SnykCLIProvider,
        "socket": SocketCLIProvider,
    }
    return _REGISTRY


def available_providers() -> list[str]:
    return list(_init_registry())


def is_known_provider(name: str) -> bool:
    return name.lower() in _init_registry()


def get_provider(name: str, config: ProviderConfig | None = None, **kwargs: Any) -> BaseSecurityProvider:
    """Get provider instance by name.

    Args:
        name: Provider identifier ('osv', 'github', 'snyk', 'socket')
        config: Credentials, mode flags and timeouts for the provider
        **kwargs: Forwarded to the constructor (runner, client, installer)

    Returns:
        Provider instance; unknown names fall back to OSV
    """
    registry = _init_registry()
    cls = registry.get(name.lower())
    if cls is None:
        logger.debug(f"Provider {name} not yet implemented, using OSV")
        cls = registry[DEFAULT_PROVIDER]
    return cls(config, **kwargs)


__all__ = [
    "get_provider",
    "available_providers",
    "is_known_provider",
    "DEFAULT_PROVIDER",
]
