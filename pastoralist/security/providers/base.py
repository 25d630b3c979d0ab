"""Abstract base class for security provider implementations.

All providers must inherit from BaseSecurityProvider and implement
fetch_alerts(). Shared helpers cover the strict/lenient failure policy and
the "CLI exited nonzero but still printed JSON" fallback.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from pastoralist.errors import ProviderError
from pastoralist.security.types import PackageRef, ProviderConfig, SecurityAlert
from pastoralist.utils.logging import logger
from pastoralist.utils.process import CommandResult, CommandRunner, run_command_async


class BaseSecurityProvider(ABC):
    """Abstract base class for all security providers.

    Implementations must provide:
    - provider_name: Identifier for this provider (e.g., 'osv', 'github')
    - fetch_alerts(): Return normalized alerts for the given packages
    """

    def __init__(self, config: ProviderConfig | None = None, runner: CommandRunner | None = None):
        self.config = config or ProviderConfig()
        self.runner = runner or run_command_async

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return provider identifier (e.g., 'osv', 'snyk')."""
        ...

    @abstractmethod
    async def fetch_alerts(self, packages: list[PackageRef]) -> list[SecurityAlert]:
        """Fetch alerts for ``packages``.

        Args:
            packages: Declared dependencies with range prefixes stripped

        Returns:
            Normalized alerts. An unavailable provider returns an empty list;
            transport failures raise ProviderError only in strict mode.
        """
        ...

    def fail(self, reason: str) -> list[SecurityAlert]:
        """Apply the failure policy: raise in strict mode, else warn and return []."""
        if self.config.strict:
            raise ProviderError(self.provider_name, reason)
        logger.warning(f"{self.provider_name} security check failed: {reason}")
        return []

    def unavailable(self, reason: str) -> list[SecurityAlert]:
        """Provider cannot run here (no CLI, no credentials). Never fatal."""
        logger.warning(f"{self.provider_name} provider unavailable: {reason}")
        return []

    async def run(self, cmd: list[str], timeout: float, env: dict[str, str] | None = None) -> CommandResult:
        return await self.runner(cmd, cwd=self.config.cwd, timeout=timeout, env=env)


def parse_json_output(stdout: str) -> Any | None:
    """Parse CLI stdout as JSON, or None when it is empty or not JSON."""
    if not stdout or not stdout.strip():
        return None
    try:
        return json.loads(stdout)
    except json.JSONDecodeError:
        return None


def scan_output(provider: BaseSecurityProvider, result: CommandResult) -> Any | None:
    """JSON payload of a scan, tolerating a nonzero exit that still printed JSON.

    Returns None after applying the provider's failure policy when no usable
    payload exists.
    """
    data = parse_json_output(result.stdout)
    if data is not None:
        if not result.success:
            logger.debug(
                f"{provider.provider_name} exited with {result.returncode}, using partial JSON output"
            )
        return data

    reason = result.stderr.strip() or f"exit code {result.returncode}"
    provider.fail(reason)
    return None
