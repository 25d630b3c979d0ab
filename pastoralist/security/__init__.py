"""Vulnerability detection and override reconciliation.

Only the shared types are exported here. The orchestrator lives in
``pastoralist.security.checker`` and must not be imported from this module
(pastoralist.manifest imports these types, and the checker imports manifest).
"""

from .types import (
    MockSettings,
    OverrideUpdate,
    PackageRef,
    ProviderConfig,
    SecurityAlert,
    SecurityCheckOptions,
    SecurityCheckResult,
    SecurityOverride,
)

__all__ = [
    "MockSettings",
    "OverrideUpdate",
    "PackageRef",
    "ProviderConfig",
    "SecurityAlert",
    "SecurityCheckOptions",
    "SecurityCheckResult",
    "SecurityOverride",
]
