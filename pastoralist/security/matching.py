"""Alert normalization, deduplication, dependency matching and override generation.

Everything here is pure: no I/O, no provider calls. The checker composes
these steps; tests exercise them directly.
"""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Any

from pastoralist.security.types import (
    SEVERITIES,
    OverrideUpdate,
    PackageRef,
    SecurityAlert,
    SecurityOverride,
)
from pastoralist.utils.semver import compare_versions, strip_range_prefix

DEPENDENCY_FIELDS = ("dependencies", "devDependencies", "peerDependencies")

SEVERITY_SCORES = {"low": 1, "medium": 2, "high": 3, "critical": 4}

SEVERITY_SYNONYMS = {
    "moderate": "medium",
    "info": "low",
}

_VERSION = r"([^\s,]+)"
_BOUNDED_RANGE = re.compile(rf">=\s*{_VERSION}\s*,?\s*<\s*{_VERSION}")
_UPPER_INCLUSIVE = re.compile(rf"<=\s*{_VERSION}")
_UPPER_EXCLUSIVE = re.compile(rf"<\s*{_VERSION}")


def normalize_severity(value: Any) -> str:
    """Map a provider severity onto low|medium|high|critical.

    Unknown or missing values become 'medium', never 'low'.
    """
    if not isinstance(value, str):
        return "medium"
    s = value.strip().lower()
    s = SEVERITY_SYNONYMS.get(s, s)
    return s if s in SEVERITIES else "medium"


def get_severity_score(severity: str) -> int:
    return SEVERITY_SCORES.get(severity.lower(), 0)


def alert_key(alert: SecurityAlert) -> str:
    return f"{alert.package_name}@{alert.current_version}:{alert.cve or alert.title}"


def deduplicate_alerts(alerts: list[SecurityAlert]) -> list[SecurityAlert]:
    """Collapse alerts sharing package, version and CVE-or-title.

    The highest severity in each group wins; on a tie the first one seen is
    kept. Groups come out in the order they were first seen.
    """
    seen: dict[str, SecurityAlert] = {}
    for alert in alerts:
        key = alert_key(alert)
        existing = seen.get(key)
        if existing is None or get_severity_score(alert.severity) > get_severity_score(existing.severity):
            seen[key] = alert
    return list(seen.values())


def collect_dependencies(manifest: dict[str, Any]) -> dict[str, str]:
    """Merge dependency maps; later fields win on a name collision."""
    merged: dict[str, str] = {}
    for field_name in DEPENDENCY_FIELDS:
        deps = manifest.get(field_name) or {}
        if isinstance(deps, dict):
            merged.update({k: v for k, v in deps.items() if isinstance(v, str)})
    return merged


def extract_packages(manifest: dict[str, Any]) -> list[PackageRef]:
    """Flattened {name, version} pairs with ^ and ~ stripped."""
    return [
        PackageRef(name=name, version=strip_range_prefix(version))
        for name, version in collect_dependencies(manifest).items()
    ]


def is_supported_range(vulnerable_range: str) -> bool:
    rng = (vulnerable_range or "").strip()
    return any(p.fullmatch(rng) for p in (_BOUNDED_RANGE, _UPPER_INCLUSIVE, _UPPER_EXCLUSIVE))


def is_version_vulnerable(current_version: str, vulnerable_range: str) -> bool:
    """True when ``current_version`` falls inside ``vulnerable_range``.

    Only three range shapes are understood:
        < X
        <= X
        >= X < Y   (a comma between the bounds is allowed)
    Anything else never matches, so an unfamiliar range cannot produce an
    override.
    """
    version = strip_range_prefix(current_version)
    rng = (vulnerable_range or "").strip()

    match = _BOUNDED_RANGE.fullmatch(rng)
    if match:
        low, high = match.groups()
        return compare_versions(version, low) >= 0 and compare_versions(version, high) < 0

    match = _UPPER_INCLUSIVE.fullmatch(rng)
    if match:
        return compare_versions(version, match.group(1)) <= 0

    match = _UPPER_EXCLUSIVE.fullmatch(rng)
    if match:
        return compare_versions(version, match.group(1)) < 0

    return False


def find_vulnerable_packages(manifest: dict[str, Any], alerts: list[SecurityAlert]) -> list[SecurityAlert]:
    """Alerts whose package the manifest declares at a vulnerable version.

    Returned alerts are copies with ``current_version`` set to the declared
    version (prefix stripped); the inputs are left untouched.
    """
    deps = collect_dependencies(manifest)
    matched = []
    for alert in alerts:
        declared = deps.get(alert.package_name)
        if not declared:
            continue
        if is_version_vulnerable(declared, alert.vulnerable_versions):
            matched.append(replace(alert, current_version=strip_range_prefix(declared)))
    return matched


def find_reported_packages(manifest: dict[str, Any], alerts: list[SecurityAlert]) -> list[SecurityAlert]:
    """Alerts to report for the manifest the providers were queried with.

    Declared packages only. An alert is dropped when its range is one of the
    shapes ``is_version_vulnerable`` understands and the declared version
    falls outside it; any other range (``>= X`` with no fix, Snyk interval
    notation, an empty range) keeps the provider's verdict. Copies carry the
    declared version as ``current_version``.
    """
    deps = collect_dependencies(manifest)
    reported = []
    for alert in alerts:
        declared = deps.get(alert.package_name)
        if not declared:
            continue
        if is_supported_range(alert.vulnerable_versions) and not is_version_vulnerable(
            declared, alert.vulnerable_versions
        ):
            continue
        reported.append(replace(alert, current_version=strip_range_prefix(declared)))
    return reported


def merge_new_vulnerabilities(
    existing: list[SecurityAlert], candidates: list[SecurityAlert]
) -> list[SecurityAlert]:
    """Append candidates whose (package, version) pair is not yet present."""
    seen = {(a.package_name, a.current_version) for a in existing}
    merged = list(existing)
    for alert in candidates:
        pair = (alert.package_name, alert.current_version)
        if pair not in seen:
            seen.add(pair)
            merged.append(alert)
    return merged


def generate_overrides(alerts: list[SecurityAlert]) -> list[SecurityOverride]:
    """One override per alert that has a fix; alerts without one are skipped."""
    return [
        SecurityOverride(
            package_name=alert.package_name,
            from_version=alert.current_version,
            to_version=alert.patched_version,
            reason=f"Security fix: {alert.title} ({alert.severity})",
            severity=alert.severity,
            cve=alert.cve,
            description=alert.description,
            url=alert.url,
        )
        for alert in alerts
        if alert.fix_available and alert.patched_version
    ]


def generate_package_overrides(overrides: list[SecurityOverride]) -> dict[str, str]:
    """Collapse proposals into a name -> version map, keeping the highest version."""
    result: dict[str, str] = {}
    for override in overrides:
        current = result.get(override.package_name)
        if current is not None and compare_versions(override.to_version, current) <= 0:
            continue
        result[override.package_name] = override.to_version
    return result


def get_existing_overrides(manifest: dict[str, Any]) -> dict[str, Any]:
    """First non-empty of overrides, pnpm.overrides, resolutions."""
    pnpm = manifest.get("pnpm") or {}
    for candidate in (manifest.get("overrides"), pnpm.get("overrides"), manifest.get("resolutions")):
        if candidate:
            return candidate
    return {}


def find_override_updates(manifest: dict[str, Any], alerts: list[SecurityAlert]) -> list[OverrideUpdate]:
    """Security overrides already in the manifest that a newer patch supersedes.

    Only overrides whose appendix ledger says they were added by a security
    check are considered. Nested (object-valued) overrides are ignored.
    """
    appendix = (manifest.get("pastoralist") or {}).get("appendix") or {}
    updates = []

    for package_name, version in get_existing_overrides(manifest).items():
        if not isinstance(version, str):
            continue

        entry = appendix.get(f"{package_name}@{version}") or {}
        ledger = entry.get("ledger") or {}
        if not ledger.get("securityChecked"):
            continue

        newer = next(
            (
                a
                for a in alerts
                if a.package_name == package_name
                and a.patched_version
                and compare_versions(a.patched_version, version) > 0
            ),
            None,
        )
        if newer is None:
            continue

        updates.append(
            OverrideUpdate(
                package_name=package_name,
                current_override=version,
                newer_version=newer.patched_version,
                reason=f"Newer security patch available: {newer.title}",
                added_date=ledger.get("addedDate"),
            )
        )

    return updates


def format_security_report(alerts: list[SecurityAlert], overrides: list[SecurityOverride]) -> str:
    """Plain-text report of matched alerts and the overrides generated for them."""
    header = "\nSecurity Check Report\n" + "=" * 50 + "\n\n"

    if not alerts:
        return header + "No vulnerable packages found\n"

    lines = [header, f"Found {len(alerts)} vulnerable package(s):\n\n"]

    for alert in alerts:
        lines.append(f"[{alert.severity.upper()}] {alert.package_name}@{alert.current_version}\n")
        lines.append(f"   {alert.title}\n")
        if alert.cve:
            lines.append(f"   CVE: {alert.cve}\n")
        if alert.fix_available and alert.patched_version:
            lines.append(f"   Fix available: {alert.patched_version}\n")
        else:
            lines.append("   No fix available yet\n")
        if alert.url:
            lines.append(f"   {alert.url}\n")
        lines.append("\n")

    if overrides:
        lines.append(f"\nGenerated {len(overrides)} override(s):\n\n")
        for override in overrides:
            lines.append(f'  "{override.package_name}": "{override.to_version}"\n')

    return "".join(lines)
