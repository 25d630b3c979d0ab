"""package.json reading, override write-back, appendix ledger and backups.

Write-back always goes through create_backup() first; nothing here writes
a manifest unless a byte-identical copy already exists beside it.
"""

from __future__ import annotations

import copy
import filecmp
import json
import re
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pastoralist.errors import AutoFixError, RollbackError
from pastoralist.security.types import SecurityOverride
from pastoralist.utils.logging import logger

BACKUP_SUFFIX = re.compile(r"\.backup-\d+$")

LOCKFILES = (
    ("bun.lockb", "bun"),
    ("yarn.lock", "yarn"),
    ("pnpm-lock.yaml", "pnpm"),
)


def read_manifest(path: str | Path) -> dict[str, Any]:
    """Parse a package.json. Raises OSError or ValueError on failure."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a JSON object")
    return data


def write_manifest(path: str | Path, data: dict[str, Any]) -> None:
    """Rewrite the whole file, 2-space indented with a trailing newline."""
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")


def detect_package_manager(root: str | Path = ".") -> str:
    """'bun', 'yarn' or 'pnpm' by lockfile, else 'npm'."""
    root = Path(root)
    for lockfile, manager in LOCKFILES:
        if (root / lockfile).exists():
            return manager
    return "npm"


def override_field_for(package_manager: str) -> str:
    return "resolutions" if package_manager == "yarn" else "overrides"


def create_backup(path: str | Path) -> Path:
    """Copy ``path`` to ``<path>.backup-<unix millis>`` and verify the copy.

    Raises:
        OSError: copy failed or the copy does not match the original
    """
    path = Path(path)
    millis = int(time.time() * 1000)
    backup = Path(f"{path}.backup-{millis}")
    while backup.exists():
        millis += 1
        backup = Path(f"{path}.backup-{millis}")

    shutil.copy2(path, backup)
    if not filecmp.cmp(path, backup, shallow=False):
        raise OSError(f"Backup verification failed for {backup}")

    logger.debug(f"Created backup at {backup}")
    return backup


def restore_backup(backup_path: str | Path) -> Path:
    """Copy a ``.backup-<millis>`` file back over its manifest.

    Returns:
        Path of the restored manifest
    """
    backup_path = Path(backup_path)
    if not backup_path.exists():
        raise RollbackError(f"Backup file not found at {backup_path}")

    target_name = BACKUP_SUFFIX.sub("", backup_path.name)
    if target_name == backup_path.name:
        raise RollbackError(f"{backup_path} is not a pastoralist backup file")

    target = backup_path.with_name(target_name)
    try:
        shutil.copy2(backup_path, target)
    except OSError as e:
        raise RollbackError(f"Rollback failed: {e}") from e

    logger.info(f"Rolled back {target} from {backup_path}")
    return target


def apply_overrides_to_manifest(
    manifest: dict[str, Any], package_manager: str, overrides: dict[str, str]
) -> dict[str, Any]:
    """Copy of ``manifest`` with ``overrides`` merged into the manager's field.

    pnpm overrides live under ``pnpm.overrides``; yarn uses ``resolutions``;
    npm and bun use ``overrides``.
    """
    updated = copy.deepcopy(manifest)

    if package_manager == "pnpm":
        pnpm = updated.setdefault("pnpm", {})
        pnpm["overrides"] = {**(pnpm.get("overrides") or {}), **overrides}
        return updated

    field = override_field_for(package_manager)
    updated[field] = {**(updated.get(field) or {}), **overrides}
    return updated


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def update_appendix(
    appendix: dict[str, Any],
    overrides: dict[str, str],
    manifest: dict[str, Any],
    details: list[SecurityOverride] | None = None,
    provider: str | None = None,
) -> dict[str, Any]:
    """Record ``overrides`` in the appendix ledger.

    Entries are keyed ``name@version``. Existing entries, including ones for
    overrides not being written now, are kept; a re-recorded entry keeps its
    original ``addedDate`` and merges its dependents.
    """
    updated = copy.deepcopy(appendix or {})
    details = details or []
    root_name = manifest.get("name") or "root"
    deps = {}
    for field in ("dependencies", "devDependencies", "peerDependencies"):
        deps.update(manifest.get(field) or {})

    for name, version in overrides.items():
        key = f"{name}@{version}"
        entry = updated.get(key) or {}
        dependents = dict(entry.get("dependents") or {})
        if name in deps:
            dependents[root_name] = f"{name}@{deps[name]}"

        ledger = dict(entry.get("ledger") or {})
        ledger.setdefault("addedDate", _now_iso())

        detail = next((d for d in details if d.package_name == name and d.to_version == version), None)
        if detail is None:
            detail = next((d for d in details if d.package_name == name), None)

        if detail is not None:
            ledger["reason"] = detail.reason
            ledger["securityChecked"] = True
            ledger["securityCheckDate"] = _now_iso()
            if provider:
                ledger["securityProvider"] = provider
            for attr in ("cve", "severity", "url"):
                value = getattr(detail, attr)
                if value:
                    ledger[attr] = value

        updated[key] = {**entry, "dependents": dependents, "ledger": ledger}

    return updated


def apply_auto_fix(
    path: str | Path,
    overrides: dict[str, str],
    details: list[SecurityOverride] | None = None,
    provider: str | None = None,
    package_manager: str | None = None,
) -> Path:
    """Back up the manifest, then write ``overrides`` and the appendix ledger.

    Returns:
        Path of the backup copy

    Raises:
        AutoFixError: any read, backup or write failure
    """
    path = Path(path)
    try:
        if not path.exists():
            raise FileNotFoundError(f"package.json not found at {path}")

        backup = create_backup(path)
        manifest = read_manifest(path)
        manager = package_manager or detect_package_manager(path.parent)

        updated = apply_overrides_to_manifest(manifest, manager, overrides)
        pastoralist = updated.setdefault("pastoralist", {})
        pastoralist["appendix"] = update_appendix(
            pastoralist.get("appendix") or {}, overrides, manifest, details, provider
        )

        write_manifest(path, updated)
    except (OSError, ValueError) as e:
        logger.opt(exception=True).error(f"Failed to apply auto-fix to {path}")
        raise AutoFixError(f"Auto-fix failed: {e}") from e

    logger.info(f"Applied {len(overrides)} security override(s) to {path} (backup: {backup})")
    return backup
