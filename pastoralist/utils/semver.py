"""Dotted numeric version comparison.

Not a full semver implementation: prerelease suffixes are stripped, every
dot-separated component is read as its leading integer (0 when there is
none) and missing trailing components count as 0.
"""

import re

_LEADING_INT = re.compile(r"\d+")


def _parse_part(part: str) -> int:
    match = _LEADING_INT.match(part.strip())
    return int(match.group(0)) if match else 0


def parse_version(version: str) -> tuple[int, ...]:
    """'1.2.3-beta.1' -> (1, 2, 3)"""
    core = version.strip().lstrip("vV").split("-")[0].split("+")[0]
    return tuple(_parse_part(p) for p in core.split("."))


def compare_versions(v1: str, v2: str) -> int:
    """Return <0, 0 or >0 as v1 is lower than, equal to or higher than v2.

    compare_versions("1.0", "1.0.0") == 0
    compare_versions("1.10.0", "1.9.0") > 0
    """
    parts1 = parse_version(v1)
    parts2 = parse_version(v2)
    length = max(len(parts1), len(parts2))

    for i in range(length):
        a = parts1[i] if i < len(parts1) else 0
        b = parts2[i] if i < len(parts2) else 0
        if a != b:
            return a - b

    return 0


def strip_range_prefix(version: str) -> str:
    """Drop a leading caret or tilde: '^4.17.20' -> '4.17.20'."""
    return re.sub(r"^[\^~]", "", version.strip())


def is_prerelease(version: str) -> bool:
    return "-" in version


def major_version(version: str) -> int:
    return parse_version(version)[0]
