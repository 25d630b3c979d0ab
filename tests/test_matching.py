"""Tests for alert normalization, matching and override generation.

These functions are pure, so every test builds its inputs inline.
"""

from dataclasses import replace

import pytest

from pastoralist.security.matching import (
    collect_dependencies,
    deduplicate_alerts,
    extract_packages,
    find_override_updates,
    find_reported_packages,
    find_vulnerable_packages,
    format_security_report,
    generate_overrides,
    generate_package_overrides,
    get_existing_overrides,
    is_supported_range,
    is_version_vulnerable,
    merge_new_vulnerabilities,
    normalize_severity,
)
from pastoralist.security.types import PackageRef, SecurityAlert, SecurityOverride


def make_alert(name="lodash", version="", severity="high", **kwargs):
    defaults = dict(
        package_name=name,
        current_version=version,
        vulnerable_versions="< 4.17.21",
        severity=severity,
        title=f"Issue in {name}",
        patched_version="4.17.21",
        fix_available=True,
    )
    defaults.update(kwargs)
    return SecurityAlert(**defaults)


class TestNormalizeSeverity:

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("CRITICAL", "critical"),
            ("High", "high"),
            ("moderate", "medium"),
            ("low", "low"),
            ("info", "low"),
        ],
    )
    def test_known_values(self, raw, expected):
        assert normalize_severity(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "CVSS:3.1/AV:N", 7.5, "severe"])
    def test_unknown_values_default_to_medium(self, raw):
        assert normalize_severity(raw) == "medium"


class TestDeduplicateAlerts:

    def test_highest_severity_wins(self):
        low = make_alert(severity="low", cve="CVE-1")
        critical = make_alert(severity="critical", cve="CVE-1")
        medium = make_alert(severity="medium", cve="CVE-1")

        result = deduplicate_alerts([low, critical, medium])

        assert result == [critical]

    def test_tie_keeps_first_seen(self):
        first = make_alert(severity="high", cve="CVE-1", url="https://first")
        second = make_alert(severity="high", cve="CVE-1", url="https://second")

        assert deduplicate_alerts([first, second]) == [first]

    def test_title_used_when_cve_missing(self):
        a = make_alert(title="Same title")
        b = make_alert(title="Same title", severity="critical")
        c = make_alert(title="Other title")

        result = deduplicate_alerts([a, b, c])

        assert [r.title for r in result] == ["Same title", "Other title"]
        assert result[0].severity == "critical"

    def test_group_order_is_first_seen(self):
        a = make_alert(name="a", cve="CVE-A")
        b = make_alert(name="b", cve="CVE-B")
        a2 = make_alert(name="a", cve="CVE-A", severity="critical")

        result = deduplicate_alerts([a, b, a2])

        assert [r.package_name for r in result] == ["a", "b"]

    def test_different_versions_are_distinct(self):
        a = make_alert(version="1.0.0", cve="CVE-1")
        b = make_alert(version="2.0.0", cve="CVE-1")

        assert len(deduplicate_alerts([a, b])) == 2


class TestExtractPackages:

    def test_flattens_all_dependency_fields_and_strips_prefixes(self, lodash_manifest):
        packages = extract_packages(lodash_manifest)

        assert PackageRef("lodash", "4.17.20") in packages
        assert PackageRef("react", "18.2.0") in packages
        assert PackageRef("minimist", "1.2.5") in packages
        assert len(packages) == 3

    def test_later_field_wins_on_collision(self):
        manifest = {
            "dependencies": {"shared": "^1.0.0"},
            "peerDependencies": {"shared": "^2.0.0"},
        }
        assert collect_dependencies(manifest) == {"shared": "^2.0.0"}

    def test_empty_manifest(self):
        assert extract_packages({"name": "empty"}) == []

    def test_non_string_values_are_ignored(self):
        manifest = {"dependencies": {"weird": {"nested": True}, "ok": "1.0.0"}}
        assert extract_packages(manifest) == [PackageRef("ok", "1.0.0")]


class TestIsVersionVulnerable:

    @pytest.mark.parametrize(
        "version,rng,expected",
        [
            ("4.17.20", "< 4.17.21", True),
            ("4.17.21", "< 4.17.21", False),
            ("^4.17.20", "<4.17.21", True),
            ("1.2.5", "<= 1.2.5", True),
            ("1.2.6", "<= 1.2.5", False),
            ("2.5.0", ">= 2.0.0 < 3.0.0", True),
            ("2.5.0", ">= 2.0.0, < 3.0.0", True),
            ("3.0.0", ">= 2.0.0 < 3.0.0", False),
            ("1.9.9", ">= 2.0.0 < 3.0.0", False),
        ],
    )
    def test_supported_shapes(self, version, rng, expected):
        assert is_version_vulnerable(version, rng) is expected

    @pytest.mark.parametrize("rng", ["", "*", "= 1.0.0", "> 1.0.0", "1.0.0 - 2.0.0", "^1.0.0", ">= 1.0.0"])
    def test_unrecognized_ranges_never_match(self, rng):
        assert is_version_vulnerable("1.5.0", rng) is False


class TestFindVulnerablePackages:

    def test_matches_declared_version_and_copies_alert(self, lodash_manifest, lodash_alert):
        result = find_vulnerable_packages(lodash_manifest, [lodash_alert])

        assert len(result) == 1
        assert result[0].current_version == "4.17.20"
        assert lodash_alert.current_version == ""

    def test_patched_declaration_is_not_vulnerable(self, lodash_alert):
        manifest = {"dependencies": {"lodash": "^4.17.21"}}
        assert find_vulnerable_packages(manifest, [lodash_alert]) == []

    def test_undeclared_package_is_dropped(self, lodash_alert):
        manifest = {"dependencies": {"react": "^18.2.0"}}
        assert find_vulnerable_packages(manifest, [lodash_alert]) == []


class TestFindReportedPackages:

    def test_unsupported_ranges_keep_the_provider_verdict(self, lodash_alert):
        manifest = {"dependencies": {"lodash": "^4.17.20"}}
        no_fix = replace(lodash_alert, vulnerable_versions=">= 0", patched_version=None, fix_available=False)
        interval = replace(lodash_alert, vulnerable_versions="[,4.17.21)", cve="CVE-2")
        socket_issue = replace(lodash_alert, vulnerable_versions="", cve=None, title="Install scripts")

        result = find_reported_packages(manifest, [no_fix, interval, socket_issue])

        assert len(result) == 3
        assert {a.current_version for a in result} == {"4.17.20"}

    def test_supported_range_outside_declared_version_is_dropped(self, lodash_alert):
        manifest = {"dependencies": {"lodash": "^4.17.21"}}
        assert find_reported_packages(manifest, [lodash_alert]) == []

    def test_undeclared_package_is_dropped(self, lodash_alert):
        manifest = {"dependencies": {"react": "^18.2.0"}}
        assert find_reported_packages(manifest, [replace(lodash_alert, vulnerable_versions="")]) == []

    def test_supported_shapes(self):
        assert is_supported_range("< 1.0.0")
        assert is_supported_range(">= 1.0.0, < 2.0.0")
        assert not is_supported_range(">= 1.0.0")
        assert not is_supported_range("")


class TestMergeNewVulnerabilities:

    def test_only_new_name_version_pairs_are_appended(self):
        existing = [make_alert(version="4.17.20", cve="CVE-1")]
        candidates = [
            make_alert(version="4.17.20", cve="CVE-2"),
            make_alert(version="4.17.19", cve="CVE-1"),
        ]

        merged = merge_new_vulnerabilities(existing, candidates)

        assert [(a.current_version, a.cve) for a in merged] == [("4.17.20", "CVE-1"), ("4.17.19", "CVE-1")]


class TestGenerateOverrides:

    def test_override_carries_alert_details(self, lodash_alert):
        vulnerable = replace(lodash_alert, current_version="4.17.20")

        [override] = generate_overrides([vulnerable])

        assert override.package_name == "lodash"
        assert override.from_version == "4.17.20"
        assert override.to_version == "4.17.21"
        assert override.reason == "Security fix: Prototype Pollution in lodash (high)"
        assert override.cve == "CVE-2021-23337"
        assert override.url == lodash_alert.url

    def test_alerts_without_fix_are_skipped(self):
        no_fix = make_alert(patched_version=None, fix_available=False)
        flagged_but_empty = make_alert(patched_version=None, fix_available=True)

        assert generate_overrides([no_fix, flagged_but_empty]) == []

    def test_package_overrides_keep_highest_version(self):
        overrides = [
            SecurityOverride("lodash", "4.17.15", "4.17.19", "r", "high"),
            SecurityOverride("lodash", "4.17.15", "4.17.21", "r", "high"),
            SecurityOverride("lodash", "4.17.15", "4.17.20", "r", "high"),
            SecurityOverride("minimist", "1.2.5", "1.2.6", "r", "medium"),
        ]

        assert generate_package_overrides(overrides) == {"lodash": "4.17.21", "minimist": "1.2.6"}


class TestExistingOverrides:

    def test_npm_overrides_first(self):
        manifest = {"overrides": {"a": "1"}, "resolutions": {"b": "2"}}
        assert get_existing_overrides(manifest) == {"a": "1"}

    def test_pnpm_overrides(self):
        manifest = {"pnpm": {"overrides": {"a": "1"}}, "resolutions": {"b": "2"}}
        assert get_existing_overrides(manifest) == {"a": "1"}

    def test_empty_overrides_fall_through_to_resolutions(self):
        manifest = {"overrides": {}, "resolutions": {"b": "2"}}
        assert get_existing_overrides(manifest) == {"b": "2"}

    def test_none(self):
        assert get_existing_overrides({}) == {}


class TestFindOverrideUpdates:

    def _manifest(self, security_checked=True):
        return {
            "overrides": {"lodash": "4.17.19", "nested": {"child": "1.0.0"}},
            "pastoralist": {
                "appendix": {
                    "lodash@4.17.19": {
                        "dependents": {"demo-app": "lodash@^4.17.15"},
                        "ledger": {
                            "addedDate": "2024-01-01T00:00:00.000Z",
                            "securityChecked": security_checked,
                        },
                    }
                }
            },
        }

    def test_newer_patch_reported(self, lodash_alert):
        [update] = find_override_updates(self._manifest(), [lodash_alert])

        assert update.package_name == "lodash"
        assert update.current_override == "4.17.19"
        assert update.newer_version == "4.17.21"
        assert update.reason == "Newer security patch available: Prototype Pollution in lodash"
        assert update.added_date == "2024-01-01T00:00:00.000Z"

    def test_non_security_overrides_ignored(self, lodash_alert):
        assert find_override_updates(self._manifest(security_checked=False), [lodash_alert]) == []

    def test_same_or_older_patch_ignored(self, lodash_alert):
        older = replace(lodash_alert, patched_version="4.17.19")
        assert find_override_updates(self._manifest(), [older]) == []

    def test_no_appendix(self, lodash_alert):
        assert find_override_updates({"overrides": {"lodash": "4.17.19"}}, [lodash_alert]) == []


class TestFormatSecurityReport:

    def test_no_alerts(self):
        report = format_security_report([], [])

        assert "Security Check Report" in report
        assert "=" * 50 in report
        assert "No vulnerable packages found" in report

    def test_alerts_and_overrides(self, lodash_alert):
        vulnerable = replace(lodash_alert, current_version="4.17.20")
        unfixed = make_alert(name="left-pad", version="1.0.0", patched_version=None, fix_available=False)
        overrides = generate_overrides([vulnerable, unfixed])

        report = format_security_report([vulnerable, unfixed], overrides)

        assert "Found 2 vulnerable package(s)" in report
        assert "[HIGH] lodash@4.17.20" in report
        assert "CVE: CVE-2021-23337" in report
        assert "Fix available: 4.17.21" in report
        assert "No fix available yet" in report
        assert "Generated 1 override(s):" in report
        assert '"lodash": "4.17.21"' in report
