"""Tests for the OSV provider.

HTTP goes through httpx.MockTransport; nothing leaves the process.
"""

import asyncio
import json

import httpx
import pytest

from pastoralist.errors import ProviderError
from pastoralist.security.providers.osv import (
    OSV_QUERY_URL,
    OSVProvider,
    convert_osv_vulns,
    extract_cve,
    extract_patched_version,
    extract_severity,
    extract_version_range,
)
from pastoralist.security.types import PackageRef, ProviderConfig

LODASH_VULN = {
    "id": "GHSA-35jh-r3h4-6jhm",
    "summary": "Command Injection in lodash",
    "details": "lodash versions prior to 4.17.21 are vulnerable to Command Injection via template.",
    "aliases": ["CVE-2021-23337"],
    "affected": [
        {
            "package": {"name": "lodash", "ecosystem": "npm"},
            "ranges": [{"type": "SEMVER", "events": [{"introduced": "0"}, {"fixed": "4.17.21"}]}],
        }
    ],
    "database_specific": {"severity": "HIGH"},
    "references": [{"type": "ADVISORY", "url": "https://nvd.nist.gov/vuln/detail/CVE-2021-23337"}],
}


def osv_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def config(**kwargs):
    kwargs.setdefault("retries", 0)
    return ProviderConfig(**kwargs)


class TestOSVExtraction:

    def test_patched_version_and_range(self):
        assert extract_patched_version(LODASH_VULN) == "4.17.21"
        assert extract_version_range(LODASH_VULN) == ">= 0 < 4.17.21"

    def test_range_without_fix(self):
        vuln = {"affected": [{"ranges": [{"events": [{"introduced": "1.0.0"}]}]}]}

        assert extract_patched_version(vuln) is None
        assert extract_version_range(vuln) == ">= 1.0.0"

    def test_missing_affected(self):
        assert extract_version_range({}) == ""
        assert extract_patched_version({}) is None

    def test_severity_sources(self):
        assert extract_severity(LODASH_VULN) == "high"
        assert extract_severity({"database_specific": {"severity": "MODERATE"}}) == "medium"
        assert extract_severity({"severity": [{"type": "CVSS_V3", "score": "CVSS:3.1/AV:N"}]}) == "medium"
        assert extract_severity({}) == "medium"

    def test_cve_from_aliases(self):
        assert extract_cve(LODASH_VULN) == "CVE-2021-23337"
        assert extract_cve({"aliases": ["GHSA-xxxx"]}) is None

    def test_convert(self):
        [alert] = convert_osv_vulns(PackageRef("lodash", "4.17.20"), [LODASH_VULN])

        assert alert.package_name == "lodash"
        assert alert.current_version == "4.17.20"
        assert alert.vulnerable_versions == ">= 0 < 4.17.21"
        assert alert.patched_version == "4.17.21"
        assert alert.fix_available is True
        assert alert.title == "Command Injection in lodash"
        assert alert.url == "https://nvd.nist.gov/vuln/detail/CVE-2021-23337"

    def test_convert_falls_back_to_osv_url(self):
        vuln = {"id": "OSV-1", "details": "Something bad"}

        [alert] = convert_osv_vulns(PackageRef("pkg", "1.0.0"), [vuln])

        assert alert.url == "https://osv.dev/vulnerability/OSV-1"
        assert alert.title == "Something bad"
        assert alert.fix_available is False


class TestOSVProvider:

    def test_one_query_per_package(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            body = {"vulns": [LODASH_VULN]} if b"lodash" in request.content else {}
            return httpx.Response(200, json=body)

        packages = [PackageRef("lodash", "4.17.20"), PackageRef("react", "18.2.0")]

        async def scenario():
            async with osv_client(handler) as client:
                return await OSVProvider(config(), client=client).fetch_alerts(packages)

        alerts = asyncio.run(scenario())

        assert len(requests) == 2
        assert {r["package"]["name"] for r in requests} == {"lodash", "react"}
        assert all(r["package"]["ecosystem"] == "npm" for r in requests)
        assert [a.package_name for a in alerts] == ["lodash"]

    def test_posts_to_query_endpoint(self):
        urls = []

        def handler(request):
            urls.append(str(request.url))
            return httpx.Response(200, json={})

        async def scenario():
            async with osv_client(handler) as client:
                await OSVProvider(config(), client=client).fetch_alerts([PackageRef("a", "1.0.0")])

        asyncio.run(scenario())

        assert urls == [OSV_QUERY_URL]

    def test_empty_package_list_makes_no_requests(self):
        def handler(request):
            raise AssertionError("no request expected")

        async def scenario():
            async with osv_client(handler) as client:
                return await OSVProvider(config(), client=client).fetch_alerts([])

        assert asyncio.run(scenario()) == []

    def test_failed_package_does_not_drop_others(self):
        def handler(request):
            if b"broken" in request.content:
                return httpx.Response(500, json={"error": "internal"})
            return httpx.Response(200, json={"vulns": [LODASH_VULN]})

        packages = [PackageRef("broken", "1.0.0"), PackageRef("lodash", "4.17.20")]

        async def scenario():
            async with osv_client(handler) as client:
                return await OSVProvider(config(), client=client).fetch_alerts(packages)

        alerts = asyncio.run(scenario())

        assert [a.package_name for a in alerts] == ["lodash"]

    def test_failures_raise_in_strict_mode(self):
        def handler(request):
            return httpx.Response(503)

        async def scenario():
            async with osv_client(handler) as client:
                return await OSVProvider(config(strict=True), client=client).fetch_alerts(
                    [PackageRef("a", "1.0.0")]
                )

        with pytest.raises(ProviderError, match="1 of 1 OSV queries failed"):
            asyncio.run(scenario())

    def test_transient_failure_is_retried(self):
        calls = {"n": 0}

        def handler(request):
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(502)
            return httpx.Response(200, json={"vulns": [LODASH_VULN]})

        async def scenario():
            provider = OSVProvider(config(retries=2, retry_min_timeout=1, retry_max_timeout=1), client=None)
            async with osv_client(handler) as client:
                provider.client = client
                return await provider.fetch_alerts([PackageRef("lodash", "4.17.20")])

        alerts = asyncio.run(scenario())

        assert calls["n"] == 2
        assert len(alerts) == 1

    def test_concurrency_is_bounded(self):
        active = {"now": 0, "peak": 0}

        async def handler(request):
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
            await asyncio.sleep(0.01)
            active["now"] -= 1
            return httpx.Response(200, json={})

        packages = [PackageRef(f"pkg-{i}", "1.0.0") for i in range(8)]

        async def scenario():
            async with osv_client(handler) as client:
                await OSVProvider(config(concurrency=3), client=client).fetch_alerts(packages)

        asyncio.run(scenario())

        assert active["peak"] <= 3
