"""Built-in Dependabot alert payloads served by the GitHub provider's mock mode."""

import copy

_ALERT_METADATA = {
    "url": "https://mock.url",
    "html_url": "https://mock.url",
    "created_at": "2021-01-01T00:00:00Z",
    "updated_at": "2021-01-01T00:00:00Z",
}


def _mock_alert(number: int, name: str, severity: str, vulnerable_range: str, patched: str) -> dict:
    package = {"ecosystem": "npm", "name": name}
    vulnerability = {
        "package": package,
        "severity": severity,
        "vulnerable_version_range": vulnerable_range,
        "first_patched_version": {"identifier": patched},
    }
    return {
        "number": number,
        "state": "open",
        "dependency": {"package": package, "manifest_path": "package.json", "scope": "runtime"},
        "security_advisory": {
            "severity": severity,
            "summary": f"Mock vulnerability in {name}",
            "description": "Mock description",
            "vulnerabilities": [vulnerability],
        },
        "security_vulnerability": vulnerability,
        **_ALERT_METADATA,
    }


MOCK_DEPENDABOT_ALERT_LODASH = _mock_alert(1, "lodash", "high", "< 4.17.21", "4.17.21")
MOCK_DEPENDABOT_ALERT_MINIMIST = _mock_alert(2, "minimist", "medium", "< 1.2.6", "1.2.6")


def default_mock_alerts() -> list[dict]:
    """Fresh copies, so callers may mutate them."""
    return copy.deepcopy([MOCK_DEPENDABOT_ALERT_LODASH, MOCK_DEPENDABOT_ALERT_MINIMIST])
