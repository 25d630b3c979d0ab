"""GitHub Dependabot provider.

Alerts come from ``gh api`` when the GitHub CLI is installed and logged in,
otherwise from the REST API with a bearer token. Without either the
provider is unavailable and contributes nothing.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import httpx

from pastoralist.errors import ProviderUnavailableError, SecurityProviderPermissionError
from pastoralist.security.fixtures import default_mock_alerts
from pastoralist.security.matching import normalize_severity
from pastoralist.security.types import PackageRef, ProviderConfig, SecurityAlert
from pastoralist.utils.constants import AUTH_MESSAGES
from pastoralist.utils.logging import logger
from pastoralist.utils.process import which
from pastoralist.utils.rate_limiter import get_rate_limiter
from pastoralist.utils.retry import retry

from .base import BaseSecurityProvider

GITHUB_API_URL = "https://api.github.com"

PERMISSION_PATTERNS = (
    "resource not accessible by integration",
    "must have admin rights",
    "not found",
    "dependabot alerts are not enabled",
    "vulnerability alerts are disabled",
)

_REMOTE_PATTERN = re.compile(r"github\.com[:/]([^/\s]+)/([^/\s]+?)(?:\.git)?/?$")


def is_permission_error(message: str) -> bool:
    lowered = message.lower()
    return any(pattern in lowered for pattern in PERMISSION_PATTERNS)


def parse_github_remote(url: str) -> tuple[str, str] | None:
    """('owner', 'repo') from an ssh or https GitHub remote URL."""
    url = url.strip()
    if not (url.startswith("git@github.com:") or re.match(r"^(https?|ssh|git)://([^/@]+@)?github\.com/", url)):
        return None
    match = _REMOTE_PATTERN.search(url)
    if not match:
        return None
    return match.group(1), match.group(2)


def parse_paginated_json(stdout: str) -> list[Any]:
    """Flatten the back-to-back JSON arrays ``gh api --paginate`` prints."""
    decoder = json.JSONDecoder()
    items: list[Any] = []
    pos = 0
    text = stdout.strip()
    while pos < len(text):
        value, end = decoder.raw_decode(text, pos)
        if isinstance(value, list):
            items.extend(value)
        else:
            items.append(value)
        pos = end
        while pos < len(text) and text[pos].isspace():
            pos += 1
    return items


def extract_current_version(vulnerable_range: str) -> str:
    """Lower bound of a '>= X ...' range, else 'unknown'."""
    match = re.search(r">=\s?([^\s,]+)", vulnerable_range or "")
    return match.group(1) if match else "unknown"


def convert_dependabot_alerts(alerts: list[Any]) -> list[SecurityAlert]:
    """Open Dependabot alerts as SecurityAlerts; dismissed and fixed are dropped."""
    converted = []
    for alert in alerts:
        if not isinstance(alert, dict) or alert.get("state") != "open":
            continue
        vulnerability = alert.get("security_vulnerability") or {}
        advisory = alert.get("security_advisory") or {}
        package = vulnerability.get("package") or {}
        if not package.get("name"):
            continue

        vulnerable_range = vulnerability.get("vulnerable_version_range") or ""
        first_patched = vulnerability.get("first_patched_version") or {}
        patched = first_patched.get("identifier") if isinstance(first_patched, dict) else None

        converted.append(
            SecurityAlert(
                package_name=package["name"],
                current_version=extract_current_version(vulnerable_range),
                vulnerable_versions=vulnerable_range,
                patched_version=patched,
                severity=normalize_severity(vulnerability.get("severity") or advisory.get("severity")),
                title=advisory.get("summary") or f"Vulnerability in {package['name']}",
                description=advisory.get("description"),
                cve=advisory.get("cve_id"),
                url=alert.get("html_url"),
                fix_available=bool(patched),
            )
        )
    return converted


class GitHubSecurityProvider(BaseSecurityProvider):
    """Dependabot alerts for one repository.

    Dependabot reports on the repository as a whole, so ``packages`` is not
    sent anywhere; matching against declared versions happens in the checker.
    """

    def __init__(self, config: ProviderConfig | None = None, client: httpx.AsyncClient | None = None, **kwargs):
        super().__init__(config, **kwargs)
        self.client = client
        self.owner = self.config.owner
        self.repo = self.config.repo

    @property
    def provider_name(self) -> str:
        return "github"

    async def fetch_alerts(self, packages: list[PackageRef]) -> list[SecurityAlert]:
        logger.debug("Fetching GitHub Dependabot alerts")

        if self.config.mock.enabled:
            raw = self._mock_alerts()
        else:
            try:
                raw = await self.fetch_dependabot_alerts()
            except ProviderUnavailableError as e:
                return self.unavailable(str(e))
            except SecurityProviderPermissionError as e:
                return self.fail(str(e))

        if raw is None:
            return []

        alerts = convert_dependabot_alerts(raw)
        logger.debug(f"Converted {len(raw)} Dependabot alerts to {len(alerts)} security alerts")
        return alerts

    def _mock_alerts(self) -> list[Any]:
        logger.debug("Using mock Dependabot alerts")
        mock = self.config.mock
        if not mock.force_vulnerable:
            return []

        if mock.alerts_file:
            try:
                data = json.loads(Path(mock.alerts_file).read_text(encoding="utf-8"))
                if isinstance(data, list):
                    return data
                logger.debug(f"Mock alerts file {mock.alerts_file} is not a JSON array")
            except (OSError, json.JSONDecodeError) as e:
                logger.debug(f"Failed to read mock alerts file {mock.alerts_file}: {e}")

        return default_mock_alerts()

    async def resolve_repository(self) -> bool:
        """Fill owner/repo from ``git config --get remote.origin.url`` if needed."""
        if self.owner and self.repo:
            return True

        result = await self.run(["git", "config", "--get", "remote.origin.url"], timeout=self.config.cli_timeout)
        parsed = parse_github_remote(result.stdout) if result.success else None
        if parsed is None:
            logger.debug("Unable to determine GitHub repository from git remote")
            return False

        self.owner = self.owner or parsed[0]
        self.repo = self.repo or parsed[1]
        return True

    async def fetch_dependabot_alerts(self) -> list[Any] | None:
        """Raw alert dicts, or None after a lenient fetch failure.

        Raises:
            ProviderUnavailableError: no repository, or neither gh nor a token
            SecurityProviderPermissionError: GitHub refused access
        """
        if not await self.resolve_repository():
            raise ProviderUnavailableError("unable to determine GitHub repository owner/name")

        if await self._gh_ready():
            logger.debug("Using gh CLI for Dependabot alerts")
            return await self._fetch_with_retry(self._fetch_with_gh, "gh CLI")

        if self.config.token:
            logger.debug("Using GitHub API with provided token")
            return await self._fetch_with_retry(self._fetch_with_api, "GitHub API")

        raise ProviderUnavailableError(AUTH_MESSAGES["GITHUB_CLI_NOT_FOUND"])

    async def _gh_ready(self) -> bool:
        if which("gh") is None:
            return False
        status = await self.run(["gh", "auth", "status"], timeout=self.config.cli_timeout)
        return status.success

    async def _fetch_with_retry(self, fetch, label: str) -> list[Any] | None:
        def on_failed_attempt(error: BaseException) -> None:
            if isinstance(error, SecurityProviderPermissionError):
                raise error
            logger.debug(f"{label} attempt {getattr(error, 'attempt_number', '?')} failed: {error}")

        try:
            return await retry(
                fetch,
                retries=self.config.retries,
                factor=self.config.retry_factor,
                min_timeout=self.config.retry_min_timeout,
                max_timeout=self.config.retry_max_timeout,
                on_failed_attempt=on_failed_attempt,
            )
        except SecurityProviderPermissionError:
            raise
        except (RuntimeError, httpx.HTTPError, ValueError) as e:
            self.fail(f"Failed to fetch Dependabot alerts: {e}")
            return None

    async def _fetch_with_gh(self) -> list[Any]:
        args = ["gh", "api", f"repos/{self.owner}/{self.repo}/dependabot/alerts", "--paginate"]
        logger.debug(f"Fetching alerts with gh CLI: {' '.join(args)}")

        result = await self.run(args, timeout=self.config.gh_timeout)
        if not result.success:
            message = result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}"
            if is_permission_error(message):
                raise SecurityProviderPermissionError("GitHub CLI", message)
            raise RuntimeError(f"gh api failed: {message}")

        return parse_paginated_json(result.stdout)

    async def _fetch_with_api(self) -> list[Any]:
        if self.client is not None:
            return await self._fetch_pages(self.client)
        async with httpx.AsyncClient(timeout=self.config.http_timeout) as client:
            return await self._fetch_pages(client)

    async def _fetch_pages(self, client: httpx.AsyncClient) -> list[Any]:
        headers = {
            "Authorization": f"Bearer {self.config.token}",
            "Accept": "application/vnd.github.v3+json",
        }
        url: str | None = f"{GITHUB_API_URL}/repos/{self.owner}/{self.repo}/dependabot/alerts"
        params: dict[str, Any] | None = {"per_page": 100}
        alerts: list[Any] = []

        while url:
            await get_rate_limiter("github").acquire()
            response = await client.get(url, headers=headers, params=params)

            if response.is_error:
                message = _error_message(response)
                if is_permission_error(message):
                    raise SecurityProviderPermissionError("GitHub", message)
                raise RuntimeError(f"GitHub API error: {message}")

            page = response.json()
            if isinstance(page, list):
                alerts.extend(page)

            url = response.links.get("next", {}).get("url")
            params = None

        return alerts


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase or f"HTTP {response.status_code}"
