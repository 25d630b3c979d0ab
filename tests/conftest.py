"""Pytest configuration and fixtures."""
import json
from pathlib import Path

import pytest

from pastoralist.security.types import SecurityAlert
from pastoralist.utils.process import CommandResult
from pastoralist.utils.rate_limiter import reset_rate_limiters


@pytest.fixture(autouse=True)
def fresh_rate_limiters():
    """Rate limiter locks are bound to an event loop; every test gets new ones."""
    reset_rate_limiters()
    yield
    reset_rate_limiters()


@pytest.fixture
def lodash_manifest():
    return {
        "name": "demo-app",
        "version": "1.0.0",
        "dependencies": {"lodash": "^4.17.20", "react": "^18.2.0"},
        "devDependencies": {"minimist": "~1.2.5"},
    }


@pytest.fixture
def lodash_alert():
    return SecurityAlert(
        package_name="lodash",
        current_version="",
        vulnerable_versions="< 4.17.21",
        patched_version="4.17.21",
        severity="high",
        title="Prototype Pollution in lodash",
        cve="CVE-2021-23337",
        url="https://github.com/advisories/GHSA-35jh-r3h4-6jhm",
        fix_available=True,
    )


@pytest.fixture
def write_manifest(tmp_path):
    """Write a package.json under tmp_path (or a subdirectory) and return its path."""

    def _write(data, relative="package.json"):
        path = Path(tmp_path) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
        return path

    return _write


class FakeRunner:
    """Scripted stand-in for run_command_async.

    ``responses`` maps a command prefix (tuple of leading args) to a
    CommandResult; the longest matching prefix wins. Unmatched commands fail.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    async def __call__(self, cmd, cwd=None, timeout=None, env=None):
        self.calls.append({"cmd": list(cmd), "cwd": cwd, "timeout": timeout, "env": env})
        best = None
        for prefix, result in self.responses.items():
            if tuple(cmd[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best[0])):
                best = (prefix, result)
        if best is None:
            return CommandResult(False, 127, "", f"unexpected command: {' '.join(cmd)}", 0.0)
        return best[1]

    def commands(self):
        return [call["cmd"] for call in self.calls]


def ok(stdout="", stderr=""):
    return CommandResult(True, 0, stdout, stderr, 0.0)


def failed(stderr="", stdout="", returncode=1):
    return CommandResult(False, returncode, stdout, stderr, 0.0)


@pytest.fixture
def fake_runner():
    return FakeRunner
