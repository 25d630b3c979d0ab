"""CLI tests using click's CliRunner and the GitHub provider's mock mode."""

import json

import pytest
from click.testing import CliRunner

from pastoralist.cli import cli

MOCK_ENV = {
    "PASTORALIST_MOCK_SECURITY": "true",
    "MOCK_FORCE_VULNERABLE": "true",
    "GITHUB_TOKEN": "",
}


@pytest.fixture
def project(write_manifest, lodash_manifest):
    return write_manifest(lodash_manifest)


def invoke(args, env=None):
    return CliRunner().invoke(cli, args, env=env or {})


class TestSecurityCommand:

    def test_help_lists_providers(self):
        result = invoke(["security", "--help"])

        assert result.exit_code == 0
        for name in ("osv", "github", "snyk", "socket"):
            assert name in result.output

    def test_quiet_exit_code_when_vulnerable(self, project):
        result = invoke(
            ["security", "--provider", "github", "--root", str(project.parent), "--quiet"],
            env=MOCK_ENV,
        )

        assert result.exit_code == 1
        assert result.output == ""

    def test_quiet_exit_code_when_clean(self, project):
        env = {**MOCK_ENV, "MOCK_FORCE_VULNERABLE": "false"}

        result = invoke(["security", "--provider", "github", "--root", str(project.parent), "--quiet"], env=env)

        assert result.exit_code == 0

    def test_report_output(self, project):
        result = invoke(
            ["security", "--provider", "github", "--root", str(project.parent), "--report"],
            env=MOCK_ENV,
        )

        assert result.exit_code == 0, result.output
        assert "Security Check Report" in result.output
        assert "[HIGH] lodash@4.17.20" in result.output
        assert '"minimist": "1.2.6"' in result.output

    def test_table_output(self, project):
        result = invoke(["security", "--provider", "github", "--root", str(project.parent)], env=MOCK_ENV)

        assert result.exit_code == 0, result.output
        assert "lodash" in result.output
        assert "VULNERABLE" in result.output
        assert "--auto-fix" in result.output

    def test_auto_fix_writes_manifest(self, project):
        result = invoke(
            ["security", "--provider", "github", "--path", str(project), "--auto-fix"],
            env=MOCK_ENV,
        )

        assert result.exit_code == 0, result.output
        written = json.loads(project.read_text())
        assert written["overrides"] == {"lodash": "4.17.21", "minimist": "1.2.6"}
        backups = list(project.parent.glob("package.json.backup-*"))
        assert len(backups) == 1

    def test_missing_manifest(self, tmp_path):
        result = invoke(["security", "--root", str(tmp_path)])

        assert result.exit_code != 0
        assert "package.json not found" in result.output


class TestRollbackCommand:

    def test_restores_backup(self, project):
        original = project.read_text()
        invoke(["security", "--provider", "github", "--path", str(project), "--auto-fix"], env=MOCK_ENV)
        [backup] = project.parent.glob("package.json.backup-*")
        assert project.read_text() != original

        result = invoke(["rollback", str(backup)])

        assert result.exit_code == 0, result.output
        assert project.read_text() == original

    def test_rejects_non_backup_file(self, project):
        result = invoke(["rollback", str(project)])

        assert result.exit_code != 0
        assert "not a pastoralist backup" in result.output


class TestVersion:

    def test_version_option(self):
        result = invoke(["--version"])

        assert result.exit_code == 0
        assert "pastoralist" in result.output


class TestInteractiveFlag:

    def test_prompts_run_without_status_spinner(self, project, monkeypatch):
        from pastoralist.commands import security as security_command

        events = []

        class RecordingPrompt:
            def review(self, alerts, overrides):
                events.append("review")
                return overrides

        def status(*args, **kwargs):
            events.append("status")
            raise AssertionError("status spinner started during an interactive run")

        monkeypatch.setattr(security_command, "InteractiveSecurityManager", RecordingPrompt)
        monkeypatch.setattr(security_command.console, "status", status)

        result = invoke(
            ["security", "--provider", "github", "--root", str(project.parent), "--interactive"],
            env=MOCK_ENV,
        )

        assert result.exit_code == 0, result.output
        assert events == ["review"]
