"""Scan declared dependencies for vulnerabilities and reconcile security overrides."""

import asyncio
import os
import sys
from pathlib import Path

import click

from pastoralist.config_runtime import load_runtime_config
from pastoralist.errors import PastoralistError
from pastoralist.manifest import read_manifest, restore_backup
from pastoralist.security.checker import SecurityChecker
from pastoralist.security.interactive import InteractiveSecurityManager
from pastoralist.security.matching import format_security_report, get_severity_score
from pastoralist.security.providers import is_known_provider
from pastoralist.security.types import MockSettings, SecurityCheckOptions, SecurityCheckResult
from pastoralist.ui import console, print_alert_table, print_header, print_status_panel, print_success
from pastoralist.utils.constants import (
    ENV_FORCE_VULNERABLE,
    ENV_MOCK_FILE,
    ENV_MOCK_MODE,
    PROVIDER_TOKEN_ENV,
)
from pastoralist.utils.error_handler import handle_exceptions
from pastoralist.utils.exit_codes import ExitCodes
from pastoralist.utils.logging import logger, set_debug
from pastoralist.utils.rate_limiter import reset_rate_limiters


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


def resolve_tokens(providers: list[str], token: str | None) -> dict[str, str]:
    """Per-provider tokens from the environment; an explicit --token wins."""
    tokens = {}
    for name in providers:
        env_name = PROVIDER_TOKEN_ENV.get(name)
        value = token or (os.environ.get(env_name) if env_name else None)
        if value:
            tokens[name] = value
    return tokens


def mock_settings_from_env() -> MockSettings:
    return MockSettings(
        enabled=_env_flag(ENV_MOCK_MODE),
        force_vulnerable=_env_flag(ENV_FORCE_VULNERABLE),
        alerts_file=os.environ.get(ENV_MOCK_FILE) or None,
    )


def render_result(result: SecurityCheckResult, auto_fix: bool) -> None:
    print_header("SECURITY CHECK")

    if not result.alerts:
        print_status_panel(
            "CLEAN",
            "No vulnerable packages found",
            f"{result.packages_scanned} package(s) scanned",
            level="success",
        )
    else:
        print_alert_table(result.alerts)
        worst = max(result.alerts, key=lambda a: get_severity_score(a.severity)).severity
        print_status_panel(
            "VULNERABLE",
            f"{result.vulnerable_count} vulnerable package(s) in {result.packages_scanned} scanned",
            f"{len(result.overrides)} fix(es) available",
            level=worst,
        )

    if result.overrides:
        console.print("\n[bold]Generated overrides:[/bold]")
        for override in result.overrides:
            latest = result.latest_compatible.get(override.package_name)
            hint = f" [dim](latest compatible: {latest})[/dim]" if latest and latest != override.to_version else ""
            console.print(f'  "{override.package_name}": "{override.to_version}"{hint}')

    if result.updates:
        console.print("\n[bold]Security overrides with newer patches:[/bold]")
        for update in result.updates:
            console.print(
                f"  [pkg]{update.package_name}[/pkg] {update.current_override} -> {update.newer_version}"
                f" [dim]{update.reason}[/dim]"
            )

    if result.backup_path:
        print_success(f"Overrides written. Backup saved to {result.backup_path}")
    elif result.overrides and not auto_fix:
        console.print("\n[dim]Run with --auto-fix to write these overrides to package.json[/dim]")


@click.command()
@handle_exceptions
@click.option(
    "--provider",
    "providers",
    multiple=True,
    default=("osv",),
    show_default=True,
    help="Security provider: osv, github, snyk, socket (repeatable)",
)
@click.option("--token", default=None, help="Provider token (defaults to GITHUB_TOKEN / SNYK_TOKEN / SOCKET_SECURITY_API_KEY)")
@click.option("--owner", default=None, help="GitHub repository owner (default: from git remote)")
@click.option("--repo", default=None, help="GitHub repository name (default: from git remote)")
@click.option("--interactive", is_flag=True, help="Review each proposed override")
@click.option("--auto-fix", is_flag=True, help="Back up package.json and write the overrides")
@click.option("--dep-paths", multiple=True, help="Glob for workspace package.json files (repeatable)")
@click.option("--root", default=".", help="Project root directory")
@click.option("--path", "package_json", default=None, help="package.json to check (default: <root>/package.json)")
@click.option("--strict", is_flag=True, help="Fail when a provider cannot complete its check")
@click.option("--quiet", is_flag=True, help="No output; exit 1 if vulnerable packages were found")
@click.option("--resolve-latest", is_flag=True, help="Show newest same-major release for each fix")
@click.option("--report", is_flag=True, help="Print the plain-text report instead of tables")
@click.option("--debug", is_flag=True, help="Verbose logging")
def security(
    providers,
    token,
    owner,
    repo,
    interactive,
    auto_fix,
    dep_paths,
    root,
    package_json,
    strict,
    quiet,
    resolve_latest,
    report,
    debug,
):
    """Check dependencies for known vulnerabilities and propose overrides.

    Every selected provider runs in parallel. Their alerts are deduplicated
    (highest severity wins), matched against the versions declared in
    package.json and in any --dep-paths workspaces, and turned into
    override proposals for alerts that have a fixed version.

    \b
    Providers:
      osv     api.osv.dev, no authentication (default)
      github  Dependabot alerts via gh CLI or GITHUB_TOKEN
      snyk    snyk CLI (installed with npm if missing), SNYK_TOKEN
      socket  socket CLI (installed with npm if missing), SOCKET_SECURITY_API_KEY

    \b
    Exit codes with --quiet:
      0  no vulnerable packages
      1  vulnerable packages found
    """
    if debug:
        set_debug()

    provider_list = [p.lower() for p in providers] or ["osv"]
    for name in provider_list:
        if not is_known_provider(name):
            logger.warning(f"Unknown provider '{name}', using osv")

    path = Path(package_json) if package_json else Path(root) / "package.json"
    if not path.exists():
        raise click.ClickException(f"package.json not found at {path}")

    try:
        manifest = read_manifest(path)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Could not read {path}: {e}") from e

    options = SecurityCheckOptions(
        providers=provider_list,
        interactive=interactive and not quiet,
        auto_fix=auto_fix,
        dep_paths=list(dep_paths),
        root=root,
        package_json_path=str(path),
        strict=strict,
        tokens=resolve_tokens(provider_list, token),
        owner=owner,
        repo=repo,
        resolve_latest=resolve_latest,
        mock=mock_settings_from_env(),
        runtime=load_runtime_config(root),
    )

    prompt = InteractiveSecurityManager() if options.interactive else None

    reset_rate_limiters()
    try:
        checker = SecurityChecker(options, prompt=prompt)
        if quiet or options.interactive:
            # Prompts share the console; a live spinner would redraw over them.
            result = _run(checker, manifest)
        else:
            with console.status("[info]Checking dependencies for vulnerabilities...[/info]"):
                result = _run(checker, manifest)
    except PastoralistError as e:
        raise click.ClickException(str(e)) from e

    if quiet:
        sys.exit(ExitCodes.for_scan(result.vulnerable_count))

    if report:
        click.echo(format_security_report(result.alerts, result.overrides))
    else:
        render_result(result, auto_fix)


def _run(checker: SecurityChecker, manifest: dict) -> SecurityCheckResult:
    return asyncio.run(checker.check_security(manifest))


@click.command()
@handle_exceptions
@click.argument("backup_path", type=click.Path(exists=True, dir_okay=False))
def rollback(backup_path):
    """Restore package.json from a .backup-<timestamp> file written by --auto-fix."""
    try:
        target = restore_backup(backup_path)
    except PastoralistError as e:
        raise click.ClickException(str(e)) from e
    print_success(f"Restored {target} from {backup_path}")
