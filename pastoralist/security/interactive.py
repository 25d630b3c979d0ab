"""Interactive review of proposed security overrides.

The checker only talks to the SecurityPrompt protocol. InteractiveSecurityManager
implements it on top of three small prompt primitives, by default rich's
Confirm and Prompt; tests pass scripted primitives instead.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from typing import Protocol

from rich.prompt import Confirm, Prompt

from pastoralist.security.types import SecurityAlert, SecurityOverride
from pastoralist.ui import console

APPLY = "apply"
SKIP = "skip"
CUSTOM = "custom"


class SecurityPrompt(Protocol):
    def review(self, alerts: list[SecurityAlert], overrides: list[SecurityOverride]) -> list[SecurityOverride]:
        """Return the overrides the user accepted, possibly with new target versions."""
        ...


def _rich_confirm(message: str, default: bool) -> bool:
    return Confirm.ask(message, default=default, console=console)


def _rich_choose(message: str, choices: list[str], default: str) -> str:
    return Prompt.ask(message, choices=choices, default=default, console=console)


def _rich_ask(message: str, default: str) -> str:
    return Prompt.ask(message, default=default, console=console)


class InteractiveSecurityManager:
    """Walks the user through each proposed override.

    1. Confirm reviewing fixes at all.
    2. Per override: apply, skip, or enter a custom version.
    3. Confirm the final selection; declining returns nothing.
    """

    def __init__(
        self,
        confirm: Callable[[str, bool], bool] = _rich_confirm,
        choose: Callable[[str, list[str], str], str] = _rich_choose,
        ask: Callable[[str, str], str] = _rich_ask,
    ):
        self.confirm = confirm
        self.choose = choose
        self.ask = ask

    def review(self, alerts: list[SecurityAlert], overrides: list[SecurityOverride]) -> list[SecurityOverride]:
        if not alerts:
            return []

        console.print("\n[bold]Security Vulnerabilities Found[/bold]")
        console.print(self.generate_summary(alerts))

        if not self.confirm("Would you like to review and apply security fixes?", True):
            return []

        selected: list[SecurityOverride] = []
        for override in overrides:
            alert = next((a for a in alerts if a.package_name == override.package_name), None)
            if alert is None:
                continue

            console.print(f"\n[pkg]{override.package_name}[/pkg]")
            console.print(f"   Current: {override.from_version}")
            console.print(f"   [{alert.severity}]{alert.severity.upper()}[/{alert.severity}] {alert.title}")
            if alert.cve:
                console.print(f"   CVE: {alert.cve}")

            action = self.choose(
                f"Apply fix ({override.to_version}), skip, or enter a custom version?",
                [APPLY, SKIP, CUSTOM],
                APPLY,
            )

            if action == APPLY:
                selected.append(override)
            elif action == CUSTOM:
                version = self.ask("Enter the version to use", override.to_version).strip()
                selected.append(replace(override, to_version=version or override.to_version))

        if not selected:
            return []

        console.print("\n[bold]Selected Overrides:[/bold]")
        for override in selected:
            console.print(f"  {override.package_name}: {override.from_version} -> {override.to_version}")

        if not self.confirm("Apply these overrides to your package.json?", True):
            return []

        return selected

    @staticmethod
    def generate_summary(alerts: list[SecurityAlert]) -> str:
        counts = {sev: 0 for sev in ("critical", "high", "medium", "low")}
        for alert in alerts:
            counts[alert.severity] = counts.get(alert.severity, 0) + 1
        parts = [f"{count} {sev}" for sev, count in counts.items() if count]
        return f"Found {len(alerts)} vulnerable package(s): " + ", ".join(parts)
