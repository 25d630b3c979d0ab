"""Async subprocess execution for external CLIs (git, gh, npm, snyk, socket)."""

from __future__ import annotations

import asyncio
import os
import shutil
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from pastoralist.utils.constants import DEFAULT_CLI_TIMEOUT
from pastoralist.utils.logging import logger


@dataclass
class CommandResult:
    """Outcome of one subprocess run."""

    success: bool
    returncode: int
    stdout: str
    stderr: str
    elapsed: float
    timed_out: bool = False


# Signature shared by run_command_async and the fakes tests inject
CommandRunner = Callable[..., Awaitable[CommandResult]]


async def run_command_async(
    cmd: list[str],
    cwd: str | None = None,
    timeout: float = DEFAULT_CLI_TIMEOUT,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Execute a subprocess using asyncio memory pipes.

    Args:
        cmd: Command array to execute
        cwd: Working directory
        timeout: Maximum execution time in seconds
        env: Extra variables merged over the current environment

    Returns:
        CommandResult; never raises for a missing binary or timeout
    """
    start_time = time.time()
    full_env = {**os.environ, **env} if env else None

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=full_env,
        )

        try:
            stdout_data, stderr_data = await asyncio.wait_for(process.communicate(), timeout=timeout)

            return CommandResult(
                success=process.returncode == 0,
                returncode=process.returncode,
                stdout=stdout_data.decode("utf-8", errors="replace"),
                stderr=stderr_data.decode("utf-8", errors="replace"),
                elapsed=time.time() - start_time,
            )

        except TimeoutError:
            logger.warning(f"Command timed out after {timeout}s: {cmd[0]}")
            process.kill()
            await process.wait()
            return CommandResult(
                success=False,
                returncode=-1,
                stdout="",
                stderr=f"Command timed out after {timeout}s",
                elapsed=time.time() - start_time,
                timed_out=True,
            )

    except OSError as e:
        return CommandResult(
            success=False,
            returncode=-1,
            stdout="",
            stderr=f"Subprocess error: {e}",
            elapsed=time.time() - start_time,
        )


def which(command: str) -> str | None:
    """Absolute path of ``command`` on PATH, or None."""
    return shutil.which(command)
