"""Global npm installs for provider CLIs (snyk, socket)."""

from __future__ import annotations

from collections.abc import Callable

from pastoralist.errors import InstallError
from pastoralist.utils.constants import DEFAULT_CLI_TIMEOUT, DEFAULT_INSTALL_TIMEOUT
from pastoralist.utils.logging import logger
from pastoralist.utils.process import CommandRunner, run_command_async, which


class CLIInstaller:
    """Makes sure a provider CLI is on PATH, installing it with npm if not.

    ``runner`` and ``locate`` are injectable so tests never shell out.
    """

    def __init__(
        self,
        runner: CommandRunner | None = None,
        locate: Callable[[str], str | None] | None = None,
        cli_timeout: float = DEFAULT_CLI_TIMEOUT,
        install_timeout: float = DEFAULT_INSTALL_TIMEOUT,
    ):
        self.runner = runner or run_command_async
        self.locate = locate or which
        self.cli_timeout = cli_timeout
        self.install_timeout = install_timeout

    def is_installed(self, command: str) -> bool:
        return self.locate(command) is not None

    async def is_installed_globally(self, package_name: str) -> bool:
        result = await self.runner(["npm", "list", "-g", package_name, "--depth=0"], timeout=self.cli_timeout)
        return result.success and package_name in result.stdout

    async def install_globally(self, package_name: str) -> None:
        logger.info(f"Installing {package_name} globally...")
        result = await self.runner(["npm", "install", "-g", package_name], timeout=self.install_timeout)
        if not result.success:
            raise InstallError(f"Failed to install {package_name}: {result.stderr.strip() or result.returncode}")
        logger.info(f"Successfully installed {package_name}")

    async def ensure_installed(self, package_name: str, cli_command: str) -> bool:
        """True when ``cli_command`` can be run, installing ``package_name`` if needed."""
        if self.is_installed(cli_command):
            logger.debug(f"{cli_command} is already installed")
            return True

        if await self.is_installed_globally(package_name):
            logger.info(f"{package_name} is installed globally but {cli_command} is not in PATH")
            return False

        logger.info(f"{cli_command} not found, installing {package_name}...")
        try:
            await self.install_globally(package_name)
        except InstallError as e:
            logger.error(f"Could not install {package_name}: {e}")
            return False

        if not self.is_installed(cli_command):
            logger.info(
                f"{package_name} was installed but {cli_command} is still not available. "
                "Please ensure it's in your PATH."
            )
            return False

        return True
