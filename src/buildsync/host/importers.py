"""
Asset importer implementations.

The LoggingImporter only records what would be imported. The CommandImporter
hands the written paths to an external command and treats a configured exit
code as "busy, try again later".
"""

import logging
from typing import Callable, List, Optional, Sequence

from ..executor import ProcessRunner, runner_output
from ..models.config import ImporterConfig
from ..validation import ImporterBusyError, ProcessExitError
from .contracts import AssetImporter

logger = logging.getLogger(__name__)


class LoggingImporter(AssetImporter):
    """Logs the refreshed paths and keeps them for inspection."""

    def __init__(self) -> None:
        self.refreshed: List[List[str]] = []

    async def refresh(self, paths: Sequence[str]) -> None:
        self.refreshed.append(list(paths))
        logger.info(f"Import requested for {len(paths)} written file(s)")
        for path in paths:
            logger.debug(f"  {path}")


class CommandImporter(AssetImporter):
    """
    Runs ``command + paths`` to import the written files.

    An exit code equal to ``busy_exit_code`` raises ImporterBusyError; any
    other non-zero exit raises ProcessExitError.
    """

    def __init__(
        self,
        command: Sequence[str],
        busy_exit_code: int = 75,
        runner_factory: Callable[..., ProcessRunner] = ProcessRunner,
    ):
        if not command:
            raise ValueError("CommandImporter needs a command")
        self.command = list(command)
        self.busy_exit_code = busy_exit_code
        self.runner_factory = runner_factory

    async def refresh(self, paths: Sequence[str]) -> None:
        runner = self.runner_factory(self.command[0], [*self.command[1:], *paths])
        stderr_lines: List[str] = []
        returncode = await runner.run(on_stderr=stderr_lines.append)

        if returncode == self.busy_exit_code:
            raise ImporterBusyError(f"'{self.command[0]}' reported busy (exit code {returncode})")
        if returncode != 0:
            raise ProcessExitError(runner.command_line, returncode, runner_output(stderr_lines))
        logger.info(f"Imported {len(paths)} file(s) with '{self.command[0]}'")


def create_importer(config: Optional[ImporterConfig]) -> AssetImporter:
    """Build the importer described by the `[importer]` section."""
    if config is None or not config.command:
        return LoggingImporter()
    return CommandImporter(config.command, busy_exit_code=config.busy_exit_code)
