"""
Asynchronous external process runner.

This module provides a ProcessRunner that spawns a command through asyncio,
streams its standard output and error as decoded lines while it runs, and
reports the exit status. Killing a runner terminates the whole process tree
so that the pending ``run()`` always resolves.
"""

import asyncio
import logging
import os
import shlex
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence, Union

import psutil

from ..validation import ErrorSeverity, ProcessSpawnError, handle_subprocess_error

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

# asyncio's default 64 KiB readline limit is too small for long tool output lines.
STREAM_LIMIT = 4 * 1024 * 1024


class ProcessRunner:
    """
    Runs one external command and exposes its output as line streams.

    A runner is single use: create a new instance for every invocation.
    """

    def __init__(
        self,
        program: str,
        args: Sequence[str] = (),
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Dict[str, str]] = None,
        capture_stdout: bool = True,
        capture_stderr: bool = True,
    ):
        """
        Initialize the runner.

        Args:
            program: Executable name or path
            args: Arguments passed to the executable
            cwd: Working directory, defaults to the current one
            env: Extra environment variables layered over os.environ
            capture_stdout: Whether standard output is streamed to the caller
            capture_stderr: Whether standard error is streamed to the caller
        """
        self.program = program
        self.args = list(args)
        self.cwd = Path(cwd) if cwd else None
        self.env = env
        self.capture_stdout = capture_stdout
        self.capture_stderr = capture_stderr

        self.process: Optional[asyncio.subprocess.Process] = None
        self.returncode: Optional[int] = None
        self.killed = False
        self._kill_requested = False

    @property
    def command_line(self) -> str:
        return shlex.join([self.program, *self.args])

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    @property
    def is_running(self) -> bool:
        return self.process is not None and self.returncode is None

    async def start(self) -> int:
        """
        Spawn the process.

        Returns:
            Process ID of the started process

        Raises:
            ProcessSpawnError: If the executable is missing or cannot be started
            RuntimeError: If the runner was already started
        """
        if self.process is not None:
            raise RuntimeError(f"Process already started: {self.command_line}")

        env = None
        if self.env:
            env = os.environ.copy()
            env.update(self.env)

        logger.debug(f"Executing command: '{self.command_line}' in '{self.cwd or os.getcwd()}'")
        try:
            self.process = await asyncio.create_subprocess_exec(
                self.program,
                *self.args,
                cwd=self.cwd,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE if self.capture_stdout else asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE if self.capture_stderr else asyncio.subprocess.DEVNULL,
                limit=STREAM_LIMIT,
                start_new_session=os.name == "posix",
            )
        except OSError as e:
            error = ProcessSpawnError(self.program, e.strerror or str(e))
            handle_subprocess_error(
                error, self.command_line, severity=ErrorSeverity.ERROR, reraise=False, logger=logger
            )
            raise error from e

        logger.debug(f"Started '{self.program}' with PID {self.process.pid}")
        if self._kill_requested:
            self.kill()
        return self.process.pid

    async def lines(self, stream: str = "stdout") -> AsyncIterator[str]:
        """
        Iterate over the non-empty lines of one output stream as they arrive.

        Args:
            stream: "stdout" or "stderr"
        """
        if self.process is None:
            raise RuntimeError("Process not started - call start() first")

        reader = self.process.stdout if stream == "stdout" else self.process.stderr
        if reader is None:
            return

        while True:
            raw = await reader.readline()
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if line:
                yield line

    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        if self.process is None:
            raise RuntimeError("Process not started - call start() first")
        self.returncode = await self.process.wait()
        logger.debug(f"'{self.program}' (PID {self.process.pid}) exited with code {self.returncode}")
        return self.returncode

    async def run(
        self,
        on_stdout: Optional[LineCallback] = None,
        on_stderr: Optional[LineCallback] = None,
    ) -> int:
        """
        Start the process, deliver output lines to the callbacks, and wait.

        Returns:
            The process exit code; non-zero (or negative for a signal) on failure

        Raises:
            ProcessSpawnError: If the process cannot be started
        """
        await self.start()

        pumps = []
        if self.capture_stdout:
            pumps.append(self._pump("stdout", on_stdout))
        if self.capture_stderr:
            pumps.append(self._pump("stderr", on_stderr))
        await asyncio.gather(*pumps)

        return await self.wait()

    async def _pump(self, stream: str, callback: Optional[LineCallback]) -> None:
        async for line in self.lines(stream):
            if callback is None:
                continue
            try:
                callback(line)
            except Exception as e:
                logger.warning(f"Output handler for '{self.program}' {stream} failed: {e}")

    def kill(self) -> None:
        """
        Terminate the process and all of its children.

        Safe to call before the process starts (it is killed as soon as it
        spawns) and after it exits (no-op).
        """
        self._kill_requested = True
        if self.process is None or self.returncode is not None:
            return

        self.killed = True
        logger.info(f"Killing '{self.program}' (PID {self.process.pid}) and its process tree")
        try:
            parent = psutil.Process(self.process.pid)
            children = parent.children(recursive=True)
        except psutil.NoSuchProcess:
            return
        except psutil.AccessDenied:
            logger.warning(f"Access denied to process tree of PID {self.process.pid}, killing parent only")
            children = []
            parent = None

        for process in children:
            try:
                process.kill()
            except psutil.NoSuchProcess:
                continue
            except psutil.AccessDenied:
                logger.warning(f"Access denied killing child PID {process.pid}")

        try:
            if parent is not None:
                parent.kill()
            else:
                self.process.kill()
        except (psutil.NoSuchProcess, ProcessLookupError):
            logger.debug(f"Process {self.process.pid} already exited")


def runner_output(lines: List[str], limit: int = 20) -> str:
    """Join the last ``limit`` captured lines for diagnostics."""
    return "\n".join(lines[-limit:])
