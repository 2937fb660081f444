"""
Build tool driver.

BuildDriver issues the three build tool operations the copy cycle needs
(info, build and an output query), each over its own ProcessRunner and
progress node, so any number of them can run concurrently.
"""

import asyncio
import logging
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Sequence, Union

from ..executor import ProcessRunner, runner_output
from ..models.config import BuildToolConfig
from ..progress import ProgressStatus, ProgressTracker
from ..validation import ProcessExitError, ProcessSpawnError
from .progress_line import parse_progress_line

logger = logging.getLogger(__name__)

# Starlark expression printing one declared output file path per line.
OUTPUT_FILES_EXPR = "'\\n'.join([f.path for f in target.files.to_list()])"

# Number of trailing stderr lines kept as diagnostics for a failed command.
DIAGNOSTIC_LINES = 50

Labels = Union[str, Sequence[str]]


def _as_label_list(labels: Labels) -> List[str]:
    if isinstance(labels, str):
        labels = labels.split()
    return [label.strip() for label in labels if label and label.strip()]


class BuildDriver:
    """
    Runs build tool commands and turns their output into results and progress.
    """

    def __init__(
        self,
        tracker: ProgressTracker,
        executable: str = "bazel",
        workspace_dir: Optional[Path] = None,
        startup_args: Sequence[str] = (),
        build_args: Sequence[str] = (),
        runner_factory: Callable[..., ProcessRunner] = ProcessRunner,
    ):
        """
        Initialize the driver.

        Args:
            tracker: Progress tracker receiving one node per operation
            executable: Build tool executable
            workspace_dir: Directory the build tool runs in
            startup_args: Arguments placed before the command name
            build_args: Extra arguments for every build command
            runner_factory: Callable creating a ProcessRunner (replaced in tests)
        """
        self.tracker = tracker
        self.executable = executable
        self.workspace_dir = workspace_dir
        self.startup_args = list(startup_args)
        self.build_args = list(build_args)
        self.runner_factory = runner_factory

        # Lines from the last multi-key info query that had no "key: value" shape.
        self.rejected_info_lines: List[str] = []
        # Trailing stderr of the last failed build.
        self.last_build_diagnostics: str = ""

    @classmethod
    def from_config(
        cls,
        config: BuildToolConfig,
        tracker: ProgressTracker,
        runner_factory: Callable[..., ProcessRunner] = ProcessRunner,
    ) -> "BuildDriver":
        return cls(
            tracker,
            executable=config.executable,
            workspace_dir=config.workspace_dir,
            startup_args=config.startup_args,
            build_args=config.build_args,
            runner_factory=runner_factory,
        )

    def _runner(self, command: str, args: Sequence[str]) -> ProcessRunner:
        return self.runner_factory(
            self.executable,
            [*self.startup_args, command, *args],
            cwd=self.workspace_dir,
        )

    async def _run(self, runner: ProcessRunner, node_id: int, on_stdout=None, on_stderr=None) -> int:
        try:
            return await runner.run(on_stdout=on_stdout, on_stderr=on_stderr)
        except ProcessSpawnError as e:
            self.tracker.finish(node_id, ProgressStatus.FAILED, str(e))
            raise
        except asyncio.CancelledError:
            # The awaiting task was cancelled; the process must not outlive it.
            runner.kill()
            self.tracker.finish(node_id, ProgressStatus.CANCELLED, "Cancelled")
            raise

    async def query_info(self, keys: Sequence[str], parent_id: Optional[int] = None) -> Dict[str, str]:
        """
        Query build tool information.

        With exactly one key the first output line is its value. Otherwise
        every ``key: value`` line is split on its first colon; lines without
        a colon are rejected and reported, never merged into another entry.

        Raises:
            ProcessSpawnError: If the build tool cannot be started
            ProcessExitError: If the query exits with a non-zero status
        """
        keys = list(keys)
        node_id = self.tracker.start("Build Info", " ".join(keys), indefinite=True, parent_id=parent_id)
        runner = self._runner("info", keys)

        stdout_lines: List[str] = []
        stderr_lines: List[str] = []
        returncode = await self._run(runner, node_id, stdout_lines.append, stderr_lines.append)

        if returncode != 0:
            error = ProcessExitError(runner.command_line, returncode, runner_output(stderr_lines))
            self.tracker.finish(node_id, ProgressStatus.FAILED, str(error))
            logger.error(f"Build info query failed: {error}")
            raise error

        result = self._parse_info(keys, stdout_lines, node_id)
        self.tracker.finish(node_id, ProgressStatus.DONE)
        return result

    def _parse_info(self, keys: List[str], lines: List[str], node_id: int) -> Dict[str, str]:
        if len(keys) == 1:
            return {keys[0]: lines[0].strip() if lines else ""}

        self.rejected_info_lines = []
        result: Dict[str, str] = {}
        for line in lines:
            key, colon, value = line.partition(":")
            if not colon:
                self.rejected_info_lines.append(line)
                logger.warning(f"Rejected malformed build info line: {line!r}")
                self.tracker.set_description(node_id, f"Rejected malformed line: {line}")
                continue
            result[key.strip()] = value.strip()
        return result

    async def build(self, labels: Labels, parent_id: Optional[int] = None) -> bool:
        """
        Build the given labels in one invocation.

        Standard error lines shaped like ``[current / total] message`` update
        the node's counters; any other line replaces its description. The
        node can be cancelled, which kills the build.

        Returns:
            True if the build succeeded

        Raises:
            ProcessSpawnError: If the build tool cannot be started
        """
        label_list = _as_label_list(labels)
        if not label_list:
            logger.debug("Nothing to build")
            return True

        node_id = self.tracker.start("Build", " ".join(label_list), parent_id=parent_id)
        self.tracker.set_step_label(node_id, "Targets")
        runner = self._runner("build", [*self.build_args, *label_list])

        def cancel() -> bool:
            logger.info("Build cancellation requested")
            runner.kill()
            return True

        self.tracker.register_cancel_callback(node_id, cancel)

        diagnostics: Deque[str] = deque(maxlen=DIAGNOSTIC_LINES)

        def on_stderr(line: str) -> None:
            diagnostics.append(line)
            progress = parse_progress_line(line)
            if progress is not None:
                self.tracker.report(node_id, progress.current, progress.total, progress.message)
            else:
                self.tracker.set_description(node_id, line)

        try:
            returncode = await self._run(runner, node_id, on_stderr=on_stderr)
        except ProcessSpawnError as e:
            self.last_build_diagnostics = str(e)
            raise

        if returncode == 0:
            self.last_build_diagnostics = ""
            self.tracker.finish(node_id, ProgressStatus.DONE)
            logger.info(f"Build of {len(label_list)} label(s) succeeded")
            return True

        self.last_build_diagnostics = "\n".join(diagnostics)
        summary = diagnostics[-1] if diagnostics else f"exit code {returncode}"
        self.tracker.finish(node_id, ProgressStatus.FAILED, summary)
        if runner.killed:
            logger.warning(f"Build was cancelled (exit code {returncode})")
        else:
            logger.error(f"Build failed with exit code {returncode}: {summary}")
        return False

    async def query_outputs(self, labels: Labels, parent_id: Optional[int] = None) -> List[str]:
        """
        List the declared output files of the given labels.

        Returns:
            Output paths relative to the execution root, in the order the
            build tool printed them

        Raises:
            ProcessSpawnError: If the build tool cannot be started
            ProcessExitError: If the query exits with a non-zero status
        """
        label_list = _as_label_list(labels)
        if not label_list:
            return []

        expression = " + ".join(label_list)
        node_id = self.tracker.start(f"Query Outputs {expression}", indefinite=True, parent_id=parent_id)
        runner = self._runner(
            "cquery",
            [expression, "--output=starlark", f"--starlark:expr={OUTPUT_FILES_EXPR}"],
        )

        outputs: List[str] = []
        diagnostics: Deque[str] = deque(maxlen=DIAGNOSTIC_LINES)

        def on_stdout(line: str) -> None:
            outputs.append(line.strip())
            self.tracker.set_description(node_id, line)

        def on_stderr(line: str) -> None:
            diagnostics.append(line)
            self.tracker.set_description(node_id, line)

        returncode = await self._run(runner, node_id, on_stdout, on_stderr)

        if returncode != 0:
            error = ProcessExitError(runner.command_line, returncode, "\n".join(diagnostics))
            self.tracker.finish(node_id, ProgressStatus.FAILED, str(error))
            logger.error(f"Output query for {expression} failed: {error}")
            raise error

        self.tracker.finish(node_id, ProgressStatus.DONE)
        logger.debug(f"{expression} declares {len(outputs)} output file(s)")
        return outputs
