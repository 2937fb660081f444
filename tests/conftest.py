"""
Pytest configuration and shared fixtures for the buildsync test suite.

This module provides common fixtures, a scripted stand-in for ProcessRunner
and configuration helpers for all test modules.
"""

import asyncio
import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

# Add src to Python path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from buildsync.models.config import (  # noqa: E402
    AppConfig,
    BuildToolConfig,
    CopyMode,
    ImporterConfig,
    PackageCopyEntry,
    ProjectConfig,
    RunContextKind,
    SyncSettings,
)
from buildsync.progress import ProgressTracker  # noqa: E402
from buildsync.validation import ProcessSpawnError  # noqa: E402


# ============================================================================
# Test Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# ============================================================================
# Scripted process runner
# ============================================================================


@dataclass
class ScriptStep:
    """What a scripted build tool invocation prints and returns."""

    stdout: List[str] = field(default_factory=list)
    stderr: List[str] = field(default_factory=list)
    returncode: int = 0
    spawn_error: bool = False
    # When set, the invocation stays running until the event is set or the
    # runner is killed.
    hold: Optional[asyncio.Event] = None


class ScriptedRunner:
    """Stands in for ProcessRunner, replaying the step its arguments match."""

    def __init__(self, script: "RunnerScript", program: str, args: Sequence[str] = (), cwd=None, env=None, **kwargs):
        self.script = script
        self.program = program
        self.args = list(args)
        self.cwd = cwd
        self.env = env
        self.killed = False
        self._released = asyncio.Event()

    @property
    def command_line(self) -> str:
        return " ".join([self.program, *self.args])

    async def run(self, on_stdout=None, on_stderr=None) -> int:
        step = self.script.lookup(self.args)
        self.script.calls.append(self.args)
        if step.spawn_error:
            raise ProcessSpawnError(self.program, "No such file or directory")

        for line in step.stdout:
            if on_stdout is not None:
                on_stdout(line)
            await asyncio.sleep(0)
        for line in step.stderr:
            if on_stderr is not None:
                on_stderr(line)
            await asyncio.sleep(0)

        if step.hold is not None:
            hold_wait = asyncio.ensure_future(step.hold.wait())
            kill_wait = asyncio.ensure_future(self._released.wait())
            await asyncio.wait({hold_wait, kill_wait}, return_when=asyncio.FIRST_COMPLETED)
            hold_wait.cancel()
            kill_wait.cancel()

        if self.killed:
            return -9
        return step.returncode

    def kill(self) -> None:
        self.killed = True
        self._released.set()


class RunnerScript:
    """
    A table of scripted build tool responses.

    Steps are matched by command name (``info``, ``build``, ``cquery``) and,
    optionally, a token that must appear among the arguments.
    """

    def __init__(self) -> None:
        self._steps: List[tuple] = []
        self.calls: List[List[str]] = []
        self.runners: List[ScriptedRunner] = []

    def on(self, command: str, token: Optional[str] = None, **kwargs) -> ScriptStep:
        step = ScriptStep(**kwargs)
        self._steps.insert(0, (command, token, step))
        return step

    def lookup(self, args: List[str]) -> ScriptStep:
        for command, token, step in self._steps:
            if command in args and (token is None or token in args):
                return step
        return ScriptStep()

    def calls_for(self, command: str) -> List[List[str]]:
        return [args for args in self.calls if command in args]

    def factory(self, program: str, args: Sequence[str] = (), **kwargs) -> ScriptedRunner:
        runner = ScriptedRunner(self, program, args, **kwargs)
        self.runners.append(runner)
        return runner


# ============================================================================
# Fake watchdog observer
# ============================================================================


class FakeObserver:
    """Records scheduled watches instead of starting an observer thread."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.scheduled = {}
        self.started = False
        self.stopped = False
        self.joined = False

    def schedule(self, handler, path, recursive=False):
        if path in self.failing:
            raise OSError(f"{path} does not exist")
        watch = ("watch", path, recursive)
        self.scheduled[watch] = handler
        return watch

    def unschedule(self, watch):
        del self.scheduled[watch]

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def is_alive(self):
        return self.started and not self.joined

    def join(self, timeout=None):
        self.joined = True


class ObserverFactory:
    """Creates FakeObservers; directories listed in ``failing`` cannot be watched."""

    def __init__(self):
        self.failing: List[str] = []
        self.created: List[FakeObserver] = []

    def __call__(self) -> FakeObserver:
        observer = FakeObserver(self.failing)
        self.created.append(observer)
        return observer


# ============================================================================
# Core Fixtures
# ============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def runner_script():
    """A scripted build tool."""
    return RunnerScript()


@pytest.fixture
def tracker():
    """A progress tracker without a host."""
    return ProgressTracker()


@pytest.fixture
def observer_factory():
    """Creates fake watchdog observers and keeps every one it made."""
    return ObserverFactory()


@pytest.fixture
def build_tree(temp_dir):
    """
    A fake build tool execution root with two built files, and the info
    output describing it.
    """
    exec_root = temp_dir / "execroot"
    bin_dir = exec_root / "bazel-out" / "k8-fastbuild" / "bin"
    (bin_dir / "lib" / "foo").mkdir(parents=True)
    (bin_dir / "lib" / "foo" / "libfoo.so").write_bytes(b"\x7fELF foo")
    (bin_dir / "lib" / "foo" / "foo.txt").write_text("foo data")
    (bin_dir / "tools").mkdir(parents=True)
    (bin_dir / "tools" / "inspector.dll").write_bytes(b"MZ inspector")

    info = {
        "execution_root": exec_root.as_posix(),
        "bazel-bin": bin_dir.as_posix(),
        "workspace": (temp_dir / "workspace").as_posix(),
    }
    return {
        "exec_root": exec_root,
        "bin_dir": bin_dir,
        "info": info,
        "info_lines": [f"{key}: {value}" for key, value in info.items()],
    }


@pytest.fixture
def scripted_tree(runner_script, build_tree):
    """Script info and output queries for the files created by ``build_tree``."""
    # A single-key info query prints the bare value.
    runner_script.on("info", stdout=[build_tree["info"]["execution_root"]])
    runner_script.on("info", "bazel-bin", stdout=build_tree["info_lines"])
    runner_script.on("cquery", "//lib/foo:foo", stdout=[
        "bazel-out/k8-fastbuild/bin/lib/foo/libfoo.so",
        "bazel-out/k8-fastbuild/bin/lib/foo/foo.txt",
    ])
    runner_script.on("cquery", "//tools:inspector", stdout=[
        "bazel-out/k8-fastbuild/bin/tools/inspector.dll",
    ])
    return build_tree


@pytest.fixture
def project_root(temp_dir):
    """The consumer project receiving the outputs."""
    root = temp_dir / "project"
    (root / "Packages").mkdir(parents=True)
    return root


def _make_app_config(
    project_root: Path,
    packages: Optional[List[PackageCopyEntry]] = None,
    default_output_path: str = "Assets/Plugins/{FILENAME}",
    state_file: Optional[Path] = None,
    context: RunContextKind = RunContextKind.EDITOR,
    **sync_kwargs,
) -> AppConfig:
    """Build an AppConfig without going through a TOML file."""
    if packages is None:
        packages = [
            PackageCopyEntry(label="//lib/foo:foo"),
            PackageCopyEntry(label="//tools:inspector", output_path="Assets/Editor/{FILENAME}",
                             mode=CopyMode.EDITOR_ONLY),
        ]
    return AppConfig(
        build_tool=BuildToolConfig(executable="bazel", workspace_dir=project_root),
        project=ProjectConfig(root=project_root, context=context),
        sync=SyncSettings(
            default_output_path=default_output_path,
            packages=packages,
            state_file=state_file,
            **sync_kwargs,
        ),
        importer=ImporterConfig(retry_delay_seconds=0.01),
    )


@pytest.fixture
def app_config_factory():
    """Factory building AppConfig objects for a project root."""
    return _make_app_config


@pytest.fixture
def sample_config_text():
    """A complete configuration document."""
    return """
[build_tool]
executable = "bazel"
startup_args = ["--output_base=/tmp/ob"]
build_args = ["--config=ci"]

[project]
root = "project"
packages_dir = "Packages"
context = "editor"

[sync]
default_output_path = "Assets/Plugins/{FILENAME}"
build_on_start = false
copy_on_change = true

[importer]
command = ["refresh-assets", "--quiet"]
busy_exit_code = 75
retry_delay_seconds = 0.5
max_attempts = 3

[[packages]]
label = "//lib/foo:foo"

[[packages]]
label = "//tools:inspector"
output_path = "Assets/Editor/{FILEPATH}"
mode = "editor_only"

[[packages]]
label = ""
"""


@pytest.fixture
def config_file(temp_dir, sample_config_text):
    """Write the sample configuration document to a temporary file."""
    path = temp_dir / "buildsync.toml"
    path.write_text(sample_config_text)
    return path


@pytest.fixture(autouse=True)
def clear_config_after_test():
    """Automatically clear configuration and supervisor state after each test."""
    yield

    from buildsync.config import clear_config_cache, set_config_path
    from buildsync.orchestration import reset_supervisor

    clear_config_cache()
    reset_supervisor()
    set_config_path(Path("buildsync.toml"))
