"""
Tests for watching build output directories.
"""

import asyncio
import shutil

import pytest
from watchdog.events import DirModifiedEvent, FileCreatedEvent, FileModifiedEvent
from watchdog.observers import Observer

from buildsync.driver import BuildDriver
from buildsync.models.config import PackageCopyEntry, RunContextKind
from buildsync.watch import OutputChangeHandler, WatchEngine
from buildsync.watch.engine import WATCH_NODE_LABEL


def make_engine(config, tracker, runner_script, observer_factory, on_change=None):
    driver = BuildDriver.from_config(config.build_tool, tracker, runner_factory=runner_script.factory)
    return WatchEngine(driver, config.sync, tracker, observer_factory=observer_factory, on_change=on_change)


@pytest.mark.integration
class TestWatchEngine:
    """Test cases for WatchEngine."""

    @pytest.mark.asyncio
    async def test_watches_each_output_directory_once(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        count = await engine.start()

        bin_dir = scripted_tree["bin_dir"].as_posix()
        assert count == 2
        assert engine.directories == [f"{bin_dir}/lib/foo", f"{bin_dir}/tools"]
        observer = observer_factory.created[0]
        assert observer.started
        assert all(recursive is False for _, _, recursive in observer.scheduled)

        parent = tracker.get(engine.parent_node_id)
        assert parent.label == WATCH_NODE_LABEL
        assert parent.cancelable
        children = tracker.children(engine.parent_node_id)
        assert sorted(child.label for child in children) == engine.directories
        engine.stop()

    @pytest.mark.asyncio
    async def test_watches_all_labels_regardless_of_mode(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        """The default entries include an editor-only one; a standalone run still watches it."""
        config = app_config_factory(project_root, context=RunContextKind.STANDALONE)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        assert await engine.start() == 2
        engine.stop()

    @pytest.mark.asyncio
    async def test_start_twice_keeps_one_session(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        await engine.start()
        await engine.start()

        assert len(observer_factory.created) == 1
        engine.stop()

    @pytest.mark.asyncio
    async def test_missing_directory_is_skipped(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        tools_dir = f"{scripted_tree['bin_dir'].as_posix()}/tools"
        observer_factory.failing.append(tools_dir)
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        count = await engine.start()

        assert count == 1
        assert tools_dir not in engine.directories
        engine.stop()

    @pytest.mark.asyncio
    async def test_nonexistent_directory_with_real_observer(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script
    ):
        shutil.rmtree(scripted_tree["bin_dir"] / "tools")
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, Observer)

        count = await engine.start()

        try:
            assert count == 1
            assert engine.directories == [f"{scripted_tree['bin_dir'].as_posix()}/lib/foo"]
            assert len(tracker.children(engine.parent_node_id)) == 1
        finally:
            engine.stop()
        assert not engine.is_active
        assert tracker.nodes == []

    @pytest.mark.asyncio
    async def test_observer_start_failure_leaves_nothing_behind(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        def refuse_start():
            raise OSError("inotify instance limit reached")

        def unstartable_observer():
            observer = observer_factory()
            observer.start = refuse_start
            return observer

        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, unstartable_observer)

        with pytest.raises(OSError):
            await engine.start()

        assert not engine.is_active
        assert engine.directories == []
        assert observer_factory.created[0].stopped
        assert tracker.nodes == []

    @pytest.mark.asyncio
    async def test_concurrent_starts_create_one_observer(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        counts = await asyncio.gather(engine.start(), engine.start())

        assert counts == [2, 2]
        assert len(observer_factory.created) == 1
        assert len(tracker.children(engine.parent_node_id)) == 2
        engine.stop()
        assert tracker.nodes == []

    @pytest.mark.asyncio
    async def test_failed_output_query_is_skipped(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        runner_script.on("cquery", "//tools:inspector", returncode=1, stderr=["ERROR: no such target"])
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        count = await engine.start()

        assert count == 1
        assert engine.directories == [f"{scripted_tree['bin_dir'].as_posix()}/lib/foo"]
        engine.stop()

    @pytest.mark.asyncio
    async def test_no_labels_watches_nothing(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root, packages=[PackageCopyEntry(label="")])
        engine = make_engine(config, tracker, runner_script, observer_factory)

        count = await engine.start()

        assert count == 0
        assert runner_script.calls_for("cquery") == []
        engine.stop()

    @pytest.mark.asyncio
    async def test_stop_tears_everything_down(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)
        await engine.start()
        observer = observer_factory.created[0]

        engine.stop()
        engine.stop()

        assert not engine.is_active
        assert engine.directories == []
        assert engine.parent_node_id is None
        assert observer.scheduled == {}
        assert observer.stopped and observer.joined
        assert tracker.nodes == []

    @pytest.mark.asyncio
    async def test_stop_before_start_is_safe(
        self, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        engine.stop()

        assert not engine.is_active

    @pytest.mark.asyncio
    async def test_stop_during_start_aborts(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        runner_script.on("cquery", "//lib/foo:foo", hold=asyncio.Event(), stdout=[
            "bazel-out/k8-fastbuild/bin/lib/foo/libfoo.so",
        ])
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)

        task = asyncio.create_task(engine.start())
        for _ in range(20):
            await asyncio.sleep(0)
        engine.stop()
        for runner in runner_script.runners:
            runner.kill()

        assert await task == 0
        assert not engine.is_active
        assert observer_factory.created == []

    @pytest.mark.asyncio
    async def test_cancelling_parent_node_stops_session(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)
        await engine.start()

        assert tracker.cancel(engine.parent_node_id) is True

        assert not engine.is_active
        assert tracker.nodes == []

    @pytest.mark.asyncio
    async def test_restart_rebuilds_watch_set(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        config = app_config_factory(project_root)
        engine = make_engine(config, tracker, runner_script, observer_factory)
        await engine.start()
        engine.settings = app_config_factory(
            project_root, packages=[PackageCopyEntry(label="//tools:inspector")]
        ).sync

        count = await engine.restart()

        assert count == 1
        assert len(observer_factory.created) == 2
        assert observer_factory.created[0].stopped
        assert engine.directories == [f"{scripted_tree['bin_dir'].as_posix()}/tools"]
        engine.stop()


@pytest.mark.integration
class TestChangeEvents:
    """Test cases for change notification."""

    @pytest.mark.asyncio
    async def test_change_updates_node_and_notifies(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        changes = []
        config = app_config_factory(project_root)
        engine = make_engine(
            config, tracker, runner_script, observer_factory,
            on_change=lambda directory, path: changes.append((directory, path)),
        )
        await engine.start()
        directory = engine.directories[0]
        handler = next(iter(observer_factory.created[0].scheduled.values()))

        handler.on_any_event(FileModifiedEvent(f"{directory}/libfoo.so"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert changes == [(directory, f"{directory}/libfoo.so")]
        node = next(child for child in tracker.children(engine.parent_node_id) if child.label == directory)
        assert node.description == "modified: libfoo.so"
        engine.stop()

    @pytest.mark.asyncio
    async def test_handler_ignores_directory_events(self):
        seen = []
        handler = OutputChangeHandler("/out", asyncio.get_running_loop(), lambda *args: seen.append(args))

        handler.on_any_event(DirModifiedEvent("/out/sub"))
        handler.on_any_event(FileCreatedEvent("/out/new.so"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert seen == [("/out", "created", "/out/new.so")]

    @pytest.mark.asyncio
    async def test_change_after_stop_is_ignored(
        self, scripted_tree, project_root, app_config_factory, tracker, runner_script, observer_factory
    ):
        changes = []
        config = app_config_factory(project_root)
        engine = make_engine(
            config, tracker, runner_script, observer_factory,
            on_change=lambda directory, path: changes.append(path),
        )
        await engine.start()
        directory = engine.directories[0]
        engine.stop()

        engine._handle_change(directory, "modified", f"{directory}/libfoo.so")

        assert changes == []
