"""
Unit tests for configuration loading, caching and the change signal.
"""

import pytest

from buildsync.config import (
    ConfigChangedSignal,
    config_changed,
    get_config,
    get_config_info,
    is_config_loaded,
    load_config,
    reload_config,
    set_config_path,
)
from buildsync.models.config import CopyMode
from buildsync.validation import ValidationError


@pytest.mark.unit
class TestLoadConfig:
    """Test cases for load_config and the singleton accessors."""

    def test_load_sample_document(self, config_file, temp_dir):
        config = load_config(config_file)

        assert config.config_path == config_file.resolve()
        assert config.build_tool.startup_args == ["--output_base=/tmp/ob"]
        assert config.build_tool.build_args == ["--config=ci"]
        assert config.project.root == config_file.resolve().parent / "project"
        assert [entry.label for entry in config.sync.packages] == ["//lib/foo:foo", "//tools:inspector", ""]
        assert config.sync.packages[1].mode is CopyMode.EDITOR_ONLY
        assert config.sync.build_on_start is False
        assert config.sync.copy_on_change is True
        assert config.importer.command == ["refresh-assets", "--quiet"]
        assert config.importer.max_attempts == 3

    def test_missing_file_raises(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            load_config(temp_dir / "nope.toml")

    def test_malformed_toml_raises(self, temp_dir):
        path = temp_dir / "broken.toml"
        path.write_text("[sync\nbuild_on_start = true")

        with pytest.raises(ValueError):
            load_config(path)

    def test_invalid_document_raises_validation_error(self, temp_dir):
        path = temp_dir / "invalid.toml"
        path.write_text('[[packages]]\nlabel = "//a:a"\nmode = "never"\n')

        with pytest.raises(ValidationError):
            load_config(path)

    def test_get_config_is_cached(self, config_file):
        set_config_path(config_file)

        first = get_config()

        assert get_config() is first
        assert is_config_loaded()
        assert get_config_info()["packages_count"] == 3

    def test_reload_emits_signal(self, config_file, sample_config_text):
        set_config_path(config_file)
        original = get_config()
        calls = []
        listener = lambda: calls.append(get_config())  # noqa: E731
        config_changed.connect(listener)
        try:
            config_file.write_text(sample_config_text.replace('build_on_start = false', 'build_on_start = true'))

            reloaded = reload_config()
        finally:
            config_changed.disconnect(listener)

        assert reloaded is not original
        assert reloaded.sync.build_on_start is True
        assert calls == [reloaded]

    def test_failed_reload_keeps_previous_config(self, config_file):
        set_config_path(config_file)
        original = get_config()
        calls = []
        listener = lambda: calls.append(1)  # noqa: E731
        config_changed.connect(listener)
        try:
            config_file.write_text("[[packages]]\nlabel = 3\n")

            with pytest.raises(ValidationError):
                reload_config()
        finally:
            config_changed.disconnect(listener)

        assert get_config() is original
        assert calls == []


@pytest.mark.unit
class TestConfigChangedSignal:
    """Test cases for ConfigChangedSignal."""

    def test_listeners_called_in_order(self):
        signal = ConfigChangedSignal()
        calls = []
        signal.connect(lambda: calls.append("a"))
        signal.connect(lambda: calls.append("b"))

        signal.emit()

        assert calls == ["a", "b"]

    def test_failing_listener_does_not_stop_others(self):
        signal = ConfigChangedSignal()
        calls = []

        def broken():
            raise RuntimeError("listener bug")

        signal.connect(broken)
        signal.connect(lambda: calls.append("ok"))

        signal.emit()

        assert calls == ["ok"]

    def test_connect_is_idempotent(self):
        signal = ConfigChangedSignal()

        def listener():
            pass

        signal.connect(listener)
        signal.connect(listener)
        assert signal.listener_count == 1

        signal.disconnect(listener)
        signal.disconnect(listener)
        assert signal.listener_count == 0
