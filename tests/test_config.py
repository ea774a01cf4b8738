"""
Tests for settings resolution and persistence.

Precedence, first wins: ALGOVIZ_<FIELD> environment variables, the file
named by ALGOVIZ_CONFIG, settings.json in the user config directory,
dataclass defaults.

Run tests:
    pytest tests/test_config.py -v
"""

import json
from unittest.mock import patch

import pytest

from api.app_config import AppConfigManager, PlaybackSettings
from engine import PlaybackController
from engine.validation import Limits


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "user-config"
    with patch.object(AppConfigManager, "_get_default_config_dir", return_value=path):
        yield path


def _write(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


class TestPlaybackSettings:
    def test_defaults(self):
        settings = PlaybackSettings()
        assert settings.base_interval_ms == 100.0
        assert settings.min_speed == 0.5
        assert settings.max_speed == 4.0
        assert settings.max_array_size == 50

    def test_is_engine_limits(self):
        assert isinstance(PlaybackSettings(), Limits)

    def test_log_level_uppercased(self):
        assert PlaybackSettings(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_interval_ms": 0},
            {"min_speed": 2.0, "max_speed": 1.0},
            {"default_speed": 8.0},
            {"checkpoint_interval": -1},
            {"max_catch_up": 0},
        ],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            PlaybackSettings(**kwargs)

    def test_from_dict_ignores_unknown_keys(self):
        settings = PlaybackSettings.from_dict({"max_speed": 8.0, "theme": "dark"})
        assert settings.max_speed == 8.0

    def test_controller_kwargs_build_a_controller(self):
        settings = PlaybackSettings(default_speed=2.0, max_catch_up=3)
        controller = PlaybackController(**settings.controller_kwargs())
        assert controller.speed == 2.0
        assert controller.max_catch_up == 3


class TestResolution:
    def test_defaults_without_sources(self, config_dir):
        settings = AppConfigManager(environ={}).load()
        assert settings == PlaybackSettings()

    def test_user_file(self, config_dir):
        _write(config_dir / "settings.json", {"max_speed": 6.0, "max_grid_rows": 40})
        settings = AppConfigManager(environ={}).load()
        assert settings.max_speed == 6.0
        assert settings.max_grid_rows == 40

    def test_override_file_beats_user_file(self, config_dir, tmp_path):
        _write(config_dir / "settings.json", {"max_speed": 6.0, "min_speed": 0.25})
        override = tmp_path / "override.json"
        _write(override, {"max_speed": 3.0})
        settings = AppConfigManager(environ={"ALGOVIZ_CONFIG": str(override)}).load()
        assert settings.max_speed == 3.0
        assert settings.min_speed == 0.25

    def test_environment_beats_files(self, config_dir, tmp_path):
        override = tmp_path / "override.json"
        _write(override, {"max_speed": 3.0, "checkpoint_interval": 10})
        environ = {
            "ALGOVIZ_CONFIG": str(override),
            "ALGOVIZ_MAX_SPEED": "5",
            "ALGOVIZ_LOG_LEVEL": "warning",
        }
        settings = AppConfigManager(environ=environ).load()
        assert settings.max_speed == 5.0
        assert settings.checkpoint_interval == 10
        assert settings.log_level == "WARNING"

    def test_environment_values_are_typed(self, config_dir):
        settings = AppConfigManager(environ={"ALGOVIZ_MAX_TREE_NODES": "15"}).load()
        assert settings.max_tree_nodes == 15
        assert isinstance(settings.max_tree_nodes, int)

    def test_invalid_environment_value_ignored(self, config_dir):
        settings = AppConfigManager(environ={"ALGOVIZ_MAX_CATCH_UP": "lots"}).load()
        assert settings.max_catch_up == 8

    def test_corrupt_file_ignored(self, config_dir):
        path = config_dir / "settings.json"
        path.parent.mkdir(parents=True)
        path.write_text("{not json", encoding="utf-8")
        assert AppConfigManager(environ={}).load() == PlaybackSettings()

    def test_non_object_file_ignored(self, config_dir):
        _write(config_dir / "settings.json", [1, 2, 3])
        assert AppConfigManager(environ={}).load() == PlaybackSettings()

    def test_settings_are_cached_until_reload(self, config_dir):
        manager = AppConfigManager(environ={})
        first = manager.settings
        assert manager.settings is first
        _write(config_dir / "settings.json", {"max_speed": 7.0})
        assert manager.settings.max_speed == 4.0
        assert manager.reload().max_speed == 7.0


class TestPersistence:
    def test_loading_does_not_create_directories(self, config_dir):
        AppConfigManager(environ={}).load()
        assert not config_dir.exists()

    def test_save_to_user_dir(self, config_dir):
        manager = AppConfigManager(environ={})
        assert manager.save_settings(PlaybackSettings(max_speed=5.0))
        saved = json.loads((config_dir / "settings.json").read_text(encoding="utf-8"))
        assert saved["max_speed"] == 5.0
        assert manager.settings.max_speed == 5.0

    def test_save_goes_to_override_file(self, config_dir, tmp_path):
        override = tmp_path / "nested" / "override.json"
        manager = AppConfigManager(environ={"ALGOVIZ_CONFIG": str(override)})
        assert manager.settings_path == override
        manager.save_settings(PlaybackSettings())
        assert override.exists()
        assert not config_dir.exists()

    def test_update_settings(self, config_dir):
        manager = AppConfigManager(environ={})
        updated = manager.update_settings({"max_catch_up": 4})
        assert updated.max_catch_up == 4
        assert AppConfigManager(environ={}).load().max_catch_up == 4
