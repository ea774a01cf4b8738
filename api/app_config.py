"""
Application settings for the AlgoViz backend.

Settings are a flat ``PlaybackSettings`` dataclass. The engine's input limits
are inherited from ``engine.validation.Limits``, so the settings object can be
handed to ``create_run`` as is.

Values are resolved in this order (first wins):
1. ``ALGOVIZ_<FIELD>`` environment variables (e.g. ``ALGOVIZ_MAX_SPEED=8``)
2. JSON file named by the ``ALGOVIZ_CONFIG`` environment variable
3. ``settings.json`` in the platform user config directory
4. Dataclass defaults
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import platformdirs

from engine.validation import Limits

from .shared.logger import get_logger

logger = get_logger(__name__)

APP_NAME = "algoviz"
APP_AUTHOR = "algoviz"
ENV_PREFIX = "ALGOVIZ_"
CONFIG_ENV_VAR = "ALGOVIZ_CONFIG"
SETTINGS_FILE_NAME = "settings.json"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class PlaybackSettings(Limits):
    """Playback pacing, checkpointing, session housekeeping and input limits."""

    base_interval_ms: float = 100.0
    default_speed: float = 1.0
    min_speed: float = 0.5
    max_speed: float = 4.0
    checkpoint_interval: int = 64
    max_checkpoints: int = 256
    max_catch_up: int = 8
    session_max_age_hours: float = 24.0
    log_level: str = "INFO"

    def __post_init__(self):
        if self.base_interval_ms <= 0:
            raise ValueError("base_interval_ms must be positive")
        if not 0 < self.min_speed <= self.max_speed:
            raise ValueError("speed range must satisfy 0 < min_speed <= max_speed")
        if not self.min_speed <= self.default_speed <= self.max_speed:
            raise ValueError("default_speed must lie within [min_speed, max_speed]")
        if self.checkpoint_interval < 0 or self.max_checkpoints < 1:
            raise ValueError("checkpoint_interval must be >= 0 and max_checkpoints >= 1")
        if self.max_catch_up < 1:
            raise ValueError("max_catch_up must be >= 1")
        self.log_level = str(self.log_level).upper()

    def controller_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for a new PlaybackController."""
        return {
            "base_interval_ms": self.base_interval_ms,
            "speed": self.default_speed,
            "min_speed": self.min_speed,
            "max_speed": self.max_speed,
            "checkpoint_interval": self.checkpoint_interval,
            "max_checkpoints": self.max_checkpoints,
            "max_catch_up": self.max_catch_up,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PlaybackSettings":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown settings: %s", ", ".join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})


def _coerce(raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    if isinstance(default, bool):
        value = raw.strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        raise ValueError(f"not a boolean: {raw!r}")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


class AppConfigManager:
    """Loads, caches and persists PlaybackSettings."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ
        self._settings: Optional[PlaybackSettings] = None

    # ============= Paths =============

    def _get_default_config_dir(self) -> Path:
        return Path(platformdirs.user_config_dir(APP_NAME, APP_AUTHOR))

    @property
    def user_settings_path(self) -> Path:
        return self._get_default_config_dir() / SETTINGS_FILE_NAME

    @property
    def override_path(self) -> Optional[Path]:
        value = self._environ.get(CONFIG_ENV_VAR)
        return Path(value) if value else None

    @property
    def settings_path(self) -> Path:
        """File that ``save_settings`` writes to."""
        return self.override_path or self.user_settings_path

    # ============= Loading =============

    @property
    def settings(self) -> PlaybackSettings:
        if self._settings is None:
            self._settings = self.load()
        return self._settings

    def reload(self) -> PlaybackSettings:
        self._settings = self.load()
        return self._settings

    def load(self) -> PlaybackSettings:
        """Merge every settings source into a fresh PlaybackSettings."""
        merged: Dict[str, Any] = {}
        merged.update(self._read_file(self.user_settings_path))
        if self.override_path is not None:
            merged.update(self._read_file(self.override_path, required=True))
        merged.update(self._env_overrides())
        return PlaybackSettings.from_dict(merged)

    def _read_file(self, path: Path, required: bool = False) -> Dict[str, Any]:
        if not path.exists():
            if required:
                logger.warning("Settings file %s does not exist", path)
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to load settings from %s: %s", path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Settings file %s does not hold a JSON object", path)
            return {}
        return data

    def _env_overrides(self) -> Dict[str, Any]:
        overrides: Dict[str, Any] = {}
        for f in fields(PlaybackSettings):
            key = f"{ENV_PREFIX}{f.name.upper()}"
            raw = self._environ.get(key)
            if raw is None or raw == "":
                continue
            try:
                overrides[f.name] = _coerce(raw, f.default)
            except ValueError as e:
                logger.warning("Ignoring %s: %s", key, e)
        return overrides

    # ============= Persistence =============

    def save_settings(self, settings: PlaybackSettings) -> bool:
        path = self.settings_path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(settings.to_dict(), f, indent=2)
        except OSError as e:
            logger.error("Failed to save settings to %s: %s", path, e)
            return False
        self._settings = settings
        return True

    def update_settings(self, updates: Dict[str, Any]) -> PlaybackSettings:
        """Apply ``updates`` on top of the current settings and persist them."""
        settings = PlaybackSettings.from_dict({**self.settings.to_dict(), **updates})
        self.save_settings(settings)
        return settings


# Global instance
app_config = AppConfigManager()


def get_settings() -> PlaybackSettings:
    return app_config.settings
