"""JSON settings for backends and external tools.

The file holds only the keys a user changed; everything else comes from
``SettingsManager.DEFAULTS``. An unreadable or malformed file is logged and
treated as empty rather than aborting the caller.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from .logger import get_logger
from .path_utils import abs_path_str

_logger = get_logger("settings")

SETTINGS_ENV = "IMAGE_PROCESSOR_SETTINGS"


class SettingsManager:
    DEFAULTS: dict[str, Any] = {
        "default_backend": "pillow",
        "resize_filter": "lanczos",
        "vips_kernel": "lanczos3",
        "default_quality": 100,
        "convert_binary": "convert",
        "epeg_binary": "epeg",
        "tool_timeout": 60.0,
        "thumbnail_background": "transparent",
    }

    def __init__(self, settings_path: str):
        self.settings_path = abs_path_str(settings_path)
        self._settings: dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        path = Path(self.settings_path)
        self._settings = {}
        if not path.is_file():
            return
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            _logger.warning("settings load failed (%s): %s", self.settings_path, e)
            return
        if not isinstance(data, dict):
            _logger.warning("settings file is not a JSON object: %s", self.settings_path)
            return
        self._settings = data
        _logger.debug("settings loaded: %s", self.settings_path)

    def save(self) -> None:
        path = Path(self.settings_path)
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._settings, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            _logger.error("settings save failed (%s): %s", self.settings_path, e)
            return
        _logger.debug("settings saved: %s", self.settings_path)

    def get(self, key: str, default: Any = None) -> Any:
        """Stored value, else ``default`` when given, else the built-in default."""
        if key in self._settings:
            return self._settings[key]
        return default if default is not None else self.DEFAULTS.get(key)

    def has(self, key: str) -> bool:
        return key in self._settings

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` and write the file straight away."""
        self._settings[key] = value
        self.save()

    @property
    def data(self) -> dict[str, Any]:
        return self._settings

    @property
    def default_backend(self) -> str:
        val = self.get("default_backend")
        return val if isinstance(val, str) and val else self.DEFAULTS["default_backend"]

    @property
    def resize_filter(self) -> str:
        return str(self.get("resize_filter"))

    @property
    def vips_kernel(self) -> str:
        return str(self.get("vips_kernel"))

    @property
    def default_quality(self) -> int:
        try:
            return int(self.get("default_quality"))
        except (TypeError, ValueError):
            _logger.warning("invalid default_quality: %r", self.get("default_quality"))
            return self.DEFAULTS["default_quality"]

    @property
    def tool_timeout(self) -> float | None:
        """Seconds an external tool may run; None when disabled (0 or negative)."""
        val = self.get("tool_timeout")
        try:
            timeout = float(val)
        except (TypeError, ValueError):
            _logger.warning("invalid tool_timeout: %r", val)
            return self.DEFAULTS["tool_timeout"]
        return timeout if timeout > 0 else None

    def binary(self, tool: str) -> str:
        """Executable configured for an external tool ("convert" or "epeg")."""
        return str(self.get(f"{tool}_binary", tool))


def default_settings_path() -> str:
    env_path = (os.getenv(SETTINGS_ENV) or "").strip()
    return abs_path_str(env_path or Path("~") / ".image_processor" / "settings.json")


_settings: SettingsManager | None = None


def get_settings() -> SettingsManager:
    """Process-wide settings, created lazily from ``default_settings_path()``."""
    global _settings
    if _settings is None:
        _settings = SettingsManager(default_settings_path())
    return _settings


def set_settings(settings: SettingsManager | None) -> None:
    """Replace the process-wide settings (None drops it so the next get reloads)."""
    global _settings
    _settings = settings
