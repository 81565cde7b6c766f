"""Pytest configuration.

Test images are generated on the fly (see ``tests/helpers/images.py``) so no
binary fixtures live in the repository. Every test runs against its own
settings file so the user's ``~/.image_processor/settings.json`` is never read
or written.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from image_processor.settings_manager import SettingsManager, set_settings
from tests.helpers.images import BACKENDS, make_image


@pytest.fixture(autouse=True)
def settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    settings_path = tmp_path / "config" / "settings.json"
    monkeypatch.setenv("IMAGE_PROCESSOR_SETTINGS", str(settings_path))
    sm = SettingsManager(str(settings_path))
    set_settings(sm)
    yield sm
    set_settings(None)


@pytest.fixture(params=BACKENDS)
def lib(request) -> str:
    return request.param


@pytest.fixture
def apple_jpg(tmp_path: Path) -> Path:
    return make_image(tmp_path / "apple.jpg", (320, 202), "JPEG")


@pytest.fixture
def rgb_png(tmp_path: Path) -> Path:
    return make_image(tmp_path / "pattern.png", (40, 30), "PNG")


@pytest.fixture
def alpha_png(tmp_path: Path) -> Path:
    return make_image(tmp_path / "alpha.png", (60, 40), "PNG", alpha=True)


@pytest.fixture
def palette_gif(tmp_path: Path) -> Path:
    return make_image(tmp_path / "palette.gif", (64, 48), "GIF")
