"""Image backends.

Two implementations of the ``ImageBackend`` contract:
- ``pillow`` (alias ``gd``): raster backend on Pillow
- ``vips`` (alias ``imagick``): toolkit backend on pyvips/libvips

Usage:
    from image_processor.backends import get_backend

    backend = get_backend("vips")
    image, fmt = backend.load("photo.jpg")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import ImageBackend
from .pillow_backend import PillowBackend

if TYPE_CHECKING:
    from image_processor.settings_manager import SettingsManager

PILLOW = "pillow"
VIPS = "vips"

BACKEND_NAMES = (PILLOW, VIPS)

_ALIASES = {
    "pillow": PILLOW,
    "pil": PILLOW,
    "gd": PILLOW,
    "vips": VIPS,
    "pyvips": VIPS,
    "libvips": VIPS,
    "imagick": VIPS,
}


def resolve_backend_name(name: str) -> str:
    """Canonical backend name for ``name`` or one of its aliases."""
    key = (name or "").strip().lower()
    if key not in _ALIASES:
        raise ValueError(f"Unknown image backend {name!r} (expected one of {', '.join(BACKEND_NAMES)})")
    return _ALIASES[key]


def get_backend(name: str, settings: SettingsManager | None = None) -> ImageBackend:
    """Instantiate the backend called ``name``, configured from ``settings``."""
    canonical = resolve_backend_name(name)
    if canonical == PILLOW:
        resample = settings.resize_filter if settings is not None else "lanczos"
        return PillowBackend(resample=resample)
    # Imported lazily so a missing libvips only matters to callers that ask for it
    from .vips_backend import VipsBackend

    return VipsBackend()


__all__ = [
    "BACKEND_NAMES",
    "PILLOW",
    "VIPS",
    "ImageBackend",
    "PillowBackend",
    "get_backend",
    "resolve_backend_name",
]
