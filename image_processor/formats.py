"""Supported image formats and their naming across backends."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from image_processor.errors import UnsupportedFormatError


class ImageFormat(str, Enum):
    JPEG = "JPEG"
    PNG = "PNG"
    GIF = "GIF"

    @property
    def mime_type(self) -> str:
        return _MIME_TYPES[self]

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self]

    @property
    def has_alpha(self) -> bool:
        return self is not ImageFormat.JPEG

    @classmethod
    def from_name(cls, name: str | None) -> ImageFormat:
        """Map a Pillow format name, a libvips loader/saver or a file suffix to a format.

        Raises UnsupportedFormatError for anything outside JPEG/PNG/GIF.
        """
        key = (name or "").strip().lower().lstrip(".")
        # libvips loaders look like "jpegload", "pngload_source", "gifload_buffer"
        for suffix in ("load", "save"):
            idx = key.find(suffix)
            if idx > 0:
                key = key[:idx]
                break
        fmt = _ALIASES.get(key)
        if fmt is None:
            raise UnsupportedFormatError(f"Unsupported image format {name!r} (only jpg/png/gif)")
        return fmt


_MIME_TYPES = {
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.PNG: "image/png",
    ImageFormat.GIF: "image/gif",
}

_EXTENSIONS = {
    ImageFormat.JPEG: "jpg",
    ImageFormat.PNG: "png",
    ImageFormat.GIF: "gif",
}

_ALIASES = {
    "jpeg": ImageFormat.JPEG,
    "jpg": ImageFormat.JPEG,
    "jpe": ImageFormat.JPEG,
    # Pillow names multi-picture (MPF) camera JPEGs "MPO"
    "mpo": ImageFormat.JPEG,
    "png": ImageFormat.PNG,
    "gif": ImageFormat.GIF,
}


@dataclass(frozen=True)
class EncodedImage:
    """Encoded image bytes tagged with the MIME type a transport should announce."""

    mime_type: str
    data: bytes
    format: ImageFormat

    def __len__(self) -> int:
        return len(self.data)
