"""Toolkit backend built on pyvips (libvips).

libvips images are immutable, so every operation simply returns the new
image. Loaded images are normalised to 8-bit sRGB (alpha kept) and copied into
memory so the source file may be overwritten by a later save.
"""

from __future__ import annotations

import contextlib
from typing import Any

import numpy as np

from image_processor.errors import ImageSizeError, UnsupportedFormatError
from image_processor.formats import ImageFormat
from image_processor.logger import get_logger

from .base import Color, ImageBackend, contrast_linear

_logger = get_logger("vips_backend")

try:
    import pyvips  # type: ignore
except (ImportError, OSError):
    pyvips = None  # type: ignore
    _logger.warning("pyvips is not available; the vips backend will raise ImportError when used")


def _get_pyvips_module() -> Any:
    """Return the pyvips module or raise ImportError if unavailable."""
    if pyvips is None:
        _logger.error("pyvips requested but not available")
        raise ImportError("pyvips is not available")
    return pyvips


RGB_CHANNELS = 3
JPEG_MIN_Q = 1

# ITU-R 601-2 luma, same weights Pillow uses for "L"
_LUMA = [[0.299, 0.587, 0.114]]

_SEPIA = [
    [0.393, 0.769, 0.189],
    [0.349, 0.686, 0.168],
    [0.272, 0.534, 0.131],
]

_SAVERS = {
    ImageFormat.JPEG: "jpegsave",
    ImageFormat.PNG: "pngsave",
    ImageFormat.GIF: "gifsave",
}


def _split_alpha(image: Any) -> tuple[Any, Any | None]:
    if image.hasalpha():
        return image.extract_band(0, n=image.bands - 1), image.extract_band(image.bands - 1)
    return image, None


def _join_alpha(color: Any, alpha: Any | None) -> Any:
    out = color.cast("uchar")
    if alpha is not None:
        out = out.bandjoin(alpha)
    return out.copy(interpretation="srgb")


class VipsBackend(ImageBackend):
    name = "vips"

    def __init__(self) -> None:
        self._vips = _get_pyvips_module()
        # Configure pyvips caches to avoid memory growth
        with contextlib.suppress(Exception):
            self._vips.cache_set_max(0)
            self._vips.cache_set_max_mem(0)
            self._vips.cache_set_max_files(0)

    def _normalize(self, image: Any) -> Any:
        with contextlib.suppress(self._vips.Error):
            image = image.colourspace("srgb")
        if image.bands < RGB_CHANNELS:
            image = self._vips.Image.bandjoin([image] * RGB_CHANNELS)
        if image.format != "uchar":
            image = image.cast("uchar")
        return image

    # -- decode / encode -------------------------------------------------
    def load(self, path: str) -> tuple[Any, ImageFormat]:
        try:
            image = self._vips.Image.new_from_file(path)
        except self._vips.Error as e:
            raise UnsupportedFormatError(f"Unsupported image format (only jpg/png/gif): {path}") from e
        loader = image.get("vips-loader") if image.get_typeof("vips-loader") != 0 else None
        fmt = ImageFormat.from_name(loader)
        if image.width == 0 or image.height == 0:
            raise ImageSizeError(f"Error image size: {image.width}x{image.height}")
        try:
            image = self._normalize(image).copy_memory()
        except self._vips.Error as e:
            raise UnsupportedFormatError(f"Cannot decode image {path}: {e}") from e
        _logger.debug("decoded %s as %s with %d bands", path, fmt.value, image.bands)
        return image, fmt

    def create(self, width: int, height: int, background: Color) -> Any:
        canvas = self._vips.Image.black(width, height).new_from_image(list(background))
        return canvas.cast("uchar").copy(interpretation="srgb")

    def _prepare(self, image: Any, fmt: ImageFormat, quality: int) -> tuple[Any, dict]:
        opts: dict = {}
        if fmt is ImageFormat.JPEG:
            if image.hasalpha():
                image = image.flatten(background=[0, 0, 0]).cast("uchar")
            # libvips only accepts Q in 1..100 and silently uses 75 otherwise
            opts["Q"] = max(JPEG_MIN_Q, quality)
        return image, opts

    def encode(self, image: Any, fmt: ImageFormat, quality: int) -> bytes:
        image, opts = self._prepare(image, fmt, quality)
        return getattr(image, f"{_SAVERS[fmt]}_buffer")(**opts)

    def save(self, image: Any, path: str, fmt: ImageFormat, quality: int) -> None:
        image, opts = self._prepare(image, fmt, quality)
        getattr(image, _SAVERS[fmt])(path, **opts)

    # -- queries ----------------------------------------------------------
    def size(self, image: Any) -> tuple[int, int]:
        return image.width, image.height

    def copy(self, image: Any) -> Any:
        return image.copy_memory()

    def to_array(self, image: Any) -> np.ndarray:
        if image.format != "uchar":
            image = image.cast("uchar")
        mem = image.write_to_memory()
        return np.frombuffer(mem, dtype=np.uint8).reshape(image.height, image.width, image.bands).copy()

    def orientation(self, image: Any) -> int:
        if image.get_typeof("orientation") == 0:
            return 1
        return int(image.get("orientation"))

    def reset_orientation(self, image: Any) -> Any:
        out = image.copy()
        if out.get_typeof("orientation") != 0:
            out.set_type(self._vips.GValue.gint_type, "orientation", 1)
        return out

    # -- geometry ---------------------------------------------------------
    def resize(self, image: Any, width: int, height: int) -> Any:
        # "force" gives exactly width x height, premultiplying alpha as needed
        return image.thumbnail_image(width, height=height, size="force")

    def crop(self, image: Any, left: int, top: int, width: int, height: int) -> Any:
        return image.crop(left, top, width, height)

    def rotate(self, image: Any, angle: float) -> Any:
        # libvips rotates clockwise
        angle %= 360
        if angle == 0:
            return image.copy()
        if angle in (90, 180, 270):
            return image.rot(f"d{int(angle)}")
        # all-zero background: transparent when there is alpha, black otherwise
        rotated = image.rotate(angle, background=[0] * image.bands)
        return rotated.cast("uchar").copy(interpretation="srgb")

    def mirror(self, image: Any) -> Any:
        return image.flip("horizontal")

    def flip(self, image: Any) -> Any:
        return image.flip("vertical")

    # -- tone -------------------------------------------------------------
    def _linear(self, image: Any, scale: list[float], offset: list[float]) -> Any:
        color, alpha = _split_alpha(image)
        return _join_alpha(color.linear(scale, offset), alpha)

    def brightness(self, image: Any, delta: int) -> Any:
        return self._linear(image, [1, 1, 1], [delta, delta, delta])

    def contrast(self, image: Any, delta: int) -> Any:
        a, b = contrast_linear(delta)
        return self._linear(image, [a, a, a], [b, b, b])

    def colorize(self, image: Any, red: int, green: int, blue: int) -> Any:
        return self._linear(image, [1, 1, 1], [red, green, blue])

    def negative(self, image: Any) -> Any:
        color, alpha = _split_alpha(image)
        return _join_alpha(color.invert(), alpha)

    def grayscale(self, image: Any) -> Any:
        color, alpha = _split_alpha(image)
        luma = color.recomb(self._vips.Image.new_from_array(_LUMA)).rint().cast("uchar")
        return _join_alpha(luma.bandjoin([luma, luma]), alpha)

    def sepia(self, image: Any) -> Any:
        color, alpha = _split_alpha(image)
        return _join_alpha(color.recomb(self._vips.Image.new_from_array(_SEPIA)), alpha)
