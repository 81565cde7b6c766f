"""Raster backend built on Pillow.

Images are kept in ``RGB`` or ``RGBA`` mode so every tone operation can be
expressed as a per-band lookup table (``Image.point``), which also carries the
``info`` dict (and with it the EXIF block) over to the result.
"""

from __future__ import annotations

import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from image_processor.errors import ImageSizeError, UnsupportedFormatError
from image_processor.formats import ImageFormat
from image_processor.logger import get_logger

from .base import Color, ImageBackend, contrast_lut

_logger = get_logger("pillow_backend")

EXIF_ORIENTATION_TAG = 0x0112

RESAMPLE_FILTERS = {
    "nearest": Image.Resampling.NEAREST,
    "box": Image.Resampling.BOX,
    "bilinear": Image.Resampling.BILINEAR,
    "hamming": Image.Resampling.HAMMING,
    "bicubic": Image.Resampling.BICUBIC,
    "lanczos": Image.Resampling.LANCZOS,
}

# Pillow rotates counter-clockwise
_CCW_TRANSPOSE = {
    90: Image.Transpose.ROTATE_90,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_270,
}

_IDENTITY = list(range(256))


def _clip(v: int) -> int:
    return 0 if v < 0 else 255 if v > 255 else v


def _shift_table(delta: int) -> list[int]:
    return [_clip(i + delta) for i in range(256)]


def _normalize_mode(src: Image.Image) -> Image.Image:
    """Return an RGB/RGBA copy of ``src`` (palette and greyscale images included)."""
    has_alpha = src.mode in ("RGBA", "LA", "PA") or "transparency" in src.info
    target = "RGBA" if has_alpha else "RGB"
    if src.mode == target:
        return src.copy()
    return src.convert(target)


class PillowBackend(ImageBackend):
    name = "pillow"

    def __init__(self, resample: str = "lanczos"):
        key = (resample or "lanczos").lower()
        if key not in RESAMPLE_FILTERS:
            _logger.warning("unknown resize filter %r, using lanczos", resample)
            key = "lanczos"
        self.resample = RESAMPLE_FILTERS[key]

    # -- decode / encode -------------------------------------------------
    def load(self, path: str) -> tuple[Image.Image, ImageFormat]:
        try:
            with Image.open(path) as src:
                fmt = ImageFormat.from_name(src.format)
                width, height = src.size
                if width == 0 or height == 0:
                    raise ImageSizeError(f"Error image size: {width}x{height}")
                src.load()
                image = _normalize_mode(src)
        except UnidentifiedImageError as e:
            raise UnsupportedFormatError(f"Unsupported image format (only jpg/png/gif): {path}") from e
        except OSError as e:
            raise UnsupportedFormatError(f"Cannot decode image {path}: {e}") from e
        _logger.debug("decoded %s as %s %s", path, fmt.value, image.mode)
        return image, fmt

    def create(self, width: int, height: int, background: Color) -> Image.Image:
        mode = "RGBA" if len(background) == 4 else "RGB"
        return Image.new(mode, (width, height), tuple(background))

    def _prepare(self, image: Image.Image, fmt: ImageFormat) -> tuple[Image.Image, dict]:
        params: dict = {}
        if fmt is ImageFormat.JPEG:
            if image.mode != "RGB":
                image = image.convert("RGB")
            exif = image.info.get("exif")
            if exif:
                params["exif"] = exif
        return image, params

    def encode(self, image: Image.Image, fmt: ImageFormat, quality: int) -> bytes:
        image, params = self._prepare(image, fmt)
        if fmt is ImageFormat.JPEG:
            params["quality"] = quality
        buf = io.BytesIO()
        image.save(buf, format=fmt.value, **params)
        return buf.getvalue()

    def save(self, image: Image.Image, path: str, fmt: ImageFormat, quality: int) -> None:
        image, params = self._prepare(image, fmt)
        if fmt is ImageFormat.JPEG:
            params["quality"] = quality
        image.save(path, format=fmt.value, **params)

    def release(self, image: Image.Image) -> None:
        image.close()

    # -- queries ----------------------------------------------------------
    def size(self, image: Image.Image) -> tuple[int, int]:
        return image.size

    def copy(self, image: Image.Image) -> Image.Image:
        return image.copy()

    def to_array(self, image: Image.Image) -> np.ndarray:
        return np.asarray(image, dtype=np.uint8).copy()

    def orientation(self, image: Image.Image) -> int:
        value = image.getexif().get(EXIF_ORIENTATION_TAG, 1)
        try:
            return int(value)
        except (TypeError, ValueError):
            return 1

    def reset_orientation(self, image: Image.Image) -> Image.Image:
        out = image.copy()
        exif = out.getexif()
        if EXIF_ORIENTATION_TAG not in exif:
            return out
        exif[EXIF_ORIENTATION_TAG] = 1
        out.info["exif"] = exif.tobytes()
        return out

    # -- geometry ---------------------------------------------------------
    def resize(self, image: Image.Image, width: int, height: int) -> Image.Image:
        return image.resize((width, height), self.resample)

    def crop(self, image: Image.Image, left: int, top: int, width: int, height: int) -> Image.Image:
        # RGBA crops keep their alpha channel, so PNG/GIF transparency survives
        return image.crop((left, top, left + width, top + height))

    def rotate(self, image: Image.Image, angle: float) -> Image.Image:
        ccw = (360 - angle) if angle > 0 else abs(angle)
        ccw %= 360
        if ccw == 0:
            return image.copy()
        if ccw in _CCW_TRANSPOSE:
            return image.transpose(_CCW_TRANSPOSE[int(ccw)])
        fill = (0, 0, 0, 0) if image.mode == "RGBA" else (0, 0, 0)
        return image.rotate(ccw, resample=Image.Resampling.BICUBIC, expand=True, fillcolor=fill)

    def mirror(self, image: Image.Image) -> Image.Image:
        return image.transpose(Image.Transpose.FLIP_LEFT_RIGHT)

    def flip(self, image: Image.Image) -> Image.Image:
        return image.transpose(Image.Transpose.FLIP_TOP_BOTTOM)

    # -- tone -------------------------------------------------------------
    def _point(self, image: Image.Image, red: list[int], green: list[int], blue: list[int]) -> Image.Image:
        lut = red + green + blue
        if image.mode == "RGBA":
            lut += _IDENTITY
        return image.point(lut)

    def brightness(self, image: Image.Image, delta: int) -> Image.Image:
        table = _shift_table(delta)
        return self._point(image, table, table, table)

    def contrast(self, image: Image.Image, delta: int) -> Image.Image:
        table = contrast_lut(delta)
        return self._point(image, table, table, table)

    def colorize(self, image: Image.Image, red: int, green: int, blue: int) -> Image.Image:
        return self._point(image, _shift_table(red), _shift_table(green), _shift_table(blue))

    def negative(self, image: Image.Image) -> Image.Image:
        table = [255 - i for i in range(256)]
        return self._point(image, table, table, table)

    def grayscale(self, image: Image.Image) -> Image.Image:
        # "L" conversion uses the ITU-R 601-2 luma weights
        luma = image.convert("L")
        bands = [luma, luma, luma]
        if image.mode == "RGBA":
            bands.append(image.getchannel("A"))
        out = Image.merge(image.mode, bands)
        out.info.update(image.info)
        return out

    def sepia(self, image: Image.Image) -> Image.Image:
        return self.colorize(self.grayscale(image), 90, 60, 40)
