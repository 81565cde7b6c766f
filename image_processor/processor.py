"""ImageProcessor: one fluent API over the Pillow and pyvips backends.

The processor owns exactly one decoded image at a time. Every transform asks
the backend for a new image, swaps it in and releases the previous one, so a
handle is cheap to chain but must not be shared between threads.

Usage:
    from image_processor import ImageProcessor

    proc = ImageProcessor("vips", "photo.jpg")
    proc.autorotate().resize(800, 600).sepia().save("photo_small.jpg", quality=85)
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import numpy as np
from PIL import ImageColor

from image_processor.backends import ImageBackend, get_backend
from image_processor.errors import (
    ImageProcessorError,
    ImageSizeError,
    InputNotFoundError,
    NotLoadedError,
    ProcessingError,
    SaveError,
)
from image_processor.formats import EncodedImage, ImageFormat
from image_processor.geometry import ORIENTATION_TOPLEFT, ORIENTATION_TRANSFORMS, clamp, fit_size, validate_crop_bounds
from image_processor.logger import get_logger
from image_processor.metrics import metrics
from image_processor.path_utils import abs_path_str, is_file
from image_processor.settings_manager import SettingsManager, get_settings

_logger = get_logger("processor")

BRIGHTNESS_RANGE = (-255, 255)
CONTRAST_RANGE = (-100, 100)
COLORIZE_RANGE = (-255, 255)
QUALITY_RANGE = (0, 100)
SEPIA_TINT = (90, 60, 40)

ColorSpec = str | tuple[int, ...]


def _parse_color(color: ColorSpec, alpha: bool) -> tuple[int, ...]:
    """RGB(A) tuple from a tuple or any colour string PIL.ImageColor understands."""
    if isinstance(color, str):
        rgba = ImageColor.getcolor(color, "RGBA")
    else:
        values = [int(c) for c in color]
        if len(values) not in (3, 4):
            raise ValueError(f"Colour must have 3 or 4 components, got {color!r}")
        rgba = (*values[:3], values[3] if len(values) == 4 else 255)
    rgba = tuple(clamp(c, 0, 255) for c in rgba)
    return rgba if alpha else rgba[:3]


class ImageProcessor:
    """Load, transform and save a JPEG/PNG/GIF image with a chosen backend.

    Args:
        lib: Backend name (``"pillow"``/``"gd"`` or ``"vips"``/``"imagick"``).
            Defaults to the ``default_backend`` setting.
        image_file: Optional path opened immediately; it must exist.
        settings: Settings to use instead of the process-wide ones.
    """

    def __init__(
        self,
        lib: str | None = None,
        image_file: str | Path | None = None,
        settings: SettingsManager | None = None,
    ):
        self._settings = settings if settings is not None else get_settings()
        self._backend: ImageBackend = self._make_backend(lib)
        self._image: Any | None = None
        self._file: str | None = None
        self._format: ImageFormat | None = None
        if image_file is not None:
            self.open(image_file)

    def _make_backend(self, lib: str | None) -> ImageBackend:
        return get_backend(lib or self._settings.default_backend, self._settings)

    def __repr__(self) -> str:
        if self._image is None:
            return f"<ImageProcessor {self._backend.name} empty>"
        w, h = self._backend.size(self._image)
        return f"<ImageProcessor {self._backend.name} {self._format.value if self._format else '?'} {w}x{h}>"

    def __enter__(self) -> ImageProcessor:
        return self

    def __exit__(self, *exc: object) -> None:
        self.clear(self._backend.name)

    # -- state ------------------------------------------------------------
    def _require(self) -> Any:
        if self._image is None:
            raise NotLoadedError()
        return self._image

    def _swap(self, image: Any) -> None:
        old, self._image = self._image, image
        if old is not None and old is not image:
            self._backend.release(old)

    def _call(self, op: str, fn: Callable[..., Any], *args: Any, error: type[ProcessingError] = ProcessingError) -> Any:
        """Run a backend call on the current image, translating backend failures."""
        image = self._require()
        try:
            with metrics.track(f"{self._backend.name}.{op}"):
                return fn(image, *args)
        except ImageProcessorError:
            raise
        except Exception as e:
            _logger.error("%s failed (%s): %s", op, self._backend.name, e)
            raise error(f"Error when {op} processing ({self._backend.name}): {e}") from e

    def _apply(self, op: str, fn: Callable[..., Any], *args: Any) -> ImageProcessor:
        self._swap(self._call(op, fn, *args))
        _logger.debug("%s%s applied (%s)", op, args if args else "", self._backend.name)
        return self

    # -- lifecycle --------------------------------------------------------
    def open(self, image_file: str | Path) -> ImageProcessor:
        """Decode ``image_file``, replacing any image currently held."""
        if not is_file(image_file):
            raise InputNotFoundError(str(image_file))
        path = abs_path_str(image_file)
        try:
            with metrics.track(f"{self._backend.name}.open"):
                image, fmt = self._backend.load(path)
        except ImageProcessorError as e:
            _logger.error("open failed for %s: %s", path, e)
            raise
        except Exception as e:
            _logger.error("open failed for %s: %s", path, e)
            raise ProcessingError(f"Error when opening {path} ({self._backend.name}): {e}") from e
        self._swap(image)
        self._file = path
        self._format = fmt
        _logger.debug("opened %s (%s, %s)", path, fmt.value, self._backend.name)
        return self

    def create(
        self,
        width: int,
        height: int,
        background: ColorSpec = (0, 0, 0, 0),
        fmt: ImageFormat | str = ImageFormat.PNG,
    ) -> ImageProcessor:
        """Start from a blank ``width`` x ``height`` canvas instead of a file."""
        if width <= 0 or height <= 0:
            raise ImageSizeError(f"Error image size: {width}x{height}")
        fmt = fmt if isinstance(fmt, ImageFormat) else ImageFormat.from_name(fmt)
        color = _parse_color(background, alpha=fmt.has_alpha)
        try:
            with metrics.track(f"{self._backend.name}.create"):
                image = self._backend.create(int(width), int(height), color)
        except Exception as e:
            _logger.error("create failed (%s): %s", self._backend.name, e)
            raise ProcessingError(f"Error when creating image ({self._backend.name}): {e}") from e
        self._swap(image)
        self._file = None
        self._format = fmt
        return self

    def clear(self, lib: str | None = None) -> bool:
        """Drop the image and every field; re-select ``lib`` (default backend when None)."""
        if self._image is not None:
            self._backend.release(self._image)
        self._image = None
        self._file = None
        self._format = None
        self._backend = self._make_backend(lib)
        return True

    # -- accessors --------------------------------------------------------
    @property
    def image(self) -> Any:
        """The backend-native image (``PIL.Image.Image`` or ``pyvips.Image``)."""
        return self._require()

    @property
    def width(self) -> int:
        return int(self._backend.size(self._require())[0])

    @property
    def height(self) -> int:
        return int(self._backend.size(self._require())[1])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def format(self) -> ImageFormat:
        if self._image is None or self._format is None:
            raise NotLoadedError()
        return self._format

    type = format

    @property
    def lib_type(self) -> str:
        return self._backend.name

    @property
    def extension(self) -> str:
        return self.format.extension

    @property
    def mime_type(self) -> str:
        return self.format.mime_type

    @property
    def file(self) -> str | None:
        self._require()
        return self._file

    @property
    def loaded(self) -> bool:
        return self._image is not None

    def copy(self) -> Any:
        """A new backend-native image with the same pixels; the handle is untouched."""
        return self._call("copy", self._backend.copy)

    def to_array(self) -> np.ndarray:
        return self._call("to_array", self._backend.to_array)

    # -- geometry ---------------------------------------------------------
    def resize(self, width: int, height: int, aspect: bool = True, enlarge: bool = False) -> ImageProcessor:
        """Scale the image.

        With ``aspect=False`` the result is exactly ``width`` x ``height``.
        Otherwise the image is fitted inside the box, following whichever
        target gives the smaller scale; a target of 0 is ignored and targets
        above the current size are ignored unless ``enlarge`` is set.
        """
        cur_w, cur_h = self._backend.size(self._require())
        target = fit_size(cur_w, cur_h, int(width or 0), int(height or 0), aspect, enlarge)
        if target is None or target == (cur_w, cur_h):
            _logger.debug("resize %sx%s leaves %dx%d unchanged", width, height, cur_w, cur_h)
            return self
        return self._apply("resize", self._backend.resize, *target)

    def crop(self, width: int, height: int, left: int = 0, top: int = 0) -> ImageProcessor:
        """Keep the ``width`` x ``height`` region whose top-left corner is (left, top)."""
        cur_w, cur_h = self._backend.size(self._require())
        rect = (int(left), int(top), int(width), int(height))
        if not validate_crop_bounds(cur_w, cur_h, rect):
            _logger.error("Crop bounds %s invalid for image size %dx%d", rect, cur_w, cur_h)
            raise ProcessingError(f"Crop bounds {rect} invalid for image size {cur_w}x{cur_h}")
        return self._apply("crop", self._backend.crop, *rect)

    def rotate(self, angle: float) -> ImageProcessor:
        """Rotate clockwise by ``angle`` degrees (negative turns counter-clockwise)."""
        return self._apply("rotate", self._backend.rotate, angle)

    def mirror(self) -> ImageProcessor:
        return self._apply("mirror", self._backend.mirror)

    def flop(self) -> ImageProcessor:
        return self._apply("flop", self._backend.mirror)

    def flip(self) -> ImageProcessor:
        return self._apply("flip", self._backend.flip)

    def autorotate(self) -> ImageProcessor:
        """Undo the EXIF orientation, then mark the image as top-left."""
        orientation = self._call("orientation", self._backend.orientation)
        if orientation == ORIENTATION_TOPLEFT or orientation not in ORIENTATION_TRANSFORMS:
            return self
        degrees, mirrored = ORIENTATION_TRANSFORMS[orientation]
        _logger.debug("autorotate: orientation %d -> rotate %d, mirror %s", orientation, degrees, mirrored)
        if degrees:
            self.rotate(degrees)
        if mirrored:
            self.mirror()
        return self._apply("reset_orientation", self._backend.reset_orientation)

    # -- tone -------------------------------------------------------------
    def brightness(self, delta: int = 100) -> ImageProcessor:
        return self._apply("brightness", self._backend.brightness, clamp(delta, *BRIGHTNESS_RANGE))

    def contrast(self, delta: int = 0) -> ImageProcessor:
        """GD-style contrast: negative values increase contrast, 100 flattens to grey."""
        return self._apply("contrast", self._backend.contrast, clamp(delta, *CONTRAST_RANGE))

    def colorize(self, red: int, green: int, blue: int) -> ImageProcessor:
        rgb = (clamp(red, *COLORIZE_RANGE), clamp(green, *COLORIZE_RANGE), clamp(blue, *COLORIZE_RANGE))
        return self._apply("colorize", self._backend.colorize, *rgb)

    def negative(self) -> ImageProcessor:
        return self._apply("negative", self._backend.negative)

    def grayscale(self) -> ImageProcessor:
        return self._apply("grayscale", self._backend.grayscale)

    def sepia(self) -> ImageProcessor:
        return self._apply("sepia", self._backend.sepia)

    # -- output -----------------------------------------------------------
    def display(self, quality: int = 100) -> EncodedImage:
        """Encode in the current format for sending somewhere (e.g. an HTTP response)."""
        fmt = self.format
        q = clamp(quality, *QUALITY_RANGE)
        data = self._call("display", self._backend.encode, fmt, q)
        return EncodedImage(mime_type=fmt.mime_type, data=bytes(data), format=fmt)

    def save(
        self,
        image_file: str | Path,
        quality: int | None = None,
        fmt: ImageFormat | str | None = None,
    ) -> ImageProcessor:
        """Write the image to ``image_file``.

        ``quality`` (clamped to 0..100, default from settings) only affects
        JPEG output. ``fmt`` overrides the current format; the handle adopts
        it once the write succeeds.
        """
        self._require()
        out_fmt = self.format if fmt is None else fmt if isinstance(fmt, ImageFormat) else ImageFormat.from_name(fmt)
        q = clamp(self._settings.default_quality if quality is None else quality, *QUALITY_RANGE)
        path = abs_path_str(image_file)
        self._call("save", self._backend.save, path, out_fmt, q, error=SaveError)
        self._file = path
        self._format = out_fmt
        _logger.info("saved %s (%s, quality %d, %s)", path, out_fmt.value, q, self._backend.name)
        return self
