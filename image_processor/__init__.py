"""image_processor - one API over Pillow, pyvips, ImageMagick convert and epeg.

Usage:
    from image_processor import ImageProcessor

    proc = ImageProcessor("pillow", "apple.jpg")
    proc.resize(200, 200).grayscale().save("apple_small.jpg", quality=90)
"""

from .errors import (
    ExternalToolError,
    ImageProcessorError,
    ImageSizeError,
    InputNotFoundError,
    NotLoadedError,
    ProcessingError,
    SaveError,
    UnsupportedFormatError,
)
from .formats import EncodedImage, ImageFormat
from .processor import ImageProcessor
from .tools import ToolResult, convert_thumbnail, epeg_resize, vips_resize

__version__ = "1.0.0"

__all__ = [
    "EncodedImage",
    "ExternalToolError",
    "ImageFormat",
    "ImageProcessor",
    "ImageProcessorError",
    "ImageSizeError",
    "InputNotFoundError",
    "NotLoadedError",
    "ProcessingError",
    "SaveError",
    "ToolResult",
    "UnsupportedFormatError",
    "convert_thumbnail",
    "epeg_resize",
    "vips_resize",
]
