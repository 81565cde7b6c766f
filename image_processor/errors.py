"""Exception hierarchy for image_processor.

Every error raised by the facade, the backends and the command-line helpers
derives from ``ImageProcessorError``. The concrete classes also derive from the
closest builtin so callers can keep catching ``FileNotFoundError`` or
``ValueError`` where that reads more naturally.
"""

from __future__ import annotations


class ImageProcessorError(Exception):
    """Base class for all image_processor failures."""


class InputNotFoundError(ImageProcessorError, FileNotFoundError):
    """The input file does not exist."""

    def __init__(self, path: str):
        super().__init__(f"File doesn't exist: {path}")
        self.path = path


class UnsupportedFormatError(ImageProcessorError, ValueError):
    """The file is not a JPEG, PNG or GIF image (or not an image at all)."""


class ImageSizeError(ImageProcessorError, ValueError):
    """Image dimensions are zero or could not be determined."""


class NotLoadedError(ImageProcessorError, RuntimeError):
    """An operation needs an image but the handle is empty."""

    def __init__(self, message: str = "Image not loaded"):
        super().__init__(message)


class ProcessingError(ImageProcessorError, RuntimeError):
    """A backend transform (resize, crop, filter, rotate...) failed."""


class SaveError(ProcessingError):
    """Encoding or writing the image failed."""


class ExternalToolError(ImageProcessorError, RuntimeError):
    """An external command-line tool is missing, failed or timed out."""

    def __init__(
        self,
        message: str,
        cmd: list[str] | None = None,
        returncode: int | None = None,
        stderr: str | None = None,
    ):
        super().__init__(message)
        self.cmd = list(cmd or [])
        self.returncode = returncode
        self.stderr = stderr or ""
