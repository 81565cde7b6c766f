"""Capability contract implemented by every image backend.

A backend is stateless: it turns native image objects into new native image
objects. The ``ImageProcessor`` facade owns the current image and swaps it
for whatever each call returns, so backends never mutate their inputs.
Argument values arrive already clamped and validated by the facade.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from image_processor.formats import ImageFormat

Color = tuple[int, ...]


class ImageBackend(ABC):
    #: Registry name, also what ``ImageProcessor.lib_type`` reports.
    name: str = ""

    # -- decode / encode -------------------------------------------------
    @abstractmethod
    def load(self, path: str) -> tuple[Any, ImageFormat]:
        """Decode ``path``; return the native image and its detected format.

        Raises UnsupportedFormatError when the file is not a decodable
        JPEG/PNG/GIF and ImageSizeError when a dimension is zero.
        """

    @abstractmethod
    def create(self, width: int, height: int, background: Color) -> Any:
        """Blank canvas filled with an RGB or RGBA colour."""

    @abstractmethod
    def encode(self, image: Any, fmt: ImageFormat, quality: int) -> bytes: ...

    @abstractmethod
    def save(self, image: Any, path: str, fmt: ImageFormat, quality: int) -> None: ...

    def release(self, image: Any) -> None:  # noqa: B027 - optional hook
        """Free native resources held by ``image``."""

    # -- queries ----------------------------------------------------------
    @abstractmethod
    def size(self, image: Any) -> tuple[int, int]: ...

    @abstractmethod
    def copy(self, image: Any) -> Any: ...

    @abstractmethod
    def to_array(self, image: Any) -> np.ndarray:
        """Pixels as a ``uint8`` array shaped ``(height, width, bands)``."""

    @abstractmethod
    def orientation(self, image: Any) -> int:
        """EXIF orientation tag (1..8); 1 when absent."""

    @abstractmethod
    def reset_orientation(self, image: Any) -> Any:
        """Return ``image`` with its orientation tag set to top-left."""

    # -- geometry ---------------------------------------------------------
    @abstractmethod
    def resize(self, image: Any, width: int, height: int) -> Any: ...

    @abstractmethod
    def crop(self, image: Any, left: int, top: int, width: int, height: int) -> Any: ...

    @abstractmethod
    def rotate(self, image: Any, angle: float) -> Any:
        """Rotate clockwise by ``angle`` degrees, growing the canvas to fit."""

    @abstractmethod
    def mirror(self, image: Any) -> Any:
        """Flip left-right."""

    @abstractmethod
    def flip(self, image: Any) -> Any:
        """Flip top-bottom."""

    # -- tone -------------------------------------------------------------
    @abstractmethod
    def brightness(self, image: Any, delta: int) -> Any: ...

    @abstractmethod
    def contrast(self, image: Any, delta: int) -> Any: ...

    @abstractmethod
    def colorize(self, image: Any, red: int, green: int, blue: int) -> Any: ...

    @abstractmethod
    def negative(self, image: Any) -> Any: ...

    @abstractmethod
    def grayscale(self, image: Any) -> Any: ...

    @abstractmethod
    def sepia(self, image: Any) -> Any: ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


def contrast_lut(delta: int) -> list[int]:
    """GD-style contrast table: negative deltas add contrast, 100 flattens to grey."""
    factor = ((100.0 - delta) / 100.0) ** 2
    table = []
    for i in range(256):
        v = ((i / 255.0 - 0.5) * factor + 0.5) * 255.0
        table.append(max(0, min(255, round(v))))
    return table


def contrast_linear(delta: int) -> tuple[float, float]:
    """The contrast table above as ``v * a + b``."""
    factor = ((100.0 - delta) / 100.0) ** 2
    return factor, 127.5 * (1.0 - factor)
