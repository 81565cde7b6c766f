"""Bulk resize helpers that work on file paths, without an ImageProcessor.

- ``vips_resize``: decode, resize and encode in-process with pyvips.
- ``convert_thumbnail``: ImageMagick ``convert`` thumbnail letterboxed to an exact size.
- ``epeg_resize``: very fast approximate JPEG downscale with ``epeg``.

The two command-line wrappers block until the tool exits or the configured
timeout expires; any failure raises ExternalToolError.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from image_processor.errors import ExternalToolError, InputNotFoundError, ProcessingError
from image_processor.geometry import clamp
from image_processor.logger import get_logger
from image_processor.metrics import metrics
from image_processor.path_utils import abs_path_str, is_file, suffix_of
from image_processor.settings_manager import SettingsManager, get_settings

_logger = get_logger("tools")

# JPEG shrink-on-load factors libjpeg can apply while decoding
_JPEG_SHRINK_FACTORS = (8, 4, 2)


@dataclass(frozen=True)
class ToolResult:
    """Outcome of a successful external tool run."""

    cmd: list[str]
    returncode: int
    stdout: str
    stderr: str
    output: str


def _check_input(infile: str | Path) -> str:
    if not is_file(infile):
        raise InputNotFoundError(str(infile))
    return abs_path_str(infile)


def jpeg_shrink_factor(src_width: int, src_height: int, width: int, height: int) -> int:
    """Largest JPEG decode shrink that keeps the image at least twice the target size."""
    for factor in _JPEG_SHRINK_FACTORS:
        if src_width // factor >= 2 * width and src_height // factor >= 2 * height:
            return factor
    return 1


def vips_resize(
    infile: str | Path,
    outfile: str | Path,
    width: int,
    height: int,
    quality: int = 100,
    aspect: bool = True,
    kernel: str | None = None,
    settings: SettingsManager | None = None,
) -> str:
    """Resize ``infile`` into ``outfile`` with pyvips and return the output path.

    JPEG input is decoded with a shrink-on-load hint that keeps at least twice
    the target resolution, trading decode speed against resampling quality.
    With ``aspect`` the result fits inside ``width`` x ``height``; otherwise it
    is stretched to exactly that size.
    """
    from image_processor.backends.vips_backend import JPEG_MIN_Q, _get_pyvips_module

    pyvips = _get_pyvips_module()
    settings = settings if settings is not None else get_settings()
    kernel = kernel or settings.vips_kernel
    src = _check_input(infile)
    dst = abs_path_str(outfile)
    if width <= 0 or height <= 0:
        raise ProcessingError(f"Invalid target size {width}x{height}")

    with metrics.track("tools.vips_resize"):
        try:
            image = pyvips.Image.new_from_file(src)
            loader = image.get("vips-loader") if image.get_typeof("vips-loader") != 0 else ""
            if str(loader).startswith("jpeg"):
                shrink = jpeg_shrink_factor(image.width, image.height, width, height)
                if shrink > 1:
                    image = pyvips.Image.new_from_file(src, shrink=shrink)
                    _logger.debug("jpeg shrink-on-load x%d for %s", shrink, src)

            hscale = width / image.width
            vscale = height / image.height
            if aspect:
                hscale = vscale = min(hscale, vscale)
            image = image.resize(hscale, vscale=vscale, kernel=kernel)

            opts: dict[str, Any] = {}
            if suffix_of(dst) in ("jpg", "jpeg", "jpe"):
                if image.hasalpha():
                    image = image.flatten(background=[0, 0, 0])
                opts["Q"] = clamp(quality, JPEG_MIN_Q, 100)
            image.write_to_file(dst, **opts)
        except pyvips.Error as e:
            _logger.error("vips_resize failed for %s -> %s: %s", src, dst, e)
            raise ProcessingError(f"Error when resizing {src} (vips): {e}") from e

    _logger.info("resized %s -> %s (%dx%d, %s)", src, dst, width, height, kernel)
    return dst


def _run_tool(tool: str, args: list[str], output: str, settings: SettingsManager) -> ToolResult:
    binary = settings.binary(tool)
    exe = shutil.which(binary)
    if exe is None:
        _logger.error("%s executable not found: %s", tool, binary)
        raise ExternalToolError(f"{tool} executable not found: {binary}", cmd=[binary, *args])
    cmd = [exe, *args]
    timeout = settings.tool_timeout
    _logger.debug("running: %s", " ".join(cmd))
    with metrics.track(f"tools.{tool}"):
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, check=False)
        except subprocess.TimeoutExpired as e:
            _logger.error("%s timed out after %ss", tool, timeout)
            raise ExternalToolError(f"{tool} timed out after {timeout}s", cmd=cmd) from e
        except OSError as e:
            _logger.error("%s could not be started: %s", tool, e)
            raise ExternalToolError(f"{tool} could not be started: {e}", cmd=cmd) from e
        if proc.returncode != 0:
            _logger.error("%s exited with %d: %s", tool, proc.returncode, proc.stderr.strip())
            raise ExternalToolError(
                f"{tool} exited with status {proc.returncode}",
                cmd=cmd,
                returncode=proc.returncode,
                stderr=proc.stderr,
            )
    _logger.info("%s wrote %s", tool, output)
    return ToolResult(cmd=cmd, returncode=proc.returncode, stdout=proc.stdout, stderr=proc.stderr, output=output)


def convert_thumbnail(
    infile: str | Path,
    outfile: str | Path,
    width: int = 100,
    height: int = 100,
    quality: int = 100,
    color: str | None = None,
    settings: SettingsManager | None = None,
) -> ToolResult:
    """Thumbnail with ImageMagick, letterboxed onto an exact ``width`` x ``height`` canvas.

    The source is only ever shrunk (``>`` geometry flag), centred, and the
    remaining area filled with ``color``.
    """
    settings = settings if settings is not None else get_settings()
    src = _check_input(infile)
    dst = abs_path_str(outfile)
    w, h = int(width), int(height)
    background = color or str(settings.get("thumbnail_background"))
    args = [
        "-define",
        f"jpeg:size={w * 2}x{h * 2}",
        src,
        "-thumbnail",
        f"{w}x{h}>",
        "-background",
        background,
        "-gravity",
        "center",
        "-extent",
        f"{w}x{h}",
        "-quality",
        str(clamp(quality, 0, 100)),
        dst,
    ]
    return _run_tool("convert", args, dst, settings)


def epeg_resize(
    infile: str | Path,
    outfile: str | Path,
    width: int,
    height: int,
    quality: int = 100,
    aspect: bool = True,
    settings: SettingsManager | None = None,
) -> ToolResult:
    """Downscale a JPEG with epeg.

    With ``aspect`` epeg's max-dimension mode is used (``-m``, the larger of
    width/height); otherwise the explicit ``-w``/``-h`` pair.
    """
    settings = settings if settings is not None else get_settings()
    src = _check_input(infile)
    dst = abs_path_str(outfile)
    if aspect:
        args = ["-m", str(max(int(width), int(height)))]
    else:
        args = ["-w", str(int(width)), "-h", str(int(height))]
    args += ["-q", str(clamp(quality, 0, 100)), src, dst]
    return _run_tool("epeg", args, dst, settings)
