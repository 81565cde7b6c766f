"""Command-line entry point (``image-processor`` / ``python -m image_processor``)."""

from __future__ import annotations

import argparse
import os
import re
import sys

from image_processor.backends import BACKEND_NAMES
from image_processor.errors import ImageProcessorError
from image_processor.logger import get_logger
from image_processor.processor import ImageProcessor
from image_processor.tools import convert_thumbnail, epeg_resize, vips_resize

logger = get_logger("main")

_SIZE_RE = re.compile(r"^(\d+)[xX](\d+)$")
_CROP_RE = re.compile(r"^(\d+)[xX](\d+)\+(\d+)\+(\d+)$")


def _size(value: str) -> tuple[int, int]:
    m = _SIZE_RE.match(value.strip())
    if not m:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {value!r}")
    return int(m.group(1)), int(m.group(2))


def _crop(value: str) -> tuple[int, int, int, int]:
    m = _CROP_RE.match(value.strip())
    if not m:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT+LEFT+TOP, got {value!r}")
    w, h, x, y = (int(g) for g in m.groups())
    return w, h, x, y


def _rgb(value: str) -> tuple[int, int, int]:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected R,G,B, got {value!r}")
    try:
        r, g, b = (int(p) for p in parts)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected R,G,B integers, got {value!r}") from e
    return r, g, b


def _apply_logging_options(args: argparse.Namespace) -> None:
    # The logger re-reads these on every setup_logger() call
    if args.log_level:
        os.environ["IMAGE_PROCESSOR_LOG_LEVEL"] = args.log_level
    if args.log_cats:
        os.environ["IMAGE_PROCESSOR_LOG_CATS"] = args.log_cats
    get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="image-processor", description="Load, transform and save JPEG/PNG/GIF images")
    parser.add_argument("--log-level", help="Set log level")
    parser.add_argument("--log-cats", help="Set log categories")
    sub = parser.add_subparsers(dest="command", required=True)

    lib_help = f"image backend ({', '.join(BACKEND_NAMES)}); default from settings"

    p_info = sub.add_parser("info", help="Print format and size of an image")
    p_info.add_argument("infile")
    p_info.add_argument("--lib", help=lib_help)

    p_proc = sub.add_parser("process", help="Apply operations and save the result")
    p_proc.add_argument("infile")
    p_proc.add_argument("outfile")
    p_proc.add_argument("--lib", help=lib_help)
    p_proc.add_argument("--autorotate", action="store_true", help="Undo EXIF orientation first")
    p_proc.add_argument("--crop", type=_crop, metavar="WxH+X+Y")
    p_proc.add_argument("--resize", type=_size, metavar="WxH")
    p_proc.add_argument("--exact", action="store_true", help="Resize without keeping the aspect ratio")
    p_proc.add_argument("--enlarge", action="store_true", help="Allow resize to enlarge")
    p_proc.add_argument("--rotate", type=float, metavar="DEG", help="Clockwise rotation in degrees")
    p_proc.add_argument("--mirror", action="store_true")
    p_proc.add_argument("--flip", action="store_true")
    p_proc.add_argument("--brightness", type=int)
    p_proc.add_argument("--contrast", type=int)
    p_proc.add_argument("--colorize", type=_rgb, metavar="R,G,B")
    p_proc.add_argument("--grayscale", action="store_true")
    p_proc.add_argument("--sepia", action="store_true")
    p_proc.add_argument("--negative", action="store_true")
    p_proc.add_argument("--quality", type=int)
    p_proc.add_argument("--format", dest="fmt", choices=["jpeg", "jpg", "png", "gif"])

    p_resize = sub.add_parser("resize", help="Fast resize with pyvips")
    p_resize.add_argument("infile")
    p_resize.add_argument("outfile")
    p_resize.add_argument("size", type=_size, metavar="WxH")
    p_resize.add_argument("--quality", type=int, default=100)
    p_resize.add_argument("--exact", action="store_true")
    p_resize.add_argument("--kernel", help="libvips kernel (default from settings)")

    p_thumb = sub.add_parser("thumbnail", help="Letterboxed thumbnail with ImageMagick convert")
    p_thumb.add_argument("infile")
    p_thumb.add_argument("outfile")
    p_thumb.add_argument("size", type=_size, metavar="WxH")
    p_thumb.add_argument("--quality", type=int, default=100)
    p_thumb.add_argument("--background", help="Fill colour (default from settings)")

    p_epeg = sub.add_parser("epeg", help="Very fast JPEG downscale with epeg")
    p_epeg.add_argument("infile")
    p_epeg.add_argument("outfile")
    p_epeg.add_argument("size", type=_size, metavar="WxH")
    p_epeg.add_argument("--quality", type=int, default=100)
    p_epeg.add_argument("--exact", action="store_true")
    return parser


def _cmd_info(args: argparse.Namespace) -> int:
    proc = ImageProcessor(args.lib, args.infile)
    print(f"{proc.file}: {proc.format.value} {proc.width}x{proc.height} {proc.mime_type} ({proc.lib_type})")
    proc.clear()
    return 0


def _cmd_process(args: argparse.Namespace) -> int:
    proc = ImageProcessor(args.lib, args.infile)
    if args.autorotate:
        proc.autorotate()
    if args.crop:
        proc.crop(*args.crop)
    if args.resize:
        proc.resize(*args.resize, aspect=not args.exact, enlarge=args.enlarge)
    if args.rotate:
        proc.rotate(args.rotate)
    if args.mirror:
        proc.mirror()
    if args.flip:
        proc.flip()
    if args.brightness is not None:
        proc.brightness(args.brightness)
    if args.contrast is not None:
        proc.contrast(args.contrast)
    if args.colorize:
        proc.colorize(*args.colorize)
    if args.grayscale:
        proc.grayscale()
    if args.sepia:
        proc.sepia()
    if args.negative:
        proc.negative()
    proc.save(args.outfile, quality=args.quality, fmt=args.fmt)
    logger.info("%s -> %s (%dx%d)", args.infile, proc.file, proc.width, proc.height)
    proc.clear()
    return 0


def _cmd_resize(args: argparse.Namespace) -> int:
    w, h = args.size
    vips_resize(args.infile, args.outfile, w, h, quality=args.quality, aspect=not args.exact, kernel=args.kernel)
    return 0


def _cmd_thumbnail(args: argparse.Namespace) -> int:
    w, h = args.size
    convert_thumbnail(args.infile, args.outfile, w, h, quality=args.quality, color=args.background)
    return 0


def _cmd_epeg(args: argparse.Namespace) -> int:
    w, h = args.size
    epeg_resize(args.infile, args.outfile, w, h, quality=args.quality, aspect=not args.exact)
    return 0


_COMMANDS = {
    "info": _cmd_info,
    "process": _cmd_process,
    "resize": _cmd_resize,
    "thumbnail": _cmd_thumbnail,
    "epeg": _cmd_epeg,
}


def run(argv: list[str] | None = None) -> int:
    """Application entrypoint (packaging-friendly)."""
    if argv is None:
        argv = sys.argv[1:]
    args = build_parser().parse_args(argv)
    _apply_logging_options(args)
    try:
        return _COMMANDS[args.command](args)
    except ImageProcessorError as e:
        logger.error("%s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(run())
