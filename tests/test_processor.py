from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from image_processor import (
    ImageFormat,
    ImageProcessor,
    ImageSizeError,
    InputNotFoundError,
    NotLoadedError,
    ProcessingError,
    SaveError,
    UnsupportedFormatError,
)
from image_processor.metrics import metrics

from tests.helpers.images import make_image, requires_pyvips, vips_can_save_gif


# -- construction / loading -----------------------------------------------


def test_default_backend_is_pillow():
    proc = ImageProcessor()
    assert proc.lib_type == "pillow"
    assert not proc.loaded


def test_open_with_default_constructor(apple_jpg: Path):
    proc = ImageProcessor()
    proc.open(apple_jpg)
    assert proc.format is ImageFormat.JPEG
    assert proc.type is ImageFormat.JPEG
    assert proc.extension == "jpg"
    assert proc.mime_type == "image/jpeg"
    assert proc.file == str(apple_jpg.resolve())


def test_open_multi_picture_jpeg(lib: str, tmp_path: Path):
    # Cameras and phones write MPF JPEGs, which Pillow reports as "MPO"
    path = tmp_path / "camera.jpg"
    first = Image.new("RGB", (48, 32), (200, 30, 30))
    second = Image.new("RGB", (48, 32), (30, 30, 200))
    first.save(path, format="MPO", save_all=True, append_images=[second])

    proc = ImageProcessor(lib, path)
    assert proc.format is ImageFormat.JPEG
    assert proc.size == (48, 32)
    r, g, b = proc.to_array()[16, 24][:3]
    assert r > 150 and b < 100


@pytest.mark.parametrize("alias,canonical", [("gd", "pillow"), pytest.param("imagick", "vips", marks=requires_pyvips)])
def test_original_backend_names_are_aliases(alias: str, canonical: str, apple_jpg: Path):
    proc = ImageProcessor(alias, apple_jpg)
    assert proc.lib_type == canonical
    assert proc.format is ImageFormat.JPEG


def test_unknown_backend_rejected():
    with pytest.raises(ValueError, match="Unknown image backend"):
        ImageProcessor("gimp")


def test_default_backend_from_settings(settings, apple_jpg: Path):
    settings.set("default_backend", "gd")
    assert ImageProcessor(image_file=apple_jpg).lib_type == "pillow"


def test_load_dimensions_match_pillow(lib: str, apple_jpg: Path, alpha_png: Path, palette_gif: Path):
    for path, fmt in ((apple_jpg, ImageFormat.JPEG), (alpha_png, ImageFormat.PNG), (palette_gif, ImageFormat.GIF)):
        proc = ImageProcessor(lib, path)
        with Image.open(path) as ref:
            assert proc.size == ref.size
        assert proc.format is fmt


def test_missing_file_in_constructor(lib: str, tmp_path: Path):
    with pytest.raises(InputNotFoundError):
        ImageProcessor(lib, tmp_path / "nope.jpg")


def test_missing_file_is_file_not_found(lib: str, tmp_path: Path):
    proc = ImageProcessor(lib)
    with pytest.raises(FileNotFoundError):
        proc.open(tmp_path / "nope.jpg")


@pytest.mark.parametrize("content", [b"", b"definitely not an image\n"])
def test_non_image_rejected(lib: str, tmp_path: Path, content: bytes):
    path = tmp_path / "broken.jpg"
    path.write_bytes(content)
    with pytest.raises((UnsupportedFormatError, ImageSizeError)):
        ImageProcessor(lib, path)


def test_other_formats_rejected(lib: str, tmp_path: Path):
    path = make_image(tmp_path / "pattern.bmp", (20, 10), "BMP")
    with pytest.raises(UnsupportedFormatError):
        ImageProcessor(lib, path)


def test_accessors_require_image(lib: str):
    proc = ImageProcessor(lib)
    assert proc.lib_type == lib
    for name in ("image", "width", "height", "format", "extension", "file"):
        with pytest.raises(NotLoadedError):
            getattr(proc, name)
    with pytest.raises(NotLoadedError):
        proc.resize(10, 10)
    with pytest.raises(NotLoadedError):
        proc.save("out.jpg")


def test_clear_resets_everything(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    assert proc.clear() is True
    assert not proc.loaded
    assert proc.lib_type == "pillow"
    with pytest.raises(NotLoadedError):
        proc.width
    for name in ("format", "type", "mime_type", "extension"):
        with pytest.raises(NotLoadedError):
            getattr(proc, name)


def test_clear_can_keep_backend(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    proc.clear(lib)
    assert proc.lib_type == lib
    proc.open(apple_jpg)
    assert proc.width == 320


def test_context_manager_clears(lib: str, apple_jpg: Path):
    with ImageProcessor(lib, apple_jpg) as proc:
        assert proc.width == 320
    assert not proc.loaded
    assert proc.lib_type == lib


def test_create_canvas(lib: str):
    proc = ImageProcessor(lib).create(30, 20, "#ff0000")
    assert proc.size == (30, 20)
    assert proc.format is ImageFormat.PNG
    assert proc.file is None
    arr = proc.to_array()
    assert arr.shape == (20, 30, 4)
    assert tuple(arr[0, 0]) == (255, 0, 0, 255)


def test_create_jpeg_canvas_has_no_alpha(lib: str):
    proc = ImageProcessor(lib).create(8, 6, (10, 20, 30, 0), fmt="jpg")
    assert proc.to_array().shape == (6, 8, 3)


def test_create_rejects_empty_size(lib: str):
    with pytest.raises(ImageSizeError):
        ImageProcessor(lib).create(0, 10)


def test_copy_does_not_touch_handle(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    clone = proc.copy()
    assert clone is not proc.image
    proc.resize(10, 10, aspect=False)
    assert proc.size == (10, 10)
    if lib == "pillow":
        assert clone.size == (40, 30)
    else:
        assert (clone.width, clone.height) == (40, 30)


# -- resize ---------------------------------------------------------------


def test_resize_keeps_aspect(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    proc.resize(200, 200)
    assert proc.width == 200
    assert proc.height == 126


def test_resize_strict(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    proc.resize(200, 126, aspect=False)
    assert (proc.width, proc.height) == (200, 126)


def test_resize_strict_can_enlarge(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg).resize(500, 50, aspect=False)
    assert proc.size == (500, 50)


def test_resize_height_driven(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg).resize(0, 101)
    assert proc.size == (160, 101)


@pytest.mark.parametrize("target", [(1000, 1000), (320, 202), (400, 0), (0, 0)])
def test_resize_never_enlarges_by_default(lib: str, apple_jpg: Path, target: tuple[int, int]):
    proc = ImageProcessor(lib, apple_jpg).resize(*target)
    assert proc.size == (320, 202)


def test_resize_enlarge(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg).resize(640, 0, enlarge=True)
    assert proc.size == (640, 404)


def test_resize_fits_inside_box(lib: str, apple_jpg: Path):
    # width alone would give 300x189, height wins with the smaller scale
    proc = ImageProcessor(lib, apple_jpg).resize(300, 101)
    assert proc.size == (160, 101)


# -- crop -----------------------------------------------------------------


def test_crop(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    proc.crop(201, 113, 35, 26)
    assert (proc.width, proc.height) == (201, 113)


def test_crop_takes_the_right_pixels(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()
    after = proc.crop(10, 5, 7, 3).to_array()
    np.testing.assert_array_equal(after, before[3:8, 7:17])


@pytest.mark.parametrize("rect", [(50, 50, 0, 0), (10, 10, 35, 0), (10, 10, 0, 25), (10, 10, -1, 0), (0, 10, 0, 0)])
def test_crop_out_of_bounds_fails(lib: str, rgb_png: Path, rect: tuple[int, int, int, int]):
    proc = ImageProcessor(lib, rgb_png)
    with pytest.raises(ProcessingError):
        proc.crop(*rect)
    assert proc.size == (40, 30)


def test_crop_keeps_transparency(lib: str, alpha_png: Path):
    proc = ImageProcessor(lib, alpha_png).crop(20, 10, 20, 5)
    arr = proc.to_array()
    assert arr.shape == (10, 20, 4)
    # columns 20..29 were transparent, 30..39 opaque
    assert (arr[:, :10, 3] == 0).all()
    assert (arr[:, 10:, 3] == 255).all()


# -- rotate / flip --------------------------------------------------------


def test_rotate_90_swaps_dimensions(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    proc.resize(200, 126, aspect=False)
    proc.rotate(90)
    assert (proc.width, proc.height) == (126, 200)


def test_rotate_back_restores_dimensions(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg).rotate(90).rotate(-90)
    assert proc.size == (320, 202)


def test_rotate_is_clockwise(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()
    np.testing.assert_array_equal(proc.rotate(90).to_array(), np.rot90(before, k=-1))


def test_rotate_negative_is_counter_clockwise(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()
    np.testing.assert_array_equal(proc.rotate(-90).to_array(), np.rot90(before, k=1))


def test_rotate_180(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()
    np.testing.assert_array_equal(proc.rotate(180).to_array(), before[::-1, ::-1])


def test_rotate_arbitrary_angle_grows_canvas(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png).rotate(30)
    assert proc.width > 40
    assert proc.height > 30


def test_mirror_and_flop(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()
    np.testing.assert_array_equal(proc.mirror().to_array(), before[:, ::-1])
    np.testing.assert_array_equal(proc.flop().to_array(), before)


def test_flip(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()
    after = proc.flip().to_array()
    assert proc.size == (40, 30)
    np.testing.assert_array_equal(after, before[::-1, :])


@pytest.mark.parametrize(
    "orientation,size",
    [(1, (64, 40)), (2, (64, 40)), (3, (64, 40)), (4, (64, 40)), (5, (40, 64)), (6, (40, 64)), (7, (40, 64)), (8, (40, 64))],
)
def test_autorotate(lib: str, tmp_path: Path, orientation: int, size: tuple[int, int]):
    path = make_image(tmp_path / "exif.jpg", (64, 40), "JPEG", orientation=orientation)
    proc = ImageProcessor(lib, path)
    assert proc.size == (64, 40)
    proc.autorotate()
    assert proc.size == size
    # orientation was reset, so a second pass is a no-op
    proc.autorotate()
    assert proc.size == size


def test_autorotate_orientation_6_turns_clockwise(lib: str, tmp_path: Path):
    path = make_image(tmp_path / "exif6.jpg", (40, 30), "JPEG", orientation=6)
    proc = ImageProcessor(lib, path)
    before = proc.to_array()
    np.testing.assert_array_equal(proc.autorotate().to_array(), np.rot90(before, k=-1))


def test_autorotate_survives_save(lib: str, tmp_path: Path):
    path = make_image(tmp_path / "exif.jpg", (64, 40), "JPEG", orientation=8)
    out = tmp_path / "upright.jpg"
    ImageProcessor(lib, path).autorotate().save(out)
    reloaded = ImageProcessor(lib, out)
    assert reloaded.size == (40, 64)
    assert reloaded.autorotate().size == (40, 64)


def test_autorotate_without_metadata(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()
    np.testing.assert_array_equal(proc.autorotate().to_array(), before)


# -- tone -----------------------------------------------------------------


def test_grayscale_equal_channels(lib: str, apple_jpg: Path):
    arr = ImageProcessor(lib, apple_jpg).grayscale().to_array()
    assert arr.shape == (202, 320, 3)
    assert (np.abs(arr[..., 0].astype(int) - arr[..., 1]) <= 1).all()
    assert (np.abs(arr[..., 1].astype(int) - arr[..., 2]) <= 1).all()


def test_grayscale_keeps_alpha(lib: str, alpha_png: Path):
    arr = ImageProcessor(lib, alpha_png).grayscale().to_array()
    assert arr.shape[2] == 4
    assert (arr[:, :30, 3] == 0).all()


def test_negative(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array().astype(int)
    after = proc.negative().to_array().astype(int)
    np.testing.assert_array_equal(after, 255 - before)


def test_negative_leaves_alpha(lib: str, alpha_png: Path):
    proc = ImageProcessor(lib, alpha_png)
    before = proc.to_array()
    after = proc.negative().to_array()
    np.testing.assert_array_equal(after[..., 3], before[..., 3])


def test_brightness_adds_and_clamps(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array().astype(int)
    after = proc.brightness(20).to_array().astype(int)
    np.testing.assert_array_equal(after, np.clip(before + 20, 0, 255))
    # out-of-range input is clamped to 255, not rejected
    assert (proc.brightness(1000).to_array() == 255).all()
    assert (proc.brightness(-1000).to_array() == 0).all()


def test_colorize(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array().astype(int)
    after = proc.colorize(10, 0, -300).to_array().astype(int)
    np.testing.assert_array_equal(after[..., 0], np.clip(before[..., 0] + 10, 0, 255))
    np.testing.assert_array_equal(after[..., 1], before[..., 1])
    assert (after[..., 2] == 0).all()


def test_contrast_full_flattens_to_grey(lib: str, rgb_png: Path):
    arr = ImageProcessor(lib, rgb_png).contrast(500).to_array().astype(int)
    assert (np.abs(arr - 127.5) <= 1).all()


def test_contrast_negative_increases_spread(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array()[..., 0].astype(int)
    after = proc.contrast(-50).to_array()[..., 0].astype(int)
    assert after.std() > before.std()


def test_contrast_zero_is_identity(lib: str, rgb_png: Path):
    proc = ImageProcessor(lib, rgb_png)
    before = proc.to_array().astype(int)
    after = proc.contrast(0).to_array().astype(int)
    assert (np.abs(after - before) <= 1).all()


def test_sepia_is_warm(lib: str, apple_jpg: Path):
    arr = ImageProcessor(lib, apple_jpg).sepia().to_array().astype(float)
    r, g, b = arr[..., 0].mean(), arr[..., 1].mean(), arr[..., 2].mean()
    assert r > g > b


# -- output ---------------------------------------------------------------


@pytest.mark.parametrize(
    "fixture,mime,magic",
    [("apple_jpg", "image/jpeg", b"\xff\xd8"), ("alpha_png", "image/png", b"\x89PNG"), ("palette_gif", "image/gif", b"GIF8")],
)
def test_display(lib: str, request, fixture: str, mime: str, magic: bytes):
    if lib == "vips" and fixture == "palette_gif" and not vips_can_save_gif():
        pytest.skip("libvips built without gifsave")
    proc = ImageProcessor(lib, request.getfixturevalue(fixture))
    encoded = proc.display(quality=150)
    assert encoded.mime_type == mime
    assert encoded.format is proc.format
    assert encoded.data.startswith(magic)
    assert len(encoded) == len(encoded.data)


def test_display_quality_changes_jpeg_size(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    assert len(proc.display(5)) < len(proc.display(95))


@pytest.mark.parametrize("fixture", ["apple_jpg", "alpha_png", "palette_gif"])
def test_save_roundtrip(lib: str, request, tmp_path: Path, fixture: str):
    if lib == "vips" and fixture == "palette_gif" and not vips_can_save_gif():
        pytest.skip("libvips built without gifsave")
    src = request.getfixturevalue(fixture)
    proc = ImageProcessor(lib, src).resize(30, 30)
    out = tmp_path / f"out_{src.name}"
    proc.save(out)
    assert proc.file == str(out.resolve())

    reloaded = ImageProcessor(lib, out)
    assert reloaded.size == proc.size
    assert reloaded.format is proc.format


def test_save_with_other_format(lib: str, apple_jpg: Path, tmp_path: Path):
    out = tmp_path / "converted.png"
    proc = ImageProcessor(lib, apple_jpg).save(out, fmt="png")
    assert proc.format is ImageFormat.PNG
    assert proc.extension == "png"
    with Image.open(out) as img:
        assert img.format == "PNG"


def test_save_png_keeps_alpha(lib: str, alpha_png: Path, tmp_path: Path):
    out = tmp_path / "alpha_out.png"
    ImageProcessor(lib, alpha_png).save(out)
    with Image.open(out) as img:
        assert img.mode == "RGBA"
        assert img.getpixel((0, 0))[3] == 0


@pytest.mark.parametrize("quality,expected", [(150, 100), (-10, 0), (55, 55), (None, 100)])
def test_save_quality_is_clamped(lib: str, apple_jpg: Path, tmp_path: Path, monkeypatch, quality, expected):
    proc = ImageProcessor(lib, apple_jpg)
    seen: list[int] = []
    backend = proc._backend
    monkeypatch.setattr(backend, "save", lambda image, path, fmt, q: seen.append(q))
    proc.save(tmp_path / "q.jpg", quality=quality)
    assert seen == [expected]


def test_save_default_quality_from_settings(settings, apple_jpg: Path, tmp_path: Path, monkeypatch):
    settings.set("default_quality", 70)
    proc = ImageProcessor("pillow", apple_jpg)
    seen: list[int] = []
    monkeypatch.setattr(proc._backend, "save", lambda image, path, fmt, q: seen.append(q))
    proc.save(tmp_path / "q.jpg")
    assert seen == [70]


def test_save_failure_raises_save_error(lib: str, apple_jpg: Path, tmp_path: Path):
    proc = ImageProcessor(lib, apple_jpg)
    with pytest.raises(SaveError):
        proc.save(tmp_path / "missing_dir" / "out.jpg")
    assert proc.file == str(apple_jpg.resolve())


def test_lowest_jpeg_quality_is_not_larger_than_quality_one(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    sizes = {q: len(proc.display(q)) for q in (-10, 0, 1, 75)}
    assert sizes[-10] == sizes[0]
    assert sizes[0] <= sizes[1]
    assert sizes[1] < sizes[75]


# -- error translation / metrics -------------------------------------------


def test_backend_failure_becomes_processing_error(apple_jpg: Path, monkeypatch):
    proc = ImageProcessor("pillow", apple_jpg)

    def boom(image):
        raise ValueError("backend exploded")

    monkeypatch.setattr(proc._backend, "negative", boom)
    metrics.reset()
    with pytest.raises(ProcessingError, match="negative"):
        proc.negative()
    snap = metrics.snapshot()
    assert snap["counters"]["pillow.negative"] == 1
    assert snap["failures"]["pillow.negative"] == 1


def test_operations_are_counted(lib: str, apple_jpg: Path):
    metrics.reset()
    ImageProcessor(lib, apple_jpg).resize(100, 100).grayscale().rotate(90)
    counters = metrics.snapshot()["counters"]
    for op in ("open", "resize", "grayscale", "rotate"):
        assert counters[f"{lib}.{op}"] == 1


def test_fluent_chain_returns_self(lib: str, apple_jpg: Path):
    proc = ImageProcessor(lib, apple_jpg)
    out = (
        proc.resize(160, 160)
        .crop(100, 80, 10, 10)
        .brightness(10)
        .contrast(-10)
        .colorize(5, 5, 5)
        .negative()
        .grayscale()
        .sepia()
        .mirror()
        .flop()
        .flip()
        .rotate(270)
        .autorotate()
    )
    assert out is proc
    assert proc.size == (80, 100)
