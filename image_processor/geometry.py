"""Size, crop and orientation arithmetic shared by both backends.

Pure functions, no backend dependencies.
"""

from __future__ import annotations

# EXIF Orientation -> (clockwise degrees, mirror after rotating)
ORIENTATION_TRANSFORMS: dict[int, tuple[int, bool]] = {
    1: (0, False),
    2: (0, True),
    3: (180, False),
    4: (180, True),
    5: (90, True),
    6: (90, False),
    7: (270, True),
    8: (270, False),
}
ORIENTATION_TOPLEFT = 1


def clamp(value: float, low: int, high: int) -> int:
    """Round ``value`` to an int and clamp it into ``[low, high]``."""
    v = round(float(value))
    return max(low, min(high, v))


def validate_crop_bounds(img_width: int, img_height: int, crop: tuple[int, int, int, int]) -> bool:
    """Check that a (left, top, width, height) rectangle lies inside the image.

    Empty rectangles are rejected as well.
    """
    left, top, width, height = crop
    if min(left, top) < 0 or min(width, height) <= 0:
        return False
    return left + width <= img_width and top + height <= img_height


def fit_size(
    cur_width: int,
    cur_height: int,
    width: int,
    height: int,
    aspect: bool = True,
    enlarge: bool = False,
) -> tuple[int, int] | None:
    """Compute the output size of a resize, or None when nothing should change.

    Without ``aspect`` both targets must be positive and are used verbatim.

    With ``aspect`` a target only counts when it is positive and either
    ``enlarge`` is set or it is smaller than the current dimension. Of the
    counting targets the one with the smallest scale wins, so the result fits
    inside the requested box; the other dimension follows the original ratio.
    """
    if not aspect:
        if width > 0 and height > 0:
            return int(width), int(height)
        return None

    candidates: list[tuple[float, tuple[int, int]]] = []
    if width > 0 and (enlarge or width < cur_width):
        new_h = max(1, round(width * cur_height / cur_width))
        candidates.append((width / cur_width, (int(width), new_h)))
    if height > 0 and (enlarge or height < cur_height):
        new_w = max(1, round(cur_width * height / cur_height))
        candidates.append((height / cur_height, (new_w, int(height))))
    if not candidates:
        return None
    _scale, size = min(candidates, key=lambda c: c[0])
    return size
