"""Path helpers shared by the facade, the tools and the settings.

Every path kept on an image handle or passed to an external tool is absolute,
with the Windows drive letter upper-cased so equal paths compare equal.
"""

from __future__ import annotations

from pathlib import Path


def abs_path(path: str | Path) -> Path:
    """Absolute form of ``path``; the file does not have to exist yet."""
    p = Path(path).expanduser()
    try:
        return p.resolve(strict=False)
    except OSError:
        return p.absolute()


def abs_path_str(path: str | Path) -> str:
    text = str(abs_path(path))
    if text[1:2] == ":":
        # "c:\\x" -> "C:\\x"
        text = text[0].upper() + text[1:]
    return text


def is_file(path: str | Path | None) -> bool:
    """True for an existing regular file; never raises."""
    if not path:
        return False
    try:
        return abs_path(path).is_file()
    except OSError:
        return False


def suffix_of(path: str | Path) -> str:
    """Lower-case extension without the dot ("" when there is none)."""
    return Path(path).suffix.lower().lstrip(".")
