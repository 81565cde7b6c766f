"""Package logging.

All modules log through children of the ``image_processor`` logger, which owns
a single stderr handler. Two environment variables are re-read every time the
logger is set up, so the CLI can change them after import:

- ``IMAGE_PROCESSOR_LOG_LEVEL``: debug/info/warning/error/critical
- ``IMAGE_PROCESSOR_LOG_CATS``: comma separated child names to let through,
  e.g. ``processor,tools``
"""

import logging
import os
import sys

LOGGER_NAME = "image_processor"
LEVEL_ENV = "IMAGE_PROCESSOR_LOG_LEVEL"
CATS_ENV = "IMAGE_PROCESSOR_LOG_CATS"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_FORMATTER = logging.Formatter("[%(asctime)s] %(levelname)s: %(message)s", datefmt="%H:%M:%S")


class _CategoryFilter(logging.Filter):
    """Pass records whose last logger-name component is one of ``categories``."""

    def __init__(self, categories: set[str]):
        super().__init__()
        self.categories = categories

    def filter(self, record: logging.LogRecord) -> bool:
        return (record.name or "").rsplit(".", 1)[-1] in self.categories


def _stderr_handler(logger: logging.Logger) -> logging.StreamHandler:
    for handler in logger.handlers:
        if getattr(handler, "_image_processor_stderr", False):
            # sys.stderr may have been replaced since (pytest capture, CLI wrappers)
            if getattr(handler.stream, "closed", False):  # type: ignore[attr-defined]
                # setStream() would flush the dead stream first
                handler.stream = sys.stderr  # type: ignore[attr-defined]
            else:
                handler.setStream(sys.stderr)  # type: ignore[attr-defined]
            return handler  # type: ignore[return-value]
    handler = logging.StreamHandler(sys.stderr)
    handler._image_processor_stderr = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    return handler


def setup_logger(level: int = logging.INFO, name: str = LOGGER_NAME) -> logging.Logger:
    """Configure and return the package logger; safe to call any number of times."""
    logger = logging.getLogger(name)
    env_level = (os.getenv(LEVEL_ENV) or "").strip().lower()
    logger.setLevel(_LEVELS.get(env_level, level))

    handler = _stderr_handler(logger)
    handler.setFormatter(_FORMATTER)
    handler.filters.clear()
    cats = {c.strip() for c in (os.getenv(CATS_ENV) or "").split(",") if c.strip()}
    if cats:
        handler.addFilter(_CategoryFilter(cats))

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """The package logger, or its child ``name`` (e.g. ``get_logger("tools")``)."""
    base = setup_logger()
    return base.getChild(name) if name else base
