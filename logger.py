"""
Console logging for the Car Hub API.

Every module logs through a child of the ``carhub`` logger. The level
comes from LOG_LEVEL and falls back to INFO when unset or unknown.
"""
import logging
import os
import sys

ROOT_NAME = "carhub"
LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def _level_from_env() -> int:
    level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _configure(root: logging.Logger) -> logging.Logger:
    level = _level_from_env()
    root.setLevel(level)
    if not any(getattr(h, "_carhub", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._carhub = True
        root.addHandler(handler)
    # uvicorn installs its own root handlers.
    root.propagate = False
    return root


logger = _configure(logging.getLogger(ROOT_NAME))


def get_logger(name: str = None) -> logging.Logger:
    """Child logger ``carhub.<name>``, or the package logger itself."""
    return logger.getChild(name) if name else logger
