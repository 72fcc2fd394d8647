from __future__ import annotations

import logging
import sys

LOG_LEVELS: dict[str, int] = {
    "off": logging.CRITICAL + 10,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_HANDLER_NAME = "lgtnav-stderr"


def level_from_name(name: str | None) -> int:
    if not name:
        return logging.WARNING
    return LOG_LEVELS.get(name.strip().lower(), logging.WARNING)


def configure_logging(level: str | None = None) -> logging.Logger:
    """Route the ``lgtnav`` logger tree to stderr.

    stdout carries the LSP stream, so nothing may be logged there. Calling
    this again only changes the level.
    """
    root = logging.getLogger("lgtnav")
    root.setLevel(level_from_name(level))
    if not any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.set_name(_HANDLER_NAME)
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        root.addHandler(handler)
    return root
