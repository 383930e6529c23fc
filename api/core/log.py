"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)` with `event key=value`
messages; this only decides level and format once per process.
"""

from __future__ import annotations

import logging

from . import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(level: str | None = None) -> None:
    resolved = (level or settings.log_level()).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    # Keep our loggers at the requested level even if uvicorn configured the root first.
    for name in ("core", "datasets", "auth"):
        logging.getLogger(name).setLevel(resolved)
