"""Logging setup for the CLI entry point."""

from __future__ import annotations

import logging
import sys


def setup_logging(level: int = logging.INFO) -> None:
    """
    Configure the root logger once for the whole process.

    Library modules only ever call `logging.getLogger(__name__)`; handlers are
    attached here so embedding applications can route records their own way.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(asctime)s] %(levelname)s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    handler.setLevel(level)

    logging.basicConfig(level=level, handlers=[handler], force=True)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Log level: %s", logging.getLevelName(level))
