"""Process-wide logging setup."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Send application and uvicorn logs to stdout with one shared format."""
    lvl = level.upper()
    root = logging.getLogger()
    root.setLevel(lvl)

    # Avoid duplicate handlers when uvicorn reloads the app.
    if root.handlers:
        root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = root.handlers
        uvicorn_logger.propagate = False
        uvicorn_logger.setLevel(lvl)

    # Request lines from httpx would include the Mapbox access token.
    logging.getLogger("httpx").setLevel(logging.WARNING)
