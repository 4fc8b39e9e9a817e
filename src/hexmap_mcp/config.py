"""
Runtime settings for Hexmap-MCP.

Everything is read once from the environment at import time:

    HEXMAP_ADMIN_URL        base URL of the config API
    HEXMAP_API_KEY          optional X-API-Key header value
    HEXMAP_OUTPUT_DIR       where rendered PNGs are written
    HEXMAP_THEME            "light" (default) or "dark"
    HEXMAP_LOG_LEVEL        root log level name
    HEXMAP_REQUEST_TIMEOUT  seconds per config API request
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

ADMIN_URL = os.environ.get("HEXMAP_ADMIN_URL", "http://127.0.0.1:8900").rstrip("/")
API_KEY = os.environ.get("HEXMAP_API_KEY", "")
OUTPUT_DIR = Path(os.environ.get("HEXMAP_OUTPUT_DIR", Path.home() / ".hexmap"))
THEME = os.environ.get("HEXMAP_THEME", "light")
LOG_LEVEL = os.environ.get("HEXMAP_LOG_LEVEL", "INFO").upper()
REQUEST_TIMEOUT = float(os.environ.get("HEXMAP_REQUEST_TIMEOUT", "5"))

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def ensure_output_dir() -> Path:
    OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    return OUTPUT_DIR


def setup_logging(level: str | int = LOG_LEVEL) -> None:
    """Configure root logging once for an entry point."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
