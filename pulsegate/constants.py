"""Constants used across the pulsegate package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "pulsegate"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_DATA_DIR = Path.home() / f".{APP_NAME}"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / DEFAULT_CONFIG_FILENAME
DEFAULT_CREDENTIALS_PATH = DEFAULT_DATA_DIR / "devices.json"
DEFAULT_SITE_CONFIG_PATH = DEFAULT_DATA_DIR / "site.cfg"
DEFAULT_LOG_PATH = DEFAULT_DATA_DIR / "logs" / f"{APP_NAME}.log"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8470
DEFAULT_ENDPOINT_PATH = "/admin"
DEFAULT_MAX_BODY_BYTES = 4096

# Ten minutes, the window recommended for devices with drifting clocks.
DEFAULT_TIMESTAMP_TOLERANCE_SECONDS = 600

DEFAULT_KEY_LENGTH = 256
DEFAULT_NONCE_LENGTH = 32

SITE_CONFIG_SECTION = "site"
