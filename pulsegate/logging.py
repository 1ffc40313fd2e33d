"""Logging configuration helpers."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

ACCESS_LOGGER = "aiohttp.access"

_SECRET_PARAM_RE = re.compile(r"(?<![A-Za-z0-9_])((?:h?mac)=)[^&\s\"]*")


class SecretRedactingFilter(logging.Filter):
    """Masks ``mac``/``hmac`` query values in already formatted log lines."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PARAM_RE.sub(r"\1***", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_access: bool = False
) -> None:
    """Configure root logging handlers.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO".
    log_path:
        Optional filesystem path for a file handler. When absent, only console logging is configured.
    log_access:
        When true, keep aiohttp's per-request access log at the configured
        level with request signatures masked.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    access_logger = logging.getLogger(ACCESS_LOGGER)
    for existing in list(access_logger.filters):
        if isinstance(existing, SecretRedactingFilter):
            access_logger.removeFilter(existing)
    if log_access:
        access_logger.setLevel(logging.NOTSET)
        access_logger.addFilter(SecretRedactingFilter())
    else:
        access_logger.setLevel(logging.WARNING)
