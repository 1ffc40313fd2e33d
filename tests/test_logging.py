import logging
from pathlib import Path

from pulsegate.logging import configure_logging


def test_configure_logging_writes_file_and_quiets_access_log(tmp_path: Path):
    log_path = tmp_path / "logs" / "pulsegate.log"
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level

    try:
        configure_logging("debug", log_path=log_path)
        logging.getLogger("pulsegate.test").info("hello from test")
        for handler in root.handlers:
            handler.flush()

        assert root.level == logging.DEBUG
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
        assert "hello from test" in log_path.read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)
        logging.getLogger("aiohttp.access").setLevel(logging.NOTSET)


def test_access_log_masks_request_signatures(tmp_path: Path):
    log_path = tmp_path / "access.log"
    root = logging.getLogger()
    access = logging.getLogger("aiohttp.access")
    previous_handlers = list(root.handlers)
    previous_level = root.level

    try:
        configure_logging("info", log_path=log_path, log_access=True)
        access.info(
            '%s "%s"', "127.0.0.1", "GET /admin?client_id=42&mac=cafe01&hmac=beef HTTP/1.1"
        )
        access.info("GET /admin?command=checkPulse")
        for handler in root.handlers:
            handler.flush()

        text = log_path.read_text(encoding="utf-8")
        assert "client_id=42&mac=***&hmac=*** HTTP/1.1" in text
        assert "cafe01" not in text
        assert "beef" not in text
        assert "command=checkPulse" in text
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)
        for existing in list(access.filters):
            access.removeFilter(existing)
        access.setLevel(logging.NOTSET)
