"""Configuration loader for pulsegate."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from . import constants
from .core.models import CounterCommit, CredentialPolicy


class ConfigurationError(RuntimeError):
    """Raised when the configuration cannot be turned into a usable service."""


@dataclass(slots=True)
class ServerConfig:
    host: str = constants.DEFAULT_HOST
    port: int = constants.DEFAULT_PORT
    path: str = constants.DEFAULT_ENDPOINT_PATH
    max_body_bytes: int = constants.DEFAULT_MAX_BODY_BYTES
    generic_errors: bool = False  # Answer every rejection with one message


@dataclass(slots=True)
class AuthConfig:
    timestamp_tolerance_seconds: int = constants.DEFAULT_TIMESTAMP_TOLERANCE_SECONDS
    policy: CredentialPolicy = field(default_factory=CredentialPolicy)
    counter_commit: CounterCommit = CounterCommit.AFTER_AUTHENTICATION
    key_length: int = constants.DEFAULT_KEY_LENGTH


@dataclass(slots=True)
class StorageConfig:
    credentials_path: Path = constants.DEFAULT_CREDENTIALS_PATH
    site_config_path: Path = constants.DEFAULT_SITE_CONFIG_PATH
    cache_paths: List[Path] = field(default_factory=list)


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = constants.DEFAULT_LOG_PATH
    log_access: bool = False


@dataclass(slots=True)
class GateConfig:
    server: ServerConfig
    auth: AuthConfig
    storage: StorageConfig
    logging: LoggingConfig
    raw: ConfigParser
    path: Path


def _parse_list(value: str, *, default: Iterable[str]) -> List[str]:
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_counter_commit(value: str) -> CounterCommit:
    try:
        return CounterCommit(value.strip().lower())
    except ValueError as exc:
        choices = ", ".join(item.value for item in CounterCommit)
        raise ConfigurationError(
            f"Unsupported counter_commit '{value}' (expected one of: {choices})"
        ) from exc


def load_config(path: Optional[Path] = None) -> GateConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "server": {
                "host": constants.DEFAULT_HOST,
                "port": str(constants.DEFAULT_PORT),
                "path": constants.DEFAULT_ENDPOINT_PATH,
                "max_body_bytes": str(constants.DEFAULT_MAX_BODY_BYTES),
                "generic_errors": "false",
            },
            "auth": {
                "timestamp_tolerance_seconds": str(
                    constants.DEFAULT_TIMESTAMP_TOLERANCE_SECONDS
                ),
                "require_timestamp": "true",
                "require_counter": "true",
                "require_nonce": "true",
                "counter_commit": CounterCommit.AFTER_AUTHENTICATION.value,
                "key_length": str(constants.DEFAULT_KEY_LENGTH),
            },
            "storage": {
                "credentials_path": str(constants.DEFAULT_CREDENTIALS_PATH),
                "site_config_path": str(constants.DEFAULT_SITE_CONFIG_PATH),
                "cache_paths": "",
            },
            "logging": {
                "level": "INFO",
                "path": str(constants.DEFAULT_LOG_PATH),
                "log_access": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    endpoint_path = parser.get("server", "path").strip() or constants.DEFAULT_ENDPOINT_PATH
    if not endpoint_path.startswith("/"):
        endpoint_path = "/" + endpoint_path

    server = ServerConfig(
        host=parser.get("server", "host"),
        port=max(0, parser.getint("server", "port", fallback=constants.DEFAULT_PORT)),
        path=endpoint_path,
        max_body_bytes=max(
            256,
            parser.getint(
                "server", "max_body_bytes", fallback=constants.DEFAULT_MAX_BODY_BYTES
            ),
        ),
        generic_errors=parser.getboolean("server", "generic_errors", fallback=False),
    )

    try:
        policy = CredentialPolicy.from_flags(
            timestamp=parser.getboolean("auth", "require_timestamp", fallback=True),
            counter=parser.getboolean("auth", "require_counter", fallback=True),
            nonce=parser.getboolean("auth", "require_nonce", fallback=True),
        )
    except ValueError as exc:
        raise ConfigurationError(str(exc)) from exc

    auth = AuthConfig(
        timestamp_tolerance_seconds=max(
            1,
            parser.getint(
                "auth",
                "timestamp_tolerance_seconds",
                fallback=constants.DEFAULT_TIMESTAMP_TOLERANCE_SECONDS,
            ),
        ),
        policy=policy,
        counter_commit=_parse_counter_commit(parser.get("auth", "counter_commit")),
        key_length=max(
            32,
            parser.getint("auth", "key_length", fallback=constants.DEFAULT_KEY_LENGTH),
        ),
    )

    storage = StorageConfig(
        credentials_path=Path(parser.get("storage", "credentials_path")).expanduser(),
        site_config_path=Path(parser.get("storage", "site_config_path")).expanduser(),
        cache_paths=[
            Path(item).expanduser()
            for item in _parse_list(parser.get("storage", "cache_paths"), default=[])
        ],
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_access=parser.getboolean("logging", "log_access", fallback=False),
    )

    return GateConfig(
        server=server,
        auth=auth,
        storage=storage,
        logging=logging_config,
        raw=parser,
        path=config_path,
    )
