"""Main application entry-point for pulsegate."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .commands import CommandContext, CommandDispatcher, CommandRegistry, default_registry
from .config import GateConfig, load_config
from .core.protocols import CacheInvalidator, ConfigurationStore, CredentialRepository
from .logging import configure_logging
from .pipeline import AdminPipeline
from .server import AdminServer
from .storage import DirectoryCacheInvalidator, IniConfigurationStore, JsonCredentialStore

LOGGER = logging.getLogger(__name__)


def build_pipeline(
    config: GateConfig,
    *,
    repository: Optional[CredentialRepository] = None,
    config_store: Optional[ConfigurationStore] = None,
    cache: Optional[CacheInvalidator] = None,
    registry: Optional[CommandRegistry] = None,
) -> AdminPipeline:
    """Wire the pipeline from configuration, allowing collaborators to be injected."""

    storage = config.storage
    context = CommandContext(
        config_store=config_store or IniConfigurationStore(storage.site_config_path),
        cache=cache or DirectoryCacheInvalidator(storage.cache_paths),
    )
    dispatcher = CommandDispatcher(registry or default_registry(), context)
    return AdminPipeline(
        repository or JsonCredentialStore(storage.credentials_path),
        dispatcher,
        policy=config.auth.policy,
        tolerance_seconds=config.auth.timestamp_tolerance_seconds,
        counter_commit=config.auth.counter_commit,
    )


class PulseGateApp:
    """Coordinates application startup and shutdown."""

    def __init__(
        self,
        config: Optional[GateConfig] = None,
        *,
        pipeline: Optional[AdminPipeline] = None,
    ) -> None:
        self._config = config or load_config()
        self._pipeline = pipeline or build_pipeline(self._config)
        self._server: Optional[AdminServer] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def server(self) -> Optional[AdminServer]:
        return self._server

    async def run(self) -> None:
        self._shutdown_event = asyncio.Event()
        LOGGER.info("pulsegate starting with config: %s", self._config.path)

        await self._start_server()
        try:
            await self._shutdown_event.wait()
        except asyncio.CancelledError:
            LOGGER.info("pulsegate received shutdown signal")
            raise
        finally:
            await self._stop_server()

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    @classmethod
    def start(cls, config: Optional[GateConfig] = None) -> None:
        resolved = config or load_config()
        configure_logging(
            resolved.logging.level,
            log_path=resolved.logging.path,
            log_access=resolved.logging.log_access,
        )
        instance = cls(config=resolved)
        try:
            asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("pulsegate received shutdown signal")

    async def _start_server(self) -> None:
        server_config = self._config.server
        server = AdminServer(
            self._pipeline,
            server_config.host,
            server_config.port,
            path=server_config.path,
            generic_errors=server_config.generic_errors,
            max_body_bytes=server_config.max_body_bytes,
        )
        await server.start()
        self._server = server

    async def _stop_server(self) -> None:
        if self._server is None:
            return
        await self._server.stop()
        self._server = None
