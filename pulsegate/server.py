"""HTTP endpoint accepting form-encoded administrative commands."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Dict, Optional

from aiohttp import web

from .constants import DEFAULT_ENDPOINT_PATH, DEFAULT_MAX_BODY_BYTES
from .core.errors import GENERIC_REJECTION_MESSAGE, AdminRequestError
from .pipeline import AdminPipeline

LOGGER = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal error"


def error_response(message: str, status: int) -> web.Response:
    return web.Response(text=f"Error: {message}", status=status)


class AdminRequestHandler:
    """aiohttp handler translating pipeline outcomes into bare text lines."""

    def __init__(self, pipeline: AdminPipeline, *, generic_errors: bool = False) -> None:
        self._pipeline = pipeline
        self._generic_errors = generic_errors

    async def __call__(self, request: web.Request) -> web.Response:
        form = await request.post()
        fields: Dict[str, str] = {}
        for key, value in form.items():
            # File parts are never valid here; the first text value wins.
            if isinstance(value, str):
                fields.setdefault(key, value)

        try:
            outcome = await asyncio.to_thread(self._pipeline.handle, fields)
        except Exception:
            LOGGER.exception("Unexpected failure while handling admin request")
            return self._reject_internal()

        if outcome.error is not None:
            return self._reject(outcome.error)

        result = outcome.result
        if result is None:
            return self._reject_internal()
        return web.Response(text=result.body, status=result.status)

    def _reject(self, error: AdminRequestError) -> web.Response:
        if self._generic_errors:
            return error_response(GENERIC_REJECTION_MESSAGE, 403)
        return error_response(error.message, error.http_status)

    def _reject_internal(self) -> web.Response:
        if self._generic_errors:
            return error_response(GENERIC_REJECTION_MESSAGE, 403)
        return error_response(INTERNAL_ERROR_MESSAGE, 500)


def build_app(
    pipeline: AdminPipeline,
    *,
    path: str = DEFAULT_ENDPOINT_PATH,
    generic_errors: bool = False,
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
) -> web.Application:
    app = web.Application(client_max_size=max_body_bytes)
    app.router.add_post(
        path, AdminRequestHandler(pipeline, generic_errors=generic_errors)
    )
    return app


class AdminServer:
    """Runs the admin endpoint on its own TCP site."""

    def __init__(
        self,
        pipeline: AdminPipeline,
        host: str,
        port: int,
        *,
        path: str = DEFAULT_ENDPOINT_PATH,
        generic_errors: bool = False,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ) -> None:
        self._pipeline = pipeline
        self._host = host
        self._port = port
        self._path = path
        self._generic_errors = generic_errors
        self._max_body_bytes = max_body_bytes
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}{self._path}"

    async def start(self) -> None:
        app = build_app(
            self._pipeline,
            path=self._path,
            generic_errors=self._generic_errors,
            max_body_bytes=self._max_body_bytes,
        )

        self._runner = web.AppRunner(app)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        LOGGER.info("Admin endpoint listening on %s", self.url)

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None
