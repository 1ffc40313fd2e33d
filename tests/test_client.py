"""Tests for the reference signing client."""

import hashlib
import hmac
import time

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from pulsegate.client import AdminClient, AdminClientError, generate_nonce, sign_request
from pulsegate.core.models import CredentialPolicy
from pulsegate.server import build_app


def test_generate_nonce_is_alphanumeric():
    nonce = generate_nonce(40)

    assert len(nonce) == 40
    assert nonce.isascii() and nonce.isalnum()
    assert generate_nonce() != generate_nonce()


def test_generate_nonce_rejects_bad_length():
    with pytest.raises(ValueError):
        generate_nonce(0)


def test_sign_request_fields_and_mac():
    fields = sign_request(42, "checkPulse", b"k", counter=6, timestamp=100, nonce="abc")

    assert fields["client_id"] == "42"
    assert fields["counter"] == "6"
    assert fields["timestamp"] == "100"
    assert fields["nonce"] == "abc"
    assert fields["mac"] == hmac.new(b"k", b"42checkPulse6100abc", hashlib.sha256).hexdigest()


def test_sign_request_generates_timestamp_and_nonce():
    fields = sign_request(42, "checkPulse", b"k", counter=1)

    assert fields["timestamp"].isdigit()
    assert fields["nonce"].isalnum()


def test_sign_request_requires_counter():
    with pytest.raises(ValueError):
        sign_request(42, "checkPulse", b"k")


def test_sign_request_omits_disabled_fields():
    policy = CredentialPolicy.from_flags(counter=False, nonce=False)

    fields = sign_request(42, "debugOn", b"k", counter=5, timestamp=100, policy=policy)

    assert set(fields) == {"client_id", "command", "timestamp", "mac"}
    assert fields["mac"] == hmac.new(b"k", b"42debugOn100", hashlib.sha256).hexdigest()


@pytest.mark.asyncio
async def test_admin_client_round_trip(make_pipeline, store):
    pipeline = make_pipeline(clock=lambda: int(time.time()))
    async with TestServer(build_app(pipeline)) as server:
        client = AdminClient(str(server.make_url("/admin")), 42, b"k", counter=5)

        response = await client.send("checkPulse")
        await client.send("debugOn")

    assert response.status == 200
    assert client.counter == 7
    assert store.get_by_client_id(42).last_counter == 7


@pytest.mark.asyncio
async def test_admin_client_raises_on_error_line(make_pipeline):
    pipeline = make_pipeline(clock=lambda: int(time.time()))
    async with TestServer(build_app(pipeline)) as server:
        client = AdminClient(str(server.make_url("/admin")), 42, b"wrong", counter=5)

        with pytest.raises(AdminClientError) as excinfo:
            await client.send("checkPulse")

    assert excinfo.value.status == 403


@pytest.mark.asyncio
async def test_admin_client_raises_on_unexpected_status():
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=502, text="bad gateway")

    app = web.Application()
    app.router.add_post("/admin", handler)

    async with TestServer(app) as server:
        client = AdminClient(str(server.make_url("/admin")), 42, b"k")
        with pytest.raises(AdminClientError) as excinfo:
            await client.send("checkPulse")

    assert excinfo.value.status == 502
