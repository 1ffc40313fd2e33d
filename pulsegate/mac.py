"""Canonical message construction and HMAC-SHA256 verification.

Client devices must build the canonical message exactly as
:func:`canonical_message` does: the decimal client id, the command, the
decimal counter, the decimal timestamp and the nonce, concatenated in that
order with nothing in between. Fields whose credential check is disabled
are left out entirely.
"""

from __future__ import annotations

import binascii
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from .core.errors import MacMismatch, NoSharedKey
from .core.models import AdminRequest, DeviceCredential


def canonical_message(
    client_id: int,
    command: str,
    counter: Optional[int] = None,
    timestamp: Optional[int] = None,
    nonce: Optional[str] = None,
) -> bytes:
    parts = [str(client_id), command]
    if counter is not None:
        parts.append(str(counter))
    if timestamp is not None:
        parts.append(str(timestamp))
    if nonce is not None:
        parts.append(nonce)
    return "".join(parts).encode("utf-8")


def request_message(request: AdminRequest) -> bytes:
    return canonical_message(
        request.client_id,
        request.command,
        counter=request.counter,
        timestamp=request.timestamp,
        nonce=request.nonce,
    )


def _hmac(key: bytes, message: bytes) -> hmac.HMAC:
    signer = hmac.HMAC(key, hashes.SHA256())
    signer.update(message)
    return signer


def compute_mac(key: bytes, message: bytes) -> str:
    """Return the lowercase hex HMAC-SHA256 of ``message``."""

    return _hmac(key, message).finalize().hex()


def verify_mac(request: AdminRequest, credential: DeviceCredential) -> None:
    """Raise unless ``request.mac`` authenticates the request.

    The comparison runs in constant time. Only the exact lowercase hex
    digest is accepted.
    """

    if not credential.has_key:
        raise NoSharedKey()

    supplied = request.mac
    # bytes.fromhex would also accept uppercase digits and whitespace.
    if len(supplied) != 64 or supplied != supplied.lower():
        raise MacMismatch()
    try:
        signature = binascii.unhexlify(supplied)
    except (binascii.Error, ValueError) as exc:
        raise MacMismatch() from exc

    try:
        _hmac(credential.shared_key, request_message(request)).verify(signature)
    except InvalidSignature as exc:
        raise MacMismatch() from exc
