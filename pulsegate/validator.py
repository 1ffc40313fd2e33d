"""Parsing and sanitising of raw administrative request fields."""

from __future__ import annotations

import re
from typing import Any, Collection, Mapping, Optional

from .core.errors import InvalidFormat, MissingParameter, UnknownCommand
from .core.models import AdminRequest, CredentialCheck, CredentialPolicy

# ASCII only: str.isdigit() and str.isalnum() accept other scripts.
# Twenty digits hold any unsigned 64-bit value.
_DECIMAL_RE = re.compile(r"[0-9]{1,20}")
_ALNUM_RE = re.compile(r"[A-Za-z0-9]+")

# Wire names, in order of preference. Older device firmware posts
# ``random`` and ``hmac`` instead of ``nonce`` and ``mac``.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "client_id": ("client_id",),
    "command": ("command",),
    "counter": ("counter",),
    "timestamp": ("timestamp",),
    "nonce": ("nonce", "random"),
    "mac": ("mac", "hmac"),
}

_CHECK_FIELDS = {
    "counter": CredentialCheck.COUNTER,
    "timestamp": CredentialCheck.TIMESTAMP,
    "nonce": CredentialCheck.NONCE,
}


def required_fields(policy: CredentialPolicy) -> list[str]:
    """Return the wire fields a request must carry under ``policy``."""

    return [
        name
        for name in FIELD_ALIASES
        if name not in _CHECK_FIELDS or policy.requires(_CHECK_FIELDS[name])
    ]


def _first_value(fields: Mapping[str, Any], name: str) -> Optional[str]:
    for key in FIELD_ALIASES[name]:
        value = fields.get(key)
        if value is not None:
            return str(value)
    return None


def _parse_decimal(value: str, field: str) -> int:
    if not _DECIMAL_RE.fullmatch(value):
        raise InvalidFormat(field)
    return int(value)


def parse_request(
    fields: Mapping[str, Any],
    *,
    vocabulary: Collection[str],
    policy: Optional[CredentialPolicy] = None,
) -> AdminRequest:
    """Turn raw form fields into a typed :class:`AdminRequest`.

    Raises :class:`MissingParameter` when a required field is absent or
    empty, :class:`InvalidFormat` for the first malformed field and
    :class:`UnknownCommand` when the command is not whitelisted. Fields
    whose credential check is disabled by ``policy`` are ignored.
    """

    policy = policy or CredentialPolicy()
    wanted = required_fields(policy)

    raw: dict[str, str] = {}
    for name in wanted:
        value = _first_value(fields, name)
        if not value:
            raise MissingParameter(name)
        raw[name] = value

    client_id = _parse_decimal(raw["client_id"], "client_id")
    counter = _parse_decimal(raw["counter"], "counter") if "counter" in raw else None
    timestamp = (
        _parse_decimal(raw["timestamp"], "timestamp") if "timestamp" in raw else None
    )

    nonce: Optional[str] = None
    if "nonce" in raw:
        if not _ALNUM_RE.fullmatch(raw["nonce"]):
            raise InvalidFormat("nonce")
        nonce = raw["nonce"]

    command = raw["command"].strip()
    if command not in vocabulary:
        raise UnknownCommand()

    return AdminRequest(
        client_id=client_id,
        command=command,
        mac=raw["mac"].strip(),
        counter=counter,
        timestamp=timestamp,
        nonce=nonce,
    )
