"""Tests for raw request parsing."""

import pytest

from pulsegate.core.errors import InvalidFormat, MissingParameter, UnknownCommand
from pulsegate.core.models import CredentialPolicy
from pulsegate.validator import parse_request, required_fields

VOCABULARY = {"checkPulse", "closeSite", "lockDown"}


def _fields(**overrides):
    fields = {
        "client_id": "42",
        "command": "checkPulse",
        "counter": "6",
        "timestamp": "1700000000",
        "nonce": "abc123",
        "mac": "deadbeef",
    }
    fields.update(overrides)
    return {key: value for key, value in fields.items() if value is not None}


def test_parse_request_returns_typed_request():
    request = parse_request(_fields(), vocabulary=VOCABULARY)

    assert request.client_id == 42
    assert request.command == "checkPulse"
    assert request.counter == 6
    assert request.timestamp == 1_700_000_000
    assert request.nonce == "abc123"
    assert request.mac == "deadbeef"


def test_parse_request_trims_command_and_mac():
    request = parse_request(
        _fields(command="  lockDown\n", mac=" cafe "), vocabulary=VOCABULARY
    )

    assert request.command == "lockDown"
    assert request.mac == "cafe"


@pytest.mark.parametrize(
    "missing", ["client_id", "command", "counter", "timestamp", "nonce", "mac"]
)
def test_parse_request_rejects_absent_field(missing):
    with pytest.raises(MissingParameter) as excinfo:
        parse_request(_fields(**{missing: None}), vocabulary=VOCABULARY)

    assert excinfo.value.field == missing
    assert excinfo.value.message == "Missing required parameter"


def test_parse_request_rejects_empty_field():
    with pytest.raises(MissingParameter):
        parse_request(_fields(nonce=""), vocabulary=VOCABULARY)


def test_missing_field_wins_over_malformed_field():
    with pytest.raises(MissingParameter):
        parse_request(_fields(client_id="x", mac=None), vocabulary=VOCABULARY)


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("client_id", "-1"),
        ("client_id", "4 2"),
        ("client_id", "0x2a"),
        ("counter", "6.0"),
        ("counter", "+6"),
        ("timestamp", " 1700000000"),
        ("timestamp", "１７"),  # full-width digits
        ("nonce", "abc-123"),
        ("nonce", "abc 123"),
        ("nonce", "ábc123"),
    ],
)
def test_parse_request_rejects_malformed_field(field, value):
    with pytest.raises(InvalidFormat) as excinfo:
        parse_request(_fields(**{field: value}), vocabulary=VOCABULARY)

    assert excinfo.value.field == field


@pytest.mark.parametrize("field", ["client_id", "counter", "timestamp"])
def test_parse_request_rejects_oversized_decimal(field):
    with pytest.raises(InvalidFormat) as excinfo:
        parse_request(_fields(**{field: "1" * 5000}), vocabulary=VOCABULARY)

    assert excinfo.value.field == field


def test_parse_request_accepts_twenty_digit_counter():
    request = parse_request(_fields(counter="9" * 20), vocabulary=VOCABULARY)

    assert request.counter == 10**20 - 1

    with pytest.raises(InvalidFormat):
        parse_request(_fields(counter="1" + "0" * 20), vocabulary=VOCABULARY)


def test_format_errors_follow_field_order():
    with pytest.raises(InvalidFormat) as excinfo:
        parse_request(
            _fields(counter="x", timestamp="y", nonce="!"), vocabulary=VOCABULARY
        )

    assert excinfo.value.field == "counter"
    assert excinfo.value.message == "Counter not in decimal format"


def test_parse_request_rejects_unknown_command():
    with pytest.raises(UnknownCommand):
        parse_request(_fields(command="dropTables"), vocabulary=VOCABULARY)


def test_command_whitelist_is_case_sensitive():
    with pytest.raises(UnknownCommand):
        parse_request(_fields(command="checkpulse"), vocabulary=VOCABULARY)


def test_parse_request_accepts_legacy_field_names():
    fields = _fields(nonce=None, mac=None)
    fields["random"] = "legacy42"
    fields["hmac"] = "abcd"

    request = parse_request(fields, vocabulary=VOCABULARY)

    assert request.nonce == "legacy42"
    assert request.mac == "abcd"


def test_relaxed_policy_makes_fields_optional():
    policy = CredentialPolicy.from_flags(timestamp=False, nonce=False)

    request = parse_request(
        _fields(timestamp=None, nonce=None), vocabulary=VOCABULARY, policy=policy
    )

    assert request.timestamp is None
    assert request.nonce is None
    assert request.counter == 6


def test_relaxed_policy_ignores_fields_it_does_not_check():
    policy = CredentialPolicy.from_flags(counter=False)

    request = parse_request(_fields(counter="junk"), vocabulary=VOCABULARY, policy=policy)

    assert request.counter is None


def test_required_fields_follow_policy():
    assert required_fields(CredentialPolicy()) == [
        "client_id",
        "command",
        "counter",
        "timestamp",
        "nonce",
        "mac",
    ]
    assert required_fields(CredentialPolicy.from_flags(counter=False, nonce=False)) == [
        "client_id",
        "command",
        "timestamp",
        "mac",
    ]
