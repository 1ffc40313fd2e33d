import base64
import hashlib
import hmac
from pathlib import Path

import pytest

from pulsegate.cli import main
from pulsegate.storage import JsonCredentialStore


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    path = tmp_path / "pulsegate.cfg"
    path.write_text(
        f"[storage]\ncredentials_path = {tmp_path / 'devices.json'}\n"
        f"site_config_path = {tmp_path / 'site.cfg'}\n"
        "[logging]\npath =\n",
        encoding="utf-8",
    )
    return path


def _run(config_path: Path, *args: str) -> int:
    return main(["-c", str(config_path), *args])


def test_provision_prints_key_and_persists(config_path, tmp_path, capsys):
    assert _run(config_path, "provision", "42", "--label", "uno", "--key-length", "64") == 0

    output = capsys.readouterr().out
    key_line = next(line for line in output.splitlines() if line.startswith("shared_key_b64"))
    key = base64.b64decode(key_line.split("=", 1)[1].strip())

    stored = JsonCredentialStore(tmp_path / "devices.json").get_by_client_id(42)
    assert stored.shared_key == key
    assert len(key) == 64
    assert stored.label == "uno"


def test_provision_twice_fails(config_path):
    assert _run(config_path, "provision", "42") == 0
    assert _run(config_path, "provision", "42") == 1


def test_authorisation_commands(config_path, tmp_path, capsys):
    _run(config_path, "provision", "42")

    assert _run(config_path, "deauthorize", "42") == 0
    assert JsonCredentialStore(tmp_path / "devices.json").get_by_client_id(42).authorized is False

    capsys.readouterr()
    assert _run(config_path, "list-devices") == 0
    assert "42\tblocked" in capsys.readouterr().out

    assert _run(config_path, "authorize", "42") == 0
    assert _run(config_path, "revoke", "42") == 0
    assert _run(config_path, "revoke", "42") == 1


def test_sign_prints_form_fields(config_path, capsys):
    key_b64 = base64.b64encode(b"k").decode()

    assert (
        _run(
            config_path,
            "sign",
            "42",
            "checkPulse",
            "--key-b64",
            key_b64,
            "--counter",
            "6",
            "--timestamp",
            "1700000000",
            "--nonce",
            "abc123",
        )
        == 0
    )

    lines = dict(
        line.split("=", 1) for line in capsys.readouterr().out.strip().splitlines()
    )
    expected = hmac.new(b"k", b"42checkPulse61700000000abc123", hashlib.sha256).hexdigest()
    assert lines["mac"] == expected
    assert lines["command"] == "checkPulse"


def test_sign_without_counter_fails(config_path):
    key_b64 = base64.b64encode(b"k").decode()

    assert _run(config_path, "sign", "42", "checkPulse", "--key-b64", key_b64) == 1


def test_show_config(config_path, capsys):
    assert _run(config_path, "show-config") == 0

    output = capsys.readouterr().out
    assert "[auth]" in output
    assert "timestamp_tolerance_seconds = 600" in output


def test_invalid_config_returns_error(tmp_path):
    path = tmp_path / "bad.cfg"
    path.write_text("[auth]\nrequire_timestamp = no\nrequire_counter = no\n", encoding="utf-8")

    assert main(["-c", str(path), "show-config"]) == 1
