"""Credential and site-configuration storage backends."""

from __future__ import annotations

import base64
import binascii
import contextlib
import fcntl
import io
import json
import logging
import os
import shutil
import tempfile
import threading
from configparser import ConfigParser
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from .constants import SITE_CONFIG_SECTION
from .core.models import DeviceCredential
from .core.protocols import ConfigValue

LOGGER = logging.getLogger(__name__)

# Files that keep a cache directory from being listed by the web server.
_PRESERVED_CACHE_ENTRIES = frozenset({"index.html", ".htaccess"})


class CredentialStoreError(RuntimeError):
    """Raised when the credential file cannot be read or written."""


class InMemoryCredentialStore:
    """Thread-safe credential repository held in process memory.

    Lookups return copies so callers never mutate stored state except
    through :meth:`update_counter` and :meth:`save`. A mutation whose
    :meth:`_on_change` hook raises is rolled back before the error
    propagates.
    """

    def __init__(self, credentials: Iterable[DeviceCredential] = ()) -> None:
        self._lock = threading.Lock()
        self._records: Dict[int, DeviceCredential] = {}
        for credential in credentials:
            self._records[credential.client_id] = replace(credential)

    def get_by_client_id(self, client_id: int) -> Optional[DeviceCredential]:
        with self._locked():
            record = self._records.get(client_id)
            return replace(record) if record is not None else None

    def update_counter(self, credential: DeviceCredential, new_counter: int) -> bool:
        with self._locked():
            record = self._records.get(credential.client_id)
            if record is None:
                return False
            if record.last_counter != credential.last_counter:
                return False
            if new_counter <= record.last_counter:
                return False
            self._commit(credential.client_id, replace(record, last_counter=new_counter))
        credential.last_counter = new_counter
        return True

    def save(self, credential: DeviceCredential) -> None:
        with self._locked():
            stored = replace(credential)
            existing = self._records.get(credential.client_id)
            # A stale snapshot must not roll the counter back.
            if existing is not None:
                stored.last_counter = max(existing.last_counter, stored.last_counter)
            self._commit(credential.client_id, stored)

    def delete(self, client_id: int) -> bool:
        with self._locked():
            if client_id not in self._records:
                return False
            self._commit(client_id, None)
            return True

    def list(self) -> List[DeviceCredential]:
        with self._locked():
            return [replace(self._records[key]) for key in sorted(self._records)]

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock:
            yield

    def _commit(self, client_id: int, record: Optional[DeviceCredential]) -> None:
        previous = self._records.get(client_id)
        if record is None:
            self._records.pop(client_id, None)
        else:
            self._records[client_id] = record
        try:
            self._on_change()
        except Exception:
            if previous is None:
                self._records.pop(client_id, None)
            else:
                self._records[client_id] = previous
            raise

    def _on_change(self) -> None:
        """Hook invoked with the lock held after every mutation."""


class JsonCredentialStore(InMemoryCredentialStore):
    """Credential repository persisted to a JSON file.

    Several processes may share the file: the server updating counters and
    the CLI provisioning or revoking devices. Every operation takes an
    exclusive ``flock`` on a sidecar ``.lock`` file and reloads the records
    from disk, so the counter compare-and-swap and authorisation checks
    always see the latest on-disk state. The whole file is rewritten
    atomically on every mutation.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock_path = path.with_name(f"{path.name}.lock")
        super().__init__()
        with self._locked():
            LOGGER.debug(
                "Loaded %d device credentials from %s", len(self._records), path
            )

    @property
    def path(self) -> Path:
        return self._path

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        with self._lock, _file_lock(self._lock_path):
            self._records = {
                credential.client_id: credential
                for credential in _load_credentials(self._path)
            }
            yield

    def _on_change(self) -> None:
        payload = {
            "devices": [
                _credential_to_dict(self._records[key]) for key in sorted(self._records)
            ]
        }
        try:
            _atomic_write_text(
                self._path, json.dumps(payload, indent=2), private=True
            )
        except OSError as exc:
            raise CredentialStoreError(
                f"Unable to write credentials to {self._path}: {exc}"
            ) from exc


@contextlib.contextmanager
def _file_lock(path: Path) -> Iterator[None]:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as exc:
        raise CredentialStoreError(f"Unable to open lock file {path}: {exc}") from exc
    try:
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def _credential_to_dict(credential: DeviceCredential) -> dict:
    return {
        "clientId": credential.client_id,
        "sharedKey": base64.b64encode(credential.shared_key).decode("ascii"),
        "authorized": credential.authorized,
        "lastCounter": credential.last_counter,
        "label": credential.label,
    }


def _credential_from_dict(entry: dict) -> DeviceCredential:
    try:
        client_id = int(entry["clientId"])
        shared_key = base64.b64decode(str(entry.get("sharedKey") or ""), validate=True)
        last_counter = max(0, int(entry.get("lastCounter", 0) or 0))
    except (KeyError, TypeError, ValueError, binascii.Error) as exc:
        raise CredentialStoreError(f"Malformed device entry: {exc}") from exc

    return DeviceCredential(
        client_id=client_id,
        shared_key=shared_key,
        authorized=bool(entry.get("authorized", False)),
        last_counter=last_counter,
        label=str(entry.get("label", "") or ""),
    )


def _load_credentials(path: Path) -> List[DeviceCredential]:
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as stream:
            payload = json.load(stream)
    except (OSError, json.JSONDecodeError) as exc:
        raise CredentialStoreError(f"Unable to read credentials from {path}: {exc}") from exc

    devices = payload.get("devices", []) if isinstance(payload, dict) else []
    if not isinstance(devices, list):
        raise CredentialStoreError(f"'devices' in {path} must be a list")
    return [_credential_from_dict(entry) for entry in devices]


def _atomic_write_text(path: Path, text: str, *, private: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as stream:
            stream.write(text)
            stream.flush()
            os.fsync(stream.fileno())
        if private:
            os.chmod(tmp_name, 0o600)
        os.replace(tmp_name, path)
    except OSError:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


class IniConfigurationStore:
    """Site settings kept in the ``[site]`` section of an INI file."""

    def __init__(self, path: Path, *, section: str = SITE_CONFIG_SECTION) -> None:
        self._path = path
        self._section = section
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def set_config(self, name: str, value: ConfigValue) -> None:
        with self._lock:
            parser = self._read()
            if not parser.has_section(self._section):
                parser.add_section(self._section)
            parser.set(self._section, name, str(value))
            buffer = io.StringIO()
            parser.write(buffer)
            _atomic_write_text(self._path, buffer.getvalue())
        LOGGER.info("Site configuration %s set to %s", name, value)

    def get_config(self, name: str) -> Optional[str]:
        with self._lock:
            parser = self._read()
        return parser.get(self._section, name, fallback=None)

    def _read(self) -> ConfigParser:
        parser = ConfigParser()
        if self._path.exists():
            parser.read(self._path, encoding="utf-8")
        return parser


class DirectoryCacheInvalidator:
    """Empties cache directories such as ``cache/`` and ``templates_c/``."""

    def __init__(self, paths: Sequence[Path]) -> None:
        self._paths = list(paths)

    @property
    def paths(self) -> List[Path]:
        return list(self._paths)

    def clear_cache(self) -> None:
        removed = 0
        for directory in self._paths:
            if not directory.is_dir():
                LOGGER.warning("Cache directory %s does not exist; skipping", directory)
                continue
            for entry in directory.iterdir():
                if entry.name in _PRESERVED_CACHE_ENTRIES:
                    continue
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
        LOGGER.info("Cleared %d cache entries from %d directories", removed, len(self._paths))
