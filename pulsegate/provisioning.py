"""Device provisioning and authorisation management."""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from .constants import DEFAULT_KEY_LENGTH
from .core.models import DeviceCredential
from .core.protocols import CredentialRepository

LOGGER = logging.getLogger(__name__)

# SHA-256 digest size.
MIN_KEY_LENGTH = 32


class ProvisioningError(RuntimeError):
    """Raised when a device cannot be provisioned or updated."""


def generate_shared_key(length: int = DEFAULT_KEY_LENGTH) -> bytes:
    if length < MIN_KEY_LENGTH:
        raise ProvisioningError(
            f"Shared keys must be at least {MIN_KEY_LENGTH} bytes (got {length})"
        )
    return secrets.token_bytes(length)


def provision_device(
    repository: CredentialRepository,
    client_id: int,
    *,
    label: str = "",
    key_length: int = DEFAULT_KEY_LENGTH,
    shared_key: Optional[bytes] = None,
    authorized: bool = True,
) -> DeviceCredential:
    """Create a new device record with a fresh shared key.

    The returned credential carries the key; it is the only time the key
    is handed out and must be transferred to the device out of band.
    """

    if client_id < 0:
        raise ProvisioningError("Client IDs must be non-negative")
    if repository.get_by_client_id(client_id) is not None:
        raise ProvisioningError(f"Client {client_id} is already provisioned")

    credential = DeviceCredential(
        client_id=client_id,
        shared_key=shared_key if shared_key is not None else generate_shared_key(key_length),
        authorized=authorized,
        last_counter=0,
        label=label,
    )
    repository.save(credential)
    LOGGER.info("Provisioned client %s%s", client_id, f" ({label})" if label else "")
    return credential


def set_authorization(
    repository: CredentialRepository, client_id: int, authorized: bool
) -> DeviceCredential:
    credential = repository.get_by_client_id(client_id)
    if credential is None:
        raise ProvisioningError(f"Client {client_id} is not provisioned")
    credential.authorized = authorized
    repository.save(credential)
    LOGGER.info(
        "Client %s %s", client_id, "authorised" if authorized else "deauthorised"
    )
    return credential


def revoke_device(repository: CredentialRepository, client_id: int) -> None:
    if not repository.delete(client_id):
        raise ProvisioningError(f"Client {client_id} is not provisioned")
    LOGGER.info("Revoked client %s", client_id)
