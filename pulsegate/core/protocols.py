"""Protocol definitions for the collaborators the pipeline drives."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol, Union

from .models import DeviceCredential

ConfigValue = Union[str, int]


class CredentialRepository(Protocol):
    """Lookup and counter bookkeeping for device credentials."""

    def get_by_client_id(self, client_id: int) -> Optional[DeviceCredential]:
        """Return a snapshot of the stored credential, or None if unknown."""
        ...

    def update_counter(self, credential: DeviceCredential, new_counter: int) -> bool:
        """Advance ``last_counter`` with compare-and-swap semantics.

        The write succeeds only when the stored counter still equals
        ``credential.last_counter`` and ``new_counter`` exceeds it. Returns
        False without writing otherwise. On success ``credential`` is
        updated in place.
        """
        ...

    def save(self, credential: DeviceCredential) -> None:
        """Insert or replace a credential record."""
        ...

    def delete(self, client_id: int) -> bool:
        """Remove a credential record, returning whether it existed."""
        ...

    def list(self) -> Iterable[DeviceCredential]:
        """Return snapshots of every stored credential."""
        ...


class ConfigurationStore(Protocol):
    """Host application settings touched by administrative commands."""

    def set_config(self, name: str, value: ConfigValue) -> None:
        """Persist a single configuration value."""
        ...

    def get_config(self, name: str) -> Optional[str]:
        """Return the stored value, or None if unset."""
        ...


class CacheInvalidator(Protocol):
    def clear_cache(self) -> None:
        """Drop cached pages and compiled templates."""
        ...
