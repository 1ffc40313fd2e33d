from typing import Optional

import pytest

from pulsegate.commands import CommandContext, CommandDispatcher, default_registry
from pulsegate.core.models import DeviceCredential
from pulsegate.pipeline import AdminPipeline
from pulsegate.storage import InMemoryCredentialStore

NOW = 1_700_000_000
DEVICE_ID = 42
DEVICE_KEY = b"k"


class FakeConfigStore:
    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.values: dict[str, str] = {}
        self.writes: list[tuple[str, object]] = []
        self.fail_on = fail_on

    def set_config(self, name, value) -> None:
        if name == self.fail_on:
            raise OSError(f"cannot write {name}")
        self.writes.append((name, value))
        self.values[name] = str(value)

    def get_config(self, name):
        return self.values.get(name)


class FakeCache:
    def __init__(self) -> None:
        self.cleared = 0

    def clear_cache(self) -> None:
        self.cleared += 1


class CountingCredentialStore(InMemoryCredentialStore):
    """Records lookups so tests can assert the store was never consulted."""

    def __init__(self, credentials=()) -> None:
        super().__init__(credentials)
        self.lookups = 0
        self.counter_updates: list[int] = []

    def get_by_client_id(self, client_id):
        self.lookups += 1
        return super().get_by_client_id(client_id)

    def update_counter(self, credential, new_counter):
        self.counter_updates.append(new_counter)
        return super().update_counter(credential, new_counter)


@pytest.fixture
def store() -> CountingCredentialStore:
    return CountingCredentialStore(
        [
            DeviceCredential(
                client_id=DEVICE_ID,
                shared_key=DEVICE_KEY,
                authorized=True,
                last_counter=5,
            ),
            DeviceCredential(
                client_id=7, shared_key=b"blocked", authorized=False, last_counter=0
            ),
            DeviceCredential(client_id=8, shared_key=b"", authorized=True, last_counter=0),
        ]
    )


@pytest.fixture
def config_store() -> FakeConfigStore:
    return FakeConfigStore()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest.fixture
def make_pipeline(store, config_store, cache):
    def factory(**kwargs) -> AdminPipeline:
        dispatcher = CommandDispatcher(
            default_registry(),
            CommandContext(config_store=config_store, cache=cache),
        )
        kwargs.setdefault("clock", lambda: NOW)
        return AdminPipeline(store, dispatcher, **kwargs)

    return factory


@pytest.fixture
def pipeline(make_pipeline) -> AdminPipeline:
    return make_pipeline()
