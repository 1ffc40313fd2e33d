"""Freshness checks: timestamp window, device authorisation and counter."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .constants import DEFAULT_TIMESTAMP_TOLERANCE_SECONDS
from .core.errors import BadTimestamp, ReplayedCounter, UnauthorizedClient
from .core.models import AdminRequest, DeviceCredential
from .core.protocols import CredentialRepository

LOGGER = logging.getLogger(__name__)


def now_seconds() -> int:
    return int(time.time())


class ReplayGuard:
    """Rejects stale, future-dated, unauthorised and replayed requests."""

    def __init__(
        self,
        repository: CredentialRepository,
        *,
        tolerance_seconds: int = DEFAULT_TIMESTAMP_TOLERANCE_SECONDS,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._repository = repository
        self._tolerance = max(1, int(tolerance_seconds))
        self._clock = clock or now_seconds

    @property
    def tolerance_seconds(self) -> int:
        return self._tolerance

    def now(self) -> int:
        return int(self._clock())

    def check_timestamp(self, request: AdminRequest, now: Optional[int] = None) -> None:
        # Clock skew in either direction gets the same answer.
        current = self.now() if now is None else int(now)
        timestamp = request.timestamp
        if timestamp is None or timestamp > current or current - timestamp >= self._tolerance:
            raise BadTimestamp()

    def check_authorization(self, request: AdminRequest) -> DeviceCredential:
        credential = self._repository.get_by_client_id(request.client_id)
        if credential is None or not credential.authorized:
            raise UnauthorizedClient()
        return credential

    def check_counter(self, request: AdminRequest, credential: DeviceCredential) -> None:
        if request.counter is None or request.counter <= credential.last_counter:
            raise ReplayedCounter()

    def commit_counter(self, request: AdminRequest, credential: DeviceCredential) -> None:
        """Advance the stored counter, failing if another request got there first."""

        previous = credential.last_counter
        if request.counter is None or not self._repository.update_counter(
            credential, request.counter
        ):
            LOGGER.warning(
                "Counter for client %s moved concurrently; rejecting counter %s",
                request.client_id,
                request.counter,
            )
            raise ReplayedCounter()
        LOGGER.debug(
            "Client %s counter advanced %s -> %s",
            request.client_id,
            previous,
            request.counter,
        )
