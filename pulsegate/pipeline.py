"""Request authentication pipeline.

Stages run in a fixed order and the first failure ends the request:

1. format: fields present, well formed, command whitelisted
2. timestamp: inside the tolerance window and not in the future
3. authorization: device known and authorised
4. counter: strictly greater than the last accepted counter
5. mac: HMAC-SHA256 over the canonical message matches

Only a request whose :class:`ValidationResult` is authenticated reaches the
dispatcher. Disabled credential checks are recorded as skipped gates.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping, Optional

from .commands import CommandDispatcher, CommandResult
from .constants import DEFAULT_TIMESTAMP_TOLERANCE_SECONDS
from .core.errors import AdminRequestError
from .core.models import (
    AdminRequest,
    CounterCommit,
    CredentialCheck,
    CredentialPolicy,
    Gate,
    ValidationResult,
)
from .core.protocols import CredentialRepository
from .mac import verify_mac
from .replay import ReplayGuard
from .validator import parse_request

LOGGER = logging.getLogger(__name__)

# Requests from one client serialise on a fixed pool of locks keyed by id.
CLIENT_LOCK_STRIPES = 64

_CHECK_GATES = {
    CredentialCheck.TIMESTAMP: Gate.TIMESTAMP,
    CredentialCheck.COUNTER: Gate.COUNTER,
}


@dataclass(slots=True)
class PipelineOutcome:
    validation: ValidationResult
    result: Optional[CommandResult] = None

    @property
    def ok(self) -> bool:
        return self.validation.ok and self.result is not None

    @property
    def error(self) -> Optional[AdminRequestError]:
        return self.validation.error


class AdminPipeline:
    """Authenticates raw requests and dispatches the ones that pass."""

    def __init__(
        self,
        repository: CredentialRepository,
        dispatcher: CommandDispatcher,
        *,
        policy: Optional[CredentialPolicy] = None,
        tolerance_seconds: int = DEFAULT_TIMESTAMP_TOLERANCE_SECONDS,
        counter_commit: CounterCommit = CounterCommit.AFTER_AUTHENTICATION,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._policy = policy or CredentialPolicy()
        self._counter_commit = counter_commit
        self._guard = ReplayGuard(
            repository, tolerance_seconds=tolerance_seconds, clock=clock
        )
        self._client_locks = tuple(
            threading.Lock() for _ in range(CLIENT_LOCK_STRIPES)
        )

        for check in self._policy.disabled:
            LOGGER.warning(
                "Credential check '%s' is disabled; requests are less protected against replay",
                check.value,
            )

    @property
    def policy(self) -> CredentialPolicy:
        return self._policy

    @property
    def guard(self) -> ReplayGuard:
        return self._guard

    def authenticate(
        self, fields: Mapping[str, Any], *, now: Optional[int] = None
    ) -> ValidationResult:
        skipped = [
            gate
            for check, gate in _CHECK_GATES.items()
            if not self._policy.requires(check)
        ]
        validation = ValidationResult().skip_gates(skipped)

        try:
            request = parse_request(
                fields,
                vocabulary=self._dispatcher.registry,
                policy=self._policy,
            )
        except AdminRequestError as exc:
            return validation.fail(exc)

        validation = replace(validation, request=request).pass_gate(Gate.FORMAT)
        with self._lock_for(request.client_id):
            return self._authenticate_request(validation, request, now)

    def handle(
        self, fields: Mapping[str, Any], *, now: Optional[int] = None
    ) -> PipelineOutcome:
        validation = self.authenticate(fields, now=now)
        if not validation.ok:
            self._log_rejection(validation)
            return PipelineOutcome(validation=validation)

        try:
            result = self._dispatcher.dispatch(validation)
        except AdminRequestError as exc:
            failed = validation.fail(exc)
            self._log_rejection(failed)
            return PipelineOutcome(validation=failed)
        return PipelineOutcome(validation=validation, result=result)

    def _authenticate_request(
        self,
        validation: ValidationResult,
        request: AdminRequest,
        now: Optional[int],
    ) -> ValidationResult:
        policy = self._policy
        guard = self._guard
        try:
            if policy.requires(CredentialCheck.TIMESTAMP):
                guard.check_timestamp(request, now)
                validation = validation.pass_gate(Gate.TIMESTAMP)

            credential = guard.check_authorization(request)
            validation = replace(validation, credential=credential).pass_gate(
                Gate.AUTHORIZATION
            )

            counting = policy.requires(CredentialCheck.COUNTER)
            if counting:
                guard.check_counter(request, credential)
                if self._counter_commit is CounterCommit.BEFORE_MAC:
                    guard.commit_counter(request, credential)
                validation = validation.pass_gate(Gate.COUNTER)

            verify_mac(request, credential)
            validation = validation.pass_gate(Gate.MAC)

            if counting and self._counter_commit is CounterCommit.AFTER_AUTHENTICATION:
                guard.commit_counter(request, credential)
        except AdminRequestError as exc:
            return validation.fail(exc)
        return validation

    def _lock_for(self, client_id: int) -> threading.Lock:
        return self._client_locks[client_id % len(self._client_locks)]

    @staticmethod
    def _log_rejection(validation: ValidationResult) -> None:
        error = validation.error
        request = validation.request
        LOGGER.warning(
            "Rejected request from client %s (%s): %s",
            request.client_id if request is not None else "?",
            error.code if error is not None else "unknown",
            error.message if error is not None else "",
        )
