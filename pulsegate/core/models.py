"""Data types shared by the authentication pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Iterable, Optional

from .errors import AdminRequestError


class CredentialCheck(str, Enum):
    """Credential checks that a deployment may relax for constrained clients."""

    TIMESTAMP = "timestamp"
    COUNTER = "counter"
    NONCE = "nonce"


class CounterCommit(str, Enum):
    """When the device counter is advanced relative to MAC verification."""

    AFTER_AUTHENTICATION = "after_authentication"
    BEFORE_MAC = "before_mac"


class Gate(str, Enum):
    """Validation stages, in the order the pipeline evaluates them."""

    FORMAT = "format"
    TIMESTAMP = "timestamp"
    AUTHORIZATION = "authorization"
    COUNTER = "counter"
    MAC = "mac"


# Gates that no policy can switch off.
MANDATORY_GATES = frozenset({Gate.FORMAT, Gate.AUTHORIZATION, Gate.MAC})


@dataclass(frozen=True, slots=True)
class CredentialPolicy:
    """Deployment-wide set of enforced credential checks.

    All checks are enforced by default. A relaxed policy must keep at least
    one of the timestamp and counter checks, otherwise nothing guards
    against replay.
    """

    checks: FrozenSet[CredentialCheck] = frozenset(CredentialCheck)

    def __post_init__(self) -> None:
        checks = frozenset(CredentialCheck(item) for item in self.checks)
        object.__setattr__(self, "checks", checks)
        if CredentialCheck.TIMESTAMP not in checks and CredentialCheck.COUNTER not in checks:
            raise ValueError(
                "Credential policy must require the timestamp or the counter check"
            )

    @classmethod
    def from_flags(cls, *, timestamp: bool = True, counter: bool = True, nonce: bool = True) -> "CredentialPolicy":
        enabled = {
            CredentialCheck.TIMESTAMP: timestamp,
            CredentialCheck.COUNTER: counter,
            CredentialCheck.NONCE: nonce,
        }
        return cls(frozenset(check for check, on in enabled.items() if on))

    def requires(self, check: CredentialCheck) -> bool:
        return check in self.checks

    @property
    def disabled(self) -> list[CredentialCheck]:
        return [check for check in CredentialCheck if check not in self.checks]

    @property
    def is_strict(self) -> bool:
        return not self.disabled


@dataclass(slots=True)
class DeviceCredential:
    """Per-device record held by the credential store."""

    client_id: int
    shared_key: bytes = field(default=b"", repr=False)
    authorized: bool = False
    last_counter: int = 0
    label: str = ""

    @property
    def has_key(self) -> bool:
        return bool(self.shared_key)


@dataclass(frozen=True, slots=True)
class AdminRequest:
    """A sanitized, fully typed administrative request.

    ``counter``, ``timestamp`` and ``nonce`` are ``None`` only when the
    corresponding credential check is disabled.
    """

    client_id: int
    command: str
    mac: str = field(repr=False)
    counter: Optional[int] = None
    timestamp: Optional[int] = None
    nonce: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of the authentication gates for one request."""

    passed: FrozenSet[Gate] = frozenset()
    skipped: FrozenSet[Gate] = frozenset()
    error: Optional[AdminRequestError] = None
    request: Optional[AdminRequest] = None
    credential: Optional[DeviceCredential] = None

    def pass_gate(self, gate: Gate) -> "ValidationResult":
        return replace(self, passed=self.passed | {gate})

    def skip_gates(self, gates: Iterable[Gate]) -> "ValidationResult":
        return replace(self, skipped=self.skipped | frozenset(gates))

    def fail(self, error: AdminRequestError) -> "ValidationResult":
        return replace(self, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def authenticated(self) -> bool:
        if self.error is not None or self.request is None or self.credential is None:
            return False
        if not MANDATORY_GATES <= self.passed:
            return False
        return all(gate in self.passed or gate in self.skipped for gate in Gate)
