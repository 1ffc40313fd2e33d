"""Reference client for signing and submitting administrative commands."""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Dict, Optional

import aiohttp

from .constants import DEFAULT_NONCE_LENGTH
from .core.models import CredentialCheck, CredentialPolicy
from .mac import canonical_message, compute_mac
from .replay import now_seconds

LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

_NONCE_ALPHABET = string.ascii_letters + string.digits


class AdminClientError(RuntimeError):
    """Raised when the server rejects a command or cannot be reached."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


def generate_nonce(length: int = DEFAULT_NONCE_LENGTH) -> str:
    """Return an alphanumeric nonce drawn from the system CSPRNG."""

    if length < 1:
        raise ValueError("Nonce length must be positive")
    return "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(length))


def sign_request(
    client_id: int,
    command: str,
    key: bytes,
    *,
    counter: Optional[int] = None,
    timestamp: Optional[int] = None,
    nonce: Optional[str] = None,
    policy: Optional[CredentialPolicy] = None,
) -> Dict[str, str]:
    """Build the form fields for one request, including its MAC.

    Missing timestamp and nonce values are generated. The counter has no
    sensible default and must be supplied when the policy requires it.
    """

    policy = policy or CredentialPolicy()

    if policy.requires(CredentialCheck.COUNTER):
        if counter is None:
            raise ValueError("A counter is required by the credential policy")
    else:
        counter = None

    if policy.requires(CredentialCheck.TIMESTAMP):
        timestamp = now_seconds() if timestamp is None else timestamp
    else:
        timestamp = None

    if policy.requires(CredentialCheck.NONCE):
        nonce = generate_nonce() if nonce is None else nonce
    else:
        nonce = None

    message = canonical_message(
        client_id, command, counter=counter, timestamp=timestamp, nonce=nonce
    )
    fields = {"client_id": str(client_id), "command": command}
    if counter is not None:
        fields["counter"] = str(counter)
    if timestamp is not None:
        fields["timestamp"] = str(timestamp)
    if nonce is not None:
        fields["nonce"] = nonce
    fields["mac"] = compute_mac(key, message)
    return fields


@dataclass(slots=True)
class AdminResponse:
    status: int
    text: str


class AdminClient:
    """Posts signed commands to an admin endpoint.

    The client keeps its own counter, starting after ``counter``, and
    increments it before every request.
    """

    def __init__(
        self,
        url: str,
        client_id: int,
        key: bytes,
        *,
        counter: int = 0,
        policy: Optional[CredentialPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._url = url
        self._client_id = client_id
        self._key = key
        self._counter = counter
        self._policy = policy or CredentialPolicy()
        self._session = session
        self._timeout = timeout

    @property
    def counter(self) -> int:
        return self._counter

    async def send(self, command: str) -> AdminResponse:
        self._counter += 1
        fields = sign_request(
            self._client_id,
            command,
            self._key,
            counter=self._counter,
            policy=self._policy,
        )

        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self._timeout)
        )
        try:
            async with session.post(self._url, data=fields) as response:
                text = (await response.text()).strip()
                status = response.status
        except aiohttp.ClientError as exc:
            raise AdminClientError(f"Request to {self._url} failed: {exc}") from exc
        finally:
            if owns_session:
                await session.close()

        if text.startswith("Error:"):
            raise AdminClientError(text[len("Error:"):].strip(), status=status)
        if status != 200:
            raise AdminClientError(f"Unexpected response {status}: {text}", status=status)

        LOGGER.debug("Command %s accepted (counter=%s)", command, self._counter)
        return AdminResponse(status=status, text=text)
