"""Rejection taxonomy for administrative requests.

Every error is terminal for the request that raised it. ``message`` is the
human readable text sent back to the device after ``Error: ``; ``code`` is a
stable identifier used in logs and tests.
"""

from __future__ import annotations

from typing import Optional

GENERIC_REJECTION_MESSAGE = "Request rejected"


class AdminRequestError(Exception):
    """Base class for all request rejections."""

    code = "rejected"
    message = GENERIC_REJECTION_MESSAGE
    http_status = 403

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or type(self).message
        super().__init__(self.message)


class MissingParameter(AdminRequestError):
    code = "missing_parameter"
    message = "Missing required parameter"
    http_status = 400

    def __init__(self, field: Optional[str] = None) -> None:
        super().__init__()
        self.field = field


class InvalidFormat(AdminRequestError):
    code = "invalid_format"
    http_status = 400

    _MESSAGES = {
        "client_id": "Client ID not decimal format",
        "counter": "Counter not in decimal format",
        "timestamp": "Timestamp not decimal format",
        "nonce": "Nonce not alphanumeric",
    }

    def __init__(self, field: str) -> None:
        super().__init__(self._MESSAGES.get(field, f"Invalid {field}"))
        self.field = field


class UnknownCommand(AdminRequestError):
    code = "unknown_command"
    message = "Invalid command"
    http_status = 400


class BadTimestamp(AdminRequestError):
    code = "bad_timestamp"
    message = "Bad timestamp. Check the clock of your device is accurate."


class UnauthorizedClient(AdminRequestError):
    code = "unauthorized_client"
    message = "Client not authorised"


class ReplayedCounter(AdminRequestError):
    code = "replayed_counter"
    message = "Bad counter. This is not the most recent request from the client device."


class NoSharedKey(AdminRequestError):
    code = "no_shared_key"
    message = "No preshared key"


class MacMismatch(AdminRequestError):
    code = "mac_mismatch"
    message = (
        "Bad HMAC. Failed to confirm authenticity and integrity of message. Discarding."
    )


class SanityCheckFailed(AdminRequestError):
    code = "sanity_check_failed"
    message = "Sanity check failed, request not authenticated."


class CommandExecutionError(AdminRequestError):
    """Raised when an authenticated command cannot be carried out."""

    code = "command_failed"
    message = "Command failed"
    http_status = 500

    def __init__(self, message: Optional[str] = None, *, command: Optional[str] = None) -> None:
        super().__init__(message)
        self.command = command
