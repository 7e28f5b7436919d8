"""Exception types raised by the auth core, and HTTP response classification.

Only lightweight, **data-carrying** exceptions live here so that UI or CLI
layers can turn them into user-friendly messages.  ``str(exc)`` is always the
user-facing message; ``to_payload()`` is JSON-serialisable and free of
secrets.

The Maybe API reports most failures as ``{"error": "<message>"}``.  Newer
deployments may add a machine-readable ``code``; :func:`classify_response`
prefers that field and falls back to matching the literal messages below.
Message matching must stay confined to this module.
"""

from __future__ import annotations

from typing import Any, Final, Mapping, Sequence

import httpx

# Literal messages emitted by the authority (pinned by unit tests).
DEVICE_INFO_MARKER: Final[str] = "Device information"
INVALID_CREDENTIALS_MARKER: Final[str] = "Invalid email or password"


class AuthError(RuntimeError):
    """Base class for every error surfaced by the auth core."""

    code: str = "auth_error"
    default_message: str = "Authentication failed."
    retryable: bool = False

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.code, "message": str(self), "retryable": self.retryable}


class NotAuthenticated(AuthError):
    code = "not_authenticated"
    default_message = "Not authenticated. Please log in."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class MfaRequired(AuthError):
    """Signals a state transition, not a user-visible failure."""

    code = "mfa_required"
    default_message = "Two-factor authentication required"


class DeviceInfoRequired(AuthError):
    code = "device_info_required"
    default_message = "Device information is required"


class TokenExpired(AuthError):
    code = "token_expired"
    default_message = "Your session has expired"


class BadRequest(AuthError):
    code = "bad_request"
    default_message = "Bad request"


class Forbidden(AuthError):
    code = "forbidden"
    default_message = "Forbidden"


class ValidationFailed(AuthError):
    code = "validation_failed"
    default_message = "Validation failed"

    def __init__(self, messages: Sequence[str]) -> None:
        self.messages: list[str] = [str(m) for m in messages]
        super().__init__("\n".join(self.messages) or None)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["messages"] = list(self.messages)
        return payload


class RateLimited(AuthError):
    code = "rate_limited"
    default_message = "Rate limit exceeded. Please try again later."
    retryable = True


class ServerError(AuthError):
    code = "server_error"
    default_message = "Server error"

    def __init__(self, message: str | None = None, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status"] = self.status
        return payload


class NetworkError(AuthError):
    """Transport-level failure (DNS, timeout, connection reset)."""

    code = "network_error"
    retryable = True

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Network error: {cause}")
        self.cause = cause


class InvalidCallback(AuthError):
    code = "invalid_callback"
    default_message = "The authorization callback was invalid."


class UserCancelled(AuthError):
    code = "user_cancelled"
    default_message = "Sign-in was cancelled."


# --------------------------------------------------------------------------- #
# Response classification                                                     #
# --------------------------------------------------------------------------- #
def parse_error_body(response: httpx.Response) -> Mapping[str, Any]:
    """Return the JSON object in *response* or an empty mapping."""
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, Mapping) else {}


def _error_message(body: Mapping[str, Any]) -> str | None:
    message = body.get("error")
    if isinstance(message, str) and message:
        return message
    message = body.get("message")
    return message if isinstance(message, str) and message else None


def classify_response(status: int, body: Mapping[str, Any] | None) -> AuthError:
    """Map a non-2xx *status* and its decoded *body* to an :class:`AuthError`."""
    body = body or {}
    code = body.get("code")
    message = _error_message(body)

    if status == 400:
        if code == DeviceInfoRequired.code or (message and DEVICE_INFO_MARKER in message):
            return DeviceInfoRequired()
        return BadRequest(message)

    if status == 401:
        if body.get("mfa_required") is True or code == MfaRequired.code:
            return MfaRequired()
        if code == InvalidCredentials.code or (
            message and INVALID_CREDENTIALS_MARKER in message
        ):
            return InvalidCredentials()
        return TokenExpired()

    if status == 403:
        return Forbidden(message)

    if status == 422:
        errors = body.get("errors")
        if isinstance(errors, list):
            return ValidationFailed(errors)
        return ServerError("Validation failed", status=status)

    if status == 429:
        return RateLimited()

    return ServerError(message or f"HTTP {status}", status=status)


def error_for_response(response: httpx.Response) -> AuthError:
    """Classify an ``httpx`` response that was not successful."""
    return classify_response(response.status_code, parse_error_body(response))
