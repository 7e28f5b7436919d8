"""Unit tests for error classification.

The message-matching branches are pinned to the literal strings the Maybe
API returns today.
"""

from __future__ import annotations

import httpx
import pytest

from maybe_auth.core.errors import (
    BadRequest,
    DeviceInfoRequired,
    Forbidden,
    InvalidCredentials,
    MfaRequired,
    NetworkError,
    RateLimited,
    ServerError,
    TokenExpired,
    ValidationFailed,
    classify_response,
    error_for_response,
)


# --------------------------------------------------------------------------- #
# Literal message sniffing                                                    #
# --------------------------------------------------------------------------- #
def test_device_information_message() -> None:
    err = classify_response(400, {"error": "Device information is required"})
    assert isinstance(err, DeviceInfoRequired)


def test_invalid_credentials_message() -> None:
    err = classify_response(401, {"error": "Invalid email or password"})
    assert isinstance(err, InvalidCredentials)
    assert str(err) == "Invalid email or password"


def test_mfa_flag() -> None:
    assert isinstance(classify_response(401, {"mfa_required": True}), MfaRequired)


def test_other_401_is_expired_session() -> None:
    err = classify_response(401, {"error": "Token revoked"})
    assert isinstance(err, TokenExpired)
    assert str(err) == "Your session has expired"


# --------------------------------------------------------------------------- #
# Structured codes                                                            #
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    ("status", "code", "expected"),
    [
        (400, "device_info_required", DeviceInfoRequired),
        (401, "invalid_credentials", InvalidCredentials),
        (401, "mfa_required", MfaRequired),
    ],
)
def test_structured_code_wins(status: int, code: str, expected: type) -> None:
    err = classify_response(status, {"code": code, "error": "something else"})
    assert isinstance(err, expected)


# --------------------------------------------------------------------------- #
# Status mapping                                                              #
# --------------------------------------------------------------------------- #
def test_plain_bad_request_keeps_message() -> None:
    err = classify_response(400, {"error": "Missing parameter"})
    assert isinstance(err, BadRequest)
    assert str(err) == "Missing parameter"


def test_forbidden() -> None:
    err = classify_response(403, {"error": "Not allowed"})
    assert isinstance(err, Forbidden)
    assert str(err) == "Not allowed"


def test_validation_errors_joined() -> None:
    err = classify_response(422, {"errors": ["Email taken", "Password too short"]})
    assert isinstance(err, ValidationFailed)
    assert err.messages == ["Email taken", "Password too short"]
    assert str(err) == "Email taken\nPassword too short"
    assert err.to_payload()["messages"] == ["Email taken", "Password too short"]


def test_validation_without_list() -> None:
    err = classify_response(422, {"error": "nope"})
    assert isinstance(err, ServerError)
    assert str(err) == "Validation failed"


def test_rate_limited_is_retryable() -> None:
    err = classify_response(429, None)
    assert isinstance(err, RateLimited)
    assert err.retryable


def test_other_status_is_server_error() -> None:
    err = classify_response(503, {})
    assert isinstance(err, ServerError)
    assert str(err) == "HTTP 503"
    assert err.status == 503
    assert not err.retryable

    err = classify_response(500, {"error": "boom"})
    assert str(err) == "boom"


def test_error_for_response_tolerates_non_json_body() -> None:
    resp = httpx.Response(502, content=b"<html>bad gateway</html>")
    err = error_for_response(resp)
    assert isinstance(err, ServerError)
    assert err.status == 502


def test_network_error_payload_has_no_cause_object() -> None:
    err = NetworkError(httpx.ConnectError("refused"))
    assert str(err) == "Network error: refused"
    assert err.to_payload() == {
        "error": "network_error",
        "message": "Network error: refused",
        "retryable": True,
    }
