"""Unit tests for AuthOrchestrator against a mocked authority.

Coverage:
* Authorization URL carries every PKCE/state parameter
* Code exchange posts the matching verifier
* Callback validation (missing code, state mismatch, denial)
* One interactive flow at a time (supersede + cancel)
* Password grant outcomes (success, MFA, failure, network)
* Refresh and best-effort revocation
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import Callable
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
import pytest

from maybe_auth.config import AuthConfig
from maybe_auth.core.errors import (
    InvalidCallback,
    InvalidCredentials,
    NetworkError,
    ServerError,
    TokenExpired,
    UserCancelled,
)
from maybe_auth.core.models import AuthFailure, AuthMfaRequired, AuthSuccess
from maybe_auth.core.orchestrator import AuthOrchestrator
from maybe_auth.core.pkce import code_challenge_s256
from maybe_auth.device import DeviceInfo

API = "https://api.maybe.test"
REDIRECT_URI = "maybeapp://oauth/callback"
NOW = 1_700_000_000

Handler = Callable[[httpx.Request], httpx.Response]


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #
def fake_clock() -> float:
    return float(NOW)


DEVICE = DeviceInfo(
    device_id="dev-1",
    device_name="test-host",
    device_type="linux",
    os_version="6.0",
    app_version="1.0.0",
)


class ScriptedUserAgent:
    """User agent that answers with ``respond(url)`` instead of a browser."""

    def __init__(self, respond: Callable[[str], str]) -> None:
        self.respond = respond
        self.urls: list[str] = []

    async def authorize(self, url: str, redirect_uri: str) -> str:
        self.urls.append(url)
        return self.respond(url)


class HangingUserAgent:
    """User agent that never completes on its own."""

    def __init__(self) -> None:
        self.started = asyncio.Event()

    async def authorize(self, url: str, redirect_uri: str) -> str:
        self.started.set()
        await asyncio.Event().wait()
        raise AssertionError("unreachable")


def echo_redirect(**extra: str) -> Callable[[str], str]:
    """Return a responder that echoes the URL's state back with *extra*."""

    def respond(url: str) -> str:
        state = parse_qs(urlparse(url).query)["state"][0]
        params = {"state": state, **extra}
        return f"{REDIRECT_URI}?{urlencode(params)}"

    return respond


def _config(**overrides) -> AuthConfig:
    values = dict(api_base_url=API, client_id="client-1", redirect_uri=REDIRECT_URI)
    values.update(overrides)
    return AuthConfig(**values)


def _orchestrator(handler: Handler, *, user_agent=None, **config) -> AuthOrchestrator:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AuthOrchestrator(_config(**config), http, user_agent=user_agent, clock=fake_clock)


def _token_body(**extra) -> dict:
    body = {
        "access_token": "access-xyz",
        "refresh_token": "refresh-xyz",
        "token_type": "Bearer",
        "expires_in": 3600,
        "created_at": NOW,
    }
    body.update(extra)
    return body


def _form(request: httpx.Request) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise AssertionError(f"unexpected request {request.method} {request.url}")


# --------------------------------------------------------------------------- #
# Interactive Authorization-Code + PKCE                                       #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_interactive_login_exchanges_code_with_verifier() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json=_token_body())

    agent = ScriptedUserAgent(echo_redirect(code="the-code"))
    orch = _orchestrator(handler, user_agent=agent)

    tokens = await orch.begin_interactive_login(["read", "write"])

    assert tokens.access_token == "access-xyz"
    assert tokens.expires_at == NOW + 3600

    url = urlparse(agent.urls[0])
    assert f"{url.scheme}://{url.netloc}{url.path}" == f"{API}/oauth/authorize"
    query = {k: v[0] for k, v in parse_qs(url.query).items()}
    assert query["client_id"] == "client-1"
    assert query["redirect_uri"] == REDIRECT_URI
    assert query["response_type"] == "code"
    assert query["scope"] == "read write"
    assert query["code_challenge_method"] == "S256"
    assert len(query["state"]) >= 16

    (request,) = captured
    assert str(request.url) == f"{API}/oauth/token"
    form = _form(request)
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "the-code"
    assert form["client_id"] == "client-1"
    assert form["redirect_uri"] == REDIRECT_URI
    assert code_challenge_s256(form["code_verifier"]) == query["code_challenge"]
    assert not orch.interactive_pending


@pytest.mark.anyio
async def test_interactive_login_uses_configured_scopes_by_default() -> None:
    agent = ScriptedUserAgent(echo_redirect(code="c"))
    orch = _orchestrator(
        lambda r: httpx.Response(200, json=_token_body()), user_agent=agent, scope="read write"
    )
    await orch.begin_interactive_login()
    assert parse_qs(urlparse(agent.urls[0]).query)["scope"] == ["read write"]


@pytest.mark.anyio
async def test_missing_code_is_invalid_callback() -> None:
    orch = _orchestrator(_unreachable, user_agent=ScriptedUserAgent(echo_redirect()))
    with pytest.raises(InvalidCallback):
        await orch.begin_interactive_login()


@pytest.mark.anyio
async def test_state_mismatch_is_invalid_callback() -> None:
    agent = ScriptedUserAgent(lambda url: f"{REDIRECT_URI}?code=c&state=forged")
    orch = _orchestrator(_unreachable, user_agent=agent)
    with pytest.raises(InvalidCallback, match="state"):
        await orch.begin_interactive_login()


@pytest.mark.anyio
async def test_non_ascii_state_is_invalid_callback() -> None:
    agent = ScriptedUserAgent(lambda url: f"{REDIRECT_URI}?code=abc&state=%C3%A9")
    orch = _orchestrator(_unreachable, user_agent=agent)
    with pytest.raises(InvalidCallback, match="state"):
        await orch.begin_interactive_login()
    assert not orch.interactive_pending


@pytest.mark.anyio
async def test_access_denied_is_user_cancelled() -> None:
    agent = ScriptedUserAgent(echo_redirect(error="access_denied"))
    orch = _orchestrator(_unreachable, user_agent=agent)
    with pytest.raises(UserCancelled):
        await orch.begin_interactive_login()


@pytest.mark.anyio
async def test_other_redirect_error_is_server_error() -> None:
    agent = ScriptedUserAgent(
        echo_redirect(error="invalid_scope", error_description="Unknown scope")
    )
    orch = _orchestrator(_unreachable, user_agent=agent)
    with pytest.raises(ServerError, match="Unknown scope"):
        await orch.begin_interactive_login()


@pytest.mark.anyio
async def test_user_agent_transport_failure_is_network_error() -> None:
    def respond(url: str) -> str:
        raise ConnectionResetError("listener died")

    orch = _orchestrator(_unreachable, user_agent=ScriptedUserAgent(respond))
    with pytest.raises(NetworkError):
        await orch.begin_interactive_login()


@pytest.mark.anyio
async def test_token_endpoint_failure_is_server_error() -> None:
    agent = ScriptedUserAgent(echo_redirect(code="c"))
    orch = _orchestrator(
        lambda r: httpx.Response(400, json={"error": "invalid_grant"}), user_agent=agent
    )
    with pytest.raises(ServerError, match="invalid_grant") as excinfo:
        await orch.begin_interactive_login()
    assert excinfo.value.status == 400


@pytest.mark.anyio
async def test_second_flow_supersedes_first() -> None:
    agent = HangingUserAgent()
    orch = _orchestrator(_unreachable, user_agent=agent)

    first = asyncio.ensure_future(orch.begin_interactive_login())
    await agent.started.wait()
    assert orch.interactive_pending

    agent.started.clear()
    second = asyncio.ensure_future(orch.begin_interactive_login())
    with pytest.raises(UserCancelled):
        await first

    await agent.started.wait()
    assert orch.cancel_interactive_login() is True
    with pytest.raises(UserCancelled):
        await second
    assert not orch.interactive_pending
    assert orch.cancel_interactive_login() is False


@pytest.mark.anyio
async def test_interactive_login_requires_user_agent() -> None:
    with pytest.raises(ValueError):
        await _orchestrator(_unreachable).begin_interactive_login()


def test_authorization_url_requires_client_id() -> None:
    from maybe_auth.core.pkce import new_authorization_request

    orch = _orchestrator(_unreachable, client_id=None)
    with pytest.raises(ValueError, match="MAYBE_OAUTH_CLIENT_ID"):
        orch.build_authorization_url(new_authorization_request(["read"], REDIRECT_URI))


# --------------------------------------------------------------------------- #
# Password grant                                                              #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_password_login_success() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        body = _token_body(
            user={"id": "u1", "email": "a@b.com", "first_name": "A", "last_name": "B"}
        )
        return httpx.Response(200, json=body)

    orch = _orchestrator(handler)
    result = await orch.password_login("a@b.com", "Abcd1234!", DEVICE, otp_code="123456")

    assert isinstance(result, AuthSuccess)
    assert result.tokens.access_token == "access-xyz"
    assert result.user.email == "a@b.com"

    (request,) = captured
    assert str(request.url) == f"{API}/auth/login"
    sent = json.loads(request.content)
    assert sent == {
        "email": "a@b.com",
        "password": "Abcd1234!",
        "otp_code": "123456",
        "device": DEVICE.to_dict(),
    }


@pytest.mark.anyio
async def test_password_login_mfa_required() -> None:
    orch = _orchestrator(lambda r: httpx.Response(401, json={"mfa_required": True}))
    result = await orch.password_login("a@b.com", "pw", DEVICE)
    assert isinstance(result, AuthMfaRequired)


@pytest.mark.anyio
async def test_password_grant_logs_masked_device_id(caplog: pytest.LogCaptureFixture) -> None:
    device = dataclasses.replace(DEVICE, device_id="0123456789abcdef")
    orch = _orchestrator(lambda r: httpx.Response(401, json={"mfa_required": True}))
    with caplog.at_level(logging.INFO, logger="maybe-auth.core.orchestrator"):
        await orch.password_login("a@b.com", "pw", device)

    (record,) = caplog.records
    assert record.device_id == "01234567****"
    assert record.grant_type == "password"


@pytest.mark.anyio
async def test_password_login_invalid_credentials() -> None:
    orch = _orchestrator(
        lambda r: httpx.Response(401, json={"error": "Invalid email or password"})
    )
    result = await orch.password_login("a@b.com", "pw", DEVICE)
    assert isinstance(result, AuthFailure)
    assert isinstance(result.error, InvalidCredentials)


@pytest.mark.anyio
async def test_password_login_network_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _orchestrator(handler).password_login("a@b.com", "pw", DEVICE)
    assert isinstance(result, AuthFailure)
    assert isinstance(result.error, NetworkError)


@pytest.mark.anyio
async def test_password_login_unreadable_body() -> None:
    orch = _orchestrator(lambda r: httpx.Response(200, json=_token_body()))  # no user
    result = await orch.password_login("a@b.com", "pw", DEVICE)
    assert isinstance(result, AuthFailure)
    assert str(result.error) == "Invalid response from server."


@pytest.mark.anyio
async def test_signup_wire_format() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        body = _token_body(
            user={"id": "u1", "email": "a@b.com", "first_name": "A", "last_name": "B"}
        )
        return httpx.Response(201, json=body)

    result = await _orchestrator(handler).signup("a@b.com", "Abcd1234!", "A", "B", DEVICE)

    assert isinstance(result, AuthSuccess)
    (request,) = captured
    assert str(request.url) == f"{API}/auth/signup"
    assert json.loads(request.content) == {
        "user": {
            "email": "a@b.com",
            "password": "Abcd1234!",
            "first_name": "A",
            "last_name": "B",
        },
        "device": DEVICE.to_dict(),
    }


# --------------------------------------------------------------------------- #
# Refresh & revoke                                                            #
# --------------------------------------------------------------------------- #
@pytest.mark.anyio
async def test_refresh_keeps_old_refresh_token_when_not_rotated() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"access_token": "new", "expires_in": 60})

    tokens = await _orchestrator(handler).refresh("old-refresh", DEVICE)

    assert tokens.access_token == "new"
    assert tokens.refresh_token == "old-refresh"
    assert tokens.issued_at == NOW
    assert json.loads(captured[0].content) == {
        "refresh_token": "old-refresh",
        "device": DEVICE.to_dict(),
    }
    assert str(captured[0].url) == f"{API}/auth/refresh"


@pytest.mark.anyio
async def test_refresh_uses_rotated_token() -> None:
    orch = _orchestrator(lambda r: httpx.Response(200, json=_token_body(refresh_token="r2")))
    assert (await orch.refresh("r1", DEVICE)).refresh_token == "r2"


@pytest.mark.anyio
async def test_refresh_failure_raises() -> None:
    orch = _orchestrator(lambda r: httpx.Response(401, json={"error": "revoked"}))
    with pytest.raises(TokenExpired):
        await orch.refresh("r1", DEVICE)


@pytest.mark.anyio
async def test_revoke_posts_token() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200)

    await _orchestrator(handler).revoke("access-xyz")
    (request,) = captured
    assert str(request.url) == f"{API}/oauth/revoke"
    assert _form(request) == {"token": "access-xyz", "client_id": "client-1"}


@pytest.mark.anyio
async def test_revoke_never_raises() -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    await _orchestrator(refused).revoke("t")
    await _orchestrator(lambda r: httpx.Response(500)).revoke("t")
    await _orchestrator(_unreachable, client_id=None).revoke("t")
