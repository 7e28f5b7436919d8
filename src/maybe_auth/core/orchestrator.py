"""AuthOrchestrator – talks to the Maybe authority.

Drives every token-producing exchange:

* the interactive Authorization-Code + PKCE flow (browser hand-off through a
  :class:`~maybe_auth.core.user_agent.UserAgent`),
* password login (with optional one-time code) and signup,
* refresh-token exchange and best-effort revocation.

The orchestrator holds no session state apart from the single pending
interactive flow; persistence and state transitions belong to
:class:`~maybe_auth.core.session.SessionManager`.

**No secrets are logged** – access/refresh tokens, verifiers, state values,
authorization codes and passwords never reach a log record.
"""

from __future__ import annotations

import asyncio
import dataclasses
import hmac
import logging
import uuid
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from maybe_auth.config import AuthConfig
from maybe_auth.core.clock import Clock, default_clock
from maybe_auth.core.errors import (
    AuthError,
    InvalidCallback,
    MfaRequired,
    NetworkError,
    ServerError,
    UserCancelled,
    error_for_response,
    parse_error_body,
)
from maybe_auth.core.log_utils import get_auth_logger
from maybe_auth.core.models import (
    AuthFailure,
    AuthMfaRequired,
    AuthorizationRequest,
    AuthResult,
    AuthSuccess,
    TokenPair,
    UserProfile,
)
from maybe_auth.core.pkce import new_authorization_request
from maybe_auth.core.user_agent import UserAgent
from maybe_auth.device import DeviceInfo
from maybe_auth.utils.logging import mask_sensitive

_LOG = logging.getLogger("maybe-auth.core.orchestrator")

_FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
_JSON_HEADERS = {"Content-Type": "application/json", "Accept": "application/json"}


def _first(params: Mapping[str, list[str]], name: str) -> str | None:
    values = params.get(name)
    return values[0] if values else None


class AuthOrchestrator:
    """Application service for the authority's auth endpoints."""

    def __init__(
        self,
        config: AuthConfig,
        http: httpx.AsyncClient,
        *,
        user_agent: UserAgent | None = None,
        clock: Clock = default_clock,
    ) -> None:
        self.config = config
        self._http = http
        self._user_agent = user_agent
        self._clock = clock
        self._pending: asyncio.Task[str] | None = None

    # ------------------------------------------------------------------ #
    # Interactive Authorization-Code + PKCE                              #
    # ------------------------------------------------------------------ #
    @property
    def interactive_pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def build_authorization_url(self, request: AuthorizationRequest) -> str:
        """Return the authorize URL carrying the PKCE challenge and state."""
        query_params: dict[str, str] = {
            "client_id": self.config.require_client_id(),
            "redirect_uri": request.redirect_uri,
            "response_type": "code",
            "scope": request.scope,
            "code_challenge": request.code_challenge,
            "code_challenge_method": "S256",
            "state": request.state,
        }
        return f"{self.config.authorization_endpoint}?{urlencode(query_params)}"

    async def begin_interactive_login(
        self, scopes: Iterable[str] | None = None
    ) -> TokenPair:
        """Run the browser flow and exchange the returned code for tokens.

        A second call while one is outstanding supersedes it; the earlier
        caller receives :class:`UserCancelled`.
        """
        if self._user_agent is None:
            raise ValueError("no user agent configured for interactive login")

        request = new_authorization_request(
            scopes or self.config.scopes, self.config.redirect_uri
        )
        url = self.build_authorization_url(request)
        log = get_auth_logger(
            base_logger_name=_LOG.name,
            flow_id=uuid.uuid4().hex,
            grant_type="authorization_code",
        )

        previous = self._pending
        if previous is not None and not previous.done():
            log.info("Superseding pending interactive login")
            previous.cancel()

        task = asyncio.ensure_future(self._user_agent.authorize(url, request.redirect_uri))
        self._pending = task
        log.info("Interactive login started scopes=%s", request.scope)
        try:
            # wait() leaves *task* alone if we are cancelled ourselves
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._pending is task:
                self._pending = None

        if task.cancelled():
            log.info("Interactive login superseded or cancelled")
            raise UserCancelled()
        try:
            redirect_url = task.result()
        except OSError as exc:
            raise NetworkError(exc) from exc

        code = self._code_from_redirect(redirect_url, request)
        tokens = await self.exchange_code(code, request)
        log.info("Interactive login completed (expires in %ss)", tokens.expires_in)
        return tokens

    def cancel_interactive_login(self) -> bool:
        """Cancel the outstanding interactive flow, if any."""
        task = self._pending
        if task is None or task.done():
            return False
        task.cancel()
        return True

    @staticmethod
    def _code_from_redirect(redirect_url: str, request: AuthorizationRequest) -> str:
        params = parse_qs(urlparse(redirect_url).query)

        error = _first(params, "error")
        if error == "access_denied":
            raise UserCancelled()
        if error:
            raise ServerError(_first(params, "error_description") or error)

        code = _first(params, "code")
        if not code:
            raise InvalidCallback()
        state = _first(params, "state") or ""
        # bytes: compare_digest rejects non-ASCII str
        if not hmac.compare_digest(state.encode("utf-8"), request.state.encode("utf-8")):
            raise InvalidCallback("The authorization callback state did not match.")
        return code

    async def exchange_code(self, code: str, request: AuthorizationRequest) -> TokenPair:
        """Exchange an authorization *code* at the token endpoint."""
        payload = {
            "grant_type": "authorization_code",
            "client_id": self.config.require_client_id(),
            "code": code,
            "redirect_uri": request.redirect_uri,
            "code_verifier": request.code_verifier,
        }
        resp = await self._send(
            "POST", self.config.token_endpoint, data=payload, headers=_FORM_HEADERS
        )
        if resp.status_code != 200:
            body = parse_error_body(resp)
            message = body.get("error") or f"HTTP {resp.status_code}"
            _LOG.warning("Token exchange failed status=%s", resp.status_code)
            raise ServerError(str(message), status=resp.status_code)
        return self._token_pair(resp)

    # ------------------------------------------------------------------ #
    # Password grant                                                     #
    # ------------------------------------------------------------------ #
    async def password_login(
        self,
        email: str,
        password: str,
        device: DeviceInfo,
        otp_code: str | None = None,
    ) -> AuthResult:
        """POST credentials to ``/auth/login``."""
        body: dict[str, Any] = {
            "email": email,
            "password": password,
            "device": device.to_dict(),
        }
        if otp_code:
            body["otp_code"] = otp_code
        return await self._password_grant("/auth/login", body, device)

    async def signup(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        device: DeviceInfo,
    ) -> AuthResult:
        """POST a new account to ``/auth/signup``."""
        body = {
            "user": {
                "email": email,
                "password": password,
                "first_name": first_name,
                "last_name": last_name,
            },
            "device": device.to_dict(),
        }
        return await self._password_grant("/auth/signup", body, device)

    async def _password_grant(
        self, path: str, body: Mapping[str, Any], device: DeviceInfo
    ) -> AuthResult:
        log = get_auth_logger(
            base_logger_name=_LOG.name,
            device_id=mask_sensitive(device.device_id, 8),
            grant_type="password",
        )
        try:
            resp = await self._send(
                "POST", self.config.api_base_url + path, json=body, headers=_JSON_HEADERS
            )
        except NetworkError as exc:
            log.warning("%s failed: %s", path, exc)
            return AuthFailure(exc)

        if not resp.is_success:
            error = error_for_response(resp)
            if isinstance(error, MfaRequired):
                log.info("%s requires a one-time code", path)
                return AuthMfaRequired()
            log.info("%s rejected status=%s error=%s", path, resp.status_code, error.code)
            return AuthFailure(error)

        try:
            data = resp.json()
            tokens = TokenPair.from_response(data, clock=self._clock)
            user = UserProfile.from_dict(data["user"])
        except (ValueError, KeyError, TypeError):
            log.warning("%s returned an unreadable body", path)
            return AuthFailure(ServerError("Invalid response from server.", status=resp.status_code))
        log.info("%s succeeded (expires in %ss)", path, tokens.expires_in)
        return AuthSuccess(tokens=tokens, user=user)

    # ------------------------------------------------------------------ #
    # Refresh & revoke                                                   #
    # ------------------------------------------------------------------ #
    async def refresh(self, refresh_token: str, device: DeviceInfo) -> TokenPair:
        """Exchange *refresh_token* for a new pair.

        Any non-success response raises; callers treat that as a logout.
        """
        resp = await self._send(
            "POST",
            self.config.api_base_url + "/auth/refresh",
            json={"refresh_token": refresh_token, "device": device.to_dict()},
            headers=_JSON_HEADERS,
        )
        if not resp.is_success:
            error = error_for_response(resp)
            _LOG.warning("Token refresh rejected status=%s error=%s", resp.status_code, error.code)
            raise error
        tokens = self._token_pair(resp)
        if tokens.refresh_token is None:
            tokens = dataclasses.replace(tokens, refresh_token=refresh_token)
        _LOG.info("Refreshed access token (expires in %ss)", tokens.expires_in)
        return tokens

    async def revoke(self, access_token: str) -> None:
        """Tell the authority to revoke *access_token*; never raises."""
        if not self.config.client_id:
            _LOG.debug("Skipping revocation: no OAuth client id configured")
            return
        try:
            resp = await self._send(
                "POST",
                self.config.revocation_endpoint,
                data={"token": access_token, "client_id": self.config.client_id},
                headers=_FORM_HEADERS,
            )
        except AuthError as exc:
            _LOG.info("Token revocation failed: %s", exc)
            return
        if not resp.is_success:
            _LOG.info("Token revocation returned status=%s", resp.status_code)

    # ------------------------------------------------------------------ #
    # internal helpers                                                   #
    # ------------------------------------------------------------------ #
    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(
                method, url, timeout=self.config.http_timeout, **kwargs
            )
        except httpx.TransportError as exc:
            raise NetworkError(exc) from exc

    def _token_pair(self, resp: httpx.Response) -> TokenPair:
        try:
            return TokenPair.from_response(resp.json(), clock=self._clock)
        except (ValueError, TypeError) as exc:
            raise ServerError("Invalid response from server.", status=resp.status_code) from exc
