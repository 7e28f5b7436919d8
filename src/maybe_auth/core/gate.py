"""Authenticated request gate for the Maybe REST API.

Every outbound API call goes through :meth:`RequestGate.call`:

1. if the call requires auth, ask the session for a fresh token (which may
   refresh it) and refuse to dispatch without one;
2. attach ``Authorization: Bearer <token>``;
3. decode 2xx bodies, or turn the response into a typed
   :class:`~maybe_auth.core.errors.AuthError`.

The gate never retries.  :class:`~maybe_auth.core.errors.NetworkError` and
:class:`~maybe_auth.core.errors.RateLimited` are flagged ``retryable`` so
callers can decide.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, TypeVar, overload

import httpx

from maybe_auth.core.errors import NetworkError, NotAuthenticated, ServerError, error_for_response
from maybe_auth.core.session import SessionManager

_LOG = logging.getLogger("maybe-auth.core.gate")

T = TypeVar("T")


class RequestGate:
    """Dispatches API requests on behalf of the current session."""

    def __init__(
        self,
        session: SessionManager,
        http: httpx.AsyncClient,
        *,
        base_url: str,
        timeout: float = 30.0,
    ) -> None:
        self._session = session
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    @overload
    async def call(
        self,
        method: str,
        path: str,
        *,
        json: Any = ...,
        params: Mapping[str, Any] | None = ...,
        requires_auth: bool = ...,
        decode: None = ...,
    ) -> Any: ...

    @overload
    async def call(
        self,
        method: str,
        path: str,
        *,
        json: Any = ...,
        params: Mapping[str, Any] | None = ...,
        requires_auth: bool = ...,
        decode: Callable[[Any], T],
    ) -> T: ...

    async def call(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        requires_auth: bool = True,
        decode: Callable[[Any], Any] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Parameters
        ----------
        method, path:
            HTTP verb and path relative to the API base URL.
        json, params:
            Optional JSON body and query parameters.
        requires_auth:
            When *True* (default) the call is refused with
            :class:`NotAuthenticated` unless a token is available.
        decode:
            Optional callable applied to the decoded JSON.
        """
        headers = {"Accept": "application/json"}
        if requires_auth:
            token = await self._session.ensure_fresh_token()
            if not token:
                raise NotAuthenticated()
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            resp = await self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TransportError as exc:
            _LOG.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(exc) from exc

        if not resp.is_success:
            error = error_for_response(resp)
            _LOG.info("%s %s -> %s (%s)", method, path, resp.status_code, error.code)
            raise error

        _LOG.debug("%s %s -> %s", method, path, resp.status_code)
        if resp.status_code == 204 or not resp.content:
            data: Any = None
        else:
            try:
                data = resp.json()
            except ValueError as exc:
                raise ServerError("Invalid response from server.", status=resp.status_code) from exc
        return decode(data) if decode is not None else data
