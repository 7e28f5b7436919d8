"""OAuth redirect endpoint for hosts that already run an ASGI server.

The handler is intentionally thin:

1. Reconstruct the full redirect URL from the incoming request.
2. Hand it to the waiting :class:`~maybe_auth.core.user_agent.BrowserUserAgent`.
3. Return a tiny HTML page.

Code exchange, state verification and persistence happen in the core once
the pending interactive login resumes.

SECURITY NOTE
-------------
The query string carries the authorization code and state; neither is
logged.
"""

from __future__ import annotations

import logging

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from maybe_auth.core.user_agent import BrowserUserAgent

_LOG = logging.getLogger("maybe-auth.servers.callback")


def _html_page(title: str, body: str, status: int = 200) -> HTMLResponse:
    """Return a tiny success / error HTML page."""
    content = (
        "<!doctype html><html lang='en'>"
        "<head><meta charset='utf-8'><title>"
        f"{title}</title></head><body><h1>{title}</h1><p>{body}</p></body></html>"
    )
    return HTMLResponse(content, status_code=status)


def build_callback_routes(
    agent: BrowserUserAgent, *, path: str = "/oauth/callback"
) -> list[Route]:
    """Return the routes that feed redirects into *agent*."""

    async def _oauth_callback(request: Request) -> Response:  # noqa: D401
        if not agent.pending:
            _LOG.info("Redirect received with no sign-in pending")
            return _html_page("No sign-in pending", "Start the sign-in again from the app.", 409)

        if request.query_params.get("error") == "access_denied":
            agent.cancel()
            return _html_page("Sign-in cancelled", "You may close this window.")

        if not agent.deliver(str(request.url)):
            return _html_page("Unexpected redirect", "This address is not awaited.", 400)

        _LOG.info("Redirect delivered to pending sign-in")
        return _html_page("Sign-in received", "You may close this window.")

    async def _cancel(request: Request) -> Response:  # noqa: D401
        cancelled = agent.cancel()
        return Response(status_code=204 if cancelled else 409)

    return [
        Route(path, _oauth_callback, methods=["GET"]),
        Route(f"{path.rstrip('/')}/cancel", _cancel, methods=["POST"]),
    ]


def build_callback_app(
    agent: BrowserUserAgent, *, path: str = "/oauth/callback"
) -> Starlette:
    """Standalone Starlette app exposing :func:`build_callback_routes`."""
    return Starlette(routes=build_callback_routes(agent, path=path))
