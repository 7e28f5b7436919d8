"""External user-agent collaborators for the interactive authorization step.

The orchestrator only knows the :class:`UserAgent` protocol: present the
authorization URL to the user, then resolve with the redirect URL the
authority sent the browser to.  Cancellation by the user (or timeout) raises
:class:`~maybe_auth.core.errors.UserCancelled`.

:class:`BrowserUserAgent` opens the system browser and waits for the redirect
to be *delivered* to it, typically by the Starlette callback route in
:mod:`maybe_auth.servers.callback`.  :class:`LoopbackUserAgent` additionally
serves a one-shot HTTP listener on the loopback interface for desktop and
CLI use, where ``redirect_uri`` is ``http://127.0.0.1:<port>/<path>``.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Callable, Final, Protocol, runtime_checkable
from urllib.parse import urlparse

from maybe_auth.core.errors import UserCancelled

_LOG = logging.getLogger("maybe-auth.core.user_agent")

_LOOPBACK_HOSTS: Final[tuple[str, ...]] = ("127.0.0.1", "localhost", "::1")

_PAGE_OK: Final[bytes] = (
    b"<!doctype html><html lang='en'><head><meta charset='utf-8'>"
    b"<title>Signed in</title></head><body><h1>Signed in</h1>"
    b"<p>You may close this window.</p></body></html>"
)
_PAGE_UNEXPECTED: Final[bytes] = (
    b"<!doctype html><html lang='en'><head><meta charset='utf-8'>"
    b"<title>No sign-in pending</title></head><body><h1>No sign-in pending</h1>"
    b"</body></html>"
)


@runtime_checkable
class UserAgent(Protocol):
    """Present *url* to the user and return the redirect URL."""

    async def authorize(self, url: str, redirect_uri: str) -> str: ...


class BrowserUserAgent(UserAgent):
    """Open the authorization URL in a browser and await the redirect."""

    def __init__(
        self,
        *,
        opener: Callable[[str], bool] = webbrowser.open,
        timeout: float = 300.0,
    ) -> None:
        self._opener = opener
        self._timeout = timeout
        self._future: asyncio.Future[str] | None = None
        self._redirect_uri: str | None = None

    @property
    def pending(self) -> bool:
        return self._future is not None and not self._future.done()

    async def authorize(self, url: str, redirect_uri: str) -> str:
        if self.pending:
            # one continuation at a time; the newer flow wins
            self.cancel()
        future: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._future = future
        self._redirect_uri = redirect_uri
        try:
            try:
                opened = self._opener(url)
            except webbrowser.Error as exc:
                _LOG.warning("Could not launch a browser: %s", exc)
                opened = False
            if not opened:
                _LOG.warning("Browser did not open; the sign-in URL must be opened manually")
            try:
                return await asyncio.wait_for(future, timeout=self._timeout)
            except asyncio.TimeoutError:
                raise UserCancelled("Sign-in timed out.") from None
        finally:
            if self._future is future:
                self._future = None
                self._redirect_uri = None

    def deliver(self, redirect_url: str) -> bool:
        """Resolve the pending flow with *redirect_url*.

        Returns *False* when no flow is waiting or the URL does not belong to
        the expected redirect URI.
        """
        future = self._future
        if future is None or future.done():
            _LOG.info("Ignoring redirect: no authorization pending")
            return False
        if self._redirect_uri and not _same_endpoint(redirect_url, self._redirect_uri):
            _LOG.info("Ignoring request for a path other than the redirect URI")
            return False
        future.set_result(redirect_url)
        return True

    def cancel(self) -> bool:
        """Resolve the pending flow with :class:`UserCancelled`."""
        future = self._future
        if future is None or future.done():
            return False
        future.set_exception(UserCancelled())
        return True


def _same_endpoint(url: str, expected: str) -> bool:
    got, want = urlparse(url), urlparse(expected)
    return (got.scheme, got.netloc, got.path.rstrip("/")) == (
        want.scheme,
        want.netloc,
        want.path.rstrip("/"),
    )


class LoopbackUserAgent(BrowserUserAgent):
    """Browser flow whose redirect lands on a short-lived local listener."""

    async def authorize(self, url: str, redirect_uri: str) -> str:
        parsed = urlparse(redirect_uri)
        if parsed.scheme != "http" or parsed.hostname not in _LOOPBACK_HOSTS or not parsed.port:
            raise ValueError("loopback redirect_uri must be http://127.0.0.1:<port>/...")
        base = f"{parsed.scheme}://{parsed.netloc}"

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            try:
                request_line = (await reader.readline()).decode("latin-1").strip()
                while (await reader.readline()) not in (b"\r\n", b"\n", b""):
                    pass
                parts = request_line.split(" ")
                target = parts[1] if len(parts) >= 2 else "/"
                accepted = parts[0] == "GET" and self.deliver(base + target)
                status = b"200 OK" if accepted else b"404 Not Found"
                body = _PAGE_OK if accepted else _PAGE_UNEXPECTED
                writer.write(
                    b"HTTP/1.1 " + status + b"\r\nContent-Type: text/html; charset=utf-8\r\n"
                    b"Content-Length: " + str(len(body)).encode() + b"\r\n"
                    b"Connection: close\r\n\r\n" + body
                )
                await writer.drain()
            except (ConnectionError, asyncio.IncompleteReadError) as exc:
                _LOG.debug("Loopback connection dropped: %s", exc)
            finally:
                writer.close()

        server = await asyncio.start_server(handle, parsed.hostname, parsed.port)
        _LOG.debug("Loopback listener on %s:%s", parsed.hostname, parsed.port)
        try:
            return await super().authorize(url, redirect_uri)
        finally:
            server.close()
            await server.wait_closed()
