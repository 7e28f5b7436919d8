"""SessionManager – owns the authentication state of the running client.

State machine
-------------
::

    Unauthenticated --login/signup success-------> Authenticated
    Unauthenticated --login answers "MFA required"--> MfaPending
    MfaPending      --login with otp success-------> Authenticated
    MfaPending      --login with otp, MFA again----> MfaPending
    MfaPending      --login with otp failure-------> Unauthenticated
    Authenticated   --refresh failure / logout-----> Unauthenticated
    Authenticated   --login failure / MFA required-> logout first, then as above

The manager is an explicit object injected into its consumers; nothing is
initialised on import.  Call :meth:`bootstrap` once at startup and
:meth:`shutdown` before the event loop stops.

The credential repository is the durable owner of the token pair and
profile; the in-memory state is a replica reloaded by :meth:`bootstrap`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable

from maybe_auth.core.clock import Clock, default_clock
from maybe_auth.core.errors import AuthError, TokenExpired, UserCancelled
from maybe_auth.core.models import (
    AuthFailure,
    AuthMfaRequired,
    AuthResult,
    AuthSuccess,
    Authenticated,
    MfaPending,
    SessionState,
    TokenPair,
    Unauthenticated,
    UserProfile,
)
from maybe_auth.core.orchestrator import AuthOrchestrator
from maybe_auth.core.store import CredentialRepository
from maybe_auth.device import DeviceInfoProvider
from maybe_auth.utils.logging import mask_sensitive

_LOG = logging.getLogger("maybe-auth.core.session")

Listener = Callable[[SessionState], None]


class SessionManager:
    """Facade over the orchestrator, credential repository and token state."""

    def __init__(
        self,
        orchestrator: AuthOrchestrator,
        repository: CredentialRepository,
        devices: DeviceInfoProvider,
        *,
        clock: Clock = default_clock,
    ) -> None:
        self._orchestrator = orchestrator
        self._repository = repository
        self._devices = devices
        self._clock = clock
        self._state: SessionState = Unauthenticated()
        self._refresh_task: asyncio.Task[TokenPair | None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._listeners: list[Listener] = []
        self.last_error: str | None = None

    # ------------------------------------------------------------------ #
    # Read side                                                          #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return isinstance(self._state, Authenticated)

    @property
    def is_mfa_required(self) -> bool:
        return isinstance(self._state, MfaPending)

    @property
    def current_user(self) -> UserProfile | None:
        return self._state.user if isinstance(self._state, Authenticated) else None

    def current_access_token(self) -> str | None:
        """Return the in-memory access token without any I/O."""
        if isinstance(self._state, Authenticated):
            return self._state.tokens.access_token
        return None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* on every state change; returns an unsubscribe hook."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    async def bootstrap(self) -> SessionState:
        """Load stored credentials and derive the initial state."""
        tokens = self._repository.load_tokens()
        if tokens is None:
            _LOG.info("No stored credentials")
            self._set_state(Unauthenticated())
            return self._state

        if tokens.is_expired(clock=self._clock):
            _LOG.info("Stored credentials expired; clearing them")
            self._repository.clear()
            self._set_state(Unauthenticated())
            return self._state

        self._set_state(Authenticated(tokens, self._repository.load_profile()))
        _LOG.info("Restored session (expires at %s)", tokens.expires_at)
        if tokens.needs_refresh(clock=self._clock):
            _LOG.info("Stored token is close to expiry; refreshing in background")
            self._spawn(self.ensure_fresh_token())
        return self._state

    async def shutdown(self) -> None:
        """Cancel background work (refresh, revocation, browser flow)."""
        self._orchestrator.cancel_interactive_login()
        tasks = list(self._background)
        if self._refresh_task is not None and not self._refresh_task.done():
            tasks.append(self._refresh_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_task = None

    # ------------------------------------------------------------------ #
    # Sign-in                                                            #
    # ------------------------------------------------------------------ #
    async def login(
        self, email: str, password: str, otp_code: str | None = None
    ) -> SessionState:
        """Password login; raises the typed :class:`AuthError` on failure."""
        self.last_error = None
        result = await self._orchestrator.password_login(
            email, password, self._devices.current(), otp_code
        )
        return await self._apply(result, email)

    async def signup(
        self, email: str, password: str, first_name: str, last_name: str
    ) -> SessionState:
        """Create an account and sign in with it."""
        self.last_error = None
        result = await self._orchestrator.signup(
            email, password, first_name, last_name, self._devices.current()
        )
        return await self._apply(result, email)

    async def interactive_login(self, scopes: Iterable[str] | None = None) -> SessionState:
        """Browser-based Authorization-Code + PKCE sign-in."""
        self.last_error = None
        try:
            tokens = await self._orchestrator.begin_interactive_login(scopes)
        except UserCancelled:
            raise
        except AuthError as exc:
            self.last_error = str(exc)
            raise
        # the OAuth grant carries no profile; drop any stale one
        self._repository.clear()
        self._persist(tokens, None)
        self._set_state(Authenticated(tokens, None))
        return self._state

    async def _apply(self, result: AuthResult, email: str) -> SessionState:
        if isinstance(result, AuthSuccess):
            self._persist(result.tokens, result.user)
            self._set_state(Authenticated(result.tokens, result.user))
            _LOG.info("Signed in user_id=%s", mask_sensitive(result.user.id))
            return self._state

        if self.is_authenticated:
            # the store must not keep a session we no longer hold
            await self.logout()
        if isinstance(result, AuthMfaRequired):
            # a state transition, not an error to show
            self._set_state(MfaPending(email))
        elif isinstance(result, AuthFailure):
            self._set_state(Unauthenticated())
            self.last_error = str(result.error)
            raise result.error
        return self._state

    # ------------------------------------------------------------------ #
    # Token freshness                                                    #
    # ------------------------------------------------------------------ #
    async def ensure_fresh_token(self) -> str | None:
        """Return a usable access token, refreshing it first when needed.

        Concurrent callers share one in-flight refresh.  A failed refresh
        logs the session out and every waiting caller gets ``None``.  A
        result that lands after logout or a new sign-in is dropped and the
        waiters get whatever session is current.
        """
        state = self._state
        if not isinstance(state, Authenticated):
            return None
        if not state.tokens.needs_refresh(clock=self._clock):
            return state.tokens.access_token

        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh(state.tokens))
            self._refresh_task = task
        # shield: a cancelled waiter must not abort the shared refresh
        tokens = await asyncio.shield(task)
        return tokens.access_token if tokens is not None else None

    async def _refresh(self, tokens: TokenPair) -> TokenPair | None:
        try:
            if not tokens.refresh_token:
                raise TokenExpired()
            fresh = await self._orchestrator.refresh(
                tokens.refresh_token, self._devices.current()
            )
        except AuthError as exc:
            _LOG.warning("Token refresh failed (%s); logging out", exc.code)
            if self._holds(tokens):
                await self.logout()
            return self._current_tokens()

        if not self._holds(tokens):
            # logged out or replaced while the request was in flight
            _LOG.info("Discarding refresh result for a superseded session")
            return self._current_tokens()
        user = self.current_user
        self._persist(fresh, None)
        self._set_state(Authenticated(fresh, user))
        return fresh

    def _holds(self, tokens: TokenPair) -> bool:
        return isinstance(self._state, Authenticated) and self._state.tokens is tokens

    def _current_tokens(self) -> TokenPair | None:
        return self._state.tokens if isinstance(self._state, Authenticated) else None

    # ------------------------------------------------------------------ #
    # Sign-out                                                           #
    # ------------------------------------------------------------------ #
    async def logout(self) -> None:
        """Forget the session locally; revocation runs in the background."""
        state = self._state
        self._orchestrator.cancel_interactive_login()
        if isinstance(state, Authenticated):
            self._spawn(self._orchestrator.revoke(state.tokens.access_token))
        self._repository.clear()
        self._set_state(Unauthenticated())
        _LOG.info("Logged out")

    # ------------------------------------------------------------------ #
    # internal helpers                                                   #
    # ------------------------------------------------------------------ #
    def _persist(self, tokens: TokenPair, user: UserProfile | None) -> None:
        if not self._repository.save_tokens(tokens):
            _LOG.warning("Could not persist tokens; session will not survive a restart")
        if user is not None and not self._repository.save_profile(user):
            _LOG.warning("Could not persist user profile")

    def _set_state(self, state: SessionState) -> None:
        previous, self._state = self._state, state
        if previous.name != state.name:
            _LOG.debug("Session state %s -> %s", previous.name, state.name)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:  # noqa: BLE001 - a listener must not break the session
                _LOG.exception("Session listener failed")

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._reap)
        return task

    def _reap(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            _LOG.warning("Background auth task failed: %s", task.exception())
