"""Typed, immutable records used by the auth core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Final, Mapping, Union

from maybe_auth.core.clock import Clock, default_clock

if TYPE_CHECKING:  # pragma: no cover
    from maybe_auth.core.errors import AuthError

# Refresh proactively once the token is within this window of expiring.
REFRESH_WINDOW_SECONDS: Final[int] = 5 * 60


@dataclass(frozen=True, slots=True)
class TokenPair:
    """Snapshot of an access/refresh token pair.

    ``issued_at`` is the authority's ``created_at`` (UNIX seconds), not the
    moment the client received the response.
    """

    access_token: str
    refresh_token: str | None
    token_type: str
    issued_at: int
    expires_in: int
    scope: str | None = None

    def __post_init__(self) -> None:
        if self.expires_in <= 0:
            raise ValueError("expires_in must be positive")

    @property
    def expires_at(self) -> int:
        return self.issued_at + self.expires_in

    def is_expired(self, *, clock: Clock = default_clock) -> bool:
        """Return *True* once the access token is past its expiry."""
        return clock() >= self.expires_at

    def needs_refresh(self, *, clock: Clock = default_clock) -> bool:
        """Return *True* when the token expires within the refresh window."""
        return clock() >= self.expires_at - REFRESH_WINDOW_SECONDS

    @classmethod
    def from_response(
        cls, data: Mapping[str, Any], *, clock: Clock = default_clock
    ) -> "TokenPair":
        """Build a pair from a token endpoint payload.

        Accepts the OAuth token shape and the ``/auth/*`` shape alike;
        ``created_at`` falls back to *clock* when the authority omits it.
        """
        if not isinstance(data, Mapping):
            raise TypeError("token response must be a JSON object")
        access_token = data.get("access_token")
        if not access_token:
            raise ValueError("token response missing access_token")
        created_at = data.get("created_at")
        issued_at = int(created_at) if created_at is not None else int(clock())
        return cls(
            access_token=str(access_token),
            refresh_token=data.get("refresh_token") or None,
            token_type=str(data.get("token_type") or "Bearer"),
            issued_at=issued_at,
            expires_in=int(data.get("expires_in", 0)),
            scope=data.get("scope"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the persisted (wire-compatible) representation."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "created_at": self.issued_at,
            "expires_in": self.expires_in,
            "scope": self.scope,
        }


@dataclass(frozen=True, slots=True)
class UserProfile:
    id: str
    email: str
    first_name: str
    last_name: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UserProfile":
        return cls(
            id=str(data["id"]),
            email=str(data["email"]),
            first_name=str(data.get("first_name") or ""),
            last_name=str(data.get("last_name") or ""),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
        }

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email


@dataclass(frozen=True, slots=True)
class AuthorizationRequest:
    """PKCE material for one interactive flow.  Never persisted."""

    code_verifier: str
    code_challenge: str
    state: str
    scopes: tuple[str, ...]
    redirect_uri: str

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)


# --------------------------------------------------------------------------- #
# Session state                                                               #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class Unauthenticated:
    name: str = field(default="unauthenticated", init=False)


@dataclass(frozen=True, slots=True)
class Authenticated:
    tokens: TokenPair
    user: UserProfile | None = None
    name: str = field(default="authenticated", init=False)


@dataclass(frozen=True, slots=True)
class MfaPending:
    """Password accepted but a one-time code is still required."""

    email: str
    name: str = field(default="mfa_pending", init=False)


SessionState = Union[Unauthenticated, Authenticated, MfaPending]


# --------------------------------------------------------------------------- #
# Password-grant outcomes                                                     #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class AuthSuccess:
    tokens: TokenPair
    user: UserProfile


@dataclass(frozen=True, slots=True)
class AuthMfaRequired:
    pass


@dataclass(frozen=True, slots=True)
class AuthFailure:
    error: "AuthError"


AuthResult = Union[AuthSuccess, AuthMfaRequired, AuthFailure]
