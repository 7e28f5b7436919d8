"""Configuration for the Maybe auth core.

Values are read once from the environment by :meth:`AuthConfig.from_env`
and then passed explicitly to every component.

Environment variables
---------------------
MAYBE_API_BASE_URL
    Base URL of the REST API (``/auth/login``, ``/auth/refresh`` …). Required.
MAYBE_OAUTH_BASE_URL
    Base URL of the OAuth authority (``/oauth/authorize`` …). Defaults to the
    API base URL.
MAYBE_OAUTH_CLIENT_ID
    Public OAuth client id. Required for the browser flow and for revocation.
MAYBE_OAUTH_REDIRECT_URI
    Registered redirect URI (default ``maybeapp://oauth/callback``).
MAYBE_OAUTH_SCOPE
    Space separated default scopes (default ``read``).
MAYBE_HTTP_TIMEOUT
    Bounded timeout in seconds applied to every HTTP call (default 30).
MAYBE_INTERACTIVE_TIMEOUT
    Seconds to wait for the browser step before giving up (default 300).
MAYBE_AUTH_STORAGE_DIR
    Directory for the on-disk stores (default ``~/.maybe/auth``).
MAYBE_AUTH_USE_KEYRING
    Keep token material in the platform keyring (default true).
MAYBE_AUTH_ENCRYPT_KEY
    Secret used to encrypt the on-disk token store when the keyring is off.
MAYBE_KEYRING_SERVICE
    Keyring service name (default ``MaybeApp``).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Final

from maybe_auth.utils.environment import env_flag, env_float, env_str

DEFAULT_REDIRECT_URI: Final[str] = "maybeapp://oauth/callback"
DEFAULT_SCOPE: Final[str] = "read"
DEFAULT_HTTP_TIMEOUT: Final[float] = 30.0
DEFAULT_INTERACTIVE_TIMEOUT: Final[float] = 300.0
DEFAULT_KEYRING_SERVICE: Final[str] = "MaybeApp"


@dataclass(frozen=True)
class AuthConfig:
    """Immutable settings shared by the orchestrator, stores and gate."""

    api_base_url: str
    client_id: str | None = None
    oauth_base_url: str | None = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scope: str = DEFAULT_SCOPE
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    interactive_timeout: float = DEFAULT_INTERACTIVE_TIMEOUT
    storage_dir: Path = Path.home() / ".maybe" / "auth"
    use_keyring: bool = True
    encrypt_key: str | None = None
    keyring_service: str = DEFAULT_KEYRING_SERVICE

    def __post_init__(self) -> None:
        if not self.api_base_url:
            raise ValueError("api_base_url must be configured")
        object.__setattr__(self, "api_base_url", self.api_base_url.rstrip("/"))
        oauth_base = (self.oauth_base_url or self.api_base_url).rstrip("/")
        object.__setattr__(self, "oauth_base_url", oauth_base)
        object.__setattr__(self, "storage_dir", Path(self.storage_dir).expanduser())

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.oauth_base_url}/oauth/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.oauth_base_url}/oauth/token"

    @property
    def revocation_endpoint(self) -> str:
        return f"{self.oauth_base_url}/oauth/revoke"

    @property
    def scopes(self) -> tuple[str, ...]:
        return tuple(self.scope.split())

    def require_client_id(self) -> str:
        """Return the OAuth client id or raise ``ValueError``."""
        if not self.client_id:
            raise ValueError("MAYBE_OAUTH_CLIENT_ID is not configured")
        return self.client_id

    @classmethod
    def from_env(cls) -> "AuthConfig":
        """Create the configuration from ``MAYBE_*`` environment variables."""
        api_base_url = env_str("MAYBE_API_BASE_URL")
        if not api_base_url:
            raise ValueError("MAYBE_API_BASE_URL is not configured")
        storage_dir = env_str("MAYBE_AUTH_STORAGE_DIR")
        return cls(
            api_base_url=api_base_url,
            client_id=env_str("MAYBE_OAUTH_CLIENT_ID"),
            oauth_base_url=env_str("MAYBE_OAUTH_BASE_URL"),
            redirect_uri=env_str("MAYBE_OAUTH_REDIRECT_URI", DEFAULT_REDIRECT_URI)
            or DEFAULT_REDIRECT_URI,
            scope=env_str("MAYBE_OAUTH_SCOPE", DEFAULT_SCOPE) or DEFAULT_SCOPE,
            http_timeout=env_float("MAYBE_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            interactive_timeout=env_float(
                "MAYBE_INTERACTIVE_TIMEOUT", DEFAULT_INTERACTIVE_TIMEOUT
            ),
            storage_dir=Path(storage_dir) if storage_dir else Path.home() / ".maybe" / "auth",
            use_keyring=env_flag("MAYBE_AUTH_USE_KEYRING", True),
            encrypt_key=env_str("MAYBE_AUTH_ENCRYPT_KEY"),
            keyring_service=env_str("MAYBE_KEYRING_SERVICE", DEFAULT_KEYRING_SERVICE)
            or DEFAULT_KEYRING_SERVICE,
        )
