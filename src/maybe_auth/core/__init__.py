"""Authentication core package.

Reusable, UI-independent building blocks for the Maybe client's sign-in and
token lifecycle.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
pkce
    Proof-Key for Code Exchange helpers and ``state`` nonces.
models
    Immutable dataclasses: token pair, profile, session states, results.
errors
    Exception taxonomy and HTTP response classification.
store
    Credential stores (keyring, disk, memory) and the persisted layout.
passwords
    Client-side password policy.
user_agent
    Browser / loopback collaborators for the interactive step.
orchestrator
    Exchanges with the authority (PKCE, password, refresh, revoke).
session
    The session facade: state, persistence, single-flight refresh.
gate
    Authenticated request dispatch.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .clock import Clock, default_clock  # noqa: F401
from .errors import (  # noqa: F401
    AuthError,
    BadRequest,
    DeviceInfoRequired,
    Forbidden,
    InvalidCallback,
    InvalidCredentials,
    MfaRequired,
    NetworkError,
    NotAuthenticated,
    RateLimited,
    ServerError,
    TokenExpired,
    UserCancelled,
    ValidationFailed,
    classify_response,
)
from .gate import RequestGate  # noqa: F401
from .log_utils import get_auth_logger  # noqa: F401
from .models import (  # noqa: F401
    Authenticated,
    AuthorizationRequest,
    MfaPending,
    SessionState,
    TokenPair,
    Unauthenticated,
    UserProfile,
)
from .orchestrator import AuthOrchestrator  # noqa: F401
from .passwords import validate_password  # noqa: F401
from .pkce import code_challenge_s256, generate_code_verifier, generate_state  # noqa: F401
from .session import SessionManager  # noqa: F401
from .store import (  # noqa: F401
    CredentialRepository,
    CredentialStore,
    DiskCredentialStore,
    KeyringCredentialStore,
    MemoryCredentialStore,
)
from .user_agent import BrowserUserAgent, LoopbackUserAgent, UserAgent  # noqa: F401

__all__ = [
    # clock
    "Clock",
    "default_clock",
    # errors
    "AuthError",
    "BadRequest",
    "DeviceInfoRequired",
    "Forbidden",
    "InvalidCallback",
    "InvalidCredentials",
    "MfaRequired",
    "NetworkError",
    "NotAuthenticated",
    "RateLimited",
    "ServerError",
    "TokenExpired",
    "UserCancelled",
    "ValidationFailed",
    "classify_response",
    # models
    "Authenticated",
    "AuthorizationRequest",
    "MfaPending",
    "SessionState",
    "TokenPair",
    "Unauthenticated",
    "UserProfile",
    # pkce / passwords
    "code_challenge_s256",
    "generate_code_verifier",
    "generate_state",
    "validate_password",
    # stores
    "CredentialRepository",
    "CredentialStore",
    "DiskCredentialStore",
    "KeyringCredentialStore",
    "MemoryCredentialStore",
    # services
    "AuthOrchestrator",
    "SessionManager",
    "RequestGate",
    "BrowserUserAgent",
    "LoopbackUserAgent",
    "UserAgent",
    # logging helpers
    "get_auth_logger",
]
