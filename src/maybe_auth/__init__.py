"""Authentication and token lifecycle core for the Maybe finance client."""

from __future__ import annotations

from maybe_auth.config import AuthConfig
from maybe_auth.core import (
    AuthError,
    AuthOrchestrator,
    RequestGate,
    SessionManager,
    TokenPair,
    UserProfile,
)
from maybe_auth.device import DeviceInfo, DeviceInfoProvider
from maybe_auth.runtime import AuthRuntime, open_runtime

__version__ = "0.1.0"

__all__ = [
    "AuthConfig",
    "AuthError",
    "AuthOrchestrator",
    "AuthRuntime",
    "DeviceInfo",
    "DeviceInfoProvider",
    "RequestGate",
    "SessionManager",
    "TokenPair",
    "UserProfile",
    "open_runtime",
    "__version__",
]
