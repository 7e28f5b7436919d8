"""PKCE (Proof Key for Code Exchange) helpers.

The Maybe app is a public OAuth client, so every interactive sign-in binds
its authorization code to a one-off *code verifier* (RFC 7636).  Only the
derived S256 *code challenge* travels through the browser; the verifier is
sent later, directly to the token endpoint.

Verifiers, challenges and ``state`` values are never logged.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string
from typing import Final, Iterable

from maybe_auth.core.models import AuthorizationRequest

# RFC 7636 section 4.1 "unreserved" characters
UNRESERVED: Final[str] = string.ascii_letters + string.digits + "-._~"
VERIFIER_MIN: Final[int] = 43
VERIFIER_MAX: Final[int] = 128
STATE_MIN: Final[int] = 16


def _unreserved_token(length: int) -> str:
    return "".join(secrets.choice(UNRESERVED) for _ in range(length))


def generate_code_verifier(length: int = VERIFIER_MAX) -> str:
    """Return a random code verifier of *length* unreserved characters.

    Parameters
    ----------
    length:
        Between 43 and 128 (default 128, the maximum entropy RFC 7636 allows).
    """
    if length < VERIFIER_MIN or length > VERIFIER_MAX:
        raise ValueError(
            f"code verifier length must be {VERIFIER_MIN}-{VERIFIER_MAX} characters"
        )
    return _unreserved_token(length)


def code_challenge_s256(verifier: str) -> str:
    """Return ``BASE64URL(SHA256(verifier))`` without ``=`` padding.

    The verifier is hashed as UTF-8; the result is always 43 characters.
    """
    encoded = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode("utf-8")).digest())
    return encoded.decode("ascii").rstrip("=")


def generate_state(length: int = 32) -> str:
    """Return a random CSRF nonce for the ``state`` query parameter."""
    if length < STATE_MIN:
        raise ValueError(f"state must be at least {STATE_MIN} characters")
    return _unreserved_token(length)


def new_authorization_request(
    scopes: Iterable[str], redirect_uri: str
) -> AuthorizationRequest:
    """Bundle a fresh verifier, its challenge and a state nonce."""
    verifier = generate_code_verifier()
    return AuthorizationRequest(
        code_verifier=verifier,
        code_challenge=code_challenge_s256(verifier),
        state=generate_state(),
        scopes=tuple(scopes),
        redirect_uri=redirect_uri,
    )
