"""Client-side password policy, mirroring the authority's signup rules."""

from __future__ import annotations

from typing import Final

MIN_LENGTH: Final[int] = 8
SPECIAL_CHARACTERS: Final[str] = "!@#$%^&*(),.?\":{}|<>"


def validate_password(password: str) -> list[str]:
    """Return the list of unmet requirements (empty when acceptable)."""
    errors: list[str] = []
    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters")
    if not any(ch.isupper() for ch in password):
        errors.append("Password must contain at least one uppercase letter")
    if not any(ch.islower() for ch in password):
        errors.append("Password must contain at least one lowercase letter")
    if not any(ch.isdigit() for ch in password):
        errors.append("Password must contain at least one number")
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        errors.append("Password must contain at least one special character")
    return errors
