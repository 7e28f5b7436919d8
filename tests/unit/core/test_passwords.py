"""Password policy checks."""

from __future__ import annotations

import pytest

from maybe_auth.core.passwords import validate_password


def test_strong_password_passes() -> None:
    assert validate_password("Abcd1234!") == []


@pytest.mark.parametrize(
    ("password", "message"),
    [
        ("Ab1!", "Password must be at least 8 characters"),
        ("abcd1234!", "Password must contain at least one uppercase letter"),
        ("ABCD1234!", "Password must contain at least one lowercase letter"),
        ("Abcdefgh!", "Password must contain at least one number"),
        ("Abcd12345", "Password must contain at least one special character"),
    ],
)
def test_each_rule(password: str, message: str) -> None:
    assert validate_password(password) == [message]


def test_empty_password_reports_everything() -> None:
    assert len(validate_password("")) == 5
