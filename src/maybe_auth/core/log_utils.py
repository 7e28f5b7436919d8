"""Structured logging helpers for auth core components.

This module restricts **which** contextual attributes are attached to log
records so that secrets cannot leak through ``extra``.  Only the following
*non-sensitive* fields are injected:

- ``flow_id``        – interactive authorization attempt id (first 6 chars kept)
- ``device_id``      – the client device identifier
- ``grant_type``     – ``authorization_code``, ``password``, ``refresh_token``…
- ``correlation_id`` – placeholder, wired by outer layers

Usage
-----
>>> from maybe_auth.core.log_utils import get_auth_logger
>>> log = get_auth_logger(
...     base_logger_name="maybe-auth.core.orchestrator",
...     flow_id="5f0c2d7e9a",
...     grant_type="authorization_code",
... )
>>> log.info("Starting interactive login")
"""

from __future__ import annotations

import logging
from typing import Any, Final, Mapping, MutableMapping

# field -> max characters kept (None keeps the whole value)
_WHITELIST: Final[dict[str, int | None]] = {
    "flow_id": 6,
    "device_id": None,
    "grant_type": None,
    "correlation_id": None,
}


def _clean_context(extra: Mapping[str, Any] | None) -> dict[str, Any]:
    context: dict[str, Any] = {}
    for key, limit in _WHITELIST.items():
        value = (extra or {}).get(key)
        if value is None:
            continue
        context[key] = str(value)[:limit] if limit else value
    return context


class _AuthLoggerAdapter(logging.LoggerAdapter):
    """Attach the cleaned auth context to every record."""

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        super().__init__(logger, _clean_context(extra))

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        # call-site extras win over the adapter context
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_auth_logger(
    *,
    base_logger_name: str = "maybe-auth.core",
    flow_id: str | None = None,
    device_id: str | None = None,
    grant_type: str | None = None,
    correlation_id: str | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter carrying only whitelisted auth context."""
    return _AuthLoggerAdapter(
        logging.getLogger(base_logger_name),
        dict(
            flow_id=flow_id,
            device_id=device_id,
            grant_type=grant_type,
            correlation_id=correlation_id,
        ),
    )
