"""Clock abstraction for testable time handling in the auth core.

Every expiry decision (token validity, refresh window) depends on an injected
``Clock`` rather than calling ``time.time()`` directly, so tests can pin the
current instant.

Example
-------
>>> from maybe_auth.core.clock import default_clock
>>> isinstance(default_clock(), float)
True
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Callable protocol returning *seconds* since the UNIX epoch."""

    def __call__(self) -> float: ...


def default_clock() -> float:
    """Return ``time.time()``."""
    return time.time()
