"""Device metadata sent with every login, signup and refresh request."""

from __future__ import annotations

import logging
import platform
import uuid
from dataclasses import asdict, dataclass
from importlib import metadata
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:  # pragma: no cover
    from maybe_auth.core.store import CredentialStore

_LOG = logging.getLogger("maybe-auth.device")

DEVICE_ID_KEY: Final[str] = "MaybeApp.DeviceID"
_DISTRIBUTION: Final[str] = "maybe-auth"


@dataclass(frozen=True, slots=True)
class DeviceInfo:
    device_id: str
    device_name: str
    device_type: str
    os_version: str
    app_version: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def _app_version() -> str:
    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return "0.0.0"


class DeviceInfoProvider:
    """Build :class:`DeviceInfo` for this machine.

    The device id is generated once and kept in *store* so the authority
    sees the same device across restarts.
    """

    def __init__(self, store: CredentialStore, *, device_type: str | None = None) -> None:
        self._store = store
        self._device_type = device_type
        self._cached_id: str | None = None

    @property
    def device_id(self) -> str:
        if self._cached_id:
            return self._cached_id
        raw = self._store.get(DEVICE_ID_KEY)
        device_id = raw.decode("utf-8", errors="ignore").strip() if raw else ""
        if not device_id:
            device_id = str(uuid.uuid4())
            if not self._store.put(DEVICE_ID_KEY, device_id.encode("utf-8")):
                _LOG.warning("Could not persist device id; it will change on restart")
        self._cached_id = device_id
        return device_id

    def current(self) -> DeviceInfo:
        system = platform.system() or "unknown"
        return DeviceInfo(
            device_id=self.device_id,
            device_name=platform.node() or system,
            device_type=self._device_type or system.lower(),
            os_version=platform.release() or "unknown",
            app_version=_app_version(),
        )
