"""Credential storage for the auth core.

A *narrow* byte-oriented contract (:class:`CredentialStore`) with three
implementations, plus :class:`CredentialRepository` which owns the persisted
layout of the token pair and user profile.

* :class:`KeyringCredentialStore` – platform secure storage (Keychain,
  Secret Service, Windows Credential Locker) via :mod:`keyring`.  Token
  material belongs here.
* :class:`DiskCredentialStore` – one file per key, written with
  *temp-file + os.replace* under an advisory lock, optionally encrypted with
  :class:`TokenCipher`.  Suitable for the non-sensitive profile, or for tokens
  when a keyring is unavailable and an encryption key is configured.
* :class:`MemoryCredentialStore` – process-local, for ephemeral sessions.

Failure policy
--------------
Store and read failures are logged and degrade to "nothing stored"; no
method in this module raises into the session layer.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import os
import re
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

import keyring
from keyring.errors import PasswordDeleteError
from cryptography.fernet import Fernet, InvalidToken

from maybe_auth.core.models import TokenPair, UserProfile

if TYPE_CHECKING:  # pragma: no cover
    from maybe_auth.config import AuthConfig

_LOG = logging.getLogger("maybe-auth.core.store")

TOKENS_KEY: Final[str] = "auth_tokens"
PROFILE_KEY: Final[str] = "MaybeApp.CurrentUser"


# --------------------------------------------------------------------------- #
# helpers                                                                     #
# --------------------------------------------------------------------------- #
def _slug(text: str, max_len: int = 80) -> str:
    """Filesystem-safe slug."""
    text = (text or "").strip().lower()
    text = re.sub(r"[^a-z0-9._-]+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-")
    return text[:max_len] or "unknown"


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("wb") as fh:
        fh.write(data)
    os.replace(tmp, path)  # atomic on POSIX


@contextmanager
def _file_lock(lock_path: Path, retries: int = 25, delay: float = 0.02):
    """Advisory file lock using ``os.O_EXCL`` temp-file creation."""
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    for attempt in range(retries + 1):
        try:
            fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
            os.close(fd)
            break
        except FileExistsError:
            if attempt == retries:
                raise TimeoutError(f"Could not acquire lock {lock_path}") from None
            time.sleep(delay)
    try:
        yield
    finally:
        lock_path.unlink(missing_ok=True)


class TokenCipher:
    """Encrypt and decrypt bytes using a Fernet key derived from *secret*."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: bytes) -> bytes:
        return self._fernet.encrypt(plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        try:
            return self._fernet.decrypt(ciphertext)
        except InvalidToken as exc:
            raise ValueError("Failed to decrypt stored credential.") from exc


# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #
@runtime_checkable
class CredentialStore(Protocol):
    """Minimal key/value persistence contract."""

    def put(self, key: str, value: bytes) -> bool: ...
    def get(self, key: str) -> bytes | None: ...
    def delete(self, key: str) -> None: ...


class KeyringCredentialStore(CredentialStore):
    """Store values in the platform keyring under ``(service, key)``."""

    def __init__(self, service: str = "MaybeApp") -> None:
        self.service = service

    def put(self, key: str, value: bytes) -> bool:
        encoded = base64.b64encode(value).decode("ascii")
        try:
            # set_password replaces an existing item in place
            keyring.set_password(self.service, key, encoded)
        except Exception as exc:  # noqa: BLE001 - any backend failure means "not stored"
            _LOG.warning("Keyring write failed for %s/%s: %s", self.service, key, exc)
            return False
        return True

    def get(self, key: str) -> bytes | None:
        try:
            encoded = keyring.get_password(self.service, key)
        except Exception as exc:  # noqa: BLE001
            _LOG.warning("Keyring read failed for %s/%s: %s", self.service, key, exc)
            return None
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded.encode("ascii"), validate=True)
        except ValueError:
            _LOG.warning("Discarding malformed keyring item %s/%s", self.service, key)
            return None

    def delete(self, key: str) -> None:
        try:
            keyring.delete_password(self.service, key)
        except PasswordDeleteError:
            pass  # nothing stored
        except Exception as exc:  # noqa: BLE001
            _LOG.warning("Keyring delete failed for %s/%s: %s", self.service, key, exc)


class DiskCredentialStore(CredentialStore):
    """File-per-key implementation of :class:`CredentialStore`."""

    def __init__(
        self,
        base_dir: str | os.PathLike,
        *,
        cipher: TokenCipher | None = None,
    ) -> None:
        self.base_dir = Path(base_dir).expanduser()
        self.cipher = cipher

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{_slug(key)}.bin"

    def _lock(self, key: str) -> Path:
        return self._path(key).with_suffix(".lock")

    def put(self, key: str, value: bytes) -> bool:
        payload = self.cipher.encrypt(value) if self.cipher else value
        try:
            with _file_lock(self._lock(key)):
                _atomic_write(self._path(key), payload)
        except (OSError, TimeoutError) as exc:
            _LOG.warning("Disk credential write failed for %s: %s", key, exc)
            return False
        return True

    def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            payload = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            _LOG.warning("Disk credential read failed for %s: %s", key, exc)
            return None
        if self.cipher is None:
            return payload
        try:
            return self.cipher.decrypt(payload)
        except ValueError:
            _LOG.warning("Stored credential %s cannot be decrypted; ignoring it", key)
            return None

    def delete(self, key: str) -> None:
        try:
            with _file_lock(self._lock(key)):
                self._path(key).unlink(missing_ok=True)
        except (OSError, TimeoutError) as exc:
            _LOG.warning("Disk credential delete failed for %s: %s", key, exc)


class MemoryCredentialStore(CredentialStore):
    """Process-local store; nothing survives a restart."""

    def __init__(self) -> None:
        self._items: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, key: str, value: bytes) -> bool:
        with self._lock:
            self._items[key] = bytes(value)
        return True

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._items.get(key)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)


# --------------------------------------------------------------------------- #
# Persisted layout                                                            #
# --------------------------------------------------------------------------- #
class CredentialRepository:
    """Serialises :class:`TokenPair` / :class:`UserProfile` into the stores.

    Tokens go to *secure*; the profile may live in the less protected
    *profile* store (defaults to *secure*).
    """

    def __init__(
        self,
        secure: CredentialStore,
        profile: CredentialStore | None = None,
    ) -> None:
        self.secure = secure
        self.profile = profile or secure

    @staticmethod
    def _dump(data: dict) -> bytes:
        return json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")

    @staticmethod
    def _load(raw: bytes | None) -> dict | None:
        if raw is None:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return None
        return data if isinstance(data, dict) else None

    def save_tokens(self, tokens: TokenPair) -> bool:
        return self.secure.put(TOKENS_KEY, self._dump(tokens.to_dict()))

    def load_tokens(self) -> TokenPair | None:
        data = self._load(self.secure.get(TOKENS_KEY))
        if data is None:
            return None
        try:
            return TokenPair.from_response(data)
        except (KeyError, TypeError, ValueError):
            _LOG.warning("Discarding malformed stored token pair")
            return None

    def save_profile(self, user: UserProfile) -> bool:
        return self.profile.put(PROFILE_KEY, self._dump(user.to_dict()))

    def load_profile(self) -> UserProfile | None:
        data = self._load(self.profile.get(PROFILE_KEY))
        if data is None:
            return None
        try:
            return UserProfile.from_dict(data)
        except (KeyError, TypeError):
            _LOG.warning("Discarding malformed stored user profile")
            return None

    def clear(self) -> None:
        self.secure.delete(TOKENS_KEY)
        self.profile.delete(PROFILE_KEY)


def build_repository(config: "AuthConfig") -> CredentialRepository:
    """Return the repository matching *config* (keyring or encrypted disk)."""
    profile_store = DiskCredentialStore(config.storage_dir)
    if config.use_keyring:
        return CredentialRepository(
            KeyringCredentialStore(config.keyring_service), profile_store
        )
    if config.encrypt_key:
        cipher = TokenCipher(secret=config.encrypt_key)
        token_store = DiskCredentialStore(config.storage_dir / "secure", cipher=cipher)
    else:
        _LOG.warning(
            "Keyring disabled and MAYBE_AUTH_ENCRYPT_KEY not set - "
            "token material will be stored unencrypted on disk."
        )
        token_store = DiskCredentialStore(config.storage_dir / "secure")
    return CredentialRepository(token_store, profile_store)
