"""
kv_store.py

Device-local key/value store backed by a single JSON file.
Multi-key updates are written atomically (temp file + rename) so a reader
never observes half of an update. EncryptedKeyValueStore encrypts the whole
file at rest with Fernet (AES-128-CBC + HMAC) from the cryptography package.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Iterable

from cryptography.fernet import Fernet, InvalidToken

import config

_log = logging.getLogger("roominate.storage")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "storage.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [storage] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False


class KeyValueStore:
    """
    Thread-safe flat key/value store persisted as JSON.

    Values must be JSON-serializable. The in-memory mapping is replaced
    wholesale on every write, so readers get a consistent copy without
    taking the lock.

    Example:
        prefs = KeyValueStore(Path("prefs.json"))
        prefs.update({"last_signed_email": "a@b.com"})
        prefs.get("last_signed_email")
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        """Location of the backing file."""
        return self._path

    # ------------------------------------------------------------------
    # Encoding hooks
    # ------------------------------------------------------------------

    def _encode(self, data: dict[str, Any]) -> bytes:
        return json.dumps(data, indent=2, sort_keys=True).encode("utf-8")

    def _decode(self, raw: bytes) -> dict[str, Any]:
        loaded = json.loads(raw.decode("utf-8"))
        if not isinstance(loaded, dict):
            raise ValueError("store root is not an object")
        return loaded

    # ------------------------------------------------------------------
    # Disk I/O
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, Any]:
        """Read the backing file; an unreadable file yields an empty store."""
        if not self._path.exists():
            return {}

        try:
            return self._decode(self._path.read_bytes())
        except (OSError, ValueError) as exc:
            _log.error("Failed to read store %s: %s", self._path.name, exc)
            return {}

    def _write(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_bytes(self._encode(data))
        os.replace(tmp_path, self._path)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for *key*, or *default* when absent."""
        return self._data.get(key, default)

    def snapshot(self) -> dict[str, Any]:
        """Return a shallow copy of every stored key."""
        return dict(self._data)

    def update(self, values: dict[str, Any], remove: Iterable[str] = ()) -> None:
        """
        Set and remove keys in one atomic write.

        Args:
            values: Keys to set. A value of None removes the key.
            remove: Additional keys to delete.
        """
        with self._lock:
            updated = dict(self._data)
            for key, value in values.items():
                if value is None:
                    updated.pop(key, None)
                else:
                    updated[key] = value
            for key in remove:
                updated.pop(key, None)

            self._write(updated)
            self._data = updated

    def remove(self, *keys: str) -> None:
        """Delete *keys* in one atomic write."""
        self.update({}, remove=keys)


class EncryptedKeyValueStore(KeyValueStore):
    """
    KeyValueStore whose backing file is Fernet-encrypted at rest.

    A file that fails authentication (wrong key, tampering) is treated as
    empty rather than crashing the caller.
    """

    def __init__(self, path: Path, key: bytes | str) -> None:
        self._fernet = Fernet(key)
        super().__init__(path)

    def _encode(self, data: dict[str, Any]) -> bytes:
        return self._fernet.encrypt(super()._encode(data))

    def _decode(self, raw: bytes) -> dict[str, Any]:
        try:
            plaintext = self._fernet.decrypt(raw)
        except InvalidToken as exc:
            raise ValueError("encrypted store failed authentication") from exc
        return super()._decode(plaintext)


def load_or_create_key(key_file: Path, configured_key: str = "") -> bytes:
    """
    Resolve the Fernet key for the encrypted tier.

    Args:
        key_file: Where a generated key is kept between runs.
        configured_key: Key from the environment; wins when set.

    Returns:
        The urlsafe base64 Fernet key as bytes.
    """
    if configured_key:
        return configured_key.encode("utf-8")

    if key_file.exists():
        return key_file.read_bytes().strip()

    key_file.parent.mkdir(parents=True, exist_ok=True)
    key = Fernet.generate_key()
    key_file.write_bytes(key)
    os.chmod(key_file, 0o600)
    _log.info("Generated new encryption key at %s", key_file)
    return key


_preferences_singleton: KeyValueStore | None = None
_secure_preferences_singleton: EncryptedKeyValueStore | None = None


def get_preferences() -> KeyValueStore:
    """Return the shared plaintext preferences store."""
    global _preferences_singleton
    if _preferences_singleton is None:
        _preferences_singleton = KeyValueStore(config.PREFS_FILE)
    return _preferences_singleton


def get_secure_preferences() -> EncryptedKeyValueStore:
    """Return the shared encrypted preferences store."""
    global _secure_preferences_singleton
    if _secure_preferences_singleton is None:
        key = load_or_create_key(config.SECURE_KEY_FILE, config.TOKEN_ENCRYPTION_KEY)
        _secure_preferences_singleton = EncryptedKeyValueStore(config.SECURE_PREFS_FILE, key)
    return _secure_preferences_singleton
