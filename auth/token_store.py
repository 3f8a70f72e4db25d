"""
token_store.py

Single source of truth for "is there a usable session".
Stores access/refresh tokens with an absolute expiry in a key/value tier:
the plaintext tier backs ordinary password sign-in, the encrypted tier
backs tokens that arrive through an OAuth redirect.
Saves and clears are serialized through one lock; reads return an
immutable snapshot without locking.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import base64
import json
import logging
import math
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

import config
from auth.models import Session
from storage.kv_store import KeyValueStore, get_preferences, get_secure_preferences

_log = logging.getLogger("roominate.auth.tokens")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "auth.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [auth.tokens] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False

SESSION_FIELDS = ("access_token", "refresh_token", "token_type", "expires_at")
SECURE_PREFIX = "supabase_"


def _utc_now() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_iso_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp string to an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None

    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"

    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def _iso_utc(value: datetime) -> str:
    """Format an aware datetime as an ISO UTC string."""
    return value.astimezone(timezone.utc).isoformat()


def _decode_token_expiry(access_token: str) -> datetime | None:
    """Best-effort decode of JWT exp claim from an access token."""
    if not access_token or access_token.count(".") < 2:
        return None

    try:
        payload_b64 = access_token.split(".")[1]
        payload_b64 += "=" * (-len(payload_b64) % 4)
        decoded = base64.urlsafe_b64decode(payload_b64.encode("utf-8"))
        payload = json.loads(decoded.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None

    exp = _as_number(payload.get("exp")) if isinstance(payload, dict) else None
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        _log.warning("Ignoring out-of-range exp claim in access token")
        return None


def _as_number(value: Any) -> float | None:
    """Coerce a JSON number or numeric string to a finite float; anything else is None."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def resolve_expires_in(payload: dict[str, Any], now: datetime) -> int:
    """
    Resolve a token lifetime in seconds from a token payload.

    Tries, in order: expires_in, an absolute expires_at epoch (seconds or
    milliseconds), the JWT exp claim, then DEFAULT_TOKEN_TTL_SECONDS.
    """
    expires_in = _as_number(payload.get("expires_in"))
    if expires_in is not None:
        return max(0, int(expires_in))

    expires_at = _as_number(payload.get("expires_at"))
    if expires_at is not None:
        if expires_at > 1e12:
            expires_at /= 1000.0
        return max(0, int(expires_at - now.timestamp()))

    decoded_expiry = _decode_token_expiry(str(payload.get("access_token") or ""))
    if decoded_expiry:
        return max(0, int((decoded_expiry - now).total_seconds()))

    return config.DEFAULT_TOKEN_TTL_SECONDS


class TokenStore:
    """
    Session storage over one key/value tier.

    Every clear() bumps a generation counter. Callers that start a network
    call which will end in save() capture the generation first and pass it
    back; if a logout cleared the store in between, the save is dropped.

    Example:
        store = get_token_store()
        store.save("tok123", "ref456", "bearer", 3600)
        store.is_valid()   # True for the next hour
        store.clear()
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        key_prefix: str = "",
        clock: Callable[[], datetime] = _utc_now,
        name: str = "plain",
    ) -> None:
        self._kv = kv_store
        self._prefix = key_prefix
        self._clock = clock
        self._name = name
        self._lock = threading.Lock()
        self._generation = 0
        self._session: Optional[Session] = self._load()

    def _key(self, field_name: str) -> str:
        return f"{self._prefix}{field_name}"

    def _load(self) -> Optional[Session]:
        access_token = self._kv.get(self._key("access_token"))
        if not access_token:
            return None
        return Session(
            access_token=access_token,
            refresh_token=self._kv.get(self._key("refresh_token")),
            token_type=self._kv.get(self._key("token_type")),
            expires_at=_parse_iso_datetime(self._kv.get(self._key("expires_at"))),
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def generation(self) -> int:
        """Counter bumped by every clear()."""
        return self._generation

    def _expiry(self, lifetime: timedelta) -> datetime:
        try:
            return self._clock() + lifetime
        except OverflowError as exc:
            raise ValueError("expires_in_seconds is out of range") from exc

    def save(
        self,
        access_token: str,
        refresh_token: Optional[str],
        token_type: Optional[str],
        expires_in_seconds: int,
        generation: Optional[int] = None,
    ) -> bool:
        """
        Replace the stored session with a new one expiring *expires_in_seconds* from now.

        Args:
            access_token: Bearer credential; required.
            refresh_token: Renewal credential, if issued.
            token_type: Usually "bearer".
            expires_in_seconds: Lifetime; must be a non-negative integer.
            generation: Value of `generation` captured when the request that
                produced these tokens started.

        Returns:
            True if stored, False if dropped because the store was cleared
            after *generation* was captured.

        Raises:
            ValueError: On a missing token or invalid lifetime.
        """
        if not access_token:
            raise ValueError("access_token is required")
        if expires_in_seconds is None or isinstance(expires_in_seconds, bool):
            raise ValueError("expires_in_seconds is required")
        try:
            lifetime = timedelta(seconds=int(expires_in_seconds))
        except (OverflowError, ValueError) as exc:
            raise ValueError("expires_in_seconds is out of range") from exc
        if lifetime < timedelta(0):
            raise ValueError("expires_in_seconds must not be negative")

        with self._lock:
            if generation is not None and generation != self._generation:
                _log.info("Dropped stale %s session save (cleared since request started)", self._name)
                return False

            session = Session(
                access_token=access_token,
                refresh_token=refresh_token or None,
                token_type=token_type or "bearer",
                expires_at=self._expiry(lifetime),
            )
            self._kv.update(
                {
                    self._key("access_token"): session.access_token,
                    self._key("refresh_token"): session.refresh_token,
                    self._key("token_type"): session.token_type,
                    self._key("expires_at"): _iso_utc(session.expires_at),
                }
            )
            self._session = session

        _log.info("Saved %s session expiring at %s", self._name, _iso_utc(session.expires_at))
        return True

    def save_payload(self, payload: dict[str, Any], generation: Optional[int] = None) -> bool:
        """Save from a raw token payload, resolving the lifetime with resolve_expires_in()."""
        expires_in = resolve_expires_in(payload, self._clock())
        return self.save(
            str(payload.get("access_token") or ""),
            payload.get("refresh_token"),
            payload.get("token_type"),
            expires_in,
            generation=generation,
        )

    def read(self) -> Optional[Session]:
        """Return the stored session, or None if never saved or cleared."""
        return self._session

    def valid_session(self) -> Optional[Session]:
        """Return the stored session if it has a token and has not expired."""
        session = self._session
        if session is None or not session.access_token:
            return None
        if session.expires_at is None:
            _log.warning("%s session has a token but no expiry; treating as invalid", self._name)
            return None
        if session.is_expired(self._clock()):
            return None
        return session

    def is_valid(self) -> bool:
        """True iff an access token is stored and its expiry is in the future."""
        return self.valid_session() is not None

    def clear(self) -> None:
        """Remove every session field."""
        with self._lock:
            self._kv.remove(*(self._key(name) for name in SESSION_FIELDS))
            self._session = None
            self._generation += 1
        _log.info("Cleared %s session", self._name)

    def run_if_current(self, generation: int, action: Callable[[], None]) -> bool:
        """
        Run *action* only if no clear() happened since *generation* was captured.

        The action runs under the save/clear lock, so a concurrent clear()
        lands either before it (action skipped) or after it.
        """
        with self._lock:
            if generation != self._generation:
                _log.info("Skipped %s follow-up write (cleared since request started)", self._name)
                return False
            action()
            return True


_token_store_singleton: TokenStore | None = None
_secure_token_store_singleton: TokenStore | None = None


def get_token_store() -> TokenStore:
    """Return the shared plaintext-tier TokenStore."""
    global _token_store_singleton
    if _token_store_singleton is None:
        _token_store_singleton = TokenStore(get_preferences(), name="plain")
    return _token_store_singleton


def get_secure_token_store() -> TokenStore:
    """Return the shared encrypted-tier TokenStore (OAuth callback tokens)."""
    global _secure_token_store_singleton
    if _secure_token_store_singleton is None:
        _secure_token_store_singleton = TokenStore(
            get_secure_preferences(),
            key_prefix=SECURE_PREFIX,
            name="secure",
        )
    return _secure_token_store_singleton
