"""
profile_cache.py

Local snapshot of the signed-in user's profile plus the login-form
prefill emails. Session tokens are not kept here; TokenStore owns them.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import config
from backend.errors import ParseError
from backend.schemas import Profile, Role
from storage.kv_store import KeyValueStore, get_preferences

_log = logging.getLogger("roominate.auth.profile")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "auth.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [auth.profile] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False

USER_DATA_KEY = "user_data"
USER_ID_KEY = "user_id"
USER_ROLE_KEY = "user_role"
LAST_SIGNED_EMAIL_KEY = "last_signed_email"
LAST_OTP_EMAIL_KEY = "last_otp_email"


class ProfileCache:
    """
    Flat key/value snapshot of the current profile.

    user_data holds the raw profile JSON as returned by the backend;
    user_id and user_role are denormalised for quick reads.
    """

    def __init__(self, kv_store: KeyValueStore) -> None:
        self._kv = kv_store

    def store_profile(self, profile: Profile, raw: Optional[dict[str, Any]] = None) -> None:
        """Replace the cached snapshot in one write."""
        snapshot = raw if raw is not None else profile.to_dict()
        self._kv.update(
            {
                USER_DATA_KEY: json.dumps(snapshot, sort_keys=True),
                USER_ID_KEY: profile.id,
                USER_ROLE_KEY: profile.role.value,
            }
        )

    def profile(self) -> Optional[Profile]:
        """Return the cached profile, or None when absent or unreadable."""
        raw = self._kv.get(USER_DATA_KEY)
        if not raw:
            return None
        try:
            return Profile.from_dict(json.loads(raw))
        except (ValueError, ParseError) as exc:
            _log.warning("Cached profile snapshot unreadable: %s", exc)
            return None

    def user_id(self) -> Optional[str]:
        return self._kv.get(USER_ID_KEY) or None

    def role(self) -> Role:
        return Role.parse(self._kv.get(USER_ROLE_KEY))

    def clear_profile(self) -> None:
        """Drop the profile snapshot; prefill emails survive sign-out."""
        self._kv.remove(USER_DATA_KEY, USER_ID_KEY, USER_ROLE_KEY)

    # --- Login-form prefill ---

    def remember_signed_email(self, email: str) -> None:
        self._kv.update({LAST_SIGNED_EMAIL_KEY: email})

    def remember_otp_email(self, email: str) -> None:
        self._kv.update({LAST_OTP_EMAIL_KEY: email})

    def prefill_email(self) -> Optional[str]:
        """Email to prefill on the login form: last OTP email, else last signed-in email."""
        return self._kv.get(LAST_OTP_EMAIL_KEY) or self._kv.get(LAST_SIGNED_EMAIL_KEY) or None


_profile_cache_singleton: ProfileCache | None = None


def get_profile_cache() -> ProfileCache:
    """Return the shared ProfileCache over the plaintext preferences."""
    global _profile_cache_singleton
    if _profile_cache_singleton is None:
        _profile_cache_singleton = ProfileCache(get_preferences())
    return _profile_cache_singleton
