"""
callback.py

Handles the OAuth redirect that lands back in the app, e.g.
roominate://login-callback#access_token=...&refresh_token=...&expires_in=3600
Tokens from the fragment (or the query, for providers that use it) are
saved to the encrypted token tier.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Optional

import config
from auth.token_store import TokenStore, get_secure_token_store
from backend.schemas import ApiResult

_log = logging.getLogger("roominate.auth.callback")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "auth.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [auth.callback] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False

MISSING_TOKENS = "Login callback missing tokens."


def parse_callback_params(uri: str) -> dict[str, str]:
    """
    Extract key/value pairs from a callback URI.

    The fragment wins; the query string is used only when there is no
    fragment. Keys without a value are skipped.

    Example:
        parse_callback_params("app://cb#access_token=abc&expires_in=60")
        # {"access_token": "abc", "expires_in": "60"}
    """
    parsed = urllib.parse.urlsplit(uri or "")
    raw = parsed.fragment or parsed.query
    return {key: value for key, value in urllib.parse.parse_qsl(raw) if key}


def _parse_seconds(value: str) -> Optional[int]:
    value = value.strip()
    if not value.isdigit():
        return None
    try:
        return int(value)
    except ValueError:
        # non-ASCII digits, or more digits than int() will parse
        return None


def handle_oauth_callback(uri: str, store: Optional[TokenStore] = None) -> ApiResult:
    """
    Save the tokens carried by *uri* into the encrypted tier.

    Returns:
        Success with the saved Session, or an "invalid" failure when the
        URI carries no access token or a lifetime the store cannot hold.
    """
    params = parse_callback_params(uri)
    if not params.get("access_token"):
        _log.warning("Callback URI carried no access token")
        return ApiResult.failure(MISSING_TOKENS, kind="invalid")

    payload: dict[str, object] = {
        "access_token": params["access_token"],
        "refresh_token": params.get("refresh_token"),
        "token_type": params.get("token_type"),
    }
    expires_in = params.get("expires_in")
    if expires_in:
        seconds = _parse_seconds(expires_in)
        if seconds is not None:
            payload["expires_in"] = seconds
        else:
            _log.warning("Ignoring invalid expires_in in callback: %.40r", expires_in)

    target = store or get_secure_token_store()
    try:
        target.save_payload(payload)
    except ValueError as exc:
        _log.warning("OAuth callback tokens not stored: %s", exc)
        return ApiResult.failure("Sign-in link has an invalid token lifetime", kind="invalid")
    _log.info("Stored OAuth callback tokens in the %s tier", target.name)
    return ApiResult.success(target.read())
