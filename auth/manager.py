"""
manager.py

Session manager for Roominate.
Password sign-in, sign-out, session restore on launch and role routing,
on top of the token stores and the profile cache.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import replace
from typing import Any, Optional

import requests

import config
from auth.models import LoginResult, Role, Session
from auth.otp import completed
from auth.profile_cache import ProfileCache, get_profile_cache
from auth.token_store import TokenStore, get_secure_token_store, get_token_store
from auth.validation import is_valid_email, normalize_email
from backend.client import BackendClient
from backend.errors import ParseError
from backend.request_builder import AuthenticatedRequestBuilder
from backend.rest import MarketplaceApi, TableClient, eq
from backend.schemas import ApiResult, AuthResponse, Profile

_log = logging.getLogger("roominate.auth.manager")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "auth.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [auth.manager] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False


def build_client(
    token_stores: Optional[list[TokenStore]] = None,
    session: Optional[requests.Session] = None,
) -> BackendClient:
    """
    Wire a BackendClient to the configured backend.

    The plaintext tier is consulted before the encrypted tier when picking
    the bearer credential.
    """
    stores = token_stores if token_stores is not None else [get_token_store(), get_secure_token_store()]
    builder = AuthenticatedRequestBuilder(config.SUPABASE_URL, config.SUPABASE_ANON_KEY, stores)
    return BackendClient(builder, session=session)


def _mask(session: Optional[Session]) -> dict[str, Any]:
    if session is None:
        return {"present": False}
    return {
        "present": True,
        "access_token": "***" if session.access_token else None,
        "refresh_token": "***" if session.refresh_token else None,
        "token_type": session.token_type,
        "expires_at": session.expires_at.isoformat() if session.expires_at else None,
    }


class AuthManager:
    """
    Entry point for everything session-related outside the signup and
    reset flows.

    Args:
        client: Backend client; its request builder must consult the same
            token stores passed here.
        token_store: Plaintext tier, written by password sign-in.
        secure_store: Encrypted tier, written by the OAuth callback.
        profile_cache: Local profile snapshot and prefill emails.

    Example:
        manager = get_auth_manager()
        result = manager.sign_in("ana@example.com", "secret1").result()
        if result.ok:
            print(result.data.role)
    """

    def __init__(
        self,
        client: BackendClient,
        token_store: Optional[TokenStore] = None,
        secure_store: Optional[TokenStore] = None,
        profile_cache: Optional[ProfileCache] = None,
    ) -> None:
        self._client = client
        self._token_store = token_store or get_token_store()
        self._secure_store = secure_store or get_secure_token_store()
        self._profile_cache = profile_cache or get_profile_cache()
        self._tables = TableClient(client)
        self.marketplace = MarketplaceApi(self._tables, self._profile_cache.user_id)

    @property
    def client(self) -> BackendClient:
        return self._client

    @property
    def profile_cache(self) -> ProfileCache:
        return self._profile_cache

    @property
    def token_store(self) -> TokenStore:
        return self._token_store

    @property
    def secure_store(self) -> TokenStore:
        return self._secure_store

    def _stores(self) -> tuple[TokenStore, TokenStore]:
        return (self._token_store, self._secure_store)

    # ------------------------------------------------------------------
    # Sign in / out
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> "Future[ApiResult]":
        """
        Password sign-in.

        Returns:
            Future resolving to ApiResult whose data is a LoginResult.
        """
        if not is_valid_email(email):
            return completed(ApiResult.failure("Please enter a valid email", kind="invalid"))
        if not password:
            return completed(ApiResult.failure("Password is required", kind="invalid"))
        return self._client.submit(self._sign_in, normalize_email(email), password)

    def _sign_in(self, email: str, password: str) -> ApiResult:
        generation = self._token_store.generation
        result = self._client.sign_in(email, password)
        if not result.ok:
            return result

        auth: AuthResponse = result.data
        if not auth.access_token or not auth.user_id:
            _log.error("Sign-in for %s returned no session", email)
            return ApiResult.failure("Sign in failed", kind="parse")

        try:
            saved = self._token_store.save_payload(auth.token_payload(), generation=generation)
        except ValueError as exc:
            _log.error("Session for %s not saved: %s", email, exc)
            return ApiResult.failure("Sign in failed", kind="parse")
        if not saved:
            return ApiResult.failure("Signed out while signing in", kind="state")

        profile_result, raw = self._fetch_profile_row(auth.user_id)
        if profile_result.ok:
            profile: Profile = profile_result.data
        else:
            _log.warning("Profile fetch for %s failed: %s", auth.user_id, profile_result.error)
            profile = Profile(id=auth.user_id, email=email)

        role = auth.metadata_role or profile.role
        profile = replace(profile, role=role, email=profile.email or email)
        if raw is not None:
            raw = dict(raw, role=role.value, email=profile.email)

        stored = self._token_store.run_if_current(
            generation,
            lambda: self._profile_cache.store_profile(profile, raw=raw),
        )
        if not stored:
            return ApiResult.failure("Signed out while signing in", kind="state")
        self._profile_cache.remember_signed_email(email)
        _log.info("Signed in %s as %s", email, role.value)
        return ApiResult.success(LoginResult(user_id=auth.user_id, email=email, role=role, profile=profile))

    def sign_out(self) -> "Future[ApiResult]":
        """Tell the backend, then clear both tiers and the profile snapshot whatever it said."""
        return self._client.submit(self._sign_out)

    def _sign_out(self) -> ApiResult:
        if self.is_logged_in():
            remote = self._client.sign_out()
            if not remote.ok:
                _log.warning("Remote sign-out failed (%s); clearing local session anyway", remote.error)
        self.clear_local_session()
        return ApiResult.success()

    def clear_local_session(self) -> None:
        for store in self._stores():
            store.clear()
        self._profile_cache.clear_profile()
        _log.info("Local session cleared")

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def is_logged_in(self) -> bool:
        return any(store.is_valid() for store in self._stores())

    def current_role(self) -> Role:
        return self._profile_cache.role()

    def restore_session(self) -> ApiResult:
        """
        Resume a stored session on launch.

        An expired session is cleared along with the profile snapshot.

        Returns:
            Success with a LoginResult, or a "state" failure when there is
            nothing usable to restore.
        """
        stale = False
        for store in self._stores():
            if store.read() is not None and not store.is_valid():
                store.clear()
                stale = True

        if not self.is_logged_in():
            if stale:
                self._profile_cache.clear_profile()
                _log.info("Stored session expired; cleared")
            return ApiResult.failure("No active session", kind="state")

        profile = self._profile_cache.profile()
        user_id = self._profile_cache.user_id() or (profile.id if profile else "")
        return ApiResult.success(
            LoginResult(
                user_id=user_id,
                email=profile.email if profile else "",
                role=self.current_role(),
                profile=profile,
            )
        )

    def fetch_profile(self, user_id: str) -> ApiResult:
        """
        Read one row of profiles.

        An empty result is not an error: the user just has no row yet, so a
        default tenant profile is returned.
        """
        return self._fetch_profile_row(user_id)[0]

    def _fetch_profile_row(self, user_id: str) -> tuple[ApiResult, Optional[dict[str, Any]]]:
        """Like fetch_profile, also returning the backend row as received (None if absent)."""
        result = self._tables.select("profiles", {"id": eq(user_id)})
        if not result.ok:
            return result, None
        if not result.data:
            return ApiResult.success(Profile(id=user_id, role=Role.TENANT)), None
        row = result.data[0]
        try:
            return ApiResult.success(Profile.from_dict(row)), row
        except ParseError as exc:
            return ApiResult.from_error(exc), None

    def get_status(self) -> dict[str, Any]:
        """Flat diagnostic snapshot; tokens are masked."""
        profile = self._profile_cache.profile()
        return {
            "logged_in": self.is_logged_in(),
            "role": self.current_role().value,
            "user_id": self._profile_cache.user_id(),
            "email": profile.email if profile else None,
            "prefill_email": self._profile_cache.prefill_email(),
            "bearer": "user" if self.is_logged_in() else "anon",
            "plain_session": _mask(self._token_store.read()),
            "secure_session": _mask(self._secure_store.read()),
        }


_auth_manager_singleton: AuthManager | None = None


def get_auth_manager() -> AuthManager:
    """Return the shared AuthManager wired to the configured backend."""
    global _auth_manager_singleton
    if _auth_manager_singleton is None:
        _auth_manager_singleton = AuthManager(build_client())
    return _auth_manager_singleton
