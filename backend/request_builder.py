"""
request_builder.py

Decorates every outbound backend request with its credentials.
The apikey header always carries the anonymous key; the Authorization
bearer is the user's access token when a token store holds a valid session,
otherwise the anonymous key. The choice is made on every build, so a token
that expires mid-session is never sent past its expiry.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

import requests


class SessionSource(Protocol):
    """Anything that can hand out a currently valid session (TokenStore)."""

    def valid_session(self) -> Any:
        ...


class AuthenticatedRequestBuilder:
    """
    Builds requests.Request objects against the backend base URL.

    Token stores are consulted in order; the first holding a valid session
    supplies the bearer. Stores are only read, never written.

    Example:
        builder = AuthenticatedRequestBuilder(url, anon_key, [token_store])
        req = builder.build("GET", "/rest/v1/bookings", params={"select": "*"})
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        token_stores: Sequence[SessionSource] = (),
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._token_stores = tuple(token_stores)

    @property
    def base_url(self) -> str:
        return self._base_url

    def current_bearer(self) -> str:
        """Return the credential the next request will carry."""
        for store in self._token_stores:
            session = store.valid_session()
            if session is not None:
                return session.access_token
        return self._anon_key

    def auth_headers(self, bearer: Optional[str] = None) -> dict[str, str]:
        """
        Headers for one request.

        Args:
            bearer: Explicit token overriding the store lookup. Used only for
                the recovery-token password update.
        """
        token = bearer or self.current_bearer()
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
        }

    def build(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
        bearer: Optional[str] = None,
    ) -> requests.Request:
        """
        Build one authorized request.

        Args:
            method: HTTP verb.
            path: Path below the base URL, e.g. "/auth/v1/signup".
            params: Query parameters.
            json: JSON body.
            headers: Extra headers (e.g. Prefer); may not replace credentials.
            bearer: Explicit bearer override.

        Returns:
            An unprepared requests.Request.
        """
        merged = {"Content-Type": "application/json"}
        merged.update(headers or {})
        merged.update(self.auth_headers(bearer))

        return requests.Request(
            method=method.upper(),
            url=f"{self._base_url}/{path.lstrip('/')}",
            params=params or {},
            json=json,
            headers=merged,
        )
