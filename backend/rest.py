"""
rest.py

Filtered CRUD against the backend's /rest/v1 tables plus the marketplace
data calls the app screens make (listings, bookings, favorites,
notifications). Authorization comes from the request builder, so results
are subject to row-level rules: an anonymous caller may legitimately get
an empty list.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from backend.client import BackendClient
from backend.errors import ParseError
from backend.schemas import ApiResult

_log = logging.getLogger("roominate.backend")

TABLES: frozenset[str] = frozenset(
    {
        "properties",
        "boarding_houses",
        "profiles",
        "users",
        "bookings",
        "favorites",
        "notifications",
    }
)

RETURN_REPRESENTATION = "return=representation"


def eq(value: Any) -> str:
    """PostgREST equality filter expression."""
    return f"eq.{value}"


def first_row(payload: Any) -> dict[str, Any]:
    """
    Normalise an insert/update body to a single row.

    PostgREST answers with an array under return=representation, but some
    proxies return a bare object or nothing at all.
    """
    if payload is None:
        return {}
    if isinstance(payload, list):
        if not payload:
            return {}
        row = payload[0]
    else:
        row = payload
    if not isinstance(row, dict):
        raise ParseError()
    return row


def _rows(payload: Any) -> list[dict[str, Any]]:
    if payload is None:
        return []
    if not isinstance(payload, list) or not all(isinstance(row, dict) for row in payload):
        raise ParseError()
    return payload


class TableClient:
    """
    Thin CRUD layer over /rest/v1/<table>.

    Filters map a column to a PostgREST expression, e.g. {"id": eq(42)}.

    Example:
        tables = TableClient(client)
        result = tables.select("bookings", {"tenant_id": eq(uid)}, order="created_at.desc")
    """

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    def _check(self, table: str) -> Optional[ApiResult]:
        if table not in TABLES:
            return ApiResult.failure(f"Unknown table: {table}", kind="invalid")
        return None

    def select(
        self,
        table: str,
        filters: Optional[dict[str, str]] = None,
        select: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ApiResult:
        """GET rows; data is a list of dicts."""
        rejected = self._check(table)
        if rejected:
            return rejected

        params: dict[str, Any] = dict(filters or {})
        params["select"] = select
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit

        result = self._client.rest("GET", table, f"Failed to fetch {table}", params=params)
        return self._convert(result, _rows)

    def insert(self, table: str, row: dict[str, Any]) -> ApiResult:
        """POST one row; data is the stored row (or {} when not echoed)."""
        rejected = self._check(table)
        if rejected:
            return rejected

        result = self._client.rest(
            "POST",
            table,
            f"Failed to insert into {table}",
            json=row,
            prefer=RETURN_REPRESENTATION,
        )
        return self._convert(result, first_row)

    def update(self, table: str, filters: dict[str, str], values: dict[str, Any]) -> ApiResult:
        """PATCH rows matching *filters*; data is the first updated row."""
        rejected = self._check(table)
        if rejected:
            return rejected
        if not filters:
            return ApiResult.failure("Refusing to update without a filter", kind="invalid")

        result = self._client.rest(
            "PATCH",
            table,
            f"Failed to update {table}",
            params=dict(filters),
            json=values,
            prefer=RETURN_REPRESENTATION,
        )
        return self._convert(result, first_row)

    def delete(self, table: str, filters: dict[str, str]) -> ApiResult:
        """DELETE rows matching *filters*; data is {"success": True}."""
        rejected = self._check(table)
        if rejected:
            return rejected
        if not filters:
            return ApiResult.failure("Refusing to delete without a filter", kind="invalid")

        result = self._client.rest("DELETE", table, f"Failed to delete from {table}", params=dict(filters))
        return self._convert(result, lambda _payload: {"success": True})

    @staticmethod
    def _convert(result: ApiResult, parse: Callable[[Any], Any]) -> ApiResult:
        if not result.ok:
            return result
        try:
            return ApiResult.success(parse(result.data))
        except ParseError as exc:
            return ApiResult.from_error(exc)


class MarketplaceApi:
    """
    Marketplace data calls scoped to the signed-in user.

    Args:
        tables: Table layer to issue requests through.
        current_user_id: Returns the cached user id, or None when signed out.
    """

    def __init__(self, tables: TableClient, current_user_id: Callable[[], Optional[str]]) -> None:
        self._tables = tables
        self._current_user_id = current_user_id

    def _user_id(self) -> Optional[str]:
        user_id = self._current_user_id()
        if not user_id:
            _log.warning("Marketplace call without a signed-in user")
        return user_id or None

    @staticmethod
    def _unauthenticated() -> ApiResult:
        return ApiResult.failure("User not authenticated", kind="state")

    # --- Listings ---

    def properties_by_owner(self) -> ApiResult:
        owner_id = self._user_id()
        if not owner_id:
            return self._unauthenticated()
        return self._tables.select(
            "boarding_houses",
            {"owner_id": eq(owner_id)},
            order="created_at.desc",
        )

    def property_by_id(self, property_id: str) -> ApiResult:
        result = self._tables.select("boarding_houses", {"id": eq(property_id)})
        if not result.ok:
            return result
        if not result.data:
            return ApiResult.failure("Property not found", kind="rejected", status=404)
        return ApiResult.success(result.data[0])

    def insert_property(self, fields: dict[str, Any]) -> ApiResult:
        owner_id = self._user_id()
        if not owner_id:
            return self._unauthenticated()
        row = dict(fields)
        row["owner_id"] = owner_id
        return self._tables.insert("boarding_houses", row)

    def update_property(self, property_id: str, fields: dict[str, Any]) -> ApiResult:
        return self._tables.update("boarding_houses", {"id": eq(property_id)}, fields)

    # --- Bookings ---

    def user_bookings(self) -> ApiResult:
        tenant_id = self._user_id()
        if not tenant_id:
            return self._unauthenticated()
        return self._tables.select(
            "bookings",
            {"tenant_id": eq(tenant_id)},
            select="*,boarding_houses(*)",
            order="created_at.desc",
        )

    def create_booking(
        self,
        listing_id: str,
        start_date: str,
        end_date: str,
        total_amount: float,
    ) -> ApiResult:
        tenant_id = self._user_id()
        if not tenant_id:
            return self._unauthenticated()
        return self._tables.insert(
            "bookings",
            {
                "listing_id": listing_id,
                "tenant_id": tenant_id,
                "start_date": start_date,
                "end_date": end_date,
                "total_amount": total_amount,
                "status": "pending",
            },
        )

    # --- Favorites ---

    def user_favorites(self) -> ApiResult:
        user_id = self._user_id()
        if not user_id:
            return self._unauthenticated()
        return self._tables.select(
            "favorites",
            {"user_id": eq(user_id)},
            select="*,boarding_houses(*)",
            order="created_at.desc",
        )

    def add_favorite(self, listing_id: str) -> ApiResult:
        user_id = self._user_id()
        if not user_id:
            return self._unauthenticated()
        return self._tables.insert("favorites", {"user_id": user_id, "listing_id": listing_id})

    def remove_favorite(self, listing_id: str) -> ApiResult:
        user_id = self._user_id()
        if not user_id:
            return self._unauthenticated()
        return self._tables.delete(
            "favorites",
            {"user_id": eq(user_id), "listing_id": eq(listing_id)},
        )

    # --- Notifications ---

    def notifications(self, limit: int = 50) -> ApiResult:
        user_id = self._user_id()
        if not user_id:
            return self._unauthenticated()
        return self._tables.select(
            "notifications",
            {"user_id": eq(user_id)},
            order="created_at.desc",
            limit=limit,
        )
