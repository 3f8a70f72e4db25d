"""
schemas.py

Typed records for backend payloads and the two-outcome ApiResult every
operation resolves to. Payloads are validated here, at the boundary:
a field of the wrong type raises ParseError, a missing field falls back to
the default documented on the record.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from backend.errors import BackendError, ParseError


class Role(str, enum.Enum):
    """Marketplace roles; drives dashboard routing after sign-in."""

    TENANT = "tenant"
    OWNER = "owner"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any, default: "Role | None" = None) -> "Role":
        """Resolve a role string case-insensitively; unknown values fall back to *default* or TENANT."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return default or cls.TENANT


@dataclass(frozen=True)
class ApiResult:
    """
    Outcome of a backend-facing operation: either success with data or
    failure with a short user-visible message.

    Attributes:
        ok: True on success.
        data: Operation-specific payload on success.
        error: User-visible message on failure.
        kind: Failure category - "network", "rejected", "parse", "invalid", "state",
            "cooldown" or "internal".
        status: HTTP status when the backend answered.
    """

    ok: bool
    data: Any = None
    error: str = ""
    kind: str = ""
    status: Optional[int] = None

    @classmethod
    def success(cls, data: Any = None) -> "ApiResult":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str, kind: str = "backend", status: Optional[int] = None) -> "ApiResult":
        return cls(ok=False, error=error, kind=kind, status=status)

    @classmethod
    def from_error(cls, exc: BackendError) -> "ApiResult":
        return cls.failure(exc.message, kind=exc.kind, status=exc.status)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def require_object(data: Any) -> dict[str, Any]:
    """Return *data* if it is a JSON object, else raise ParseError."""
    if not isinstance(data, dict):
        raise ParseError()
    return data


def _opt_str(payload: dict[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ParseError()


def _opt_int(payload: dict[str, Any], key: str) -> Optional[int]:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ParseError()
    try:
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, str):
            return int(float(value))
    except (ValueError, OverflowError) as exc:
        # nan, inf (json "1e999") or a non-numeric string
        raise ParseError() from exc
    raise ParseError()


def _opt_bool(payload: dict[str, Any], key: str, default: bool = False) -> bool:
    value = payload.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ParseError()


def _sub_object(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


# ---------------------------------------------------------------------------
# Auth responses
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AuthResponse:
    """
    Response of /auth/v1/signup and /auth/v1/token?grant_type=password.

    The token may sit at the top level, under "session", or under "data";
    signup with email confirmation returns the user object itself and no
    token at all.
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    user: dict[str, Any] = field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        value = self.user.get("id")
        return str(value) if value else None

    @property
    def email(self) -> Optional[str]:
        value = self.user.get("email")
        return value if isinstance(value, str) else None

    @property
    def metadata_role(self) -> Optional[Role]:
        """Role from user_metadata, or None when the auth user carries none."""
        metadata = _sub_object(self.user, "user_metadata")
        raw = metadata.get("role")
        if not isinstance(raw, str) or not raw.strip():
            return None
        return Role.parse(raw)

    def token_payload(self) -> dict[str, Any]:
        """Token fields in the shape TokenStore.save_payload() expects."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AuthResponse":
        payload = require_object(data)

        source = payload
        if not payload.get("access_token"):
            for key in ("session", "data"):
                nested = _sub_object(payload, key)
                if nested.get("access_token"):
                    source = nested
                    break

        user = payload.get("user")
        if not isinstance(user, dict):
            user = source.get("user") if isinstance(source.get("user"), dict) else None
        if user is None:
            user = payload if payload.get("id") and "access_token" not in payload else {}

        return cls(
            access_token=_opt_str(source, "access_token") or None,
            refresh_token=_opt_str(source, "refresh_token") or None,
            token_type=_opt_str(source, "token_type", "bearer") or "bearer",
            expires_in=_opt_int(source, "expires_in"),
            expires_at=_opt_int(source, "expires_at"),
            user=user,
        )


@dataclass(frozen=True)
class OtpSendResponse:
    """Response of the send-otp function and of /auth/v1/recover."""

    success: bool = False
    message: str = ""
    expires_in: int = 300

    @classmethod
    def from_dict(cls, data: Any, default_success: bool = False) -> "OtpSendResponse":
        payload = require_object(data)
        return cls(
            success=_opt_bool(payload, "success", default_success),
            message=_opt_str(payload, "message", "") or "",
            expires_in=_opt_int(payload, "expiresIn") or 300,
        )


@dataclass(frozen=True)
class OtpVerifyResponse:
    """
    Response of the verify-otp function and of /auth/v1/verify.

    The recovery verify carries no "success" flag; a returned access token
    is what marks it successful.
    """

    success: bool = False
    message: str = ""
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "OtpVerifyResponse":
        payload = require_object(data)
        access_token = _opt_str(payload, "access_token") or None
        return cls(
            success=_opt_bool(payload, "success", bool(access_token)),
            message=_opt_str(payload, "message", "") or "",
            access_token=access_token,
            refresh_token=_opt_str(payload, "refresh_token") or None,
            token_type=_opt_str(payload, "token_type", "bearer") or "bearer",
            expires_in=_opt_int(payload, "expires_in"),
        )


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Profile:
    """
    Row of the profiles table, cached locally after sign-in.

    Attributes:
        id: Auth user id.
        email: Account email; "" when unknown.
        first_name, last_name: Split name; "" when unknown.
        phone: Contact phone; "" when unknown.
        role: Marketplace role; TENANT when absent or unrecognised.
        dob: Date of birth string, optional.
        avatar_url: Optional avatar location.
        created_at: Backend timestamp string, optional.
    """

    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    role: Role = Role.TENANT
    dob: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a row dict for inserts and the local snapshot."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "phone": self.phone,
            "role": self.role.value,
            "dob": self.dob,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Profile":
        payload = require_object(data)
        user_id = _opt_str(payload, "id")
        if not user_id:
            raise ParseError()

        first_name = _opt_str(payload, "first_name", "") or ""
        last_name = _opt_str(payload, "last_name", "") or ""
        full_name = _opt_str(payload, "full_name", "") or ""
        if full_name and not (first_name or last_name):
            first_name, _, last_name = full_name.partition(" ")

        return cls(
            id=user_id,
            email=_opt_str(payload, "email", "") or "",
            first_name=first_name,
            last_name=last_name,
            phone=_opt_str(payload, "phone", "") or "",
            role=Role.parse(payload.get("role")),
            dob=_opt_str(payload, "dob"),
            avatar_url=_opt_str(payload, "avatar_url"),
            created_at=_opt_str(payload, "created_at"),
        )
