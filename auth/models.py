"""
models.py

Session snapshot, signup/reset stages and the results the auth flows
hand back to screens.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from backend.schemas import Profile, Role

__all__ = [
    "LoginResult",
    "ResetStage",
    "Role",
    "Session",
    "SignupProgress",
    "SignupResult",
    "SignupStage",
]


@dataclass(frozen=True)
class Session:
    """
    Immutable snapshot of stored credentials.

    A session whose expires_at is absent or not in the future is expired,
    whatever tokens it carries.
    """

    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at <= now

    def __repr__(self) -> str:
        masked = "***" if self.access_token else None
        return (
            f"Session(access_token={masked!r}, token_type={self.token_type!r}, "
            f"expires_at={self.expires_at!r})"
        )


class SignupStage(str, enum.Enum):
    """Signup stages, in the only order they may be reached."""

    ROLE_SELECTED = "role_selected"
    EMAIL_ENTERED = "email_entered"
    OTP_REQUESTED = "otp_requested"
    OTP_VERIFIED = "otp_verified"
    PASSWORD_CHOSEN = "password_chosen"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _SIGNUP_ORDER.index(self)


_SIGNUP_ORDER = tuple(SignupStage)


class ResetStage(str, enum.Enum):
    """Password-reset stages."""

    EMAIL_ENTERED = "email_entered"
    OTP_REQUESTED = "otp_requested"
    OTP_VERIFIED = "otp_verified"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _RESET_ORDER.index(self)


_RESET_ORDER = tuple(ResetStage)


@dataclass(frozen=True)
class SignupProgress:
    """
    Everything collected so far in one signup, tagged by its stage.

    Held in memory only; dropped when the flow object goes away.
    """

    stage: SignupStage
    role: Role
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    phone: str = ""
    dob: Optional[str] = None
    otp: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def advance(self, stage: SignupStage, **changes) -> "SignupProgress":
        return replace(self, stage=stage, **changes)

    def rewound_to(self, stage: SignupStage) -> "SignupProgress":
        """Return progress at *stage* with every later stage's data cleared."""
        changes: dict = {"stage": stage}
        if stage.rank < SignupStage.EMAIL_ENTERED.rank:
            changes["email"] = ""
        if stage.rank < SignupStage.OTP_VERIFIED.rank:
            changes["otp"] = None
        if stage.rank < SignupStage.PASSWORD_CHOSEN.rank:
            changes["password"] = None
        return replace(self, **changes)


@dataclass(frozen=True)
class SignupResult:
    """Outcome of a completed signup; profile fields are best-effort."""

    email: str
    role: Role
    user_id: Optional[str] = None
    profile: Optional[Profile] = None
    profile_created: bool = False
    session_saved: bool = False


@dataclass(frozen=True)
class LoginResult:
    """Outcome of sign-in or session restore; role drives dashboard routing."""

    user_id: str
    email: str
    role: Role
    profile: Optional[Profile] = None
