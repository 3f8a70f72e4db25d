"""
validation.py

Local input checks run before any backend call: email shape, OTP format
and the two password policies. Signup and password reset deliberately
use different policies.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional

OTP_LENGTH = 6

_OTP_PATTERN = re.compile(r"[0-9]{6}")
_SPECIAL_PATTERN = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


def is_valid_email(email: str) -> bool:
    """Weak check: non-empty and contains both "@" and "."."""
    email = (email or "").strip()
    return bool(email) and "@" in email and "." in email


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_otp(code: str) -> bool:
    """Exactly six ASCII digits."""
    return bool(_OTP_PATTERN.fullmatch(code or ""))


@dataclass(frozen=True)
class PasswordPolicy:
    """
    Ordered list of (predicate, message) rules; the first failing rule's
    message is reported.
    """

    name: str
    rules: tuple[tuple[Callable[[str], bool], str], ...]

    def check(self, password: str) -> Optional[str]:
        """Return the first violation message, or None when the password passes."""
        if not password:
            return "Password is required"
        for predicate, message in self.rules:
            if not predicate(password):
                return message
        return None


SIMPLE_PASSWORD_POLICY = PasswordPolicy(
    name="signup",
    rules=(
        (lambda p: len(p) >= 6, "Password must be at least 6 characters"),
    ),
)

STRICT_PASSWORD_POLICY = PasswordPolicy(
    name="reset",
    rules=(
        (lambda p: len(p) >= 8, "Password must be at least 8 characters"),
        (lambda p: re.search(r"[A-Z]", p) is not None, "Password must contain at least one uppercase letter"),
        (lambda p: re.search(r"[a-z]", p) is not None, "Password must contain at least one lowercase letter"),
        (lambda p: re.search(r"[0-9]", p) is not None, "Password must contain at least one number"),
    ),
)


def check_confirmation(password: str, confirm: Optional[str]) -> Optional[str]:
    """None when no confirmation was asked for or it matches."""
    if confirm is None:
        return None
    if not confirm:
        return "Please confirm your password"
    if password != confirm:
        return "Passwords do not match"
    return None


def password_strength(password: str) -> int:
    """
    Strength score 0-100 shown next to the signup password field.
    Informational only; acceptance is decided by the policies above.
    """
    score = 0
    if len(password) >= 8:
        score += 25
    if re.search(r"[a-z]", password):
        score += 15
    if re.search(r"[A-Z]", password):
        score += 20
    if re.search(r"[0-9]", password):
        score += 20
    if _SPECIAL_PATTERN.search(password):
        score += 20
    return score
