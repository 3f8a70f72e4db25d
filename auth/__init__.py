"""
auth - Authentication Module

Signup and password-reset flows on a shared OTP primitive, session storage
in two tiers, password sign-in/out and the OAuth redirect callback.
Part of Roominate - Boarding-House Marketplace Client.
"""

from auth.manager import AuthManager
from auth.manager import get_auth_manager
from auth.password_reset import PasswordResetFlow
from auth.signup import SignupFlow
from auth.token_store import TokenStore

__all__ = [
    "AuthManager",
    "PasswordResetFlow",
    "SignupFlow",
    "TokenStore",
    "get_auth_manager",
]
