"""
config.py

Loads all environment variables from .env using python-dotenv.
Exposes them as typed constants grouped by section.
Backend credentials are validated on demand, not on import.
Part of Roominate - Boarding-House Marketplace Client.
"""

import os
import sys
from pathlib import Path
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Load .env file from project root
# ---------------------------------------------------------------------------
_ENV_PATH = Path(__file__).resolve().parent / ".env"
load_dotenv(_ENV_PATH)


def _get_optional(key: str, default: str = "") -> str:
    """
    Retrieve an optional environment variable with a default.

    Args:
        key: The environment variable name.
        default: Fallback value if not set.

    Returns:
        The value string or default.
    """
    return os.getenv(key, default).strip() or default


def _get_bool(key: str, default: bool = False) -> bool:
    """
    Retrieve an environment variable as a boolean.

    Args:
        key: The environment variable name.
        default: Fallback if not set.

    Returns:
        True if the value is "true"/"1"/"yes" (case-insensitive), else False.
    """
    raw = os.getenv(key, "").strip().lower()
    if not raw:
        return default
    return raw in ("true", "1", "yes")


def _get_int(key: str, default: int = 0) -> int:
    """
    Retrieve an environment variable as an integer.

    Args:
        key: The environment variable name.
        default: Fallback if not set or not a valid int.

    Returns:
        The integer value.
    """
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(key: str, default: float = 0.0) -> float:
    """
    Retrieve an environment variable as a float.

    Args:
        key: The environment variable name.
        default: Fallback if not set or not a valid float.

    Returns:
        The float value.
    """
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


# ===========================================================================
# Section 1 - Backend (Supabase REST, auth and edge functions)
# ===========================================================================

SUPABASE_URL: str = _get_optional("SUPABASE_URL").rstrip("/")
SUPABASE_ANON_KEY: str = _get_optional("SUPABASE_ANON_KEY")

# Connect/read/write budget shared by every call
HTTP_TIMEOUT_SECONDS: float = _get_float("HTTP_TIMEOUT_SECONDS", 60.0)
HTTP_MAX_WORKERS: int = _get_int("HTTP_MAX_WORKERS", 4)
HTTP_LOG_BODIES: bool = _get_bool("HTTP_LOG_BODIES", default=False)

# ===========================================================================
# Section 2 - Auth flows
# ===========================================================================

SIGNUP_OTP_COOLDOWN_SECONDS: int = _get_int("SIGNUP_OTP_COOLDOWN_SECONDS", 60)
RESET_OTP_COOLDOWN_SECONDS: int = _get_int("RESET_OTP_COOLDOWN_SECONDS", 30)
DEFAULT_TOKEN_TTL_SECONDS: int = _get_int("DEFAULT_TOKEN_TTL_SECONDS", 3600)

# ===========================================================================
# Section 3 - Local storage
# ===========================================================================

PROJECT_ROOT: Path = Path(__file__).resolve().parent
DATA_DIR: Path = Path(_get_optional("DATA_DIR", str(PROJECT_ROOT / ".roominate")))
PREFS_FILE: Path = DATA_DIR / "prefs.json"
SECURE_PREFS_FILE: Path = DATA_DIR / "secure_prefs.bin"
SECURE_KEY_FILE: Path = DATA_DIR / "secure_prefs.key"

# Fernet key for the encrypted tier; generated into SECURE_KEY_FILE when unset
TOKEN_ENCRYPTION_KEY: str = _get_optional("TOKEN_ENCRYPTION_KEY")

# ===========================================================================
# Section 4 - General Config
# ===========================================================================

LOG_LEVEL: str = _get_optional("LOG_LEVEL", "INFO")
LOGS_DIR: Path = Path(_get_optional("LOGS_DIR", str(PROJECT_ROOT / "logs")))

# Ensure logs directory exists
LOGS_DIR.mkdir(parents=True, exist_ok=True)


# ===========================================================================
# Validation helpers
# ===========================================================================

def validate_backend() -> None:
    """
    Validate that the backend URL and anonymous key are configured.
    Call this before talking to the backend - not at import time,
    because tests and offline commands never need it.

    Raises:
        SystemExit: If SUPABASE_URL or SUPABASE_ANON_KEY is missing.

    Example:
        validate_backend()
    """
    for value, name in (
        (SUPABASE_URL, "SUPABASE_URL"),
        (SUPABASE_ANON_KEY, "SUPABASE_ANON_KEY"),
    ):
        if not value:
            print(
                f"[Roominate Config Error] Required environment variable '{name}' is missing or empty.\n"
                f"  -> Add it to your .env file. See .env.example for reference.",
                file=sys.stderr,
            )
            raise SystemExit(1)


def as_dict() -> dict[str, str | int | float | bool]:
    """
    Return all configuration values as a flat dictionary.
    Useful for debugging - does NOT include sensitive keys in logs.

    Returns:
        A dict of all config keys and their current values.

    Example:
        cfg = as_dict()
    """
    return {
        # Backend
        "SUPABASE_URL": SUPABASE_URL or "(not set)",
        "SUPABASE_ANON_KEY": "***set***" if SUPABASE_ANON_KEY else "",
        "HTTP_TIMEOUT_SECONDS": HTTP_TIMEOUT_SECONDS,
        "HTTP_MAX_WORKERS": HTTP_MAX_WORKERS,
        "HTTP_LOG_BODIES": HTTP_LOG_BODIES,
        # Auth flows
        "SIGNUP_OTP_COOLDOWN_SECONDS": SIGNUP_OTP_COOLDOWN_SECONDS,
        "RESET_OTP_COOLDOWN_SECONDS": RESET_OTP_COOLDOWN_SECONDS,
        "DEFAULT_TOKEN_TTL_SECONDS": DEFAULT_TOKEN_TTL_SECONDS,
        # Storage
        "DATA_DIR": str(DATA_DIR),
        "TOKEN_ENCRYPTION_KEY": "***set***" if TOKEN_ENCRYPTION_KEY else "",
        # General
        "LOG_LEVEL": LOG_LEVEL,
        "LOGS_DIR": str(LOGS_DIR),
    }
