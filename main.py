"""
main.py

Command-line entry point for the Roominate client.
Drives sign-in, sign-out, signup, password reset and the OAuth callback
against the configured backend.
Part of Roominate - Boarding-House Marketplace Client.
"""

import argparse
import getpass
import json
import logging
import sys
from concurrent.futures import Future
from typing import Callable, Optional

import config
from auth.callback import handle_oauth_callback
from auth.manager import AuthManager, get_auth_manager
from auth.models import SignupStage
from auth.password_reset import PasswordResetFlow
from auth.signup import SignupFlow
from auth.validation import password_strength
from backend.schemas import ApiResult


_log = logging.getLogger("roominate.main")
_handler = logging.FileHandler(config.LOGS_DIR / "main.log")
_handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
_log.addHandler(_handler)
_log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))


def print_banner() -> None:
    """Print the Roominate banner."""
    print()
    print("=" * 60)
    print("   ROOMINATE - Boarding-House Marketplace")
    print("=" * 60)
    print()


def _wait(future: "Future[ApiResult]") -> ApiResult:
    """Block on *future* and print the failure message, if any."""
    result = future.result()
    if not result.ok:
        print(f"[Error] {result.error}")
    return result


def _ask(prompt: str, reader: Callable[[str], str] = input) -> str:
    return reader(prompt).strip()


def _retry(step: Callable[[], "Future[ApiResult]"], attempts: int = 3) -> ApiResult:
    """Repeat an interactive step until it succeeds or attempts run out."""
    result = ApiResult.failure("No attempts made", kind="state")
    for _ in range(attempts):
        result = _wait(step())
        if result.ok:
            break
    return result


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_status(manager: AuthManager, _args: argparse.Namespace) -> int:
    restored = manager.restore_session()
    if restored.ok:
        print(f"Signed in as {restored.data.email or restored.data.user_id} ({restored.data.role.value})")
    else:
        print("Not signed in.")
    print(json.dumps(manager.get_status(), indent=2))
    return 0


def cmd_login(manager: AuthManager, args: argparse.Namespace) -> int:
    prefill = manager.profile_cache.prefill_email()
    email = args.email or _ask(f"Email [{prefill or ''}]: ") or (prefill or "")
    password = getpass.getpass("Password: ")

    result = _wait(manager.sign_in(email, password))
    if not result.ok:
        return 1

    login = result.data
    print(f"Welcome, {login.profile.full_name if login.profile and login.profile.full_name else login.email}.")
    print(f"Dashboard: {login.role.value}")
    return 0


def cmd_logout(manager: AuthManager, _args: argparse.Namespace) -> int:
    _wait(manager.sign_out())
    print("Signed out.")
    return 0


def cmd_signup(manager: AuthManager, args: argparse.Namespace) -> int:
    flow = SignupFlow(
        manager.client,
        args.role,
        token_store=manager.token_store,
        profile_cache=manager.profile_cache,
    )

    if not _retry(lambda: flow.set_basic_info(
        _ask("First name: "),
        _ask("Last name: "),
        _ask("Phone (optional): "),
        _ask("Date of birth YYYY-MM-DD (optional): ") or None,
    )).ok:
        return 1

    if not _retry(lambda: flow.submit_email(args.email or _ask("Email: "))).ok:
        return 1

    if not _wait(flow.request_otp()).ok:
        return 1
    print(f"A 6-digit code was sent to {flow.progress.email}.")

    while flow.stage is SignupStage.OTP_REQUESTED:
        code = _ask("Code (or 'resend'): ")
        if code.lower() == "resend":
            if _wait(flow.resend_otp()).ok:
                print("A new code was sent.")
            continue
        if not code:
            return 1
        _wait(flow.verify_otp(code))

    def _choose() -> "Future[ApiResult]":
        password = getpass.getpass("Password: ")
        print(f"Strength: {password_strength(password)}/100")
        return flow.choose_password(password, getpass.getpass("Confirm password: "))

    if not _retry(_choose).ok:
        return 1

    result = _wait(flow.complete_signup())
    if not result.ok:
        return 1

    signup = result.data
    print(f"Account created for {signup.email} ({signup.role.value}).")
    if not signup.profile_created:
        print("[Warning] Profile details could not be saved; you can complete them later.")
    return 0


def cmd_reset_password(manager: AuthManager, args: argparse.Namespace) -> int:
    flow = PasswordResetFlow(manager.client)

    if not _retry(lambda: flow.submit_email(args.email or _ask("Email: "))).ok:
        return 1
    if not _wait(flow.request_code()).ok:
        return 1
    print(f"A reset code was sent to {flow.email}.")

    if not _retry(lambda: flow.verify_code(_ask("Code: "))).ok:
        return 1

    if not _retry(lambda: flow.set_new_password(
        getpass.getpass("New password: "),
        getpass.getpass("Confirm password: "),
    )).ok:
        return 1

    print("Password updated. You can now sign in.")
    return 0


def cmd_callback(manager: AuthManager, args: argparse.Namespace) -> int:
    result = handle_oauth_callback(args.uri, store=manager.secure_store)
    if not result.ok:
        print(f"[Error] {result.error}")
        return 1
    print("Signed in successfully.")
    return 0


COMMANDS: dict[str, Callable[[AuthManager, argparse.Namespace], int]] = {
    "status": cmd_status,
    "login": cmd_login,
    "logout": cmd_logout,
    "signup": cmd_signup,
    "reset-password": cmd_reset_password,
    "callback": cmd_callback,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Roominate - Boarding-House Marketplace Client")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show the current session")

    login = sub.add_parser("login", help="Sign in with email and password")
    login.add_argument("--email", default="", help="Account email")

    sub.add_parser("logout", help="Sign out and clear stored tokens")

    signup = sub.add_parser("signup", help="Create an account")
    signup.add_argument("--role", choices=["tenant", "owner"], default="tenant", help="Account role")
    signup.add_argument("--email", default="", help="Account email")

    reset = sub.add_parser("reset-password", help="Reset a forgotten password")
    reset.add_argument("--email", default="", help="Account email")

    callback = sub.add_parser("callback", help="Store tokens from an OAuth redirect URI")
    callback.add_argument("uri", help="Redirect URI carrying the tokens")

    return parser


def main(argv: Optional[list[str]] = None, manager: Optional[AuthManager] = None) -> int:
    """Parse arguments and run one command. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    if manager is None:
        config.validate_backend()
        manager = get_auth_manager()

    print_banner()
    _log.info("Running command %s", args.command)

    try:
        return COMMANDS[args.command](manager, args)
    except KeyboardInterrupt:
        print("\n\nInterrupted.")
        return 130
    except Exception as exc:
        print(f"\n[Fatal] {exc}")
        _log.exception("Fatal error in %s", args.command)
        return 1
    finally:
        manager.client.shutdown()


if __name__ == "__main__":
    sys.exit(main())
