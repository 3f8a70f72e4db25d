"""
signup.py

Signup state machine: role -> email -> OTP -> password -> account.
Each step validates locally first and only then talks to the backend;
every step answers with a Future resolving to an ApiResult.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from typing import Any, Callable, Optional

import config
from auth.models import SignupProgress, SignupResult, SignupStage
from auth.otp import FlowRunner, OtpChallenge, completed
from auth.profile_cache import ProfileCache, get_profile_cache
from auth.token_store import TokenStore, get_token_store
from auth.validation import (
    SIMPLE_PASSWORD_POLICY,
    check_confirmation,
    is_valid_email,
    normalize_email,
)
from backend.client import BackendClient
from backend.errors import ParseError
from backend.rest import RETURN_REPRESENTATION, eq, first_row
from backend.schemas import ApiResult, AuthResponse, Profile, Role

_log = logging.getLogger("roominate.auth.signup")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "auth.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [auth.signup] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False

_ALREADY_EXISTS_MARKERS = ("user_already_exists", "already exists", "already registered")
_PRE_OTP_STAGES = (SignupStage.ROLE_SELECTED, SignupStage.EMAIL_ENTERED)


def _already_exists(error: str) -> bool:
    lowered = (error or "").lower()
    return any(marker in lowered for marker in _ALREADY_EXISTS_MARKERS)


class SignupFlow(FlowRunner):
    """
    One user's signup, from role choice to a created account.

    Progress lives in memory only. An abandoned flow is simply dropped.

    Args:
        client: Backend client; its worker pool runs the network steps.
        role: Role picked on the first screen.
        token_store: Tier the new session is saved to (plaintext by default).
        profile_cache: Where the created profile and prefill email go.
        cooldown_seconds: Minimum gap between OTP sends.
        clock: Monotonic clock for the cooldown.

    Example:
        flow = SignupFlow(client, "owner")
        flow.set_basic_info("Ana", "Reyes").result()
        flow.submit_email("ana@example.com").result()
        flow.request_otp().result()
        flow.verify_otp("123456").result()
        flow.choose_password("secret1", "secret1").result()
        result = flow.complete_signup().result()
    """

    def __init__(
        self,
        client: BackendClient,
        role: Role | str,
        token_store: Optional[TokenStore] = None,
        profile_cache: Optional[ProfileCache] = None,
        cooldown_seconds: float = config.SIGNUP_OTP_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(client)
        self._token_store = token_store or get_token_store()
        self._profile_cache = profile_cache or get_profile_cache()
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._challenge: Optional[OtpChallenge] = None
        self._progress = SignupProgress(stage=SignupStage.ROLE_SELECTED, role=Role.parse(role))

    @property
    def progress(self) -> SignupProgress:
        return self._progress

    @property
    def stage(self) -> SignupStage:
        return self._progress.stage

    def cooldown_remaining(self) -> float:
        challenge = self._challenge
        return challenge.cooldown_remaining() if challenge else 0.0

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _reject(self, message: str, kind: str = "invalid") -> "Future[ApiResult]":
        return completed(ApiResult.failure(message, kind=kind))

    def _stage_error(self, allowed: tuple[SignupStage, ...], action: str) -> Optional[ApiResult]:
        """Return a failure when busy or outside *allowed*; caller holds the lock."""
        if self._busy:
            return self._busy_result()
        if self._progress.stage not in allowed:
            return ApiResult.failure(
                f"Cannot {action} at stage {self._progress.stage.value}",
                kind="state",
            )
        return None

    # ------------------------------------------------------------------
    # Local steps
    # ------------------------------------------------------------------

    def set_basic_info(
        self,
        first_name: str,
        last_name: str,
        phone: str = "",
        dob: Optional[str] = None,
    ) -> "Future[ApiResult]":
        """Record name and contact details; does not change the stage."""
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name:
            return self._reject("First name is required")
        if not last_name:
            return self._reject("Last name is required")

        with self._lock:
            error = self._stage_error(_PRE_OTP_STAGES, "edit details")
            if error:
                return completed(error)
            self._progress = self._progress.advance(
                self._progress.stage,
                first_name=first_name,
                last_name=last_name,
                phone=(phone or "").strip(),
                dob=dob or None,
            )
            return completed(ApiResult.success(self._progress))

    def submit_email(self, email: str) -> "Future[ApiResult]":
        if not (email or "").strip():
            return self._reject("Email is required")
        if not is_valid_email(email):
            return self._reject("Please enter a valid email")

        normalized = normalize_email(email)
        with self._lock:
            error = self._stage_error(_PRE_OTP_STAGES, "enter an email")
            if error:
                return completed(error)
            self._challenge = None
            self._progress = self._progress.advance(SignupStage.EMAIL_ENTERED, email=normalized)
            return completed(ApiResult.success(self._progress))

    def choose_password(self, password: str, confirm: Optional[str] = None) -> "Future[ApiResult]":
        """Apply the signup password policy; -> PASSWORD_CHOSEN."""
        violation = SIMPLE_PASSWORD_POLICY.check(password) or check_confirmation(password, confirm)
        if violation:
            return self._reject(violation)

        with self._lock:
            error = self._stage_error(
                (SignupStage.OTP_VERIFIED, SignupStage.PASSWORD_CHOSEN),
                "choose a password",
            )
            if error:
                return completed(error)
            self._progress = self._progress.advance(SignupStage.PASSWORD_CHOSEN, password=password)
            return completed(ApiResult.success(self._progress))

    def go_back(self, stage: SignupStage | str) -> "Future[ApiResult]":
        """
        Rewind to *stage*, dropping everything collected after it.

        Rewinding before OTP_REQUESTED also abandons the OTP challenge and
        its cooldown; a later request starts a fresh one.
        """
        try:
            target = SignupStage(stage)
        except ValueError:
            return self._reject(f"Unknown stage: {stage}")

        with self._lock:
            if self._busy:
                return completed(self._busy_result())
            current = self._progress.stage
            if current is SignupStage.COMPLETE:
                return completed(ApiResult.failure("Signup is already complete", kind="state"))
            if target.rank > current.rank:
                return completed(
                    ApiResult.failure(f"Cannot go forward to {target.value}", kind="state")
                )

            if target.rank < SignupStage.OTP_REQUESTED.rank and self._challenge is not None:
                self._challenge.cancel()
                self._challenge = None
            self._progress = self._progress.rewound_to(target)
            _log.info("Signup rewound from %s to %s", current.value, target.value)
            return completed(ApiResult.success(self._progress))

    # ------------------------------------------------------------------
    # Backend steps
    # ------------------------------------------------------------------

    def request_otp(self) -> "Future[ApiResult]":
        """Email a code to the entered address; -> OTP_REQUESTED on success."""
        with self._lock:
            error = self._stage_error((SignupStage.EMAIL_ENTERED,), "request a code")
            if error:
                return completed(error)
            email = self._progress.email
            challenge = OtpChallenge(
                email,
                self._client.send_otp,
                self._client.verify_otp,
                self._cooldown_seconds,
                clock=self._clock,
            )
            return self._run(lambda: self._send_first(challenge))

    def _send_first(self, challenge: OtpChallenge) -> ApiResult:
        result = challenge.send()
        if not result.ok:
            return result

        with self._lock:
            if self._progress.stage is not SignupStage.EMAIL_ENTERED or self._progress.email != challenge.email:
                return ApiResult.failure("Signup changed while the code was being sent", kind="state")
            self._challenge = challenge
            self._progress = self._progress.advance(SignupStage.OTP_REQUESTED)
        self._profile_cache.remember_otp_email(challenge.email)
        return result

    def resend_otp(self) -> "Future[ApiResult]":
        """Send a new code; rejected locally while the cooldown runs."""
        with self._lock:
            error = self._stage_error((SignupStage.OTP_REQUESTED,), "resend a code")
            if error:
                return completed(error)
            challenge = self._challenge
            if challenge is None:
                return completed(ApiResult.failure("No code has been requested", kind="state"))
            rejected = challenge.cooldown_failure()
            if rejected:
                return completed(rejected)
            return self._run(challenge.resend)

    def verify_otp(self, code: str) -> "Future[ApiResult]":
        """Check the code; -> OTP_VERIFIED, or stay with the code cleared."""
        code = (code or "").strip()
        with self._lock:
            error = self._stage_error((SignupStage.OTP_REQUESTED,), "verify a code")
            if error:
                return completed(error)
            challenge = self._challenge
            if challenge is None:
                return completed(ApiResult.failure("No code has been requested", kind="state"))
            return self._run(lambda: self._verify(challenge, code))

    def _verify(self, challenge: OtpChallenge, code: str) -> ApiResult:
        result = challenge.verify(code)
        with self._lock:
            if self._progress.stage is not SignupStage.OTP_REQUESTED:
                return ApiResult.failure("Signup changed while the code was being checked", kind="state")
            if result.ok:
                self._progress = self._progress.advance(SignupStage.OTP_VERIFIED, otp=code)
            else:
                self._progress = self._progress.advance(SignupStage.OTP_REQUESTED, otp=None)
        return result

    def complete_signup(self) -> "Future[ApiResult]":
        """Create the account, save the session and write the profile row."""
        with self._lock:
            error = self._stage_error((SignupStage.PASSWORD_CHOSEN,), "create the account")
            if error:
                return completed(error)
            progress = self._progress
            return self._run(lambda: self._complete(progress))

    def _complete(self, progress: SignupProgress) -> ApiResult:
        generation = self._token_store.generation
        email = progress.email
        password = progress.password or ""

        signup = self._client.sign_up(
            email,
            password,
            progress.first_name,
            progress.last_name,
            progress.role.value,
            phone=progress.phone or None,
            dob=progress.dob,
        )

        if signup.ok:
            auth: AuthResponse = signup.data
            user_id = auth.user_id
            if not auth.access_token:
                signin = self._client.sign_in(email, password)
                if signin.ok:
                    auth = signin.data
                    user_id = user_id or auth.user_id
                else:
                    _log.warning("Account %s created but sign-in failed: %s", email, signin.error)
        elif _already_exists(signup.error):
            _log.info("Account %s already exists; signing in instead", email)
            signin = self._client.sign_in(email, password)
            if not signin.ok:
                return signin
            auth = signin.data
            user_id = auth.user_id
        else:
            return signup

        session_saved = False
        if auth.access_token:
            try:
                session_saved = self._token_store.save_payload(auth.token_payload(), generation=generation)
            except ValueError as exc:
                _log.warning("Session for %s not saved: %s", email, exc)

        profile: Optional[Profile] = None
        raw: Optional[dict[str, Any]] = None
        profile_created = False
        if self._token_store.generation != generation:
            _log.info("Signed out while %s was signing up; profile row not written", email)
        else:
            profile, raw, profile_created = self._write_profile(auth.access_token, user_id, progress)

        with self._lock:
            self._progress = self._progress.advance(SignupStage.COMPLETE, otp=None, password=None)
        self._profile_cache.remember_signed_email(email)
        if profile is not None:
            self._token_store.run_if_current(
                generation,
                lambda: self._profile_cache.store_profile(profile, raw=raw),
            )

        _log.info(
            "Signup complete for %s (role=%s, session_saved=%s, profile_created=%s)",
            email,
            progress.role.value,
            session_saved,
            profile_created,
        )
        return ApiResult.success(
            SignupResult(
                email=email,
                role=progress.role,
                user_id=user_id,
                profile=profile,
                profile_created=profile_created,
                session_saved=session_saved,
            )
        )

    def _write_profile(
        self,
        access_token: Optional[str],
        user_id: Optional[str],
        progress: SignupProgress,
    ) -> tuple[Optional[Profile], Optional[dict[str, Any]], bool]:
        """
        Insert the profile row, patching it on a conflict. Failures are logged, not raised.

        Returns:
            (profile, stored row as returned by the backend, whether the write succeeded)
        """
        if not access_token:
            _log.warning("No session for %s; profile row not written", progress.email)
            return None, None, False

        row: dict[str, Any] = {
            "email": progress.email,
            "first_name": progress.first_name,
            "last_name": progress.last_name,
            "role": progress.role.value,
        }
        if user_id:
            row["id"] = user_id
        if progress.phone:
            row["phone"] = progress.phone
        if progress.dob:
            row["dob"] = progress.dob

        result = self._client.rest(
            "POST",
            "profiles",
            "Failed to create profile",
            json=row,
            prefer=RETURN_REPRESENTATION,
            bearer=access_token,
        )
        if not result.ok and result.status == 409 and user_id:
            _log.info("Profile for %s exists; updating it", user_id)
            result = self._client.rest(
                "PATCH",
                "profiles",
                "Failed to update profile",
                params={"id": eq(user_id)},
                json=row,
                prefer=RETURN_REPRESENTATION,
                bearer=access_token,
            )

        if not result.ok:
            _log.warning("Profile write for %s failed: %s", progress.email, result.error)
            return None, None, False

        try:
            stored = first_row(result.data) or row
            profile = Profile.from_dict(stored) if stored.get("id") else None
        except ParseError:
            _log.warning("Profile write for %s returned an unreadable row", progress.email)
            return None, None, True
        return profile, stored, True
