"""
password_reset.py

Forgot-password flow: email -> recovery code -> new password.
The recovery token returned by the verify step authorizes only the
password update and is kept in memory, never in a token store.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from typing import Callable, Optional

import config
from auth.models import ResetStage
from auth.otp import FlowRunner, OtpChallenge, completed
from auth.validation import (
    STRICT_PASSWORD_POLICY,
    check_confirmation,
    is_valid_email,
    normalize_email,
)
from backend.client import BackendClient
from backend.schemas import ApiResult

_log = logging.getLogger("roominate.auth.reset")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "auth.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [auth.reset] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False


class PasswordResetFlow(FlowRunner):
    """
    Password reset for one email address.

    Example:
        flow = PasswordResetFlow(client)
        flow.submit_email("ana@example.com").result()
        flow.request_code().result()
        flow.verify_code("123456").result()
        flow.set_new_password("NewPass1", "NewPass1").result()
    """

    def __init__(
        self,
        client: BackendClient,
        email: str = "",
        cooldown_seconds: float = config.RESET_OTP_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(client)
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._email = normalize_email(email)
        self._stage = ResetStage.EMAIL_ENTERED
        self._challenge: Optional[OtpChallenge] = None
        self._recovery_token: Optional[str] = None

    @property
    def stage(self) -> ResetStage:
        return self._stage

    @property
    def email(self) -> str:
        return self._email

    def cooldown_remaining(self) -> float:
        challenge = self._challenge
        return challenge.cooldown_remaining() if challenge else 0.0

    def _stage_error(self, allowed: tuple[ResetStage, ...], action: str) -> Optional[ApiResult]:
        if self._busy:
            return self._busy_result()
        if self._stage not in allowed:
            return ApiResult.failure(f"Cannot {action} at stage {self._stage.value}", kind="state")
        return None

    def submit_email(self, email: str) -> "Future[ApiResult]":
        if not (email or "").strip():
            return completed(ApiResult.failure("Email is required", kind="invalid"))
        if not is_valid_email(email):
            return completed(ApiResult.failure("Please enter a valid email", kind="invalid"))

        with self._lock:
            error = self._stage_error((ResetStage.EMAIL_ENTERED,), "change the email")
            if error:
                return completed(error)
            self._email = normalize_email(email)
            return completed(ApiResult.success(self._email))

    def request_code(self) -> "Future[ApiResult]":
        """Email a recovery code; -> OTP_REQUESTED on success."""
        with self._lock:
            error = self._stage_error((ResetStage.EMAIL_ENTERED,), "request a code")
            if error:
                return completed(error)
            if not self._email:
                return completed(ApiResult.failure("Email is required", kind="invalid"))

            challenge = OtpChallenge(
                self._email,
                self._client.send_recovery,
                self._client.verify_recovery,
                self._cooldown_seconds,
                clock=self._clock,
            )
            return self._run(lambda: self._send_first(challenge))

    def _send_first(self, challenge: OtpChallenge) -> ApiResult:
        result = challenge.send()
        if result.ok:
            with self._lock:
                self._challenge = challenge
                self._stage = ResetStage.OTP_REQUESTED
        return result

    def resend_code(self) -> "Future[ApiResult]":
        with self._lock:
            error = self._stage_error((ResetStage.OTP_REQUESTED,), "resend a code")
            if error:
                return completed(error)
            challenge = self._challenge
            rejected = challenge.cooldown_failure()
            if rejected:
                return completed(rejected)
            return self._run(challenge.resend)

    def verify_code(self, code: str) -> "Future[ApiResult]":
        """Exchange the code for a recovery token; -> OTP_VERIFIED."""
        code = (code or "").strip()
        with self._lock:
            error = self._stage_error((ResetStage.OTP_REQUESTED,), "verify a code")
            if error:
                return completed(error)
            return self._run(lambda: self._verify(self._challenge, code))

    def _verify(self, challenge: OtpChallenge, code: str) -> ApiResult:
        result = challenge.verify(code)
        if result.ok:
            with self._lock:
                self._recovery_token = result.data.access_token
                self._stage = ResetStage.OTP_VERIFIED
            _log.info("Recovery code accepted for %s", self._email)
        return result

    def set_new_password(self, password: str, confirm: Optional[str]) -> "Future[ApiResult]":
        """Apply the reset password policy, then update the password with the recovery token."""
        violation = STRICT_PASSWORD_POLICY.check(password) or check_confirmation(password, confirm)
        if violation:
            return completed(ApiResult.failure(violation, kind="invalid"))

        with self._lock:
            error = self._stage_error((ResetStage.OTP_VERIFIED,), "set a new password")
            if error:
                return completed(error)
            token = self._recovery_token
            return self._run(lambda: self._update(token, password))

    def _update(self, token: str, password: str) -> ApiResult:
        result = self._client.update_password(token, password)
        if not result.ok:
            _log.warning("Password update for %s failed: %s", self._email, result.error)
            return result

        with self._lock:
            self._recovery_token = None
            self._stage = ResetStage.COMPLETE
        _log.info("Password reset complete for %s", self._email)
        return ApiResult.success(self._email)

    def restart(self) -> "Future[ApiResult]":
        """Return to EMAIL_ENTERED, dropping the challenge and any recovery token."""
        with self._lock:
            if self._busy:
                return completed(self._busy_result())
            if self._challenge is not None:
                self._challenge.cancel()
            self._challenge = None
            self._recovery_token = None
            self._stage = ResetStage.EMAIL_ENTERED
            return completed(ApiResult.success(self._email))
