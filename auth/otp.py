"""
otp.py

One-time-code challenge shared by signup and password reset, and the
small runner both flows use to move backend work off the caller's thread.

The resend cooldown is enforced here, on the client only. The backend's
send-otp function has its own rate limit; this cooldown is a courtesy to
the user, not a security control.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional

import config
from auth.validation import is_valid_otp
from backend.client import BackendClient
from backend.schemas import ApiResult

_log = logging.getLogger("roominate.auth.otp")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "auth.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [auth.otp] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False


def completed(result: ApiResult) -> "Future[ApiResult]":
    """Wrap an already-known result in a resolved future."""
    future: Future = Future()
    future.set_result(result)
    return future


class OtpChallenge:
    """
    A code sent to one email address, with a resend cooldown.

    Args:
        email: Address the code goes to.
        send: Backend call that emails a code; returns ApiResult.
        verify: Backend call checking (email, code); returns ApiResult.
        cooldown_seconds: Minimum gap between successful sends.
        clock: Monotonic seconds source.

    Example:
        challenge = OtpChallenge(email, client.send_otp, client.verify_otp, 60)
        challenge.send()
        challenge.verify("123456")
    """

    def __init__(
        self,
        email: str,
        send: Callable[[str], ApiResult],
        verify: Callable[[str, str], ApiResult],
        cooldown_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._email = email
        self._send = send
        self._verify = verify
        self._cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._cooldown_until: Optional[float] = None
        self._sending = False
        self.sends = 0

    @property
    def email(self) -> str:
        return self._email

    def cooldown_remaining(self) -> float:
        """Seconds until a resend is allowed; 0 when allowed now."""
        until = self._cooldown_until
        if until is None:
            return 0.0
        return max(0.0, until - self._clock())

    def can_resend(self) -> bool:
        return self.cooldown_remaining() <= 0 and not self._sending

    def cooldown_failure(self) -> Optional[ApiResult]:
        """The local rejection for a resend right now, or None when a resend is allowed."""
        remaining = self.cooldown_remaining()
        if remaining <= 0:
            return None
        wait = math.ceil(remaining)
        _log.info("Resend for %s rejected: %ss of cooldown left", self._email, wait)
        return ApiResult.failure(
            f"Please wait {wait} seconds before requesting a new code",
            kind="cooldown",
        )

    def send(self) -> ApiResult:
        """Send a code now, ignoring any cooldown (first send)."""
        return self._issue(enforce_cooldown=False)

    def resend(self) -> ApiResult:
        """Send a new code unless the cooldown is running; a rejected resend makes no backend call."""
        return self._issue(enforce_cooldown=True)

    def _issue(self, enforce_cooldown: bool) -> ApiResult:
        with self._lock:
            if self._sending:
                return ApiResult.failure("A code is already being sent", kind="state")
            rejected = self.cooldown_failure() if enforce_cooldown else None
            if rejected:
                return rejected
            self._sending = True

        result = ApiResult.failure("Send OTP failed")
        try:
            result = self._send(self._email)
        finally:
            with self._lock:
                self._sending = False
                if result.ok:
                    self._cooldown_until = self._clock() + self._cooldown_seconds
                    self.sends += 1

        if result.ok:
            _log.info("Code sent to %s", self._email)
        else:
            _log.warning("Sending code to %s failed: %s", self._email, result.error)
        return result

    def verify(self, code: str) -> ApiResult:
        """Check *code*; malformed codes are rejected without a backend call."""
        code = (code or "").strip()
        if not is_valid_otp(code):
            return ApiResult.failure("Please enter the complete 6-digit code", kind="invalid")

        result = self._verify(self._email, code)
        if not result.ok:
            _log.info("Code rejected for %s: %s", self._email, result.error)
        return result

    def cancel(self) -> None:
        """Forget the cooldown; used when the flow rewinds past this challenge."""
        with self._lock:
            self._cooldown_until = None


class FlowRunner:
    """
    Serializes one flow's backend work: at most one operation in flight,
    run on the client's worker pool, guarded by the flow's lock.
    """

    def __init__(self, client: BackendClient) -> None:
        self._client = client
        self._lock = threading.RLock()
        self._busy = False

    def _busy_result(self) -> ApiResult:
        return ApiResult.failure("Another request is already in progress", kind="state")

    def _run(self, work: Callable[[], ApiResult]) -> "Future[ApiResult]":
        """Submit *work*; callers have already checked the stage under the lock."""

        def _task() -> ApiResult:
            try:
                return work()
            finally:
                with self._lock:
                    self._busy = False

        with self._lock:
            if self._busy:
                return completed(self._busy_result())
            self._busy = True
        return self._client.submit(_task)
