"""
client.py

HTTP client for the hosted backend: auth endpoints, OTP edge functions and
raw /rest/v1 table requests. Every call goes through the authenticated
request builder and resolves to an ApiResult; network, rejection and parse
failures never escape as exceptions. Blocking calls run on a small worker
pool via submit(), which hands back a concurrent.futures.Future.
Part of Roominate - Boarding-House Marketplace Client.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

import requests

import config
from backend.errors import BackendError, BackendRejection, NetworkError, ParseError
from backend.request_builder import AuthenticatedRequestBuilder
from backend.schemas import ApiResult, AuthResponse, OtpSendResponse, OtpVerifyResponse

_log = logging.getLogger("roominate.backend")
if not _log.handlers:
    _handler = logging.FileHandler(config.LOGS_DIR / "backend.log", encoding="utf-8")
    _handler.setFormatter(
        logging.Formatter("[%(asctime)s] [%(levelname)s] [backend] %(message)s")
    )
    _log.addHandler(_handler)
    _log.setLevel(getattr(logging, config.LOG_LEVEL, logging.INFO))
    _log.propagate = False

_ERROR_FIELDS = ("msg", "error_description", "error", "message")


def _error_message(response: requests.Response, default: str) -> str:
    """Pull the conventional error field out of a rejection body."""
    try:
        payload = response.json()
    except ValueError:
        return default

    if isinstance(payload, dict):
        for key in _ERROR_FIELDS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return default


class BackendClient:
    """
    Client for the Supabase-style backend.

    Example:
        client = BackendClient(builder)
        future = client.submit(client.sign_in, "a@b.com", "secret")
        result = future.result()
        if result.ok:
            print(result.data.user_id)
    """

    def __init__(
        self,
        builder: AuthenticatedRequestBuilder,
        session: Optional[requests.Session] = None,
        timeout: float = config.HTTP_TIMEOUT_SECONDS,
        max_workers: int = config.HTTP_MAX_WORKERS,
    ) -> None:
        self._builder = builder
        self._session = session or requests.Session()
        self._timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="roominate-http",
        )

    @property
    def builder(self) -> AuthenticatedRequestBuilder:
        return self._builder

    # ------------------------------------------------------------------
    # Async boundary
    # ------------------------------------------------------------------

    def submit(self, fn: Callable[..., ApiResult], *args: Any, **kwargs: Any) -> "Future[ApiResult]":
        """
        Run *fn* on the worker pool without blocking the caller.

        The future always resolves to an ApiResult; an exception raised by
        *fn* is logged and delivered as a failure result.
        """

        def _run() -> ApiResult:
            try:
                return fn(*args, **kwargs)
            except BackendError as exc:
                return ApiResult.from_error(exc)
            except Exception as exc:
                _log.exception("Unhandled error in %s", getattr(fn, "__name__", fn))
                return ApiResult.failure(f"Unexpected error: {exc}", kind="internal")

        return self._executor.submit(_run)

    def shutdown(self) -> None:
        """Stop accepting work; in-flight calls still complete."""
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def send(self, request: requests.Request, default_error: str) -> requests.Response:
        """
        Execute one built request.

        Raises:
            NetworkError: No response was received.
            BackendRejection: Non-2xx status.
        """
        try:
            response = self._session.request(
                request.method,
                request.url,
                params=request.params,
                json=request.json,
                headers=request.headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            _log.error("%s %s failed: %s", request.method, request.url, exc)
            raise NetworkError(f"Network error: {exc}") from exc

        if not response.ok:
            message = _error_message(response, default_error)
            _log.error(
                "%s %s rejected (%s): %s",
                request.method,
                request.url,
                response.status_code,
                message,
            )
            raise BackendRejection(message, status=response.status_code)

        if config.HTTP_LOG_BODIES:
            _log.debug("%s %s -> %s", request.method, request.url, response.text)
        return response

    def request_json(
        self,
        method: str,
        path: str,
        default_error: str,
        **build_kwargs: Any,
    ) -> Any:
        """Build, send and decode; an empty body decodes to None."""
        request = self._builder.build(method, path, **build_kwargs)
        response = self.send(request, default_error)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            _log.error("Invalid response from %s %s: %s", method, path, exc)
            raise ParseError(status=response.status_code) from exc

    def call(
        self,
        parse: Callable[[Any], Any],
        method: str,
        path: str,
        default_error: str,
        **build_kwargs: Any,
    ) -> ApiResult:
        """Run one request and convert every failure into an ApiResult."""
        try:
            payload = self.request_json(method, path, default_error, **build_kwargs)
            return ApiResult.success(parse(payload))
        except BackendError as exc:
            return ApiResult.from_error(exc)
        except (TypeError, KeyError, ValueError) as exc:
            _log.error("Unexpected response shape from %s %s: %s", method, path, exc)
            return ApiResult.from_error(ParseError())

    # ------------------------------------------------------------------
    # Auth endpoints
    # ------------------------------------------------------------------

    def sign_up(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role: str,
        phone: Optional[str] = None,
        dob: Optional[str] = None,
    ) -> ApiResult:
        """POST /auth/v1/signup with profile fields as user metadata."""
        metadata: dict[str, Any] = {
            "first_name": first_name,
            "last_name": last_name,
            "role": role,
        }
        if phone:
            metadata["phone"] = phone
        if dob:
            metadata["dob"] = dob

        _log.info("Sign up requested for %s (role=%s)", email, role)
        return self.call(
            AuthResponse.from_dict,
            "POST",
            "/auth/v1/signup",
            "Sign up failed",
            json={"email": email, "password": password, "data": metadata},
        )

    def sign_in(self, email: str, password: str) -> ApiResult:
        """POST /auth/v1/token?grant_type=password."""
        _log.info("Password sign-in requested for %s", email)
        return self.call(
            AuthResponse.from_dict,
            "POST",
            "/auth/v1/token",
            "Sign in failed",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    def sign_out(self) -> ApiResult:
        """POST /auth/v1/logout with the current credential."""
        return self.call(lambda payload: payload, "POST", "/auth/v1/logout", "Sign out failed", json={})

    def send_otp(self, email: str) -> ApiResult:
        """Ask the send-otp function to email a 6-digit code."""
        result = self.call(
            OtpSendResponse.from_dict,
            "POST",
            "/functions/v1/send-otp",
            "Send OTP failed",
            json={"email": email},
        )
        if result.ok and not result.data.success:
            return ApiResult.failure(result.data.message or "Send OTP failed", kind="rejected")
        return result

    def verify_otp(self, email: str, otp: str) -> ApiResult:
        """Check a signup code with the verify-otp function."""
        result = self.call(
            OtpVerifyResponse.from_dict,
            "POST",
            "/functions/v1/verify-otp",
            "Verify OTP failed",
            json={"email": email, "otp": otp},
        )
        if result.ok and not result.data.success:
            return ApiResult.failure("Invalid or expired verification code", kind="rejected")
        return result

    def send_recovery(self, email: str) -> ApiResult:
        """POST /auth/v1/recover - emails a recovery code; an empty 200 is success."""
        return self.call(
            lambda payload: OtpSendResponse.from_dict(payload or {}, default_success=True),
            "POST",
            "/auth/v1/recover",
            "Failed to send reset code",
            json={"email": email},
        )

    def verify_recovery(self, email: str, token: str) -> ApiResult:
        """POST /auth/v1/verify with type=recovery; success carries an access token."""
        result = self.call(
            OtpVerifyResponse.from_dict,
            "POST",
            "/auth/v1/verify",
            "Invalid code. Please try again.",
            json={"email": email, "token": token, "type": "recovery"},
        )
        if result.ok and not result.data.access_token:
            return ApiResult.failure("Invalid code. Please try again.", kind="rejected")
        return result

    def update_password(self, recovery_token: str, password: str) -> ApiResult:
        """PUT /auth/v1/user authorized by the recovery token, not the token store."""
        return self.call(
            lambda payload: payload,
            "PUT",
            "/auth/v1/user",
            "Failed to reset password",
            json={"password": password},
            bearer=recovery_token,
        )

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def rest(
        self,
        method: str,
        table: str,
        default_error: str,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
        bearer: Optional[str] = None,
    ) -> ApiResult:
        """Raw /rest/v1/<table> request; data is the decoded body."""
        headers = {"Prefer": prefer} if prefer else None
        return self.call(
            lambda payload: payload,
            method,
            f"/rest/v1/{table}",
            default_error,
            params=params,
            json=json,
            headers=headers,
            bearer=bearer,
        )
