from __future__ import annotations

import requests

from backend.schemas import AuthResponse
from conftest import ANON_KEY, FakeResponse, auth_payload


def test_sign_in_sends_password_grant(client, fake_session):
    fake_session.add("POST", "/auth/v1/token", FakeResponse(200, auth_payload()))

    result = client.sign_in("ana@example.com", "secret1")

    assert result.ok
    assert isinstance(result.data, AuthResponse)
    assert result.data.access_token == "user-token"
    call = fake_session.calls[0]
    assert call["params"] == {"grant_type": "password"}
    assert call["json"] == {"email": "ana@example.com", "password": "secret1"}
    assert call["headers"]["apikey"] == ANON_KEY
    assert call["timeout"] == 5.0


def test_rejection_uses_msg_field(client, fake_session):
    fake_session.add("POST", "/auth/v1/token", FakeResponse(400, {"msg": "Invalid login credentials"}))

    result = client.sign_in("ana@example.com", "wrong")

    assert not result.ok
    assert result.kind == "rejected"
    assert result.status == 400
    assert result.error == "Invalid login credentials"


def test_function_rejection_uses_error_field(client, fake_session):
    fake_session.add("POST", "/functions/v1/send-otp", FakeResponse(429, {"error": "Too many requests"}))

    result = client.send_otp("ana@example.com")

    assert result.error == "Too many requests"
    assert result.status == 429


def test_rejection_without_body_uses_default(client, fake_session):
    fake_session.add("POST", "/auth/v1/signup", FakeResponse(500, text="<html>oops</html>"))

    result = client.sign_up("ana@example.com", "secret1", "Ana", "Reyes", "tenant")

    assert result.error == "Sign up failed"


def test_network_error(client, fake_session):
    fake_session.add("POST", "/auth/v1/token", requests.ConnectionError("connection refused"))

    result = client.sign_in("ana@example.com", "secret1")

    assert result.kind == "network"
    assert result.error.startswith("Network error:")
    assert result.status is None


def test_timeout_is_a_network_error(client, fake_session):
    fake_session.add("POST", "/functions/v1/send-otp", requests.Timeout("read timed out"))

    assert client.send_otp("ana@example.com").kind == "network"


def test_malformed_body_is_parse_error(client, fake_session):
    fake_session.add("POST", "/auth/v1/token", FakeResponse(200, text="not json"))

    result = client.sign_in("ana@example.com", "secret1")

    assert result.kind == "parse"
    assert result.error == "Failed to parse response"


def test_unexpected_shape_is_parse_error(client, fake_session):
    fake_session.add("POST", "/auth/v1/token", FakeResponse(200, ["not", "an", "object"]))

    assert client.sign_in("ana@example.com", "secret1").kind == "parse"


def test_send_otp_success_false_is_failure(client, fake_session):
    fake_session.add(
        "POST",
        "/functions/v1/send-otp",
        FakeResponse(200, {"success": False, "message": "Email not allowed"}),
    )

    result = client.send_otp("ana@example.com")

    assert not result.ok
    assert result.error == "Email not allowed"


def test_verify_otp_requires_success_flag(client, fake_session):
    fake_session.add("POST", "/functions/v1/verify-otp", FakeResponse(200, {"success": False}))

    result = client.verify_otp("ana@example.com", "123456")

    assert result.error == "Invalid or expired verification code"


def test_send_recovery_accepts_empty_body(client, fake_session):
    fake_session.add("POST", "/auth/v1/recover", FakeResponse(200))

    assert client.send_recovery("ana@example.com").ok


def test_verify_recovery_requires_token(client, fake_session):
    fake_session.add("POST", "/auth/v1/verify", FakeResponse(200, {}))

    result = client.verify_recovery("ana@example.com", "123456")

    assert not result.ok
    assert result.error == "Invalid code. Please try again."
    assert fake_session.calls[0]["json"]["type"] == "recovery"


def test_update_password_uses_recovery_token(client, fake_session, token_store):
    token_store.save("user-token", None, "bearer", 600)
    fake_session.add("PUT", "/auth/v1/user", FakeResponse(200, {"id": "user-1"}))

    assert client.update_password("recovery-token", "NewPass1").ok
    assert fake_session.calls[0]["headers"]["Authorization"] == "Bearer recovery-token"


def test_submit_returns_future_with_result(client, fake_session):
    fake_session.add("POST", "/auth/v1/token", FakeResponse(200, auth_payload()))

    future = client.submit(client.sign_in, "ana@example.com", "secret1")

    assert future.result(timeout=5).ok


def test_submit_turns_exceptions_into_failures(client):
    def _boom():
        raise RuntimeError("kaboom")

    result = client.submit(_boom).result(timeout=5)

    assert not result.ok
    assert result.kind == "internal"
