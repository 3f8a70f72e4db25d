from __future__ import annotations

from auth.callback import MISSING_TOKENS, handle_oauth_callback, parse_callback_params
from conftest import make_jwt


def test_fragment_parameters_are_decoded():
    params = parse_callback_params(
        "roominate://login-callback#access_token=abc%2E123&refresh_token=r1&expires_in=3600&token_type=bearer"
    )

    assert params == {
        "access_token": "abc.123",
        "refresh_token": "r1",
        "expires_in": "3600",
        "token_type": "bearer",
    }


def test_query_used_when_no_fragment():
    assert parse_callback_params("roominate://login-callback?access_token=q1") == {"access_token": "q1"}


def test_fragment_wins_over_query():
    params = parse_callback_params("roominate://cb?access_token=query#access_token=fragment")
    assert params["access_token"] == "fragment"


def test_callback_saves_to_secure_tier(secure_store, secure_kv, clock):
    result = handle_oauth_callback(
        "roominate://login-callback#access_token=oauth-tok&refresh_token=r1&expires_in=120&token_type=bearer",
        store=secure_store,
    )

    assert result.ok
    assert result.data.access_token == "oauth-tok"
    assert secure_kv.get("supabase_access_token") == "oauth-tok"
    assert secure_kv.get("supabase_refresh_token") == "r1"
    assert secure_store.is_valid()
    clock.advance(121)
    assert not secure_store.is_valid()


def test_invalid_expires_in_falls_back_to_default(secure_store, clock):
    handle_oauth_callback("app://cb#access_token=opaque&expires_in=soon", store=secure_store)

    clock.advance(3599)
    assert secure_store.is_valid()
    clock.advance(1)
    assert not secure_store.is_valid()


def test_missing_token_is_an_error(secure_store):
    for uri in ("roominate://login-callback", "roominate://login-callback#error=access_denied", ""):
        result = handle_oauth_callback(uri, store=secure_store)
        assert not result.ok
        assert result.error == MISSING_TOKENS
    assert secure_store.read() is None


def test_out_of_range_jwt_expiry_uses_default_lifetime(secure_store, clock):
    token = make_jwt({"exp": 10**20})

    result = handle_oauth_callback(f"app://cb#access_token={token}", store=secure_store)

    assert result.ok
    clock.advance(3599)
    assert secure_store.is_valid()
    clock.advance(1)
    assert not secure_store.is_valid()


def test_unstorable_expires_in_is_an_error_not_an_exception(secure_store):
    result = handle_oauth_callback("app://cb#access_token=opaque&expires_in=" + "1" + "0" * 20, store=secure_store)

    assert not result.ok
    assert result.kind == "invalid"
    assert secure_store.read() is None


def test_overlong_expires_in_falls_back_to_default(secure_store, clock):
    result = handle_oauth_callback("app://cb#access_token=opaque&expires_in=" + "9" * 5000, store=secure_store)

    assert result.ok
    clock.advance(3599)
    assert secure_store.is_valid()
