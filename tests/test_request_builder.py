from __future__ import annotations

from conftest import ANON_KEY, BASE_URL


def test_anonymous_when_no_session(builder):
    request = builder.build("GET", "/rest/v1/boarding_houses", params={"select": "*"})

    assert request.url == f"{BASE_URL}/rest/v1/boarding_houses"
    assert request.headers["apikey"] == ANON_KEY
    assert request.headers["Authorization"] == f"Bearer {ANON_KEY}"
    assert request.headers["Content-Type"] == "application/json"


def test_user_token_while_valid_then_anon_after_expiry(builder, token_store, clock):
    token_store.save("user-token", "ref", "bearer", 60)
    assert builder.build("GET", "/rest/v1/bookings").headers["Authorization"] == "Bearer user-token"

    clock.advance(61)
    headers = builder.build("GET", "/rest/v1/bookings").headers
    assert headers["Authorization"] == f"Bearer {ANON_KEY}"
    assert headers["apikey"] == ANON_KEY
    # the builder never clears what it reads
    assert token_store.read().access_token == "user-token"


def test_decision_follows_clear(builder, token_store):
    token_store.save("user-token", None, "bearer", 600)
    token_store.clear()
    assert builder.current_bearer() == ANON_KEY


def test_plain_tier_consulted_before_secure(builder, token_store, secure_store):
    secure_store.save("oauth-token", None, "bearer", 600)
    assert builder.current_bearer() == "oauth-token"

    token_store.save("password-token", None, "bearer", 600)
    assert builder.current_bearer() == "password-token"


def test_explicit_bearer_override(builder, token_store):
    token_store.save("user-token", None, "bearer", 600)
    headers = builder.build("PUT", "/auth/v1/user", bearer="recovery-token").headers

    assert headers["Authorization"] == "Bearer recovery-token"
    assert headers["apikey"] == ANON_KEY


def test_extra_headers_cannot_replace_credentials(builder):
    headers = builder.build(
        "POST",
        "rest/v1/profiles",
        headers={"Prefer": "return=representation", "apikey": "forged", "Authorization": "Bearer forged"},
    ).headers

    assert headers["Prefer"] == "return=representation"
    assert headers["apikey"] == ANON_KEY
    assert headers["Authorization"] == f"Bearer {ANON_KEY}"
