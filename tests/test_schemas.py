from __future__ import annotations

import pytest

from backend.errors import ParseError
from backend.schemas import AuthResponse, OtpSendResponse, OtpVerifyResponse, Profile, Role


def test_role_parse_is_lenient():
    assert Role.parse("OWNER") is Role.OWNER
    assert Role.parse(" admin ") is Role.ADMIN
    assert Role.parse("landlord") is Role.TENANT
    assert Role.parse(None) is Role.TENANT


@pytest.mark.parametrize("nesting", ["session", "data"])
def test_auth_response_finds_nested_token(nesting):
    payload = {nesting: {"access_token": "tok", "expires_in": 60}, "user": {"id": "u1"}}

    parsed = AuthResponse.from_dict(payload)

    assert parsed.access_token == "tok"
    assert parsed.expires_in == 60
    assert parsed.user_id == "u1"


def test_auth_response_user_only_signup():
    parsed = AuthResponse.from_dict({"id": "u1", "email": "ana@example.com"})

    assert parsed.access_token is None
    assert parsed.user_id == "u1"
    assert parsed.email == "ana@example.com"


def test_auth_response_metadata_role():
    parsed = AuthResponse.from_dict({"access_token": "t", "user": {"id": "u1", "user_metadata": {"role": "owner"}}})
    assert parsed.metadata_role is Role.OWNER

    bare = AuthResponse.from_dict({"access_token": "t", "user": {"id": "u1"}})
    assert bare.metadata_role is None


def test_auth_response_wrong_field_type():
    with pytest.raises(ParseError):
        AuthResponse.from_dict({"access_token": ["not", "a", "string"]})


@pytest.mark.parametrize("value", [float("inf"), float("nan"), "1e999"])
def test_auth_response_non_finite_lifetime(value):
    with pytest.raises(ParseError):
        AuthResponse.from_dict({"access_token": "tok", "expires_in": value})


def test_otp_send_defaults():
    parsed = OtpSendResponse.from_dict({"success": True})
    assert parsed.expires_in == 300
    assert OtpSendResponse.from_dict({"success": True, "expiresIn": 120}).expires_in == 120


def test_otp_verify_success_from_token():
    assert OtpVerifyResponse.from_dict({"access_token": "rec"}).success
    assert not OtpVerifyResponse.from_dict({}).success


def test_profile_defaults():
    profile = Profile.from_dict({"id": "u1"})

    assert profile.role is Role.TENANT
    assert profile.email == ""
    assert profile.avatar_url is None
    assert profile.full_name == ""


def test_profile_splits_full_name():
    profile = Profile.from_dict({"id": "u1", "full_name": "Ana Maria Reyes", "role": "owner"})

    assert profile.first_name == "Ana"
    assert profile.last_name == "Maria Reyes"
    assert profile.role is Role.OWNER
    assert profile.full_name == "Ana Maria Reyes"


def test_profile_requires_id():
    with pytest.raises(ParseError):
        Profile.from_dict({"email": "ana@example.com"})
