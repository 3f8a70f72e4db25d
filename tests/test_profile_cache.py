from __future__ import annotations

import json

from backend.schemas import Profile, Role


def test_store_and_read_profile(profile_cache, kv):
    profile = Profile(id="user-1", email="ana@example.com", first_name="Ana", role=Role.OWNER)
    profile_cache.store_profile(profile)

    assert profile_cache.profile() == profile
    assert profile_cache.user_id() == "user-1"
    assert profile_cache.role() is Role.OWNER
    assert json.loads(kv.get("user_data"))["email"] == "ana@example.com"


def test_unreadable_snapshot_is_ignored(profile_cache, kv):
    kv.update({"user_data": "{broken"})
    assert profile_cache.profile() is None


def test_role_defaults_to_tenant(profile_cache):
    assert profile_cache.role() is Role.TENANT


def test_prefill_prefers_otp_email(profile_cache):
    assert profile_cache.prefill_email() is None

    profile_cache.remember_signed_email("signed@example.com")
    assert profile_cache.prefill_email() == "signed@example.com"

    profile_cache.remember_otp_email("otp@example.com")
    assert profile_cache.prefill_email() == "otp@example.com"


def test_clear_profile_keeps_prefill(profile_cache):
    profile_cache.store_profile(Profile(id="user-1"))
    profile_cache.remember_signed_email("ana@example.com")

    profile_cache.clear_profile()

    assert profile_cache.profile() is None
    assert profile_cache.user_id() is None
    assert profile_cache.prefill_email() == "ana@example.com"
