from __future__ import annotations

import pytest

from auth.validation import (
    SIMPLE_PASSWORD_POLICY,
    STRICT_PASSWORD_POLICY,
    check_confirmation,
    is_valid_email,
    is_valid_otp,
    normalize_email,
    password_strength,
)


@pytest.mark.parametrize("email", ["ana@example.com", "a@b.c", "  ana@example.com "])
def test_valid_emails(email):
    assert is_valid_email(email)


@pytest.mark.parametrize("email", ["", "ana", "ana@example", "ana.example.com"])
def test_invalid_emails(email):
    assert not is_valid_email(email)


def test_normalize_email():
    assert normalize_email("  Ana@Example.COM ") == "ana@example.com"


@pytest.mark.parametrize("code,expected", [
    ("123456", True),
    ("12345", False),
    ("1234567", False),
    ("12a456", False),
    ("", False),
    ("١٢٣٤٥٦", False),
])
def test_otp_format(code, expected):
    assert is_valid_otp(code) is expected


def test_signup_policy_only_checks_length():
    assert SIMPLE_PASSWORD_POLICY.check("abcdef") is None
    assert SIMPLE_PASSWORD_POLICY.check("abcde") == "Password must be at least 6 characters"
    assert SIMPLE_PASSWORD_POLICY.check("") == "Password is required"


@pytest.mark.parametrize("password,message", [
    ("Ab1", "Password must be at least 8 characters"),
    ("abcdefg1", "Password must contain at least one uppercase letter"),
    ("ABCDEFG1", "Password must contain at least one lowercase letter"),
    ("Abcdefgh", "Password must contain at least one number"),
    ("Abcdefg1", None),
])
def test_reset_policy_messages(password, message):
    assert STRICT_PASSWORD_POLICY.check(password) == message


def test_policies_differ():
    assert SIMPLE_PASSWORD_POLICY.check("secret1") is None
    assert STRICT_PASSWORD_POLICY.check("secret1") is not None


def test_confirmation():
    assert check_confirmation("secret1", None) is None
    assert check_confirmation("secret1", "") == "Please confirm your password"
    assert check_confirmation("secret1", "secret2") == "Passwords do not match"
    assert check_confirmation("secret1", "secret1") is None


def test_password_strength():
    assert password_strength("") == 0
    assert password_strength("abcdefgh") == 40
    assert password_strength("Abcdefg1!") == 100
