"""Unit tests for auth/validators.py -- credential and identifier validation.

Covers:
- validate_email() normalizes and rejects empty / too long / malformed input
- check_password() reports every violated rule, not just the first
- the stricter symbol rule only applies when requested
- validate_role(), validate_identifier(), validate_name(), validate_image_url()
"""

import pytest

from auth.errors import ValidationError
from auth.models import Role
from auth.validators import (
    check_password,
    validate_email,
    validate_identifier,
    validate_image_url,
    validate_name,
    validate_password,
    validate_role,
    validate_session_token,
)
from core.ids import new_id

# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


class TestValidateEmail:
    def test_normalizes_case_and_whitespace(self) -> None:
        assert validate_email("  Ada@Example.COM ") == "ada@example.com"

    def test_empty_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Email cannot be empty"):
            validate_email("   ")

    def test_too_long_is_rejected(self) -> None:
        local = "a" * 250
        with pytest.raises(ValidationError, match="Email too long"):
            validate_email(f"{local}@example.com")

    @pytest.mark.parametrize("bad", ["plainaddress", "a@b", "a b@c.com", "a@@b.com", "@b.com"])
    def test_malformed_is_rejected(self, bad: str) -> None:
        with pytest.raises(ValidationError, match="Invalid email format") as exc_info:
            validate_email(bad)
        assert exc_info.value.detail == {"field": "email"}

    def test_non_string_is_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Email is required"):
            validate_email(None)


# ---------------------------------------------------------------------------
# Password policy
# ---------------------------------------------------------------------------


class TestCheckPassword:
    @pytest.mark.parametrize("good", ["Secure123!", "Abcdefg1", "xY9" * 10])
    def test_policy_compliant_passwords_are_valid(self, good: str) -> None:
        result = check_password(good)
        assert result.is_valid is True
        assert result.errors == []

    def test_six_characters_reports_minimum_length(self) -> None:
        result = check_password("Ab1cde")
        assert result.is_valid is False
        assert "Password must be at least 8 characters long" in result.errors

    def test_all_violations_reported_at_once(self) -> None:
        result = check_password("abc")
        assert result.errors == [
            "Password must be at least 8 characters long",
            "Password must contain at least one uppercase letter",
            "Password must contain at least one number",
        ]

    def test_too_long(self) -> None:
        result = check_password("Aa1" + "x" * 200)
        assert "Password must not exceed 128 characters" in result.errors

    def test_symbol_only_required_in_strict_mode(self) -> None:
        assert check_password("Secure1234").is_valid is True
        strict = check_password("Secure1234", require_symbol=True)
        assert strict.errors == ["Password must contain at least one special character"]
        assert check_password("Secure123!", require_symbol=True).is_valid is True

    def test_missing_password(self) -> None:
        assert check_password("").errors == ["Password is required"]
        assert check_password(None).errors == ["Password is required"]

    def test_validate_password_raises_with_field_detail(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_password("short")
        assert exc_info.value.detail["field"] == "password"
        assert "Password must be at least 8 characters long" in exc_info.value.detail["errors"]


# ---------------------------------------------------------------------------
# Other fields
# ---------------------------------------------------------------------------


def test_validate_role_accepts_enum_values() -> None:
    assert validate_role("organizer") is Role.ORGANIZER
    assert validate_role(Role.ADMIN) is Role.ADMIN


def test_validate_role_rejects_unknown() -> None:
    with pytest.raises(ValidationError, match="Invalid role"):
        validate_role("superuser")


def test_validate_identifier() -> None:
    ident = new_id()
    assert validate_identifier(ident) == ident
    for bad in ("", "123", ident.lower(), ident[:-1] + "U", "I" * 26, ident + "\n", "\n" + ident):
        with pytest.raises(ValidationError):
            validate_identifier(bad)


def test_validate_name_trims_and_bounds() -> None:
    assert validate_name("  Ada  ") == "Ada"
    with pytest.raises(ValidationError):
        validate_name("   ")
    with pytest.raises(ValidationError):
        validate_name("x" * 101)


def test_validate_image_url() -> None:
    assert validate_image_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"
    for bad in ("ftp://example.com/a.png", "not a url", "https://" + "a" * 500 + ".com"):
        with pytest.raises(ValidationError):
            validate_image_url(bad)


def test_validate_session_token() -> None:
    assert validate_session_token("abc") == "abc"
    with pytest.raises(ValidationError):
        validate_session_token("")
    with pytest.raises(ValidationError):
        validate_session_token("t" * 501)
