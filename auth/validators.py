"""
auth/validators.py -- Credential and identifier validation.

Pure functions: no I/O, no logging, no state. Each validate_* function
returns the normalized value or raises ValidationError with a field-level
detail dict. check_password() is the exception: it collects every violated
rule so the caller can show complete feedback in one round-trip.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import re
from urllib.parse import urlparse

from auth.errors import ValidationError
from auth.models import PasswordCheck, Role
from core.ids import is_valid_id

MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
MAX_NAME_LENGTH = 100
MAX_IMAGE_URL_LENGTH = 500
MAX_TOKEN_LENGTH = 500

# local@domain.tld -- no whitespace, exactly one "@", at least one dot after it.
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_LOWER_RE = re.compile(r"[a-z]")
_UPPER_RE = re.compile(r"[A-Z]")
_DIGIT_RE = re.compile(r"\d")
_SYMBOL_RE = re.compile(r"""[!@#$%^&*()_+\-=\[\]{};':"\\|,.<>/?`~]""")

_ROLE_VALUES = tuple(r.value for r in Role)


def normalize_email(email: str) -> str:
    """Trim and lower-case. Used for every lookup so case never matters."""
    return email.strip().lower()


def validate_email(email: object) -> str:
    """Validate an email address and return its normalized form.

    Checks run in order: type, empty, length, shape. Length is measured on
    the trimmed value.
    """
    if not isinstance(email, str):
        raise ValidationError("Email is required", detail={"field": "email"})
    trimmed = email.strip()
    if not trimmed:
        raise ValidationError("Email cannot be empty", detail={"field": "email"})
    if len(trimmed) > MAX_EMAIL_LENGTH:
        raise ValidationError("Email too long", detail={"field": "email"})
    if not _EMAIL_RE.match(trimmed):
        raise ValidationError("Invalid email format", detail={"field": "email"})
    return trimmed.lower()


def check_password(password: object, require_symbol: bool = False) -> PasswordCheck:
    """Evaluate password policy and report every violated rule.

    Base policy: 8-128 characters, one lowercase, one uppercase, one digit.
    require_symbol adds the stricter "one special character" rule.
    """
    if not isinstance(password, str) or not password:
        return PasswordCheck(is_valid=False, errors=["Password is required"])

    errors: list[str] = []
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must not exceed {MAX_PASSWORD_LENGTH} characters")
    if not _LOWER_RE.search(password):
        errors.append("Password must contain at least one lowercase letter")
    if not _UPPER_RE.search(password):
        errors.append("Password must contain at least one uppercase letter")
    if not _DIGIT_RE.search(password):
        errors.append("Password must contain at least one number")
    if require_symbol and not _SYMBOL_RE.search(password):
        errors.append("Password must contain at least one special character")
    return PasswordCheck(is_valid=not errors, errors=errors)


def validate_password(password: object, require_symbol: bool = False) -> str:
    result = check_password(password, require_symbol=require_symbol)
    if not result.is_valid:
        raise ValidationError(
            "Password does not meet requirements",
            detail={"field": "password", "errors": result.errors},
        )
    return password  # type: ignore[return-value]


def has_symbol(password: str) -> bool:
    return _SYMBOL_RE.search(password) is not None


def validate_role(role: object) -> Role:
    if isinstance(role, Role):
        return role
    if isinstance(role, str) and role in _ROLE_VALUES:
        return Role(role)
    raise ValidationError(
        f"Invalid role. Expected one of: {', '.join(_ROLE_VALUES)}",
        detail={"field": "role"},
    )


def validate_identifier(value: object, field: str = "id") -> str:
    """Require a canonical 26-character ULID."""
    if not is_valid_id(value):
        raise ValidationError("Invalid identifier format", detail={"field": field})
    return value  # type: ignore[return-value]


def validate_name(name: object) -> str:
    if not isinstance(name, str):
        raise ValidationError("Name must be a string", detail={"field": "name"})
    trimmed = name.strip()
    if not trimmed:
        raise ValidationError("Name cannot be empty", detail={"field": "name"})
    if len(trimmed) > MAX_NAME_LENGTH:
        raise ValidationError(f"Name must not exceed {MAX_NAME_LENGTH} characters", detail={"field": "name"})
    return trimmed


def validate_image_url(url: object) -> str:
    if not isinstance(url, str) or not url.strip():
        raise ValidationError("Image must be a valid URL", detail={"field": "image"})
    trimmed = url.strip()
    if len(trimmed) > MAX_IMAGE_URL_LENGTH:
        raise ValidationError(
            f"Image URL must not exceed {MAX_IMAGE_URL_LENGTH} characters", detail={"field": "image"}
        )
    parsed = urlparse(trimmed)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Image must be a valid URL", detail={"field": "image"})
    return trimmed


def validate_session_token(token: object) -> str:
    if not isinstance(token, str) or not token:
        raise ValidationError("Session token is required", detail={"field": "token"})
    if len(token) > MAX_TOKEN_LENGTH:
        raise ValidationError("Session token is too long", detail={"field": "token"})
    return token
