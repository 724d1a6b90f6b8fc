"""
core/ids.py -- Sortable unique identifiers.

Every primary key in the identity store is a ULID: 26 characters of Crockford
base32, a 48-bit millisecond timestamp followed by 80 random bits. Sorting the
strings sorts by creation time, which keeps "newest first" queries index-only.
"""

import re

from ulid import ULID

# Crockford base32 excludes I, L, O and U.
ULID_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

_ULID_RE = re.compile(ULID_PATTERN)


def new_id() -> str:
    """Return a fresh 26-character ULID string."""
    return str(ULID())


def is_valid_id(value: object) -> bool:
    """Return True if value is a canonical (upper-case) ULID string."""
    return isinstance(value, str) and _ULID_RE.fullmatch(value) is not None
