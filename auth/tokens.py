"""
auth/tokens.py -- Session token issuance and password hashing.

Security design decisions:
  Session tokens: secrets.token_hex(32) gives 256 bits from the OS CSPRNG,
       hex encoded (64 chars). Tokens are opaque lookup keys with no
       decodable structure and nothing derived from time, counters or user
       ids, so collisions are treated as impossible. The store's UNIQUE
       constraint on the token column backs that assumption.

  Passwords: bcrypt used directly (no passlib wrapper). The cost factor is
       configurable (Settings.bcrypt_rounds, default 12). bcrypt only reads
       the first 72 bytes of its input; recent bcrypt releases raise instead
       of truncating, so the truncation is done explicitly here.

  Bounded hashing: bcrypt is CPU-bound and releases the GIL, so an unbounded
       number of concurrent sign-ups could saturate every core. All hashing
       runs on a fixed-size ThreadPoolExecutor; the calling request thread
       blocks on its own future only.

  Timing equalization: dummy_hash is computed once per hasher so sign-in can
       spend the same bcrypt work whether or not the email exists.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
from concurrent.futures import ThreadPoolExecutor

import bcrypt

logger = logging.getLogger("eventhub.tokens")

TOKEN_BYTES = 32
_BCRYPT_MAX_BYTES = 72

# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------


def issue_token() -> str:
    """Return a new opaque session token (64 hex chars, 256 bits of entropy)."""
    return secrets.token_hex(TOKEN_BYTES)


def token_hint(token: str) -> str:
    """First 8 characters, for log lines. Never log a full token."""
    return f"{token[:8]}..." if token else "<empty>"


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


class PasswordHasher:
    """bcrypt hashing on a bounded worker pool.

    Usage:
        hasher = PasswordHasher(rounds=12, workers=4)
        hashed = hasher.hash("Secure123!")
        hasher.verify("Secure123!", hashed)  # True
        hasher.close()
    """

    def __init__(self, rounds: int = 12, workers: int = 4) -> None:
        self.rounds = rounds
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="bcrypt")
        self.dummy_hash: str = self.hash("eventhub_timing_dummy")

    def _hash_sync(self, plain: str) -> str:
        return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def _verify_sync(self, plain: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
        except ValueError:
            # Malformed or foreign hash format.
            return False

    def hash(self, plain: str) -> str:
        """Return a salted bcrypt hash of plain."""
        return self._pool.submit(self._hash_sync, plain).result()

    def verify(self, plain: str, hashed: str | None) -> bool:
        """Return True if plain matches hashed. Always spends bcrypt work.

        A missing hash is checked against dummy_hash and reported as a
        mismatch, so callers never need their own timing guard.
        """
        if not hashed:
            self._pool.submit(self._verify_sync, plain, self.dummy_hash).result()
            return False
        return self._pool.submit(self._verify_sync, plain, hashed).result()

    def close(self) -> None:
        self._pool.shutdown(wait=True)
