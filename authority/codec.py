"""Secret codec — random secrets, lookup hashes and password hashes.

Implements:
  - generate_secret()   — 256-bit CSPRNG secret, URL-safe base64 (no padding)
  - fast_hash()         — SHA-256 lookup key for high-entropy secrets
  - PasswordHasher      — Argon2id slow hash + verify for user passwords

Non-negotiables:
  - Raw secrets are handed to the caller once and never persisted; only
    fast_hash(secret) reaches the ledger.
  - fast_hash is NEVER used for passwords; PasswordHasher is NEVER used for
    random secrets (their entropy makes a slow KDF pointless).
  - Argon2 hashing runs in a worker thread so the event loop keeps serving
    other requests while the KDF burns memory and CPU.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import secrets

from argon2 import PasswordHasher as Argon2PasswordHasher
from argon2.exceptions import Argon2Error, InvalidHashError, VerifyMismatchError

from authority.constants import SECRET_BYTES


class HashingError(Exception):
    """Raised when the password KDF fails or a stored hash cannot be parsed."""


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_secret() -> str:
    """Return a fresh 256-bit random secret, URL-safe encoded (43 chars)."""
    return _b64url(secrets.token_bytes(SECRET_BYTES))


def fast_hash(secret: str) -> str:
    """Deterministic SHA-256 lookup hash of a secret, URL-safe encoded.

    Used only as an index key for API keys, challenge keys and reset keys.
    """
    return _b64url(hashlib.sha256(secret.encode("utf-8")).digest())


class PasswordHasher:
    """Argon2id password hasher with a fresh random salt per call.

    Defaults follow argon2-cffi's RFC 9106 low-memory profile. Tests pass
    smaller ``memory_cost`` / ``time_cost`` values to keep the suite fast.
    """

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,  # KiB (64 MB)
        parallelism: int = 4,
        hash_len: int = 32,
        salt_len: int = 16,
    ) -> None:
        self._hasher = Argon2PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=hash_len,
            salt_len=salt_len,
        )

    def hash(self, password: str) -> str:
        """Return the encoded Argon2id hash ($argon2id$v=19$m=...,t=...,p=...$salt$hash)."""
        try:
            return self._hasher.hash(password)
        except Argon2Error as exc:
            raise HashingError(f"argon2 hash failed: {type(exc).__name__}") from exc

    def verify(self, password: str, password_hash: str) -> bool:
        """Return True iff ``password`` matches ``password_hash``.

        A mismatch returns False. A corrupt or foreign hash raises
        HashingError; that is a ledger integrity problem, not a wrong password.
        """
        try:
            return self._hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (Argon2Error, InvalidHashError) as exc:
            raise HashingError(f"argon2 verify failed: {type(exc).__name__}") from exc

    async def hash_async(self, password: str) -> str:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self.verify, password, password_hash)
