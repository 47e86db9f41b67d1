"""Ledger record dataclasses and the API key capability kind.

Every record is immutable and append-only. "Updating" an account means
appending a newer record that supersedes older ones for the same logical key
(user, key hash, ...). Nothing is ever edited in place or deleted.

Ids are assigned by the ledger on append and are strictly increasing per
record kind, so "most recent" always means "greatest id", never "latest
creation_time". Clock skew cannot reorder the ledger.

Records reference each other by value (ids and hashes), never by object, so
every generation of a record stays independently inspectable.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Optional, Union

from authority.constants import CHALLENGE_VALIDITY_MS, PASSWORD_RESET_VALIDITY_MS


# ─── ApiKeyKind ───────────────────────────────────────────────────────────────


class ApiKeyKind(IntEnum):
    """Capability carried by an API key row.

    The integer values are the storage encoding. Decoding an unknown integer
    is a ledger integrity error, never a silent default.
    """

    VALID = 0
    NO_EMAIL = 1
    NO_PARENT = 2
    CANCEL = 3

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]

    @classmethod
    def from_label(cls, label: str) -> "ApiKeyKind":
        for kind, kind_label in _KIND_LABELS.items():
            if kind_label == label:
                return kind
        raise ValueError(f"unknown api key kind label: {label!r}")


_KIND_LABELS: dict[ApiKeyKind, str] = {
    ApiKeyKind.VALID: "Valid",
    ApiKeyKind.NO_EMAIL: "NoEmail",
    ApiKeyKind.NO_PARENT: "NoParent",
    ApiKeyKind.CANCEL: "Cancel",
}

#: Kinds accepted by the "current" (unverified-but-alive) validation tier.
CURRENT_KINDS: frozenset[ApiKeyKind] = frozenset(
    {ApiKeyKind.VALID, ApiKeyKind.NO_EMAIL, ApiKeyKind.NO_PARENT}
)


# ─── Records ──────────────────────────────────────────────────────────────────
# id fields default to None and are filled in by Ledger.append().


@dataclass(frozen=True)
class User:
    """Root identity. Created exactly once per account."""

    table: ClassVar[str] = "user"
    id_field: ClassVar[Optional[str]] = "user_id"

    creation_time: int
    user_id: Optional[int] = None


@dataclass(frozen=True)
class UserData:
    """Profile generation for a user. The newest row per creator is current."""

    table: ClassVar[str] = "user_data"
    id_field: ClassVar[Optional[str]] = "user_data_id"

    creation_time: int
    creator_user_id: int
    date_of_birth: int
    """Milliseconds since the epoch."""
    username: str
    realname: str
    user_data_id: Optional[int] = None


@dataclass(frozen=True)
class VerificationChallenge:
    """Pending (or fulfilled) proof of control over an email address.

    State is never stored: consumed iff an Email row references key_hash,
    expired iff now > expires_at and not consumed.
    """

    table: ClassVar[str] = "verification_challenge"
    id_field: ClassVar[Optional[str]] = None

    key_hash: str
    creation_time: int
    creator_user_id: int
    to_parent: bool
    email: str

    @property
    def expires_at(self) -> int:
        return self.creation_time + CHALLENGE_VALIDITY_MS


@dataclass(frozen=True)
class Email:
    """A verified address. Only ever created by consuming a challenge."""

    table: ClassVar[str] = "email"
    id_field: ClassVar[Optional[str]] = "email_id"

    creation_time: int
    verification_challenge_key_hash: str
    email_id: Optional[int] = None


@dataclass(frozen=True)
class Password:
    """Password generation for a user. The newest row per creator is current.

    password_hash is None for a cancelled password; reset_key_hash is set iff
    the row came from a password-reset flow.
    """

    table: ClassVar[str] = "password"
    id_field: ClassVar[Optional[str]] = "password_id"

    creation_time: int
    creator_user_id: int
    password_hash: Optional[str] = None
    reset_key_hash: Optional[str] = None
    password_id: Optional[int] = None

    @property
    def is_cancelled(self) -> bool:
        return self.password_hash is None


@dataclass(frozen=True)
class PasswordReset:
    """One-shot reset token. Consumed iff a Password row carries its hash."""

    table: ClassVar[str] = "password_reset"
    id_field: ClassVar[Optional[str]] = None

    key_hash: str
    creation_time: int
    creator_user_id: int

    @property
    def expires_at(self) -> int:
        return self.creation_time + PASSWORD_RESET_VALIDITY_MS


@dataclass(frozen=True)
class ApiKey:
    """Session key generation. The newest row per key_hash decides validity.

    Cancellation appends a CANCEL row for the same key_hash with duration 0.
    """

    table: ClassVar[str] = "api_key"
    id_field: ClassVar[Optional[str]] = "api_key_id"

    creation_time: int
    creator_user_id: int
    key_hash: str
    kind: ApiKeyKind
    duration: int
    """Milliseconds of validity after creation_time."""
    api_key_id: Optional[int] = None

    @property
    def expires_at(self) -> int:
        return self.creation_time + self.duration


Record = Union[User, UserData, VerificationChallenge, Email, Password, PasswordReset, ApiKey]

RECORD_TYPES: tuple[type, ...] = (
    User,
    UserData,
    VerificationChallenge,
    Email,
    Password,
    PasswordReset,
    ApiKey,
)
