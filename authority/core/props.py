"""Typed request props and result structs for CredentialAuthority operations.

Props are plain dataclasses: the HTTP adapter builds them from validated
pydantic bodies, tests build them directly. Optional filter fields default
to None, meaning "no constraint".

Results never carry a password hash or key hash. A raw secret appears only
on the result that created it (``IssuedApiKey.key``).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from authority.constants import DEFAULT_API_KEY_DURATION_MS
from authority.ledger.models import (
    ApiKey,
    ApiKeyKind,
    Email,
    Password,
    PasswordReset,
    VerificationChallenge,
)

# ─── Workflow props ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SignupProps:
    username: str
    realname: str
    password: str
    date_of_birth: int
    api_key_duration: int = DEFAULT_API_KEY_DURATION_MS


@dataclass(frozen=True)
class LoginWithEmailProps:
    email: str
    password: str
    duration: int = DEFAULT_API_KEY_DURATION_MS


@dataclass(frozen=True)
class LoginWithUsernameProps:
    username: str
    password: str
    duration: int = DEFAULT_API_KEY_DURATION_MS


@dataclass(frozen=True)
class CancelKeyProps:
    """Target is given by raw secret OR by api_key_id (raw secret wins if both)."""

    api_key: str
    api_key_to_cancel: Optional[str] = None
    api_key_id: Optional[int] = None


@dataclass(frozen=True)
class NewUserDataProps:
    api_key: str
    username: str
    realname: str
    date_of_birth: int


@dataclass(frozen=True)
class NewChallengeProps:
    api_key: str
    email: str
    to_parent: bool = False


@dataclass(frozen=True)
class ConfirmEmailProps:
    verification_challenge_key: str
    to_parent: bool = False


@dataclass(frozen=True)
class PasswordResetRequestProps:
    email: str


@dataclass(frozen=True)
class PasswordResetCompleteProps:
    password_reset_key: str
    new_password: str


@dataclass(frozen=True)
class PasswordChangeProps:
    api_key: str
    new_password: str


@dataclass(frozen=True)
class PasswordCancelProps:
    api_key: str


# ─── View props ───────────────────────────────────────────────────────────────
# Every list filter matches ANY of its values; ranges are inclusive.


@dataclass(frozen=True)
class ViewProps:
    api_key: str
    min_creation_time: Optional[int] = None
    max_creation_time: Optional[int] = None
    limit: Optional[int] = None
    offset: Optional[int] = None


@dataclass(frozen=True)
class UserViewProps(ViewProps):
    user_id: Optional[list[int]] = None


@dataclass(frozen=True)
class UserDataViewProps(ViewProps):
    user_data_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    min_date_of_birth: Optional[int] = None
    max_date_of_birth: Optional[int] = None
    username: Optional[list[str]] = None
    realname: Optional[list[str]] = None
    only_recent: bool = True


@dataclass(frozen=True)
class EmailViewProps(ViewProps):
    email_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    email: Optional[list[str]] = None
    to_parent: bool = False
    only_recent: bool = True


@dataclass(frozen=True)
class PasswordViewProps(ViewProps):
    password_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    from_reset: Optional[bool] = None
    only_recent: bool = True


@dataclass(frozen=True)
class ApiKeyViewProps(ViewProps):
    api_key_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    kind: Optional[list[ApiKeyKind]] = None
    only_recent: bool = True


# ─── Results ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class IssuedApiKey:
    """An ApiKey row plus, only at creation, the raw secret."""

    api_key: ApiKey
    key: Optional[str] = None


@dataclass(frozen=True)
class BoundEmail:
    """A verified Email together with the challenge that created it."""

    email: Email
    challenge: VerificationChallenge

    @property
    def address(self) -> str:
        return self.challenge.email

    @property
    def creator_user_id(self) -> int:
        return self.challenge.creator_user_id


@dataclass(frozen=True)
class PasswordRecord:
    """A Password row with its originating reset (if any).

    The HTTP response built from it never includes password_hash.
    """

    password: Password
    reset: Optional[PasswordReset] = None


@dataclass(frozen=True)
class ServiceInfo:
    service: str
    version: str
    public_origin_web: str
