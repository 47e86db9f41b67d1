"""Request and response models for the public HTTP API.

Requests are validated by pydantic, then converted to core props via
``to_props()``. Responses are built from core records with ``of()`` and
never include password hashes or key hashes. The raw API key appears only
in the response of the request that created it.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from authority.constants import DEFAULT_API_KEY_DURATION_MS
from authority.core import props as p
from authority.ledger.models import (
    ApiKey,
    ApiKeyKind,
    PasswordReset,
    User,
    UserData,
    VerificationChallenge,
)

KindLabel = Literal["Valid", "NoEmail", "NoParent", "Cancel"]


# ─── Request Models ───────────────────────────────────────────────────────────


class SignupRequest(BaseModel):
    username: str
    realname: str
    password: str
    date_of_birth: int
    api_key_duration: int = Field(default=DEFAULT_API_KEY_DURATION_MS, ge=0)

    def to_props(self) -> p.SignupProps:
        return p.SignupProps(**self.model_dump())


class LoginWithEmailRequest(BaseModel):
    email: str
    password: str
    duration: int = Field(default=DEFAULT_API_KEY_DURATION_MS, ge=0)

    def to_props(self) -> p.LoginWithEmailProps:
        return p.LoginWithEmailProps(**self.model_dump())


class LoginWithUsernameRequest(BaseModel):
    username: str
    password: str
    duration: int = Field(default=DEFAULT_API_KEY_DURATION_MS, ge=0)

    def to_props(self) -> p.LoginWithUsernameProps:
        return p.LoginWithUsernameProps(**self.model_dump())


class CancelKeyRequest(BaseModel):
    api_key: str
    api_key_to_cancel: Optional[str] = None
    api_key_id: Optional[int] = None

    def to_props(self) -> p.CancelKeyProps:
        return p.CancelKeyProps(**self.model_dump())


class NewUserDataRequest(BaseModel):
    api_key: str
    username: str
    realname: str
    date_of_birth: int

    def to_props(self) -> p.NewUserDataProps:
        return p.NewUserDataProps(**self.model_dump())


class NewChallengeRequest(BaseModel):
    api_key: str
    email: str
    to_parent: bool = False

    def to_props(self) -> p.NewChallengeProps:
        return p.NewChallengeProps(**self.model_dump())


class ConfirmEmailRequest(BaseModel):
    verification_challenge_key: str
    to_parent: bool = False

    def to_props(self) -> p.ConfirmEmailProps:
        return p.ConfirmEmailProps(**self.model_dump())


class PasswordResetRequest(BaseModel):
    email: str

    def to_props(self) -> p.PasswordResetRequestProps:
        return p.PasswordResetRequestProps(**self.model_dump())


class PasswordResetCompleteRequest(BaseModel):
    password_reset_key: str
    new_password: str

    def to_props(self) -> p.PasswordResetCompleteProps:
        return p.PasswordResetCompleteProps(**self.model_dump())


class PasswordChangeRequest(BaseModel):
    api_key: str
    new_password: str

    def to_props(self) -> p.PasswordChangeProps:
        return p.PasswordChangeProps(**self.model_dump())


class PasswordCancelRequest(BaseModel):
    api_key: str

    def to_props(self) -> p.PasswordCancelProps:
        return p.PasswordCancelProps(**self.model_dump())


class ApiKeyRequest(BaseModel):
    """Body of the internal get_user_by_api_key_if_valid lookup."""

    api_key: str


class UserIdRequest(BaseModel):
    user_id: int


# ── Views ─────────────────────────────────────────────────────────────────────


class ViewRequest(BaseModel):
    api_key: str
    min_creation_time: Optional[int] = None
    max_creation_time: Optional[int] = None
    limit: Optional[int] = Field(default=None, ge=0)
    offset: Optional[int] = Field(default=None, ge=0)


class UserViewRequest(ViewRequest):
    user_id: Optional[list[int]] = None

    def to_props(self) -> p.UserViewProps:
        return p.UserViewProps(**self.model_dump())


class UserDataViewRequest(ViewRequest):
    user_data_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    min_date_of_birth: Optional[int] = None
    max_date_of_birth: Optional[int] = None
    username: Optional[list[str]] = None
    realname: Optional[list[str]] = None
    only_recent: bool = True

    def to_props(self) -> p.UserDataViewProps:
        return p.UserDataViewProps(**self.model_dump())


class EmailViewRequest(ViewRequest):
    email_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    email: Optional[list[str]] = None
    to_parent: bool = False
    only_recent: bool = True

    def to_props(self) -> p.EmailViewProps:
        return p.EmailViewProps(**self.model_dump())


class PasswordViewRequest(ViewRequest):
    password_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    from_reset: Optional[bool] = None
    only_recent: bool = True

    def to_props(self) -> p.PasswordViewProps:
        return p.PasswordViewProps(**self.model_dump())


class ApiKeyViewRequest(ViewRequest):
    api_key_id: Optional[list[int]] = None
    creator_user_id: Optional[list[int]] = None
    api_key_kind: Optional[list[KindLabel]] = None
    only_recent: bool = True

    def to_props(self) -> p.ApiKeyViewProps:
        fields = self.model_dump(exclude={"api_key_kind"})
        kinds = None
        if self.api_key_kind is not None:
            kinds = [ApiKeyKind.from_label(label) for label in self.api_key_kind]
        return p.ApiKeyViewProps(kind=kinds, **fields)


# ─── Response Models ──────────────────────────────────────────────────────────


class UserOut(BaseModel):
    user_id: int
    creation_time: int

    @classmethod
    def of(cls, user: User) -> "UserOut":
        return cls(user_id=user.user_id, creation_time=user.creation_time)


class UserDataOut(BaseModel):
    user_data_id: int
    creation_time: int
    creator_user_id: int
    date_of_birth: int
    username: str
    realname: str

    @classmethod
    def of(cls, user_data: UserData) -> "UserDataOut":
        return cls(
            user_data_id=user_data.user_data_id,
            creation_time=user_data.creation_time,
            creator_user_id=user_data.creator_user_id,
            date_of_birth=user_data.date_of_birth,
            username=user_data.username,
            realname=user_data.realname,
        )


class ApiKeyOut(BaseModel):
    api_key_id: int
    creation_time: int
    creator_user_id: int
    api_key_kind: KindLabel
    duration: int
    key: Optional[str] = None

    @classmethod
    def of(cls, api_key: ApiKey, key: Optional[str] = None) -> "ApiKeyOut":
        return cls(
            api_key_id=api_key.api_key_id,
            creation_time=api_key.creation_time,
            creator_user_id=api_key.creator_user_id,
            api_key_kind=api_key.kind.label,
            duration=api_key.duration,
            key=key,
        )

    @classmethod
    def issued(cls, issued: p.IssuedApiKey) -> "ApiKeyOut":
        return cls.of(issued.api_key, issued.key)


class VerificationChallengeOut(BaseModel):
    creation_time: int
    to_parent: bool
    email: str

    @classmethod
    def of(cls, challenge: VerificationChallenge) -> "VerificationChallengeOut":
        return cls(
            creation_time=challenge.creation_time,
            to_parent=challenge.to_parent,
            email=challenge.email,
        )


class EmailOut(BaseModel):
    email_id: int
    creation_time: int
    creator_user_id: int
    verification_challenge: VerificationChallengeOut

    @classmethod
    def of(cls, bound: p.BoundEmail) -> "EmailOut":
        return cls(
            email_id=bound.email.email_id,
            creation_time=bound.email.creation_time,
            creator_user_id=bound.creator_user_id,
            verification_challenge=VerificationChallengeOut.of(bound.challenge),
        )


class PasswordResetOut(BaseModel):
    creation_time: int

    @classmethod
    def of(cls, reset: PasswordReset) -> "PasswordResetOut":
        return cls(creation_time=reset.creation_time)


class PasswordOut(BaseModel):
    password_id: int
    creation_time: int
    creator_user_id: int
    cancelled: bool
    password_reset: Optional[PasswordResetOut] = None

    @classmethod
    def of(cls, record: p.PasswordRecord) -> "PasswordOut":
        password = record.password
        return cls(
            password_id=password.password_id,
            creation_time=password.creation_time,
            creator_user_id=password.creator_user_id,
            cancelled=password.is_cancelled,
            password_reset=PasswordResetOut.of(record.reset) if record.reset else None,
        )


class InfoOut(BaseModel):
    service: str
    version: str
    app_authenticator_href: str

    @classmethod
    def of(cls, info: p.ServiceInfo) -> "InfoOut":
        return cls(
            service=info.service,
            version=info.version,
            app_authenticator_href=f"{info.public_origin_web}/login",
        )
