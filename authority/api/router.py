"""Public and internal HTTP endpoints.

Provides (all POST with a JSON body unless noted):
  GET  /public/info
  POST /public/user/new                      — signup
  POST /public/user_data/new
  POST /public/api_key/new_with_email        — login
  POST /public/api_key/new_with_username     — login
  POST /public/api_key/new_cancel
  POST /public/verification_challenge/new
  POST /public/email/new                     — confirm a challenge
  POST /public/password_reset/new
  POST /public/password/new_reset
  POST /public/password/new_change
  POST /public/password/new_cancel
  POST /public/{user,user_data,email,password,api_key}/view
  POST /get_user_by_id                       — internal (sibling services)
  POST /get_user_by_api_key_if_valid         — internal (sibling services)

Handlers are thin: pydantic body → props → CredentialAuthority → response
model. AuthError propagates to the handler registered in main.py.
"""

from fastapi import APIRouter, Depends, Request

from authority.api.limiter import CREDENTIAL_RATE_LIMIT, PUBLIC_RATE_LIMIT, limiter
from authority.api.schemas import (
    ApiKeyOut,
    ApiKeyRequest,
    ApiKeyViewRequest,
    CancelKeyRequest,
    ConfirmEmailRequest,
    EmailOut,
    EmailViewRequest,
    InfoOut,
    LoginWithEmailRequest,
    LoginWithUsernameRequest,
    NewChallengeRequest,
    NewUserDataRequest,
    PasswordCancelRequest,
    PasswordChangeRequest,
    PasswordOut,
    PasswordResetCompleteRequest,
    PasswordResetOut,
    PasswordResetRequest,
    PasswordViewRequest,
    SignupRequest,
    UserDataOut,
    UserDataViewRequest,
    UserIdRequest,
    UserOut,
    UserViewRequest,
    VerificationChallengeOut,
)
from authority.core.authority import CredentialAuthority

public_router = APIRouter(prefix="/public", tags=["public"])
internal_router = APIRouter(tags=["internal"])


def get_authority(request: Request) -> CredentialAuthority:
    """The CredentialAuthority built by the lifespan (app.state.authority)."""
    return request.app.state.authority


# ─── Service info ─────────────────────────────────────────────────────────────


@public_router.get("/info")
async def info(authority: CredentialAuthority = Depends(get_authority)) -> InfoOut:
    return InfoOut.of(authority.info())


# ─── Accounts and keys ────────────────────────────────────────────────────────


@public_router.post("/user/new")
@limiter.limit(CREDENTIAL_RATE_LIMIT)
async def user_new(
    body: SignupRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> ApiKeyOut:
    """Create an account. The response carries the first API key ONCE."""
    return ApiKeyOut.issued(await authority.signup(body.to_props()))


@public_router.post("/user_data/new")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def user_data_new(
    body: NewUserDataRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> UserDataOut:
    return UserDataOut.of(await authority.new_user_data(body.to_props()))


@public_router.post("/api_key/new_with_email")
@limiter.limit(CREDENTIAL_RATE_LIMIT)
async def api_key_new_with_email(
    body: LoginWithEmailRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> ApiKeyOut:
    return ApiKeyOut.issued(await authority.issue_key_by_email(body.to_props()))


@public_router.post("/api_key/new_with_username")
@limiter.limit(CREDENTIAL_RATE_LIMIT)
async def api_key_new_with_username(
    body: LoginWithUsernameRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> ApiKeyOut:
    return ApiKeyOut.issued(await authority.issue_key_by_username(body.to_props()))


@public_router.post("/api_key/new_cancel")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def api_key_new_cancel(
    body: CancelKeyRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> ApiKeyOut:
    return ApiKeyOut.issued(await authority.cancel_key(body.to_props()))


# ─── Email verification ───────────────────────────────────────────────────────


@public_router.post("/verification_challenge/new")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def verification_challenge_new(
    body: NewChallengeRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> VerificationChallengeOut:
    challenge = await authority.new_verification_challenge(body.to_props())
    return VerificationChallengeOut.of(challenge)


@public_router.post("/email/new")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def email_new(
    body: ConfirmEmailRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> EmailOut:
    return EmailOut.of(await authority.confirm_email(body.to_props()))


# ─── Passwords ────────────────────────────────────────────────────────────────


@public_router.post("/password_reset/new")
@limiter.limit(CREDENTIAL_RATE_LIMIT)
async def password_reset_new(
    body: PasswordResetRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> PasswordResetOut:
    return PasswordResetOut.of(await authority.request_password_reset(body.to_props()))


@public_router.post("/password/new_reset")
@limiter.limit(CREDENTIAL_RATE_LIMIT)
async def password_new_reset(
    body: PasswordResetCompleteRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> PasswordOut:
    return PasswordOut.of(await authority.complete_password_reset(body.to_props()))


@public_router.post("/password/new_change")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def password_new_change(
    body: PasswordChangeRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> PasswordOut:
    return PasswordOut.of(await authority.change_password(body.to_props()))


@public_router.post("/password/new_cancel")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def password_new_cancel(
    body: PasswordCancelRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> PasswordOut:
    return PasswordOut.of(await authority.cancel_password(body.to_props()))


# ─── Views ────────────────────────────────────────────────────────────────────


@public_router.post("/user/view")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def user_view(
    body: UserViewRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> list[UserOut]:
    return [UserOut.of(u) for u in await authority.view_users(body.to_props())]


@public_router.post("/user_data/view")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def user_data_view(
    body: UserDataViewRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> list[UserDataOut]:
    return [UserDataOut.of(u) for u in await authority.view_user_data(body.to_props())]


@public_router.post("/email/view")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def email_view(
    body: EmailViewRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> list[EmailOut]:
    return [EmailOut.of(e) for e in await authority.view_emails(body.to_props())]


@public_router.post("/password/view")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def password_view(
    body: PasswordViewRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> list[PasswordOut]:
    return [PasswordOut.of(r) for r in await authority.view_passwords(body.to_props())]


@public_router.post("/api_key/view")
@limiter.limit(PUBLIC_RATE_LIMIT)
async def api_key_view(
    body: ApiKeyViewRequest,
    request: Request,
    authority: CredentialAuthority = Depends(get_authority),
) -> list[ApiKeyOut]:
    return [ApiKeyOut.of(k) for k in await authority.view_api_keys(body.to_props())]


# ─── Internal lookups ─────────────────────────────────────────────────────────
# Not rate limited: called by sibling services on every authenticated request.


@internal_router.post("/get_user_by_id")
async def get_user_by_id(
    body: UserIdRequest,
    authority: CredentialAuthority = Depends(get_authority),
) -> UserOut:
    return UserOut.of(await authority.get_user_by_id(body.user_id))


@internal_router.post("/get_user_by_api_key_if_valid")
async def get_user_by_api_key_if_valid(
    body: ApiKeyRequest,
    authority: CredentialAuthority = Depends(get_authority),
) -> UserOut:
    return UserOut.of(await authority.get_user_by_api_key_if_valid(body.api_key))
