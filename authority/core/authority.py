"""CredentialAuthority — orchestration of every credential workflow.

Implements:
  - signup()                                     — user + profile + password + NoEmail key
  - issue_key_by_email() / issue_key_by_username() — password login, age-gated key kind
  - cancel_key()                                 — append a Cancel row for a key hash
  - new_user_data()                              — new profile generation
  - new_verification_challenge() / confirm_email() — email verification workflow
  - request_password_reset() / complete_password_reset()
  - change_password() / cancel_password()
  - view_users() / view_user_data() / view_emails() / view_passwords() / view_api_keys()
  - get_user_by_id() / get_user_by_api_key_if_valid() / get_current_password()
  - resolve_api_key() / info()

Non-negotiables:
  - Field validation runs before any I/O.
  - Every write runs inside ONE ledger transaction: any failure rolls back
    all of its appends. Resolution and the write that depends on it share
    that transaction, so a cancelled key cannot be resurrected by a race.
  - Argon2 hashing and verification never run under the ledger lock. Login
    re-reads its password row in the issuing transaction and fails if it
    was superseded meanwhile.
  - Store, hashing and delivery failures are logged here with context and
    re-raised as AuthError; nothing else leaves this module.
  - Raw secrets are returned once (IssuedApiKey.key) or handed to the
    notifier; they are never logged or stored.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from authority.codec import HashingError, PasswordHasher, fast_hash, generate_secret
from authority.constants import SERVICE_NAME, SERVICE_VERSION
from authority.core import accounts, verification
from authority.core.capability import compute_key_kind
from authority.core.props import (
    ApiKeyViewProps,
    BoundEmail,
    CancelKeyProps,
    ConfirmEmailProps,
    EmailViewProps,
    IssuedApiKey,
    LoginWithEmailProps,
    LoginWithUsernameProps,
    NewChallengeProps,
    NewUserDataProps,
    PasswordCancelProps,
    PasswordChangeProps,
    PasswordRecord,
    PasswordResetCompleteProps,
    PasswordResetRequestProps,
    PasswordViewProps,
    ServiceInfo,
    SignupProps,
    UserDataViewProps,
    UserViewProps,
)
from authority.core.resolver import Tier, resolve_api_key, resolve_api_key_id
from authority.core.validation import check_email, check_password, check_profile
from authority.errors import AuthError, ErrorKind
from authority.ledger.models import (
    ApiKey,
    ApiKeyKind,
    Email,
    Password,
    PasswordReset,
    User,
    UserData,
    VerificationChallenge,
)
from authority.ledger.protocol import Ledger, LedgerError, LedgerScope
from authority.ledger.query import Query
from authority.notify.messages import compose_password_reset
from authority.notify.protocol import NotificationBounced, Notifier, NotifyError
from authority.utils.clock import Clock, current_time_millis
from authority.utils.logger import get_logger

logger = get_logger(__name__)


class CredentialAuthority:
    """Composes ledger, notifier, hasher and clock into the credential workflows.

    Args:
        ledger:          Initialized Ledger backend.
        notifier:        Outbound message transport.
        password_hasher: Argon2 hasher (tests pass cheap parameters).
        clock:           Returns "now" in epoch milliseconds.
        public_origin:   Web origin embedded in confirmation links.
    """

    def __init__(
        self,
        ledger: Ledger,
        notifier: Notifier,
        password_hasher: Optional[PasswordHasher] = None,
        clock: Clock = current_time_millis,
        public_origin: str = "http://localhost:3000",
    ) -> None:
        self._ledger = ledger
        self._notifier = notifier
        self._hasher = password_hasher or PasswordHasher()
        self._clock = clock
        self._public_origin = public_origin.rstrip("/")

    # ─── Failure translation ──────────────────────────────────────────────────

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        """Translate collaborator failures into Internal/External AuthErrors."""
        try:
            yield
        except LedgerError as exc:
            logger.error(
                "ledger_failure",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise AuthError(ErrorKind.STORE_FAILURE) from exc
        except HashingError as exc:
            logger.error(
                "hashing_failure",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise AuthError(ErrorKind.HASHING_FAILURE) from exc
        except NotificationBounced as exc:
            logger.warning("notification_bounced", operation=operation, error=str(exc))
            raise AuthError(ErrorKind.NOTIFICATION_BOUNCED) from exc
        except NotifyError as exc:
            logger.error(
                "notification_unavailable",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise AuthError(ErrorKind.NOTIFICATION_UNAVAILABLE) from exc

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[LedgerScope]:
        async with self._guard(operation):
            async with self._ledger.transaction() as scope:
                yield scope

    # ─── Signup / login ───────────────────────────────────────────────────────

    async def signup(self, props: SignupProps) -> IssuedApiKey:
        """Create an account and return its first (NoEmail) key.

        Raises:
            AuthError: RealnameInvalid, UsernameInvalid, PasswordInsecure,
                       UsernameTaken, or an Internal-class kind.
        """
        check_profile(props.username, props.realname)
        check_password(props.password)
        now = self._clock()

        async with self._guard("signup"):
            password_hash = await self._hasher.hash_async(props.password)

        async with self._transaction("signup") as tx:
            if await accounts.user_data_by_username(tx, props.username) is not None:
                raise AuthError(ErrorKind.USERNAME_TAKEN)

            user = await tx.append(User(creation_time=now))
            await tx.append(
                UserData(
                    creation_time=now,
                    creator_user_id=user.user_id,
                    date_of_birth=props.date_of_birth,
                    username=props.username,
                    realname=props.realname,
                )
            )
            await tx.append(
                Password(
                    creation_time=now,
                    creator_user_id=user.user_id,
                    password_hash=password_hash,
                )
            )
            issued = await self._append_key(
                tx, user.user_id, ApiKeyKind.NO_EMAIL, props.api_key_duration, now
            )

        logger.info("user_created", user_id=user.user_id)
        return issued

    async def issue_key_by_email(self, props: LoginWithEmailProps) -> IssuedApiKey:
        """Password login by verified own email.

        Raises:
            AuthError: EmailNonexistent, UserNonexistent, PasswordNonexistent,
                       PasswordIncorrect.
        """
        async with self._transaction("issue_key_by_email") as tx:
            bound = await verification.own_email_by_address(tx, props.email)
            if bound is None:
                raise AuthError(ErrorKind.EMAIL_NONEXISTENT)
            user_data = await accounts.current_user_data(tx, bound.creator_user_id)
            if user_data is None:
                raise AuthError(ErrorKind.USER_NONEXISTENT)
            stored = await self._login_password(tx, user_data.creator_user_id)
        return await self._issue_valid_key(
            "issue_key_by_email", stored, props.password, props.duration
        )

    async def issue_key_by_username(self, props: LoginWithUsernameProps) -> IssuedApiKey:
        """Password login by current username.

        Raises:
            AuthError: UserNonexistent, PasswordNonexistent, PasswordIncorrect.
        """
        async with self._transaction("issue_key_by_username") as tx:
            user_data = await accounts.user_data_by_username(tx, props.username)
            if user_data is None:
                raise AuthError(ErrorKind.USER_NONEXISTENT)
            stored = await self._login_password(tx, user_data.creator_user_id)
        return await self._issue_valid_key(
            "issue_key_by_username", stored, props.password, props.duration
        )

    async def _login_password(self, tx: LedgerScope, user_id: int) -> Password:
        current = await accounts.current_password(tx, user_id)
        if current is None:
            raise AuthError(ErrorKind.PASSWORD_NONEXISTENT)
        if current.is_cancelled:
            raise AuthError(ErrorKind.PASSWORD_INCORRECT, "password cancelled")
        return current

    async def _issue_valid_key(
        self, operation: str, stored: Password, password: str, duration: int
    ) -> IssuedApiKey:
        """Verify the password, then stamp the key with its age-gated kind.

        The Argon2 check runs outside any transaction so a login never holds
        the ledger lock for a full KDF run. The issuing transaction then
        requires the same Password row to still be current; a change, reset
        or cancel that landed in between rejects the login.
        """
        user_id = stored.creator_user_id
        assert stored.password_hash is not None
        async with self._guard(operation):
            matches = await self._hasher.verify_async(password, stored.password_hash)
        if not matches:
            logger.info("login_rejected", user_id=user_id, reason="password_incorrect")
            raise AuthError(ErrorKind.PASSWORD_INCORRECT)

        async with self._transaction(operation) as tx:
            now = self._clock()
            current = await accounts.current_password(tx, user_id)
            if current is None or current.password_id != stored.password_id:
                logger.info("login_rejected", user_id=user_id, reason="password_superseded")
                raise AuthError(ErrorKind.PASSWORD_INCORRECT, "password changed during login")
            user_data = await accounts.current_user_data(tx, user_id)
            if user_data is None:
                raise AuthError(ErrorKind.USER_NONEXISTENT)

            has_own = await verification.own_email(tx, user_id) is not None
            has_parent = await verification.parent_email(tx, user_id) is not None
            kind = compute_key_kind(user_data, has_own, has_parent, now)
            return await self._append_key(tx, user_id, kind, duration, now)

    async def _append_key(
        self, tx: LedgerScope, user_id: int, kind: ApiKeyKind, duration: int, now: int
    ) -> IssuedApiKey:
        raw = generate_secret()
        api_key = await tx.append(
            ApiKey(
                creation_time=now,
                creator_user_id=user_id,
                key_hash=fast_hash(raw),
                kind=kind,
                duration=duration,
            )
        )
        logger.info(
            "api_key_issued",
            user_id=user_id,
            api_key_id=api_key.api_key_id,
            kind=kind.label,
            duration=duration,
        )
        return IssuedApiKey(api_key=api_key, key=raw)

    # ─── Key cancellation ─────────────────────────────────────────────────────

    async def cancel_key(self, props: CancelKeyProps) -> IssuedApiKey:
        """Append a Cancel row (duration 0) for the target key's hash.

        Both keys must be current and belong to the same account. Cancellation
        is hash-based: every earlier row for the hash is dead from now on.

        Raises:
            AuthError: Credential* for either key; CredentialNonexistent if no
                       target was given; CredentialUnauthorized on owner mismatch.
        """
        async with self._transaction("cancel_key") as tx:
            now = self._clock()
            authority_key = await resolve_api_key(tx, props.api_key, now, Tier.CURRENT)
            if props.api_key_to_cancel is not None:
                target = await resolve_api_key(tx, props.api_key_to_cancel, now, Tier.CURRENT)
            elif props.api_key_id is not None:
                target = await resolve_api_key_id(tx, props.api_key_id, now, Tier.CURRENT)
            else:
                raise AuthError(ErrorKind.CREDENTIAL_NONEXISTENT, "no key to cancel")

            if target.creator_user_id != authority_key.creator_user_id:
                raise AuthError(ErrorKind.CREDENTIAL_UNAUTHORIZED, "key owned by another account")

            cancel = await tx.append(
                ApiKey(
                    creation_time=now,
                    creator_user_id=authority_key.creator_user_id,
                    key_hash=target.key_hash,
                    kind=ApiKeyKind.CANCEL,
                    duration=0,
                )
            )

        logger.info(
            "api_key_cancelled",
            user_id=cancel.creator_user_id,
            cancelled_api_key_id=target.api_key_id,
        )
        return IssuedApiKey(api_key=cancel)

    # ─── Profile ──────────────────────────────────────────────────────────────

    async def new_user_data(self, props: NewUserDataProps) -> UserData:
        """Append a new profile generation. A username may be kept by its holder."""
        check_profile(props.username, props.realname)

        async with self._transaction("new_user_data") as tx:
            now = self._clock()
            api_key = await resolve_api_key(tx, props.api_key, now, Tier.CURRENT)
            holder = await accounts.user_data_by_username(tx, props.username)
            if holder is not None and holder.creator_user_id != api_key.creator_user_id:
                raise AuthError(ErrorKind.USERNAME_TAKEN)
            user_data = await tx.append(
                UserData(
                    creation_time=now,
                    creator_user_id=api_key.creator_user_id,
                    date_of_birth=props.date_of_birth,
                    username=props.username,
                    realname=props.realname,
                )
            )

        logger.info("user_data_updated", user_id=user_data.creator_user_id)
        return user_data

    # ─── Email verification ───────────────────────────────────────────────────

    async def new_verification_challenge(self, props: NewChallengeProps) -> VerificationChallenge:
        check_email(props.email)
        async with self._transaction("new_verification_challenge") as tx:
            return await verification.issue_challenge(
                tx,
                self._notifier,
                props.api_key,
                props.email,
                props.to_parent,
                self._clock(),
                self._public_origin,
            )

    async def confirm_email(self, props: ConfirmEmailProps) -> BoundEmail:
        async with self._transaction("confirm_email") as tx:
            return await verification.consume_challenge(
                tx, props.verification_challenge_key, props.to_parent, self._clock()
            )

    # ─── Passwords ────────────────────────────────────────────────────────────

    async def request_password_reset(self, props: PasswordResetRequestProps) -> PasswordReset:
        """Mail a reset link to a verified own email. Not rate limited.

        Raises:
            AuthError: EmailNonexistent, NotificationBounced, NotificationUnavailable.
        """
        async with self._transaction("request_password_reset") as tx:
            now = self._clock()
            bound = await verification.own_email_by_address(tx, props.email)
            if bound is None:
                raise AuthError(ErrorKind.EMAIL_NONEXISTENT)

            secret = generate_secret()
            message = compose_password_reset(self._public_origin, secret)
            await self._notifier.send(props.email, message.topic, message.title, message.content)

            reset = await tx.append(
                PasswordReset(
                    key_hash=fast_hash(secret),
                    creation_time=now,
                    creator_user_id=bound.creator_user_id,
                )
            )

        logger.info("password_reset_requested", user_id=reset.creator_user_id)
        return reset

    async def complete_password_reset(self, props: PasswordResetCompleteProps) -> PasswordRecord:
        """Consume a reset key, appending a Password row that records its hash.

        Check order: nonexistent → already consumed → timed out.

        Raises:
            AuthError: PasswordInsecure, PasswordResetNonexistent,
                       PasswordResetAlreadyConsumed, PasswordResetTimedOut.
        """
        check_password(props.new_password)

        async with self._guard("complete_password_reset"):
            password_hash = await self._hasher.hash_async(props.new_password)

        async with self._transaction("complete_password_reset") as tx:
            now = self._clock()
            key_hash = fast_hash(props.password_reset_key)
            reset = await tx.find_most_recent(PasswordReset, Query().eq("key_hash", key_hash))
            if reset is None:
                raise AuthError(ErrorKind.PASSWORD_RESET_NONEXISTENT)
            if await tx.exists(Password, Query().eq("reset_key_hash", key_hash)):
                raise AuthError(ErrorKind.PASSWORD_RESET_ALREADY_CONSUMED)
            if now > reset.expires_at:
                raise AuthError(ErrorKind.PASSWORD_RESET_TIMED_OUT)

            password = await tx.append(
                Password(
                    creation_time=now,
                    creator_user_id=reset.creator_user_id,
                    password_hash=password_hash,
                    reset_key_hash=key_hash,
                )
            )

        logger.info("password_reset_completed", user_id=password.creator_user_id)
        return PasswordRecord(password=password, reset=reset)

    async def change_password(self, props: PasswordChangeProps) -> PasswordRecord:
        """Requires only a current key: unverified accounts may change passwords."""
        check_password(props.new_password)

        async with self._guard("change_password"):
            password_hash = await self._hasher.hash_async(props.new_password)

        async with self._transaction("change_password") as tx:
            now = self._clock()
            api_key = await resolve_api_key(tx, props.api_key, now, Tier.CURRENT)
            password = await tx.append(
                Password(
                    creation_time=now,
                    creator_user_id=api_key.creator_user_id,
                    password_hash=password_hash,
                )
            )

        logger.info("password_changed", user_id=password.creator_user_id)
        return PasswordRecord(password=password)

    async def cancel_password(self, props: PasswordCancelProps) -> PasswordRecord:
        """Append a hash-less Password row; password logins fail until a new one is set."""
        async with self._transaction("cancel_password") as tx:
            now = self._clock()
            api_key = await resolve_api_key(tx, props.api_key, now, Tier.CURRENT)
            password = await tx.append(
                Password(creation_time=now, creator_user_id=api_key.creator_user_id)
            )

        logger.info("password_cancelled", user_id=password.creator_user_id)
        return PasswordRecord(password=password)

    # ─── Views ────────────────────────────────────────────────────────────────

    async def view_users(self, props: UserViewProps) -> list[User]:
        async with self._transaction("view_users") as tx:
            await resolve_api_key(tx, props.api_key, self._clock(), Tier.CURRENT)
            query = (
                Query()
                .is_in("user_id", props.user_id)
                .at_least("creation_time", props.min_creation_time)
                .at_most("creation_time", props.max_creation_time)
                .page(props.limit, props.offset)
            )
            return await tx.query(User, query)

    async def view_user_data(self, props: UserDataViewProps) -> list[UserData]:
        async with self._transaction("view_user_data") as tx:
            await resolve_api_key(tx, props.api_key, self._clock(), Tier.CURRENT)
            query = (
                Query()
                .recent("creator_user_id", props.only_recent)
                .is_in("user_data_id", props.user_data_id)
                .at_least("creation_time", props.min_creation_time)
                .at_most("creation_time", props.max_creation_time)
                .is_in("creator_user_id", props.creator_user_id)
                .at_least("date_of_birth", props.min_date_of_birth)
                .at_most("date_of_birth", props.max_date_of_birth)
                .is_in("username", props.username)
                .is_in("realname", props.realname)
                .page(props.limit, props.offset)
            )
            return await tx.query(UserData, query)

    async def view_emails(self, props: EmailViewProps) -> list[BoundEmail]:
        """Emails of one kind (own or parent), joined with their challenges.

        only_recent keeps each account's newest email of that kind, decided
        before the other filters apply.
        """
        async with self._transaction("view_emails") as tx:
            await resolve_api_key(tx, props.api_key, self._clock(), Tier.CURRENT)
            challenges = await tx.query(
                VerificationChallenge, Query().eq("to_parent", props.to_parent)
            )
            by_hash = {c.key_hash: c for c in challenges}
            emails = await tx.query(
                Email, Query().is_in("verification_challenge_key_hash", by_hash)
            )
            bound = [BoundEmail(e, by_hash[e.verification_challenge_key_hash]) for e in emails]

        if props.only_recent:
            newest: dict[int, BoundEmail] = {}
            for b in bound:
                newest[b.creator_user_id] = b
            bound = sorted(newest.values(), key=lambda b: b.email.email_id)

        filters = (
            Query()
            .is_in("email_id", props.email_id)
            .at_least("creation_time", props.min_creation_time)
            .at_most("creation_time", props.max_creation_time)
        )
        selected = [
            b
            for b in bound
            if all(c.matches(b.email) for c in filters.constraints)
            and (props.creator_user_id is None or b.creator_user_id in props.creator_user_id)
            and (props.email is None or b.address in props.email)
        ]
        offset = props.offset or 0
        end = None if props.limit is None else offset + props.limit
        return selected[offset:end]

    async def view_passwords(self, props: PasswordViewProps) -> list[PasswordRecord]:
        async with self._transaction("view_passwords") as tx:
            await resolve_api_key(tx, props.api_key, self._clock(), Tier.CURRENT)
            query = (
                Query()
                .recent("creator_user_id", props.only_recent)
                .is_in("password_id", props.password_id)
                .at_least("creation_time", props.min_creation_time)
                .at_most("creation_time", props.max_creation_time)
                .is_in("creator_user_id", props.creator_user_id)
                .present("reset_key_hash", props.from_reset)
                .page(props.limit, props.offset)
            )
            records = []
            for password in await tx.query(Password, query):
                reset = None
                if password.reset_key_hash is not None:
                    reset = await tx.find_most_recent(
                        PasswordReset, Query().eq("key_hash", password.reset_key_hash)
                    )
                records.append(PasswordRecord(password=password, reset=reset))
            return records

    async def view_api_keys(self, props: ApiKeyViewProps) -> list[ApiKey]:
        async with self._transaction("view_api_keys") as tx:
            await resolve_api_key(tx, props.api_key, self._clock(), Tier.CURRENT)
            query = (
                Query()
                .recent("key_hash", props.only_recent)
                .is_in("api_key_id", props.api_key_id)
                .at_least("creation_time", props.min_creation_time)
                .at_most("creation_time", props.max_creation_time)
                .is_in("creator_user_id", props.creator_user_id)
                .is_in("kind", props.kind)
                .page(props.limit, props.offset)
            )
            return await tx.query(ApiKey, query)

    # ─── Lookups ──────────────────────────────────────────────────────────────

    async def resolve_api_key(self, raw_secret: str, tier: Tier = Tier.VALID) -> ApiKey:
        async with self._transaction("resolve_api_key") as tx:
            return await resolve_api_key(tx, raw_secret, self._clock(), tier)

    async def get_user_by_id(self, user_id: int) -> User:
        async with self._transaction("get_user_by_id") as tx:
            user = await accounts.get_user(tx, user_id)
        if user is None:
            raise AuthError(ErrorKind.USER_NONEXISTENT)
        return user

    async def get_user_by_api_key_if_valid(self, raw_secret: str) -> User:
        """Internal lookup for sibling services: requires a fully Valid key."""
        async with self._transaction("get_user_by_api_key_if_valid") as tx:
            api_key = await resolve_api_key(tx, raw_secret, self._clock(), Tier.VALID)
            user = await accounts.get_user(tx, api_key.creator_user_id)
        if user is None:
            raise AuthError(ErrorKind.USER_NONEXISTENT)
        return user

    async def get_current_password(self, user_id: int) -> Password:
        async with self._transaction("get_current_password") as tx:
            password = await accounts.current_password(tx, user_id)
        if password is None:
            raise AuthError(ErrorKind.PASSWORD_NONEXISTENT)
        return password

    def info(self) -> ServiceInfo:
        return ServiceInfo(
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
            public_origin_web=self._public_origin,
        )
