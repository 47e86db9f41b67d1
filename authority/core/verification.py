"""Verification workflow — email-ownership and parent-permission challenges.

Implements:
  - issue_challenge()       — authorize, rate-limit, notify, then persist
  - consume_challenge()     — bind a challenge to a new Email row exactly once
  - own_email() / parent_email() / own_email_by_address() — derived lookups

Challenge state is never stored; it is derived from the ledger:

    Consumed ⇔ an Email row references the challenge's key_hash
    Expired  ⇔ now > creation_time + 15 min, and not consumed
    Pending  ⇔ neither

Non-negotiables:
  - The challenge is appended only AFTER the notifier accepted the message.
    A failed delivery leaves no row behind.
  - consume_challenge is the ONLY code path that appends Email rows.
  - At most CHALLENGE_COOLDOWN_LIMIT challenges per account in any trailing
    15-minute window, counted from the ledger (sliding, not bucketed).
"""

from __future__ import annotations

from typing import Optional

from authority.codec import fast_hash, generate_secret
from authority.constants import CHALLENGE_COOLDOWN_LIMIT, CHALLENGE_COOLDOWN_WINDOW_MS
from authority.core.accounts import current_user_data
from authority.core.props import BoundEmail
from authority.core.resolver import Tier, resolve_api_key
from authority.errors import AuthError, ErrorKind
from authority.ledger.models import Email, VerificationChallenge
from authority.ledger.protocol import LedgerScope
from authority.ledger.query import Query
from authority.notify.messages import compose_email_verification, compose_parent_permission
from authority.notify.protocol import Notifier
from authority.utils.logger import get_logger

logger = get_logger(__name__)


# ─── Derived lookups ──────────────────────────────────────────────────────────


async def _bound_email(scope: LedgerScope, user_id: int, to_parent: bool) -> Optional[BoundEmail]:
    """Newest Email created from one of the account's challenges of one kind."""
    challenges = await scope.query(
        VerificationChallenge,
        Query().eq("creator_user_id", user_id).eq("to_parent", to_parent),
    )
    if not challenges:
        return None
    by_hash = {c.key_hash: c for c in challenges}
    email = await scope.find_most_recent(
        Email, Query().is_in("verification_challenge_key_hash", by_hash)
    )
    if email is None:
        return None
    return BoundEmail(email=email, challenge=by_hash[email.verification_challenge_key_hash])


async def own_email(scope: LedgerScope, user_id: int) -> Optional[BoundEmail]:
    """The account's current own (non-parent) email, if it ever verified one."""
    return await _bound_email(scope, user_id, to_parent=False)


async def parent_email(scope: LedgerScope, user_id: int) -> Optional[BoundEmail]:
    return await _bound_email(scope, user_id, to_parent=True)


async def own_email_by_address(scope: LedgerScope, address: str) -> Optional[BoundEmail]:
    """The account whose CURRENT own email is ``address``.

    An address an account verified once but has since replaced does not
    count: only each candidate's newest own email is compared.
    """
    challenges = await scope.query(
        VerificationChallenge, Query().eq("email", address).eq("to_parent", False)
    )
    creators = sorted({c.creator_user_id for c in challenges})
    matches = []
    for user_id in creators:
        bound = await own_email(scope, user_id)
        if bound is not None and bound.address == address:
            matches.append(bound)
    if not matches:
        return None
    return max(matches, key=lambda b: b.email.email_id)


# ─── Challenge lifecycle ──────────────────────────────────────────────────────


async def issue_challenge(
    scope: LedgerScope,
    notifier: Notifier,
    raw_api_key: str,
    email: str,
    to_parent: bool,
    now: int,
    public_origin: str,
) -> VerificationChallenge:
    """Create and deliver a new verification challenge.

    The caller has already rejected an empty address; this runs inside the
    caller's transaction.

    Steps:
      1. Require a CURRENT api key (unverified accounts must reach this)
      2. Sliding-window rate limit (EmailCooldownActive)
      3. Compose and send the message carrying the raw secret
      4. Append the challenge keyed by fast_hash(secret)

    Raises:
        AuthError: Credential*, EmailCooldownActive, UserDataNonexistent.
        NotifyError: Delivery failed (translated by the caller).
    """
    api_key = await resolve_api_key(scope, raw_api_key, now, Tier.CURRENT)
    user_id = api_key.creator_user_id

    recent = await scope.count(
        VerificationChallenge,
        Query()
        .eq("creator_user_id", user_id)
        .at_least("creation_time", now - CHALLENGE_COOLDOWN_WINDOW_MS)
        .at_most("creation_time", now),
    )
    if recent >= CHALLENGE_COOLDOWN_LIMIT:
        logger.info("challenge_cooldown_active", user_id=user_id, recent_challenges=recent)
        raise AuthError(ErrorKind.EMAIL_COOLDOWN_ACTIVE)

    user_data = await current_user_data(scope, user_id)
    if user_data is None:
        raise AuthError(ErrorKind.USER_DATA_NONEXISTENT)

    secret = generate_secret()
    if to_parent:
        message = compose_parent_permission(public_origin, user_data.realname, secret)
    else:
        message = compose_email_verification(public_origin, user_data.realname, secret)
    await notifier.send(email, message.topic, message.title, message.content)

    challenge = await scope.append(
        VerificationChallenge(
            key_hash=fast_hash(secret),
            creation_time=now,
            creator_user_id=user_id,
            to_parent=to_parent,
            email=email,
        )
    )
    logger.info("challenge_issued", user_id=user_id, to_parent=to_parent)
    return challenge


async def consume_challenge(
    scope: LedgerScope, raw_secret: str, to_parent: bool, now: int
) -> BoundEmail:
    """Turn a pending challenge into an Email row.

    Check order: nonexistent → timed out → wrong kind → already used →
    (own email only) address already claimed by another account.
    """
    key_hash = fast_hash(raw_secret)
    challenge = await scope.find_most_recent(
        VerificationChallenge, Query().eq("key_hash", key_hash)
    )
    if challenge is None:
        raise AuthError(ErrorKind.CHALLENGE_NONEXISTENT)
    if now > challenge.expires_at:
        raise AuthError(ErrorKind.CHALLENGE_TIMED_OUT)
    if challenge.to_parent != to_parent:
        raise AuthError(ErrorKind.CHALLENGE_WRONG_KIND)
    if await scope.exists(Email, Query().eq("verification_challenge_key_hash", key_hash)):
        raise AuthError(ErrorKind.CHALLENGE_ALREADY_USED)
    if not challenge.to_parent:
        holder = await own_email_by_address(scope, challenge.email)
        if holder is not None and holder.creator_user_id != challenge.creator_user_id:
            raise AuthError(ErrorKind.EMAIL_ALREADY_CLAIMED)

    email = await scope.append(Email(creation_time=now, verification_challenge_key_hash=key_hash))
    logger.info(
        "challenge_consumed",
        user_id=challenge.creator_user_id,
        to_parent=challenge.to_parent,
        email_id=email.email_id,
    )
    return BoundEmail(email=email, challenge=challenge)
