"""Authorization resolver — raw API key → current ledger row, or AuthError.

Resolution order:
  1. fast_hash(raw) → most recent ApiKey row with that hash
     (absent → CredentialNonexistent)
  2. kind == Cancel → CredentialUnauthorized
  3. now > creation_time + duration → CredentialExpired
  4. tier check: VALID accepts only Valid; CURRENT accepts Valid, NoEmail, NoParent
     (else CredentialUnauthorized)

Cancel is checked before expiry: cancel rows carry duration 0, so checking
expiry first would report a cancelled key as merely expired.

Every call re-queries the ledger. Callers that go on to write based on the
result must resolve inside the same transaction as the write.
"""

from __future__ import annotations

from enum import Enum

from authority.codec import fast_hash
from authority.errors import AuthError, ErrorKind
from authority.ledger.models import CURRENT_KINDS, ApiKey, ApiKeyKind
from authority.ledger.protocol import LedgerScope
from authority.ledger.query import Query


class Tier(str, Enum):
    """Validation strength demanded by an operation."""

    VALID = "valid"
    CURRENT = "current"


_VALID_ONLY = frozenset({ApiKeyKind.VALID})


def check_api_key(api_key: ApiKey, now: int, tier: Tier) -> ApiKey:
    """Apply steps 2-4 to an already-located row."""
    if api_key.kind is ApiKeyKind.CANCEL:
        raise AuthError(ErrorKind.CREDENTIAL_UNAUTHORIZED, "api key cancelled")
    if now > api_key.expires_at:
        raise AuthError(ErrorKind.CREDENTIAL_EXPIRED)
    accepted = _VALID_ONLY if tier is Tier.VALID else CURRENT_KINDS
    if api_key.kind not in accepted:
        raise AuthError(ErrorKind.CREDENTIAL_UNAUTHORIZED, "api key not fully verified")
    return api_key


async def resolve_key_hash(scope: LedgerScope, key_hash: str, now: int, tier: Tier) -> ApiKey:
    api_key = await scope.find_most_recent(ApiKey, Query().eq("key_hash", key_hash))
    if api_key is None:
        raise AuthError(ErrorKind.CREDENTIAL_NONEXISTENT)
    return check_api_key(api_key, now, tier)


async def resolve_api_key(
    scope: LedgerScope, raw_secret: str, now: int, tier: Tier = Tier.VALID
) -> ApiKey:
    """Resolve a presented raw secret. See module docstring for the order of checks."""
    return await resolve_key_hash(scope, fast_hash(raw_secret), now, tier)


async def resolve_api_key_id(
    scope: LedgerScope, api_key_id: int, now: int, tier: Tier = Tier.VALID
) -> ApiKey:
    """Resolve by row id: the row names a key hash, whose newest row decides."""
    row = await scope.find_most_recent(ApiKey, Query().eq("api_key_id", api_key_id))
    if row is None:
        raise AuthError(ErrorKind.CREDENTIAL_NONEXISTENT)
    return await resolve_key_hash(scope, row.key_hash, now, tier)
