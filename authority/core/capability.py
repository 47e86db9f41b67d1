"""Age-gated capability upgrade.

Decides the ApiKeyKind stamped on a freshly issued key:

    no own email               → NoEmail
    minor, parent email bound  → Valid
    minor, no parent email     → NoParent
    otherwise                  → Valid

Evaluated once, at issuance. A key keeps its kind for life; verifying an
email later does not upgrade keys already issued.
"""

from __future__ import annotations

from authority.constants import THIRTEEN_YEARS_MS
from authority.ledger.models import ApiKeyKind, UserData


def is_minor(date_of_birth: int, now: int) -> bool:
    """True iff the account is strictly younger than 13 Julian years at ``now``."""
    return now - date_of_birth < THIRTEEN_YEARS_MS


def compute_key_kind(
    user_data: UserData,
    has_own_email: bool,
    has_parent_email: bool,
    now: int,
) -> ApiKeyKind:
    if not has_own_email:
        return ApiKeyKind.NO_EMAIL
    if is_minor(user_data.date_of_birth, now) and not has_parent_email:
        return ApiKeyKind.NO_PARENT
    return ApiKeyKind.VALID
