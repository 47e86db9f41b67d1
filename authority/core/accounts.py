"""Current-record lookups for accounts.

"Current" always means the newest row by ledger insertion order for the
account (or username), never the newest creation_time.
"""

from __future__ import annotations

from typing import Optional

from authority.ledger.models import Password, User, UserData
from authority.ledger.protocol import LedgerScope
from authority.ledger.query import Query


async def get_user(scope: LedgerScope, user_id: int) -> Optional[User]:
    return await scope.find_most_recent(User, Query().eq("user_id", user_id))


async def current_user_data(scope: LedgerScope, user_id: int) -> Optional[UserData]:
    return await scope.find_most_recent(UserData, Query().eq("creator_user_id", user_id))


async def user_data_by_username(scope: LedgerScope, username: str) -> Optional[UserData]:
    """The CURRENT UserData holding ``username``.

    A username held only by superseded rows is free for reuse.
    """
    query = Query().recent("creator_user_id").eq("username", username)
    return await scope.find_most_recent(UserData, query)


async def current_password(scope: LedgerScope, user_id: int) -> Optional[Password]:
    return await scope.find_most_recent(Password, Query().eq("creator_user_id", user_id))
