"""Unit tests for authority/ledger/query.py and authority/ledger/memory_backend.py.

Covers:
  - Query builders skip None filters
  - recency is applied BEFORE constraints (current-username semantics)
  - ordering, limit/offset, find_most_recent, count
  - transaction commit / rollback, id assignment, duplicate key hashes
"""

from __future__ import annotations

import pytest

from authority.ledger.memory_backend import InMemoryLedger, evaluate
from authority.ledger.models import ApiKey, ApiKeyKind, PasswordReset, User, UserData
from authority.ledger.protocol import Ledger, LedgerError
from authority.ledger.query import Op, Query, check_fields

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _user_data(user_id: int, username: str, at: int = 0, data_id: int = 0) -> UserData:
    return UserData(
        creation_time=at,
        creator_user_id=user_id,
        date_of_birth=0,
        username=username,
        realname=username.title(),
        user_data_id=data_id,
    )


# ─── Query builders ───────────────────────────────────────────────────────────


class TestQueryBuilders:
    def test_none_values_add_no_constraint(self) -> None:
        query = (
            Query()
            .eq("username", None)
            .is_in("creator_user_id", None)
            .at_least("creation_time", None)
            .at_most("creation_time", None)
            .present("reset_key_hash", None)
        )
        assert query.constraints == ()

    def test_builders_are_immutable(self) -> None:
        base = Query()
        derived = base.eq("username", "alice")
        assert base.constraints == ()
        assert derived.constraints[0].op is Op.EQ

    def test_recent_disabled_is_noop(self) -> None:
        assert Query().recent("creator_user_id", False).recent_by is None

    def test_fields_include_recent_by(self) -> None:
        query = Query().recent("creator_user_id").eq("username", "x")
        assert query.fields() == {"creator_user_id", "username"}

    def test_check_fields_rejects_unknown(self) -> None:
        with pytest.raises(ValueError, match="no_such_field"):
            check_fields(UserData, Query().eq("no_such_field", 1))


# ─── evaluate() ───────────────────────────────────────────────────────────────


class TestEvaluate:
    def test_recency_before_constraints(self) -> None:
        """A username held only by a superseded row is not 'current'."""
        rows = [
            _user_data(1, "alice", data_id=1),
            _user_data(1, "alice2", data_id=2),
        ]
        current = Query().recent("creator_user_id").eq("username", "alice")
        assert evaluate(rows, current) == []
        assert evaluate(rows, Query().eq("username", "alice")) == [rows[0]]

    def test_recent_keeps_newest_per_group(self) -> None:
        rows = [
            _user_data(1, "a", data_id=1),
            _user_data(2, "b", data_id=2),
            _user_data(1, "c", data_id=3),
        ]
        kept = evaluate(rows, Query().recent("creator_user_id"))
        assert [r.user_data_id for r in kept] == [2, 3]

    def test_insertion_order_not_creation_time(self) -> None:
        """A later row with an earlier creation_time is still the newest."""
        rows = [
            _user_data(1, "first", at=500, data_id=1),
            _user_data(1, "second", at=100, data_id=2),
        ]
        newest = evaluate(rows, Query().newest_first().page(1))
        assert newest[0].username == "second"

    def test_page(self) -> None:
        rows = [_user_data(i, f"u{i}", data_id=i) for i in range(1, 6)]
        page = evaluate(rows, Query().page(2, 1))
        assert [r.user_data_id for r in page] == [2, 3]

    def test_range_and_membership(self) -> None:
        rows = [_user_data(i, f"u{i}", at=i * 10, data_id=i) for i in range(1, 6)]
        query = (
            Query()
            .at_least("creation_time", 20)
            .at_most("creation_time", 40)
            .is_in("creator_user_id", [2, 4, 5])
        )
        assert [r.user_data_id for r in evaluate(rows, query)] == [2, 4]


# ─── InMemoryLedger ───────────────────────────────────────────────────────────


class TestInMemoryLedger:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryLedger(), Ledger)

    async def test_ids_strictly_increase(self, ledger: InMemoryLedger) -> None:
        first = await ledger.append(User(creation_time=1))
        second = await ledger.append(User(creation_time=1))
        assert (first.user_id, second.user_id) == (1, 2)

    async def test_ids_are_per_kind(self, ledger: InMemoryLedger) -> None:
        await ledger.append(User(creation_time=1))
        data = await ledger.append(_user_data(1, "alice"))
        assert data.user_data_id == 1

    async def test_commit_publishes(self, ledger: InMemoryLedger) -> None:
        async with ledger.transaction() as tx:
            await tx.append(User(creation_time=1))
            assert await tx.count(User, Query()) == 1
        assert await ledger.count(User, Query()) == 1

    async def test_exception_rolls_back_every_append(self, ledger: InMemoryLedger) -> None:
        with pytest.raises(RuntimeError):
            async with ledger.transaction() as tx:
                await tx.append(User(creation_time=1))
                await tx.append(_user_data(1, "alice"))
                raise RuntimeError("boom")
        assert await ledger.count(User, Query()) == 0
        assert await ledger.count(UserData, Query()) == 0

    async def test_rolled_back_ids_are_not_reused(self, ledger: InMemoryLedger) -> None:
        with pytest.raises(RuntimeError):
            async with ledger.transaction() as tx:
                await tx.append(User(creation_time=1))
                raise RuntimeError("boom")
        user = await ledger.append(User(creation_time=2))
        assert user.user_id == 2

    async def test_duplicate_key_hash_rejected(self, ledger: InMemoryLedger) -> None:
        reset = PasswordReset(key_hash="h", creation_time=1, creator_user_id=1)
        await ledger.append(reset)
        with pytest.raises(LedgerError):
            await ledger.append(reset)

    async def test_api_key_rows_may_share_a_hash(self, ledger: InMemoryLedger) -> None:
        """Cancellation appends a second row for the same key hash."""
        for kind in (ApiKeyKind.VALID, ApiKeyKind.CANCEL):
            await ledger.append(
                ApiKey(creation_time=1, creator_user_id=1, key_hash="h", kind=kind, duration=0)
            )
        newest = await ledger.find_most_recent(ApiKey, Query().eq("key_hash", "h"))
        assert newest is not None
        assert newest.kind is ApiKeyKind.CANCEL

    async def test_find_most_recent_none(self, ledger: InMemoryLedger) -> None:
        assert await ledger.find_most_recent(User, Query().eq("user_id", 9)) is None
        assert await ledger.exists(User, Query()) is False

    async def test_health_check(self, ledger: InMemoryLedger) -> None:
        assert await ledger.health_check() is True
