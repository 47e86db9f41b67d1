"""Unit tests for authority/ledger/sqlite_backend.py — LocalSQLiteLedger.

Covers schema creation, WAL mode, the user_version guard, append/query
parity with the in-memory backend, rollback, and strict row decoding.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

import aiosqlite
import pytest

from authority.ledger.models import (
    ApiKey,
    ApiKeyKind,
    Email,
    Password,
    User,
    UserData,
    VerificationChallenge,
)
from authority.ledger.protocol import LedgerError
from authority.ledger.query import Query
from authority.ledger.sqlite_backend import LocalSQLiteLedger

# ─── Fixtures ─────────────────────────────────────────────────────────────────


@pytest.fixture
def db_path(tmp_path: Any) -> str:
    return str(tmp_path / "ledger.db")


@pytest.fixture
async def sqlite_ledger(db_path: str) -> AsyncIterator[LocalSQLiteLedger]:
    backend = LocalSQLiteLedger(db_path=db_path)
    await backend.initialize()
    yield backend
    await backend.close()


async def _seed_user(ledger: LocalSQLiteLedger) -> User:
    return await ledger.append(User(creation_time=1_000))


# ─── Schema + WAL ─────────────────────────────────────────────────────────────


class TestSchema:
    async def test_fresh_db_sets_user_version(self, db_path: str) -> None:
        backend = LocalSQLiteLedger(db_path=db_path)
        await backend.initialize()
        await backend.close()

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("PRAGMA user_version;")
            row = await cursor.fetchone()
        assert row[0] == 1

    async def test_wal_mode_enabled(self, db_path: str) -> None:
        backend = LocalSQLiteLedger(db_path=db_path)
        await backend.initialize()
        await backend.close()

        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute("PRAGMA journal_mode;")
            row = await cursor.fetchone()
        assert row[0].lower() == "wal"

    async def test_initialize_is_idempotent(self, db_path: str) -> None:
        for _ in range(2):
            backend = LocalSQLiteLedger(db_path=db_path)
            await backend.initialize()
            await backend.close()

    async def test_unknown_schema_version_refuses_start(self, db_path: str) -> None:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("PRAGMA user_version = 99;")
            await db.commit()

        backend = LocalSQLiteLedger(db_path=db_path)
        with pytest.raises(RuntimeError, match="schema version: 99"):
            await backend.initialize()

    async def test_creates_parent_directory(self, tmp_path: Any) -> None:
        path = tmp_path / "nested" / "dir" / "ledger.db"
        backend = LocalSQLiteLedger(db_path=str(path))
        await backend.initialize()
        await backend.close()
        assert path.exists()

    async def test_transaction_before_initialize_fails(self, db_path: str) -> None:
        backend = LocalSQLiteLedger(db_path=db_path)
        with pytest.raises(LedgerError):
            async with backend.transaction():
                pass


# ─── Append + query ───────────────────────────────────────────────────────────


class TestAppendAndQuery:
    async def test_ids_assigned_in_order(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        first = await _seed_user(sqlite_ledger)
        second = await _seed_user(sqlite_ledger)
        assert second.user_id == first.user_id + 1

    async def test_bool_and_kind_round_trip(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        user = await _seed_user(sqlite_ledger)
        await sqlite_ledger.append(
            VerificationChallenge(
                key_hash="c1",
                creation_time=5,
                creator_user_id=user.user_id,
                to_parent=True,
                email="p@example.com",
            )
        )
        await sqlite_ledger.append(
            ApiKey(
                creation_time=5,
                creator_user_id=user.user_id,
                key_hash="k1",
                kind=ApiKeyKind.NO_PARENT,
                duration=60_000,
            )
        )

        challenge = await sqlite_ledger.find_most_recent(
            VerificationChallenge, Query().eq("to_parent", True)
        )
        api_key = await sqlite_ledger.find_most_recent(ApiKey, Query().eq("key_hash", "k1"))
        assert challenge is not None and challenge.to_parent is True
        assert api_key is not None and api_key.kind is ApiKeyKind.NO_PARENT

    async def test_recency_before_constraints(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        user = await _seed_user(sqlite_ledger)
        for username in ("alice", "alice2"):
            await sqlite_ledger.append(
                UserData(
                    creation_time=1,
                    creator_user_id=user.user_id,
                    date_of_birth=0,
                    username=username,
                    realname="Alice",
                )
            )
        current = Query().recent("creator_user_id").eq("username", "alice")
        assert await sqlite_ledger.query(UserData, current) == []
        assert len(await sqlite_ledger.query(UserData, Query().eq("username", "alice"))) == 1

    async def test_present_filter(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        user = await _seed_user(sqlite_ledger)
        await sqlite_ledger.append(Password(creation_time=1, creator_user_id=user.user_id))
        await sqlite_ledger.append(
            Password(creation_time=2, creator_user_id=user.user_id, password_hash="$argon2id$x")
        )
        cancelled = await sqlite_ledger.query(Password, Query().present("password_hash", False))
        assert [p.creation_time for p in cancelled] == [1]

    async def test_count_ignores_page(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        for _ in range(3):
            await _seed_user(sqlite_ledger)
        assert await sqlite_ledger.count(User, Query().page(1)) == 3

    async def test_page_and_descending(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        users = [await _seed_user(sqlite_ledger) for _ in range(4)]
        page = await sqlite_ledger.query(User, Query().newest_first().page(2, 1))
        assert [u.user_id for u in page] == [users[2].user_id, users[1].user_id]

    async def test_empty_membership_matches_nothing(
        self, sqlite_ledger: LocalSQLiteLedger
    ) -> None:
        await _seed_user(sqlite_ledger)
        assert await sqlite_ledger.query(User, Query().is_in("user_id", [])) == []

    async def test_duplicate_challenge_hash_is_ledger_error(
        self, sqlite_ledger: LocalSQLiteLedger
    ) -> None:
        user = await _seed_user(sqlite_ledger)
        challenge = VerificationChallenge(
            key_hash="dup",
            creation_time=1,
            creator_user_id=user.user_id,
            to_parent=False,
            email="a@example.com",
        )
        await sqlite_ledger.append(challenge)
        with pytest.raises(LedgerError):
            await sqlite_ledger.append(challenge)

    async def test_email_requires_existing_challenge(
        self, sqlite_ledger: LocalSQLiteLedger
    ) -> None:
        with pytest.raises(LedgerError):
            await sqlite_ledger.append(
                Email(creation_time=1, verification_challenge_key_hash="missing")
            )


# ─── Transactions ─────────────────────────────────────────────────────────────


class TestTransactions:
    async def test_rollback_on_exception(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        with pytest.raises(RuntimeError):
            async with sqlite_ledger.transaction() as tx:
                await tx.append(User(creation_time=1))
                raise RuntimeError("boom")
        assert await sqlite_ledger.count(User, Query()) == 0

    async def test_reads_see_own_appends(self, sqlite_ledger: LocalSQLiteLedger) -> None:
        async with sqlite_ledger.transaction() as tx:
            user = await tx.append(User(creation_time=1))
            assert await tx.exists(User, Query().eq("user_id", user.user_id))

    async def test_health_check(self, db_path: str) -> None:
        backend = LocalSQLiteLedger(db_path=db_path)
        await backend.initialize()
        assert await backend.health_check() is True
        await backend.close()
        assert await backend.health_check() is False


# ─── Strict decoding ──────────────────────────────────────────────────────────


class TestStrictDecoding:
    async def test_unknown_kind_is_ledger_error(self, db_path: str) -> None:
        backend = LocalSQLiteLedger(db_path=db_path)
        await backend.initialize()
        await backend.close()

        async with aiosqlite.connect(db_path) as db:
            await db.execute('INSERT INTO "user" (creation_time) VALUES (1)')
            await db.execute(
                "INSERT INTO api_key (creation_time, creator_user_id, key_hash, kind, duration)"
                " VALUES (1, 1, 'corrupt', 9, 1000)"
            )
            await db.commit()

        backend = LocalSQLiteLedger(db_path=db_path)
        await backend.initialize()
        try:
            with pytest.raises(LedgerError, match="unknown kind"):
                await backend.find_most_recent(ApiKey, Query().eq("key_hash", "corrupt"))
        finally:
            await backend.close()
