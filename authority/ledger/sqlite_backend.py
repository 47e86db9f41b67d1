"""LocalSQLiteLedger — aiosqlite-based ledger backend.

Uses aiosqlite EXCLUSIVELY. The stdlib sqlite3 synchronous module is not
used anywhere in authority/ledger/.

Features:
  - WAL mode: PRAGMA journal_mode=WAL (concurrent readers while writing)
  - Schema version guard: PRAGMA user_version=1; RuntimeError on mismatch, refuse startup
  - Long-lived connection: opened in initialize(), closed in close()
  - One asyncio.Lock around the connection: every transaction is exclusive,
    so read-then-append checks cannot interleave
  - Explicit BEGIN IMMEDIATE / COMMIT / ROLLBACK (connection in autocommit mode)
  - Append-only: the backend issues INSERT and SELECT only, no UPDATE, no DELETE
  - ApiKeyKind stored as INTEGER, decoded strictly (unknown value → LedgerError)
"""

from __future__ import annotations

import asyncio
import dataclasses
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, TypeVar

import aiosqlite

from authority.ledger.models import RECORD_TYPES, ApiKey, ApiKeyKind, VerificationChallenge
from authority.ledger.protocol import AutoCommitMixin, LedgerError, LedgerScope
from authority.ledger.query import Op, Query, check_fields
from authority.utils.logger import get_logger

logger = get_logger(__name__)

R = TypeVar("R")

# ─── Schema DDL ───────────────────────────────────────────────────────────────

_CREATE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS "user" (
    user_id             INTEGER PRIMARY KEY AUTOINCREMENT,
    creation_time       INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS user_data (
    user_data_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    creation_time       INTEGER NOT NULL,
    creator_user_id     INTEGER NOT NULL REFERENCES "user"(user_id),
    date_of_birth       INTEGER NOT NULL,
    username            TEXT NOT NULL,
    realname            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS verification_challenge (
    key_hash            TEXT NOT NULL UNIQUE,
    creation_time       INTEGER NOT NULL,
    creator_user_id     INTEGER NOT NULL REFERENCES "user"(user_id),
    to_parent           INTEGER NOT NULL CHECK(to_parent IN (0, 1)),
    email               TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS email (
    email_id                        INTEGER PRIMARY KEY AUTOINCREMENT,
    creation_time                   INTEGER NOT NULL,
    verification_challenge_key_hash TEXT NOT NULL UNIQUE
        REFERENCES verification_challenge(key_hash)
);

CREATE TABLE IF NOT EXISTS password (
    password_id         INTEGER PRIMARY KEY AUTOINCREMENT,
    creation_time       INTEGER NOT NULL,
    creator_user_id     INTEGER NOT NULL REFERENCES "user"(user_id),
    password_hash       TEXT,
    reset_key_hash      TEXT UNIQUE REFERENCES password_reset(key_hash)
);

CREATE TABLE IF NOT EXISTS password_reset (
    key_hash            TEXT NOT NULL UNIQUE,
    creation_time       INTEGER NOT NULL,
    creator_user_id     INTEGER NOT NULL REFERENCES "user"(user_id)
);

CREATE TABLE IF NOT EXISTS api_key (
    api_key_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    creation_time       INTEGER NOT NULL,
    creator_user_id     INTEGER NOT NULL REFERENCES "user"(user_id),
    key_hash            TEXT NOT NULL,
    kind                INTEGER NOT NULL,
    duration            INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_data_creator ON user_data(creator_user_id);
CREATE INDEX IF NOT EXISTS idx_user_data_username ON user_data(username);
CREATE INDEX IF NOT EXISTS idx_challenge_creator_time
    ON verification_challenge(creator_user_id, creation_time);
CREATE INDEX IF NOT EXISTS idx_challenge_email ON verification_challenge(email);
CREATE INDEX IF NOT EXISTS idx_password_creator ON password(creator_user_id);
CREATE INDEX IF NOT EXISTS idx_api_key_hash ON api_key(key_hash);
CREATE INDEX IF NOT EXISTS idx_api_key_creator ON api_key(creator_user_id);
"""

_SCHEMA_VERSION = 1

_SQL_OPS = {Op.EQ: "=", Op.GE: ">=", Op.LE: "<="}


# ─── Row codec ────────────────────────────────────────────────────────────────


def _columns(record_type: type) -> list[str]:
    return [f.name for f in dataclasses.fields(record_type)]


def _encode(value: Any) -> Any:
    """Python value → SQLite parameter. bool and IntEnum collapse to plain int."""
    if isinstance(value, int):
        return int(value)
    return value


def _decode(record_type: type[R], row: aiosqlite.Row) -> R:
    """Convert an aiosqlite Row to a record dataclass.

    Field mapping:
      VerificationChallenge.to_parent : int (0/1) → bool
      ApiKey.kind                     : int       → ApiKeyKind (strict)
    """
    values = {name: row[name] for name in _columns(record_type)}
    if record_type is VerificationChallenge:
        values["to_parent"] = bool(values["to_parent"])
    elif record_type is ApiKey:
        try:
            values["kind"] = ApiKeyKind(values["kind"])
        except ValueError as exc:
            raise LedgerError(
                f"api_key row {values['api_key_id']} has unknown kind {values['kind']!r}"
            ) from exc
    return record_type(**values)


def _build_select_sql(
    record_type: type, query: Query, *, count_only: bool
) -> tuple[str, list[Any]]:
    """Build a parameterized SELECT for a Query.

    Column and table names come from the record dataclasses (validated by
    check_fields), never from caller data. All values use ? placeholders.
    """
    table = record_type.table
    if count_only:
        sql = f'SELECT COUNT(*) FROM "{table}"'
    else:
        sql = f'SELECT {", ".join(_columns(record_type))} FROM "{table}"'

    conditions: list[str] = []
    params: list[Any] = []

    if query.recent_by is not None:
        conditions.append(
            f'rowid IN (SELECT max(rowid) FROM "{table}" GROUP BY {query.recent_by})'
        )

    for constraint in query.constraints:
        if constraint.op is Op.IN:
            placeholders = ",".join("?" for _ in constraint.value)
            conditions.append(f"{constraint.field} IN ({placeholders})")
            params.extend(_encode(v) for v in constraint.value)
        elif constraint.op is Op.PRESENT:
            null_test = "IS NOT NULL" if constraint.value else "IS NULL"
            conditions.append(f"{constraint.field} {null_test}")
        else:
            conditions.append(f"{constraint.field} {_SQL_OPS[constraint.op]} ?")
            params.append(_encode(constraint.value))

    if conditions:
        sql += " WHERE " + " AND ".join(conditions)

    if not count_only:
        sql += " ORDER BY rowid DESC" if query.descending else " ORDER BY rowid"
        sql += " LIMIT ? OFFSET ?"
        params.extend([-1 if query.limit is None else query.limit, query.offset])

    return sql, params


# ─── Scope ────────────────────────────────────────────────────────────────────


class _SQLiteScope:
    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def append(self, record: R) -> R:
        record_type = type(record)
        if record_type not in RECORD_TYPES:
            raise LedgerError(f"unknown record kind: {record_type!r}")
        id_field = record_type.id_field
        columns = [c for c in _columns(record_type) if c != id_field]
        values = [_encode(getattr(record, c)) for c in columns]
        sql = (
            f'INSERT INTO "{record_type.table}" ({", ".join(columns)}) '
            f'VALUES ({", ".join("?" for _ in columns)})'
        )
        try:
            cursor = await self._db.execute(sql, values)
        except aiosqlite.Error as exc:
            raise LedgerError(f"insert into {record_type.table} failed: {exc}") from exc
        if id_field is not None:
            record = dataclasses.replace(record, **{id_field: cursor.lastrowid})
        return record

    async def query(self, record_type: type[R], query: Query) -> list[R]:
        check_fields(record_type, query)
        sql, params = _build_select_sql(record_type, query, count_only=False)
        try:
            cursor = await self._db.execute(sql, params)
            rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise LedgerError(f"select from {record_type.table} failed: {exc}") from exc
        return [_decode(record_type, row) for row in rows]

    async def find_most_recent(self, record_type: type[R], query: Query) -> Optional[R]:
        found = await self.query(record_type, query.newest_first().page(1))
        return found[0] if found else None

    async def exists(self, record_type: type[R], query: Query) -> bool:
        return await self.count(record_type, query) > 0

    async def count(self, record_type: type[R], query: Query) -> int:
        check_fields(record_type, query)
        sql, params = _build_select_sql(record_type, query, count_only=True)
        try:
            cursor = await self._db.execute(sql, params)
            row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise LedgerError(f"count on {record_type.table} failed: {exc}") from exc
        return row[0] if row else 0


# ─── LocalSQLiteLedger ────────────────────────────────────────────────────────


class LocalSQLiteLedger(AutoCommitMixin):
    """Async SQLite ledger using aiosqlite exclusively.

    Default path: ~/.authority/ledger.db
    Override via: ledger.path in config.yaml or AUTHORITY_LEDGER_PATH.
    Or pass db_path explicitly (used in tests).

    Usage:
        ledger = LocalSQLiteLedger(db_path)
        await ledger.initialize()   # raises RuntimeError on schema version mismatch
        async with ledger.transaction() as tx:
            key = await tx.find_most_recent(ApiKey, Query().eq("key_hash", h))
        await ledger.close()
    """

    def __init__(self, db_path: str = "~/.authority/ledger.db") -> None:
        self._db_path: str = os.path.expanduser(db_path)
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Open the connection, enable WAL mode, and create/verify the schema.

        Steps:
          1. Create parent directory if absent
          2. Open aiosqlite connection (long-lived, autocommit mode)
          3. Enable WAL + foreign keys
          4. Read PRAGMA user_version
             - 0: fresh DB → create schema, set user_version=1
             - 1: compatible schema → no-op (idempotent)
             - other: raises RuntimeError

        Raises:
            RuntimeError: If PRAGMA user_version is neither 0 nor 1.
        """
        parent_dir = os.path.dirname(self._db_path)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        self._db = await aiosqlite.connect(self._db_path, isolation_level=None)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("PRAGMA journal_mode=WAL;")
        await self._db.execute("PRAGMA foreign_keys=ON;")

        cursor = await self._db.execute("PRAGMA user_version;")
        row = await cursor.fetchone()
        current_version: int = row[0] if row else 0

        if current_version == 0:
            await self._db.executescript(_CREATE_SCHEMA_SQL)
            await self._db.execute(f"PRAGMA user_version = {_SCHEMA_VERSION};")
            logger.info(
                "ledger_schema_created",
                db_path=self._db_path,
                schema_version=_SCHEMA_VERSION,
            )
        elif current_version == _SCHEMA_VERSION:
            logger.info(
                "ledger_schema_ok",
                db_path=self._db_path,
                schema_version=current_version,
            )
        else:
            await self._db.close()
            self._db = None
            raise RuntimeError(
                f"Unsupported ledger schema version: {current_version}. "
                f"Expected {_SCHEMA_VERSION}; refusing to start against {self._db_path}."
            )

    async def close(self) -> None:
        """Close the aiosqlite connection gracefully."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("ledger_db_closed", db_path=self._db_path)

    async def health_check(self) -> bool:
        """Returns True if the DB connection is alive and queryable."""
        try:
            assert self._db is not None
            await self._db.execute("SELECT 1")
            return True
        except Exception:
            return False

    # ── Transactions ──────────────────────────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[LedgerScope]:
        if self._db is None:
            raise LedgerError("Ledger not initialized; call initialize() first")
        async with self._lock:
            try:
                await self._db.execute("BEGIN IMMEDIATE")
            except aiosqlite.Error as exc:
                raise LedgerError(f"begin failed: {exc}") from exc
            try:
                yield _SQLiteScope(self._db)
            except BaseException:
                await self._rollback()
                raise
            try:
                await self._db.execute("COMMIT")
            except aiosqlite.Error as exc:
                await self._rollback()
                raise LedgerError(f"commit failed: {exc}") from exc

    async def _rollback(self) -> None:
        assert self._db is not None
        try:
            await self._db.execute("ROLLBACK")
        except aiosqlite.Error as exc:
            # The original exception is already propagating; record this one.
            logger.error(
                "ledger_rollback_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
