"""InMemoryLedger — arena-backed ledger for development and tests.

Architecture:
  - One arena (list) per record kind, kept in insertion order. A record's
    position in its arena IS its recency: later position = more recent.
  - Per-kind id counters assign strictly increasing ids on append. Ids used
    by a rolled-back transaction are not reused (gaps are harmless).
  - A single asyncio.Lock makes every transaction exclusive, mirroring the
    one-connection-one-lock model of the SQLite backend.
  - Appends inside a transaction are buffered; reads in the same scope see
    committed + buffered records; commit publishes the buffer, rollback
    drops it.
"""

from __future__ import annotations

import asyncio
import dataclasses
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, TypeVar

from authority.ledger.models import RECORD_TYPES
from authority.ledger.protocol import AutoCommitMixin, LedgerError, LedgerScope
from authority.ledger.query import Query, check_fields
from authority.utils.logger import get_logger

logger = get_logger(__name__)

R = TypeVar("R")


def evaluate(records: list[R], query: Query) -> list[R]:
    """Apply a Query to records already in insertion order."""
    candidates = records
    if query.recent_by is not None:
        newest: dict[object, int] = {}
        for position, record in enumerate(records):
            newest[getattr(record, query.recent_by)] = position
        keep = set(newest.values())
        candidates = [r for position, r in enumerate(records) if position in keep]

    matched = [r for r in candidates if all(c.matches(r) for c in query.constraints)]
    if query.descending:
        matched.reverse()
    end = None if query.limit is None else query.offset + query.limit
    return matched[query.offset:end]


class _MemoryScope:
    def __init__(self, ledger: "InMemoryLedger") -> None:
        self._ledger = ledger
        self._pending: dict[type, list] = {t: [] for t in RECORD_TYPES}

    def _records(self, record_type: type) -> list:
        if record_type not in self._pending:
            raise LedgerError(f"unknown record kind: {record_type!r}")
        return self._ledger._arena[record_type] + self._pending[record_type]

    async def append(self, record: R) -> R:
        record_type = type(record)
        existing = self._records(record_type)
        id_field = record_type.id_field
        if id_field is not None:
            self._ledger._next_id[record_type] += 1
            record = dataclasses.replace(
                record, **{id_field: self._ledger._next_id[record_type]}
            )
        elif any(r.key_hash == record.key_hash for r in existing):
            raise LedgerError(f"duplicate {record_type.table} key_hash")
        self._pending[record_type].append(record)
        return record

    async def query(self, record_type: type[R], query: Query) -> list[R]:
        check_fields(record_type, query)
        return evaluate(self._records(record_type), query)

    async def find_most_recent(self, record_type: type[R], query: Query) -> Optional[R]:
        found = await self.query(record_type, query.newest_first().page(1))
        return found[0] if found else None

    async def exists(self, record_type: type[R], query: Query) -> bool:
        return await self.count(record_type, query) > 0

    async def count(self, record_type: type[R], query: Query) -> int:
        return len(await self.query(record_type, query.page(None)))

    def _commit(self) -> None:
        for record_type, pending in self._pending.items():
            self._ledger._arena[record_type].extend(pending)
            pending.clear()


class InMemoryLedger(AutoCommitMixin):
    """Process-local ledger. Contents vanish with the process."""

    def __init__(self) -> None:
        self._arena: dict[type, list] = {t: [] for t in RECORD_TYPES}
        self._next_id: dict[type, int] = {t: 0 for t in RECORD_TYPES}
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[LedgerScope]:
        async with self._lock:
            scope = _MemoryScope(self)
            try:
                yield scope
            except BaseException:
                logger.debug("memory_ledger_rollback")
                raise
            scope._commit()

    async def initialize(self) -> None:
        logger.info("memory_ledger_ready")

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        logger.debug("memory_ledger_closed")
