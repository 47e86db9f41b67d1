"""Ledger Protocol — the abstract persistence collaborator.

The core depends only on this interface. Implementations:
InMemoryLedger (memory_backend.py) and LocalSQLiteLedger (sqlite_backend.py),
selected by create_ledger() (factory.py).

Contract:
  - append() assigns the record's id (if its kind has one) and returns the
    stored record. It never overwrites: there is no update or delete.
  - Reads re-query the store every time. No backend caches "current" values.
  - transaction() yields a LedgerScope with exclusive access to the ledger.
    Leaving the block normally commits; leaving it by ANY exception rolls
    back every append made through the scope, then re-raises.
  - All store failures surface as LedgerError.
"""

from __future__ import annotations

from typing import AsyncContextManager, Optional, Protocol, TypeVar, runtime_checkable

from authority.ledger.query import Query

R = TypeVar("R")


class LedgerError(Exception):
    """Store failure: constraint violation, lost connection, corrupt row."""


@runtime_checkable
class LedgerScope(Protocol):
    """Read/append handle valid for the lifetime of one transaction."""

    async def append(self, record: R) -> R:
        """Persist ``record`` and return it with its ledger-assigned id."""
        ...

    async def query(self, record_type: type[R], query: Query) -> list[R]:
        """Return records of ``record_type`` matching ``query``."""
        ...

    async def find_most_recent(self, record_type: type[R], query: Query) -> Optional[R]:
        """Return the newest matching record, or None."""
        ...

    async def exists(self, record_type: type[R], query: Query) -> bool:
        ...

    async def count(self, record_type: type[R], query: Query) -> int:
        """Count matching records (limit / offset ignored)."""
        ...


@runtime_checkable
class Ledger(LedgerScope, Protocol):
    """A LedgerScope whose single calls auto-commit, plus lifecycle hooks."""

    def transaction(self) -> AsyncContextManager[LedgerScope]:
        """Acquire exclusive write access. Commit on success, roll back on error."""
        ...

    async def initialize(self) -> None:
        ...

    async def health_check(self) -> bool:
        """Returns True if the backend is operational. Must not raise."""
        ...

    async def close(self) -> None:
        ...


class AutoCommitMixin:
    """Implements the single-call LedgerScope methods on top of transaction().

    Each call runs in its own short transaction, so even one-off reads take
    the ledger lock and observe a consistent state.
    """

    def transaction(self) -> AsyncContextManager[LedgerScope]:  # pragma: no cover
        raise NotImplementedError

    async def append(self, record: R) -> R:
        async with self.transaction() as scope:
            return await scope.append(record)

    async def query(self, record_type: type[R], query: Query) -> list[R]:
        async with self.transaction() as scope:
            return await scope.query(record_type, query)

    async def find_most_recent(self, record_type: type[R], query: Query) -> Optional[R]:
        async with self.transaction() as scope:
            return await scope.find_most_recent(record_type, query)

    async def exists(self, record_type: type[R], query: Query) -> bool:
        async with self.transaction() as scope:
            return await scope.exists(record_type, query)

    async def count(self, record_type: type[R], query: Query) -> int:
        async with self.transaction() as scope:
            return await scope.count(record_type, query)
