"""Credential ledger package.

Re-exports the public API for ergonomic imports:

    from authority.ledger import ApiKey, ApiKeyKind, Ledger, Query

Layout:
    models.py          — record dataclasses + ApiKeyKind
    query.py           — Query / Constraint composable predicate
    protocol.py        — Ledger / LedgerScope Protocols + LedgerError
    memory_backend.py  — InMemoryLedger (arena, asyncio.Lock)
    sqlite_backend.py  — LocalSQLiteLedger (aiosqlite, WAL mode, PRAGMA version guard)
    factory.py         — create_ledger() — backend selection by config
"""

from authority.ledger.models import (
    CURRENT_KINDS,
    RECORD_TYPES,
    ApiKey,
    ApiKeyKind,
    Email,
    Password,
    PasswordReset,
    Record,
    User,
    UserData,
    VerificationChallenge,
)
from authority.ledger.protocol import Ledger, LedgerError, LedgerScope
from authority.ledger.query import Constraint, Op, Query

__all__ = [
    # Records
    "ApiKey",
    "ApiKeyKind",
    "CURRENT_KINDS",
    "Email",
    "Password",
    "PasswordReset",
    "RECORD_TYPES",
    "Record",
    "User",
    "UserData",
    "VerificationChallenge",
    # Query
    "Constraint",
    "Op",
    "Query",
    # Protocol
    "Ledger",
    "LedgerError",
    "LedgerScope",
]
