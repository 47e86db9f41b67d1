"""Ledger factory — backend selection and initialization.

Backend selection (config.ledger.backend):
  - "sqlite" → LocalSQLiteLedger (default) at config.ledger.path
  - "memory" → InMemoryLedger (records vanish on exit)

LocalSQLiteLedger.initialize() raises RuntimeError if PRAGMA user_version
is not 0 (fresh) or 1 (expected). The FastAPI lifespan propagates this
RuntimeError to refuse startup.
"""

from __future__ import annotations

from authority.config import Config
from authority.ledger.protocol import Ledger
from authority.utils.logger import get_logger

logger = get_logger(__name__)


async def create_ledger(config: Config) -> Ledger:
    """Create and initialize the configured ledger backend.

    Raises:
      RuntimeError: If the SQLite ledger has an incompatible schema version.
    """
    if config.ledger.backend == "memory":
        return await _create_memory_ledger()
    return await _create_local_sqlite_ledger(config.ledger.path)


async def _create_memory_ledger() -> Ledger:
    from authority.ledger.memory_backend import InMemoryLedger

    ledger = InMemoryLedger()
    await ledger.initialize()
    logger.info("ledger_backend_selected", backend="InMemoryLedger")
    return ledger


async def _create_local_sqlite_ledger(db_path: str) -> Ledger:
    from authority.ledger.sqlite_backend import LocalSQLiteLedger

    ledger = LocalSQLiteLedger(db_path=db_path)
    await ledger.initialize()
    logger.info("ledger_backend_selected", backend="LocalSQLiteLedger", db_path=db_path)
    return ledger
