"""Structured logging for the credential authority (structlog).

main.py calls configure_logging() once at import time. Until then structlog's
defaults apply, which is what tests run under.

The HTTP middleware binds a request id around each request, so every ledger,
hashing and notifier event logged while serving it carries the same
``request_id``. Never pass raw secrets, password hashes or key hashes as log
fields.
"""

import logging
import sys
from contextvars import ContextVar, Token
from typing import Optional

import structlog
from structlog.types import EventDict, Processor

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def _add_request_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    request_id = _request_id.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Install the processor chain.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL.
        json_output: JSON lines for production; coloured console output otherwise.
    """
    processors: list[Processor] = [
        _add_request_id,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "authority") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_id(request_id: str) -> Token:
    """Attach ``request_id`` to every event logged in this context."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)
