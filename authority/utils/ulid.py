"""ULID generation for request correlation.

Every HTTP request gets a 26-character ULID, bound into the structlog
context and echoed in the X-Request-ID response header, so all ledger and
notifier events of one request share a sortable correlation key.

Uses the `python-ulid` library; do NOT hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Return a new ULID as a 26-character Crockford Base32 string."""
    return str(ULID())
