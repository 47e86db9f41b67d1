"""Wall-clock helpers.

Ledger timestamps are integer milliseconds since the Unix epoch. The
authority takes a ``Clock`` callable so tests can pin "now" to exact
boundary instants.
"""

from __future__ import annotations

import time
from typing import Callable

Clock = Callable[[], int]


def current_time_millis() -> int:
    """Return the current time as integer milliseconds since the epoch."""
    return time.time_ns() // 1_000_000
