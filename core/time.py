# PATH: core/time.py
"""
Time utilities for FLASHARB.

All timestamps are Unix epoch milliseconds (int). Deadlines and day windows
are computed from the same clock so tests can inject a fake one.
"""

import time
from datetime import datetime, timezone

from core.constants import DAY_WINDOW_MS


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso(timestamp_ms: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def is_expired(deadline_ms: int, current_ms: int | None = None) -> bool:
    """
    Check whether a deadline has elapsed.

    The deadline itself is still valid; anything after it is expired.
    """
    current = now_ms() if current_ms is None else current_ms
    return current > deadline_ms


def day_window_start(timestamp_ms: int) -> int:
    """
    Start of the UTC day window containing timestamp_ms.

    Loss ceilings are accounted per window; a new window resets them.
    """
    return timestamp_ms - (timestamp_ms % DAY_WINDOW_MS)


def elapsed_ms(start_ms: int, current_ms: int | None = None) -> int:
    """Milliseconds since start_ms (never negative)."""
    current = now_ms() if current_ms is None else current_ms
    return max(0, current - start_ms)
