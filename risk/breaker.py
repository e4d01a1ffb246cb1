# PATH: risk/breaker.py
"""
Daily-loss circuit breaker.

BREAKER CONTRACT:
=================
- Losses accumulate per UTC day window (day_window_start of the clock).
- The breaker trips when cumulative loss for the window EXCEEDS the ceiling.
- record_loss() returns True exactly once: on the transition into tripped.
  Further losses while tripped are still accounted but never re-trip.
- A tripped breaker blocks until reset() or until the window rolls over,
  which clears both the trip flag and the cumulative loss.

One instance is shared between the settlement program (on-chain accounting)
and the risk gate (off-chain accounting) when both run in-process.
=================
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from core.logging import get_logger
from core.time import day_window_start, ms_to_iso, now_ms

logger = get_logger(__name__)


@dataclass
class BreakerTrip:
    """Record of one trip transition."""
    timestamp_ms: int
    reason: str
    cumulative_loss: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": ms_to_iso(self.timestamp_ms),
            "reason": self.reason,
            "cumulative_loss": str(self.cumulative_loss),
        }


class DailyLossBreaker:
    """
    Cumulative loss tracker with a trip flag per day window.
    """

    def __init__(self, ceiling: int, clock_ms: Callable[[], int] = now_ms):
        if ceiling < 0:
            raise ValueError(f"Loss ceiling must be non-negative, got {ceiling}")
        self._ceiling = ceiling
        self._clock_ms = clock_ms
        self._window_start = day_window_start(clock_ms())
        self._cumulative_loss = 0
        self._tripped = False
        self._trips: List[BreakerTrip] = []

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @ceiling.setter
    def ceiling(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"Loss ceiling must be non-negative, got {value}")
        self._ceiling = value

    @property
    def trips(self) -> List[BreakerTrip]:
        return list(self._trips)

    def _now(self, timestamp_ms: Optional[int]) -> int:
        return self._clock_ms() if timestamp_ms is None else timestamp_ms

    def _roll(self, timestamp_ms: int) -> None:
        window = day_window_start(timestamp_ms)
        if window > self._window_start:
            if self._tripped or self._cumulative_loss:
                logger.info(
                    "Loss window rolled over",
                    extra={"context": {
                        "previous_window": ms_to_iso(self._window_start),
                        "previous_loss": self._cumulative_loss,
                        "was_tripped": self._tripped,
                    }},
                )
            self._window_start = window
            self._cumulative_loss = 0
            self._tripped = False

    def cumulative_loss(self, timestamp_ms: Optional[int] = None) -> int:
        self._roll(self._now(timestamp_ms))
        return self._cumulative_loss

    def remaining_budget(self, timestamp_ms: Optional[int] = None) -> int:
        """Loss that can still be absorbed this window without tripping."""
        self._roll(self._now(timestamp_ms))
        return max(0, self._ceiling - self._cumulative_loss)

    def is_tripped(self, timestamp_ms: Optional[int] = None) -> bool:
        self._roll(self._now(timestamp_ms))
        return self._tripped

    def _trip(self, timestamp_ms: int, reason: str) -> None:
        self._tripped = True
        self._trips.append(BreakerTrip(timestamp_ms, reason, self._cumulative_loss))
        logger.warning(
            "Circuit breaker tripped",
            extra={"context": {
                "reason": reason,
                "cumulative_loss": self._cumulative_loss,
                "ceiling": self._ceiling,
            }},
        )

    def record_loss(self, amount: int, timestamp_ms: Optional[int] = None) -> bool:
        """
        Account a realized loss. Returns True only on the trip transition.
        """
        if amount < 0:
            raise ValueError(f"Loss must be non-negative, got {amount}")
        now = self._now(timestamp_ms)
        self._roll(now)
        self._cumulative_loss += amount
        if not self._tripped and self._cumulative_loss > self._ceiling:
            self._trip(now, "DAILY_LOSS_CEILING")
            return True
        return False

    def trip(self, reason: str = "MANUAL", timestamp_ms: Optional[int] = None) -> bool:
        """Trip explicitly. Returns False when already tripped."""
        now = self._now(timestamp_ms)
        self._roll(now)
        if self._tripped:
            return False
        self._trip(now, reason)
        return True

    def reset(self) -> None:
        """Clear trip flag and cumulative loss for the current window."""
        self._tripped = False
        self._cumulative_loss = 0

    def get_status(self, timestamp_ms: Optional[int] = None) -> Dict[str, Any]:
        now = self._now(timestamp_ms)
        self._roll(now)
        return {
            "tripped": self._tripped,
            "can_execute": not self._tripped,
            "cumulative_loss": str(self._cumulative_loss),
            "ceiling": str(self._ceiling),
            "window_start": ms_to_iso(self._window_start),
            "triggers": [t.to_dict() for t in self._trips[-5:]],
        }
