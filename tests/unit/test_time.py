"""
tests/unit/test_time.py - Tests for core/time.py and the test clock
"""

import pytest

from core.constants import DAY_WINDOW_MS
from core.context import ManualClock, ServiceContext
from core.time import day_window_start, elapsed_ms, is_expired, ms_to_iso


class TestDeadlines:
    def test_deadline_itself_is_valid(self):
        assert is_expired(1_000, current_ms=1_000) is False
        assert is_expired(1_000, current_ms=1_001) is True

    def test_elapsed_never_negative(self):
        assert elapsed_ms(2_000, current_ms=1_000) == 0
        assert elapsed_ms(1_000, current_ms=1_250) == 250


class TestDayWindow:
    def test_window_start_is_utc_midnight(self):
        midnight = 20_000 * DAY_WINDOW_MS
        assert day_window_start(midnight) == midnight
        assert day_window_start(midnight + DAY_WINDOW_MS - 1) == midnight
        assert ms_to_iso(midnight).endswith("T00:00:00+00:00")


class TestManualClock:
    @pytest.mark.asyncio
    async def test_sleep_advances_and_records(self):
        clock = ManualClock(start_ms=0)
        context = clock.context()

        await context.sleep(1.5)

        assert clock.sleeps == [1.5]
        assert context.now() == 1_500

    def test_default_context_uses_wall_clock(self):
        context = ServiceContext.default()
        assert context.now() > 1_600_000_000_000
        assert context.logger("x").name == "flasharb.x"
