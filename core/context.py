# PATH: core/context.py
"""
Service context passed explicitly to every component constructor.

Holds the collaborators that would otherwise be hidden globals: the clock,
the async sleep used for backoff and polling, and the logger factory.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from core.logging import get_logger
from core.time import now_ms


@dataclass(frozen=True)
class ServiceContext:
    clock_ms: Callable[[], int] = now_ms
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)
    logger_factory: Callable[[str], logging.Logger] = get_logger

    @classmethod
    def default(cls) -> "ServiceContext":
        return cls()

    def now(self) -> int:
        return self.clock_ms()

    def logger(self, name: str) -> logging.Logger:
        return self.logger_factory(name)


class ManualClock:
    """
    Settable millisecond clock with a recording async sleep.

    sleep() advances the clock by the requested delay instead of waiting.
    """

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.current_ms = start_ms
        self.sleeps: list[float] = []

    def __call__(self) -> int:
        return self.current_ms

    def advance(self, ms: int) -> None:
        self.current_ms += ms

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current_ms += int(seconds * 1000)
        await asyncio.sleep(0)

    def context(self) -> ServiceContext:
        return ServiceContext(clock_ms=self, sleep=self.sleep)
