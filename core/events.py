# PATH: core/events.py
"""
Typed event channels.

Each component owns one EventChannel per payload type and publishes dataclass
instances on it. Subscribers are plain callables; there are no string event
names.

A failing subscriber is logged and does not stop delivery to the others, nor
does it propagate into the publisher's control flow.
"""

from typing import Callable, Generic, List, TypeVar

from core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None]


class EventChannel(Generic[T]):
    """Synchronous fan-out of typed payloads to subscribers."""

    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Register callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Callable[[T], None]) -> bool:
        try:
            self._subscribers.remove(callback)
        except ValueError:
            return False
        return True

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: T) -> int:
        """Deliver event to every subscriber. Returns number of successful deliveries."""
        delivered = 0
        for callback in list(self._subscribers):
            try:
                callback(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Event subscriber failed",
                    extra={"context": {"channel": self.name, "event": type(event).__name__}},
                )
        return delivered


class EventRecorder(Generic[T]):
    """Subscriber that keeps every payload it sees (paper mode, tests)."""

    def __init__(self, channel: EventChannel[T]):
        self.events: List[T] = []
        self._unsubscribe = channel.subscribe(self.events.append)

    def close(self) -> None:
        self._unsubscribe()
