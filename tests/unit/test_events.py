"""
Tests for core/events.py
"""

from dataclasses import dataclass

from core.events import EventChannel, EventRecorder


@dataclass(frozen=True)
class Ping:
    value: int


class TestEventChannel:
    def test_fan_out_in_subscription_order(self):
        channel: EventChannel[Ping] = EventChannel("pings")
        seen = []
        channel.subscribe(lambda e: seen.append(("a", e.value)))
        channel.subscribe(lambda e: seen.append(("b", e.value)))

        assert channel.publish(Ping(1)) == 2
        assert seen == [("a", 1), ("b", 1)]

    def test_failing_subscriber_is_isolated(self):
        channel: EventChannel[Ping] = EventChannel("pings")
        recorder = EventRecorder(channel)

        def broken(event):
            raise RuntimeError("subscriber bug")

        channel.subscribe(broken)
        channel.subscribe(lambda e: None)

        assert channel.publish(Ping(2)) == 2
        assert recorder.events == [Ping(2)]

    def test_unsubscribe(self):
        channel: EventChannel[Ping] = EventChannel("pings")
        recorder = EventRecorder(channel)
        assert channel.subscriber_count == 1

        recorder.close()
        channel.publish(Ping(3))

        assert recorder.events == []
        assert channel.subscriber_count == 0
        assert channel.unsubscribe(print) is False

    def test_subscribe_returns_unsubscriber(self):
        channel: EventChannel[Ping] = EventChannel("pings")
        seen = []
        cancel = channel.subscribe(seen.append)
        cancel()
        assert channel.publish(Ping(4)) == 0
        assert seen == []
