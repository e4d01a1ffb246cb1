# PATH: tests/unit/test_confirmation.py
"""
Tests for execution/confirmation.py

- receipts are parsed into settlement reports from the program's logs only
- waiting polls on the injected clock and times out deterministically
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from core.constants import ETHER
from core.exceptions import ConfirmationTimeoutError, TransportError
from core.models import Receipt
from execution.confirmation import ConfirmationWaiter, parse_settlement
from settlement.codec import encode_event_log
from settlement.events import BreakerTripped, ExecutionFailed, ExecutionSucceeded

PROGRAM = "0x" + "f1" * 20
OTHER = "0x" + "99" * 20
WETH = "0x" + "c0" * 20


def receipt(status=1, logs=(), block=10):
    return Receipt("0xabc", block, status, 350_000, 22 * 10**9, tuple(logs))


class TestParseSettlement:
    def test_success(self):
        log = encode_event_log(ExecutionSucceeded(WETH, 10 * ETHER, 48 * ETHER // 100, (3, 2)), PROGRAM)
        report = parse_settlement(receipt(logs=[log]), PROGRAM)
        assert report.success is True
        assert report.profit == 48 * ETHER // 100

    def test_logs_from_other_emitters_ignored(self):
        log = encode_event_log(ExecutionSucceeded(WETH, 1, 1, (2,)), OTHER)
        report = parse_settlement(receipt(logs=[log]), PROGRAM)
        assert report.success is False
        assert report.reason == "no settlement event in receipt"

    def test_failure_reason_from_log(self):
        logs = [
            encode_event_log(ExecutionFailed(WETH, 10 * ETHER, "pool halted"), PROGRAM),
            encode_event_log(BreakerTripped(2 * ETHER), PROGRAM),
        ]
        report = parse_settlement(receipt(status=0, logs=logs), PROGRAM)
        assert report.success is False
        assert report.reason == "pool halted"
        assert report.breaker_tripped is True

    def test_bare_revert(self):
        report = parse_settlement(receipt(status=0), PROGRAM)
        assert report.reason == "execution reverted"


@pytest.fixture
def client():
    client = MagicMock()
    client.get_receipt = AsyncMock(return_value=None)
    client.block_number = AsyncMock(return_value=10)
    return client


class TestWaiter:
    @pytest.mark.asyncio
    async def test_returns_mined_receipt(self, client, clock, context):
        client.get_receipt = AsyncMock(side_effect=[None, receipt()])
        waiter = ConfirmationWaiter(client, context, timeout_s=10, poll_interval_s=2)

        result = await waiter.wait("0xabc")

        assert result.tx_hash == "0xabc"
        assert clock.sleeps == [2]

    @pytest.mark.asyncio
    async def test_waits_for_confirmations(self, client, clock, context):
        client.get_receipt = AsyncMock(return_value=receipt(block=10))
        client.block_number = AsyncMock(side_effect=[10, 11])
        waiter = ConfirmationWaiter(client, context, confirmations=2, timeout_s=10, poll_interval_s=1)

        await waiter.wait("0xabc")

        assert client.block_number.await_count == 2
        assert clock.sleeps == [1]

    @pytest.mark.asyncio
    async def test_transport_errors_keep_polling(self, client, context):
        client.get_receipt = AsyncMock(side_effect=[TransportError("reset"), receipt()])
        waiter = ConfirmationWaiter(client, context, timeout_s=10, poll_interval_s=1)
        assert (await waiter.wait("0xabc")).block_number == 10

    @pytest.mark.asyncio
    async def test_timeout(self, client, clock, context):
        waiter = ConfirmationWaiter(client, context, timeout_s=5, poll_interval_s=2)

        with pytest.raises(ConfirmationTimeoutError) as exc:
            await waiter.wait("0xabc")

        assert exc.value.tx_hash == "0xabc"
        assert clock.sleeps == [2, 2, 2]

    @pytest.mark.asyncio
    async def test_probe_swallows_transport_errors_only(self, client, context):
        waiter = ConfirmationWaiter(client, context)
        client.get_receipt = AsyncMock(side_effect=TransportError("reset"))
        assert await waiter.probe("0xabc") is None

        client.get_receipt = AsyncMock(side_effect=RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            await waiter.probe("0xabc")

    def test_confirmations_floor(self, client):
        with pytest.raises(ValueError):
            ConfirmationWaiter(client, confirmations=0)
