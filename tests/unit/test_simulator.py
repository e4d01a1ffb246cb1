# PATH: tests/unit/test_simulator.py
"""
Tests for execution/simulator.py
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from core.constants import GWEI, GasStrategy
from core.exceptions import SimulationRevertError
from core.models import GasParameters
from execution.encoding import EncodedCall
from execution.simulator import SimulatorConfig, TransactionSimulator

SENDER = "0x" + "0e" * 20
CALL = EncodedCall(to="0x" + "f1" * 20, data=b"\x01\x02", route=b"", min_profit=0, hop_count=2)


@pytest.fixture
def client():
    client = MagicMock()
    client.simulate = AsyncMock(return_value=350_000)
    return client


class TestSimulate:
    @pytest.mark.asyncio
    async def test_gas_limit_has_margin(self, client):
        simulator = TransactionSimulator(client, SimulatorConfig(safety_margin_bps=2_000))
        result = await simulator.simulate(CALL, SENDER)

        assert result.gas_estimate == 350_000
        assert result.gas_limit == 420_000
        assert result.metadata == {"hops": 2}

    @pytest.mark.asyncio
    async def test_request_carries_exact_call_and_fees(self, client):
        gas = GasParameters(GasStrategy.NORMAL, 20 * GWEI, 2 * GWEI, 27 * GWEI)
        await TransactionSimulator(client).simulate(CALL, SENDER, gas)

        request = client.simulate.await_args.args[0]
        assert request.sender == SENDER
        assert request.to == CALL.to
        assert request.data == CALL.data
        assert request.max_fee_per_gas == 27 * GWEI
        assert request.to_rpc()["maxPriorityFeePerGas"] == hex(2 * GWEI)

    @pytest.mark.asyncio
    async def test_margin_capped_at_maximum(self, client):
        simulator = TransactionSimulator(client, SimulatorConfig(max_gas_limit=400_000))
        assert (await simulator.simulate(CALL, SENDER)).gas_limit == 400_000

    @pytest.mark.asyncio
    async def test_estimate_above_maximum_is_a_revert(self, client):
        client.simulate = AsyncMock(return_value=5_000_000)
        with pytest.raises(SimulationRevertError, match="above configured maximum"):
            await TransactionSimulator(client).simulate(CALL, SENDER)

    @pytest.mark.asyncio
    async def test_revert_reason_verbatim(self, client):
        client.simulate = AsyncMock(side_effect=SimulationRevertError("insufficient profit"))
        with pytest.raises(SimulationRevertError) as exc:
            await TransactionSimulator(client).simulate(CALL, SENDER)
        assert exc.value.reason == "insufficient profit"
