# PATH: tests/conftest.py
"""
Pytest configuration and fixtures for FLASHARB tests.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.constants import ETHER, VenueKind  # noqa: E402
from core.context import ManualClock  # noqa: E402
from core.models import ArbitrageOpportunity, Hop  # noqa: E402
from risk.breaker import DailyLossBreaker  # noqa: E402
from settlement.codec import encode_route_lists  # noqa: E402
from settlement.ledger import Ledger  # noqa: E402
from settlement.lender import FlashLender  # noqa: E402
from settlement.pools import ConstantProductPool, StableSwapPool  # noqa: E402
from settlement.program import CallContext, SettlementProgram  # noqa: E402
from settlement.venues import default_venues, encode_venue_params  # noqa: E402


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


class TwoHopMarket:
    """
    WETH -> USDC on a fee-free stable pool, then USDC -> WETH on a fee-free
    constant-product pool holding 990*depth USDC against weth_reserve*depth WETH.

    With depth=1, borrowing 10 WETH comes back as exactly weth_reserve/100 WETH
    (1050 -> 10.5, 1005 -> 10.05).
    """

    OWNER = "0x" + "0a" * 20
    EXECUTOR = "0x" + "0e" * 20
    PROGRAM = "0x" + "f1" * 20
    LENDER = "0x" + "1e" * 20
    WETH = "0x" + "c0" * 20
    USDC = "0x" + "a0" * 20
    CURVE_POOL = "0x" + "cc" * 20
    SUSHI_POOL = "0x" + "55" * 20

    def __init__(
        self,
        context,
        weth_reserve: int = 1050,
        depth: int = 1,
        lender_fee_bps: int = 20,
        min_profit_bps: int = 0,
        max_slippage_bps: int = 50,
        loss_ceiling: int = ETHER,
    ):
        self.context = context
        self.ledger = Ledger()
        self.lender = FlashLender(self.LENDER, fee_bps=lender_fee_bps)
        self.breaker = DailyLossBreaker(loss_ceiling, clock_ms=context.clock_ms)
        self.venues = default_venues()

        self.curve = StableSwapPool(self.CURVE_POOL, (self.WETH, self.USDC), fee_bps=0)
        self.sushi = ConstantProductPool(self.SUSHI_POOL, self.USDC, self.WETH, fee_bps=0)
        self.venues[VenueKind.CURVE].add_pool(self.curve)
        self.venues[VenueKind.SUSHISWAP].add_pool(self.sushi)

        self.ledger.mint(self.LENDER, self.WETH, 1_000 * ETHER)
        self.ledger.mint(self.CURVE_POOL, self.WETH, 1_000 * ETHER)
        self.ledger.mint(self.CURVE_POOL, self.USDC, 1_000 * ETHER)
        self.ledger.mint(self.SUSHI_POOL, self.USDC, 990 * depth * ETHER)
        self.ledger.mint(self.SUSHI_POOL, self.WETH, weth_reserve * depth * ETHER)

        self.program = SettlementProgram(
            address=self.PROGRAM,
            owner=self.OWNER,
            ledger=self.ledger,
            lender=self.lender,
            venues=self.venues,
            breaker=self.breaker,
            max_slippage_bps=max_slippage_bps,
            min_profit_bps=min_profit_bps,
            context=context,
        )
        self.program.set_executor(self.OWNER, self.EXECUTOR, True)
        self.program.set_loan_cap(self.OWNER, self.WETH, 100 * ETHER)

    @property
    def curve_params(self) -> bytes:
        return encode_venue_params(VenueKind.CURVE, self.CURVE_POOL, 0, 1)

    def route(self, min_profit: int = 0, min_outs=(0, 0)) -> bytes:
        return encode_route_lists(
            [int(VenueKind.CURVE), int(VenueKind.SUSHISWAP)],
            [self.WETH, self.USDC],
            [self.USDC, self.WETH],
            list(min_outs),
            [self.curve_params, b""],
            min_profit,
        )

    def call(self, sender: str = None, gas_price: int = 10 * 10**9) -> CallContext:
        return CallContext(
            sender=sender or self.EXECUTOR,
            gas_price=gas_price,
            timestamp_ms=self.context.now(),
        )

    def opportunity(
        self,
        opportunity_id: str = "opp-1",
        amount: int = 10 * ETHER,
        min_profit: int = 3 * ETHER // 10,
        deadline_ms: int = 30_000,
        expected_profit: int = 48 * ETHER // 100,
        hops=None,
    ) -> ArbitrageOpportunity:
        if hops is None:
            hops = (
                Hop(VenueKind.CURVE, self.WETH, self.USDC, amount, 0, self.curve_params),
                Hop(VenueKind.SUSHISWAP, self.USDC, self.WETH, amount, 0, b""),
            )
        return ArbitrageOpportunity(
            opportunity_id=opportunity_id,
            asset=self.WETH,
            amount=amount,
            hops=tuple(hops),
            expected_profit=expected_profit,
            gas_estimate=0,
            deadline_ms=self.context.now() + deadline_ms,
            min_profit=min_profit,
        )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def context(clock):
    return clock.context()


@pytest.fixture
def make_market(context):
    """Factory for TwoHopMarket bound to the test clock."""
    def _make(**kwargs) -> TwoHopMarket:
        return TwoHopMarket(context, **kwargs)
    return _make


@pytest.fixture
def market(make_market):
    return make_market()
