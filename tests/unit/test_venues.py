# PATH: tests/unit/test_venues.py
"""
Tests for settlement/venues.py and settlement/pools.py
"""

import pytest

from core.constants import ETHER, VenueKind
from core.exceptions import RouteInvalidError
from settlement.ledger import Ledger
from settlement.pools import ConstantProductPool, StableSwapPool
from settlement.venues import (
    VENUE_PARAM_TYPES,
    SushiSwapVenue,
    check_venue_map,
    decode_venue_params,
    default_venues,
    encode_venue_params,
    resolve_venue_kind,
)

TRADER = "0x" + "0e" * 20
WETH = "0x" + "c0" * 20
USDC = "0x" + "a0" * 20
DAI = "0x" + "da" * 20
UNI_POOL = "0x" + "01" * 20
CURVE_POOL = "0x" + "cc" * 20
BAL_POOL = "0x" + "ba" * 20
ONEINCH_EXECUTOR = "0x" + "1f" * 20


@pytest.fixture
def ledger():
    ledger = Ledger()
    ledger.mint(TRADER, WETH, 10 * ETHER)
    ledger.mint(TRADER, USDC, 10 * ETHER)
    for pool in (UNI_POOL, BAL_POOL):
        ledger.mint(pool, WETH, 1_000 * ETHER)
        ledger.mint(pool, USDC, 1_000 * ETHER)
    ledger.mint(CURVE_POOL, USDC, 1_000 * ETHER)
    ledger.mint(CURVE_POOL, DAI, 1_000 * ETHER)
    return ledger


@pytest.fixture
def venues():
    venues = default_venues()
    venues[VenueKind.UNISWAP_V3].add_pool(ConstantProductPool(UNI_POOL, WETH, USDC, fee_bps=5), 500)
    venues[VenueKind.CURVE].add_pool(StableSwapPool(CURVE_POOL, (USDC, DAI), fee_bps=0))
    balancer = ConstantProductPool(BAL_POOL, WETH, USDC, fee_bps=0)
    venues[VenueKind.BALANCER].add_pool(balancer, b"\x42" * 32)
    venues[VenueKind.ONEINCH].add_executor(balancer, ONEINCH_EXECUTOR)
    return venues


def swap(venues, ledger, kind, token_in, token_out, params, amount=ETHER, min_out=0):
    staged = ledger.begin()
    result = venues[kind].swap(staged, TRADER, token_in, token_out, amount, min_out, params)
    return staged, result


class TestParamCodecs:
    def test_every_kind_has_a_layout(self):
        assert set(VENUE_PARAM_TYPES) == set(VenueKind)

    def test_curve_params(self):
        data = encode_venue_params(VenueKind.CURVE, CURVE_POOL, 0, 1)
        pool, i, j = decode_venue_params(VenueKind.CURVE, data)
        assert pool.lower() == CURVE_POOL
        assert (i, j) == (0, 1)

    def test_sushiswap_takes_empty_params(self):
        assert encode_venue_params(VenueKind.SUSHISWAP) == b""
        with pytest.raises(RouteInvalidError):
            encode_venue_params(VenueKind.SUSHISWAP, 1)
        with pytest.raises(RouteInvalidError):
            decode_venue_params(VenueKind.SUSHISWAP, b"\x00")

    def test_malformed_params(self):
        with pytest.raises(RouteInvalidError, match="Malformed uniswap_v3 params"):
            decode_venue_params(VenueKind.UNISWAP_V3, b"\x00" * 10)

    def test_unencodable_params(self):
        with pytest.raises(RouteInvalidError):
            encode_venue_params(VenueKind.UNISWAP_V3, 2**24, 0)

    def test_resolve_kind(self):
        assert resolve_venue_kind(4) is VenueKind.BALANCER
        with pytest.raises(RouteInvalidError):
            resolve_venue_kind(99)
        with pytest.raises(RouteInvalidError):
            resolve_venue_kind("curve")


class TestDispatch:
    def test_uniswap_resolves_by_fee_tier(self, venues, ledger):
        params = encode_venue_params(VenueKind.UNISWAP_V3, 500, 0)
        _, result = swap(venues, ledger, VenueKind.UNISWAP_V3, WETH, USDC, params)
        assert result.ok
        assert 0 < result.amount_out < ETHER

        other_tier = encode_venue_params(VenueKind.UNISWAP_V3, 3000, 0)
        _, missing = swap(venues, ledger, VenueKind.UNISWAP_V3, WETH, USDC, other_tier)
        assert missing.reason == "no uniswap_v3 pool for pair"

    def test_curve_index_mismatch(self, venues, ledger):
        params = encode_venue_params(VenueKind.CURVE, CURVE_POOL, 1, 0)
        staged, result = swap(venues, ledger, VenueKind.CURVE, USDC, DAI, params)
        assert result.reason == "curve coin index mismatch"
        assert not staged.dirty

    def test_curve_swap_is_one_to_one_without_fee(self, venues, ledger):
        params = encode_venue_params(VenueKind.CURVE, CURVE_POOL, 0, 1)
        staged, result = swap(venues, ledger, VenueKind.CURVE, USDC, DAI, params)
        assert result.amount_out == ETHER
        assert staged.balance_of(TRADER, DAI) == ETHER

    def test_balancer_and_oneinch(self, venues, ledger):
        bal = encode_venue_params(VenueKind.BALANCER, b"\x42" * 32, b"")
        _, result = swap(venues, ledger, VenueKind.BALANCER, WETH, USDC, bal)
        assert result.ok

        inch = encode_venue_params(VenueKind.ONEINCH, ONEINCH_EXECUTOR, b"\x01")
        _, result = swap(venues, ledger, VenueKind.ONEINCH, WETH, USDC, inch)
        assert result.ok

    def test_malformed_params_fail_the_hop(self, venues, ledger):
        _, result = swap(venues, ledger, VenueKind.CURVE, USDC, DAI, b"\x01")
        assert result.ok is False
        assert "Malformed curve params" in result.reason

    def test_check_venue_map(self):
        venues = default_venues()
        check_venue_map(venues)
        venues[VenueKind.CURVE] = SushiSwapVenue()
        with pytest.raises(ValueError):
            check_venue_map(venues)


class TestPools:
    def test_constant_product_quote(self, ledger):
        pool = ConstantProductPool(UNI_POOL, WETH, USDC, fee_bps=0)
        # 1000/1000 reserves, 10 in -> floor(10*1000/1010)
        assert pool.quote(ledger, WETH, USDC, 10 * ETHER) == 10 * ETHER * 1_000 // 1_010

    def test_min_out_checked_before_transfer(self, ledger):
        pool = ConstantProductPool(UNI_POOL, WETH, USDC, fee_bps=0)
        staged = ledger.begin()
        result = pool.swap(staged, TRADER, WETH, USDC, ETHER, 2 * ETHER)
        assert result.reason == "insufficient output amount"
        assert not staged.dirty

    def test_stable_pool_bounded_by_reserve(self, ledger):
        pool = StableSwapPool(CURVE_POOL, (USDC, DAI), fee_bps=0)
        assert pool.quote(ledger, USDC, DAI, 1_001 * ETHER) == 0

    def test_trader_short_of_input(self, ledger):
        pool = ConstantProductPool(UNI_POOL, WETH, USDC, fee_bps=0)
        staged = ledger.begin()
        result = pool.swap(staged, TRADER, WETH, USDC, 11 * ETHER, 0)
        assert result.reason == "insufficient input balance"

    def test_unsupported_pair(self, ledger):
        pool = ConstantProductPool(UNI_POOL, WETH, USDC)
        result = pool.swap(ledger.begin(), TRADER, WETH, DAI, ETHER, 0)
        assert result.reason == "token pair not supported by pool"

    def test_fee_bounds(self):
        with pytest.raises(ValueError):
            ConstantProductPool(UNI_POOL, WETH, USDC, fee_bps=10_000)
        with pytest.raises(ValueError):
            StableSwapPool(CURVE_POOL, (USDC,))
