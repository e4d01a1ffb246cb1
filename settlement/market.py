# PATH: settlement/market.py
"""
Local market assembly for paper mode and tests.

build_market(config) wires a Ledger, FlashLender, one Venue per VenueKind,
the listed pools with their reserves, and a SettlementProgram, from a dict
shaped like config/paper_market.yaml:

    tokens:   {SYMBOL: {address, decimals}}
    lender:   {address, fee_bps, liquidity: {SYMBOL: amount}}
    program:  {address, owner, executors, loan_caps, daily_loss_ceiling,
               max_slippage_bps, min_profit_bps, fee_ceiling_gwei}
    pools:    [{name, venue, type, address, tokens, fee_bps, reserves,
                fee_tier | pool_id | executor}]

Human amounts are parsed with the token's decimals.

Market.opportunity() prices a path of (pool name, token out) legs against
current reserves and returns an ArbitrageOpportunity with encoded venue
params, per-hop minimum outputs and the expected profit net of the flash
fee.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from eth_utils import keccak

from core.constants import (
    DEFAULT_FLASH_LOAN_FEE_BPS,
    DEFAULT_MAX_SLIPPAGE_BPS,
    DEFAULT_MIN_PROFIT_BPS,
    GWEI,
    MAX_GAS_PRICE,
    OPPORTUNITY_DEADLINE_MS,
    VenueKind,
)
from core.context import ServiceContext
from core.exceptions import RouteInvalidError, ValidationError
from core.math import apply_haircut, parse_units
from core.models import ArbitrageOpportunity, Hop, normalize_address
from risk.breaker import DailyLossBreaker
from settlement.ledger import Ledger
from settlement.lender import FlashLender
from settlement.pools import ConstantProductPool, Pool, StableSwapPool
from settlement.program import SettlementProgram
from settlement.venues import Venue, default_venues, encode_venue_params


@dataclass
class ListedPool:
    name: str
    venue: VenueKind
    pool: Pool
    fee_tier: int = 0
    pool_id: bytes = b""
    executor: Optional[str] = None

    def params_for(self, token_in: str, token_out: str) -> bytes:
        if self.venue == VenueKind.UNISWAP_V3:
            return encode_venue_params(self.venue, self.fee_tier, 0)
        if self.venue == VenueKind.CURVE:
            pool: StableSwapPool = self.pool  # type: ignore[assignment]
            return encode_venue_params(
                self.venue, pool.address, pool.index_of(token_in), pool.index_of(token_out)
            )
        if self.venue == VenueKind.BALANCER:
            return encode_venue_params(self.venue, self.pool_id, b"")
        if self.venue == VenueKind.ONEINCH:
            return encode_venue_params(self.venue, self.executor or self.pool.address, b"")
        return encode_venue_params(self.venue)


class Market:
    """A SettlementProgram plus the pools and tokens around it."""

    def __init__(
        self,
        ledger: Ledger,
        lender: FlashLender,
        venues: Dict[VenueKind, Venue],
        program: SettlementProgram,
        tokens: Dict[str, str],
        decimals: Dict[str, int],
    ):
        self.ledger = ledger
        self.lender = lender
        self.venues = venues
        self.program = program
        self.tokens = tokens
        self.decimals = decimals
        self.pools: Dict[str, ListedPool] = {}

    def token(self, ref: str) -> str:
        """Resolve a symbol (or pass through an address)."""
        if ref in self.tokens:
            return self.tokens[ref]
        if ref.startswith("0x"):
            return normalize_address(ref)
        raise ValidationError(f"Unknown token: {ref}", {"token": ref})

    def decimals_of(self, ref: str) -> int:
        return self.decimals.get(self._symbol(ref), 18)

    def amount(self, ref: str, value: Any) -> int:
        return parse_units(str(value), self.decimals_of(ref))

    def _symbol(self, ref: str) -> str:
        if ref in self.tokens:
            return ref
        address = normalize_address(ref)
        for symbol, candidate in self.tokens.items():
            if candidate == address:
                return symbol
        return ref

    def list_pool(self, listed: ListedPool) -> None:
        if listed.name in self.pools:
            raise ValidationError(f"Duplicate pool name: {listed.name}", {"pool": listed.name})
        venue = self.venues[listed.venue]
        if listed.venue == VenueKind.UNISWAP_V3:
            venue.add_pool(listed.pool, listed.fee_tier)
        elif listed.venue == VenueKind.BALANCER:
            venue.add_pool(listed.pool, listed.pool_id)
        elif listed.venue == VenueKind.ONEINCH:
            venue.add_executor(listed.pool, listed.executor)
        else:
            venue.add_pool(listed.pool)
        self.pools[listed.name] = listed

    def quote_path(
        self,
        asset: str,
        amount: int,
        path: Sequence[Tuple[str, str]],
        slippage_bps: int = 0,
    ) -> Tuple[List[Hop], int]:
        """
        Price (pool name, token out) legs against current reserves.

        Returns the hops (minimum outputs reduced by slippage_bps) and the
        quoted output of the last leg.
        """
        hops: List[Hop] = []
        token_in = self.token(asset)
        amount_in = amount
        for pool_name, out_ref in path:
            listed = self.pools.get(pool_name)
            if listed is None:
                raise RouteInvalidError(f"Unknown pool: {pool_name}", {"pool": pool_name})
            token_out = self.token(out_ref)
            quoted = listed.pool.quote(self.ledger, token_in, token_out, amount_in)
            hops.append(Hop(
                venue=listed.venue,
                token_in=token_in,
                token_out=token_out,
                amount_in=amount_in,
                min_amount_out=apply_haircut(quoted, slippage_bps),
                params=listed.params_for(token_in, token_out),
            ))
            token_in, amount_in = token_out, quoted
        return hops, amount_in

    def opportunity(
        self,
        opportunity_id: str,
        asset: str,
        amount: int,
        path: Sequence[Tuple[str, str]],
        now_ms: int,
        deadline_ms: int = OPPORTUNITY_DEADLINE_MS,
        slippage_bps: int = 0,
        min_profit: Optional[int] = None,
        gas_estimate: int = 0,
    ) -> ArbitrageOpportunity:
        asset_address = self.token(asset)
        hops, final = self.quote_path(asset_address, amount, path, slippage_bps=slippage_bps)
        return ArbitrageOpportunity(
            opportunity_id=opportunity_id,
            asset=asset_address,
            amount=amount,
            hops=tuple(hops),
            expected_profit=final - amount - self.lender.flash_fee(amount),
            gas_estimate=gas_estimate,
            deadline_ms=now_ms + deadline_ms,
            min_profit=min_profit,
            slippage_bps=slippage_bps,
        )


def _pool_id(listed: Mapping[str, Any], name: str) -> bytes:
    raw = listed.get("pool_id")
    if raw:
        value = bytes.fromhex(str(raw).removeprefix("0x"))
        if len(value) != 32:
            raise ValidationError("pool_id must be 32 bytes", {"pool": name})
        return value
    return keccak(text=name)


def build_market(config: Mapping[str, Any], context: Optional[ServiceContext] = None) -> Market:
    context = context or ServiceContext.default()

    tokens: Dict[str, str] = {}
    decimals: Dict[str, int] = {}
    for symbol, token in (config.get("tokens") or {}).items():
        tokens[symbol] = normalize_address(token["address"])
        decimals[symbol] = int(token.get("decimals", 18))

    ledger = Ledger()
    lender_cfg = config.get("lender") or {}
    lender = FlashLender(
        lender_cfg["address"],
        fee_bps=int(lender_cfg.get("fee_bps", DEFAULT_FLASH_LOAN_FEE_BPS)),
    )

    program_cfg = config.get("program") or {}
    owner = program_cfg["owner"]
    venues = default_venues()
    breaker = DailyLossBreaker(0, clock_ms=context.clock_ms)
    fee_ceiling = program_cfg.get("fee_ceiling_gwei")
    program = SettlementProgram(
        address=program_cfg["address"],
        owner=owner,
        ledger=ledger,
        lender=lender,
        venues=venues,
        breaker=breaker,
        max_slippage_bps=int(program_cfg.get("max_slippage_bps", DEFAULT_MAX_SLIPPAGE_BPS)),
        min_profit_bps=int(program_cfg.get("min_profit_bps", DEFAULT_MIN_PROFIT_BPS)),
        fee_ceiling=MAX_GAS_PRICE if fee_ceiling is None else int(fee_ceiling) * GWEI,
        context=context,
    )
    market = Market(ledger, lender, venues, program, tokens, decimals)

    for symbol, value in (lender_cfg.get("liquidity") or {}).items():
        ledger.mint(lender.address, market.token(symbol), market.amount(symbol, value))

    for executor in program_cfg.get("executors") or []:
        program.set_executor(owner, executor, True)
    for symbol, cap in (program_cfg.get("loan_caps") or {}).items():
        program.set_loan_cap(owner, market.token(symbol), market.amount(symbol, cap))
    ceiling_cfg = program_cfg.get("daily_loss_ceiling")
    if ceiling_cfg:
        symbol, value = ceiling_cfg["asset"], ceiling_cfg["amount"]
        program.set_daily_loss_ceiling(owner, market.amount(symbol, value))

    for entry in config.get("pools") or []:
        name = entry["name"]
        try:
            kind = VenueKind[str(entry["venue"]).upper()]
        except KeyError:
            raise ValidationError(f"Unknown venue: {entry['venue']}", {"pool": name})
        pool_tokens = [market.token(t) for t in entry["tokens"]]
        fee_bps = int(entry.get("fee_bps", 30))
        if entry.get("type", "constant_product") == "stable":
            pool: Pool = StableSwapPool(
                entry["address"],
                pool_tokens,
                fee_bps=fee_bps,
                decimals=[market.decimals_of(t) for t in pool_tokens],
            )
        else:
            if len(pool_tokens) != 2:
                raise ValidationError("constant_product pools take two tokens", {"pool": name})
            pool = ConstantProductPool(entry["address"], pool_tokens[0], pool_tokens[1], fee_bps=fee_bps)
        market.list_pool(ListedPool(
            name=name,
            venue=kind,
            pool=pool,
            fee_tier=int(entry.get("fee_tier", 0)),
            pool_id=_pool_id(entry, name) if kind == VenueKind.BALANCER else b"",
            executor=entry.get("executor"),
        ))
        for symbol, value in (entry.get("reserves") or {}).items():
            ledger.mint(pool.address, market.token(symbol), market.amount(symbol, value))

    return market
