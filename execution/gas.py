# PATH: execution/gas.py
"""
Gas pricing strategies.

STRATEGY CONTRACT:
==================
Input: FeeSnapshot (base fee, 75th-percentile priority fees of the last
blocks, pending transaction count). The priority fee sample is the mean of
the history; an empty history falls back to the configured default.

  strategy      priority fee            max fee
  aggressive    1.5 * p                 2 * base + priority
  normal        p                       1.25 * base + priority
  conservative  0.75 * p                base + priority
  adaptive      k * p                   1.5 * base + priority
                k = 2 when pending > 100, 1.5 when pending > 50, else 1

For identical conditions: aggressive.max_fee >= normal.max_fee >= conservative.max_fee.
max_fee is capped at max_gas_price; the priority fee never exceeds max_fee.

Snapshots are cached for cache_ttl_ms. A failing fee feed yields the
fallback base/priority fees instead of blocking execution.
==================
"""

from dataclasses import dataclass, replace
from typing import Optional

from chains.client import ChainClient
from core.constants import (
    BPS_DENOMINATOR,
    CONGESTION_HIGH,
    CONGESTION_MEDIUM,
    FALLBACK_BASE_FEE,
    FALLBACK_PRIORITY_FEE,
    GAS_CACHE_TTL_MS,
    MAX_GAS_PRICE,
    GasStrategy,
)
from core.context import ServiceContext
from core.exceptions import InfraError, TransportError
from core.math import add_margin, scale_bps
from core.models import FeeSnapshot, GasParameters

# (priority multiplier, base-fee multiplier) in bps
_STRATEGY_BPS = {
    GasStrategy.AGGRESSIVE: (15_000, 20_000),
    GasStrategy.NORMAL: (10_000, 12_500),
    GasStrategy.CONSERVATIVE: (7_500, 10_000),
}
_ADAPTIVE_BASE_BPS = 15_000

# Minimum bump on both fee fields when replacing a transaction at the same nonce
REPLACEMENT_BUMP_BPS = 1_250


def congestion_multiplier_bps(pending_tx_count: int) -> int:
    if pending_tx_count > CONGESTION_HIGH:
        return 20_000
    if pending_tx_count > CONGESTION_MEDIUM:
        return 15_000
    return BPS_DENOMINATOR


def sample_priority_fee(snapshot: FeeSnapshot, fallback: int = FALLBACK_PRIORITY_FEE) -> int:
    history = [fee for fee in snapshot.priority_fee_history if fee > 0]
    if not history:
        return fallback
    return sum(history) // len(history)


def compute_gas_parameters(
    strategy: GasStrategy,
    snapshot: FeeSnapshot,
    gas_limit: int = 0,
    max_gas_price: int = MAX_GAS_PRICE,
    fallback_priority_fee: int = FALLBACK_PRIORITY_FEE,
) -> GasParameters:
    """Pure pricing function for one strategy."""
    base = snapshot.base_fee
    priority = sample_priority_fee(snapshot, fallback_priority_fee)

    if strategy == GasStrategy.ADAPTIVE:
        priority_bps = congestion_multiplier_bps(snapshot.pending_tx_count)
        base_bps = _ADAPTIVE_BASE_BPS
    else:
        priority_bps, base_bps = _STRATEGY_BPS[strategy]

    max_priority_fee = scale_bps(priority, priority_bps)
    max_fee = min(scale_bps(base, base_bps) + max_priority_fee, max_gas_price)
    max_priority_fee = min(max_priority_fee, max_fee)

    return GasParameters(
        strategy=strategy,
        base_fee=base,
        max_priority_fee=max_priority_fee,
        max_fee=max_fee,
        gas_limit=gas_limit,
    )


@dataclass
class GasPricerConfig:
    strategy: GasStrategy = GasStrategy.ADAPTIVE
    max_gas_price: int = MAX_GAS_PRICE
    cache_ttl_ms: int = GAS_CACHE_TTL_MS
    fallback_base_fee: int = FALLBACK_BASE_FEE
    fallback_priority_fee: int = FALLBACK_PRIORITY_FEE


class GasPricer:
    """Computes GasParameters from a cached fee snapshot."""

    def __init__(
        self,
        client: ChainClient,
        config: Optional[GasPricerConfig] = None,
        context: Optional[ServiceContext] = None,
    ):
        self._client = client
        self.config = config or GasPricerConfig()
        self._context = context or ServiceContext.default()
        self._logger = self._context.logger("execution.gas")
        self._cached: Optional[FeeSnapshot] = None
        self._cached_at_ms = 0
        self.fallbacks_used = 0

    def fallback_snapshot(self) -> FeeSnapshot:
        return FeeSnapshot(
            base_fee=self.config.fallback_base_fee,
            priority_fee_history=(self.config.fallback_priority_fee,),
            pending_tx_count=0,
        )

    async def snapshot(self, force_refresh: bool = False) -> FeeSnapshot:
        now = self._context.now()
        if (
            not force_refresh
            and self._cached is not None
            and now - self._cached_at_ms < self.config.cache_ttl_ms
        ):
            return self._cached
        try:
            snapshot = await self._client.fee_snapshot()
        except (TransportError, InfraError) as e:
            self.fallbacks_used += 1
            self._logger.warning(
                "Fee feed unavailable, using fallback fees",
                extra={"context": {"error": str(e)}},
            )
            return self.fallback_snapshot()
        self._cached = snapshot
        self._cached_at_ms = now
        return snapshot

    async def price(
        self,
        strategy: Optional[GasStrategy] = None,
        gas_limit: int = 0,
        force_refresh: bool = False,
    ) -> GasParameters:
        snapshot = await self.snapshot(force_refresh)
        return compute_gas_parameters(
            strategy or self.config.strategy,
            snapshot,
            gas_limit=gas_limit,
            max_gas_price=self.config.max_gas_price,
            fallback_priority_fee=self.config.fallback_priority_fee,
        )

    def replacement(self, fresh: GasParameters, previous: GasParameters) -> GasParameters:
        """
        Fees for re-sending at the same nonce: at least the replacement bump
        over what was previously sent. May exceed max_gas_price; the caller
        decides whether to accept that.
        """
        return replace(
            fresh,
            max_fee=max(fresh.max_fee, add_margin(previous.max_fee, REPLACEMENT_BUMP_BPS)),
            max_priority_fee=max(
                fresh.max_priority_fee,
                add_margin(previous.max_priority_fee, REPLACEMENT_BUMP_BPS),
            ),
        )
