# PATH: settlement/venues.py
"""
Venue variants: one implementation per VenueKind.

VENUE CONTRACT:
===============
The venue set is closed (core.constants.VenueKind). Each venue owns:
  - an ABI param codec (VENUE_PARAM_TYPES), validated off-chain at encode time
  - pool resolution from decoded params
  - swap(), which returns a SwapResult and never raises for control flow

Param layouts:
  UNISWAP_V3  (uint24 fee, uint160 sqrtPriceLimitX96)
  SUSHISWAP   ()  empty bytes
  CURVE       (address pool, int128 i, int128 j)
  BALANCER    (bytes32 poolId, bytes userData)
  ONEINCH     (address executor, bytes executorData)
===============
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError

from core.constants import VenueKind
from core.exceptions import RouteInvalidError
from core.models import normalize_address
from settlement.ledger import StagedLedger
from settlement.pools import ConstantProductPool, Pool, StableSwapPool, SwapResult

VENUE_PARAM_TYPES: Dict[VenueKind, Tuple[str, ...]] = {
    VenueKind.UNISWAP_V3: ("uint24", "uint160"),
    VenueKind.SUSHISWAP: (),
    VenueKind.CURVE: ("address", "int128", "int128"),
    VenueKind.BALANCER: ("bytes32", "bytes"),
    VenueKind.ONEINCH: ("address", "bytes"),
}


def resolve_venue_kind(value: Any) -> VenueKind:
    """Map a wire uint8 (or enum) onto the closed venue set."""
    try:
        return VenueKind(int(value))
    except (TypeError, ValueError):
        raise RouteInvalidError(f"Unknown venue id: {value}", {"venue": value})


def encode_venue_params(kind: VenueKind, *values: Any) -> bytes:
    types = VENUE_PARAM_TYPES[kind]
    if not types:
        if values:
            raise RouteInvalidError(f"{kind.label} takes no params", {"venue": kind.label})
        return b""
    try:
        return encode(list(types), list(values))
    except (EncodingError, TypeError, ValueError) as e:
        raise RouteInvalidError(
            f"Cannot encode {kind.label} params: {e}", {"venue": kind.label}
        )


def decode_venue_params(kind: VenueKind, data: bytes) -> Tuple[Any, ...]:
    types = VENUE_PARAM_TYPES[kind]
    if not types:
        if data:
            raise RouteInvalidError(f"{kind.label} takes no params", {"venue": kind.label})
        return ()
    try:
        return tuple(decode(list(types), data))
    except (DecodingError, TypeError, ValueError) as e:
        raise RouteInvalidError(
            f"Malformed {kind.label} params: {e}", {"venue": kind.label}
        )


def _pair(token_a: str, token_b: str) -> FrozenSet[str]:
    return frozenset((normalize_address(token_a), normalize_address(token_b)))


class Venue(ABC):
    """Swap dispatch for one VenueKind."""

    kind: VenueKind

    def encode_params(self, *values: Any) -> bytes:
        return encode_venue_params(self.kind, *values)

    def decode_params(self, data: bytes) -> Tuple[Any, ...]:
        return decode_venue_params(self.kind, data)

    def validate_params(self, data: bytes) -> None:
        self.decode_params(data)

    @abstractmethod
    def resolve_pool(self, token_in: str, token_out: str, params: Tuple[Any, ...]) -> Optional[Pool]:
        """Pool the decoded params point at, or None."""

    def check_route(self, pool: Pool, token_in: str, token_out: str, params: Tuple[Any, ...]) -> Optional[str]:
        """Venue-specific consistency check; returns a failure reason or None."""
        return None

    def swap(
        self,
        staged: StagedLedger,
        trader: str,
        token_in: str,
        token_out: str,
        amount_in: int,
        min_out: int,
        params: bytes,
    ) -> SwapResult:
        try:
            decoded = self.decode_params(params)
        except RouteInvalidError as e:
            return SwapResult.failed(e.message)
        pool = self.resolve_pool(token_in, token_out, decoded)
        if pool is None:
            return SwapResult.failed(f"no {self.kind.label} pool for pair")
        reason = self.check_route(pool, token_in, token_out, decoded)
        if reason:
            return SwapResult.failed(reason)
        return pool.swap(staged, trader, token_in, token_out, amount_in, min_out)

    def pools(self) -> Tuple[Pool, ...]:
        return ()


class UniswapV3Venue(Venue):
    """
    Concentrated-liquidity venue modeled as one constant-product pool per
    (pair, fee tier). A non-zero sqrtPriceLimitX96 is carried but the
    per-hop minimum output is the binding bound.
    """

    kind = VenueKind.UNISWAP_V3

    def __init__(self) -> None:
        self._pools: Dict[Tuple[FrozenSet[str], int], ConstantProductPool] = {}

    def add_pool(self, pool: ConstantProductPool, fee_tier: int) -> None:
        self._pools[(_pair(*pool.tokens), fee_tier)] = pool

    def resolve_pool(self, token_in, token_out, params):
        fee_tier = params[0]
        return self._pools.get((_pair(token_in, token_out), fee_tier))

    def pools(self):
        return tuple(self._pools.values())


class SushiSwapVenue(Venue):
    kind = VenueKind.SUSHISWAP

    def __init__(self) -> None:
        self._pools: Dict[FrozenSet[str], ConstantProductPool] = {}

    def add_pool(self, pool: ConstantProductPool) -> None:
        self._pools[_pair(*pool.tokens)] = pool

    def resolve_pool(self, token_in, token_out, params):
        return self._pools.get(_pair(token_in, token_out))

    def pools(self):
        return tuple(self._pools.values())


class CurveVenue(Venue):
    kind = VenueKind.CURVE

    def __init__(self) -> None:
        self._pools: Dict[str, StableSwapPool] = {}

    def add_pool(self, pool: StableSwapPool) -> None:
        self._pools[normalize_address(pool.address)] = pool

    def resolve_pool(self, token_in, token_out, params):
        return self._pools.get(normalize_address(params[0]))

    def check_route(self, pool, token_in, token_out, params):
        _, i, j = params
        if pool.index_of(token_in) != i or pool.index_of(token_out) != j:
            return "curve coin index mismatch"
        return None

    def pools(self):
        return tuple(self._pools.values())


class BalancerVenue(Venue):
    kind = VenueKind.BALANCER

    def __init__(self) -> None:
        self._pools: Dict[bytes, Pool] = {}

    def add_pool(self, pool: Pool, pool_id: bytes) -> None:
        if len(pool_id) != 32:
            raise ValueError("Balancer pool id must be 32 bytes")
        self._pools[bytes(pool_id)] = pool

    def resolve_pool(self, token_in, token_out, params):
        return self._pools.get(bytes(params[0]))

    def pools(self):
        return tuple(self._pools.values())


class OneInchVenue(Venue):
    """Aggregator venue: the executor address selects the pool that fills."""

    kind = VenueKind.ONEINCH

    def __init__(self) -> None:
        self._executors: Dict[str, Pool] = {}

    def add_executor(self, pool: Pool, executor: Optional[str] = None) -> None:
        self._executors[normalize_address(executor or pool.address)] = pool

    def resolve_pool(self, token_in, token_out, params):
        return self._executors.get(normalize_address(params[0]))

    def pools(self):
        return tuple(self._executors.values())


def default_venues() -> Dict[VenueKind, Venue]:
    """One empty venue per kind."""
    return {
        VenueKind.UNISWAP_V3: UniswapV3Venue(),
        VenueKind.SUSHISWAP: SushiSwapVenue(),
        VenueKind.CURVE: CurveVenue(),
        VenueKind.BALANCER: BalancerVenue(),
        VenueKind.ONEINCH: OneInchVenue(),
    }


def check_venue_map(venues: Mapping[VenueKind, Venue]) -> None:
    for kind, venue in venues.items():
        if venue.kind is not kind:
            raise ValueError(f"Venue {type(venue).__name__} registered under {kind.label}")
