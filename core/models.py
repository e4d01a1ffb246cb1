# PATH: core/models.py
"""
Core data models for FLASHARB.

OPPORTUNITY CONTRACT:
=====================
An ArbitrageOpportunity is produced externally, is immutable, and is consumed
once by the orchestrator. Its hops form a closed loop:

    hops[0].token_in  == asset
    hops[i].token_out == hops[i+1].token_in
    hops[-1].token_out == asset

Violations raise RouteInvalidError before anything is submitted.

RESULT CONTRACT:
================
Exactly one ExecutionResult per opportunity execution attempt.
success=True implies realized_profit >= the minimum profit frozen into the
route at encode time. net_profit = realized_profit - gas_cost (signed).
=====================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from core.constants import ErrorCode, GasStrategy, VenueKind
from core.exceptions import RouteInvalidError


def normalize_address(address: str) -> str:
    """Lowercase hex address used as a dictionary key everywhere."""
    return address.lower()


def same_address(a: str, b: str) -> bool:
    return normalize_address(a) == normalize_address(b)


def _hex(data: bytes) -> str:
    return "0x" + data.hex()


def _unhex(text: str) -> bytes:
    if text.startswith("0x") or text.startswith("0X"):
        text = text[2:]
    return bytes.fromhex(text)


# ============================================================================
# ROUTE
# ============================================================================

@dataclass(frozen=True)
class Hop:
    """One swap step within a route."""
    venue: VenueKind
    token_in: str
    token_out: str
    amount_in: int
    min_amount_out: int
    params: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "venue": self.venue.label,
            "token_in": self.token_in,
            "token_out": self.token_out,
            "amount_in": str(self.amount_in),
            "min_amount_out": str(self.min_amount_out),
            "params": _hex(self.params),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Hop":
        venue = data["venue"]
        if isinstance(venue, str):
            try:
                venue = VenueKind[venue.upper()]
            except KeyError:
                raise RouteInvalidError(f"Unknown venue: {venue}", {"venue": venue})
        else:
            try:
                venue = VenueKind(int(venue))
            except ValueError:
                raise RouteInvalidError(f"Unknown venue id: {venue}", {"venue": venue})
        params = data.get("params", b"")
        if isinstance(params, str):
            params = _unhex(params)
        return cls(
            venue=venue,
            token_in=data["token_in"],
            token_out=data["token_out"],
            amount_in=int(data.get("amount_in", 0)),
            min_amount_out=int(data.get("min_amount_out", 0)),
            params=bytes(params),
        )


@dataclass(frozen=True)
class ArbitrageOpportunity:
    """
    Candidate route produced by an external discovery feed.

    min_profit: absolute floor in the borrowed asset's units. None means
    "use the program's bps floor only".
    """
    opportunity_id: str
    asset: str
    amount: int
    hops: Tuple[Hop, ...]
    expected_profit: int
    gas_estimate: int
    deadline_ms: int
    min_profit: Optional[int] = None
    slippage_bps: int = 0

    @property
    def venues(self) -> List[VenueKind]:
        return [hop.venue for hop in self.hops]

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.deadline_ms

    def validate_closed_loop(self) -> None:
        """
        Raise RouteInvalidError unless the hop chain closes on the borrowed asset.
        """
        if not self.hops:
            raise RouteInvalidError(
                "Route has no hops", {"opportunity_id": self.opportunity_id}
            )
        if self.amount <= 0:
            raise RouteInvalidError(
                "Borrow amount must be positive",
                {"opportunity_id": self.opportunity_id, "amount": str(self.amount)},
            )
        if not same_address(self.hops[0].token_in, self.asset):
            raise RouteInvalidError(
                "First hop does not spend the borrowed asset",
                {"asset": self.asset, "token_in": self.hops[0].token_in},
            )
        for index, (current, following) in enumerate(zip(self.hops, self.hops[1:])):
            if not same_address(current.token_out, following.token_in):
                raise RouteInvalidError(
                    f"Hop {index} output does not feed hop {index + 1}",
                    {"token_out": current.token_out, "token_in": following.token_in},
                )
        if not same_address(self.hops[-1].token_out, self.asset):
            raise RouteInvalidError(
                "Route does not close on the borrowed asset",
                {"asset": self.asset, "token_out": self.hops[-1].token_out},
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "opportunity_id": self.opportunity_id,
            "asset": self.asset,
            "amount": str(self.amount),
            "hops": [hop.to_dict() for hop in self.hops],
            "expected_profit": str(self.expected_profit),
            "gas_estimate": self.gas_estimate,
            "deadline_ms": self.deadline_ms,
            "min_profit": None if self.min_profit is None else str(self.min_profit),
            "slippage_bps": self.slippage_bps,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArbitrageOpportunity":
        min_profit = data.get("min_profit")
        return cls(
            opportunity_id=str(data["opportunity_id"]),
            asset=data["asset"],
            amount=int(data["amount"]),
            hops=tuple(Hop.from_dict(h) for h in data.get("hops", [])),
            expected_profit=int(data.get("expected_profit", 0)),
            gas_estimate=int(data.get("gas_estimate", 0)),
            deadline_ms=int(data["deadline_ms"]),
            min_profit=None if min_profit is None else int(min_profit),
            slippage_bps=int(data.get("slippage_bps", 0)),
        )


# ============================================================================
# GAS
# ============================================================================

@dataclass(frozen=True)
class FeeSnapshot:
    """Network conditions sampled from the fee/congestion feed."""
    base_fee: int
    priority_fee_history: Tuple[int, ...] = ()
    pending_tx_count: int = 0
    block_number: int = 0


@dataclass(frozen=True)
class GasParameters:
    """EIP-1559 fee parameters chosen by a GasStrategy."""
    strategy: GasStrategy
    base_fee: int
    max_priority_fee: int
    max_fee: int
    gas_limit: int = 0

    def effective_price(self, base_fee: Optional[int] = None) -> int:
        """Price actually paid per gas unit for a given block base fee."""
        base = self.base_fee if base_fee is None else base_fee
        return min(self.max_fee, base + self.max_priority_fee)

    @property
    def worst_case_cost(self) -> int:
        return self.gas_limit * self.max_fee

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategy": self.strategy.value,
            "base_fee": self.base_fee,
            "max_priority_fee": self.max_priority_fee,
            "max_fee": self.max_fee,
            "gas_limit": self.gas_limit,
        }


# ============================================================================
# RECEIPTS
# ============================================================================

@dataclass(frozen=True)
class LogEntry:
    """EVM-style event log: emitting address, indexed topics, ABI data."""
    address: str
    topics: Tuple[bytes, ...]
    data: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "topics": [_hex(t) for t in self.topics],
            "data": _hex(self.data),
        }


@dataclass(frozen=True)
class Receipt:
    """Mined transaction receipt. status 1 = success, 0 = reverted."""
    tx_hash: str
    block_number: int
    status: int
    gas_used: int
    effective_gas_price: int
    logs: Tuple[LogEntry, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @property
    def gas_cost(self) -> int:
        return self.gas_used * self.effective_gas_price


# ============================================================================
# RESULT
# ============================================================================

@dataclass
class ExecutionResult:
    """Terminal outcome of one opportunity execution attempt."""
    execution_id: str
    opportunity: ArbitrageOpportunity
    success: bool
    realized_profit: int = 0
    net_profit: int = 0
    gas_used: int = 0
    gas_price: int = 0
    gas_cost: int = 0
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    execution_time_ms: int = 0
    failure_reason: Optional[str] = None
    error_code: Optional[ErrorCode] = None
    attempts: int = 0
    nonces: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "opportunity_id": self.opportunity.opportunity_id,
            "asset": self.opportunity.asset,
            "amount": str(self.opportunity.amount),
            "success": self.success,
            "realized_profit": str(self.realized_profit),
            "net_profit": str(self.net_profit),
            "gas_used": self.gas_used,
            "gas_price": self.gas_price,
            "gas_cost": str(self.gas_cost),
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "execution_time_ms": self.execution_time_ms,
            "failure_reason": self.failure_reason,
            "error_code": self.error_code.value if self.error_code else None,
            "attempts": self.attempts,
            "nonces": list(self.nonces),
        }
