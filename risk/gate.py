# PATH: risk/gate.py
"""
Off-chain Risk Gate.

GATE CONTRACT:
==============
admit() and settle() run under one asyncio.Lock, so check-then-reserve is
atomic across concurrently executing opportunities.

admit(opportunity, caller, gas_price, expected_gas_cost, worst_case_loss):
  refused with BreakerTrippedError   when the breaker is tripped
  refused with RiskDisallowedError   when
    - caller is not in the authorization set
    - amount is above the asset's max loan (no entry = not allowed)
    - gas_price is above max_network_fee
    - opportunity.slippage_bps is above max_slippage_bps
    - expected profit (net of gas when the asset is the gas asset) is
      below min_expected_profit
    - cumulative loss + outstanding reservations + worst_case_loss would
      exceed the breaker ceiling
  otherwise reserves worst_case_loss and returns a RiskTicket.

settle(ticket, result):
  releases the reservation and records loss_of(result) against the breaker.
  Returns True only when that loss trips the breaker.

Losses are accounted in the gas asset's units:
  - borrowed asset is the gas asset: loss = max(0, -(profit - gas cost))
  - any other asset (or no gas asset configured): loss = gas cost, since
    profit in another asset cannot be netted against gas
The budget check in admit() counts outstanding reservations, so a nearly
spent budget refuses new work with "daily loss budget exhausted" before any
recorded loss trips the breaker.
==============
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from core.context import ServiceContext
from core.exceptions import BreakerTrippedError, RiskDisallowedError
from core.models import ArbitrageOpportunity, ExecutionResult, normalize_address
from risk.breaker import DailyLossBreaker


@dataclass
class RiskGateState:
    """Mutated only by the RiskGate."""
    breaker: DailyLossBreaker
    authorized: Set[str] = field(default_factory=set)
    max_loan: Dict[str, int] = field(default_factory=dict)
    max_network_fee: int = 0
    max_slippage_bps: int = 10_000
    min_expected_profit: int = 0
    gas_asset: Optional[str] = None

    def __post_init__(self):
        self.authorized = {normalize_address(a) for a in self.authorized}
        self.max_loan = {normalize_address(k): v for k, v in self.max_loan.items()}
        if self.gas_asset:
            self.gas_asset = normalize_address(self.gas_asset)


@dataclass(frozen=True)
class RiskTicket:
    ticket_id: int
    opportunity_id: str
    caller: str
    reserved_loss: int
    admitted_at_ms: int


class RiskGate:
    def __init__(self, state: RiskGateState, context: Optional[ServiceContext] = None):
        self.state = state
        self._context = context or ServiceContext.default()
        self._logger = self._context.logger("risk.gate")
        self._lock = asyncio.Lock()
        self._reservations: Dict[int, RiskTicket] = {}
        self._ids = itertools.count(1)
        self.admitted = 0
        self.refused = 0

    @property
    def breaker(self) -> DailyLossBreaker:
        return self.state.breaker

    @property
    def reserved_loss(self) -> int:
        return sum(t.reserved_loss for t in self._reservations.values())

    def authorize(self, caller: str) -> None:
        self.state.authorized.add(normalize_address(caller))

    def _refuse(self, opportunity: ArbitrageOpportunity, reason: str, details: Dict[str, Any]) -> RiskDisallowedError:
        self.refused += 1
        self._logger.info(
            "Risk gate refused opportunity",
            extra={"context": {"opportunity_id": opportunity.opportunity_id, "reason": reason, **details}},
        )
        return RiskDisallowedError(reason, {"opportunity_id": opportunity.opportunity_id, **details})

    def gas_denominated(self, asset: str) -> bool:
        """True when profit in this asset is paid for in the same units as gas."""
        return bool(self.state.gas_asset) and normalize_address(asset) == self.state.gas_asset

    def loss_of(self, result: ExecutionResult) -> int:
        """Loss in gas-asset units; profit in another asset never offsets gas."""
        if self.gas_denominated(result.opportunity.asset):
            return max(0, -result.net_profit)
        return result.gas_cost

    def _expected_net(self, opportunity: ArbitrageOpportunity, expected_gas_cost: int) -> int:
        if self.gas_denominated(opportunity.asset):
            return opportunity.expected_profit - expected_gas_cost
        return opportunity.expected_profit

    async def admit(
        self,
        opportunity: ArbitrageOpportunity,
        caller: str,
        gas_price: int,
        expected_gas_cost: int,
        worst_case_loss: int,
    ) -> RiskTicket:
        async with self._lock:
            now = self._context.now()
            state = self.state

            if state.breaker.is_tripped(now):
                self.refused += 1
                raise BreakerTrippedError(
                    "Circuit breaker is tripped",
                    {"opportunity_id": opportunity.opportunity_id, **state.breaker.get_status(now)},
                )
            if normalize_address(caller) not in state.authorized:
                raise self._refuse(opportunity, "caller not authorized", {"caller": caller})

            cap = state.max_loan.get(normalize_address(opportunity.asset), 0)
            if opportunity.amount > cap:
                raise self._refuse(
                    opportunity, "loan amount above cap",
                    {"amount": str(opportunity.amount), "cap": str(cap)},
                )
            if gas_price > state.max_network_fee:
                raise self._refuse(
                    opportunity, "network fee above ceiling",
                    {"gas_price": gas_price, "max_network_fee": state.max_network_fee},
                )
            if opportunity.slippage_bps > state.max_slippage_bps:
                raise self._refuse(
                    opportunity, "slippage above tolerance",
                    {"slippage_bps": opportunity.slippage_bps, "max_slippage_bps": state.max_slippage_bps},
                )
            expected_net = self._expected_net(opportunity, expected_gas_cost)
            if expected_net < state.min_expected_profit:
                raise self._refuse(
                    opportunity, "expected profit below minimum",
                    {"expected_net": str(expected_net), "min_expected_profit": str(state.min_expected_profit)},
                )
            committed = state.breaker.cumulative_loss(now) + self.reserved_loss
            if committed + worst_case_loss > state.breaker.ceiling:
                raise self._refuse(
                    opportunity, "daily loss budget exhausted",
                    {
                        "committed_loss": str(committed),
                        "worst_case_loss": str(worst_case_loss),
                        "ceiling": str(state.breaker.ceiling),
                    },
                )

            ticket = RiskTicket(
                ticket_id=next(self._ids),
                opportunity_id=opportunity.opportunity_id,
                caller=normalize_address(caller),
                reserved_loss=worst_case_loss,
                admitted_at_ms=now,
            )
            self._reservations[ticket.ticket_id] = ticket
            self.admitted += 1
            return ticket

    async def settle(self, ticket: RiskTicket, result: ExecutionResult) -> bool:
        async with self._lock:
            self._reservations.pop(ticket.ticket_id, None)
            loss = self.loss_of(result)
            if loss == 0:
                return False
            tripped = self.state.breaker.record_loss(loss, self._context.now())
            self._logger.info(
                "Loss recorded",
                extra={"context": {
                    "opportunity_id": ticket.opportunity_id,
                    "loss": loss,
                    "tripped": tripped,
                }},
            )
            return tripped

    async def release(self, ticket: RiskTicket) -> None:
        """Drop a reservation without accounting (attempt never submitted)."""
        async with self._lock:
            self._reservations.pop(ticket.ticket_id, None)

    async def clear(self, operator: str) -> None:
        async with self._lock:
            self.state.breaker.reset()
            self._logger.warning(
                "Circuit breaker cleared",
                extra={"context": {"operator": operator}},
            )

    def snapshot(self) -> Dict[str, Any]:
        return {
            "authorized": sorted(self.state.authorized),
            "max_loan": {k: str(v) for k, v in self.state.max_loan.items()},
            "max_network_fee": self.state.max_network_fee,
            "max_slippage_bps": self.state.max_slippage_bps,
            "min_expected_profit": str(self.state.min_expected_profit),
            "reserved_loss": str(self.reserved_loss),
            "outstanding_tickets": len(self._reservations),
            "admitted": self.admitted,
            "refused": self.refused,
            "breaker": self.state.breaker.get_status(self._context.now()),
        }
