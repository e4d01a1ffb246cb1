# PATH: settlement/program.py
"""
Atomic settlement program: borrow -> swap across hops -> repay, or nothing.

INITIATE CONTRACT:
==================
initiate(call, asset, amount, route) -> SettlementOutcome

Rejected before anything is staged (counters untouched):
  - re-entered from inside a running settlement      -> "reentrant call"
  - sender not in the executor set                   -> "unauthorized caller"
  - admin paused or breaker tripped                  -> "program paused"
  - call.gas_price above the network-fee ceiling     -> "network fee above ceiling"
  - amount <= 0                                      -> "invalid amount"
  - amount above the asset's loan cap (no cap = 0)   -> "loan amount above cap"
  - route undecodable / not closed on asset          -> "invalid route"

Admitted runs increment total_executions, then on a StagedLedger:
  1. borrow amount from the lender
  2. each hop swaps the previous hop's output; its min-out is the supplied
     bound less the slippage haircut; unknown venue or failed swap aborts
  3. required = amount + fee + max(route.minProfit, amount * min_profit_bps)
     final < required aborts with "insufficient profit"; when
     final < amount + fee the shortfall is recorded as a loss
  4. repay amount + fee, keep the surplus, commit, emit ExecutionSucceeded

An abort discards the staged ledger: balances, pools and profit counters are
unchanged. Only the ExecutionFailed event and loss/breaker bookkeeping remain.
A loss that pushes the breaker over its ceiling pauses the program and emits
BreakerTripped once.
==================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set, Tuple

from core.constants import (
    BPS_DENOMINATOR,
    DEFAULT_MAX_SLIPPAGE_BPS,
    DEFAULT_MIN_PROFIT_BPS,
    MAX_GAS_PRICE,
    RevertReason,
    VenueKind,
)
from core.context import ServiceContext
from core.events import EventChannel
from core.exceptions import AccessDeniedError, RouteInvalidError, ValidationError
from core.math import apply_haircut, bps_of
from core.models import normalize_address, same_address
from risk.breaker import DailyLossBreaker
from settlement.codec import RoutePayload, decode_route
from settlement.events import (
    AdminChanged,
    BreakerTripped,
    ExecutionFailed,
    ExecutionSucceeded,
    SettlementEvent,
    Swept,
)
from settlement.ledger import Ledger, StagedLedger
from settlement.lender import FlashLender
from settlement.venues import Venue, check_venue_map


@dataclass(frozen=True)
class CallContext:
    """Transaction-level context of a program call."""
    sender: str
    gas_price: int
    timestamp_ms: int


@dataclass(frozen=True)
class SettlementOutcome:
    success: bool
    asset: str
    amount: int
    profit: int = 0
    final_amount: int = 0
    fee: int = 0
    reason: Optional[str] = None
    failed_hop: Optional[int] = None
    loss: int = 0
    breaker_tripped: bool = False
    hop_outputs: Tuple[int, ...] = ()
    events: Tuple[SettlementEvent, ...] = ()


@dataclass
class _Run:
    """Mutable scratch state of one settlement."""
    asset: str
    amount: int
    fee: int = 0
    final_amount: int = 0
    hop_outputs: List[int] = field(default_factory=list)
    events: List[SettlementEvent] = field(default_factory=list)


class SettlementProgram:
    """
    In-process settlement program bound to one ledger and one lender.

    The owner is the admin tier; executors are the execution tier. The owner
    is not implicitly an executor.
    """

    def __init__(
        self,
        address: str,
        owner: str,
        ledger: Ledger,
        lender: FlashLender,
        venues: Mapping[VenueKind, Venue],
        breaker: DailyLossBreaker,
        max_slippage_bps: int = DEFAULT_MAX_SLIPPAGE_BPS,
        min_profit_bps: int = DEFAULT_MIN_PROFIT_BPS,
        fee_ceiling: int = MAX_GAS_PRICE,
        context: Optional[ServiceContext] = None,
    ):
        check_venue_map(venues)
        self.address = address
        self.ledger = ledger
        self.lender = lender
        self.breaker = breaker
        self._venues: Dict[VenueKind, Venue] = dict(venues)
        self._context = context or ServiceContext.default()
        self._logger = self._context.logger("settlement.program")

        self.owner = normalize_address(owner)
        self.pending_owner: Optional[str] = None
        self._executors: Set[str] = set()
        self._loan_caps: Dict[str, int] = {}
        self.fee_ceiling = fee_ceiling
        self.max_slippage_bps = max_slippage_bps
        self.min_profit_bps = min_profit_bps
        self.admin_paused = False

        self.total_executions = 0
        self.successful_executions = 0
        self._cumulative_profit: Dict[str, int] = {}

        self.events: EventChannel[SettlementEvent] = EventChannel("settlement")
        self.event_log: List[SettlementEvent] = []
        self._entered = False

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def is_executor(self, address: str) -> bool:
        return normalize_address(address) in self._executors

    def loan_cap(self, asset: str) -> int:
        return self._loan_caps.get(normalize_address(asset), 0)

    def cumulative_profit(self, asset: str) -> int:
        return self._cumulative_profit.get(normalize_address(asset), 0)

    def is_paused(self, timestamp_ms: Optional[int] = None) -> bool:
        return self.admin_paused or self.breaker.is_tripped(timestamp_ms)

    def venue(self, kind: VenueKind) -> Optional[Venue]:
        return self._venues.get(kind)

    def get_status(self) -> Dict[str, object]:
        return {
            "address": self.address,
            "owner": self.owner,
            "paused": self.is_paused(),
            "admin_paused": self.admin_paused,
            "executors": sorted(self._executors),
            "fee_ceiling": self.fee_ceiling,
            "max_slippage_bps": self.max_slippage_bps,
            "min_profit_bps": self.min_profit_bps,
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "cumulative_profit": {k: str(v) for k, v in self._cumulative_profit.items()},
            "breaker": self.breaker.get_status(),
        }

    # ------------------------------------------------------------------
    # Execution tier
    # ------------------------------------------------------------------

    def initiate(self, call: CallContext, asset: str, amount: int, route: bytes) -> SettlementOutcome:
        return self._execute(call, asset, amount, route, dry_run=False)

    def preview(self, call: CallContext, asset: str, amount: int, route: bytes) -> SettlementOutcome:
        """
        Dry run. Returns the outcome initiate() would produce now, without
        committing balances, touching counters, recording losses or emitting.
        """
        return self._execute(call, asset, amount, route, dry_run=True)

    def _execute(
        self, call: CallContext, asset: str, amount: int, route: bytes, dry_run: bool
    ) -> SettlementOutcome:
        if self._entered:
            # Nested call: no state may be touched while the outer run is staged
            return SettlementOutcome(
                success=False, asset=asset, amount=amount, reason=RevertReason.REENTRANT_CALL
            )

        run = _Run(asset=normalize_address(asset), amount=amount)
        reason = self._precheck(call, run)
        payload: Optional[RoutePayload] = None
        if reason is None:
            try:
                payload = decode_route(route)
                self._check_closed_loop(payload, run.asset)
            except RouteInvalidError as e:
                reason = RevertReason.INVALID_ROUTE
                self._logger.info(
                    "Route rejected",
                    extra={"context": {"asset": run.asset, "error": e.message}},
                )
        if reason is not None:
            return self._fail(run, reason, dry_run)

        if not dry_run:
            self.total_executions += 1
        self._entered = True
        try:
            return self._settle(call, run, payload, dry_run)
        finally:
            self._entered = False

    def _precheck(self, call: CallContext, run: _Run) -> Optional[str]:
        if not self.is_executor(call.sender):
            return RevertReason.UNAUTHORIZED_CALLER
        if self.is_paused(call.timestamp_ms):
            return RevertReason.PAUSED
        if call.gas_price > self.fee_ceiling:
            return RevertReason.FEE_CEILING_EXCEEDED
        if run.amount <= 0:
            return RevertReason.INVALID_AMOUNT
        if run.amount > self.loan_cap(run.asset):
            return RevertReason.LOAN_CAP_EXCEEDED
        return None

    @staticmethod
    def _check_closed_loop(payload: RoutePayload, asset: str) -> None:
        if not payload.hops:
            raise RouteInvalidError("Route has no hops")
        if not same_address(payload.hops[0].token_in, asset):
            raise RouteInvalidError("First hop does not spend the borrowed asset")
        for current, following in zip(payload.hops, payload.hops[1:]):
            if not same_address(current.token_out, following.token_in):
                raise RouteInvalidError("Hop chain is not contiguous")
        if not same_address(payload.hops[-1].token_out, asset):
            raise RouteInvalidError("Route does not close on the borrowed asset")

    def _settle(
        self, call: CallContext, run: _Run, payload: RoutePayload, dry_run: bool
    ) -> SettlementOutcome:
        staged = self.ledger.begin()
        run.fee = self.lender.flash_fee(run.amount)

        if not self.lender.lend(staged, self.address, run.asset, run.amount):
            return self._fail(run, RevertReason.LENDER_LIQUIDITY, dry_run)

        current = run.amount
        for index, hop in enumerate(payload.hops):
            try:
                kind = VenueKind(hop.venue)
            except ValueError:
                return self._fail(run, RevertReason.UNKNOWN_VENUE, dry_run, failed_hop=index)
            venue = self._venues.get(kind)
            if venue is None:
                return self._fail(run, RevertReason.UNKNOWN_VENUE, dry_run, failed_hop=index)

            min_out = apply_haircut(hop.min_out, self.max_slippage_bps)
            result = venue.swap(
                staged, self.address, hop.token_in, hop.token_out, current, min_out, hop.params
            )
            if not result.ok:
                self._logger.debug(
                    "Hop failed",
                    extra={"context": {"hop": index, "venue": kind.label, "reason": result.reason}},
                )
                return self._fail(run, result.reason or "swap failed", dry_run, failed_hop=index)
            current = result.amount_out
            run.hop_outputs.append(current)

        run.final_amount = current
        repayment = run.amount + run.fee
        min_profit = max(payload.min_profit, bps_of(run.amount, self.min_profit_bps))
        if current < repayment + min_profit:
            loss = max(0, repayment - current)
            return self._fail(run, RevertReason.INSUFFICIENT_PROFIT, dry_run, loss=loss, call=call)

        if not self.lender.collect(staged, self.address, run.asset, repayment):
            return self._fail(run, RevertReason.REPAYMENT_FAILED, dry_run)

        profit = current - repayment
        event = ExecutionSucceeded(run.asset, run.amount, profit, payload.venues)
        run.events.append(event)
        if not dry_run:
            self.ledger.commit(staged)
            self.successful_executions += 1
            self._cumulative_profit[run.asset] = self.cumulative_profit(run.asset) + profit
            self._emit(event)
            self._logger.info(
                "Settlement committed",
                extra={"context": {
                    "asset": run.asset,
                    "amount": run.amount,
                    "profit": profit,
                    "hops": len(payload.hops),
                }},
            )

        return SettlementOutcome(
            success=True,
            asset=run.asset,
            amount=run.amount,
            profit=profit,
            final_amount=current,
            fee=run.fee,
            hop_outputs=tuple(run.hop_outputs),
            events=tuple(run.events),
        )

    def _fail(
        self,
        run: _Run,
        reason: str,
        dry_run: bool,
        failed_hop: Optional[int] = None,
        loss: int = 0,
        call: Optional[CallContext] = None,
    ) -> SettlementOutcome:
        failure = ExecutionFailed(run.asset, run.amount, reason)
        run.events.append(failure)
        tripped = False
        if not dry_run:
            self._emit(failure)
            if loss:
                tripped = self.breaker.record_loss(loss, call.timestamp_ms if call else None)
                if tripped:
                    trip_event = BreakerTripped(self.breaker.cumulative_loss(call.timestamp_ms if call else None))
                    run.events.append(trip_event)
                    self._emit(trip_event)
            self._logger.info(
                "Settlement aborted",
                extra={"context": {
                    "asset": run.asset,
                    "amount": run.amount,
                    "reason": reason,
                    "failed_hop": failed_hop,
                    "loss": loss,
                }},
            )
        return SettlementOutcome(
            success=False,
            asset=run.asset,
            amount=run.amount,
            final_amount=run.final_amount,
            fee=run.fee,
            reason=reason,
            failed_hop=failed_hop,
            loss=loss,
            breaker_tripped=tripped,
            hop_outputs=tuple(run.hop_outputs),
            events=tuple(run.events),
        )

    def _emit(self, event: SettlementEvent) -> None:
        self.event_log.append(event)
        self.events.publish(event)

    # ------------------------------------------------------------------
    # Admin tier
    # ------------------------------------------------------------------

    def _only_owner(self, sender: str) -> str:
        actor = normalize_address(sender)
        if actor != self.owner:
            raise AccessDeniedError(
                "Caller is not the program owner", {"sender": sender}
            )
        return actor

    def _changed(self, actor: str, setting: str, old, new, subject: Optional[str] = None) -> None:
        self._emit(AdminChanged(actor, setting, subject, old, new))
        self._logger.info(
            "Program setting changed",
            extra={"context": {"setting": setting, "subject": subject, "old": old, "new": new}},
        )

    def pause(self, sender: str) -> None:
        actor = self._only_owner(sender)
        old, self.admin_paused = self.admin_paused, True
        self._changed(actor, "paused", old, True)

    def unpause(self, sender: str) -> None:
        """Clears the admin flag and a tripped breaker."""
        actor = self._only_owner(sender)
        old, self.admin_paused = self.admin_paused, False
        self.breaker.reset()
        self._changed(actor, "paused", old, False)

    def set_executor(self, sender: str, executor: str, allowed: bool) -> None:
        actor = self._only_owner(sender)
        key = normalize_address(executor)
        old = key in self._executors
        if allowed:
            self._executors.add(key)
        else:
            self._executors.discard(key)
        self._changed(actor, "executor", old, allowed, subject=key)

    def set_loan_cap(self, sender: str, asset: str, cap: int) -> None:
        actor = self._only_owner(sender)
        if cap < 0:
            raise ValidationError("Loan cap must be non-negative", {"cap": cap})
        key = normalize_address(asset)
        old = self._loan_caps.get(key, 0)
        self._loan_caps[key] = cap
        self._changed(actor, "loan_cap", old, cap, subject=key)

    def set_fee_ceiling(self, sender: str, ceiling: int) -> None:
        actor = self._only_owner(sender)
        if ceiling <= 0:
            raise ValidationError("Fee ceiling must be positive", {"ceiling": ceiling})
        old, self.fee_ceiling = self.fee_ceiling, ceiling
        self._changed(actor, "fee_ceiling", old, ceiling)

    def set_daily_loss_ceiling(self, sender: str, ceiling: int) -> None:
        actor = self._only_owner(sender)
        if ceiling < 0:
            raise ValidationError("Loss ceiling must be non-negative", {"ceiling": ceiling})
        old = self.breaker.ceiling
        self.breaker.ceiling = ceiling
        self._changed(actor, "daily_loss_ceiling", old, ceiling)

    def set_max_slippage(self, sender: str, bps: int) -> None:
        actor = self._only_owner(sender)
        if not 0 < bps <= BPS_DENOMINATOR:
            raise ValidationError("Slippage must be within (0, 10000] bps", {"bps": bps})
        old, self.max_slippage_bps = self.max_slippage_bps, bps
        self._changed(actor, "max_slippage_bps", old, bps)

    def set_min_profit_bps(self, sender: str, bps: int) -> None:
        actor = self._only_owner(sender)
        if not 0 <= bps <= BPS_DENOMINATOR:
            raise ValidationError("Min profit must be within [0, 10000] bps", {"bps": bps})
        old, self.min_profit_bps = self.min_profit_bps, bps
        self._changed(actor, "min_profit_bps", old, bps)

    def sweep(self, sender: str, asset: str, recipient: str) -> int:
        """Move the program's whole balance of asset to recipient."""
        actor = self._only_owner(sender)
        if self._entered:
            raise AccessDeniedError("Cannot sweep during a settlement")
        staged = self.ledger.begin()
        amount = staged.balance_of(self.address, asset)
        if amount:
            staged.transfer(self.address, recipient, asset, amount)
            self.ledger.commit(staged)
        self._emit(Swept(actor, normalize_address(asset), normalize_address(recipient), amount))
        return amount

    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        actor = self._only_owner(sender)
        self.pending_owner = normalize_address(new_owner)
        self._changed(actor, "pending_owner", None, self.pending_owner)

    def accept_ownership(self, sender: str) -> None:
        actor = normalize_address(sender)
        if self.pending_owner is None or actor != self.pending_owner:
            raise AccessDeniedError("Caller is not the pending owner", {"sender": sender})
        old, self.owner = self.owner, actor
        self.pending_owner = None
        self._changed(actor, "owner", old, actor)
