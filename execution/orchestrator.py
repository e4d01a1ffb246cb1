# PATH: execution/orchestrator.py
"""
Transaction orchestrator: ArbitrageOpportunity -> ExecutionResult.

PIPELINE CONTRACT:
==================
  0. deadline      elapsed deadline -> STALE_OPPORTUNITY, nothing submitted
  1. risk check    RiskGate.admit with expected fee and worst-case gas loss
  2. encode        RouteEncoder (closed loop, known venues, min profit frozen)
  3. simulate      dry run; revert -> SIMULATION_REVERT, reason verbatim, no retry
  4. price gas     GasPricer (default strategy: adaptive)
  5. nonce         NonceManager.acquire (serialized per signer); mark_sent once
                   the node accepts, release when never broadcast; a nonce
                   still held when the execution ends is handed back and the
                   manager refreshed from the chain
  6. submit        sign + send inside retry_async:
                     NonceConflictError          -> nonce invalidated, fresh nonce
                     ReplacementUnderpricedError -> same nonce, bumped fees
                     TransportError (timeout...) -> probe the previous hash for a
                                                    receipt, else re-broadcast the
                                                    identical signed bytes
                   the deadline is re-checked before every attempt
  7. confirm       ConfirmationWaiter; timeout -> CONFIRMATION_TIMEOUT and the
                   nonce manager is invalidated
  8. parse         settlement events -> realized profit; net = profit - gas cost
                   when the borrowed asset is the gas asset, else net = profit
                   and gas cost is reported on its own
  9. accounting    RiskGate.settle (or release when nothing was broadcast),
                   journal, result channel, metrics

execute() never raises for a per-opportunity failure: every path ends in
exactly one ExecutionResult carrying an ErrorCode and the original reason.
Concurrency is bounded by max_concurrent; nonce and risk state are the only
shared serialization points.
==================
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Iterable, List, Optional

from chains.client import ChainClient, SignedSubmission
from chains.signer import TransactionSigner
from core.constants import (
    DEFAULT_CONFIRMATION_TIMEOUT_S,
    DEFAULT_CONFIRMATIONS,
    DEFAULT_GAS_LIMIT,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_POLL_INTERVAL_S,
    GAS_LIMIT_SAFETY_MARGIN_BPS,
    ErrorCode,
    GasStrategy,
)
from core.context import ServiceContext
from core.events import EventChannel
from core.exceptions import (
    ConfirmationTimeoutError,
    FlashArbError,
    NonceConflictError,
    OnChainRevertError,
    ReplacementUnderpricedError,
    SimulationRevertError,
    StaleOpportunityError,
    TransportError,
)
from core.math import add_margin
from core.time import elapsed_ms
from core.models import ArbitrageOpportunity, ExecutionResult, GasParameters, Receipt, normalize_address
from execution.confirmation import ConfirmationWaiter, parse_settlement
from execution.encoding import EncodedCall, RouteEncoder
from execution.gas import GasPricer, GasPricerConfig
from execution.journal import ExecutionJournal
from execution.nonce import NonceManager
from execution.retry import RetryPolicy, retry_async
from execution.simulator import SimulationResult, TransactionSimulator
from execution.state_machine import StatusUpdate, TransactionStatus
from risk.gate import RiskGate, RiskTicket


@dataclass
class OrchestratorConfig:
    """Configuration for the transaction orchestrator."""
    strategy: GasStrategy = GasStrategy.ADAPTIVE
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    confirmations: int = DEFAULT_CONFIRMATIONS
    confirmation_timeout_s: float = DEFAULT_CONFIRMATION_TIMEOUT_S
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    default_gas_limit: int = DEFAULT_GAS_LIMIT
    gas_margin_bps: int = GAS_LIMIT_SAFETY_MARGIN_BPS


@dataclass
class OrchestratorMetrics:
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    total_gas_used: int = 0
    total_execution_time_ms: int = 0
    total_gas_cost: int = 0
    net_profit_by_asset: Dict[str, int] = field(default_factory=dict)
    failures_by_code: Dict[str, int] = field(default_factory=dict)

    @property
    def average_execution_time_ms(self) -> int:
        if self.total_executions == 0:
            return 0
        return self.total_execution_time_ms // self.total_executions

    def record(self, result: ExecutionResult) -> None:
        self.total_executions += 1
        self.total_gas_used += result.gas_used
        self.total_execution_time_ms += result.execution_time_ms
        self.total_gas_cost += result.gas_cost
        asset = normalize_address(result.opportunity.asset)
        self.net_profit_by_asset[asset] = self.net_profit_by_asset.get(asset, 0) + result.net_profit
        if result.success:
            self.successful_executions += 1
        else:
            self.failed_executions += 1
            code = (result.error_code or ErrorCode.UNKNOWN).value
            self.failures_by_code[code] = self.failures_by_code.get(code, 0) + 1

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "failed_executions": self.failed_executions,
            "total_gas_used": self.total_gas_used,
            "average_execution_time_ms": self.average_execution_time_ms,
            "total_gas_cost": str(self.total_gas_cost),
            "net_profit_by_asset": {a: str(v) for a, v in self.net_profit_by_asset.items()},
            "failures_by_code": dict(self.failures_by_code),
        }


@dataclass
class _Execution:
    """Mutable state of one execution across its submission attempts."""
    execution_id: str
    opportunity: ArbitrageOpportunity
    started_ms: int
    statuses: List[TransactionStatus] = field(default_factory=list)
    attempts: int = 0
    broadcast: bool = False
    receipt: Optional[Receipt] = None
    # retry bookkeeping
    previous: Optional[SignedSubmission] = None
    previous_gas: Optional[GasParameters] = None
    reuse_nonce: Optional[int] = None
    rebroadcast: bool = False
    force_nonce_refresh: bool = False

    @property
    def nonces(self) -> List[int]:
        seen: List[int] = []
        for status in self.statuses:
            if status.nonce not in seen:
                seen.append(status.nonce)
        return seen


class TransactionOrchestrator:
    """
    Drives opportunities through the settlement pipeline.

    Collaborators are passed in explicitly; the ones not given are built
    from the client, context and config.
    """

    def __init__(
        self,
        client: ChainClient,
        signer: TransactionSigner,
        encoder: RouteEncoder,
        risk_gate: RiskGate,
        context: Optional[ServiceContext] = None,
        config: Optional[OrchestratorConfig] = None,
        simulator: Optional[TransactionSimulator] = None,
        gas_pricer: Optional[GasPricer] = None,
        nonce_manager: Optional[NonceManager] = None,
        waiter: Optional[ConfirmationWaiter] = None,
        journal: Optional[ExecutionJournal] = None,
    ):
        self.config = config or OrchestratorConfig()
        self._context = context or ServiceContext.default()
        self._logger = self._context.logger("execution.orchestrator")
        self._client = client
        self._signer = signer
        self._encoder = encoder
        self._risk_gate = risk_gate
        self._simulator = simulator or TransactionSimulator(client)
        self._gas = gas_pricer or GasPricer(
            client, GasPricerConfig(strategy=self.config.strategy), self._context
        )
        self._nonces = nonce_manager or NonceManager(client, signer.address, self._context)
        self._waiter = waiter or ConfirmationWaiter(
            client,
            self._context,
            confirmations=self.config.confirmations,
            timeout_s=self.config.confirmation_timeout_s,
            poll_interval_s=self.config.poll_interval_s,
        )
        self.journal = journal or ExecutionJournal()

        self.results: EventChannel[ExecutionResult] = EventChannel("execution.results")
        self.status_updates: EventChannel[StatusUpdate] = EventChannel("execution.status")
        self.metrics = OrchestratorMetrics()

        self._semaphore = asyncio.Semaphore(self.config.max_concurrent)
        self._active: Dict[str, _Execution] = {}
        self._ids = itertools.count(1)
        self._stopping = False

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    async def execute(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        async with self._semaphore:
            return await self._execute(opportunity)

    async def execute_many(self, opportunities: Iterable[ArbitrageOpportunity]) -> List[ExecutionResult]:
        return list(await asyncio.gather(*(self.execute(o) for o in opportunities)))

    async def run(self, feed: AsyncIterator[ArbitrageOpportunity]) -> List[ExecutionResult]:
        """Consume an opportunity feed until it ends or stop() is called."""
        tasks: List[asyncio.Task] = []
        async for opportunity in feed:
            if self._stopping:
                break
            tasks.append(asyncio.create_task(self.execute(opportunity)))
        return list(await asyncio.gather(*tasks))

    def stop(self) -> None:
        self._stopping = True

    def active_transactions(self) -> List[TransactionStatus]:
        return [
            status
            for execution in self._active.values()
            for status in execution.statuses
            if not status.is_terminal
        ]

    def get_status(self) -> Dict[str, object]:
        return {
            "signer": self._signer.address,
            "active_executions": len(self._active),
            "active_transactions": [s.to_dict() for s in self.active_transactions()],
            "metrics": self.metrics.to_dict(),
            "risk": self._risk_gate.snapshot(),
        }

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _execute(self, opportunity: ArbitrageOpportunity) -> ExecutionResult:
        execution = _Execution(
            execution_id=f"exec_{opportunity.opportunity_id}_{next(self._ids)}",
            opportunity=opportunity,
            started_ms=self._context.now(),
        )
        self._active[execution.execution_id] = execution
        ticket: Optional[RiskTicket] = None
        try:
            self._check_deadline(opportunity)
            ticket = await self._admit(opportunity)
            call = self._encoder.encode(opportunity)
            quote = await self._gas.price(self.config.strategy)
            simulation = await self._simulator.simulate(call, self._signer.address, quote)
            receipt = await retry_async(
                lambda attempt: self._attempt(execution, call, simulation, attempt),
                self.config.retry,
                self._context.sleep,
                on_retry=lambda attempt, error, delay: self._on_retry(execution, attempt, error, delay),
            )
            result = self._result_from_receipt(execution, call, receipt)
        except FlashArbError as e:
            result = self._failure(execution, e)
        except Exception as e:
            self._logger.exception(
                "Unexpected error in execution pipeline",
                extra={"context": {"execution_id": execution.execution_id}},
            )
            result = self._failure(execution, FlashArbError(str(e), ErrorCode.UNKNOWN))
        finally:
            self._active.pop(execution.execution_id, None)
            self._settle_nonces(execution)

        await self._account(ticket, execution, result)
        return result

    def _settle_nonces(self, execution: _Execution) -> None:
        # an underpriced or unacknowledged submission still holds its nonce;
        # the next refresh takes the chain's word for it
        leftover = [n for n in execution.nonces if n in self._nonces.held]
        for nonce in leftover:
            self._nonces.mark_sent(nonce)
        if leftover:
            self._nonces.invalidate()

    def _check_deadline(self, opportunity: ArbitrageOpportunity) -> None:
        now = self._context.now()
        if opportunity.is_expired(now):
            raise StaleOpportunityError(
                "Opportunity deadline elapsed",
                {"deadline_ms": opportunity.deadline_ms, "now_ms": now},
            )

    async def _admit(self, opportunity: ArbitrageOpportunity) -> RiskTicket:
        gas_limit = add_margin(
            opportunity.gas_estimate or self.config.default_gas_limit,
            self.config.gas_margin_bps,
        )
        quote = await self._gas.price(self.config.strategy, gas_limit=gas_limit)
        return await self._risk_gate.admit(
            opportunity,
            caller=self._signer.address,
            gas_price=quote.effective_price(),
            expected_gas_cost=gas_limit * quote.effective_price(),
            worst_case_loss=quote.worst_case_cost,
        )

    async def _attempt(
        self,
        execution: _Execution,
        call: EncodedCall,
        simulation: SimulationResult,
        attempt: int,
    ) -> Receipt:
        execution.attempts = attempt
        self._check_deadline(execution.opportunity)

        if execution.rebroadcast and execution.previous is not None:
            return await self._rebroadcast(execution)

        gas = await self._gas.price(
            self.config.strategy, gas_limit=simulation.gas_limit, force_refresh=attempt > 1
        )
        if execution.reuse_nonce is not None and execution.previous_gas is not None:
            nonce = execution.reuse_nonce
            gas = self._gas.replacement(gas, execution.previous_gas)
        else:
            nonce = await self._nonces.acquire(force_refresh=execution.force_nonce_refresh)
        execution.force_nonce_refresh = False
        execution.reuse_nonce = None
        execution.rebroadcast = False

        status = self._new_status(execution, attempt, nonce)
        submission = self._signer.sign(call.to, call.data, nonce, gas)

        try:
            tx_hash = await self._client.send(submission)
        except NonceConflictError as e:
            # consumed elsewhere; the chain count covers it
            self._fail_status(status, e.message)
            self._nonces.mark_sent(nonce)
            self._nonces.invalidate()
            execution.force_nonce_refresh = True
            raise
        except ReplacementUnderpricedError as e:
            self._fail_status(status, e.message)
            execution.reuse_nonce = nonce
            execution.previous_gas = gas
            raise
        except TransportError as e:
            # Broadcast outcome unknown: keep the signed bytes for an idempotent retry
            self._fail_status(status, e.message)
            execution.previous = submission
            execution.previous_gas = gas
            execution.rebroadcast = True
            raise
        except FlashArbError as e:
            self._fail_status(status, e.message)
            await self._nonces.release(nonce)
            raise

        self._nonces.mark_sent(nonce)
        execution.broadcast = True
        execution.previous = submission
        status.mark_sent(tx_hash, self._context.now())
        self.status_updates.publish(status.snapshot())
        return await self._confirm(execution, status, tx_hash)

    async def _rebroadcast(self, execution: _Execution) -> Receipt:
        """
        Retry after an uncertain broadcast: probe the earlier hash, else send
        the identical signed bytes again, then wait for confirmation. Raises
        when the node refuses the bytes or is still unreachable.
        """
        previous = execution.previous
        status = self._new_status(execution, execution.attempts, previous.nonce)

        receipt = await self._waiter.probe(previous.tx_hash)
        if receipt is None:
            try:
                tx_hash = await self._client.send(previous)
            except NonceConflictError as e:
                # Known to the node, or the nonce was consumed by it being mined
                receipt = await self._waiter.probe(previous.tx_hash)
                if receipt is None and "already known" not in e.message.lower():
                    self._fail_status(status, e.message)
                    self._nonces.mark_sent(previous.nonce)
                    self._nonces.invalidate()
                    execution.force_nonce_refresh = True
                    execution.rebroadcast = False
                    raise
                tx_hash = previous.tx_hash
            except TransportError as e:
                self._fail_status(status, e.message)
                raise
        else:
            tx_hash = previous.tx_hash

        self._nonces.mark_sent(previous.nonce)
        execution.rebroadcast = False
        execution.broadcast = True
        status.mark_sent(tx_hash, self._context.now())
        self.status_updates.publish(status.snapshot())
        return await self._confirm(execution, status, tx_hash, receipt)

    async def _confirm(
        self,
        execution: _Execution,
        status: TransactionStatus,
        tx_hash: str,
        receipt: Optional[Receipt] = None,
    ) -> Receipt:
        try:
            if receipt is None or self.config.confirmations > 1:
                receipt = await self._waiter.wait(tx_hash)
        except ConfirmationTimeoutError as e:
            self._fail_status(status, e.message)
            self._nonces.invalidate()
            raise

        status.mark_confirming(receipt.block_number, self._context.now())
        if receipt.succeeded:
            status.mark_confirmed(self._context.now())
        else:
            status.mark_failed("reverted", self._context.now())
        self.status_updates.publish(status.snapshot())
        execution.receipt = receipt
        return receipt

    def _new_status(self, execution: _Execution, attempt: int, nonce: int) -> TransactionStatus:
        status = TransactionStatus(
            execution_id=execution.execution_id,
            attempt=attempt,
            nonce=nonce,
            created_at_ms=self._context.now(),
        )
        execution.statuses.append(status)
        return status

    def _fail_status(self, status: TransactionStatus, reason: str) -> None:
        if not status.is_terminal:
            status.mark_failed(reason, self._context.now())
            self.status_updates.publish(status.snapshot())

    def _on_retry(self, execution: _Execution, attempt: int, error: FlashArbError, delay: float) -> None:
        self._logger.info(
            "Submission attempt failed, retrying",
            extra={"context": {
                "execution_id": execution.execution_id,
                "attempt": attempt,
                "error_code": error.code.value,
                "error": error.message,
                "delay_s": delay,
            }},
        )

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _base_result(self, execution: _Execution, success: bool) -> ExecutionResult:
        receipt = execution.receipt
        result = ExecutionResult(
            execution_id=execution.execution_id,
            opportunity=execution.opportunity,
            success=success,
            execution_time_ms=elapsed_ms(execution.started_ms, self._context.now()),
            attempts=execution.attempts,
            nonces=execution.nonces,
        )
        if receipt is not None:
            result.gas_used = receipt.gas_used
            result.gas_price = receipt.effective_gas_price
            result.gas_cost = receipt.gas_cost
            result.tx_hash = receipt.tx_hash
            result.block_number = receipt.block_number
            if self._risk_gate.gas_denominated(execution.opportunity.asset):
                result.net_profit = -receipt.gas_cost
        return result

    def _result_from_receipt(self, execution: _Execution, call: EncodedCall, receipt: Receipt) -> ExecutionResult:
        report = parse_settlement(receipt, call.to)
        if not report.success:
            return self._failure(execution, OnChainRevertError(report.reason or "execution reverted"))
        if report.profit < call.min_profit:
            self._logger.error(
                "Settlement reported profit below the encoded minimum",
                extra={"context": {"execution_id": execution.execution_id, "profit": report.profit}},
            )
            return self._failure(execution, OnChainRevertError("profit below encoded minimum"))

        result = self._base_result(execution, success=True)
        result.realized_profit = report.profit
        result.net_profit = report.profit
        if self._risk_gate.gas_denominated(execution.opportunity.asset):
            result.net_profit -= result.gas_cost
        self._logger.info(
            "Execution confirmed",
            extra={"context": {
                "execution_id": execution.execution_id,
                "tx_hash": result.tx_hash,
                "realized_profit": result.realized_profit,
                "net_profit": result.net_profit,
                "attempts": result.attempts,
            }},
        )
        return result

    def _failure(self, execution: _Execution, error: FlashArbError) -> ExecutionResult:
        result = self._base_result(execution, success=False)
        result.error_code = error.code
        if isinstance(error, (SimulationRevertError, OnChainRevertError)):
            result.failure_reason = error.reason
        else:
            result.failure_reason = error.message
        self._logger.info(
            "Execution failed",
            extra={"context": {
                "execution_id": execution.execution_id,
                "error_code": error.code.value,
                "reason": result.failure_reason,
                "attempts": execution.attempts,
            }},
        )
        return result

    async def _account(
        self,
        ticket: Optional[RiskTicket],
        execution: _Execution,
        result: ExecutionResult,
    ) -> None:
        if ticket is not None:
            if execution.receipt is not None:
                await self._risk_gate.settle(ticket, result)
            else:
                await self._risk_gate.release(ticket)
        self.metrics.record(result)
        self.journal.record(result)
        self.results.publish(result)
