# PATH: chains/local.py
"""
In-process chain that executes submissions against a SettlementProgram.

Used for paper mode and tests. It models what the orchestrator depends on:
  - per-sender nonces with a pending pool
  - replacement rules (same sender+nonce needs +10% on both fee fields)
  - a settable fee/congestion feed
  - mining (automatic on send, or manual via mine_block)
  - receipts with the program's events encoded as logs
  - failure injection: queued send errors, simulation reverts, held
    (never-mined) submissions, fee feed outages

Native gas balances are not modeled; gas_used follows the settlement gas
model (base + per hop).
"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence, Set, Tuple

from chains.client import CallRequest, ChainClient, SignedSubmission
from core.constants import (
    BASE_SETTLEMENT_GAS,
    FALLBACK_BASE_FEE,
    FALLBACK_PRIORITY_FEE,
    FEE_HISTORY_BLOCKS,
    GAS_PER_HOP,
)
from core.context import ServiceContext
from core.exceptions import (
    FlashArbError,
    NonceConflictError,
    ReplacementUnderpricedError,
    SimulationRevertError,
    ValidationError,
)
from core.models import FeeSnapshot, LogEntry, Receipt, normalize_address
from settlement.codec import decode_call, decode_route, encode_event_log
from settlement.events import BreakerTripped, ExecutionFailed, ExecutionSucceeded
from settlement.program import CallContext, SettlementOutcome, SettlementProgram

REPLACEMENT_BUMP_BPS = 1_000  # +10%

_LOGGED = (ExecutionSucceeded, ExecutionFailed, BreakerTripped)


def settlement_gas(hop_count: int) -> int:
    return BASE_SETTLEMENT_GAS + GAS_PER_HOP * hop_count


def _bumped(old: int) -> int:
    return old + old * REPLACEMENT_BUMP_BPS // 10_000


@dataclass
class _PoolEntry:
    submission: SignedSubmission
    held: bool = False


class LocalChain(ChainClient):
    """Single-program chain running in the caller's event loop."""

    def __init__(
        self,
        program: SettlementProgram,
        chain_id: int = 31337,
        context: Optional[ServiceContext] = None,
        base_fee: int = FALLBACK_BASE_FEE,
        priority_fee_history: Sequence[int] = (FALLBACK_PRIORITY_FEE,) * FEE_HISTORY_BLOCKS,
        pending_tx_count: int = 0,
        auto_mine: bool = True,
        blocks_per_poll: int = 0,
    ):
        self.program = program
        self.chain_id = chain_id
        self._context = context or ServiceContext.default()
        self._logger = self._context.logger("chains.local")

        self.base_fee = base_fee
        self.priority_fee_history: Tuple[int, ...] = tuple(priority_fee_history)
        self.pending_tx_count = pending_tx_count
        self.auto_mine = auto_mine
        self.blocks_per_poll = blocks_per_poll

        self._block = 1
        self._confirmed_nonces: Dict[str, int] = {}
        self._pool: Dict[Tuple[str, int], _PoolEntry] = {}
        self._receipts: Dict[str, Receipt] = {}
        self._seen_hashes: Set[str] = set()

        self._send_failures: Deque[FlashArbError] = deque()
        self._simulation_failures: Deque[str] = deque()
        self._hold_next = 0
        self.fee_feed_error: Optional[FlashArbError] = None

        self.sent: List[SignedSubmission] = []
        self.simulations = 0

    # ------------------------------------------------------------------
    # Failure injection / knobs
    # ------------------------------------------------------------------

    def fail_next_send(self, *errors: FlashArbError) -> None:
        self._send_failures.extend(errors)

    def fail_next_simulation(self, *reasons: str) -> None:
        self._simulation_failures.extend(reasons)

    def hold_next(self, count: int = 1) -> None:
        """Accept the next `count` submissions but never mine them."""
        self._hold_next += count

    def set_fees(
        self,
        base_fee: Optional[int] = None,
        priority_fee_history: Optional[Sequence[int]] = None,
        pending_tx_count: Optional[int] = None,
    ) -> None:
        if base_fee is not None:
            self.base_fee = base_fee
        if priority_fee_history is not None:
            self.priority_fee_history = tuple(priority_fee_history)
        if pending_tx_count is not None:
            self.pending_tx_count = pending_tx_count

    # ------------------------------------------------------------------
    # ChainClient
    # ------------------------------------------------------------------

    async def block_number(self) -> int:
        if self.blocks_per_poll:
            for _ in range(self.blocks_per_poll):
                self.mine_block()
        return self._block

    def confirmed_nonce(self, address: str) -> int:
        return self._confirmed_nonces.get(normalize_address(address), 0)

    async def pending_nonce(self, address: str) -> int:
        sender = normalize_address(address)
        nonce = self.confirmed_nonce(sender)
        while (sender, nonce) in self._pool:
            nonce += 1
        return nonce

    async def fee_snapshot(self) -> FeeSnapshot:
        if self.fee_feed_error is not None:
            raise self.fee_feed_error
        return FeeSnapshot(
            base_fee=self.base_fee,
            priority_fee_history=self.priority_fee_history,
            pending_tx_count=self.pending_tx_count + len(self._pool),
            block_number=self._block,
        )

    def _effective_price(self, max_fee: int, max_priority_fee: int) -> int:
        if not max_fee:
            return self.base_fee
        return min(max_fee, self.base_fee + max_priority_fee)

    async def simulate(self, request: CallRequest) -> int:
        self.simulations += 1
        if self._simulation_failures:
            raise SimulationRevertError(self._simulation_failures.popleft())
        if normalize_address(request.to) != normalize_address(self.program.address):
            raise SimulationRevertError("call to non-program address")
        try:
            asset, amount, route = decode_call(request.data)
        except ValidationError as e:
            raise SimulationRevertError(e.message)

        call = CallContext(
            sender=request.sender,
            gas_price=self._effective_price(request.max_fee_per_gas, request.max_priority_fee_per_gas),
            timestamp_ms=self._context.now(),
        )
        outcome = self.program.preview(call, asset, amount, route)
        if not outcome.success:
            raise SimulationRevertError(outcome.reason or "execution reverted")
        return settlement_gas(len(outcome.hop_outputs))

    async def send(self, submission: SignedSubmission) -> str:
        if self._send_failures:
            raise self._send_failures.popleft()

        sender = normalize_address(submission.sender)
        if submission.tx_hash in self._seen_hashes:
            raise NonceConflictError("already known", {"tx_hash": submission.tx_hash})
        if submission.nonce < self.confirmed_nonce(sender):
            raise NonceConflictError(
                "nonce too low",
                {"nonce": submission.nonce, "next": self.confirmed_nonce(sender)},
            )

        key = (sender, submission.nonce)
        existing = self._pool.get(key)
        if existing is not None:
            old = existing.submission
            if (
                submission.max_fee_per_gas < _bumped(old.max_fee_per_gas)
                or submission.max_priority_fee_per_gas < _bumped(old.max_priority_fee_per_gas)
            ):
                raise ReplacementUnderpricedError(
                    "replacement transaction underpriced",
                    {"nonce": submission.nonce, "replaced": old.tx_hash},
                )
            self._logger.debug(
                "Replacing pending transaction",
                extra={"context": {"nonce": submission.nonce, "old": old.tx_hash, "new": submission.tx_hash}},
            )

        held = self._hold_next > 0
        if held:
            self._hold_next -= 1
        self._pool[key] = _PoolEntry(submission, held=held)
        self._seen_hashes.add(submission.tx_hash)
        self.sent.append(submission)

        if self.auto_mine:
            self.mine_block()
        return submission.tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        return self._receipts.get(tx_hash)

    # ------------------------------------------------------------------
    # Mining
    # ------------------------------------------------------------------

    def mine_block(self) -> List[Receipt]:
        """Mine every executable pending transaction into one new block."""
        self._block += 1
        mined: List[Receipt] = []
        senders = sorted({sender for sender, _ in self._pool})
        for sender in senders:
            while True:
                key = (sender, self.confirmed_nonce(sender))
                entry = self._pool.get(key)
                if entry is None or entry.held:
                    break
                del self._pool[key]
                mined.append(self._execute(entry.submission))
                self._confirmed_nonces[sender] = key[1] + 1
        return mined

    def _execute(self, submission: SignedSubmission) -> Receipt:
        gas_price = self._effective_price(
            submission.max_fee_per_gas, submission.max_priority_fee_per_gas
        )
        outcome: Optional[SettlementOutcome] = None
        decoded = self._decode(submission)
        hop_count = self._hop_count(decoded[2]) if decoded else 0
        gas_used = settlement_gas(hop_count)
        if submission.gas_limit and submission.gas_limit < gas_used:
            # Out of gas: the call never completes
            gas_used = submission.gas_limit
        elif decoded is not None:
            asset, amount, route = decoded
            call = CallContext(submission.sender, gas_price, self._context.now())
            outcome = self.program.initiate(call, asset, amount, route)

        logs: Tuple[LogEntry, ...] = ()
        if outcome is not None:
            logs = tuple(
                encode_event_log(event, self.program.address)
                for event in outcome.events
                if isinstance(event, _LOGGED)
            )
        receipt = Receipt(
            tx_hash=submission.tx_hash,
            block_number=self._block,
            status=1 if outcome is not None and outcome.success else 0,
            gas_used=gas_used,
            effective_gas_price=gas_price,
            logs=logs,
        )
        self._receipts[submission.tx_hash] = receipt
        self._logger.debug(
            "Mined transaction",
            extra={"context": {
                "tx_hash": submission.tx_hash,
                "block": self._block,
                "status": receipt.status,
                "reason": outcome.reason if outcome else "not a settlement call",
            }},
        )
        return receipt

    def _decode(self, submission: SignedSubmission) -> Optional[Tuple[str, int, bytes]]:
        if normalize_address(submission.to) != normalize_address(self.program.address):
            return None
        try:
            return decode_call(submission.data)
        except ValidationError:
            return None

    @staticmethod
    def _hop_count(route: bytes) -> int:
        try:
            return len(decode_route(route).hops)
        except FlashArbError:
            return 0
