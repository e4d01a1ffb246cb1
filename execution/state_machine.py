# PATH: execution/state_machine.py
"""
Per-submission transaction status.

TRANSACTION STATE CONTRACT:
===========================

States (TxState):
  PENDING     -> attempt created, nonce acquired, not yet broadcast
  SENT        -> broadcast accepted by the node
  CONFIRMING  -> mined, waiting for the required confirmations
  CONFIRMED   -> receipt reached the required confirmations
  FAILED      -> attempt ended without a confirmed receipt, or reverted

Transitions:
  PENDING     -> SENT        (mark_sent)
  PENDING     -> FAILED      (mark_failed: broadcast rejected)
  SENT        -> CONFIRMING  (mark_confirming)
  SENT        -> FAILED      (mark_failed: dropped, timed out)
  CONFIRMING  -> CONFIRMED   (mark_confirmed)
  CONFIRMING  -> FAILED      (mark_failed: reverted, reorged out)

Exactly one TransactionStatus exists per submission attempt. Retries create
a new one (new nonce or new fees) under the same execution_id.
Observers receive StatusUpdate snapshots, never the live object.

===========================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.constants import TxState
from core.time import ms_to_iso, now_ms

# Valid state transitions
VALID_TRANSITIONS: Dict[TxState, List[TxState]] = {
    TxState.PENDING: [TxState.SENT, TxState.FAILED],
    TxState.SENT: [TxState.CONFIRMING, TxState.FAILED],
    TxState.CONFIRMING: [TxState.CONFIRMED, TxState.FAILED],
    TxState.CONFIRMED: [],  # Terminal state
    TxState.FAILED: [],  # Terminal state
}


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: TxState
    to_state: TxState
    timestamp_ms: int
    reason: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted."""
    pass


@dataclass(frozen=True)
class StatusUpdate:
    """Immutable view of a TransactionStatus at one transition."""
    execution_id: str
    attempt: int
    nonce: int
    state: TxState
    tx_hash: Optional[str]
    block_number: Optional[int]
    failure_reason: Optional[str]
    at_ms: int


@dataclass
class TransactionStatus:
    """
    State machine for one submission attempt.

    Tracks current state and transition history.
    """
    execution_id: str
    attempt: int
    nonce: int
    state: TxState = TxState.PENDING
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    failure_reason: Optional[str] = None
    history: List[StateTransition] = field(default_factory=list)
    created_at_ms: int = field(default_factory=now_ms)

    def can_transition_to(self, new_state: TxState) -> bool:
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition_to(
        self,
        new_state: TxState,
        timestamp_ms: Optional[int] = None,
        reason: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> StateTransition:
        """
        Transition to a new state.

        Raises InvalidTransitionError if transition is not valid.
        """
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in VALID_TRANSITIONS.get(self.state, [])]}"
            )

        transition = StateTransition(
            from_state=self.state,
            to_state=new_state,
            timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
            reason=reason,
            metadata=metadata or {},
        )
        self.history.append(transition)
        self.state = new_state
        return transition

    def mark_sent(self, tx_hash: str, timestamp_ms: Optional[int] = None) -> StateTransition:
        self.tx_hash = tx_hash
        return self.transition_to(TxState.SENT, timestamp_ms, metadata={"tx_hash": tx_hash})

    def mark_confirming(self, block_number: int, timestamp_ms: Optional[int] = None) -> StateTransition:
        self.block_number = block_number
        return self.transition_to(TxState.CONFIRMING, timestamp_ms, metadata={"block_number": block_number})

    def mark_confirmed(self, timestamp_ms: Optional[int] = None) -> StateTransition:
        return self.transition_to(TxState.CONFIRMED, timestamp_ms)

    def mark_failed(self, reason: str, timestamp_ms: Optional[int] = None) -> StateTransition:
        self.failure_reason = reason
        return self.transition_to(TxState.FAILED, timestamp_ms, reason=reason)

    @property
    def is_terminal(self) -> bool:
        return len(VALID_TRANSITIONS.get(self.state, [])) == 0

    @property
    def is_success(self) -> bool:
        return self.state == TxState.CONFIRMED

    @property
    def is_failed(self) -> bool:
        return self.state == TxState.FAILED

    def snapshot(self) -> StatusUpdate:
        return StatusUpdate(
            execution_id=self.execution_id,
            attempt=self.attempt,
            nonce=self.nonce,
            state=self.state,
            tx_hash=self.tx_hash,
            block_number=self.block_number,
            failure_reason=self.failure_reason,
            at_ms=self.history[-1].timestamp_ms if self.history else self.created_at_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "execution_id": self.execution_id,
            "attempt": self.attempt,
            "nonce": self.nonce,
            "state": self.state.value,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "failure_reason": self.failure_reason,
            "is_terminal": self.is_terminal,
            "created_at": ms_to_iso(self.created_at_ms),
            "history": [
                {
                    "from_state": t.from_state.value,
                    "to_state": t.to_state.value,
                    "timestamp": ms_to_iso(t.timestamp_ms),
                    "reason": t.reason,
                    "metadata": t.metadata,
                }
                for t in self.history
            ],
        }
