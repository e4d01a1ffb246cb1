# PATH: execution/confirmation.py
"""
Confirmation waiting and settlement outcome parsing.

CONFIRMATION CONTRACT:
- poll get_receipt every poll_interval_s until the receipt has
  `confirmations` blocks on top of (and including) its own block
- transient transport errors while polling are logged and polling continues
- if timeout_s elapses first, ConfirmationTimeoutError; the wait is abandoned,
  nothing is cancelled on-chain
- the receipt is returned whatever its status; parse_settlement() decides
  success vs on-chain revert
"""

from dataclasses import dataclass
from typing import Optional

from chains.client import ChainClient
from core.constants import (
    DEFAULT_CONFIRMATION_TIMEOUT_S,
    DEFAULT_CONFIRMATIONS,
    DEFAULT_POLL_INTERVAL_S,
)
from core.context import ServiceContext
from core.exceptions import ConfirmationTimeoutError, TransportError
from core.models import Receipt, same_address
from settlement.codec import decode_event_log
from settlement.events import BreakerTripped, ExecutionFailed, ExecutionSucceeded

GENERIC_REVERT_REASON = "execution reverted"


@dataclass(frozen=True)
class SettlementReport:
    """What a receipt says about the settlement."""
    success: bool
    profit: int = 0
    reason: Optional[str] = None
    breaker_tripped: bool = False


def parse_settlement(receipt: Receipt, program_address: str) -> SettlementReport:
    """
    Read the program's events from a receipt.

    Success requires status 1 and an ExecutionSucceeded log from the program.
    A failed receipt takes its reason from the ExecutionFailed log when present.
    """
    succeeded: Optional[ExecutionSucceeded] = None
    failed: Optional[ExecutionFailed] = None
    tripped = False
    for log in receipt.logs:
        if not same_address(log.address, program_address):
            continue
        event = decode_event_log(log)
        if isinstance(event, ExecutionSucceeded):
            succeeded = event
        elif isinstance(event, ExecutionFailed):
            failed = event
        elif isinstance(event, BreakerTripped):
            tripped = True

    if receipt.succeeded and succeeded is not None:
        return SettlementReport(success=True, profit=succeeded.profit, breaker_tripped=tripped)
    if failed is not None:
        reason = failed.reason
    elif receipt.succeeded:
        reason = "no settlement event in receipt"
    else:
        reason = GENERIC_REVERT_REASON
    return SettlementReport(success=False, reason=reason, breaker_tripped=tripped)


class ConfirmationWaiter:
    def __init__(
        self,
        client: ChainClient,
        context: Optional[ServiceContext] = None,
        confirmations: int = DEFAULT_CONFIRMATIONS,
        timeout_s: float = DEFAULT_CONFIRMATION_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ):
        if confirmations < 1:
            raise ValueError(f"confirmations must be >= 1, got {confirmations}")
        self._client = client
        self._context = context or ServiceContext.default()
        self._logger = self._context.logger("execution.confirmation")
        self.confirmations = confirmations
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s

    async def probe(self, tx_hash: str) -> Optional[Receipt]:
        """Single receipt lookup; transport errors count as 'not found yet'."""
        try:
            return await self._client.get_receipt(tx_hash)
        except TransportError as e:
            self._logger.debug(
                "Receipt lookup failed",
                extra={"context": {"tx_hash": tx_hash, "error": str(e)}},
            )
            return None

    async def wait(self, tx_hash: str) -> Receipt:
        deadline_ms = self._context.now() + int(self.timeout_s * 1000)
        while True:
            receipt = await self.probe(tx_hash)
            if receipt is not None:
                head = await self._head(receipt.block_number)
                if head - receipt.block_number + 1 >= self.confirmations:
                    return receipt
            if self._context.now() >= deadline_ms:
                self._logger.warning(
                    "Confirmation timed out",
                    extra={"context": {"tx_hash": tx_hash, "timeout_s": self.timeout_s}},
                )
                raise ConfirmationTimeoutError(tx_hash, self.timeout_s)
            await self._context.sleep(self.poll_interval_s)

    async def _head(self, fallback: int) -> int:
        if self.confirmations == 1:
            return fallback
        try:
            return await self._client.block_number()
        except TransportError as e:
            self._logger.debug(
                "Block number lookup failed",
                extra={"context": {"error": str(e)}},
            )
            return fallback
