# PATH: chains/rpc_client.py
"""
ChainClient over JSON-RPC.

Method mapping:
  block_number   -> eth_blockNumber
  pending_nonce  -> eth_getTransactionCount(address, "pending")
  fee_snapshot   -> eth_feeHistory(10, "latest", [25, 50, 75])
                    + eth_getBlockByNumber("pending", false) for the pending count
  simulate       -> eth_call (revert check) + eth_estimateGas
  send           -> eth_sendRawTransaction
  get_receipt    -> eth_getTransactionReceipt
"""

from typing import Any, List, Optional

from chains.client import CallRequest, ChainClient, SignedSubmission
from chains.providers import RPCProvider
from core.constants import FEE_HISTORY_BLOCKS, FEE_HISTORY_PERCENTILES
from core.exceptions import InfraError, RPCError
from core.logging import get_logger
from core.models import FeeSnapshot, LogEntry, Receipt

logger = get_logger(__name__)

# Index of the 75th percentile inside FEE_HISTORY_PERCENTILES
_REWARD_INDEX = len(FEE_HISTORY_PERCENTILES) - 1


def _int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    return int(value, 16)


def _bytes(value: Optional[str]) -> bytes:
    if not value:
        return b""
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


class RPCChainClient(ChainClient):
    """Live chain access through an RPCProvider."""

    def __init__(self, provider: RPCProvider):
        self._provider = provider
        self.chain_id = provider.chain_id

    async def block_number(self) -> int:
        block, _ = await self._provider.get_block_number()
        return block

    async def pending_nonce(self, address: str) -> int:
        response = await self._provider.call("eth_getTransactionCount", [address, "pending"])
        return _int(response.result)

    async def fee_snapshot(self) -> FeeSnapshot:
        response = await self._provider.call(
            "eth_feeHistory",
            [hex(FEE_HISTORY_BLOCKS), "latest", list(FEE_HISTORY_PERCENTILES)],
        )
        history = response.result or {}
        base_fees: List[str] = history.get("baseFeePerGas") or []
        if not base_fees:
            raise InfraError("eth_feeHistory returned no base fees", details={"result": history})
        rewards = tuple(
            _int(block_rewards[_REWARD_INDEX])
            for block_rewards in (history.get("reward") or [])
            if len(block_rewards) > _REWARD_INDEX
        )
        # The last entry is the base fee of the next block
        base_fee = _int(base_fees[-1])
        oldest = _int(history.get("oldestBlock"))

        return FeeSnapshot(
            base_fee=base_fee,
            priority_fee_history=rewards,
            pending_tx_count=await self._pending_tx_count(),
            block_number=oldest + max(0, len(base_fees) - 2),
        )

    async def _pending_tx_count(self) -> int:
        try:
            response = await self._provider.call("eth_getBlockByNumber", ["pending", False])
        except RPCError as e:
            # Some providers do not expose the pending block
            logger.debug(
                "Pending block unavailable",
                extra={"context": {"error": e.message}},
            )
            return 0
        block = response.result or {}
        return len(block.get("transactions") or [])

    async def simulate(self, request: CallRequest) -> int:
        tx = request.to_rpc()
        await self._provider.call("eth_call", [tx, "pending"])
        response = await self._provider.call("eth_estimateGas", [tx])
        return _int(response.result)

    async def send(self, submission: SignedSubmission) -> str:
        response = await self._provider.call(
            "eth_sendRawTransaction", ["0x" + submission.raw.hex()]
        )
        return response.result or submission.tx_hash

    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        response = await self._provider.call("eth_getTransactionReceipt", [tx_hash])
        raw = response.result
        if not raw:
            return None
        logs = tuple(
            LogEntry(
                address=entry.get("address", ""),
                topics=tuple(_bytes(t) for t in entry.get("topics", [])),
                data=_bytes(entry.get("data")),
            )
            for entry in raw.get("logs", [])
        )
        return Receipt(
            tx_hash=raw.get("transactionHash", tx_hash),
            block_number=_int(raw.get("blockNumber")),
            status=_int(raw.get("status")),
            gas_used=_int(raw.get("gasUsed")),
            effective_gas_price=_int(raw.get("effectiveGasPrice")),
            logs=logs,
        )

    async def close(self) -> None:
        await self._provider.close()
