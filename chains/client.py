# PATH: chains/client.py
"""
Chain access interface used by the orchestrator.

Two implementations:
- chains.rpc_client.RPCChainClient: eth_* JSON-RPC over RPCProvider (live)
- chains.local.LocalChain: in-process chain running a SettlementProgram (paper, tests)

Every method raises typed errors from core.exceptions; transport-level
failures are TransportError subclasses so the retry loop can pick them up.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from core.models import FeeSnapshot, Receipt


@dataclass(frozen=True)
class CallRequest:
    """Read-only call / gas estimation request."""
    sender: str
    to: str
    data: bytes
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    gas: Optional[int] = None

    def to_rpc(self) -> Dict[str, Any]:
        tx: Dict[str, Any] = {
            "from": self.sender,
            "to": self.to,
            "data": "0x" + self.data.hex(),
        }
        if self.max_fee_per_gas:
            tx["maxFeePerGas"] = hex(self.max_fee_per_gas)
            tx["maxPriorityFeePerGas"] = hex(self.max_priority_fee_per_gas)
        if self.gas:
            tx["gas"] = hex(self.gas)
        return tx


@dataclass(frozen=True)
class SignedSubmission:
    """A signed EIP-1559 transaction ready for eth_sendRawTransaction."""
    raw: bytes
    tx_hash: str
    sender: str
    nonce: int
    to: str
    data: bytes
    gas_limit: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    fields: Dict[str, Any] = field(default_factory=dict)


class ChainClient(ABC):
    """Abstract chain access."""

    chain_id: int

    @abstractmethod
    async def block_number(self) -> int:
        ...

    @abstractmethod
    async def pending_nonce(self, address: str) -> int:
        """Transaction count including pending transactions."""

    @abstractmethod
    async def fee_snapshot(self) -> FeeSnapshot:
        """Base fee, recent priority-fee history, pending transaction count."""

    @abstractmethod
    async def simulate(self, request: CallRequest) -> int:
        """
        Dry run against current state. Returns gas used.

        Raises SimulationRevertError with the revert reason on failure.
        """

    @abstractmethod
    async def send(self, submission: SignedSubmission) -> str:
        """Broadcast; returns the transaction hash."""

    @abstractmethod
    async def get_receipt(self, tx_hash: str) -> Optional[Receipt]:
        """Receipt once mined, None while pending or unknown."""

    async def close(self) -> None:
        return None
