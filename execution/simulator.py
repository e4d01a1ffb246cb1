# PATH: execution/simulator.py
"""
Pre-submission simulation.

SIMULATION CONTRACT:
====================
simulate(call, sender, gas) -> SimulationResult
  - dry run of the exact call data against current chain state
  - a predicted revert raises SimulationRevertError with the reason verbatim;
    it is terminal for the attempt and never retried
  - on success, gas_limit = gas_estimate * (1 + safety margin), capped
    at max_gas_limit
====================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from chains.client import CallRequest, ChainClient
from core.constants import DEFAULT_GAS_LIMIT, GAS_LIMIT_SAFETY_MARGIN_BPS
from core.exceptions import SimulationRevertError
from core.logging import get_logger
from core.math import add_margin
from core.models import GasParameters
from execution.encoding import EncodedCall

logger = get_logger(__name__)


@dataclass
class SimulationResult:
    """Result of a successful dry run."""
    gas_estimate: int
    gas_limit: int
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gas_estimate": self.gas_estimate,
            "gas_limit": self.gas_limit,
            "metadata": self.metadata,
        }


@dataclass
class SimulatorConfig:
    """Configuration for the pre-submission simulator."""
    safety_margin_bps: int = GAS_LIMIT_SAFETY_MARGIN_BPS
    max_gas_limit: int = DEFAULT_GAS_LIMIT * 4


class TransactionSimulator:
    """Dry-runs settlement calls through a ChainClient."""

    def __init__(self, client: ChainClient, config: Optional[SimulatorConfig] = None):
        self._client = client
        self.config = config or SimulatorConfig()

    async def simulate(
        self,
        call: EncodedCall,
        sender: str,
        gas: Optional[GasParameters] = None,
    ) -> SimulationResult:
        request = CallRequest(
            sender=sender,
            to=call.to,
            data=call.data,
            max_fee_per_gas=gas.max_fee if gas else 0,
            max_priority_fee_per_gas=gas.max_priority_fee if gas else 0,
        )
        try:
            estimate = await self._client.simulate(request)
        except SimulationRevertError as e:
            logger.info(
                "Simulation predicted revert",
                extra={"context": {"reason": e.reason, "to": call.to}},
            )
            raise

        if estimate > self.config.max_gas_limit:
            raise SimulationRevertError(
                "gas estimate above configured maximum",
                {"gas_estimate": estimate, "max_gas_limit": self.config.max_gas_limit},
            )
        gas_limit = min(add_margin(estimate, self.config.safety_margin_bps), self.config.max_gas_limit)
        return SimulationResult(
            gas_estimate=estimate,
            gas_limit=gas_limit,
            metadata={"hops": call.hop_count},
        )
