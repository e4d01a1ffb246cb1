# PATH: execution/__init__.py
"""
Execution layer: the transaction orchestrator and its stages.

- encoding: opportunity -> settlement call data
- simulator: pre-submission dry run
- gas: fee strategies over a cached fee snapshot
- nonce: per-signer nonce cursor
- retry: exponential backoff for transport errors
- state_machine: per-submission TransactionStatus
- confirmation: receipt polling and settlement event parsing
- journal: ExecutionResult sink
- orchestrator: the pipeline tying the stages together
"""

from execution.confirmation import ConfirmationWaiter, SettlementReport, parse_settlement
from execution.encoding import EncodedCall, RouteEncoder
from execution.gas import GasPricer, GasPricerConfig, compute_gas_parameters
from execution.journal import ExecutionJournal
from execution.nonce import NonceManager
from execution.orchestrator import OrchestratorConfig, OrchestratorMetrics, TransactionOrchestrator
from execution.retry import RetryPolicy, retry_async
from execution.simulator import SimulationResult, SimulatorConfig, TransactionSimulator
from execution.state_machine import (
    VALID_TRANSITIONS,
    InvalidTransitionError,
    StateTransition,
    StatusUpdate,
    TransactionStatus,
)

__all__ = [
    # Orchestrator
    "OrchestratorConfig",
    "OrchestratorMetrics",
    "TransactionOrchestrator",
    # Stages
    "ConfirmationWaiter",
    "EncodedCall",
    "ExecutionJournal",
    "GasPricer",
    "GasPricerConfig",
    "NonceManager",
    "RetryPolicy",
    "RouteEncoder",
    "SettlementReport",
    "SimulationResult",
    "SimulatorConfig",
    "TransactionSimulator",
    "compute_gas_parameters",
    "parse_settlement",
    "retry_async",
    # State machine
    "VALID_TRANSITIONS",
    "InvalidTransitionError",
    "StateTransition",
    "StatusUpdate",
    "TransactionStatus",
]
