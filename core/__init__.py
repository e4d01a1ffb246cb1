"""
core - Core utilities and models for FLASHARB.

This package contains:
- constants.py: Enums, defaults, revert reasons
- exceptions.py: Typed exceptions with error codes
- models.py: Data models (Hop, ArbitrageOpportunity, GasParameters, Receipt, ExecutionResult)
- math.py: Integer bps arithmetic (no float money)
- time.py: Epoch-ms clock helpers and day windows
- logging.py: Structured JSON logging
- events.py: Typed event channels
- context.py: ServiceContext passed to constructors
"""

from core.constants import ErrorCode, GasStrategy, RevertReason, TxState, VenueKind
from core.context import ServiceContext
from core.events import EventChannel
from core.exceptions import (
    AccessDeniedError,
    BreakerTrippedError,
    ConfirmationTimeoutError,
    FlashArbError,
    InfraError,
    NonceConflictError,
    OnChainRevertError,
    ReplacementUnderpricedError,
    RetryExhaustedError,
    RiskDisallowedError,
    RouteInvalidError,
    SimulationRevertError,
    StaleOpportunityError,
    TransportError,
    TransportTimeoutError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    ArbitrageOpportunity,
    ExecutionResult,
    FeeSnapshot,
    GasParameters,
    Hop,
    LogEntry,
    Receipt,
)

__all__ = [
    # Constants
    "ErrorCode",
    "GasStrategy",
    "RevertReason",
    "TxState",
    "VenueKind",
    # Exceptions
    "AccessDeniedError",
    "BreakerTrippedError",
    "ConfirmationTimeoutError",
    "FlashArbError",
    "InfraError",
    "NonceConflictError",
    "OnChainRevertError",
    "ReplacementUnderpricedError",
    "RetryExhaustedError",
    "RiskDisallowedError",
    "RouteInvalidError",
    "SimulationRevertError",
    "StaleOpportunityError",
    "TransportError",
    "TransportTimeoutError",
    "ValidationError",
    # Models
    "ArbitrageOpportunity",
    "ExecutionResult",
    "FeeSnapshot",
    "GasParameters",
    "Hop",
    "LogEntry",
    "Receipt",
    # Services
    "EventChannel",
    "ServiceContext",
    # Logging
    "get_logger",
    "setup_logging",
]
