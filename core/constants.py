# PATH: core/constants.py
"""
Constants for FLASHARB.

Contains enums, defaults, and configuration constants shared by the
settlement program and the transaction orchestrator.

Amounts are integers in the asset's smallest unit (wei for ETH-like assets).
Fees and thresholds are expressed in basis points (1 bps = 0.01%).
"""

from enum import Enum, IntEnum
from typing import Final

# =============================================================================
# UNITS
# =============================================================================

BPS_DENOMINATOR: Final[int] = 10_000
GWEI: Final[int] = 10**9
ETHER: Final[int] = 10**18

# =============================================================================
# SETTLEMENT PROGRAM DEFAULTS
# =============================================================================

# Flash loan premium charged by the lender (Aave v3 default)
DEFAULT_FLASH_LOAN_FEE_BPS: Final[int] = 9

# Haircut applied to every hop's externally supplied minimum output
DEFAULT_MAX_SLIPPAGE_BPS: Final[int] = 50

# Minimum profit relative to the borrowed amount
DEFAULT_MIN_PROFIT_BPS: Final[int] = 30

# Gas model: flash loan overhead plus a fixed cost per hop
BASE_SETTLEMENT_GAS: Final[int] = 150_000
GAS_PER_HOP: Final[int] = 100_000
DEFAULT_GAS_LIMIT: Final[int] = 500_000

# =============================================================================
# ORCHESTRATOR DEFAULTS
# =============================================================================

GAS_LIMIT_SAFETY_MARGIN_BPS: Final[int] = 2_000  # +20%
GAS_CACHE_TTL_MS: Final[int] = 5_000
NONCE_TTL_MS: Final[int] = 5_000

FALLBACK_BASE_FEE: Final[int] = 20 * GWEI
FALLBACK_PRIORITY_FEE: Final[int] = 2 * GWEI
MAX_GAS_PRICE: Final[int] = 100 * GWEI

FEE_HISTORY_BLOCKS: Final[int] = 10
FEE_HISTORY_PERCENTILES: Final[tuple[int, ...]] = (25, 50, 75)

# Adaptive strategy congestion thresholds (pending tx count)
CONGESTION_MEDIUM: Final[int] = 50
CONGESTION_HIGH: Final[int] = 100

DEFAULT_MAX_ATTEMPTS: Final[int] = 3
DEFAULT_RETRY_DELAY_S: Final[float] = 1.0
DEFAULT_BACKOFF_MULTIPLIER: Final[float] = 2.0
DEFAULT_MAX_RETRY_DELAY_S: Final[float] = 10.0

DEFAULT_CONFIRMATIONS: Final[int] = 1
DEFAULT_CONFIRMATION_TIMEOUT_S: Final[float] = 120.0
DEFAULT_POLL_INTERVAL_S: Final[float] = 2.0

DEFAULT_MAX_CONCURRENT: Final[int] = 4

# Opportunity lifetime when the producer does not set one
OPPORTUNITY_DEADLINE_MS: Final[int] = 30_000

DAY_WINDOW_MS: Final[int] = 86_400_000


class VenueKind(IntEnum):
    """
    Closed set of trading venues a hop can execute on.

    The integer value is the uint8 written into the encoded route.
    """
    UNISWAP_V3 = 1
    SUSHISWAP = 2
    CURVE = 3
    BALANCER = 4
    ONEINCH = 5

    @property
    def label(self) -> str:
        return self.name.lower()


class GasStrategy(str, Enum):
    """Gas pricing strategies, most aggressive first."""
    AGGRESSIVE = "aggressive"
    NORMAL = "normal"
    CONSERVATIVE = "conservative"
    ADAPTIVE = "adaptive"


class TxState(str, Enum):
    """Per-submission transaction state."""
    PENDING = "pending"
    SENT = "sent"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class ErrorCode(str, Enum):
    """
    Error taxonomy.

    Every failed ExecutionResult carries exactly one of these codes.
    """
    # Rejected before submission
    ROUTE_INVALID = "ROUTE_INVALID"
    STALE_OPPORTUNITY = "STALE_OPPORTUNITY"
    RISK_DISALLOWED = "RISK_DISALLOWED"
    BREAKER_TRIPPED = "BREAKER_TRIPPED"

    # Simulation
    SIMULATION_REVERT = "SIMULATION_REVERT"

    # Transport (retryable)
    RETRYABLE_TRANSPORT = "RETRYABLE_TRANSPORT"
    NONCE_CONFLICT = "NONCE_CONFLICT"
    REPLACEMENT_UNDERPRICED = "REPLACEMENT_UNDERPRICED"
    TRANSPORT_TIMEOUT = "TRANSPORT_TIMEOUT"

    # Terminal after submission
    RETRY_EXHAUSTED = "RETRY_EXHAUSTED"
    CONFIRMATION_TIMEOUT = "CONFIRMATION_TIMEOUT"
    ON_CHAIN_REVERT = "ON_CHAIN_REVERT"

    # Program admin tier
    ACCESS_DENIED = "ACCESS_DENIED"

    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"

    UNKNOWN = "UNKNOWN"


# Reason strings emitted by the settlement program
class RevertReason:
    """Canonical failure reasons carried by ExecutionFailed events."""
    INSUFFICIENT_PROFIT = "insufficient profit"
    UNAUTHORIZED_CALLER = "unauthorized caller"
    FEE_CEILING_EXCEEDED = "network fee above ceiling"
    LOAN_CAP_EXCEEDED = "loan amount above cap"
    PAUSED = "program paused"
    REENTRANT_CALL = "reentrant call"
    UNKNOWN_VENUE = "unknown venue"
    INVALID_ROUTE = "invalid route"
    INVALID_AMOUNT = "invalid amount"
    LENDER_LIQUIDITY = "insufficient lender liquidity"
    REPAYMENT_FAILED = "repayment failed"
