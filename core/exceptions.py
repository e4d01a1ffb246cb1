# PATH: core/exceptions.py
"""
Typed exceptions for FLASHARB.

Errors are split by how the orchestrator must react to them:
- fatal before submission (route invalid, stale, risk/breaker refusal)
- fatal simulation revert (reason surfaced verbatim)
- retryable transport (nonce conflict, underpriced replacement, timeout)
- terminal after submission (on-chain revert, retries exhausted, stalled confirmation)
"""

from typing import Optional

from core.constants import ErrorCode


class FlashArbError(Exception):
    """Base exception for FLASHARB."""

    retryable = False

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class ValidationError(FlashArbError):
    """Input failed validation."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.ROUTE_INVALID, details)


class RouteInvalidError(ValidationError):
    """Hop sequence is malformed or does not close on the borrowed asset."""
    pass


class StaleOpportunityError(FlashArbError):
    """Opportunity deadline elapsed before submission."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.STALE_OPPORTUNITY, details)


class RiskDisallowedError(FlashArbError):
    """Risk gate refused the trade."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.RISK_DISALLOWED, details)


class BreakerTrippedError(FlashArbError):
    """Circuit breaker is tripped; no new submissions."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.BREAKER_TRIPPED, details)


class SimulationRevertError(FlashArbError):
    """Dry run predicted a revert. Never retried."""

    def __init__(self, reason: str, details: Optional[dict] = None):
        super().__init__(reason, ErrorCode.SIMULATION_REVERT, details)
        self.reason = reason


class OnChainRevertError(FlashArbError):
    """Mined transaction reverted."""

    def __init__(self, reason: str, details: Optional[dict] = None):
        super().__init__(reason, ErrorCode.ON_CHAIN_REVERT, details)
        self.reason = reason


class AccessDeniedError(FlashArbError):
    """Caller lacks the required authorization tier."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.ACCESS_DENIED, details)


class InfraError(FlashArbError):
    """Infrastructure-related errors (RPC, connectivity) that are not retryable."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INFRA_RPC_ERROR,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class RPCError(InfraError):
    """Node answered a JSON-RPC call with an error object."""

    def __init__(self, message: str, rpc_code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INFRA_RPC_ERROR, details)
        self.rpc_code = rpc_code


class TransportError(FlashArbError):
    """Transient submission failure. Re-enters the backoff loop."""

    retryable = True

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RETRYABLE_TRANSPORT,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class NonceConflictError(TransportError):
    """Nonce already used or otherwise invalidated."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.NONCE_CONFLICT, details)


class ReplacementUnderpricedError(TransportError):
    """Replacement transaction did not bump fees enough."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.REPLACEMENT_UNDERPRICED, details)


class TransportTimeoutError(TransportError):
    """Request timed out."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.TRANSPORT_TIMEOUT, details)


class RetryExhaustedError(FlashArbError):
    """Retryable operation failed on every attempt."""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(
            f"Gave up after {attempts} attempts: {last_error}",
            ErrorCode.RETRY_EXHAUSTED,
            {"attempts": attempts, "last_error": str(last_error)},
        )
        self.last_error = last_error
        self.attempts = attempts


class ConfirmationTimeoutError(FlashArbError):
    """Receipt did not reach the required confirmations in time."""

    def __init__(self, tx_hash: str, timeout_s: float):
        super().__init__(
            f"Transaction {tx_hash} not confirmed within {timeout_s}s",
            ErrorCode.CONFIRMATION_TIMEOUT,
            {"tx_hash": tx_hash, "timeout_s": timeout_s},
        )
        self.tx_hash = tx_hash


def is_retryable(exc: BaseException) -> bool:
    """True for causes that may succeed on another attempt."""
    return isinstance(exc, FlashArbError) and exc.retryable
