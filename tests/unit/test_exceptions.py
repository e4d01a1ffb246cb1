"""
Tests for core/exceptions.py

Each exception carries the ErrorCode the orchestrator reports, and only the
transport family is retryable.
"""

import pytest

from core.constants import ErrorCode
from core.exceptions import (
    AccessDeniedError,
    BreakerTrippedError,
    ConfirmationTimeoutError,
    FlashArbError,
    NonceConflictError,
    OnChainRevertError,
    ReplacementUnderpricedError,
    RetryExhaustedError,
    RiskDisallowedError,
    RouteInvalidError,
    RPCError,
    SimulationRevertError,
    StaleOpportunityError,
    TransportError,
    TransportTimeoutError,
    ValidationError,
    is_retryable,
)


class TestErrorCodes:
    @pytest.mark.parametrize(
        "error, code",
        [
            (RouteInvalidError("x"), ErrorCode.ROUTE_INVALID),
            (ValidationError("x"), ErrorCode.ROUTE_INVALID),
            (StaleOpportunityError("x"), ErrorCode.STALE_OPPORTUNITY),
            (RiskDisallowedError("x"), ErrorCode.RISK_DISALLOWED),
            (BreakerTrippedError("x"), ErrorCode.BREAKER_TRIPPED),
            (SimulationRevertError("insufficient profit"), ErrorCode.SIMULATION_REVERT),
            (OnChainRevertError("pool halted"), ErrorCode.ON_CHAIN_REVERT),
            (AccessDeniedError("x"), ErrorCode.ACCESS_DENIED),
            (RPCError("x", rpc_code=-32000), ErrorCode.INFRA_RPC_ERROR),
            (TransportError("x"), ErrorCode.RETRYABLE_TRANSPORT),
            (NonceConflictError("x"), ErrorCode.NONCE_CONFLICT),
            (ReplacementUnderpricedError("x"), ErrorCode.REPLACEMENT_UNDERPRICED),
            (TransportTimeoutError("x"), ErrorCode.TRANSPORT_TIMEOUT),
            (ConfirmationTimeoutError("0xabc", 5.0), ErrorCode.CONFIRMATION_TIMEOUT),
        ],
    )
    def test_code(self, error, code):
        assert error.code == code
        assert str(error).startswith(f"[{code.value}]")

    def test_default_code_is_unknown(self):
        assert FlashArbError("boom").code == ErrorCode.UNKNOWN

    def test_route_invalid_is_validation_error(self):
        assert isinstance(RouteInvalidError("x"), ValidationError)


class TestRetryability:
    @pytest.mark.parametrize(
        "error",
        [TransportError("x"), NonceConflictError("x"), ReplacementUnderpricedError("x"), TransportTimeoutError("x")],
    )
    def test_transport_family_is_retryable(self, error):
        assert is_retryable(error)

    @pytest.mark.parametrize(
        "error",
        [SimulationRevertError("x"), OnChainRevertError("x"), RPCError("x"), ValueError("x")],
    )
    def test_everything_else_is_not(self, error):
        assert not is_retryable(error)


class TestDetails:
    def test_revert_reason_kept_verbatim(self):
        error = SimulationRevertError("insufficient profit", {"gas": 1})
        assert error.reason == "insufficient profit"
        assert error.message == "insufficient profit"
        assert error.details == {"gas": 1}

    def test_retry_exhausted_wraps_last_error(self):
        last = TransportError("connection reset")
        error = RetryExhaustedError(last, 3)

        assert error.code == ErrorCode.RETRY_EXHAUSTED
        assert error.attempts == 3
        assert error.last_error is last
        assert error.message.startswith("Gave up after 3 attempts")

    def test_confirmation_timeout_keeps_hash(self):
        error = ConfirmationTimeoutError("0xabc", 120.0)
        assert error.tx_hash == "0xabc"
        assert error.details["timeout_s"] == 120.0
