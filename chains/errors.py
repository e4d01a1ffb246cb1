# PATH: chains/errors.py
"""
Classification of node error messages into the error taxonomy.

Nodes report submission failures as free-form strings. The orchestrator only
needs to know which of them may succeed on another attempt:

  execution reverted[: reason]                       -> SimulationRevertError(reason)
  nonce too low / already known / nonce has already been used -> NonceConflictError
  replacement transaction underpriced / underpriced / fee too low -> ReplacementUnderpricedError
  timeout / timed out                                -> TransportTimeoutError
  anything else                                      -> RPCError (not retryable)
"""

import re
from typing import Optional

from core.exceptions import (
    FlashArbError,
    NonceConflictError,
    ReplacementUnderpricedError,
    RPCError,
    SimulationRevertError,
    TransportTimeoutError,
)

_NONCE_PATTERNS = ("nonce too low", "already known", "nonce has already been used", "nonce expired")
_UNDERPRICED_PATTERNS = ("replacement transaction underpriced", "underpriced", "fee too low")
_TIMEOUT_PATTERNS = ("timeout", "timed out")
_REVERT_PREFIX = re.compile(r"execution reverted:?\s*(.*)", re.IGNORECASE | re.DOTALL)


def classify_rpc_error(
    message: str,
    rpc_code: Optional[int] = None,
    details: Optional[dict] = None,
) -> FlashArbError:
    """Map a node error message onto a typed exception (returned, not raised)."""
    lowered = message.lower()
    info = dict(details or {})
    info.setdefault("rpc_message", message)
    if rpc_code is not None:
        info.setdefault("rpc_code", rpc_code)

    match = _REVERT_PREFIX.search(message)
    if match:
        reason = match.group(1).strip() or "execution reverted"
        return SimulationRevertError(reason, info)
    if any(p in lowered for p in _NONCE_PATTERNS):
        return NonceConflictError(message, info)
    if any(p in lowered for p in _UNDERPRICED_PATTERNS):
        return ReplacementUnderpricedError(message, info)
    if any(p in lowered for p in _TIMEOUT_PATTERNS):
        return TransportTimeoutError(message, info)
    return RPCError(message, rpc_code=rpc_code, details=info)
