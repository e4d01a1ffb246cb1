# PATH: settlement/codec.py
"""
Wire formats of the settlement program.

CALL FORMAT:
    selector(initiate(address,uint256,bytes)) ++ abi.encode(asset, amount, route)

ROUTE PAYLOAD (abi tuple):
    (uint8[] venues, address[] tokensIn, address[] tokensOut,
     uint256[] minOuts, bytes[] params, uint256 minProfit)
    All five arrays have the same length. minProfit is frozen at encode time.

EVENT LOGS:
    topic0 = keccak(signature); indexed args follow as topics; the rest is ABI data.
    ExecutionSucceeded(address indexed asset, uint256 amount, uint256 profit, uint8[] venues)
    ExecutionFailed(address indexed asset, uint256 amount, string reason)
    BreakerTripped(uint256 cumulativeLoss)
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError, EncodingError
from eth_utils import event_signature_to_log_topic, function_signature_to_4byte_selector

from core.exceptions import RouteInvalidError, ValidationError
from core.models import LogEntry, normalize_address
from settlement.events import BreakerTripped, ExecutionFailed, ExecutionSucceeded, LoggedEvent

INITIATE_SIGNATURE = "initiate(address,uint256,bytes)"
INITIATE_SELECTOR: bytes = function_signature_to_4byte_selector(INITIATE_SIGNATURE)

ROUTE_TYPES = ["uint8[]", "address[]", "address[]", "uint256[]", "bytes[]", "uint256"]
CALL_TYPES = ["address", "uint256", "bytes"]

EXECUTION_SUCCEEDED_SIGNATURE = "ExecutionSucceeded(address,uint256,uint256,uint8[])"
EXECUTION_FAILED_SIGNATURE = "ExecutionFailed(address,uint256,string)"
BREAKER_TRIPPED_SIGNATURE = "BreakerTripped(uint256)"

EXECUTION_SUCCEEDED_TOPIC: bytes = event_signature_to_log_topic(EXECUTION_SUCCEEDED_SIGNATURE)
EXECUTION_FAILED_TOPIC: bytes = event_signature_to_log_topic(EXECUTION_FAILED_SIGNATURE)
BREAKER_TRIPPED_TOPIC: bytes = event_signature_to_log_topic(BREAKER_TRIPPED_SIGNATURE)


@dataclass(frozen=True)
class RouteHop:
    venue: int
    token_in: str
    token_out: str
    min_out: int
    params: bytes


@dataclass(frozen=True)
class RoutePayload:
    hops: Tuple[RouteHop, ...]
    min_profit: int

    @property
    def venues(self) -> Tuple[int, ...]:
        return tuple(h.venue for h in self.hops)


# ============================================================================
# ROUTE
# ============================================================================

def encode_route_lists(
    venues: List[int],
    tokens_in: List[str],
    tokens_out: List[str],
    min_outs: List[int],
    params: List[bytes],
    min_profit: int,
) -> bytes:
    """Encode the parallel-list form. Length-mismatched lists are rejected."""
    lengths = {len(venues), len(tokens_in), len(tokens_out), len(min_outs), len(params)}
    if len(lengths) != 1:
        raise RouteInvalidError(
            "Route lists have mismatched lengths",
            {
                "venues": len(venues),
                "tokens_in": len(tokens_in),
                "tokens_out": len(tokens_out),
                "min_outs": len(min_outs),
                "params": len(params),
            },
        )
    try:
        return encode(
            ROUTE_TYPES,
            [list(venues), list(tokens_in), list(tokens_out), list(min_outs), list(params), min_profit],
        )
    except (EncodingError, TypeError, ValueError) as e:
        raise RouteInvalidError(f"Route not encodable: {e}")


def encode_route(payload: RoutePayload) -> bytes:
    return encode_route_lists(
        [h.venue for h in payload.hops],
        [h.token_in for h in payload.hops],
        [h.token_out for h in payload.hops],
        [h.min_out for h in payload.hops],
        [h.params for h in payload.hops],
        payload.min_profit,
    )


def decode_route(data: bytes) -> RoutePayload:
    try:
        venues, tokens_in, tokens_out, min_outs, params, min_profit = decode(ROUTE_TYPES, data)
    except (DecodingError, TypeError, ValueError) as e:
        raise RouteInvalidError(f"Route not decodable: {e}")
    if not len(venues) == len(tokens_in) == len(tokens_out) == len(min_outs) == len(params):
        raise RouteInvalidError("Route lists have mismatched lengths")
    hops = tuple(
        RouteHop(
            venue=int(v),
            token_in=normalize_address(ti),
            token_out=normalize_address(to),
            min_out=int(mo),
            params=bytes(p),
        )
        for v, ti, to, mo, p in zip(venues, tokens_in, tokens_out, min_outs, params)
    )
    return RoutePayload(hops=hops, min_profit=int(min_profit))


# ============================================================================
# CALL
# ============================================================================

def encode_call(asset: str, amount: int, route: bytes) -> bytes:
    try:
        return INITIATE_SELECTOR + encode(CALL_TYPES, [asset, amount, route])
    except (EncodingError, TypeError, ValueError) as e:
        raise ValidationError(f"Call not encodable: {e}")


def decode_call(data: bytes) -> Tuple[str, int, bytes]:
    """Returns (asset, amount, route bytes)."""
    if data[:4] != INITIATE_SELECTOR:
        raise ValidationError(
            "Unknown function selector", {"selector": "0x" + data[:4].hex()}
        )
    try:
        asset, amount, route = decode(CALL_TYPES, data[4:])
    except (DecodingError, TypeError, ValueError) as e:
        raise ValidationError(f"Call not decodable: {e}")
    return normalize_address(asset), int(amount), bytes(route)


# ============================================================================
# EVENTS
# ============================================================================

def _address_topic(address: str) -> bytes:
    return encode(["address"], [address])


def encode_event_log(event: LoggedEvent, emitter: str) -> LogEntry:
    if isinstance(event, ExecutionSucceeded):
        return LogEntry(
            address=emitter,
            topics=(EXECUTION_SUCCEEDED_TOPIC, _address_topic(event.asset)),
            data=encode(["uint256", "uint256", "uint8[]"], [event.amount, event.profit, list(event.venues)]),
        )
    if isinstance(event, ExecutionFailed):
        return LogEntry(
            address=emitter,
            topics=(EXECUTION_FAILED_TOPIC, _address_topic(event.asset)),
            data=encode(["uint256", "string"], [event.amount, event.reason]),
        )
    if isinstance(event, BreakerTripped):
        return LogEntry(
            address=emitter,
            topics=(BREAKER_TRIPPED_TOPIC,),
            data=encode(["uint256"], [event.cumulative_loss]),
        )
    raise TypeError(f"Event {type(event).__name__} has no log encoding")


def decode_event_log(log: LogEntry) -> Optional[LoggedEvent]:
    """Decode a settlement log; None for logs from other event signatures."""
    if not log.topics:
        return None
    topic0 = bytes(log.topics[0])
    if topic0 == EXECUTION_SUCCEEDED_TOPIC:
        (asset,) = decode(["address"], bytes(log.topics[1]))
        amount, profit, venues = decode(["uint256", "uint256", "uint8[]"], log.data)
        return ExecutionSucceeded(normalize_address(asset), amount, profit, tuple(venues))
    if topic0 == EXECUTION_FAILED_TOPIC:
        (asset,) = decode(["address"], bytes(log.topics[1]))
        amount, reason = decode(["uint256", "string"], log.data)
        return ExecutionFailed(normalize_address(asset), amount, reason)
    if topic0 == BREAKER_TRIPPED_TOPIC:
        (loss,) = decode(["uint256"], log.data)
        return BreakerTripped(loss)
    return None
