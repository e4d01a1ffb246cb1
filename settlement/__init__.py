"""
settlement - Atomic settlement program (loan -> swap -> repay).

- ledger.py: Ledger with staged all-or-nothing writes
- lender.py: Flash lender
- pools.py: Constant-product and stable-swap pool models
- venues.py: One Venue per VenueKind, param codecs
- codec.py: Call, route and event-log wire formats
- events.py: Typed event payloads
- program.py: SettlementProgram
- market.py: Builds a local market (ledger, pools, program) from config
"""

from settlement.codec import decode_call, decode_route, encode_call, encode_route
from settlement.events import BreakerTripped, ExecutionFailed, ExecutionSucceeded
from settlement.ledger import Ledger, StagedLedger
from settlement.lender import FlashLender
from settlement.pools import ConstantProductPool, StableSwapPool, SwapResult
from settlement.program import CallContext, SettlementOutcome, SettlementProgram
from settlement.venues import Venue, default_venues

__all__ = [
    "BreakerTripped",
    "CallContext",
    "ConstantProductPool",
    "ExecutionFailed",
    "ExecutionSucceeded",
    "FlashLender",
    "Ledger",
    "SettlementOutcome",
    "SettlementProgram",
    "StableSwapPool",
    "StagedLedger",
    "SwapResult",
    "Venue",
    "decode_call",
    "decode_route",
    "default_venues",
    "encode_call",
    "encode_route",
]
