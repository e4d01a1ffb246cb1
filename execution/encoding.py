# PATH: execution/encoding.py
"""
Route encoding: ArbitrageOpportunity -> settlement call data.

ENCODE CONTRACT:
- non-empty hop list, positive borrow amount, positive hop input amounts
- hop chain is contiguous and closes on the borrowed asset
- every venue is in the closed VenueKind set and its params decode with
  that venue's codec
- min profit is frozen into the route here; the program never accepts less

Any violation raises RouteInvalidError before anything touches the chain.
"""

from dataclasses import dataclass

from core.constants import DEFAULT_MIN_PROFIT_BPS
from core.exceptions import RouteInvalidError
from core.logging import get_logger
from core.math import bps_of
from core.models import ArbitrageOpportunity
from settlement.codec import encode_call, encode_route_lists
from settlement.venues import decode_venue_params, resolve_venue_kind

logger = get_logger(__name__)


@dataclass(frozen=True)
class EncodedCall:
    """Call data for one opportunity, ready for simulation and signing."""
    to: str
    data: bytes
    route: bytes
    min_profit: int
    hop_count: int


class RouteEncoder:
    """Encodes opportunities for one settlement program address."""

    def __init__(self, settlement_address: str, min_profit_bps: int = DEFAULT_MIN_PROFIT_BPS):
        self.settlement_address = settlement_address
        self.min_profit_bps = min_profit_bps

    def min_profit_for(self, opportunity: ArbitrageOpportunity) -> int:
        floor = bps_of(opportunity.amount, self.min_profit_bps)
        if opportunity.min_profit is None:
            return floor
        return max(opportunity.min_profit, floor)

    def validate(self, opportunity: ArbitrageOpportunity) -> None:
        opportunity.validate_closed_loop()
        for index, hop in enumerate(opportunity.hops):
            if hop.amount_in <= 0:
                raise RouteInvalidError(
                    f"Hop {index} has non-positive input amount",
                    {"hop": index, "amount_in": str(hop.amount_in)},
                )
            if hop.min_amount_out < 0:
                raise RouteInvalidError(
                    f"Hop {index} has negative minimum output",
                    {"hop": index, "min_amount_out": str(hop.min_amount_out)},
                )
            kind = resolve_venue_kind(hop.venue)
            decode_venue_params(kind, hop.params)

    def encode(self, opportunity: ArbitrageOpportunity) -> EncodedCall:
        self.validate(opportunity)
        min_profit = self.min_profit_for(opportunity)
        hops = opportunity.hops
        route = encode_route_lists(
            [int(h.venue) for h in hops],
            [h.token_in for h in hops],
            [h.token_out for h in hops],
            [h.min_amount_out for h in hops],
            [h.params for h in hops],
            min_profit,
        )
        data = encode_call(opportunity.asset, opportunity.amount, route)
        logger.debug(
            "Route encoded",
            extra={"context": {
                "opportunity_id": opportunity.opportunity_id,
                "hops": len(hops),
                "min_profit": min_profit,
                "calldata_bytes": len(data),
            }},
        )
        return EncodedCall(
            to=self.settlement_address,
            data=data,
            route=route,
            min_profit=min_profit,
            hop_count=len(hops),
        )
