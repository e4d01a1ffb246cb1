"""
risk - Circuit breaker and pre/post-trade risk gate.

- breaker.py: DailyLossBreaker (shared by settlement program and gate)
- gate.py: RiskGate, RiskGateState, RiskTicket
"""

from risk.breaker import BreakerTrip, DailyLossBreaker
from risk.gate import RiskGate, RiskGateState, RiskTicket

__all__ = [
    "BreakerTrip",
    "DailyLossBreaker",
    "RiskGate",
    "RiskGateState",
    "RiskTicket",
]
