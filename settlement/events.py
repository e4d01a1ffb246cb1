# PATH: settlement/events.py
"""
Typed payloads published by the settlement program.

ExecutionSucceeded, ExecutionFailed and BreakerTripped are also written into
receipts as EVM-style logs (see settlement.codec). Admin events are published
on the program's channel only.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class ExecutionSucceeded:
    asset: str
    amount: int
    profit: int
    venues: Tuple[int, ...]


@dataclass(frozen=True)
class ExecutionFailed:
    asset: str
    amount: int
    reason: str


@dataclass(frozen=True)
class BreakerTripped:
    cumulative_loss: int


@dataclass(frozen=True)
class AdminChanged:
    """Owner-tier mutation; `setting` names the field, values are before/after."""
    actor: str
    setting: str
    subject: Optional[str] = None
    old_value: Optional[Union[int, str, bool]] = None
    new_value: Optional[Union[int, str, bool]] = None


@dataclass(frozen=True)
class Swept:
    actor: str
    asset: str
    recipient: str
    amount: int


LoggedEvent = Union[ExecutionSucceeded, ExecutionFailed, BreakerTripped]
SettlementEvent = Union[ExecutionSucceeded, ExecutionFailed, BreakerTripped, AdminChanged, Swept]
