# PATH: core/math.py
"""
Math utilities for FLASHARB.

On-chain amounts are integers (smallest unit). Basis-point arithmetic is done
in integers with floor rounding, the way the settlement program rounds.
Decimal is used only at the edges (human input/output). No float money.
"""

from decimal import Decimal, InvalidOperation, ROUND_DOWN
from typing import Union

from core.constants import BPS_DENOMINATOR


def safe_decimal(value: Union[str, int, float, Decimal, None], default: Decimal = Decimal("0")) -> Decimal:
    """
    Safely convert value to Decimal.

    Args:
        value: Value to convert
        default: Default if conversion fails

    Returns:
        Decimal value
    """
    if value is None:
        return default

    try:
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return default


def bps_to_decimal(bps: Union[str, int, Decimal]) -> Decimal:
    """
    Convert basis points to decimal (100 bps = 0.01 = 1%).
    """
    return safe_decimal(bps) / Decimal(BPS_DENOMINATOR)


def bps_of(amount: int, bps: int) -> int:
    """
    Integer share of amount in basis points, rounded down.

    Example:
        bps_of(10**18, 9) -> 900000000000000 (0.09%)
    """
    if bps < 0:
        raise ValueError(f"bps must be non-negative, got {bps}")
    return amount * bps // BPS_DENOMINATOR


def apply_haircut(amount: int, bps: int) -> int:
    """
    Reduce amount by bps (slippage tolerance on a minimum-output bound).

    apply_haircut(1000, 50) -> 995
    """
    if not 0 <= bps <= BPS_DENOMINATOR:
        raise ValueError(f"haircut must be within [0, {BPS_DENOMINATOR}] bps, got {bps}")
    return amount * (BPS_DENOMINATOR - bps) // BPS_DENOMINATOR


def scale_bps(amount: int, bps: int) -> int:
    """
    Scale amount by a bps multiplier (15000 bps = x1.5).
    """
    return amount * bps // BPS_DENOMINATOR


def add_margin(amount: int, margin_bps: int) -> int:
    """Add a safety margin expressed in bps (2000 -> +20%)."""
    return amount * (BPS_DENOMINATOR + margin_bps) // BPS_DENOMINATOR


def slippage_bps(expected: int, actual: int) -> int:
    """
    Shortfall of actual vs expected in basis points.

    Positive means worse than expected; 0 when expected is 0.
    """
    if expected <= 0:
        return 0
    return (expected - actual) * BPS_DENOMINATOR // expected


def format_units(amount: int, decimals: int = 18) -> str:
    """
    Format integer amount in smallest units as a decimal string.

    format_units(10_480_000_000_000_000_000) -> "10.48"
    """
    value = Decimal(amount) / (Decimal(10) ** decimals)
    text = format(value.normalize(), "f")
    return text


def parse_units(value: Union[str, int, Decimal], decimals: int = 18) -> int:
    """
    Parse a human amount into smallest units (truncating extra precision).

    parse_units("10.5") -> 10500000000000000000
    """
    amount = safe_decimal(value, default=None)
    if amount is None:
        raise ValueError(f"Not a number: {value!r}")
    scaled = (amount * (Decimal(10) ** decimals)).quantize(Decimal("1"), rounding=ROUND_DOWN)
    return int(scaled)
