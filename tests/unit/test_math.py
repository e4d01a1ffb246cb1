"""
tests/unit/test_math.py - Tests for core/math.py

Critical tests for:
- Integer bps arithmetic rounds down
- Unit conversions at the human edge
"""

import pytest
from decimal import Decimal

from core.constants import ETHER
from core.math import (
    add_margin,
    apply_haircut,
    bps_of,
    bps_to_decimal,
    format_units,
    parse_units,
    safe_decimal,
    scale_bps,
    slippage_bps,
)


class TestBps:
    def test_flash_fee_of_ten_ether(self):
        assert bps_of(10 * ETHER, 20) == 2 * ETHER // 100

    def test_bps_of_rounds_down(self):
        assert bps_of(999, 9) == 0
        assert bps_of(10_001, 1) == 1

    def test_bps_of_rejects_negative(self):
        with pytest.raises(ValueError):
            bps_of(100, -1)

    def test_bps_to_decimal(self):
        assert bps_to_decimal(100) == Decimal("0.01")

    def test_scale_bps(self):
        assert scale_bps(2_000, 15_000) == 3_000
        assert scale_bps(2_000, 7_500) == 1_500

    def test_add_margin(self):
        assert add_margin(350_000, 2_000) == 420_000
        assert add_margin(350_000, 0) == 350_000


class TestHaircut:
    def test_half_percent(self):
        assert apply_haircut(1_000, 50) == 995

    def test_bounds(self):
        assert apply_haircut(1_000, 0) == 1_000
        assert apply_haircut(1_000, 10_000) == 0
        with pytest.raises(ValueError):
            apply_haircut(1_000, 10_001)

    def test_slippage_bps(self):
        assert slippage_bps(1_000, 990) == 100
        assert slippage_bps(1_000, 1_010) == -100
        assert slippage_bps(0, 5) == 0


class TestUnits:
    def test_parse_units(self):
        assert parse_units("10.5") == 105 * ETHER // 10
        assert parse_units("1.5", 6) == 1_500_000
        assert parse_units(3) == 3 * ETHER

    def test_parse_units_truncates(self):
        assert parse_units("0.0000001", 6) == 0

    def test_parse_units_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_units("ten")

    def test_format_units(self):
        assert format_units(48 * ETHER // 100) == "0.48"
        assert format_units(1_500_000, 6) == "1.5"
        assert format_units(0) == "0"

    def test_safe_decimal_default(self):
        assert safe_decimal(None) == Decimal("0")
        assert safe_decimal("x", default=Decimal("-1")) == Decimal("-1")
