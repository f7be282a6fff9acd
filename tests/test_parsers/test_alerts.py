"""Tests for the LIQUIDITY_DROP rule."""

from decimal import Decimal

from src.parsers.alerts import LIQUIDITY_DROP, SEVERITY_HIGH, evaluate_liquidity_drop


class TestLiquidityDrop:
    def test_fires_on_large_drop(self):
        drop = evaluate_liquidity_drop(Decimal("10000"), Decimal("5000"))
        assert drop is not None
        assert drop.change == Decimal("-0.5")

    def test_exactly_forty_percent_fires(self):
        assert evaluate_liquidity_drop(Decimal("10000"), Decimal("6000")) is not None

    def test_smaller_drop_does_not_fire(self):
        assert evaluate_liquidity_drop(Decimal("10000"), Decimal("6001")) is None

    def test_increase_does_not_fire(self):
        assert evaluate_liquidity_drop(Decimal("10000"), Decimal("20000")) is None

    def test_needs_positive_baseline_and_value(self):
        assert evaluate_liquidity_drop(None, Decimal("1")) is None
        assert evaluate_liquidity_drop(Decimal("0"), Decimal("1")) is None
        assert evaluate_liquidity_drop(Decimal("100"), Decimal("0")) is None
        assert evaluate_liquidity_drop(Decimal("100"), None) is None

    def test_alert_and_inline_entry(self):
        drop = evaluate_liquidity_drop(Decimal("1000"), Decimal("100"))
        alert = drop.to_alert("0xabc")
        assert alert.token_address == "0xabc"
        assert alert.alert_type == LIQUIDITY_DROP
        assert alert.severity == SEVERITY_HIGH
        assert alert.details["prevLiquidityUsd"] == "1000"
        assert alert.details["change"] == -0.9

        entry = drop.inline_entry()
        assert entry["type"] == LIQUIDITY_DROP
        assert entry["timestamp"].endswith("Z")
