"""Tests for perfcompete.metrics.units: display units and unit scales."""

from __future__ import annotations

import unittest

from perfcompete.metrics.ranges import INF, INFINITE, MetricRange
from perfcompete.metrics.units import (
    EMPTY_SCALE,
    EMPTY_UNIT,
    SIZE_SCALE,
    TIME_SCALE,
    MetricUnit,
    UnitScale,
    autoscale_digits,
)


class TestMetricUnit(unittest.TestCase):
    def test_conversion(self) -> None:
        ms = MetricUnit("ms", 1e6, 1e6)
        self.assertEqual(ms.to_display(2_500_000.0), 2.5)
        self.assertEqual(ms.from_display(2.5), 2_500_000.0)

    def test_format_value(self) -> None:
        ms = TIME_SCALE.get("ms")
        assert ms is not None
        self.assertEqual(ms.format_value(1_250_000.0), "1.25ms")

    def test_format_special_values(self) -> None:
        self.assertEqual(EMPTY_UNIT.format_value(float("nan")), "?")
        self.assertEqual(EMPTY_UNIT.format_value(INF), "+inf")
        self.assertEqual(EMPTY_UNIT.format_value(-INF), "-inf")

    def test_display_format_override(self) -> None:
        unit = MetricUnit("x", display_format=".4f")
        self.assertEqual(unit.format_value(1.5), "1.5000x")

    def test_invalid_scale(self) -> None:
        with self.assertRaises(ValueError):
            MetricUnit("bad", 0.0)

    def test_negative_threshold(self) -> None:
        with self.assertRaises(ValueError):
            MetricUnit("bad", 1.0, -1.0)

    def test_empty_unit(self) -> None:
        self.assertTrue(EMPTY_UNIT.is_empty)
        self.assertFalse(MetricUnit("ns").is_empty)

    def test_autoscaled_digits(self) -> None:
        self.assertEqual(autoscale_digits(2.04), 2)
        self.assertEqual(autoscale_digits(150.0), 1)
        self.assertEqual(autoscale_digits(0.2123), 2)
        self.assertEqual(autoscale_digits(0.1812), 3)
        self.assertEqual(autoscale_digits(0.003), 4)
        self.assertEqual(autoscale_digits(0.0), 2)
        self.assertEqual(autoscale_digits(INF), 0)

    def test_unitless_rounding_follows_magnitude(self) -> None:
        self.assertEqual(EMPTY_UNIT.rounding_digits(MetricRange(0.003, 2.0)), 4)
        self.assertEqual(EMPTY_UNIT.format_value(0.1812), "0.181")
        ms = TIME_SCALE.get("ms")
        assert ms is not None
        self.assertEqual(ms.rounding_digits(MetricRange(1e3, 1e3)), 2)


# ---------------------------------------------------------------------------
# UnitScale
# ---------------------------------------------------------------------------


class TestUnitScale(unittest.TestCase):
    def test_units_sorted_by_threshold(self) -> None:
        scale = UnitScale("t", [MetricUnit("b", 10.0, 10.0), MetricUnit("a")])
        self.assertEqual([u.name for u in scale], ["a", "b"])

    def test_duplicate_names_rejected(self) -> None:
        with self.assertRaises(ValueError):
            UnitScale("t", [MetricUnit("a"), MetricUnit("a", 10.0, 10.0)])

    def test_duplicate_thresholds_rejected(self) -> None:
        with self.assertRaises(ValueError):
            UnitScale("t", [MetricUnit("a"), MetricUnit("b")])

    def test_get_case_insensitive(self) -> None:
        unit = TIME_SCALE.get("MS")
        assert unit is not None
        self.assertEqual(unit.name, "ms")
        self.assertIsNone(TIME_SCALE.get("fortnight"))

    def test_select_by_threshold(self) -> None:
        self.assertEqual(TIME_SCALE.select(500.0).name, "ns")
        self.assertEqual(TIME_SCALE.select(1000.0).name, "us")
        self.assertEqual(TIME_SCALE.select(1500.0).name, "us")
        self.assertEqual(TIME_SCALE.select(2e6).name, "ms")
        self.assertEqual(TIME_SCALE.select(5e9).name, "s")

    def test_select_below_lowest_threshold(self) -> None:
        self.assertEqual(TIME_SCALE.select(-5.0).name, "ns")
        self.assertEqual(TIME_SCALE.select(float("nan")).name, "ns")

    def test_select_uses_magnitude(self) -> None:
        self.assertEqual(TIME_SCALE.select(INF).name, "s")
        self.assertEqual(TIME_SCALE.select(-INF).name, "s")
        self.assertEqual(TIME_SCALE.select(-2e6).name, "ms")

    def test_empty_scale(self) -> None:
        self.assertFalse(EMPTY_SCALE)
        self.assertEqual(len(EMPTY_SCALE), 0)
        self.assertIs(EMPTY_SCALE.select(42.0), EMPTY_UNIT)

    def test_select_for_range_uses_smaller_bound(self) -> None:
        self.assertEqual(TIME_SCALE.select_for_range(MetricRange(500.0, 2e6)).name, "ns")
        self.assertEqual(TIME_SCALE.select_for_range(MetricRange(-INF, 2e6)).name, "ms")
        self.assertEqual(TIME_SCALE.select_for_range(INFINITE).name, "ns")

    def test_size_scale(self) -> None:
        self.assertEqual(SIZE_SCALE.select(100.0).name, "B")
        self.assertEqual(SIZE_SCALE.select(2048.0).name, "KB")
        self.assertEqual(SIZE_SCALE.select(3 * 1024.0**2).name, "MB")


if __name__ == "__main__":
    unittest.main()
