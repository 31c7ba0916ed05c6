"""Tests for perfcompete.metrics.values: metric values and targets."""

from __future__ import annotations

import unittest

from perfcompete.metrics.calculator import P95, TIGHT
from perfcompete.metrics.descriptors import MetricDescriptor, MetricRegistry
from perfcompete.metrics.ranges import EMPTY, MetricRange
from perfcompete.metrics.units import TIME_SCALE
from perfcompete.metrics.values import MetricValue, Target, TargetKey


def _descriptors() -> tuple[MetricDescriptor, MetricDescriptor]:
    registry = MetricRegistry()
    relative = registry.register("relative_time", P95, is_relative=True, is_primary=True)
    time = registry.register("time", TIGHT, units=TIME_SCALE)
    return relative, time


class TestCheckingOnly(unittest.TestCase):
    def setUp(self) -> None:
        self.relative, self.time = _descriptors()

    def test_empty_limits_never_fit(self) -> None:
        value = MetricValue(self.relative)
        self.assertFalse(value.union_with(MetricRange(2.0, 2.0), checking_only=True))
        self.assertTrue(value.range.is_empty)
        self.assertFalse(value.dirty)

    def test_fit(self) -> None:
        value = MetricValue(self.relative, MetricRange(1.85, 2.15))
        self.assertTrue(value.union_with(MetricRange(2.04, 2.04), checking_only=True))

    def test_mismatch_does_not_mutate(self) -> None:
        value = MetricValue(self.relative, MetricRange(1.85, 1.95))
        self.assertFalse(value.union_with(MetricRange(2.04, 2.04), checking_only=True))
        self.assertEqual(value.range, MetricRange(1.85, 1.95))
        self.assertFalse(value.dirty)

    def test_rounding_tolerance(self) -> None:
        value = MetricValue(self.relative, MetricRange(1.85, 2.15))
        self.assertTrue(value.union_with(MetricRange(2.1549, 2.1549), checking_only=True))
        self.assertFalse(value.union_with(MetricRange(2.156, 2.156), checking_only=True))

    def test_rounding_digits_override(self) -> None:
        value = MetricValue(self.relative, MetricRange(1.85, 2.15))
        self.assertFalse(
            value.union_with(MetricRange(2.1549, 2.1549), checking_only=True, rounding_digits=4)
        )

    def test_small_ratio_keeps_resolution(self) -> None:
        value = MetricValue(self.relative)
        value.union_with(MetricRange(0.003, 0.003), checking_only=False)
        self.assertAlmostEqual(value.range.max, 0.003)
        self.assertTrue(value.union_with(MetricRange(0.003, 0.003), checking_only=True))
        self.assertFalse(value.union_with(MetricRange(0.009, 0.009), checking_only=True))


# ---------------------------------------------------------------------------
# Adjusting
# ---------------------------------------------------------------------------


class TestAdjust(unittest.TestCase):
    def setUp(self) -> None:
        self.relative, self.time = _descriptors()

    def test_fills_empty_range(self) -> None:
        value = MetricValue(self.relative)
        self.assertTrue(value.union_with(MetricRange(2.03895, 2.03895), checking_only=False))
        self.assertAlmostEqual(value.range.min, 2.03)
        self.assertAlmostEqual(value.range.max, 2.04)
        self.assertTrue(value.dirty)

    def test_selects_unit(self) -> None:
        value = MetricValue(self.time)
        value.union_with(MetricRange(1500.0, 2500.0), checking_only=False)
        self.assertEqual(value.unit.name, "us")
        self.assertAlmostEqual(value.range.min, 1500.0)
        self.assertAlmostEqual(value.range.max, 2500.0)
        self.assertEqual(value.format_range(), "[1.50us, 2.50us]")

    def test_union_is_monotone(self) -> None:
        value = MetricValue(self.time)
        value.union_with(MetricRange(1500.0, 2500.0), checking_only=False)
        before = value.range
        value.union_with(MetricRange(1000.0, 2000.0), checking_only=False)
        self.assertTrue(value.range.contains(before))
        self.assertAlmostEqual(value.range.min, 1000.0)
        self.assertAlmostEqual(value.range.max, 2500.0)

    def test_contained_candidate_is_no_change(self) -> None:
        value = MetricValue(self.relative, MetricRange(1.85, 2.15))
        self.assertFalse(value.union_with(MetricRange(2.0, 2.1), checking_only=False))
        self.assertFalse(value.dirty)

    def test_empty_candidate_is_no_change(self) -> None:
        value = MetricValue(self.relative, MetricRange(1.85, 2.15))
        self.assertFalse(value.union_with(EMPTY, checking_only=False))

    def test_adjusted_range_passes_check(self) -> None:
        value = MetricValue(self.relative, MetricRange(1.85, 1.95))
        candidate = MetricRange(2.03895, 2.03895)
        value.union_with(candidate, checking_only=False)
        self.assertTrue(value.union_with(candidate, checking_only=True))

    def test_mark_saved(self) -> None:
        value = MetricValue(self.relative)
        value.union_with(MetricRange(1.0, 2.0), checking_only=False)
        value.mark_saved()
        self.assertFalse(value.dirty)

    def test_format_empty(self) -> None:
        self.assertEqual(MetricValue(self.time).format_range(), "[empty]")


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class TestTarget(unittest.TestCase):
    def test_key(self) -> None:
        key = TargetKey("StringBenchmarks", "concat")
        self.assertEqual(str(key), "StringBenchmarks.concat")
        self.assertLess(TargetKey("A", "b"), TargetKey("B", "a"))

    def test_dirty_tracking(self) -> None:
        relative, time = _descriptors()
        target = Target(TargetKey("T", "m"), values=[MetricValue(relative), MetricValue(time)])
        self.assertFalse(target.has_dirty_values)
        target.values[1].union_with(MetricRange(10.0, 20.0), checking_only=False)
        self.assertTrue(target.has_dirty_values)
        self.assertEqual([v.metric_id for v in target.dirty_values()], ["time"])
        target.mark_saved()
        self.assertFalse(target.has_dirty_values)

    def test_get(self) -> None:
        relative, _time = _descriptors()
        target = Target(TargetKey("T", "m"), values=[MetricValue(relative)])
        self.assertIsNotNone(target.get("relative_time"))
        self.assertIsNone(target.get("time"))


if __name__ == "__main__":
    unittest.main()
