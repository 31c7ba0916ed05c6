"""Per-target metric values and the union (merge) operation."""

from __future__ import annotations

from dataclasses import dataclass, field

from perfcompete.metrics.descriptors import MetricDescriptor
from perfcompete.metrics.ranges import EMPTY, MetricRange
from perfcompete.metrics.units import EMPTY_UNIT, MetricUnit


@dataclass
class MetricValue:
    """Stored limits of one metric for one target.

    ``dirty`` is True when ``range`` differs from what was last persisted.
    Mutated only by :meth:`union_with` (and replaced wholesale while a
    limits document is parsed).
    """

    descriptor: MetricDescriptor
    range: MetricRange = EMPTY
    unit: MetricUnit = EMPTY_UNIT
    dirty: bool = False

    @property
    def metric_id(self) -> str:
        return self.descriptor.metric_id

    def display_unit(self, candidate: MetricRange | None = None) -> MetricUnit:
        """The stored unit, or the best unit for the range in question."""
        if not self.unit.is_empty or not self.descriptor.has_units:
            return self.unit
        probe = self.range if not self.range.is_empty else (candidate or EMPTY)
        return self.descriptor.units.select_for_range(probe)

    def union_with(
        self,
        candidate: MetricRange,
        checking_only: bool,
        rounding_digits: int | None = None,
    ) -> bool:
        """Check *candidate* against, or widen the stored range to cover it.

        With ``checking_only`` the value is never mutated and the return
        value tells whether the candidate lies within the stored range once
        both are rounded to the display unit's resolution.

        Otherwise the stored range is widened to cover the candidate,
        re-rounded outward at the resolution of a freshly selected unit, and
        marked dirty. The return value tells whether the range changed.
        """
        if checking_only:
            unit = self.display_unit(candidate)
            digits = unit.rounding_digits(self.range) if rounding_digits is None else rounding_digits
            stored = self.range.rounded(unit.scale, digits)
            return stored.contains(candidate.rounded(unit.scale, digits))

        if candidate.is_empty:
            return False
        merged = self.range.union(candidate)
        if merged == self.range:
            return False
        unit = self.descriptor.units.select_for_range(merged)
        digits = unit.rounding_digits(merged) if rounding_digits is None else rounding_digits
        merged = merged.rounded_outward(unit.scale, digits)
        if merged == self.range:
            return False
        self.range = merged
        self.unit = unit
        self.dirty = True
        return True

    def mark_saved(self) -> None:
        self.dirty = False

    def format_range(self) -> str:
        """Human-readable range, e.g. ``'[1.20ms, 3.40ms]'``."""
        if self.range.is_empty:
            return "[empty]"
        unit = self.display_unit()
        return f"[{unit.format_value(self.range.min)}, {unit.format_value(self.range.max)}]"


@dataclass(frozen=True, order=True)
class TargetKey:
    """Identity of a benchmarked method."""

    type_name: str
    method_name: str

    def __str__(self) -> str:
        return f"{self.type_name}.{self.method_name}"


@dataclass
class Target:
    """One benchmarked method with its stored metric values."""

    key: TargetKey
    is_baseline: bool = False
    values: list[MetricValue] = field(default_factory=list)

    def __str__(self) -> str:
        return str(self.key)

    def get(self, metric_id: str) -> MetricValue | None:
        for value in self.values:
            if value.metric_id == metric_id:
                return value
        return None

    @property
    def has_dirty_values(self) -> bool:
        return any(v.dirty for v in self.values)

    def dirty_values(self) -> list[MetricValue]:
        return [v for v in self.values if v.dirty]

    def mark_saved(self) -> None:
        for value in self.values:
            value.mark_saved()
