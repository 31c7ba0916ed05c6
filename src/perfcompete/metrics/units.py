"""Display units and unit scales for metric values.

A :class:`UnitScale` is an ordered collection of :class:`MetricUnit`
declarations. Selecting a unit for a value is a static interval lookup:
the unit whose threshold is the greatest threshold not above the value's
magnitude wins, and the lowest-threshold unit also covers everything below
it (down to negative infinity and NaN).

Values are always stored in the scale's base unit (nanoseconds for time,
bytes for sizes); units only affect display and rounding resolution.
"""

from __future__ import annotations

import bisect
import math
from dataclasses import dataclass
from typing import Iterable, Iterator

from perfcompete.metrics.ranges import MetricRange


@dataclass(frozen=True)
class MetricUnit:
    """A display unit for metric values."""

    name: str
    scale: float = 1.0  # base units per one display unit
    threshold: float = 0.0  # preferred for magnitudes at or above this
    display_format: str | None = None  # format spec, e.g. ".2f"
    digits: int | None = 2  # decimals of the scaled value; None derives them from it

    def __post_init__(self) -> None:
        if self.scale <= 0:
            raise ValueError(f"Unit {self.name!r}: scale must be positive (got {self.scale}).")
        if self.threshold < 0 or math.isnan(self.threshold):
            raise ValueError(
                f"Unit {self.name!r}: threshold must be non-negative (got {self.threshold})."
            )
        if self.digits is not None and self.digits < 0:
            raise ValueError(f"Unit {self.name!r}: digits cannot be negative.")

    @property
    def is_empty(self) -> bool:
        return not self.name

    def to_display(self, value: float) -> float:
        """Convert a base-unit value into this unit."""
        return value / self.scale

    def from_display(self, value: float) -> float:
        """Convert a value expressed in this unit into base units."""
        return value * self.scale

    def format_value(self, value: float) -> str:
        """Format a base-unit value in this unit, e.g. ``'1.25ms'``."""
        if math.isnan(value):
            return "?"
        if math.isinf(value):
            return "-inf" if value < 0 else "+inf"
        scaled = self.to_display(value)
        digits = self.digits if self.digits is not None else autoscale_digits(scaled)
        spec = self.display_format or f".{digits}f"
        return f"{format(scaled, spec)}{self.name}"

    def rounding_digits(self, value_range: MetricRange) -> int:
        """Decimals used to round *value_range* (in base units) in this unit.

        A unit without fixed ``digits`` uses enough decimals for the scaled
        bound that needs the most.
        """
        if self.digits is not None:
            return self.digits
        return max(
            autoscale_digits(self.to_display(value_range.min)),
            autoscale_digits(self.to_display(value_range.max)),
        )


def autoscale_digits(value: float) -> int:
    """Decimals that keep two significant digits of *value*.

    Examples: ``2.04`` -> 2, ``0.2123`` -> 2, ``0.1812`` -> 3, ``150`` -> 1.
    Mantissas below 1.89 get one extra digit.
    """
    if math.isnan(value) or math.isinf(value):
        return 0
    value = abs(value)
    if value >= 100:
        return 1
    if value <= 0 or value >= 1:
        return 2
    return max(0, math.floor(-math.log10(value / 1.89)) + 2)


EMPTY_UNIT = MetricUnit("", digits=None)


class UnitScale:
    """An ordered set of units with threshold-based selection."""

    def __init__(self, name: str, units: Iterable[MetricUnit]) -> None:
        ordered = sorted(units, key=lambda u: u.threshold)
        names = [u.name for u in ordered]
        if len(set(names)) != len(names):
            raise ValueError(f"Unit scale {name!r}: duplicate unit names {names}.")
        if any(not n for n in names):
            raise ValueError(f"Unit scale {name!r}: unit names must be non-empty.")
        thresholds = [u.threshold for u in ordered]
        if len(set(thresholds)) != len(thresholds):
            raise ValueError(f"Unit scale {name!r}: duplicate unit thresholds {thresholds}.")

        self.name = name
        self._units: tuple[MetricUnit, ...] = tuple(ordered)
        self._thresholds: list[float] = thresholds
        self._by_name: dict[str, MetricUnit] = {u.name.lower(): u for u in ordered}

    def __repr__(self) -> str:
        return f"UnitScale({self.name!r}, {[u.name for u in self._units]})"

    def __iter__(self) -> Iterator[MetricUnit]:
        return iter(self._units)

    def __len__(self) -> int:
        return len(self._units)

    def __bool__(self) -> bool:
        return bool(self._units)

    def get(self, name: str) -> MetricUnit | None:
        """Return the unit with *name* (case-insensitive), or None."""
        return self._by_name.get(name.lower())

    def select(self, value: float) -> MetricUnit:
        """Return the best-fitting unit for *value*.

        Total and deterministic: an empty scale yields :data:`EMPTY_UNIT`,
        magnitudes below the lowest threshold (and NaN) yield the
        lowest-threshold unit.
        """
        if not self._units:
            return EMPTY_UNIT
        if math.isnan(value):
            return self._units[0]
        idx = bisect.bisect_right(self._thresholds, abs(value)) - 1
        return self._units[max(idx, 0)]

    def select_for_range(self, value_range: MetricRange) -> MetricUnit:
        """Return the unit for the smaller finite bound magnitude of a range."""
        finite = [abs(v) for v in (value_range.min, value_range.max) if math.isfinite(v)]
        if not finite:
            return self.select(float("nan"))
        return self.select(min(finite))


EMPTY_SCALE = UnitScale("none", [])

TIME_SCALE = UnitScale(
    "time",
    [
        MetricUnit("ns", 1.0, 0.0, digits=1),
        MetricUnit("us", 1e3, 1e3, digits=2),
        MetricUnit("ms", 1e6, 1e6, digits=2),
        MetricUnit("s", 1e9, 1e9, digits=3),
    ],
)

SIZE_SCALE = UnitScale(
    "size",
    [
        MetricUnit("B", 1.0, 0.0, digits=0),
        MetricUnit("KB", 1024.0, 1024.0, digits=2),
        MetricUnit("MB", 1024.0**2, 1024.0**2, digits=2),
        MetricUnit("GB", 1024.0**3, 1024.0**3, digits=2),
    ],
)
