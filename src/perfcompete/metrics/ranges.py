"""Metric value ranges.

A :class:`MetricRange` is a ``(min, max)`` pair of floats with three
distinct "empty-ish" states that must never be confused:

* *unset*: both bounds are NaN. No opinion yet; adjustment may fill it.
* *one-sided*: a bound is ``-inf``/``+inf``. That side is ignored.
* *degenerate*: ``min == max``. An exact match is required.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

NAN = float("nan")
INF = float("inf")


def _same(a: float, b: float) -> bool:
    return a == b or (math.isnan(a) and math.isnan(b))


@dataclass(frozen=True, eq=False)
class MetricRange:
    """An inclusive ``[min, max]`` range of metric values."""

    min: float = NAN
    max: float = NAN

    def __post_init__(self) -> None:
        if not math.isnan(self.min) and not math.isnan(self.max) and self.min > self.max:
            raise ValueError(f"Range min {self.min!r} is greater than max {self.max!r}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetricRange):
            return NotImplemented
        return _same(self.min, other.min) and _same(self.max, other.max)

    def __hash__(self) -> int:
        return hash(
            (
                None if math.isnan(self.min) else self.min,
                None if math.isnan(self.max) else self.max,
            )
        )

    def __repr__(self) -> str:
        return f"MetricRange({self.min!r}, {self.max!r})"

    # -- state ------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        """True if no bound is known (the *unset* state)."""
        return math.isnan(self.min) and math.isnan(self.max)

    @property
    def has_min(self) -> bool:
        return not math.isnan(self.min)

    @property
    def has_max(self) -> bool:
        return not math.isnan(self.max)

    @property
    def is_one_sided(self) -> bool:
        """True if exactly one side is ignored (infinite)."""
        return math.isinf(self.min) != math.isinf(self.max)

    @property
    def is_degenerate(self) -> bool:
        return self.has_min and self.min == self.max

    @property
    def is_infinite(self) -> bool:
        """True if both sides are ignored."""
        return self.min == -INF and self.max == INF

    # -- algebra ----------------------------------------------------------

    def contains(self, other: MetricRange) -> bool:
        """Return True if *other* lies within this range.

        An unset bound on this range satisfies nothing; an infinite bound
        satisfies everything. An unset *other* is contained only in ranges
        that ignore both sides.
        """
        if other.is_empty:
            return self.is_infinite
        return _bound_le(self.min, other.min, lower=True) and _bound_le(
            other.max, self.max, lower=False
        )

    def union(self, other: MetricRange) -> MetricRange:
        """Return the smallest range covering both ranges.

        NaN bounds take the other range's bound.
        """
        return MetricRange(_merge(self.min, other.min, min), _merge(self.max, other.max, max))

    def scaled(self, scale: float) -> MetricRange:
        """Return the range with both bounds divided by *scale*."""
        return MetricRange(self.min / scale, self.max / scale)

    def rounded(self, scale: float, digits: int) -> MetricRange:
        """Round both bounds to *digits* decimals of the scaled value."""
        return MetricRange(
            _round_bound(self.min, scale, digits, round),
            _round_bound(self.max, scale, digits, round),
        )

    def rounded_outward(self, scale: float, digits: int) -> MetricRange:
        """Round ``min`` down and ``max`` up at the given resolution.

        The result always contains the original range.
        """
        return MetricRange(
            _round_bound(self.min, scale, digits, math.floor),
            _round_bound(self.max, scale, digits, math.ceil),
        )


EMPTY = MetricRange()
INFINITE = MetricRange(-INF, INF)


def _merge(a: float, b: float, pick) -> float:  # type: ignore[no-untyped-def]
    if math.isnan(a):
        return b
    if math.isnan(b):
        return a
    return pick(a, b)


def _bound_le(a: float, b: float, *, lower: bool) -> bool:
    """Compare bounds where NaN never satisfies and infinity always does."""
    stored = a if lower else b
    if math.isnan(stored):
        return False
    if math.isinf(stored):
        return stored < 0 if lower else stored > 0
    measured = b if lower else a
    if math.isnan(measured):
        return False
    return a <= b


def _round_bound(value: float, scale: float, digits: int, fn) -> float:  # type: ignore[no-untyped-def]
    if math.isnan(value) or math.isinf(value):
        return value
    factor = 10**digits
    # Pre-round to absorb float noise such as 2.03 * 100 == 202.99999999999997.
    return fn(round(value / scale * factor, 6)) / factor * scale
