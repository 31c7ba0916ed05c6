"""Percentile-based metric calculators.

A :class:`MetricCalculator` turns a batch of raw samples (optionally with
the baseline's batch) into a mean value, a spread, and two ranges: the
*actual* range describing what was measured and the wider *limit* range
used when limits are widened.

Percentiles are used instead of the arithmetic mean because timing data
has long right tails (GC pauses, scheduler noise).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from perfcompete.metrics.ranges import MetricRange
from perfcompete.metrics.stats import log_moments, lognormal_ratio_spread, percentile

Samples = Sequence[float] | None


def _check(values: Samples) -> bool:
    if not values:
        return False
    for v in values:
        if v < 0 or math.isnan(v):
            raise ValueError(f"Samples must be non-negative numbers (got {v!r}).")
    return True


@dataclass(frozen=True)
class MetricCalculator:
    """Calculator parameterized by a mean percentile and two deltas.

    The actual range spans the ``mean_percentile +/- actual_delta``
    percentiles, the limit range ``mean_percentile +/- limit_delta``.
    ``limit_delta >= actual_delta`` guarantees that the actual range is
    always contained in the limit range.
    """

    name: str
    mean_percentile: int
    actual_delta: int
    limit_delta: int

    def __post_init__(self) -> None:
        for field_name in ("mean_percentile", "actual_delta", "limit_delta"):
            value = getattr(self, field_name)
            if not 0 <= value <= 100:
                raise ValueError(f"{field_name} must be in [0, 100] (got {value}).")
        if self.limit_delta < self.actual_delta:
            raise ValueError(
                f"limit_delta ({self.limit_delta}) must not be less than "
                f"actual_delta ({self.actual_delta})."
            )

    # -- mean / spread ----------------------------------------------------

    def mean(self, values: Samples) -> float | None:
        if not _check(values):
            return None
        assert values is not None
        return percentile(values, self.mean_percentile)

    def relative_mean(self, values: Samples, baseline: Samples) -> float | None:
        if not (_check(values) and _check(baseline)):
            return None
        assert values is not None and baseline is not None
        base = percentile(baseline, self.mean_percentile)
        if base == 0:
            return None
        return percentile(values, self.mean_percentile) / base

    def variance(self, values: Samples) -> float | None:
        """Geometric spread: ``exp(stdev(ln samples))``."""
        if not _check(values):
            return None
        assert values is not None
        return math.exp(log_moments(values).sigma)

    def relative_variance(self, values: Samples, baseline: Samples) -> float | None:
        if not (_check(values) and _check(baseline)):
            return None
        assert values is not None and baseline is not None
        return lognormal_ratio_spread(log_moments(values), log_moments(baseline))

    # -- ranges -----------------------------------------------------------

    def actual_range(self, values: Samples) -> MetricRange | None:
        return self._range(values, self.actual_delta)

    def limit_range(self, values: Samples) -> MetricRange | None:
        return self._range(values, self.limit_delta)

    def relative_actual_range(self, values: Samples, baseline: Samples) -> MetricRange | None:
        return self._relative_range(values, baseline, self.actual_delta)

    def relative_limit_range(self, values: Samples, baseline: Samples) -> MetricRange | None:
        return self._relative_range(values, baseline, self.limit_delta)

    def _bounds(self, values: Sequence[float], delta: int) -> tuple[float, float]:
        low = percentile(values, self.mean_percentile - delta)
        high = percentile(values, self.mean_percentile + delta)
        # Interpolation may leave min slightly above max.
        return min(low, high), high

    def _range(self, values: Samples, delta: int) -> MetricRange | None:
        if not _check(values):
            return None
        assert values is not None
        return MetricRange(*self._bounds(values, delta))

    def _relative_range(self, values: Samples, baseline: Samples, delta: int) -> MetricRange | None:
        if not (_check(values) and _check(baseline)):
            return None
        assert values is not None and baseline is not None
        base_low, base_high = self._bounds(baseline, delta)
        if base_low == 0 or base_high == 0:
            return None
        low, high = self._bounds(values, delta)
        low_ratio = low / base_low
        high_ratio = high / base_high
        return MetricRange(min(low_ratio, high_ratio), high_ratio)


TIGHT = MetricCalculator("tight", 50, 5, 10)
P85 = MetricCalculator("p85", 85, 0, 1)
P95 = MetricCalculator("p95", 95, 0, 1)

CALCULATORS: dict[str, MetricCalculator] = {c.name: c for c in (TIGHT, P85, P95)}


def get_calculator(name: str) -> MetricCalculator:
    """Look up a calculator preset by name (``tight``, ``p85``, ``p95``)."""
    try:
        return CALCULATORS[name.lower()]
    except KeyError:
        raise ValueError(
            f"Unknown calculator {name!r}. Available: {', '.join(sorted(CALCULATORS))}"
        ) from None
