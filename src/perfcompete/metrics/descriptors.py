"""Metric descriptors and the metric registry.

Each metric kind is registered once in a :class:`MetricRegistry` with its
calculator, unit scale and flags. Descriptors are identified by their
``metric_id`` string, which is used as the key in every map and in persisted
documents.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from perfcompete.metrics.calculator import P95, TIGHT, MetricCalculator
from perfcompete.metrics.ranges import INF
from perfcompete.metrics.units import EMPTY_SCALE, SIZE_SCALE, TIME_SCALE, UnitScale

PRIMARY_METRIC_ID = "relative_time"


class DefaultMinPolicy(enum.Enum):
    """How a missing minimum is derived from a stored maximum."""

    ZERO = "zero"
    NEGATIVE_INFINITY = "negative_infinity"
    SAME_AS_MAX = "same_as_max"

    def derive_min(self, max_value: float) -> float:
        if max_value == 0:
            return 0.0
        if self is DefaultMinPolicy.ZERO:
            return 0.0
        if self is DefaultMinPolicy.NEGATIVE_INFINITY:
            return -INF
        return -INF if math.isinf(max_value) else max_value

    def should_store_min(self, min_value: float, max_value: float) -> bool:
        """Return False when the minimum can be derived from the maximum."""
        if math.isnan(min_value):
            return False
        if self is DefaultMinPolicy.ZERO:
            return min_value != 0
        if self is DefaultMinPolicy.NEGATIVE_INFINITY:
            return not math.isinf(min_value)
        return math.isinf(min_value) or min_value != max_value


@dataclass(frozen=True, eq=False)
class MetricDescriptor:
    """A registered metric kind."""

    metric_id: str
    calculator: MetricCalculator
    units: UnitScale = EMPTY_SCALE
    is_relative: bool = False
    is_primary: bool = False
    default_min: DefaultMinPolicy = DefaultMinPolicy.ZERO
    sample_kind: str = "time"
    display_name: str = ""
    stored_name: str = ""

    def __post_init__(self) -> None:
        if not self.display_name:
            object.__setattr__(self, "display_name", default_display_name(self.metric_id))
        if not self.stored_name:
            object.__setattr__(self, "stored_name", self.metric_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetricDescriptor):
            return NotImplemented
        return self.metric_id == other.metric_id

    def __hash__(self) -> int:
        return hash(self.metric_id)

    def __repr__(self) -> str:
        return f"MetricDescriptor({self.metric_id!r})"

    @property
    def has_units(self) -> bool:
        return bool(self.units)

    def applies_to(self, is_baseline: bool) -> bool:
        """Relative metrics never apply to the baseline."""
        return not (self.is_relative and is_baseline)


def default_display_name(metric_id: str) -> str:
    """``'gc_count_metric'`` -> ``'gc count'``."""
    name = metric_id
    if name.endswith("_metric") and name != "_metric":
        name = name[: -len("_metric")]
    return name.replace("_", " ")


@dataclass
class MetricRegistry:
    """Ordered catalog of metric descriptors, keyed by id."""

    _metrics: dict[str, MetricDescriptor] = field(default_factory=dict)

    def register(
        self,
        metric_id: str,
        calculator: MetricCalculator | None,
        *,
        units: UnitScale | None = None,
        is_relative: bool = False,
        is_primary: bool = False,
        default_min: DefaultMinPolicy = DefaultMinPolicy.ZERO,
        sample_kind: str = "time",
        display_name: str = "",
        stored_name: str = "",
    ) -> MetricDescriptor:
        """Register a metric kind and return its descriptor.

        Raises:
            ValueError: If the id is taken, a second primary metric is
                registered, the primary metric is not relative, or the
                calculator is missing.
        """
        if not metric_id:
            raise ValueError("Metric id must not be empty.")
        if metric_id in self._metrics:
            raise ValueError(f"Metric {metric_id!r} is already registered.")
        if not isinstance(calculator, MetricCalculator):
            raise ValueError(f"Metric {metric_id!r}: a MetricCalculator is required.")
        if is_primary:
            existing = self.primary
            if existing is not None:
                raise ValueError(
                    f"Metric {metric_id!r}: only one primary metric is allowed "
                    f"({existing.metric_id!r} is already primary)."
                )
            if not is_relative:
                raise ValueError(f"Metric {metric_id!r}: the primary metric must be relative.")

        stored = stored_name or metric_id
        for other in self._metrics.values():
            if other.stored_name == stored:
                raise ValueError(
                    f"Metric {metric_id!r}: stored name {stored!r} is used by "
                    f"{other.metric_id!r}."
                )

        descriptor = MetricDescriptor(
            metric_id=metric_id,
            calculator=calculator,
            units=units if units is not None else EMPTY_SCALE,
            is_relative=is_relative,
            is_primary=is_primary,
            default_min=default_min,
            sample_kind=sample_kind,
            display_name=display_name,
            stored_name=stored,
        )
        self._metrics[metric_id] = descriptor
        return descriptor

    def __iter__(self) -> Iterator[MetricDescriptor]:
        return iter(self._metrics.values())

    def __len__(self) -> int:
        return len(self._metrics)

    def __contains__(self, metric_id: object) -> bool:
        return metric_id in self._metrics

    def get(self, metric_id: str) -> MetricDescriptor | None:
        return self._metrics.get(metric_id)

    def by_stored_name(self, stored_name: str) -> MetricDescriptor | None:
        for descriptor in self._metrics.values():
            if descriptor.stored_name == stored_name:
                return descriptor
        return None

    @property
    def primary(self) -> MetricDescriptor | None:
        for descriptor in self._metrics.values():
            if descriptor.is_primary:
                return descriptor
        return None

    def subset(self, metric_ids: Iterable[str]) -> MetricRegistry:
        """A registry holding only *metric_ids*, in registration order.

        Raises:
            ValueError: If an id is not registered.
        """
        wanted = set(metric_ids)
        unknown = wanted - self._metrics.keys()
        if unknown:
            raise ValueError(
                f"Unknown metric(s): {', '.join(sorted(unknown))}. "
                f"Available: {', '.join(self._metrics)}"
            )
        return MetricRegistry({k: d for k, d in self._metrics.items() if k in wanted})

    def applicable(self, is_baseline: bool) -> list[MetricDescriptor]:
        """Descriptors that apply to a baseline or competitor target."""
        return [d for d in self._metrics.values() if d.applies_to(is_baseline)]


def default_registry() -> MetricRegistry:
    """Build the standard metric catalog."""
    registry = MetricRegistry()
    registry.register(
        PRIMARY_METRIC_ID,
        P95,
        is_relative=True,
        is_primary=True,
        sample_kind="time",
        display_name="relative time",
    )
    registry.register("time", TIGHT, units=TIME_SCALE, sample_kind="time")
    registry.register("allocations", P95, units=SIZE_SCALE, sample_kind="allocations")
    registry.register(
        "gc_count",
        P95,
        default_min=DefaultMinPolicy.SAME_AS_MAX,
        sample_kind="gc_count",
        display_name="GC count",
    )
    return registry
