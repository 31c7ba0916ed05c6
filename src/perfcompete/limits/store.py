"""Limits store contract and the logic shared by document backends.

A :class:`LimitsStore` loads :class:`~perfcompete.metrics.values.Target`
records for a set of benchmarks and persists the ones whose values changed.
Backends only provide a :class:`LimitsDocument` implementation (parse,
read entries, write values, serialize); resolution, caching, outcome
classification and the checksum-verified save live here.
"""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from perfcompete.competition.benchmarks import Benchmark
from perfcompete.competition.state import CompetitionState, MessageSeverity, MessageSource
from perfcompete.limits.resources import (
    ResolvedResource,
    atomic_write,
    checksum,
    resolve_resource,
    select_resource_name,
)
from perfcompete.logging import get_logger
from perfcompete.metrics.descriptors import MetricDescriptor, MetricRegistry
from perfcompete.metrics.ranges import INF, MetricRange
from perfcompete.metrics.units import EMPTY_UNIT, MetricUnit
from perfcompete.metrics.values import MetricValue, Target, TargetKey

log = get_logger("limits")

# Serializes checksum verification and the write that follows it.
_SAVE_LOCK = threading.Lock()


class LimitsStoreError(Exception):
    """A limits document could not be read, parsed or written."""


@dataclass(frozen=True)
class StoredMetricEntry:
    """One metric entry as read from a limits document.

    Bounds are in the units named by ``unit_name``; None means the bound
    is absent from the document.
    """

    metric_name: str
    min: float | None
    max: float | None
    unit_name: str | None = None
    legacy: bool = False  # MinRatio/MaxRatio attribute pair


class LimitsDocument:
    """A parsed limits document. Backends subclass this."""

    def keys(self) -> list[TargetKey]:
        raise NotImplementedError

    def read_entries(self, key: TargetKey) -> list[StoredMetricEntry] | None:
        """Entries stored for *key*, or None if the target is absent.

        Raises:
            LimitsStoreError: If an entry is malformed.
        """
        raise NotImplementedError

    def write_values(self, key: TargetKey, values: Iterable[MetricValue]) -> None:
        """Replace the stored entries of *values*, leaving others untouched."""
        raise NotImplementedError

    def to_bytes(self) -> bytes:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Entry conversion
# ---------------------------------------------------------------------------


def format_number(value: float) -> str:
    """Shortest stable text for a stored bound."""
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    value = round(value, 12)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def parse_number(text: str, where: str) -> float:
    try:
        value = float(text)
    except ValueError:
        raise LimitsStoreError(f"{where}: cannot parse {text!r} as a number.") from None
    if math.isnan(value):
        raise LimitsStoreError(f"{where}: NaN is not a valid limit.")
    return value


def entry_unit(descriptor: MetricDescriptor, entry: StoredMetricEntry) -> MetricUnit:
    """Resolve the unit of a stored entry.

    Raises:
        LimitsStoreError: If the unit requirement of the metric is violated.
    """
    if not descriptor.has_units:
        if entry.unit_name:
            raise LimitsStoreError(
                f"Metric '{descriptor.metric_id}' has no units but the stored "
                f"entry uses unit '{entry.unit_name}'."
            )
        return EMPTY_UNIT
    if not entry.unit_name:
        raise LimitsStoreError(
            f"Metric '{descriptor.metric_id}' requires a unit "
            f"({', '.join(u.name for u in descriptor.units)})."
        )
    unit = descriptor.units.get(entry.unit_name)
    if unit is None:
        raise LimitsStoreError(
            f"Metric '{descriptor.metric_id}': unknown unit '{entry.unit_name}'. "
            f"Valid units: {', '.join(u.name for u in descriptor.units)}"
        )
    return unit


def entry_to_range(descriptor: MetricDescriptor, entry: StoredMetricEntry) -> tuple[MetricRange, MetricUnit]:
    """Convert a stored entry into a base-unit range and its display unit.

    Absent bounds of the legacy attribute pair are ignored (infinite). In a
    structured entry an absent maximum is ignored and an absent minimum is
    derived from the maximum with the metric's default-min policy.
    """
    unit = entry_unit(descriptor, entry)
    if entry.min is None and entry.max is None:
        return MetricRange(), unit
    max_value = INF if entry.max is None else unit.from_display(entry.max)
    if entry.min is not None:
        min_value = unit.from_display(entry.min)
    elif entry.legacy:
        min_value = -INF
    else:
        min_value = descriptor.default_min.derive_min(max_value)
    if min_value > max_value:
        raise LimitsStoreError(
            f"Metric '{descriptor.metric_id}': stored min {entry.min} is greater "
            f"than max {entry.max}."
        )
    return MetricRange(min_value, max_value), unit


def stored_bounds(value: MetricValue) -> tuple[float | None, float | None]:
    """Display-unit bounds to persist; None marks a bound to omit."""
    unit = value.unit
    rng = value.range
    min_value: float | None = unit.to_display(rng.min)
    if not value.descriptor.default_min.should_store_min(rng.min, rng.max):
        min_value = None
    return min_value, unit.to_display(rng.max)


# ---------------------------------------------------------------------------
# Outcome aggregation
# ---------------------------------------------------------------------------


@dataclass
class _Outcomes:
    """Classification outcomes grouped by (severity, text)."""

    groups: dict[tuple[MessageSeverity, str], list[str]] = field(default_factory=dict)

    def add(self, severity: MessageSeverity, text: str, target: TargetKey | str) -> None:
        self.groups.setdefault((severity, text), []).append(str(target))

    def report(self, state: CompetitionState) -> None:
        for (severity, text), targets in self.groups.items():
            if len(targets) == 1:
                state.write_message(
                    MessageSource.LIMITS_STORE, severity, text, target=targets[0]
                )
            else:
                state.write_message(
                    MessageSource.LIMITS_STORE,
                    severity,
                    f"{text} Targets: {', '.join(targets)}.",
                )


@dataclass
class _LoadedResource:
    resource: ResolvedResource
    document: LimitsDocument | None
    checksum: str | None  # snapshot at read time; None = file did not exist
    error: str | None = None


# ---------------------------------------------------------------------------
# LimitsStore
# ---------------------------------------------------------------------------


class LimitsStore:
    """Document-backed limits store.

    One instance is used per competition invocation so that each physical
    resource is parsed at most once and the checksum snapshot taken at read
    time is the one verified on save.
    """

    format_name = ""

    def __init__(
        self,
        registry: MetricRegistry,
        *,
        default_resource: str | Path | None = None,
        base_dir: Path | None = None,
        create_missing: bool = False,
        ignore_existing: bool = False,
    ) -> None:
        self.registry = registry
        self.default_resource = str(default_resource) if default_resource else None
        self.base_dir = base_dir
        self.create_missing = create_missing
        self.ignore_existing = ignore_existing
        self._loaded: dict[str, _LoadedResource] = {}
        self._target_resources: dict[TargetKey, str] = {}

    # -- backend hooks -----------------------------------------------------

    def parse_document(self, content: bytes, origin: str) -> LimitsDocument:
        """Parse *content*.

        Raises:
            LimitsStoreError: If the document is malformed.
        """
        raise NotImplementedError

    def new_document(self) -> LimitsDocument:
        raise NotImplementedError

    # -- loading -----------------------------------------------------------

    def load(self, resource: ResolvedResource) -> _LoadedResource:
        """Parse *resource* once and cache the result (including failures)."""
        cached = self._loaded.get(resource.key)
        if cached is not None:
            return cached

        content = resource.read()
        if content is None:
            if self.create_missing:
                log.info("Limits file %s not found, starting from an empty document", resource)
                loaded = _LoadedResource(resource, self.new_document(), None)
            else:
                loaded = _LoadedResource(
                    resource, None, None, error=f"Limits resource not found: {resource}"
                )
        else:
            try:
                document = self.parse_document(content, str(resource))
                loaded = _LoadedResource(resource, document, checksum(content))
            except LimitsStoreError as exc:
                loaded = _LoadedResource(resource, None, checksum(content), error=str(exc))
        self._loaded[resource.key] = loaded
        return loaded

    def resolve(self, benchmark: Benchmark) -> ResolvedResource | None:
        name = select_resource_name(benchmark.resources, self.default_resource)
        if name is None:
            return None
        return resolve_resource(name, base_dir=self.base_dir, module=benchmark.module)

    def try_get_targets(
        self, benchmarks: Iterable[Benchmark], state: CompetitionState
    ) -> list[Target]:
        """Load targets for the competing benchmarks.

        Failures are reported as setup errors; the affected targets are
        omitted from the result.
        """
        outcomes = _Outcomes()
        targets: list[Target] = []
        failed_resources: set[str] = set()

        for benchmark in benchmarks:
            if not benchmark.competes:
                continue
            resource = self.resolve(benchmark)
            if resource is None:
                state.write_message(
                    MessageSource.LIMITS_STORE,
                    MessageSeverity.SETUP_ERROR,
                    "No limits resource is configured.",
                    hint="Use @limits_resource or set limits_file.",
                    target=str(benchmark),
                )
                continue

            loaded = self.load(resource)
            if loaded.document is None:
                if resource.key not in failed_resources:
                    failed_resources.add(resource.key)
                    state.write_message(
                        MessageSource.LIMITS_STORE,
                        MessageSeverity.SETUP_ERROR,
                        loaded.error or f"Cannot load {resource}.",
                    )
                continue

            try:
                entries = loaded.document.read_entries(benchmark.key)
            except LimitsStoreError as exc:
                state.write_message(
                    MessageSource.LIMITS_STORE,
                    MessageSeverity.SETUP_ERROR,
                    str(exc),
                    target=str(benchmark),
                )
                continue

            self._target_resources[benchmark.key] = resource.key
            targets.append(self._build_target(benchmark, entries, outcomes))

        outcomes.report(state)
        return targets

    def _build_target(
        self,
        benchmark: Benchmark,
        entries: list[StoredMetricEntry] | None,
        outcomes: _Outcomes,
    ) -> Target:
        target = Target(benchmark.key, is_baseline=benchmark.is_baseline)
        if entries is None:
            outcomes.add(
                MessageSeverity.INFORMATIONAL,
                "Target has no stored limits yet.",
                benchmark.key,
            )
            entries = []

        by_metric: dict[str, list[StoredMetricEntry]] = {}
        for entry in entries:
            descriptor = self.registry.by_stored_name(entry.metric_name) or self.registry.get(
                entry.metric_name
            )
            if descriptor is None:
                outcomes.add(
                    MessageSeverity.WARNING,
                    f"Unknown metric '{entry.metric_name}' in stored limits, ignored.",
                    benchmark.key,
                )
                continue
            by_metric.setdefault(descriptor.metric_id, []).append(entry)

        for descriptor in self.registry:
            found = by_metric.get(descriptor.metric_id, [])
            if not descriptor.applies_to(benchmark.is_baseline):
                if found:
                    log.debug("Dropping %s limits of baseline %s", descriptor.metric_id, benchmark)
                    outcomes.add(
                        MessageSeverity.VERBOSE,
                        f"Metric '{descriptor.metric_id}' does not apply to the baseline, "
                        f"stored limits ignored.",
                        benchmark.key,
                    )
                continue

            value = MetricValue(descriptor)
            target.values.append(value)
            if not found:
                outcomes.add(
                    MessageSeverity.INFORMATIONAL,
                    f"Metric '{descriptor.metric_id}' has no stored limits, treated as empty.",
                    benchmark.key,
                )
                continue
            if len(found) > 1:
                outcomes.add(
                    MessageSeverity.WARNING,
                    f"Metric '{descriptor.metric_id}' has {len(found)} stored entries, "
                    f"the first one is used.",
                    benchmark.key,
                )
            try:
                value.range, value.unit = entry_to_range(descriptor, found[0])
            except LimitsStoreError as exc:
                outcomes.add(MessageSeverity.SETUP_ERROR, str(exc), benchmark.key)
                continue
            if self.ignore_existing:
                value.range, value.unit = MetricRange(), EMPTY_UNIT

        return target

    # -- saving ------------------------------------------------------------

    def try_save_targets(self, targets: Iterable[Target], state: CompetitionState) -> list[Target]:
        """Persist targets with dirty values and return the saved ones.

        Each physical resource is rewritten once. The file's checksum must
        still match the snapshot taken when it was read.
        """
        by_resource: dict[str, list[Target]] = {}
        for target in targets:
            if not target.has_dirty_values:
                continue
            resource_key = self._target_resources.get(target.key)
            if resource_key is None:
                state.write_message(
                    MessageSource.LIMITS_STORE,
                    MessageSeverity.SETUP_ERROR,
                    "Target was not loaded from this limits store, cannot save it.",
                    target=str(target),
                )
                continue
            by_resource.setdefault(resource_key, []).append(target)

        saved: list[Target] = []
        for resource_key, group in by_resource.items():
            loaded = self._loaded[resource_key]
            if self._save_resource(loaded, group, state):
                for target in group:
                    target.mark_saved()
                saved.extend(group)
        return saved

    def _save_resource(
        self, loaded: _LoadedResource, group: list[Target], state: CompetitionState
    ) -> bool:
        resource = loaded.resource
        names = ", ".join(str(t) for t in group)
        if resource.is_embedded:
            state.write_message(
                MessageSource.LIMITS_STORE,
                MessageSeverity.SETUP_ERROR,
                f"Cannot save limits into package resource {resource}: it is read-only.",
                hint="Copy the resource to a file and set limits_file.",
            )
            return False
        assert loaded.document is not None and resource.path is not None

        for target in group:
            loaded.document.write_values(target.key, target.dirty_values())
        content = loaded.document.to_bytes()

        with _SAVE_LOCK:
            try:
                actual = checksum(resource.read())
            except OSError as exc:
                state.write_message(
                    MessageSource.LIMITS_STORE,
                    MessageSeverity.SETUP_ERROR,
                    f"Cannot read {resource} before saving: {exc}",
                )
                return False
            if actual != loaded.checksum:
                state.write_message(
                    MessageSource.LIMITS_STORE,
                    MessageSeverity.SETUP_ERROR,
                    f"Limits file {resource} was modified outside of the competition. "
                    f"Expected checksum {loaded.checksum or '<missing file>'}, "
                    f"actual checksum {actual or '<missing file>'}. Save skipped.",
                    hint="Rerun the competition to pick up the new limits.",
                )
                return False
            try:
                atomic_write(resource.path, content)
            except OSError as exc:
                state.write_message(
                    MessageSource.LIMITS_STORE,
                    MessageSeverity.SETUP_ERROR,
                    f"Cannot write {resource}: {exc}",
                )
                return False

        loaded.checksum = checksum(content)
        log.info("Saved limits for %s to %s", names, resource)
        state.write_message(
            MessageSource.LIMITS_STORE,
            MessageSeverity.INFORMATIONAL,
            f"Limits saved to {resource}: {names}.",
        )
        return True

    # -- inspection --------------------------------------------------------

    def read_all(self, resource: ResolvedResource) -> dict[TargetKey, list[StoredMetricEntry]]:
        """All stored entries of *resource*, keyed by target.

        Raises:
            LimitsStoreError: If the resource is missing or malformed.
        """
        loaded = self.load(resource)
        if loaded.document is None:
            raise LimitsStoreError(loaded.error or f"Cannot load {resource}.")
        result: dict[TargetKey, list[StoredMetricEntry]] = {}
        for key in loaded.document.keys():
            result[key] = loaded.document.read_entries(key) or []
        return result
