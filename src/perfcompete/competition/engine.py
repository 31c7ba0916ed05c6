"""One analysis pass of a competition.

A pass loads the targets (first run only), checks every target's metric
values against freshly measured ranges, widens mismatched limits when
adjustment is allowed, persists changed limits and decides whether another
run is needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from perfcompete.competition.benchmarks import Benchmark
from perfcompete.competition.config import CompetitionConfig
from perfcompete.competition.measurements import MeasurementSource
from perfcompete.competition.state import CompetitionState, MessageSeverity, MessageSource
from perfcompete.limits.previous_log import (
    apply_previous_log,
    format_annotation_block,
    load_previous_log,
)
from perfcompete.limits.store import LimitsStore
from perfcompete.logging import get_logger
from perfcompete.metrics.descriptors import MetricRegistry
from perfcompete.metrics.ranges import MetricRange
from perfcompete.metrics.values import MetricValue, Target, TargetKey

log = get_logger("engine")

ALL_LIMITS_OK = "All competition limits are ok."
NO_BASELINE = "The competition has no baseline"


@dataclass
class AnalysisContext:
    """Everything one competition invocation needs, passed explicitly."""

    config: CompetitionConfig
    state: CompetitionState
    registry: MetricRegistry
    store: LimitsStore
    measurements: MeasurementSource
    benchmarks: list[Benchmark]


@dataclass
class _Mismatch:
    target: Target
    benchmark: Benchmark
    value: MetricValue
    actual: MetricRange


@dataclass
class PassResult:
    """Outcome of one analysis pass."""

    checked: int = 0
    mismatches: int = 0
    adjusted: list[TargetKey] = field(default_factory=list)
    saved: list[TargetKey] = field(default_factory=list)
    rerun_requested: bool = False
    safe: bool = True


class AnalysisEngine:
    """Runs analysis passes, reusing the loaded targets across reruns."""

    def __init__(self, context: AnalysisContext) -> None:
        self.context = context
        self.targets: list[Target] | None = None
        self.adjusted_keys: list[TargetKey] = []
        self._benchmarks = {b.key: b for b in context.benchmarks}
        self._baseline: Benchmark | None = None

    # -- helpers -----------------------------------------------------------

    @property
    def state(self) -> CompetitionState:
        return self.context.state

    @property
    def config(self) -> CompetitionConfig:
        return self.context.config

    def _message(
        self,
        severity: MessageSeverity,
        text: str,
        *,
        target: Target | Benchmark | None = None,
        hint: str | None = None,
    ) -> None:
        self.state.write_message(
            MessageSource.ANALYSER,
            severity,
            text,
            hint=hint,
            target=str(target) if target is not None else None,
        )

    def _mark_adjusted(self, key: TargetKey) -> None:
        if key not in self.adjusted_keys:
            self.adjusted_keys.append(key)

    # -- loading -----------------------------------------------------------

    def _validate_benchmarks(self) -> bool:
        competing = [b for b in self.context.benchmarks if b.competes]
        baselines = [b for b in competing if b.is_baseline]
        if len(baselines) > 1:
            self.state.write_message(
                MessageSource.VALIDATOR,
                MessageSeverity.SETUP_ERROR,
                "The competition has more than one baseline: "
                + ", ".join(str(b) for b in baselines),
            )
            return False
        if not baselines and any(d.is_relative for d in self.context.registry):
            self.state.write_message(
                MessageSource.VALIDATOR,
                MessageSeverity.SETUP_ERROR,
                NO_BASELINE,
                hint="Mark one benchmark with @competition_benchmark(baseline=True).",
            )
            return False
        if not competing:
            self.state.write_message(
                MessageSource.VALIDATOR,
                MessageSeverity.SETUP_ERROR,
                "The competition has no benchmarks.",
            )
            return False
        self._baseline = baselines[0] if baselines else None
        return True

    def load_targets(self) -> list[Target]:
        """Load targets once per invocation."""
        if self.targets is not None:
            return self.targets
        if not self._validate_benchmarks():
            self.targets = []
            return self.targets

        self.targets = self.context.store.try_get_targets(self.context.benchmarks, self.state)
        log.debug("Loaded %d target(s)", len(self.targets))

        uri = self.config.previous_log_uri
        if uri and self.config.adjust_limits and self.state.safe_to_continue:
            documents = load_previous_log(
                uri,
                self.context.registry,
                self.state,
                timeout=self.config.previous_log_timeout,
            )
            if documents:
                apply_previous_log(
                    self.targets,
                    documents,
                    self.state,
                    uri=uri,
                    rounding_digits=self.config.rounding_digits,
                )
                for target in self.targets:
                    if target.has_dirty_values:
                        self._mark_adjusted(target.key)
        return self.targets

    # -- measuring ---------------------------------------------------------

    def _ranges(
        self, benchmark: Benchmark, value: MetricValue
    ) -> tuple[MetricRange | None, MetricRange | None]:
        """Actual and limit ranges for *value*; None when there is no report."""
        descriptor = value.descriptor
        calculator = descriptor.calculator
        run = self.state.run_number
        samples = self.context.measurements.get_samples(benchmark, descriptor.sample_kind, run)
        if not descriptor.is_relative:
            return calculator.actual_range(samples), calculator.limit_range(samples)
        assert self._baseline is not None
        baseline = self.context.measurements.get_samples(
            self._baseline, descriptor.sample_kind, run
        )
        return (
            calculator.relative_actual_range(samples, baseline),
            calculator.relative_limit_range(samples, baseline),
        )

    # -- the pass ----------------------------------------------------------

    def run_pass(self) -> PassResult:
        """Run one analysis pass for the current run of the state."""
        result = PassResult()
        targets = self.load_targets()
        if not self.state.safe_to_continue:
            result.safe = False
            return result

        mismatches: list[_Mismatch] = []
        limit_ranges: dict[int, MetricRange] = {}
        digits = self.config.rounding_digits

        for target in targets:
            benchmark = self._benchmarks[target.key]
            for value in target.values:
                try:
                    actual, limit = self._ranges(benchmark, value)
                except ValueError as exc:
                    self._message(
                        MessageSeverity.EXECUTION_ERROR,
                        f"Metric '{value.descriptor.display_name}': {exc}",
                        target=target,
                    )
                    continue
                result.checked += 1
                if actual is None or limit is None:
                    self._report_empty(target, value)
                    continue
                # Relative limits may not cover the measured ratio exactly.
                limit_ranges[id(value)] = limit.union(actual)
                if not value.union_with(actual, checking_only=True, rounding_digits=digits):
                    mismatches.append(_Mismatch(target, benchmark, value, actual))

        result.mismatches = len(mismatches)
        result.safe = self.state.safe_to_continue

        failed = False
        for mismatch in mismatches:
            if result.safe and self._can_adjust(mismatch.value):
                before = mismatch.value.format_range()
                mismatch.value.union_with(
                    limit_ranges[id(mismatch.value)], checking_only=False, rounding_digits=digits
                )
                self._mark_adjusted(mismatch.target.key)
                if mismatch.target.key not in result.adjusted:
                    result.adjusted.append(mismatch.target.key)
                self._message(
                    MessageSeverity.INFORMATIONAL,
                    f"Metric '{mismatch.value.descriptor.display_name}' limits adjusted: "
                    f"{before} -> {mismatch.value.format_range()}.",
                    target=mismatch.target,
                )
            else:
                failed = True
                self._report_mismatch(mismatch)

        if not result.safe:
            log.debug("Pass is not safe, skipping persistence and reruns")
            return result

        if self.config.save_limits and any(t.has_dirty_values for t in targets):
            saved = self.context.store.try_save_targets(targets, self.state)
            result.saved = [t.key for t in saved]

        if result.adjusted and self.config.reruns_on_adjust > 0:
            result.rerun_requested = self.state.request_reruns(
                self.config.reruns_on_adjust, "Limits adjusted."
            )
        elif failed and not self.state.is_last_run:
            result.rerun_requested = self.state.request_reruns(1, "Competition validation failed.")

        if not result.rerun_requested:
            # Adjusted limits are unconfirmed when the run limit cut the reruns.
            self._complete(targets, failed or self.state.run_limit_exceeded)
        return result

    def _can_adjust(self, value: MetricValue) -> bool:
        if not self.config.adjust_limits:
            return False
        if self.state.run_number > self.config.skip_runs_before_adjust:
            return True
        return value.range.is_empty and self.config.force_adjust_empty

    def _report_empty(self, target: Target, value: MetricValue) -> None:
        name = value.descriptor.display_name
        if self.config.ignore_empty_metrics:
            self._message(
                MessageSeverity.WARNING,
                f"Metric '{name}' has no samples, ignored.",
                target=target,
            )
        else:
            self._message(
                MessageSeverity.EXECUTION_ERROR,
                f"Metric '{name}' has no samples.",
                target=target,
                hint="Check that the benchmark reports this metric or set ignore_empty_metrics.",
            )

    def _report_mismatch(self, mismatch: _Mismatch) -> None:
        value = mismatch.value
        unit = value.display_unit(mismatch.actual)
        actual = f"[{unit.format_value(mismatch.actual.min)}, {unit.format_value(mismatch.actual.max)}]"
        name = value.descriptor.display_name
        if value.range.is_empty:
            text = f"Metric '{name}' {actual} has no limits."
            hint = "Enable adjust_limits to collect limits."
        else:
            text = f"Metric '{name}' {actual} does not fit into limits {value.format_range()}."
            hint = None
        self._message(MessageSeverity.TEST_ERROR, text, target=mismatch.target, hint=hint)

    def _complete(self, targets: Sequence[Target], failed: bool) -> None:
        """Terminal summary for the last pass of the invocation."""
        unsaved = [t for t in targets if t.has_dirty_values]
        if unsaved:
            self._message(
                MessageSeverity.WARNING,
                "There are competition limits unsaved: "
                + ", ".join(str(t) for t in unsaved)
                + ".",
                hint="Enable save_limits or log_annotations to keep adjusted limits.",
            )
        elif not failed:
            self._message(MessageSeverity.INFORMATIONAL, ALL_LIMITS_OK)

        if self.config.log_annotations and self.adjusted_keys:
            adjusted = [t for t in targets if t.key in self.adjusted_keys]
            log.info("Adjusted limits:\n%s", format_annotation_block(adjusted, self.context.registry))
