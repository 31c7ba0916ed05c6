"""The bounded rerun loop around analysis passes.

:func:`run_competition` is the top-level entry point: it validates the
configuration, applies the concurrency policy, then runs analysis passes
until no rerun is requested or the run limit is reached.
"""

from __future__ import annotations

from typing import Sequence

from perfcompete.competition.benchmarks import Benchmark, discover_benchmarks
from perfcompete.competition.config import (
    HARD_MAX_RUNS,
    CompetitionConfig,
    validate_config,
)
from perfcompete.competition.engine import AnalysisContext, AnalysisEngine
from perfcompete.competition.locking import competition_guard
from perfcompete.competition.measurements import MeasurementSource
from perfcompete.competition.state import CompetitionState, MessageSeverity, MessageSource
from perfcompete.limits.store import LimitsStore
from perfcompete.limits.xml_store import XmlLimitsStore
from perfcompete.limits.yaml_store import YamlLimitsStore
from perfcompete.logging import get_logger
from perfcompete.metrics.descriptors import MetricRegistry, default_registry

log = get_logger("runner")

RUN_LIMIT_EXCEEDED = (
    "The benchmark run count exceeded max rerun limits (read log for details). "
    "Consider to adjust competition setup."
)

_YAML_SUFFIXES = (".yaml", ".yml")


def create_store(config: CompetitionConfig, registry: MetricRegistry) -> LimitsStore:
    """Build the limits store selected by ``config.limits_format``.

    Args:
        config: Competition settings; ``limits_format`` ``auto`` picks YAML
            for ``.yaml``/``.yml`` limits files and XML otherwise.
        registry: Metrics the store reads and writes.

    Returns:
        An :class:`XmlLimitsStore` or a :class:`YamlLimitsStore`.
    """
    fmt = config.limits_format
    if fmt == "auto":
        suffix = config.limits_file.suffix.lower() if config.limits_file else ""
        fmt = "yaml" if suffix in _YAML_SUFFIXES else "xml"
    store_cls = YamlLimitsStore if fmt == "yaml" else XmlLimitsStore
    return store_cls(
        registry,
        default_resource=config.limits_file,
        base_dir=config.base_dir,
        create_missing=config.adjust_limits,
        ignore_existing=config.ignore_existing_limits,
    )


def _report_config(config: CompetitionConfig, state: CompetitionState) -> bool:
    ok = True
    for error in validate_config(config):
        severity = MessageSeverity.WARNING
        if error.severity == "error":
            severity = MessageSeverity.SETUP_ERROR
            ok = False
        state.write_message(
            MessageSource.VALIDATOR, severity, f"Config '{error.field}': {error.message}"
        )
    return ok


def run_competition(
    benchmarks: type | Sequence[Benchmark],
    measurements: MeasurementSource,
    config: CompetitionConfig | None = None,
    *,
    registry: MetricRegistry | None = None,
    store: LimitsStore | None = None,
) -> CompetitionState:
    """Run a competition and return its final state.

    *benchmarks* is either a class carrying ``@competition_benchmark``
    methods or a list of :class:`Benchmark` records. Unexpected exceptions
    are recorded as execution errors, never raised.

    Args:
        benchmarks: Benchmark class or records; the first baseline is the
            reference for relative metrics.
        measurements: Source of the samples for every run.
        config: Competition settings; defaults apply when omitted.
        registry: Metrics to check; the default registry when omitted.
        store: Limits store; built by :func:`create_store` when omitted.

    Returns:
        The final state, holding every message of the invocation.
    """
    config = config or CompetitionConfig()
    if registry is None:
        registry = default_registry()
    if isinstance(benchmarks, type):
        benchmark_list = discover_benchmarks(benchmarks)
    else:
        benchmark_list = list(benchmarks)
    name = config.name or (benchmark_list[0].type_name if benchmark_list else "competition")

    state = CompetitionState(config.effective_max_runs, name=name)
    if not _report_config(config, state):
        return state

    key = config.concurrency_key or name
    with competition_guard(key, config.concurrency, state, lock_dir=config.lock_dir) as allowed:
        if not allowed:
            return state
        try:
            _run_loop(
                AnalysisContext(
                    config=config,
                    state=state,
                    registry=registry,
                    store=store or create_store(config, registry),
                    measurements=measurements,
                    benchmarks=benchmark_list,
                )
            )
        except Exception as exc:
            log.exception("Competition %s failed", name)
            state.write_message(
                MessageSource.RUNNER,
                MessageSeverity.EXECUTION_ERROR,
                f"Unexpected error: {type(exc).__name__}: {exc}",
            )
    return state


def _run_loop(context: AnalysisContext) -> None:
    state = context.state
    engine = AnalysisEngine(context)

    while state.runs_left > 0 and state.run_number < HARD_MAX_RUNS:
        state.prepare_for_run()
        expected = state.run_number + state.runs_left
        log.info("Run %d, total runs (expected): %d.", state.run_number, expected)

        result = engine.run_pass()
        log.debug(
            "Run %d: %d checked, %d mismatched, %d adjusted, %d saved",
            state.run_number,
            result.checked,
            result.mismatches,
            len(result.adjusted),
            len(result.saved),
        )
        if state.runs_left > 0:
            log.info("Rerun requested. Runs left: %d.", state.runs_left)

    if state.run_limit_exceeded:
        state.write_message(MessageSource.RUNNER, MessageSeverity.TEST_ERROR, RUN_LIMIT_EXCEEDED)
    elif state.run_number > 1:
        state.write_message(
            MessageSource.RUNNER,
            MessageSeverity.WARNING,
            f"The benchmark was run {state.run_number} times (read log for details). "
            f"Consider to adjust competition setup.",
        )
