"""Command-line interface for perfcompete.

Provides the main CLI entry point with ``check`` and ``show`` subcommands.
"""

from __future__ import annotations

from pathlib import Path

import click

from perfcompete import __version__
from perfcompete.competition.config import (
    LIMITS_FORMATS,
    CompetitionConfig,
    ConcurrencyPolicy,
    config_from_profile,
    load_profile,
)
from perfcompete.logging import setup_logging


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """perfcompete: check competing implementations against stored performance limits."""


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@main.command()
@click.argument("measurements_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--limits",
    "limits_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Limits file (XML or YAML). Overrides the 'limits' key of the measurements file.",
)
@click.option(
    "--profile",
    "profile_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML competition profile.",
)
@click.option("--format", "limits_format", type=click.Choice(LIMITS_FORMATS), default=None)
@click.option(
    "--metric",
    "metric_ids",
    multiple=True,
    help="Metric to check (repeatable). Defaults to every metric with samples.",
)
@click.option("--max-runs", type=int, default=None, help="Maximum runs (hard limit 10).")
@click.option("--adjust/--no-adjust", "adjust_limits", default=None, help="Widen failing limits.")
@click.option("--save/--no-save", "save_limits", default=None, help="Persist adjusted limits.")
@click.option("--skip-runs-before-adjust", type=int, default=None)
@click.option("--reruns-on-adjust", type=int, default=None)
@click.option("--rounding-digits", type=int, default=None)
@click.option(
    "--ignore-empty/--no-ignore-empty",
    "ignore_empty_metrics",
    default=None,
    help="Warn instead of failing when a metric has no samples.",
)
@click.option(
    "--ignore-existing/--no-ignore-existing",
    "ignore_existing_limits",
    default=None,
    help="Start from empty limits.",
)
@click.option("--previous-log", "previous_log_uri", default=None, help="Path or URL of a previous run log.")
@click.option("--timeout", "previous_log_timeout", type=float, default=None, help="Previous log fetch timeout (s).")
@click.option("--log-annotations/--no-log-annotations", default=None)
@click.option(
    "--concurrency",
    type=click.Choice([p.value for p in ConcurrencyPolicy]),
    default=None,
    help="Policy when the same competition is already running.",
)
@click.option("--lock-dir", type=click.Path(file_okay=False, path_type=Path), default=None)
@click.option("-v", "--verbose", is_flag=True, help="Show detailed output.")
@click.option("-q", "--quiet", is_flag=True, help="Only show errors.")
@click.option("--log-file", type=click.Path(path_type=Path), default=None)
def check(  # noqa: PLR0913
    measurements_file: Path,
    limits_file: Path | None,
    profile_path: Path | None,
    limits_format: str | None,
    metric_ids: tuple[str, ...],
    max_runs: int | None,
    adjust_limits: bool | None,
    save_limits: bool | None,
    skip_runs_before_adjust: int | None,
    reruns_on_adjust: int | None,
    rounding_digits: int | None,
    ignore_empty_metrics: bool | None,
    ignore_existing_limits: bool | None,
    previous_log_uri: str | None,
    previous_log_timeout: float | None,
    log_annotations: bool | None,
    concurrency: str | None,
    lock_dir: Path | None,
    verbose: bool,
    quiet: bool,
    log_file: Path | None,
) -> None:
    """Run a competition from recorded measurements.

    MEASUREMENTS_FILE is a YAML or JSON file listing the sample batches
    of each benchmark. Exits with status 1 when the competition fails.

    \b
    Examples:
        perfcompete check samples.yaml --limits limits.xml
        perfcompete check samples.yaml --limits limits.xml --adjust --save
    """
    from perfcompete.competition.measurements import FileMeasurements
    from perfcompete.competition.report import format_report
    from perfcompete.competition.runner import run_competition
    from perfcompete.competition.state import MessageSeverity
    from perfcompete.metrics.descriptors import default_registry

    setup_logging(verbose=verbose, quiet=quiet, log_file=log_file)

    try:
        measurements = FileMeasurements(measurements_file)
    except (OSError, ValueError) as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    cli_overrides: dict[str, object] = {
        "limits_file": limits_file,
        "limits_format": limits_format,
        "max_runs": max_runs,
        "adjust_limits": adjust_limits,
        "save_limits": save_limits,
        "skip_runs_before_adjust": skip_runs_before_adjust,
        "reruns_on_adjust": reruns_on_adjust,
        "rounding_digits": rounding_digits,
        "ignore_empty_metrics": ignore_empty_metrics,
        "ignore_existing_limits": ignore_existing_limits,
        "previous_log_uri": previous_log_uri,
        "previous_log_timeout": previous_log_timeout,
        "log_annotations": log_annotations,
        "concurrency": concurrency,
        "lock_dir": lock_dir,
    }

    try:
        profile_data = load_profile(profile_path) if profile_path else {}
        config = config_from_profile(profile_data, cli_overrides=cli_overrides)
    except (OSError, ValueError) as exc:
        raise click.UsageError(str(exc)) from exc

    registry = default_registry()
    if not metric_ids:
        kinds = measurements.sample_kinds
        metric_ids = tuple(d.metric_id for d in registry if d.sample_kind in kinds)
    try:
        registry = registry.subset(metric_ids)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc

    if not config.name:
        config.name = measurements.competition
    if config.base_dir is None:
        config.base_dir = measurements_file.parent
    if config.limits_file is None and measurements.limits:
        config.limits_file = config.base_dir / str(measurements.limits)

    overrides = (str(limits_file),) if limits_file else ()
    state = run_competition(
        measurements.benchmarks(overrides), measurements, config, registry=registry
    )

    min_severity = MessageSeverity.VERBOSE if verbose else MessageSeverity.INFORMATIONAL
    click.echo(format_report(state, min_severity=min_severity))
    if state.failed:
        raise SystemExit(1)


# ---------------------------------------------------------------------------
# show
# ---------------------------------------------------------------------------


@main.command()
@click.argument("limits_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--format", "limits_format", type=click.Choice(LIMITS_FORMATS), default="auto")
def show(limits_file: Path, limits_format: str) -> None:
    """Print the limits stored in LIMITS_FILE."""
    from perfcompete.competition.report import format_stored_limits
    from perfcompete.competition.runner import create_store
    from perfcompete.limits.resources import resolve_resource
    from perfcompete.limits.store import LimitsStoreError
    from perfcompete.metrics.descriptors import default_registry

    config = CompetitionConfig(limits_file=limits_file, limits_format=limits_format)
    store = create_store(config, default_registry())
    try:
        limits = store.read_all(resolve_resource(str(limits_file)))
    except LimitsStoreError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    click.echo(f"Limits in {limits_file}:")
    click.echo(format_stored_limits(limits))
