"""Competition configuration and YAML profile loading.

Handles:
- The :class:`CompetitionConfig` dataclass with run, adjustment, storage
  and concurrency settings.
- Validating a configuration before a competition runs.
- Loading settings from YAML profiles and merging CLI overrides.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from perfcompete.logging import get_logger

log = get_logger("config")

# Hard ceiling on runs per invocation, independent of configuration.
HARD_MAX_RUNS = 10

LIMITS_FORMATS = ("auto", "xml", "yaml")


class ConcurrencyPolicy(enum.Enum):
    """What to do when the same competition is already running."""

    DEFAULT = "default"  # proceed, warn about interference
    LOCK = "lock"  # wait for the other invocation to finish
    FAIL = "fail"  # skip this invocation


# ---------------------------------------------------------------------------
# CompetitionConfig
# ---------------------------------------------------------------------------


@dataclass
class CompetitionConfig:
    """Resolved configuration for a competition invocation."""

    # Identity
    name: str = ""
    description: str = ""

    # Runs
    max_runs: int = 3  # capped at HARD_MAX_RUNS

    # Limits checking and adjustment
    adjust_limits: bool = False
    save_limits: bool = False
    skip_runs_before_adjust: int = 0
    force_adjust_empty: bool = True  # adjust unset limits even when skipping runs
    reruns_on_adjust: int = 1  # confirmation reruns after an adjustment
    ignore_empty_metrics: bool = False  # no samples -> warning instead of error
    ignore_existing_limits: bool = False  # start from empty limits
    rounding_digits: int | None = None  # None = the display unit's digits

    # Limits storage
    limits_file: Path | None = None  # default resource
    base_dir: Path | None = None
    limits_format: str = "auto"

    # Previous run log import
    previous_log_uri: str = ""
    previous_log_timeout: float = 10.0
    log_annotations: bool = False

    # Concurrency
    concurrency: ConcurrencyPolicy = ConcurrencyPolicy.DEFAULT
    concurrency_key: str = ""  # defaults to the competition name
    lock_dir: Path | None = None

    @property
    def effective_max_runs(self) -> int:
        return max(1, min(self.max_runs, HARD_MAX_RUNS))


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class ValidationError:
    """A single configuration validation error."""

    field: str
    message: str
    severity: str = "error"  # "error" or "warning"


def validate_config(config: CompetitionConfig) -> list[ValidationError]:
    """Validate a competition configuration.

    Returns a list of validation errors.  Empty list means valid.
    """
    errors: list[ValidationError] = []

    if config.max_runs < 1:
        errors.append(
            ValidationError(
                field="max_runs",
                message=f"At least one run is required (got {config.max_runs}).",
            )
        )
    elif config.max_runs > HARD_MAX_RUNS:
        errors.append(
            ValidationError(
                field="max_runs",
                message=(
                    f"max_runs {config.max_runs} exceeds the hard limit of "
                    f"{HARD_MAX_RUNS}; {HARD_MAX_RUNS} will be used."
                ),
                severity="warning",
            )
        )

    if config.skip_runs_before_adjust < 0:
        errors.append(
            ValidationError(
                field="skip_runs_before_adjust",
                message=(
                    f"skip_runs_before_adjust cannot be negative "
                    f"(got {config.skip_runs_before_adjust})."
                ),
            )
        )

    if config.reruns_on_adjust < 0:
        errors.append(
            ValidationError(
                field="reruns_on_adjust",
                message=f"reruns_on_adjust cannot be negative (got {config.reruns_on_adjust}).",
            )
        )

    if config.rounding_digits is not None and not 0 <= config.rounding_digits <= 12:
        errors.append(
            ValidationError(
                field="rounding_digits",
                message=f"rounding_digits must be in [0, 12] (got {config.rounding_digits}).",
            )
        )

    if config.previous_log_timeout <= 0:
        errors.append(
            ValidationError(
                field="previous_log_timeout",
                message=f"Timeout must be positive (got {config.previous_log_timeout}).",
            )
        )

    if config.limits_format not in LIMITS_FORMATS:
        errors.append(
            ValidationError(
                field="limits_format",
                message=(
                    f"Unknown limits format '{config.limits_format}'. "
                    f"Valid formats: {', '.join(LIMITS_FORMATS)}"
                ),
            )
        )

    if config.base_dir is not None and not config.base_dir.is_dir():
        errors.append(
            ValidationError(
                field="base_dir",
                message=f"Base directory does not exist: {config.base_dir}",
            )
        )

    if config.lock_dir is not None and not config.lock_dir.is_dir():
        errors.append(
            ValidationError(
                field="lock_dir",
                message=f"Lock directory does not exist: {config.lock_dir}",
            )
        )

    if config.save_limits and not config.adjust_limits:
        errors.append(
            ValidationError(
                field="save_limits",
                message="save_limits has no effect unless adjust_limits is enabled.",
                severity="warning",
            )
        )

    if config.ignore_existing_limits and not config.adjust_limits:
        errors.append(
            ValidationError(
                field="ignore_existing_limits",
                message=(
                    "ignore_existing_limits without adjust_limits fails every check. "
                    "Enable adjust_limits to collect new limits."
                ),
                severity="warning",
            )
        )

    return errors


# ---------------------------------------------------------------------------
# YAML profile loading
# ---------------------------------------------------------------------------


_PATH_FIELDS = {"limits_file", "base_dir", "lock_dir"}


def load_profile(profile_path: Path) -> dict[str, Any]:
    """Load a competition profile from a YAML file.

    Profile format::

        name: "StringBenchmarks"
        max_runs: 5
        adjust_limits: true
        save_limits: true
        limits_file: "limits/strings.xml"
        concurrency: lock

    Returns:
        The parsed YAML as a dict.
    """
    if not profile_path.exists():
        raise FileNotFoundError(f"Profile not found: {profile_path}")

    text = profile_path.read_text()
    data = yaml.safe_load(text)

    if not isinstance(data, dict):
        raise ValueError(f"Profile must be a YAML mapping, got {type(data).__name__}")

    return data


def config_from_profile(
    profile_data: dict[str, Any],
    *,
    cli_overrides: dict[str, Any] | None = None,
) -> CompetitionConfig:
    """Build a CompetitionConfig from a parsed YAML profile.

    CLI overrides take precedence over profile values; ``None`` overrides
    are ignored so unset CLI options never mask the profile.

    Raises:
        ValueError: On unknown keys or values of the wrong type.
    """
    known = {f.name for f in fields(CompetitionConfig)}
    merged: dict[str, Any] = {}

    for source, label in ((profile_data, "Profile"), (cli_overrides or {}, "Override")):
        for key, value in source.items():
            if key not in known:
                raise ValueError(
                    f"{label} key '{key}' is not a competition setting. "
                    f"Valid keys: {', '.join(sorted(known))}"
                )
            if value is None:
                continue
            merged[key] = value

    for key in _PATH_FIELDS & merged.keys():
        merged[key] = Path(merged[key])

    if "concurrency" in merged and not isinstance(merged["concurrency"], ConcurrencyPolicy):
        try:
            merged["concurrency"] = ConcurrencyPolicy(str(merged["concurrency"]).lower())
        except ValueError:
            raise ValueError(
                f"Unknown concurrency policy '{merged['concurrency']}'. "
                f"Valid policies: {', '.join(p.value for p in ConcurrencyPolicy)}"
            ) from None

    for key in ("max_runs", "skip_runs_before_adjust", "reruns_on_adjust"):
        if key in merged and not isinstance(merged[key], int):
            raise ValueError(f"'{key}' must be an integer, got {type(merged[key]).__name__}")

    config = CompetitionConfig(**merged)
    log.debug("Competition config: %s", config)
    return config
