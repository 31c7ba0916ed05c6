"""Statistical helpers for metric calculators.

Percentiles use linear interpolation between closest ranks (the same
estimator as ``numpy.percentile(..., interpolation='linear')``). Spread is
computed on the log scale, since timing samples are closer to log-normal
than normal.
"""

from __future__ import annotations

import math
import statistics
from dataclasses import dataclass
from typing import Sequence


def percentile(values: Sequence[float], p: float) -> float:
    """Return the *p*-th percentile of *values* (``p`` in ``[0, 100]``).

    *p* is clamped to ``[0, 100]``. Returns NaN for an empty sequence.
    """
    return _percentile(sorted(values), min(max(p, 0.0), 100.0) / 100.0)


def _percentile(sorted_values: list[float], p: float) -> float:
    """Compute the p-th percentile (``p`` as a fraction) of sorted values."""
    n = len(sorted_values)
    if n == 0:
        return float("nan")
    if n == 1:
        return sorted_values[0]

    k = (n - 1) * p
    f = math.floor(k)
    c = math.ceil(k)
    if f == c:
        return sorted_values[int(k)]
    d = k - f
    return sorted_values[int(f)] * (1 - d) + sorted_values[int(c)] * d


# ---------------------------------------------------------------------------
# Log-scale moments
# ---------------------------------------------------------------------------


@dataclass
class LogMoments:
    """Mean and variance of log-transformed samples."""

    n: int
    mu: float
    variance: float

    @property
    def sigma(self) -> float:
        return math.sqrt(self.variance)


def log_transform(values: Sequence[float]) -> list[float]:
    """Return ``ln(x)`` for each sample, mapping ``x <= 0`` to 0."""
    return [0.0 if v <= 0 else math.log(v) for v in values]


def log_moments(values: Sequence[float]) -> LogMoments:
    """Compute the sample mean and variance of the log-transformed values.

    A single sample has zero variance.
    """
    logs = log_transform(values)
    if not logs:
        return LogMoments(n=0, mu=float("nan"), variance=float("nan"))
    mu = statistics.fmean(logs)
    variance = statistics.variance(logs, xbar=mu) if len(logs) >= 2 else 0.0
    return LogMoments(n=len(logs), mu=mu, variance=variance)


def lognormal_ratio_spread(x: LogMoments, y: LogMoments) -> float:
    """Standard deviation of ``X / Y`` for independent log-normal X and Y.

    Uses ``mu_z = mu_x - mu_y`` and ``var_z = var_x + var_y``, then the
    log-normal identity ``sqrt(exp(2mu + 2var) - exp(2mu + var))``.
    """
    mu_z = x.mu - y.mu
    var_z = x.variance + y.variance
    return math.sqrt(math.exp(2 * mu_z + 2 * var_z) - math.exp(2 * mu_z + var_z))
