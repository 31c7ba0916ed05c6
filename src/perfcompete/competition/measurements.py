"""Measurement sources.

The engine never runs benchmarks itself; it asks a
:class:`MeasurementSource` for the finished sample batch of a benchmark,
sample kind (``time``, ``allocations``, ...) and run number.

:class:`FileMeasurements` reads batches from a YAML or JSON file::

    competition: StringBenchmarks
    baseline: join
    limits: strings.xml        # optional
    benchmarks:
      join:
        time: [100, 102, 101, 99, 98, 103, 97]
      concat:
        time:
        - [205, 210, 198, 202, 207]   # run 1
        - [204, 209, 199, 203, 206]   # run 2 and later

A flat list is used for every run; a list of lists holds one batch per run,
and the last batch is reused once the runs outnumber the batches.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from perfcompete.competition.benchmarks import Benchmark
from perfcompete.logging import get_logger

log = get_logger("measurements")

Batches = list[list[float]]


class MeasurementSource:
    """Supplies raw sample batches to the analysis engine."""

    def get_samples(
        self, benchmark: Benchmark, sample_kind: str, run_number: int
    ) -> Sequence[float] | None:
        """Samples of *sample_kind* for *benchmark* in run *run_number*.

        Returns None (or an empty sequence) when there is no report.
        """
        raise NotImplementedError


def _as_batches(raw: Any, where: str) -> Batches:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"{where}: samples must be a list, got {type(raw).__name__}")
    if raw and all(isinstance(item, list) for item in raw):
        return [[float(v) for v in batch] for batch in raw]
    if any(isinstance(item, list) for item in raw):
        raise ValueError(f"{where}: mix of batches and plain samples")
    return [[float(v) for v in raw]]


class StaticMeasurements(MeasurementSource):
    """Measurements held in memory, keyed by method name and sample kind."""

    def __init__(self, samples: Mapping[str, Mapping[str, Any]]) -> None:
        self._batches: dict[str, dict[str, Batches]] = {}
        for method, kinds in samples.items():
            if not isinstance(kinds, Mapping):
                raise ValueError(
                    f"Benchmark '{method}' must map sample kinds to samples, "
                    f"got {type(kinds).__name__}"
                )
            self._batches[str(method)] = {
                str(kind): _as_batches(raw, f"{method}.{kind}") for kind, raw in kinds.items()
            }

    @property
    def methods(self) -> list[str]:
        return list(self._batches)

    @property
    def sample_kinds(self) -> set[str]:
        return {kind for kinds in self._batches.values() for kind in kinds}

    def get_samples(
        self, benchmark: Benchmark, sample_kind: str, run_number: int
    ) -> Sequence[float] | None:
        kinds = self._batches.get(str(benchmark.key)) or self._batches.get(benchmark.method_name)
        if not kinds:
            return None
        batches = kinds.get(sample_kind)
        if not batches:
            return None
        index = min(max(run_number, 1), len(batches)) - 1
        return batches[index]


class FileMeasurements(StaticMeasurements):
    """Measurements loaded from a YAML or JSON file."""

    def __init__(self, path: Path) -> None:
        if not path.exists():
            raise FileNotFoundError(f"Measurements file not found: {path}")
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
        if not isinstance(data, dict):
            raise ValueError(f"Measurements file must be a mapping, got {type(data).__name__}")

        benchmarks = data.get("benchmarks")
        if not isinstance(benchmarks, dict) or not benchmarks:
            raise ValueError(f"{path}: 'benchmarks' must be a non-empty mapping")

        super().__init__(benchmarks)
        self.path = path
        self.competition = str(data.get("competition") or path.stem)
        self.baseline = data.get("baseline")
        self.limits = data.get("limits")
        not_competing = data.get("does_not_compete") or []

        if self.baseline is not None and self.baseline not in benchmarks:
            raise ValueError(f"{path}: baseline '{self.baseline}' is not a listed benchmark")
        self.does_not_compete = {str(m) for m in not_competing}
        log.debug("Loaded measurements for %d benchmark(s) from %s", len(benchmarks), path)

    def benchmarks(self, resources: Sequence[str] = ()) -> list[Benchmark]:
        """Benchmark records for the methods listed in the file.

        *resources* are nested inside the file's own ``limits`` name, so
        they take precedence over it.
        """
        names = (str(self.limits),) if self.limits else ()
        names += tuple(resources)
        return [
            Benchmark(
                type_name=self.competition,
                method_name=method,
                is_baseline=method == self.baseline,
                does_not_compete=method in self.does_not_compete,
                resources=names,
            )
            for method in self.methods
        ]
