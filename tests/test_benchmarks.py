"""Tests for perfcompete.competition.benchmarks and measurements."""

from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from perfcompete.competition.benchmarks import (
    Benchmark,
    CompetitionBenchmarkInfo,
    LimitsResourceInfo,
    competition_benchmark,
    discover_benchmarks,
    get_attributes,
    limits_resource,
)
from perfcompete.competition.measurements import FileMeasurements, StaticMeasurements


@limits_resource("strings.xml")
class StringBenchmarks:
    @competition_benchmark(baseline=True)
    def join(self) -> None:
        pass

    @competition_benchmark
    def concat(self) -> None:
        pass

    @limits_resource("format.xml")
    @competition_benchmark(does_not_compete=True)
    def format(self) -> None:
        pass

    def helper(self) -> None:
        pass


class DerivedBenchmarks(StringBenchmarks):
    pass


class TestAttributes(unittest.TestCase):
    def test_class_attributes(self) -> None:
        infos = get_attributes(StringBenchmarks, LimitsResourceInfo)
        self.assertEqual([i.name for i in infos], ["strings.xml"])

    def test_not_inherited(self) -> None:
        self.assertEqual(get_attributes(DerivedBenchmarks, LimitsResourceInfo), [])

    def test_method_attributes(self) -> None:
        infos = get_attributes(StringBenchmarks.join, CompetitionBenchmarkInfo)
        self.assertEqual(infos, [CompetitionBenchmarkInfo(baseline=True)])

    def test_empty_resource_name(self) -> None:
        with self.assertRaises(ValueError):
            limits_resource("")


class TestDiscoverBenchmarks(unittest.TestCase):
    def test_discovery(self) -> None:
        benchmarks = discover_benchmarks(StringBenchmarks)
        self.assertEqual([b.method_name for b in benchmarks], ["join", "concat", "format"])
        join, concat, fmt = benchmarks
        self.assertTrue(join.is_baseline)
        self.assertFalse(concat.is_baseline)
        self.assertTrue(concat.competes)
        self.assertFalse(fmt.competes)
        self.assertEqual(str(concat), "StringBenchmarks.concat")
        self.assertEqual(concat.module, __name__)

    def test_resource_nesting(self) -> None:
        benchmarks = discover_benchmarks(StringBenchmarks, resources=["suite.xml"])
        by_name = {b.method_name: b for b in benchmarks}
        self.assertEqual(by_name["concat"].resources, ("suite.xml", "strings.xml"))
        self.assertEqual(by_name["format"].resources, ("suite.xml", "strings.xml", "format.xml"))

    def test_derived_class_has_no_benchmarks(self) -> None:
        self.assertEqual(discover_benchmarks(DerivedBenchmarks), [])


# ---------------------------------------------------------------------------
# Measurements
# ---------------------------------------------------------------------------


class TestStaticMeasurements(unittest.TestCase):
    def setUp(self) -> None:
        self.benchmark = Benchmark("StringBenchmarks", "concat")

    def test_flat_list_used_for_every_run(self) -> None:
        source = StaticMeasurements({"concat": {"time": [1, 2, 3]}})
        self.assertEqual(source.get_samples(self.benchmark, "time", 1), [1.0, 2.0, 3.0])
        self.assertEqual(source.get_samples(self.benchmark, "time", 3), [1.0, 2.0, 3.0])

    def test_batches_per_run(self) -> None:
        source = StaticMeasurements({"concat": {"time": [[1], [2]]}})
        self.assertEqual(source.get_samples(self.benchmark, "time", 1), [1.0])
        self.assertEqual(source.get_samples(self.benchmark, "time", 2), [2.0])
        self.assertEqual(source.get_samples(self.benchmark, "time", 5), [2.0])

    def test_qualified_key(self) -> None:
        source = StaticMeasurements({"StringBenchmarks.concat": {"time": [4]}})
        self.assertEqual(source.get_samples(self.benchmark, "time", 1), [4.0])

    def test_missing_kind(self) -> None:
        source = StaticMeasurements({"concat": {"time": [1]}})
        self.assertIsNone(source.get_samples(self.benchmark, "allocations", 1))
        self.assertIsNone(source.get_samples(Benchmark("X", "y"), "time", 1))

    def test_mixed_batches_rejected(self) -> None:
        with self.assertRaises(ValueError):
            StaticMeasurements({"concat": {"time": [1, [2]]}})

    def test_sample_kinds(self) -> None:
        source = StaticMeasurements({"a": {"time": [1]}, "b": {"gc_count": [0]}})
        self.assertEqual(source.sample_kinds, {"time", "gc_count"})


class TestFileMeasurements(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_yaml(self) -> None:
        path = self.base / "samples.yaml"
        path.write_text(
            "competition: StringBenchmarks\n"
            "baseline: join\n"
            "limits: strings.xml\n"
            "does_not_compete: [format]\n"
            "benchmarks:\n"
            "  join:\n"
            "    time: [100, 102]\n"
            "  concat:\n"
            "    time: [205, 210]\n"
            "  format:\n"
            "    time: [1]\n"
        )
        source = FileMeasurements(path)
        benchmarks = source.benchmarks(["override.xml"])
        by_name = {b.method_name: b for b in benchmarks}
        self.assertTrue(by_name["join"].is_baseline)
        self.assertFalse(by_name["format"].competes)
        self.assertEqual(by_name["concat"].resources, ("strings.xml", "override.xml"))
        self.assertEqual(source.get_samples(by_name["concat"], "time", 1), [205.0, 210.0])

    def test_json(self) -> None:
        path = self.base / "samples.json"
        path.write_text(json.dumps({"benchmarks": {"a": {"time": [1, 2]}}}))
        source = FileMeasurements(path)
        self.assertEqual(source.competition, "samples")
        self.assertIsNone(source.baseline)
        self.assertEqual(source.benchmarks()[0].resources, ())

    def test_unknown_baseline(self) -> None:
        path = self.base / "samples.yaml"
        path.write_text("baseline: nope\nbenchmarks:\n  a:\n    time: [1]\n")
        with self.assertRaises(ValueError):
            FileMeasurements(path)

    def test_no_benchmarks(self) -> None:
        path = self.base / "samples.yaml"
        path.write_text("competition: X\n")
        with self.assertRaises(ValueError):
            FileMeasurements(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            FileMeasurements(self.base / "nope.yaml")


if __name__ == "__main__":
    unittest.main()
