"""Tests for perfcompete.cli: the check and show commands."""

from __future__ import annotations

import logging
import tempfile
import unittest
from pathlib import Path

from click.testing import CliRunner, Result

from perfcompete.cli import main

MEASUREMENTS = """\
competition: StringBenchmarks
baseline: join
benchmarks:
  join:
    time: [100, 102, 101, 99, 98, 103, 97]
  concat:
    time: [205, 210, 198, 202, 207]
"""


def _limits(max_ratio: str = "2.15") -> str:
    return (
        "<?xml version='1.0' encoding='utf-8'?>\n"
        "<CompetitionBenchmarks>\n"
        '\t<Competition Target="StringBenchmarks">\n'
        f'\t\t<Candidate Target="concat" MinRatio="1.85" MaxRatio="{max_ratio}" />\n'
        "\t</Competition>\n"
        "</CompetitionBenchmarks>\n"
    )


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.base = Path(self.tmpdir.name)
        self.samples = self.base / "samples.yaml"
        self.samples.write_text(MEASUREMENTS)
        self.limits = self.base / "strings.xml"

    def tearDown(self) -> None:
        self.tmpdir.cleanup()
        # Handlers installed by the command point at CliRunner's streams.
        logging.getLogger("perfcompete").handlers.clear()

    def check(self, *args: str) -> Result:
        return CliRunner().invoke(
            main,
            ["check", str(self.samples), "--metric", "relative_time", *args],
        )


class TestMainGroup(unittest.TestCase):
    def test_help(self) -> None:
        result = CliRunner().invoke(main, ["--help"])
        self.assertEqual(result.exit_code, 0)
        self.assertIn("check", result.output)
        self.assertIn("show", result.output)

    def test_version(self) -> None:
        result = CliRunner().invoke(main, ["--version"])
        self.assertEqual(result.exit_code, 0)


class TestCheckCommand(CliTestCase):
    def test_within_limits(self) -> None:
        self.limits.write_text(_limits())
        result = self.check("--limits", str(self.limits))
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Competition StringBenchmarks: OK", result.output)
        self.assertIn("All competition limits are ok.", result.output)

    def test_out_of_limits(self) -> None:
        self.limits.write_text(_limits("1.95"))
        result = self.check("--limits", str(self.limits), "--max-runs", "1")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("FAILED", result.output)

    def test_adjust_and_save(self) -> None:
        self.limits.write_text(_limits("1.95"))
        result = self.check("--limits", str(self.limits), "--adjust", "--save")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertEqual(self.limits.read_text(), _limits("2.04"))

    def test_limits_key_in_measurements(self) -> None:
        self.samples.write_text(MEASUREMENTS + "limits: strings.xml\n")
        self.limits.write_text(_limits())
        result = self.check()
        self.assertEqual(result.exit_code, 0, result.output)

    def test_profile(self) -> None:
        self.limits.write_text(_limits("1.95"))
        profile = self.base / "profile.yaml"
        profile.write_text("adjust_limits: true\nsave_limits: true\n")
        result = self.check("--limits", str(self.limits), "--profile", str(profile))
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('MaxRatio="2.04"', self.limits.read_text())

    def test_bad_profile_key(self) -> None:
        profile = self.base / "profile.yaml"
        profile.write_text("colour: blue\n")
        result = self.check("--profile", str(profile))
        self.assertEqual(result.exit_code, 2)
        self.assertIn("not a competition setting", result.output)

    def test_unknown_metric(self) -> None:
        result = self.check("--metric", "nonsense")
        self.assertEqual(result.exit_code, 2)

    def test_bad_measurements(self) -> None:
        self.samples.write_text("benchmarks: []\n")
        result = self.check()
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Error:", result.output)


class TestShowCommand(CliTestCase):
    def test_show(self) -> None:
        self.limits.write_text(_limits())
        result = CliRunner().invoke(main, ["show", str(self.limits)])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("StringBenchmarks.concat", result.output)
        self.assertIn("relative_time", result.output)
        self.assertIn("1.85", result.output)

    def test_show_malformed(self) -> None:
        self.limits.write_text("<CompetitionBenchmarks>")
        result = CliRunner().invoke(main, ["show", str(self.limits)])
        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()
