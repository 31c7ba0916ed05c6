"""Tests for perfcompete.competition.report."""

from __future__ import annotations

import unittest

from perfcompete.competition.report import format_report, format_stored_limits
from perfcompete.competition.state import CompetitionState, MessageSeverity, MessageSource
from perfcompete.limits.store import StoredMetricEntry
from perfcompete.metrics.ranges import INF
from perfcompete.metrics.values import TargetKey


class TestFormatReport(unittest.TestCase):
    def test_no_messages(self) -> None:
        state = CompetitionState(3)
        self.assertEqual(format_report(state), "Competition <unnamed>: OK (0 runs, 0.00s)")

    def test_successful_run(self) -> None:
        state = CompetitionState(3, name="StringBenchmarks")
        state.prepare_for_run()
        state.write_message(
            MessageSource.ANALYSER, MessageSeverity.INFORMATIONAL, "All competition limits are ok."
        )
        report = format_report(state)
        self.assertTrue(report.startswith("Competition StringBenchmarks: OK (1 run, "))
        self.assertIn("All competition limits are ok.", report)
        self.assertIn("Informational", report)

    def test_failed_run_with_target_and_hint(self) -> None:
        state = CompetitionState(3, name="StringBenchmarks")
        state.prepare_for_run()
        state.write_message(
            MessageSource.ANALYSER,
            MessageSeverity.TEST_ERROR,
            "Metric does not fit into limits.",
            hint="Adjust the limits",
            target="StringBenchmarks.concat",
        )
        report = format_report(state)
        self.assertIn(": FAILED (", report)
        self.assertIn("StringBenchmarks.concat", report)
        self.assertIn("(Adjust the limits)", report)

    def test_verbose_messages_filtered(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        state.write_message(MessageSource.RUNNER, MessageSeverity.VERBOSE, "noise")
        self.assertNotIn("noise", format_report(state))
        self.assertIn("noise", format_report(state, min_severity=MessageSeverity.VERBOSE))


class TestFormatStoredLimits(unittest.TestCase):
    def test_empty(self) -> None:
        self.assertEqual(format_stored_limits({}), "No stored limits.")

    def test_entries(self) -> None:
        text = format_stored_limits(
            {
                TargetKey("StringBenchmarks", "concat"): [
                    StoredMetricEntry("relative_time", 1.85, 2.15),
                    StoredMetricEntry("time", None, INF, "ms"),
                ],
                TargetKey("StringBenchmarks", "join"): [],
            }
        )
        lines = text.splitlines()
        self.assertEqual(len(lines), 4)
        self.assertIn("relative_time", lines[1])
        self.assertIn("1.85", lines[1])
        self.assertIn("2.15", lines[1])
        self.assertIn("Infinity", lines[2])
        self.assertIn("ms", lines[2])
        self.assertIn("(none)", lines[3])


if __name__ == "__main__":
    unittest.main()
