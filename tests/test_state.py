"""Tests for perfcompete.competition.state."""

from __future__ import annotations

import unittest

from perfcompete.competition.state import (
    CompetitionState,
    MessageSeverity,
    MessageSource,
)


class TestMessageSeverity(unittest.TestCase):
    def test_ordering(self) -> None:
        self.assertLess(MessageSeverity.WARNING, MessageSeverity.TEST_ERROR)
        self.assertLess(MessageSeverity.SETUP_ERROR, MessageSeverity.EXECUTION_ERROR)

    def test_labels(self) -> None:
        self.assertEqual(MessageSeverity.TEST_ERROR.label, "TestError")
        self.assertEqual(MessageSeverity.INFORMATIONAL.label, "Informational")

    def test_classification(self) -> None:
        self.assertFalse(MessageSeverity.WARNING.is_error)
        self.assertTrue(MessageSeverity.TEST_ERROR.is_error)
        self.assertFalse(MessageSeverity.TEST_ERROR.is_critical)
        self.assertTrue(MessageSeverity.SETUP_ERROR.is_critical)


class TestRunBookkeeping(unittest.TestCase):
    def test_initial_state(self) -> None:
        state = CompetitionState(3)
        self.assertEqual(state.run_number, 0)
        self.assertEqual(state.runs_left, 1)
        self.assertFalse(state.failed)

    def test_invalid_max_runs(self) -> None:
        with self.assertRaises(ValueError):
            CompetitionState(0)

    def test_prepare_for_run(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        self.assertEqual(state.run_number, 1)
        self.assertEqual(state.runs_left, 0)
        self.assertFalse(state.is_last_run)

    def test_reruns_capped_by_max_runs(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        self.assertTrue(state.request_reruns(5, "testing"))
        self.assertEqual(state.runs_left, 2)
        self.assertFalse(state.run_limit_exceeded)

    def test_rerun_past_limit_sets_exceeded(self) -> None:
        state = CompetitionState(1)
        state.prepare_for_run()
        self.assertTrue(state.is_last_run)
        self.assertFalse(state.request_reruns(1, "Limits adjusted."))
        self.assertEqual(state.runs_left, 0)
        self.assertTrue(state.run_limit_exceeded)
        self.assertTrue(state.failed)

    def test_rerun_messages(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        state.request_reruns(1, "Limits adjusted.")
        state.request_reruns(0, "nothing to do.")
        texts = [m.text for m in state.messages()]
        self.assertEqual(
            texts,
            ["Requesting 1 run(s): Limits adjusted.", "No reruns requested: nothing to do."],
        )

    def test_negative_rerun_count(self) -> None:
        state = CompetitionState(3)
        with self.assertRaises(ValueError):
            state.request_reruns(-1, "bad")


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class TestMessages(unittest.TestCase):
    def test_sequence_numbers_restart_per_run(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        state.write_message(MessageSource.ANALYSER, MessageSeverity.INFORMATIONAL, "a")
        state.write_message(MessageSource.ANALYSER, MessageSeverity.INFORMATIONAL, "b")
        state.prepare_for_run()
        message = state.write_message(MessageSource.ANALYSER, MessageSeverity.INFORMATIONAL, "c")
        self.assertEqual((message.run_number, message.sequence_number), (2, 1))
        self.assertEqual([m.sequence_number for m in state.messages()], [1, 2, 1])

    def test_critical_message_stops_run(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        self.assertTrue(state.safe_to_continue)
        state.write_message(MessageSource.LIMITS_STORE, MessageSeverity.SETUP_ERROR, "broken")
        self.assertFalse(state.safe_to_continue)
        self.assertTrue(state.failed)

    def test_failed_looks_at_last_run_only(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        state.write_message(MessageSource.ANALYSER, MessageSeverity.TEST_ERROR, "mismatch")
        self.assertTrue(state.failed)
        state.prepare_for_run()
        state.write_message(MessageSource.ANALYSER, MessageSeverity.INFORMATIONAL, "ok")
        self.assertFalse(state.failed)
        self.assertEqual(state.highest_severity, MessageSeverity.INFORMATIONAL)

    def test_min_severity_filter(self) -> None:
        state = CompetitionState(3)
        state.write_message(MessageSource.RUNNER, MessageSeverity.VERBOSE, "details")
        state.write_message(MessageSource.RUNNER, MessageSeverity.WARNING, "careful")
        messages = state.messages(MessageSeverity.WARNING)
        self.assertEqual([m.text for m in messages], ["careful"])

    def test_str(self) -> None:
        state = CompetitionState(3)
        state.prepare_for_run()
        message = state.write_message(
            MessageSource.ANALYSER,
            MessageSeverity.TEST_ERROR,
            "does not fit",
            target="T.m",
            hint="widen it",
        )
        self.assertEqual(str(message), "#1.1 TestError@analyser [T.m]: does not fit Hint: widen it")


if __name__ == "__main__":
    unittest.main()
