"""Competition run state and messages.

A :class:`CompetitionState` is created per top-level competition
invocation. It counts runs, tracks how many reruns were requested, and
accumulates :class:`CompetitionMessage` records. Every message is also
logged through the ``perfcompete`` logger.
"""

from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass

from perfcompete.logging import get_logger

log = get_logger("state")


class MessageSeverity(enum.IntEnum):
    """Message severity, in ascending order."""

    VERBOSE = 0
    INFORMATIONAL = 1
    WARNING = 2
    TEST_ERROR = 3
    SETUP_ERROR = 4
    EXECUTION_ERROR = 5

    @property
    def is_critical(self) -> bool:
        """Setup and execution errors: the run cannot be trusted."""
        return self >= MessageSeverity.SETUP_ERROR

    @property
    def is_error(self) -> bool:
        return self >= MessageSeverity.TEST_ERROR

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title().replace(" ", "")


class MessageSource(enum.Enum):
    ANALYSER = "analyser"
    RUNNER = "runner"
    LIMITS_STORE = "limits_store"
    VALIDATOR = "validator"


_LOG_LEVELS = {
    MessageSeverity.VERBOSE: logging.DEBUG,
    MessageSeverity.INFORMATIONAL: logging.INFO,
    MessageSeverity.WARNING: logging.WARNING,
    MessageSeverity.TEST_ERROR: logging.ERROR,
    MessageSeverity.SETUP_ERROR: logging.ERROR,
    MessageSeverity.EXECUTION_ERROR: logging.ERROR,
}


@dataclass(frozen=True)
class CompetitionMessage:
    """One message produced during a competition."""

    run_number: int
    sequence_number: int
    elapsed: float  # seconds since the competition started
    source: MessageSource
    severity: MessageSeverity
    text: str
    hint: str | None = None
    target: str | None = None

    def __str__(self) -> str:
        prefix = f"#{self.run_number}.{self.sequence_number}"
        where = f" [{self.target}]" if self.target else ""
        text = f"{prefix} {self.severity.label}@{self.source.value}{where}: {self.text}"
        if self.hint:
            text += f" Hint: {self.hint}"
        return text


class CompetitionState:
    """Run counter and message log for one competition invocation."""

    def __init__(self, max_runs: int, *, name: str = "") -> None:
        if max_runs < 1:
            raise ValueError(f"max_runs must be at least 1 (got {max_runs}).")
        self.name = name
        self.max_runs = max_runs
        self.run_number = 0
        self.runs_left = 1
        self.run_limit_exceeded = False
        self.started = time.monotonic()
        self.highest_severity_in_run = MessageSeverity.VERBOSE
        self.messages_in_run = 0
        self._messages: list[CompetitionMessage] = []
        self._lock = threading.Lock()

    # -- run bookkeeping ---------------------------------------------------

    def prepare_for_run(self) -> None:
        self.run_number += 1
        self.runs_left -= 1
        self.highest_severity_in_run = MessageSeverity.VERBOSE
        self.messages_in_run = 0

    @property
    def is_last_run(self) -> bool:
        """True once no further run is allowed."""
        return self.run_number >= self.max_runs

    @property
    def safe_to_continue(self) -> bool:
        """False once the current run holds a setup or execution error."""
        return not self.highest_severity_in_run.is_critical

    def request_reruns(self, count: int, reason: str) -> bool:
        """Ask for *count* more runs, capped at the maximum run count.

        A request made when no run is left to grant sets
        ``run_limit_exceeded``.

        Returns:
            True if at least one more run was granted.
        """
        if count < 0:
            raise ValueError(f"Rerun count cannot be negative (got {count}).")
        if count == 0:
            self.write_message(
                MessageSource.RUNNER,
                MessageSeverity.INFORMATIONAL,
                f"No reruns requested: {reason}",
            )
            return False
        self.write_message(
            MessageSource.RUNNER,
            MessageSeverity.INFORMATIONAL,
            f"Requesting {count} run(s): {reason}",
        )
        available = self.max_runs - self.run_number
        if available <= 0:
            self.run_limit_exceeded = True
            return False
        self.runs_left = min(max(count, self.runs_left), available)
        return True

    # -- messages ----------------------------------------------------------

    def write_message(
        self,
        source: MessageSource,
        severity: MessageSeverity,
        text: str,
        *,
        hint: str | None = None,
        target: str | None = None,
    ) -> CompetitionMessage:
        with self._lock:
            self.messages_in_run += 1
            if severity > self.highest_severity_in_run:
                self.highest_severity_in_run = severity
            message = CompetitionMessage(
                run_number=self.run_number,
                sequence_number=self.messages_in_run,
                elapsed=time.monotonic() - self.started,
                source=source,
                severity=severity,
                text=text,
                hint=hint,
                target=target,
            )
            self._messages.append(message)
        log.log(_LOG_LEVELS[severity], "%s", message)
        return message

    def messages(self, min_severity: MessageSeverity = MessageSeverity.VERBOSE) -> list[CompetitionMessage]:
        with self._lock:
            return [m for m in self._messages if m.severity >= min_severity]

    def last_run_messages(self) -> list[CompetitionMessage]:
        with self._lock:
            return [m for m in self._messages if m.run_number == self.run_number]

    @property
    def highest_severity(self) -> MessageSeverity:
        """Highest severity among messages of the last run."""
        return max(
            (m.severity for m in self.last_run_messages()),
            default=MessageSeverity.VERBOSE,
        )

    @property
    def failed(self) -> bool:
        return self.run_limit_exceeded or self.highest_severity.is_error
