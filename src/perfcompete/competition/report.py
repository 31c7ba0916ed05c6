"""Plain-text reports for competition results and stored limits."""

from __future__ import annotations

from perfcompete.competition.state import CompetitionState, MessageSeverity
from perfcompete.formatting import format_duration, format_severity_icon, format_table
from perfcompete.limits.store import StoredMetricEntry, format_number
from perfcompete.metrics.values import TargetKey


def format_report(
    state: CompetitionState,
    *,
    min_severity: MessageSeverity = MessageSeverity.INFORMATIONAL,
) -> str:
    """Summarize a finished competition and its messages.

    Args:
        state: The finished competition.
        min_severity: Messages below this severity are left out.

    Returns:
        A verdict line followed by one line per message.
    """
    verdict = "FAILED" if state.failed else "OK"
    messages = state.messages(min_severity)
    elapsed = messages[-1].elapsed if messages else 0.0
    runs = "run" if state.run_number == 1 else "runs"
    lines = [
        f"Competition {state.name or '<unnamed>'}: {verdict} "
        f"({state.run_number} {runs}, {format_duration(elapsed)})"
    ]
    if not messages:
        return lines[0]

    rows = [
        [
            f"{m.run_number}.{m.sequence_number}",
            f"{format_severity_icon(m.severity.label)} {m.severity.label}",
            m.source.value,
            m.target or "",
            m.text + (f" ({m.hint})" if m.hint else ""),
        ]
        for m in messages
    ]
    lines.append("")
    lines.append(
        format_table(
            ["#", "Severity", "Source", "Target", "Message"],
            rows,
            alignments=["r", "l", "l", "l", "l"],
            max_col_width={3: 40},
        )
    )
    return "\n".join(lines)


def _bound(value: float | None) -> str:
    return "-" if value is None else format_number(value)


def format_stored_limits(limits: dict[TargetKey, list[StoredMetricEntry]]) -> str:
    """Render stored limits entries as a table."""
    rows: list[list[str]] = []
    for key in sorted(limits):
        entries = limits[key]
        if not entries:
            rows.append([str(key), "(none)", "", "", ""])
        for entry in entries:
            rows.append(
                [str(key), entry.metric_name, _bound(entry.min), _bound(entry.max), entry.unit_name or ""]
            )
    if not rows:
        return "No stored limits."
    return format_table(
        ["Target", "Metric", "Min", "Max", "Unit"],
        rows,
        alignments=["l", "l", "r", "r", "l"],
    )
