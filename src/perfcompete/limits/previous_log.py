"""Import of limits logged by a previous competition run.

When ``log_annotations`` is enabled the engine logs every adjusted target
as an XML limits document between two marker lines. A later invocation can
point ``previous_log_uri`` at that log (a local path, a ``file://`` URI or
an HTTP(S) URL) and have the logged limits unioned into its own targets.

Any failure to fetch or parse the log is a warning; the competition then
proceeds as if no previous log existed.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable
from urllib.parse import unquote, urlparse

import requests

from perfcompete import __version__
from perfcompete.competition.state import CompetitionState, MessageSeverity, MessageSource
from perfcompete.limits.store import LimitsStoreError, entry_to_range
from perfcompete.limits.xml_store import XmlLimitsDocument
from perfcompete.logging import get_logger
from perfcompete.metrics.descriptors import MetricRegistry
from perfcompete.metrics.values import Target

log = get_logger("previous_log")

ANNOTATION_BEGIN = "------xml_annotation_begin------"
ANNOTATION_END = "-------xml_annotation_end-------"

_USER_AGENT = f"perfcompete/{__version__}"

# Log blocks per URI, fetched at most once per process.
_cache: dict[str, list[tuple[int, str]]] = {}
_cache_lock = threading.Lock()


class PreviousLogError(Exception):
    """The previous run log could not be fetched."""


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


def fetch_log_text(uri: str, *, timeout: float = 10.0) -> str:
    """Return the text of the log at *uri*.

    Raises:
        PreviousLogError: If the log cannot be fetched.
    """
    parsed = urlparse(uri)
    if parsed.scheme in ("http", "https"):
        return _fetch_http(uri, timeout)
    path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(uri)
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PreviousLogError(f"Cannot read {path}: {exc}") from None


def _fetch_http(url: str, timeout: float) -> str:
    try:
        resp = requests.get(url, timeout=timeout, headers={"User-Agent": _USER_AGENT})
    except requests.ConnectionError:
        raise PreviousLogError(f"Connection error fetching {url}") from None
    except requests.Timeout:
        raise PreviousLogError(f"Timeout fetching {url} (after {timeout}s)") from None
    except requests.RequestException as exc:
        raise PreviousLogError(f"Request error fetching {url}: {exc}") from None

    if resp.status_code != 200:
        raise PreviousLogError(f"Unexpected status {resp.status_code} fetching {url}")
    return resp.text


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_annotation_blocks(text: str) -> tuple[list[tuple[int, str]], list[str]]:
    """Split a log into XML blocks found between the marker lines.

    Returns ``(blocks, problems)`` where each block is ``(line_number,
    xml_text)`` and *problems* describes damaged marker pairs.
    """
    blocks: list[tuple[int, str]] = []
    problems: list[str] = []
    buffer: list[str] = []
    start = -1
    for number, line in enumerate(text.splitlines(), start=1):
        if ANNOTATION_BEGIN in line:
            if start >= 0:
                problems.append(f"begin marker repeated at lines {start} and {number}")
            start = number
            buffer = []
        elif ANNOTATION_END in line:
            if start < 0:
                problems.append(f"end marker without begin marker at line {number}")
            elif buffer:
                blocks.append((start, "\n".join(buffer)))
            buffer = []
            start = -1
        elif start >= 0:
            buffer.append(line)
    if start >= 0:
        problems.append(f"end marker missing for begin marker at line {start}")
    return blocks, problems


def load_previous_log(
    uri: str,
    registry: MetricRegistry,
    state: CompetitionState,
    *,
    timeout: float = 10.0,
) -> list[XmlLimitsDocument]:
    """Fetch (once per process) and parse the limits logged at *uri*.

    Fetch and parse problems become warnings on *state*.

    Returns:
        One document per annotation block that parsed, oldest first.
    """
    with _cache_lock:
        blocks = _cache.get(uri)
    if blocks is None:
        log.debug("Downloading previous run log %s", uri)
        try:
            text = fetch_log_text(uri, timeout=timeout)
        except PreviousLogError as exc:
            state.write_message(
                MessageSource.LIMITS_STORE,
                MessageSeverity.WARNING,
                f"Could not load the previous run log: {exc}",
            )
            return []
        blocks, problems = extract_annotation_blocks(text)
        for problem in problems:
            state.write_message(
                MessageSource.LIMITS_STORE,
                MessageSeverity.WARNING,
                f"The previous run log {uri} is damaged: {problem}.",
            )
        with _cache_lock:
            _cache[uri] = blocks

    documents: list[XmlLimitsDocument] = []
    for line, xml_text in blocks:
        try:
            documents.append(
                XmlLimitsDocument.parse(xml_text.encode("utf-8"), registry, f"{uri}, line {line}")
            )
        except LimitsStoreError as exc:
            state.write_message(MessageSource.LIMITS_STORE, MessageSeverity.WARNING, str(exc))
    return documents


def apply_previous_log(
    targets: Iterable[Target],
    documents: list[XmlLimitsDocument],
    state: CompetitionState,
    *,
    uri: str,
    rounding_digits: int | None = None,
) -> bool:
    """Union logged limits into *targets*. Returns True if any changed."""
    changed = False
    for target in targets:
        for document in documents:
            try:
                entries = document.read_entries(target.key) or []
            except LimitsStoreError as exc:
                state.write_message(
                    MessageSource.LIMITS_STORE, MessageSeverity.WARNING, str(exc), target=str(target)
                )
                continue
            for entry in entries:
                for value in target.values:
                    if value.descriptor.stored_name != entry.metric_name:
                        continue
                    try:
                        logged, _unit = entry_to_range(value.descriptor, entry)
                    except LimitsStoreError as exc:
                        state.write_message(
                            MessageSource.LIMITS_STORE,
                            MessageSeverity.WARNING,
                            str(exc),
                            target=str(target),
                        )
                        continue
                    if value.union_with(logged, checking_only=False, rounding_digits=rounding_digits):
                        changed = True

    if changed:
        state.write_message(
            MessageSource.LIMITS_STORE,
            MessageSeverity.INFORMATIONAL,
            f"Benchmark limits were updated from log file {uri}.",
        )
    elif documents:
        state.write_message(
            MessageSource.LIMITS_STORE,
            MessageSeverity.INFORMATIONAL,
            f"All benchmarks are in log limits. Log file: {uri}.",
        )
    return changed


def format_annotation_block(targets: Iterable[Target], registry: MetricRegistry) -> str:
    """Render *targets* as an XML limits document between marker lines."""
    document = XmlLimitsDocument.new(registry)
    for target in targets:
        document.write_values(target.key, target.values)
    return f"{ANNOTATION_BEGIN}\n{document.to_text().rstrip()}\n{ANNOTATION_END}"
