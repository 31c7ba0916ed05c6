"""Concurrency policies for competition invocations.

``LOCK`` and ``FAIL`` coordinate invocations sharing a concurrency key
through named :mod:`threading` locks. ``DEFAULT`` watches every running
invocation regardless of its key, since any parallel run disturbs timings.
When a lock directory is configured, ``fcntl`` file locks extend the
policies to other processes.
"""

from __future__ import annotations

import re
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator

from perfcompete.competition.config import ConcurrencyPolicy
from perfcompete.competition.state import CompetitionState, MessageSeverity, MessageSource
from perfcompete.logging import get_logger

log = get_logger("locking")

PARALLEL_RUN_SKIPPED = "Competitions cannot be run in parallel. Competition run skipped."
PARALLEL_RUN_WARNING = "Another competition is running in parallel. Timings may be affected."

_registry_lock = threading.Lock()
_named_locks: dict[str, threading.Lock] = {}
_running: list[_Invocation] = []

# Lock file shared by every DEFAULT invocation.
_ANY_COMPETITION = "any-competition"


@dataclass(eq=False)
class _Invocation:
    key: str
    overlapped: bool = False


def _named_lock(key: str) -> threading.Lock:
    with _registry_lock:
        lock = _named_locks.get(key)
        if lock is None:
            lock = _named_locks[key] = threading.Lock()
        return lock


def _lock_path(lock_dir: Path, key: str) -> Path:
    safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key) or "_"
    return lock_dir / f"{safe}.lock"


def _open_file_lock(lock_dir: Path, key: str, *, blocking: bool) -> IO[str] | None:
    """Acquire an exclusive file lock; None if it is held elsewhere."""
    import fcntl

    handle = open(_lock_path(lock_dir, key), "a", encoding="utf-8")
    flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
    try:
        fcntl.flock(handle, flags)
    except BlockingIOError:
        handle.close()
        return None
    return handle


def _release_file_lock(handle: IO[str] | None) -> None:
    if handle is None:
        return
    import fcntl

    try:
        fcntl.flock(handle, fcntl.LOCK_UN)
    finally:
        handle.close()


@contextmanager
def competition_guard(
    key: str,
    policy: ConcurrencyPolicy,
    state: CompetitionState,
    *,
    lock_dir: Path | None = None,
) -> Iterator[bool]:
    """Apply *policy* for the duration of a competition invocation.

    Under ``FAIL`` a concurrent invocation yields False after recording a
    setup error.

    Args:
        key: Concurrency key for ``LOCK`` and ``FAIL``. ``DEFAULT`` ignores it.
        policy: How to treat invocations that overlap.
        state: State receiving the skip error or the parallel run warning.
        lock_dir: Directory for ``fcntl`` lock files shared with other processes.

    Yields:
        True if the invocation may run.
    """
    if policy is ConcurrencyPolicy.LOCK:
        lock = _named_lock(key)
        log.debug("Waiting for competition lock %r", key)
        with lock:
            handle = _open_file_lock(lock_dir, key, blocking=True) if lock_dir else None
            try:
                yield True
            finally:
                _release_file_lock(handle)
        return

    if policy is ConcurrencyPolicy.FAIL:
        lock = _named_lock(key)
        if not lock.acquire(blocking=False):
            state.write_message(MessageSource.RUNNER, MessageSeverity.SETUP_ERROR, PARALLEL_RUN_SKIPPED)
            yield False
            return
        try:
            handle = _open_file_lock(lock_dir, key, blocking=False) if lock_dir else None
            if lock_dir and handle is None:
                state.write_message(
                    MessageSource.RUNNER, MessageSeverity.SETUP_ERROR, PARALLEL_RUN_SKIPPED
                )
                yield False
                return
            try:
                yield True
            finally:
                _release_file_lock(handle)
        finally:
            lock.release()
        return

    # DEFAULT: run unguarded, warn every invocation that overlapped another.
    me = _Invocation(key)
    with _registry_lock:
        if _running:
            me.overlapped = True
            log.debug("Competition %r overlaps %s", key, [other.key for other in _running])
            for other in _running:
                other.overlapped = True
        _running.append(me)
    handle = _open_file_lock(lock_dir, _ANY_COMPETITION, blocking=False) if lock_dir else None
    if lock_dir and handle is None:
        me.overlapped = True
    try:
        yield True
    finally:
        _release_file_lock(handle)
        with _registry_lock:
            _running.remove(me)
        if me.overlapped:
            state.write_message(MessageSource.RUNNER, MessageSeverity.WARNING, PARALLEL_RUN_WARNING)
