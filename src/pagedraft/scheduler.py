# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Idle save scheduler: debounce/idle state machine with single-flight commits.

States:

- **SUPPRESSED** — initial-load window after construction; ``notify()`` is
  dropped entirely (not queued, not remembered).
- **IDLE** — nothing pending.
- **ARMED** — timer running, no edit since it was armed.
- **DIRTY** — timer running, at least one edit since arming. On fire the
  idle time is rechecked against ``last_edit_at``; if the editor is still
  active the timer is re-armed for the remaining idle time plus a guard band.

Edits never restart a running timer. The cached snapshot is replaced on
every edit, so whatever fires always commits the latest state.

Single-flight: the commit sink may return an awaitable. Until it resolves no
second commit starts; a fire or flush in that window is deferred and
re-evaluated on resolution. Sink failures are logged, never retried, and do
not restore the optimistically cleared cache.

Not thread-safe. All calls must come from one event loop / thread.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from . import SchedulerState, Urgency
from .clock import Clock, LoopClock, TimerHandle
from .config import AutosaveConfig
from .errors import SchedulerClosedError

if TYPE_CHECKING:
    from . import Snapshot

logger = logging.getLogger(__name__)

SnapshotBuilder = Callable[[], "Snapshot | None"]
CommitSink = Callable[["Snapshot"], "Awaitable[object] | None"]
UnsavedListener = Callable[[bool], None]

_FIRE = "fire"
_FLUSH = "flush"


@dataclass(slots=True)
class PendingSave:
    """Latest save-worthy snapshot waiting for the editor to go idle."""

    snapshot: Snapshot
    last_edit_at: float  # clock ms of the most recent qualifying edit


class IdleSaveScheduler:
    """Coalesces edit notifications into one commit per idle period."""

    def __init__(
        self,
        build_snapshot: SnapshotBuilder,
        commit: CommitSink,
        *,
        config: AutosaveConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._build = build_snapshot
        self._commit = commit
        self._config = config or AutosaveConfig()
        self._clock = clock or LoopClock()
        self._timer: TimerHandle | None = None
        self._suppression_timer: TimerHandle | None = None
        self._pending: PendingSave | None = None
        self._unsaved = False
        self._listeners: list[UnsavedListener] = []
        self._in_flight: asyncio.Future | None = None
        self._deferred: str | None = None
        self._commit_count = 0

        suppression = self._config.initial_load_suppression_ms
        if suppression > 0:
            self._state = SchedulerState.SUPPRESSED
            self._suppression_timer = self._clock.call_later(suppression, self._end_suppression)
        else:
            self._state = SchedulerState.IDLE

    # ── Observable state ─────────────────────────────────────────────

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def config(self) -> AutosaveConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def pending(self) -> PendingSave | None:
        return self._pending

    @property
    def has_unsaved_changes(self) -> bool:
        return self._unsaved

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    @property
    def commit_count(self) -> int:
        """Number of sink invocations so far."""
        return self._commit_count

    def subscribe(self, listener: UnsavedListener) -> Callable[[], None]:
        """Call *listener* with the new value whenever the unsaved flag flips.

        Returns an unsubscribe callable.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ── Inbound operations ───────────────────────────────────────────

    def notify(self, urgency: Urgency = Urgency.CONTENT) -> None:
        """Record an edit. Arms the idle timer if nothing is pending."""
        if self._state is SchedulerState.CLOSED:
            self._misuse("notify")
            return
        if self._state is SchedulerState.SUPPRESSED:
            logger.debug("Edit dropped during initial load (%s)", urgency.value, extra={"urgency": urgency.value})
            return

        snapshot = self._build()
        if snapshot is None:
            if self._pending is not None:
                self._discard_pending("content no longer save-worthy")
            return

        self._pending = PendingSave(snapshot=snapshot, last_edit_at=self._clock.now())
        self._set_unsaved(True)

        if self._state is SchedulerState.IDLE:
            self._state = SchedulerState.ARMED
            self._arm(self._config.idle_window_ms)
            logger.debug(
                "Save armed (%s), fires in %.0fms",
                urgency.value,
                self._config.idle_window_ms,
                extra={"page": snapshot.page_number, "urgency": urgency.value},
            )
        else:
            self._state = SchedulerState.DIRTY

    def flush(self) -> bool:
        """Commit now, cancelling any pending timer.

        Returns True if a commit was started, or queued behind an in-flight one.
        """
        if self._state is SchedulerState.CLOSED:
            self._misuse("flush")
            return False
        self._cancel_timer()
        if self._state is SchedulerState.SUPPRESSED:
            return False
        if self._in_flight is not None:
            if self._pending is None and self._build() is None:
                return False
            self._deferred = _FLUSH
            logger.debug("Flush queued behind in-flight commit")
            return True
        return self._flush_now()

    def teardown(self) -> Snapshot | None:
        """Cancel all timers and drop pending state. Idempotent.

        Returns the discarded pending snapshot, if any. An in-flight commit is
        left to complete; its resolution no longer triggers anything.
        """
        if self._state is SchedulerState.CLOSED:
            return None
        self._cancel_timer()
        if self._suppression_timer is not None:
            self._suppression_timer.cancel()
            self._suppression_timer = None
        discarded = self._pending.snapshot if self._pending is not None else None
        self._pending = None
        self._deferred = None
        self._listeners.clear()
        self._unsaved = False
        self._state = SchedulerState.CLOSED
        if discarded is not None:
            logger.warning(
                "Scheduler torn down with unsaved changes (page %s)",
                discarded.page_number,
                extra={"page": discarded.page_number},
            )
        else:
            logger.debug("Scheduler torn down")
        return discarded

    async def wait_for_commit(self) -> None:
        """Wait until no commit is in flight, including deferred follow-ups."""
        # _on_commit_done is registered first, so it has run (and possibly
        # started a deferred commit) by the time wait() returns.
        while self._in_flight is not None:
            await asyncio.wait({self._in_flight})

    # ── Timer callbacks ──────────────────────────────────────────────

    def _end_suppression(self) -> None:
        self._suppression_timer = None
        if self._state is SchedulerState.SUPPRESSED:
            self._state = SchedulerState.IDLE
            logger.debug("Initial load window ended")

    def _on_timer(self) -> None:
        self._timer = None
        if self._state not in (SchedulerState.ARMED, SchedulerState.DIRTY) or self._pending is None:
            return
        if self._in_flight is not None:
            self._deferred = self._deferred or _FIRE
            logger.debug("Idle fire deferred behind in-flight commit")
            return

        if self._state is SchedulerState.DIRTY:
            idle = self._clock.now() - self._pending.last_edit_at
            if idle < self._config.idle_window_ms:
                delay = self._config.idle_window_ms - idle + self._config.guard_band_ms
                self._arm(delay)
                logger.debug("Still editing (idle %.0fms), rescheduled in %.0fms", idle, delay)
                return

        snapshot = self._pending.snapshot
        self._pending = None
        self._state = SchedulerState.IDLE
        self._set_unsaved(False)
        self._dispatch(snapshot)

    # ── Internal ─────────────────────────────────────────────────────

    def _flush_now(self) -> bool:
        # A notify() during a queued flush may have armed the idle timer
        self._cancel_timer()
        snapshot = self._pending.snapshot if self._pending is not None else self._build()
        self._pending = None
        self._state = SchedulerState.IDLE
        if snapshot is None:
            return False
        self._set_unsaved(False)
        self._dispatch(snapshot)
        return True

    def _dispatch(self, snapshot: Snapshot) -> None:
        self._commit_count += 1
        context = {"page": snapshot.page_number, "commit": self._commit_count}
        logger.info("Committing page %s (commit #%d)", snapshot.page_number, self._commit_count, extra=context)
        try:
            result = self._commit(snapshot)
        except Exception:
            logger.warning("Commit sink failed for page %s", snapshot.page_number, exc_info=True, extra=context)
            return
        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result, loop=getattr(self._clock, "loop", None))
            self._in_flight = future
            future.add_done_callback(self._on_commit_done)

    def _on_commit_done(self, future: asyncio.Future) -> None:
        self._in_flight = None
        if future.cancelled():
            logger.warning("Commit cancelled before completion")
        elif (exc := future.exception()) is not None:
            logger.warning("Commit sink failed: %s", exc, exc_info=exc)

        deferred, self._deferred = self._deferred, None
        if self._state is SchedulerState.CLOSED or deferred is None:
            return
        if deferred == _FLUSH:
            self._flush_now()
        else:
            self._on_timer()

    def _arm(self, delay_ms: float) -> None:
        self._cancel_timer()
        self._timer = self._clock.call_later(delay_ms, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _discard_pending(self, reason: str) -> None:
        self._cancel_timer()
        self._pending = None
        if self._deferred == _FIRE:
            self._deferred = None
        self._state = SchedulerState.IDLE
        self._set_unsaved(False)
        logger.debug("Pending save discarded: %s", reason)

    def _set_unsaved(self, value: bool) -> None:
        if value == self._unsaved:
            return
        self._unsaved = value
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Unsaved-changes listener failed")

    def _misuse(self, operation: str) -> None:
        if self._config.strict:
            raise SchedulerClosedError(f"{operation}() called after teardown")
        logger.warning("%s() called after teardown; ignored", operation)
