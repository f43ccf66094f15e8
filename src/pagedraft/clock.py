# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Time sources for the idle save scheduler.

All times are monotonic milliseconds. The scheduler never sleeps; its only
suspension point is a timer registered through ``Clock.call_later``.

- ``LoopClock`` — asyncio event loop (``loop.time()`` / ``loop.call_later``).
- ``ManualClock`` — virtual time, advanced explicitly. Used by tests and by
  the ``replay`` CLI command.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol, runtime_checkable


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Clock(Protocol):
    """Monotonic time source with one-shot timers."""

    def now(self) -> float: ...

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...


# ---------------------------------------------------------------------------
# asyncio
# ---------------------------------------------------------------------------


class LoopClock:
    """Clock backed by an asyncio event loop.

    Must be created inside a running loop unless *loop* is given explicitly.
    Each scheduler gets its own instance; there is no shared timer state.
    """

    __slots__ = ("_loop",)

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def now(self) -> float:
        return self._loop.time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(0.0, delay_ms) / 1000.0, callback)


# ---------------------------------------------------------------------------
# Virtual time
# ---------------------------------------------------------------------------


class _ManualTimer:
    __slots__ = ("deadline", "callback", "cancelled")

    def __init__(self, deadline: float, callback: Callable[[], None]) -> None:
        self.deadline = deadline
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Deterministic clock: time moves only when ``advance`` is called.

    Due callbacks run in deadline order (FIFO on ties), with ``now()`` set to
    each callback's deadline while it runs. Callbacks may schedule further
    timers; those run in the same ``advance`` call if they fall due.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._heap: list[tuple[float, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._heap, (timer.deadline, next(self._seq), timer))
        return timer

    @property
    def pending(self) -> int:
        """Number of live (uncancelled) timers."""
        return sum(1 for _, _, t in self._heap if not t.cancelled)

    def next_deadline(self) -> float | None:
        live = [t.deadline for _, _, t in self._heap if not t.cancelled]
        return min(live) if live else None

    def advance(self, delta_ms: float) -> None:
        if delta_ms < 0:
            raise ValueError(f"delta_ms must be >= 0, got {delta_ms}")
        self.advance_to(self._now + delta_ms)

    def advance_to(self, target_ms: float) -> None:
        if target_ms < self._now:
            raise ValueError(f"cannot move clock backwards ({target_ms} < {self._now})")
        while self._heap and self._heap[0][0] <= target_ms:
            _, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self._now = timer.deadline
            timer.callback()
        self._now = target_ms
