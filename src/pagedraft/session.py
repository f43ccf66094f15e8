# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""PageFormSession — one editor session owning its tracker and scheduler.

Nothing here is shared across sessions: each session builds its own
``ChangeTracker`` and ``IdleSaveScheduler`` (with its own clock and timers).
The commit sink is injected and never owned.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from types import TracebackType
from typing import Any

from . import SchedulerState, Snapshot
from .change_tracker import DEFAULT_REQUIRED_FIELDS, ChangeTracker
from .clock import Clock
from .config import AutosaveConfig
from .scheduler import CommitSink, IdleSaveScheduler

logger = logging.getLogger(__name__)


class PageFormSession:
    """Wires a ChangeTracker to an IdleSaveScheduler for one page."""

    def __init__(
        self,
        commit: CommitSink,
        *,
        page_number: int = 1,
        page_id: int | None = None,
        initial: Mapping[str, Any] | None = None,
        config: AutosaveConfig | None = None,
        clock: Clock | None = None,
        required_fields: Sequence[str] = DEFAULT_REQUIRED_FIELDS,
    ) -> None:
        self._tracker = ChangeTracker(page_number=page_number, page_id=page_id, required_fields=required_fields)
        self._scheduler = IdleSaveScheduler(
            self._tracker.build_snapshot,
            commit,
            config=config,
            clock=clock,
        )
        self._tracker.attach(self._scheduler)
        if initial:
            self._tracker.load(initial)
        logger.debug("Session opened for page %s", self._tracker.page_number)

    @property
    def tracker(self) -> ChangeTracker:
        return self._tracker

    @property
    def scheduler(self) -> IdleSaveScheduler:
        return self._scheduler

    @property
    def has_unsaved_changes(self) -> bool:
        return self._scheduler.has_unsaved_changes

    @property
    def closed(self) -> bool:
        return self._scheduler.state is SchedulerState.CLOSED

    def save_now(self) -> bool:
        """Explicit "save now" from the user."""
        return self._scheduler.flush()

    def close(self) -> Snapshot | None:
        """Tear down timers. Idempotent; returns any discarded pending snapshot."""
        return self._scheduler.teardown()

    async def aclose(self, *, flush: bool = True) -> None:
        """Flush (optional), wait for the in-flight commit, then tear down."""
        if self.closed:
            return
        if flush:
            self._scheduler.flush()
        await self._scheduler.wait_for_commit()
        self._scheduler.teardown()

    def __enter__(self) -> PageFormSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
