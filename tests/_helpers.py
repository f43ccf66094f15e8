# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared helpers for scheduler and session tests."""

from __future__ import annotations

from pagedraft import Snapshot
from pagedraft.clock import ManualClock


class CommitRecorder:
    """Synchronous commit sink that records ``(time_ms, snapshot)``."""

    def __init__(self, clock: ManualClock) -> None:
        self.clock = clock
        self.calls: list[tuple[float, Snapshot]] = []

    def __call__(self, snapshot: Snapshot) -> None:
        self.calls.append((self.clock.now(), snapshot))

    @property
    def times(self) -> list[float]:
        return [at for at, _ in self.calls]

    @property
    def contents(self) -> list[str]:
        return [snap.fields["content"] for _, snap in self.calls]


class ContentHolder:
    """Minimal snapshot builder: one required ``content`` field."""

    def __init__(self, content: str = "") -> None:
        self.content = content
        self.builds = 0

    def __call__(self) -> Snapshot | None:
        self.builds += 1
        if not self.content.strip():
            return None
        return Snapshot(page_number=1, fields={"content": self.content})
