# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page Draft exception hierarchy.

All pagedraft-specific errors inherit from PageDraftError, allowing callers
to catch the base class for any failure or specific subclasses for targeted
handling. Commit sink failures are never wrapped here: they stay with the
sink's own error reporting.
"""

from __future__ import annotations


class PageDraftError(Exception):
    """Base exception for all pagedraft errors."""


class ConfigError(PageDraftError, ValueError):
    """Invalid autosave configuration value (env var or constructor)."""

    def __init__(self, message: str, *, key: str = "") -> None:
        super().__init__(message)
        self.key = key


class SchedulerClosedError(PageDraftError):
    """Scheduler used after teardown (raised only in strict mode)."""


class ReplayError(PageDraftError):
    """Malformed replay script."""

    def __init__(self, message: str, *, event_index: int | None = None) -> None:
        super().__init__(message)
        self.event_index = event_index
