# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import pagedraft  # noqa: F401
except ImportError:
    raise ImportError("pagedraft is not installed. Run: pip install -e '.[dev]'") from None

import pytest

from pagedraft.clock import ManualClock
from pagedraft.config import AutosaveConfig
from tests._helpers import CommitRecorder, ContentHolder


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def recorder(clock) -> CommitRecorder:
    return CommitRecorder(clock)


@pytest.fixture
def holder() -> ContentHolder:
    return ContentHolder("draft")


@pytest.fixture
def no_suppression() -> AutosaveConfig:
    """Editor defaults without the initial-load window."""
    return AutosaveConfig(initial_load_suppression_ms=0)
