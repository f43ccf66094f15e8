# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge for autosave logs.

Leaf module — no pagedraft imports. Safe to call early in startup.
Library modules only ever use ``logging.getLogger(__name__)`` and attach
autosave context through ``extra=`` (``page``, ``commit``, ``urgency``);
this module lifts those keys into the rendered event, merges anything bound
with ``structlog.contextvars`` (the CLI binds ``script`` and ``page``) and
decides how records are rendered:

- console: key=value lines without colour
- JSON: one object per line for log shipping
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

# Autosave context carried on stdlib records via ``extra=``
RECORD_EXTRAS: tuple[str, ...] = ("page", "commit", "urgency")


def configure(*, json_output: bool = False, level: str | int = "INFO", stream: TextIO | None = None) -> None:
    """Configure structlog with stdlib bridge.

    Args:
        json_output: True for JSON lines, False for human-readable output.
        level: Root logger level name or number (default INFO). Unknown names fall back to INFO.
        stream: Destination (default ``sys.stderr``; stdout stays free for replay output).
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.ExtraAdder(allow=RECORD_EXTRAS),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False, sort_keys=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO
