# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Option-list parsing for choice questions.

Leaf module — no pagedraft imports. Options are stored as a single delimited
string. The delimiter is chosen per string: newline if the string contains
one, comma otherwise. Writers always emit newline-delimited strings.
"""

from __future__ import annotations

from collections.abc import Iterable

DEFAULT_CHOICE_OPTIONS: tuple[str, ...] = ("Option 1", "Option 2", "Option 3")
OPTION_DELIMITER = "\n"


def get_options_list(raw: str | None) -> list[str]:
    """Split *raw* into trimmed, non-empty option labels."""
    if not raw:
        return []
    parts = raw.split("\n") if "\n" in raw else raw.split(",")
    return [p.strip() for p in parts if p.strip()]


def join_options(options: Iterable[str]) -> str:
    return OPTION_DELIMITER.join(options)


def next_option_label(existing: list[str]) -> str:
    """Label for an appended option: ``Option {n+1}``."""
    return f"Option {len(existing) + 1}"


def default_choice_options() -> str:
    return join_options(DEFAULT_CHOICE_OPTIONS)
