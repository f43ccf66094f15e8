# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Autosave configuration.

Immutable, validated on construction. ``AutosaveConfig.from_env()`` reads the
``PAGEDRAFT_*`` environment variables; anything unset falls back to the
editor defaults (5 s idle window, 1 s initial-load suppression).
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigError

DEFAULT_IDLE_WINDOW_MS = 5000.0
DEFAULT_INITIAL_LOAD_SUPPRESSION_MS = 1000.0
DEFAULT_GUARD_BAND_MS = 50.0  # absorbs timer-firing jitter on reschedule

ENV_IDLE_WINDOW = "PAGEDRAFT_IDLE_WINDOW_MS"
ENV_SUPPRESSION = "PAGEDRAFT_INITIAL_LOAD_SUPPRESSION_MS"
ENV_GUARD_BAND = "PAGEDRAFT_GUARD_BAND_MS"
ENV_STRICT = "PAGEDRAFT_STRICT"

_TRUTHY = frozenset({"1", "true", "yes", "on"})


@dataclass(frozen=True, slots=True)
class AutosaveConfig:
    """Immutable configuration for the idle save scheduler."""

    idle_window_ms: float = DEFAULT_IDLE_WINDOW_MS
    initial_load_suppression_ms: float = DEFAULT_INITIAL_LOAD_SUPPRESSION_MS
    guard_band_ms: float = DEFAULT_GUARD_BAND_MS
    strict: bool = False  # raise on misuse instead of logging

    def __post_init__(self) -> None:
        if self.idle_window_ms <= 0:
            raise ConfigError(f"idle_window_ms must be > 0, got {self.idle_window_ms}", key="idle_window_ms")
        if self.initial_load_suppression_ms < 0:
            raise ConfigError(
                f"initial_load_suppression_ms must be >= 0, got {self.initial_load_suppression_ms}",
                key="initial_load_suppression_ms",
            )
        if self.guard_band_ms < 0:
            raise ConfigError(f"guard_band_ms must be >= 0, got {self.guard_band_ms}", key="guard_band_ms")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> AutosaveConfig:
        """Build from ``PAGEDRAFT_*`` variables. Keyword overrides win over the environment."""
        env = os.environ if environ is None else environ
        values: dict = {
            "idle_window_ms": _float_env(env, ENV_IDLE_WINDOW, DEFAULT_IDLE_WINDOW_MS),
            "initial_load_suppression_ms": _float_env(env, ENV_SUPPRESSION, DEFAULT_INITIAL_LOAD_SUPPRESSION_MS),
            "guard_band_ms": _float_env(env, ENV_GUARD_BAND, DEFAULT_GUARD_BAND_MS),
            "strict": env.get(ENV_STRICT, "").strip().lower() in _TRUTHY,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _float_env(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number of milliseconds, got {raw!r}", key=key) from None
