# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page Draft CLI: replay edit timelines, inspect option strings.

Usage:
    python -m pagedraft.cli replay SCRIPT [--idle-window-ms MS] [--suppression-ms MS] [--guard-band-ms MS]
    python -m pagedraft.cli options RAW

A replay script is a JSON object::

    {
      "page_number": 1,
      "initial": {"title": "Intro", "content": "Once upon a time"},
      "events": [
        {"at": 1500, "op": "set_field", "name": "title", "value": "A"},
        {"at": 2500, "op": "add_question", "answer_type": "multiple_choice"},
        {"at": 9000, "op": "flush"}
      ],
      "until": 10000
    }

Events run on a virtual clock; each commit is printed as one JSON line.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog

from . import Question, Snapshot
from .clock import ManualClock
from .config import AutosaveConfig
from .errors import PageDraftError, ReplayError
from .options import get_options_list
from .session import PageFormSession

logger = logging.getLogger(__name__)

_Op = Callable[[PageFormSession, dict[str, Any]], None]

OPS: dict[str, _Op] = {
    "set_field": lambda s, e: s.tracker.set_field(e["name"], e.get("value", "")),
    "replace_list": lambda s, e: s.tracker.replace_list(_questions(e["questions"])),
    "add_question": lambda s, e: s.tracker.add_question(e.get("answer_type", "text"), e.get("question_text", "")),
    "remove_question": lambda s, e: s.tracker.remove_question(int(e["index"])),
    "update_question": lambda s, e: s.tracker.update_question(int(e["index"]), e["field"], e.get("value", "")),
    "add_option": lambda s, e: s.tracker.add_option(int(e["question"])),
    "remove_option": lambda s, e: s.tracker.remove_option(int(e["question"]), int(e["option"])),
    "update_option_text": lambda s, e: s.tracker.update_option_text(
        int(e["question"]), int(e["option"]), e.get("text", "")
    ),
    "set_image": lambda s, e: s.tracker.set_image_reference(e.get("url", ""), e.get("public_id", "")),
    "clear_image": lambda s, e: s.tracker.clear_image_reference(),
    "flush": lambda s, e: s.save_now(),
}


def _questions(raw: list[dict]) -> list[Question]:
    return [Question.from_dict(q) for q in raw]


def load_script(path: Path) -> dict[str, Any]:
    """Read and validate a replay script."""
    try:
        script = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ReplayError(f"script not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ReplayError(f"script is not valid JSON: {e}") from None
    if not isinstance(script, dict):
        raise ReplayError("script must be a JSON object")
    page_number = script.get("page_number", 1)
    if not isinstance(page_number, int) or isinstance(page_number, bool):
        raise ReplayError(f"'page_number' must be an integer, got {page_number!r}")
    events = script.get("events", [])
    if not isinstance(events, list):
        raise ReplayError("'events' must be a list")
    for i, event in enumerate(events):
        if not isinstance(event, dict) or "op" not in event:
            raise ReplayError("event must be an object with an 'op' key", event_index=i)
        if event["op"] not in OPS:
            raise ReplayError(f"unknown op {event['op']!r}", event_index=i)
        at = event.get("at", 0)
        if not isinstance(at, (int, float)) or at < 0:
            raise ReplayError(f"'at' must be a non-negative number, got {at!r}", event_index=i)
    return script


def replay(script: dict[str, Any], config: AutosaveConfig) -> list[tuple[float, Snapshot]]:
    """Run *script* on a virtual clock and return ``(time_ms, snapshot)`` per commit."""
    clock = ManualClock()
    commits: list[tuple[float, Snapshot]] = []

    def sink(snapshot: Snapshot) -> None:
        commits.append((clock.now(), snapshot))

    try:
        session = PageFormSession(
            sink,
            page_number=int(script.get("page_number", 1)),
            page_id=script.get("page_id"),
            initial=script.get("initial"),
            config=config,
            clock=clock,
        )
    except (ValueError, TypeError) as e:
        raise ReplayError(f"initial: {e}") from None
    # Stable sort keeps same-time events in script order
    indexed = sorted(enumerate(script.get("events", [])), key=lambda pair: pair[1].get("at", 0))
    with session:
        for index, event in indexed:
            clock.advance_to(float(event.get("at", 0)))
            try:
                OPS[event["op"]](session, event)
            except KeyError as e:
                raise ReplayError(f"{event['op']}: missing argument {e}", event_index=index) from None
            except (IndexError, ValueError, TypeError) as e:
                raise ReplayError(f"{event['op']}: {e}", event_index=index) from None
        until = script.get("until")
        end = float(until) if until is not None else clock.now() + 2 * config.idle_window_ms
        clock.advance_to(max(clock.now(), end))
        if session.has_unsaved_changes:
            logger.warning("Replay ended with unsaved changes")
    return commits


def cmd_replay(args: argparse.Namespace) -> None:
    path = Path(args.script)
    structlog.contextvars.bind_contextvars(script=path.name)
    config = AutosaveConfig.from_env(
        idle_window_ms=args.idle_window_ms,
        initial_load_suppression_ms=args.suppression_ms,
        guard_band_ms=args.guard_band_ms,
    )
    script = load_script(path)
    structlog.contextvars.bind_contextvars(page=int(script.get("page_number", 1)))
    commits = replay(script, config)
    for at, snapshot in commits:
        print(json.dumps({"at": at, "snapshot": snapshot.to_dict()}, ensure_ascii=False))
    logger.info("Replayed %d events, %d commits", len(script.get("events", [])), len(commits))


def cmd_options(args: argparse.Namespace) -> None:
    # Allow "\n" escapes from the shell
    raw = args.raw.replace("\\n", "\n")
    print(json.dumps(get_options_list(raw), ensure_ascii=False))


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Page Draft CLI",
        prog="python -m pagedraft.cli",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_replay = subparsers.add_parser(
        "replay",
        help="Replay a JSON edit timeline and print commits",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
examples:
  %(prog)s edits.json                       Replay with PAGEDRAFT_* env config
  %(prog)s edits.json --idle-window-ms 2000 Override the idle window""",
    )
    p_replay.add_argument("script", type=str, metavar="SCRIPT", help="Path to replay script (JSON)")
    p_replay.add_argument("--idle-window-ms", type=float, metavar="MS", help="Idle window (default: 5000)")
    p_replay.add_argument("--suppression-ms", type=float, metavar="MS", help="Initial load window (default: 1000)")
    p_replay.add_argument("--guard-band-ms", type=float, metavar="MS", help="Reschedule guard band (default: 50)")

    p_options = subparsers.add_parser("options", help="Parse an option string into a JSON list")
    p_options.add_argument("raw", type=str, metavar="RAW", help="Option string (comma or \\n delimited)")

    commands = {"replay": cmd_replay, "options": cmd_options}

    args = parser.parse_args(argv)

    from .logging_config import configure as configure_logging

    configure_logging(json_output=args.json_logs, level="DEBUG" if args.verbose else "WARNING")

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)
    except PageDraftError as e:
        where = f" (event {e.event_index})" if getattr(e, "event_index", None) is not None else ""
        print(f"Error: {e}{where}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc(file=sys.stderr)
        sys.exit(1)
    finally:
        structlog.contextvars.clear_contextvars()


if __name__ == "__main__":
    main()
