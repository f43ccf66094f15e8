# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for pagedraft.cli — replay and options commands.

In-process tests call ``main()`` directly; the smoke class runs
``python -m pagedraft.cli`` as a real subprocess to catch exit-code and
stdout/stderr separation issues.
"""

from __future__ import annotations

import json
import logging
import subprocess
import sys

import pytest
import structlog

from pagedraft.cli import load_script, main, replay
from pagedraft.config import AutosaveConfig
from pagedraft.errors import ReplayError

PYTHON = sys.executable
CLI = [PYTHON, "-m", "pagedraft.cli"]
LOCAL_TIMEOUT = 10

TITLE_EDITS = {
    "page_number": 2,
    "initial": {"title": "Intro", "content": "Once upon a time"},
    "events": [
        {"at": 1500, "op": "set_field", "name": "title", "value": "A"},
        {"at": 2500, "op": "set_field", "name": "title", "value": "AB"},
    ],
}


@pytest.fixture(autouse=True)
def _reset_logging():
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)
    structlog.reset_defaults()


def _write(tmp_path, script) -> str:
    path = tmp_path / "edits.json"
    path.write_text(json.dumps(script), encoding="utf-8")
    return str(path)


def _lines(out: str) -> list[dict]:
    return [json.loads(line) for line in out.splitlines() if line.strip()]


# ── replay() ─────────────────────────────────────────────────────────


class TestReplayFunction:
    def test_burst_commits_once(self):
        commits = replay(TITLE_EDITS, AutosaveConfig())
        assert len(commits) == 1
        at, snapshot = commits[0]
        # 1500 + 5000 window, rechecked once: 2500 + 5000 + 50 guard
        assert at == 7550
        assert snapshot.fields["title"] == "AB"
        assert snapshot.page_number == 2

    def test_same_time_events_keep_script_order(self):
        script = {
            "initial": {"content": "Body"},
            "events": [
                {"at": 2000, "op": "set_field", "name": "title", "value": "first"},
                {"at": 2000, "op": "set_field", "name": "title", "value": "second"},
            ],
        }
        [(_, snapshot)] = replay(script, AutosaveConfig())
        assert snapshot.fields["title"] == "second"

    def test_events_sorted_by_time(self):
        script = {
            "initial": {"content": "Body"},
            "events": [
                {"at": 3000, "op": "set_field", "name": "title", "value": "late"},
                {"at": 2000, "op": "set_field", "name": "title", "value": "early"},
            ],
        }
        [(_, snapshot)] = replay(script, AutosaveConfig())
        assert snapshot.fields["title"] == "late"

    def test_flush_commits_immediately(self):
        script = {
            "initial": {"content": "Body"},
            "events": [
                {"at": 1500, "op": "add_question", "answer_type": "multiple_choice"},
                {"at": 1600, "op": "flush"},
            ],
        }
        commits = replay(script, AutosaveConfig())
        assert [at for at, _ in commits] == [1600]
        question = commits[0][1].questions[0]
        assert question.options == "Option 1\nOption 2\nOption 3"
        assert commits[0][1].show_notification is True

    def test_until_cuts_timeline(self):
        script = dict(TITLE_EDITS, until=7000)
        assert replay(script, AutosaveConfig()) == []

    def test_unsaved_at_end_is_logged(self, caplog):
        script = dict(TITLE_EDITS, until=3000)
        with caplog.at_level(logging.WARNING, logger="pagedraft.cli"):
            replay(script, AutosaveConfig())
        assert "unsaved changes" in caplog.text

    def test_bad_initial_payload(self):
        script = {"initial": {"content": "Body", "questions": [{"answerType": "essay"}]}, "events": []}
        with pytest.raises(ReplayError, match="initial"):
            replay(script, AutosaveConfig())

    def test_unknown_answer_type_in_event(self):
        script = {
            "initial": {"content": "Body"},
            "events": [{"at": 1500, "op": "add_question", "answer_type": "essay"}],
        }
        with pytest.raises(ReplayError, match="essay") as exc_info:
            replay(script, AutosaveConfig())
        assert exc_info.value.event_index == 0

    def test_bad_event_argument(self):
        script = {"events": [{"at": 0, "op": "remove_question", "index": 3}]}
        with pytest.raises(ReplayError) as exc_info:
            replay(script, AutosaveConfig(initial_load_suppression_ms=0))
        assert exc_info.value.event_index == 0

    def test_missing_event_argument(self):
        script = {"events": [{"at": 0, "op": "flush"}, {"at": 5, "op": "set_field"}]}
        with pytest.raises(ReplayError, match="missing argument") as exc_info:
            replay(script, AutosaveConfig())
        assert exc_info.value.event_index == 1


class TestLoadScript:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ReplayError, match="not found"):
            load_script(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(ReplayError, match="valid JSON"):
            load_script(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ReplayError, match="JSON object"):
            load_script(path)

    def test_page_number_must_be_integer(self, tmp_path):
        path = tmp_path / "page.json"
        path.write_text(json.dumps({"page_number": "two", "events": []}), encoding="utf-8")
        with pytest.raises(ReplayError, match="page_number"):
            load_script(path)

    @pytest.mark.parametrize(
        "event, message",
        [
            ({"at": 0}, "'op'"),
            ({"at": 0, "op": "explode"}, "unknown op"),
            ({"at": -1, "op": "flush"}, "non-negative"),
        ],
    )
    def test_invalid_events(self, tmp_path, event, message):
        path = tmp_path / "events.json"
        path.write_text(json.dumps({"events": [{"at": 0, "op": "flush"}, event]}), encoding="utf-8")
        with pytest.raises(ReplayError, match=message) as exc_info:
            load_script(path)
        assert exc_info.value.event_index == 1


# ── main() ───────────────────────────────────────────────────────────


class TestMain:
    def test_replay_prints_json_lines(self, tmp_path, capsys):
        main(["replay", _write(tmp_path, TITLE_EDITS)])
        [line] = _lines(capsys.readouterr().out)
        assert line["at"] == 7550
        assert line["snapshot"]["pageNumber"] == 2
        assert line["snapshot"]["title"] == "AB"
        assert line["snapshot"]["content"] == "Once upon a time"
        assert line["snapshot"]["showNotification"] is False

    def test_replay_window_override(self, tmp_path, capsys):
        main(["replay", _write(tmp_path, TITLE_EDITS), "--idle-window-ms", "500"])
        lines = _lines(capsys.readouterr().out)
        assert [line["at"] for line in lines] == [2000, 3000]

    def test_replay_reads_env(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv("PAGEDRAFT_IDLE_WINDOW_MS", "500")
        main(["replay", _write(tmp_path, TITLE_EDITS)])
        assert len(_lines(capsys.readouterr().out)) == 2

    def test_replay_error_exits_1(self, tmp_path, capsys):
        script = {"events": [{"at": 0, "op": "explode"}]}
        with pytest.raises(SystemExit) as exc_info:
            main(["replay", _write(tmp_path, script)])
        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "Error: unknown op 'explode'" in err
        assert "(event 0)" in err

    def test_config_error_exits_1(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["replay", _write(tmp_path, TITLE_EDITS), "--idle-window-ms", "0"])
        assert exc_info.value.code == 1
        assert "idle_window_ms" in capsys.readouterr().err

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Red, Blue", ["Red", "Blue"]),
            ("Paris, France\\nLyon", ["Paris, France", "Lyon"]),
            ("", []),
        ],
    )
    def test_options(self, capsys, raw, expected):
        main(["options", raw])
        assert json.loads(capsys.readouterr().out) == expected

    def test_json_logs_carry_script_and_page(self, tmp_path, capsys):
        main(["--json-logs", "-v", "replay", _write(tmp_path, TITLE_EDITS)])
        records = _lines(capsys.readouterr().err)
        [commit] = [r for r in records if r["event"].startswith("Committing")]
        assert commit["script"] == "edits.json"
        assert commit["page"] == 2
        assert commit["commit"] == 1

    def test_contextvars_cleared(self, tmp_path):
        main(["replay", _write(tmp_path, TITLE_EDITS)])
        assert structlog.contextvars.get_contextvars() == {}


# ── Subprocess smoke ────────────────────────────────────────────────


@pytest.mark.smoke
@pytest.mark.timeout(60)
class TestCLISmoke:
    @staticmethod
    def _run(*args: str) -> subprocess.CompletedProcess[str]:
        return subprocess.run(
            [*CLI, *args],
            capture_output=True,
            text=True,
            encoding="utf-8",
            timeout=LOCAL_TIMEOUT,
        )

    def test_help(self):
        r = self._run("replay", "--help")
        assert r.returncode == 0, f"stderr: {r.stderr}"
        assert "--idle-window-ms" in r.stdout
        assert "example" in r.stdout.lower()

    def test_unknown_subcommand_exits_nonzero(self):
        r = self._run("notacommand")
        assert r.returncode != 0

    def test_replay_stdout_is_clean_json(self, tmp_path):
        r = self._run("replay", _write(tmp_path, TITLE_EDITS))
        assert r.returncode == 0, f"stderr: {r.stderr}"
        assert len(_lines(r.stdout)) == 1

    def test_error_has_no_traceback(self, tmp_path):
        r = self._run("replay", str(tmp_path / "missing.json"))
        assert r.returncode == 1
        assert "Traceback" not in r.stderr
        assert "Error: script not found" in r.stderr
