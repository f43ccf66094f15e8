# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""ChangeTracker — editable state of one page and the edit relay.

Holds the three state slices (scalar fields, question list, image reference),
classifies each mutation and forwards it to the attached save queue:

- field edits are ``Urgency.CONTENT``
- question list and image edits are ``Urgency.STRUCTURAL``

Every question/option editing helper builds a new list and funnels it through
``replace_list`` so normalisation and notification happen in one place.
``build_snapshot`` is the scheduler's snapshot builder: pure, synchronous and
cheap enough to run on every keystroke.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Protocol

from . import EMPTY_IMAGE, AnswerType, ImageRef, Question, Snapshot, Urgency
from .options import default_choice_options, get_options_list, join_options, next_option_label

logger = logging.getLogger(__name__)

DEFAULT_FIELDS: tuple[str, ...] = ("title", "content")
DEFAULT_REQUIRED_FIELDS: tuple[str, ...] = ("content",)
QUESTION_FIELDS = frozenset({"question_text", "answer_type", "correct_answer", "options"})

# Payload keys that are not scalar fields
_STRUCTURED_KEYS = frozenset({"id", "pageNumber", "questions", "imageUrl", "imagePublicId", "showNotification"})


class SaveQueue(Protocol):
    def notify(self, urgency: Urgency = ...) -> None: ...


def _type_value(answer_type: AnswerType | str) -> str:
    """Raises ValueError for anything outside the AnswerType set."""
    return AnswerType(answer_type).value


def _normalize(question: Question) -> Question:
    """Choice questions never carry an empty option list or a dangling answer."""
    _type_value(question.answer_type)
    if not question.is_choice:
        return question
    options = question.option_list
    if not options:
        question = replace(question, options=default_choice_options())
        options = question.option_list
    if question.correct_answer and question.correct_answer not in options:
        logger.debug("Correct answer %r no longer among the options; cleared", question.correct_answer)
        question = replace(question, correct_answer="")
    return question


class ChangeTracker:
    """Mutable editing state for a single page."""

    def __init__(
        self,
        *,
        page_number: int = 1,
        page_id: int | None = None,
        required_fields: Sequence[str] = DEFAULT_REQUIRED_FIELDS,
        queue: SaveQueue | None = None,
    ) -> None:
        self.page_number = page_number
        self.page_id = page_id
        self._required = tuple(required_fields)
        self._fields: dict[str, str] = {name: "" for name in DEFAULT_FIELDS}
        self._questions: tuple[Question, ...] = ()
        self._image: ImageRef = EMPTY_IMAGE
        self._has_questions = False
        self._last_urgency = Urgency.CONTENT
        self._queue = queue

    def attach(self, queue: SaveQueue) -> None:
        self._queue = queue

    # ── State ────────────────────────────────────────────────────────

    @property
    def fields(self) -> Mapping[str, str]:
        return MappingProxyType(self._fields)

    @property
    def questions(self) -> tuple[Question, ...]:
        return self._questions

    @property
    def image(self) -> ImageRef:
        return self._image

    @property
    def has_questions(self) -> bool:
        """Presentation flag: True iff the question list is non-empty."""
        return self._has_questions

    get_options_list = staticmethod(get_options_list)

    # ── Mutators ─────────────────────────────────────────────────────

    def set_field(self, name: str, value: Any) -> None:
        self._fields[name] = "" if value is None else str(value)
        self._relay(Urgency.CONTENT)

    def replace_list(self, questions: Iterable[Question]) -> None:
        self._questions = tuple(_normalize(q) for q in questions)
        self._has_questions = bool(self._questions)
        self._relay(Urgency.STRUCTURAL)

    def set_image_reference(self, url: str, public_id: str = "") -> None:
        self._image = ImageRef(url=url or "", public_id=public_id or "")
        self._relay(Urgency.STRUCTURAL)

    def clear_image_reference(self) -> None:
        self._image = EMPTY_IMAGE
        self._relay(Urgency.STRUCTURAL)

    # ── Question editing ─────────────────────────────────────────────

    def add_question(self, answer_type: AnswerType | str = AnswerType.TEXT, question_text: str = "") -> None:
        question = Question(question_text=question_text, answer_type=_type_value(answer_type))
        self.replace_list([*self._questions, question])

    def remove_question(self, index: int) -> None:
        self._question_at(index)
        questions = list(self._questions)
        del questions[index]
        self.replace_list(questions)

    def update_question(self, index: int, field: str, value: Any) -> None:
        if field not in QUESTION_FIELDS:
            raise ValueError(f"unknown question field {field!r}, expected one of {sorted(QUESTION_FIELDS)}")
        if field == "answer_type":
            value = _type_value(value)
        self._replace_question(index, replace(self._question_at(index), **{field: "" if value is None else value}))

    def add_option(self, question_index: int) -> None:
        question = self._question_at(question_index)
        options = question.option_list
        options.append(next_option_label(options))
        self._replace_question(question_index, replace(question, options=join_options(options)))

    def remove_option(self, question_index: int, option_index: int) -> None:
        """Drop one option; clears the correct answer if it pointed at it."""
        question = self._question_at(question_index)
        options = question.option_list
        _check_index(option_index, len(options), "option")
        removed = options.pop(option_index)
        correct = "" if question.correct_answer == removed else question.correct_answer
        self._replace_question(
            question_index,
            replace(question, options=join_options(options), correct_answer=correct),
        )

    def update_option_text(self, question_index: int, option_index: int, text: str) -> None:
        """Rename one option; the correct answer follows the rename.

        The options are stored as parsed (trimmed, split on embedded
        newlines) and the answer follows the renamed label as parsed. It is
        cleared when the new label is blank.
        """
        question = self._question_at(question_index)
        options = question.option_list
        _check_index(option_index, len(options), "option")
        previous = options[option_index]
        options[option_index] = "" if text is None else str(text)
        parsed = get_options_list(join_options(options))
        correct = question.correct_answer
        if correct == previous:
            renamed = options[option_index].strip() and option_index < len(parsed)
            correct = parsed[option_index] if renamed else ""
        self._replace_question(question_index, replace(question, options=join_options(parsed), correct_answer=correct))

    # ── Hydration ────────────────────────────────────────────────────

    def load(self, values: Mapping[str, Any]) -> None:
        """Apply a previously saved payload through the normal mutators.

        The resulting notifications land inside the scheduler's initial-load
        window and are dropped there.
        """
        if values.get("id") is not None:
            self.page_id = int(values["id"])
        if values.get("pageNumber") is not None:
            self.page_number = int(values["pageNumber"])
        for name, value in values.items():
            if name not in _STRUCTURED_KEYS:
                self.set_field(name, value)
        questions = values.get("questions") or []
        if questions:
            self.replace_list(q if isinstance(q, Question) else Question.from_dict(q) for q in questions)
        url = values.get("imageUrl") or ""
        public_id = values.get("imagePublicId") or ""
        if url or public_id:
            self.set_image_reference(url, public_id)
        logger.debug("Loaded page %s (%d questions)", self.page_number, len(self._questions))

    # ── Snapshot builder ─────────────────────────────────────────────

    def build_snapshot(self) -> Snapshot | None:
        """Current save-worthy state, or None while a required field is blank."""
        for name in self._required:
            if not self._fields.get(name, "").strip():
                return None
        return Snapshot(
            page_number=self.page_number,
            fields=self._fields,
            questions=self._questions,
            image=self._image,
            page_id=self.page_id,
            show_notification=self._last_urgency is Urgency.STRUCTURAL,
        )

    # ── Internal ─────────────────────────────────────────────────────

    def _question_at(self, index: int) -> Question:
        _check_index(index, len(self._questions), "question")
        return self._questions[index]

    def _replace_question(self, index: int, question: Question) -> None:
        questions = list(self._questions)
        questions[index] = question
        self.replace_list(questions)

    def _relay(self, urgency: Urgency) -> None:
        self._last_urgency = urgency
        if self._queue is not None:
            self._queue.notify(urgency)


def _check_index(index: int, length: int, kind: str) -> None:
    if not 0 <= index < length:
        raise IndexError(f"{kind} index {index} out of range (0..{length - 1})")
