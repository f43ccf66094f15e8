# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page Draft: idle-triggered, coalescing autosave for a page-editing form.

Watches the editable state of one page (text fields, a list of questions,
an image reference) and commits a single consolidated snapshot once the
editor has gone quiet:
- ChangeTracker: holds the state slices and reports every mutation
- IdleSaveScheduler: debounce/idle state machine with single-flight commits
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .options import get_options_list

__version__ = "0.3.0"


class Urgency(enum.Enum):
    """Classification of an edit. Content edits are keystrokes in text fields."""

    CONTENT = "content"
    STRUCTURAL = "structural"


class AnswerType(str, enum.Enum):
    TEXT = "text"
    MULTIPLE_CHOICE = "multiple_choice"  # single answer picked from the option list


class SchedulerState(enum.Enum):
    SUPPRESSED = "suppressed"  # initial load window, notifications dropped
    IDLE = "idle"  # nothing pending
    ARMED = "armed"  # timer running, no edit since arming
    DIRTY = "dirty"  # timer running, edited after arming; recheck on fire
    CLOSED = "closed"  # torn down


@dataclass(frozen=True, slots=True)
class Question:
    """One question attached to a page."""

    question_text: str = ""
    answer_type: str = AnswerType.TEXT.value
    correct_answer: str = ""
    options: str = ""  # newline- or comma-delimited, see options.get_options_list

    @property
    def is_choice(self) -> bool:
        return self.answer_type == AnswerType.MULTIPLE_CHOICE.value

    @property
    def option_list(self) -> list[str]:
        return get_options_list(self.options)

    def to_dict(self) -> dict[str, str]:
        return {
            "questionText": self.question_text,
            "answerType": self.answer_type,
            "correctAnswer": self.correct_answer,
            "options": self.options,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Question:
        """Build from a saved payload. Accepts camelCase or snake_case keys.

        Raises ValueError for an answer type outside AnswerType.
        """

        def pick(camel: str, snake: str) -> str:
            value = data.get(camel, data.get(snake))
            return "" if value is None else str(value)

        return cls(
            question_text=pick("questionText", "question_text"),
            answer_type=AnswerType(pick("answerType", "answer_type") or AnswerType.TEXT.value).value,
            correct_answer=pick("correctAnswer", "correct_answer"),
            options=pick("options", "options"),
        )


@dataclass(frozen=True, slots=True)
class ImageRef:
    """Image reference pair: public URL plus content-addressed id."""

    url: str = ""
    public_id: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.url and not self.public_id


EMPTY_IMAGE = ImageRef()


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Immutable, save-worthy state of an editing session at one instant."""

    page_number: int
    fields: Mapping[str, str]
    questions: tuple[Question, ...] = ()
    image: ImageRef = EMPTY_IMAGE
    page_id: int | None = None
    show_notification: bool = False

    def __post_init__(self) -> None:
        # Frozen copy so later edits to the tracker's dict never leak in
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "questions", tuple(self.questions))

    def __hash__(self) -> int:
        # MappingProxyType is unhashable; hash the field items instead
        return hash(
            (
                self.page_number,
                tuple(sorted(self.fields.items())),
                self.questions,
                self.image,
                self.page_id,
                self.show_notification,
            )
        )

    def to_dict(self) -> dict[str, Any]:
        """Persistence payload in the editor's wire shape."""
        payload: dict[str, Any] = {}
        if self.page_id is not None:
            payload["id"] = self.page_id
        payload["pageNumber"] = self.page_number
        payload.update(self.fields)
        payload["imageUrl"] = self.image.url
        payload["imagePublicId"] = self.image.public_id
        if self.questions:
            payload["questions"] = [q.to_dict() for q in self.questions]
        payload["showNotification"] = self.show_notification
        return payload


__all__ = [
    "EMPTY_IMAGE",
    "AnswerType",
    "ImageRef",
    "Question",
    "SchedulerState",
    "Snapshot",
    "Urgency",
    "__version__",
]
