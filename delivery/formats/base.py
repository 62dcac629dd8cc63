"""Shared pieces of the per-format interaction handlers."""
from __future__ import annotations

import enum
import re

from pydantic import BaseModel

from delivery.exceptions import InvalidEvent
from delivery.markers import strip_markers
from delivery.numbering import QuestionItem, format_range

AnswerMap = dict[int, str]

_TAG_PATTERN = re.compile(r"<[^>]+>")


class EventKind(str, enum.Enum):
    """Kinds of answer interaction."""

    SELECT = "select"  # click on an option, label, bank word or pool entry
    TEXT = "text"  # free text typed into a numbered slot
    CLEAR = "clear"  # empty a numbered slot


class AnswerEvent(BaseModel):
    """A single answer interaction coming from the host UI."""

    kind: EventKind
    number: int | None = None
    value: str | None = None
    slot: int | None = None


def strip_html(text: str | None) -> str:
    if not text:
        return ""
    return _TAG_PATTERN.sub("", text).strip()


def is_filled(answers: AnswerMap, number: int) -> bool:
    return bool(answers.get(number))


def split_labels(value: str | None) -> list[str]:
    """Split a comma-joined multi-select answer."""
    if not value:
        return []
    return [label for label in value.split(",") if label]


class FormatHandler:
    """
    Interaction contract for one question format.

    Handlers are stateless: `apply` receives the current answer map and
    returns a new one, `render` builds a view dict for the host UI.
    """

    formats: tuple[str, ...] = ()
    captures_answers = True

    def apply(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        updated = dict(answers)
        if event.kind == EventKind.SELECT:
            return self.on_select(item, updated, event)
        if event.kind == EventKind.TEXT:
            return self.on_text(item, updated, event)
        return self.on_clear(item, updated, event)

    def on_select(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        raise InvalidEvent(f"{item.question.format} does not accept select events")

    def on_text(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        raise InvalidEvent(f"{item.question.format} does not accept text events")

    def on_clear(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        number = self.require_number(item, event)
        answers.pop(number, None)
        return answers

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        return self.base_view(item)

    # Helpers

    def base_view(self, item: QuestionItem) -> dict[str, object]:
        question = item.question
        return {
            "questionId": question.id,
            "format": question.format,
            "startNum": item.start_num,
            "endNum": item.end_num,
            "numberLabel": format_range(item.start_num, item.end_num),
            "title": question.title,
            "instructions": question.instructions,
            "audioUrl": question.audio_url,
            "imageUrl": question.image_url,
        }

    def require_number(self, item: QuestionItem, event: AnswerEvent) -> int:
        if event.number is None:
            raise InvalidEvent("Item number is required")
        if not item.contains(event.number):
            raise InvalidEvent(
                f"Item {event.number} is outside question {item.question.id} "
                f"({format_range(item.start_num, item.end_num)})"
            )
        return event.number

    def require_value(self, event: AnswerEvent) -> str:
        if event.value is None:
            raise InvalidEvent("Answer value is required")
        return event.value


class TextSlotHandler(FormatHandler):
    """Free-text capture into numbered slots."""

    def on_text(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        number = self.require_number(item, event)
        answers[number] = event.value or ""
        return answers


def collapsed_label(item: QuestionItem) -> str:
    """One-line label for a question that is not the active one."""
    question = item.question
    if question.title:
        return strip_html(question.title)

    fmt = question.format
    if fmt == "flowchart":
        return "Flowchart"
    if fmt in ("fill_blank_typing", "fill_blank_drag", "table_completion"):
        return strip_html(strip_markers(question.content)) or "—"
    if fmt in ("matching", "heading_matching"):
        return f"Matching ({len(question.items)} items)"
    return strip_html(question.content) or "—"
