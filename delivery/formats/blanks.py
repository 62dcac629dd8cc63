"""Handlers for [k]-marker formats: fill-blank, table completion, flowchart, short answer."""
from __future__ import annotations

from collections import Counter

from delivery.exceptions import InvalidEvent
from delivery.formats.base import (
    AnswerEvent,
    AnswerMap,
    FormatHandler,
    TextSlotHandler,
    is_filled,
)
from delivery.markers import blank_indices, serialize_segments, tokenize
from delivery.numbering import QuestionItem


def blank_numbers(item: QuestionItem, content: str) -> list[int]:
    """Global numbers of the blanks in content, ascending."""
    numbers = [
        item.start_num + index - 1
        for index in blank_indices(content)
        if item.contains(item.start_num + index - 1)
    ]
    return numbers or list(item.numbers)


def _render_blanks(
    view: dict[str, object], item: QuestionItem, answers: AnswerMap
) -> dict[str, object]:
    content = item.question.content
    view["segments"] = serialize_segments(tokenize(content), item.start_num)
    view["values"] = {
        str(number): answers.get(number) for number in blank_numbers(item, content)
    }
    return view


class TypingBlankHandler(TextSlotHandler):
    formats = ("fill_blank_typing",)

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        view = _render_blanks(self.base_view(item), item, answers)
        view["inputMode"] = "typing"
        return view


class DragBlankHandler(FormatHandler):
    """Word-bank blanks: a bank click fills the first empty blank."""

    formats = ("fill_blank_drag",)

    def available_words(self, item: QuestionItem, answers: AnswerMap) -> Counter:
        remaining = Counter(item.question.word_bank)
        placed = Counter(
            answers[number]
            for number in blank_numbers(item, item.question.content)
            if is_filled(answers, number)
        )
        remaining.subtract(placed)
        return remaining

    def on_select(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        word = self.require_value(event)
        if word not in item.question.word_bank:
            raise InvalidEvent(f"{word!r} is not in the word bank")
        if self.available_words(item, answers)[word] <= 0:
            return answers
        for number in blank_numbers(item, item.question.content):
            if not is_filled(answers, number):
                answers[number] = word
                return answers
        return answers

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        view = _render_blanks(self.base_view(item), item, answers)
        remaining = self.available_words(item, answers)
        bank = []
        for word in item.question.word_bank:
            used = remaining[word] <= 0
            if not used:
                remaining[word] -= 1
            bank.append({"word": word, "used": used})
        view["inputMode"] = "drag"
        view["wordBank"] = bank
        return view


class TableCompletionHandler(FormatHandler):
    """Table completion, captured as typing or drag depending on input_mode."""

    formats = ("table_completion",)

    def __init__(self) -> None:
        self._typing = TypingBlankHandler()
        self._drag = DragBlankHandler()

    def _delegate(self, item: QuestionItem) -> FormatHandler:
        if item.question.input_mode == "drag":
            return self._drag
        return self._typing

    def apply(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        return self._delegate(item).apply(item, answers, event)

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        view = self._delegate(item).render(item, answers, active_slot)
        view["format"] = item.question.format
        return view


class FlowchartHandler(TextSlotHandler):
    """Flowchart nodes laid out by row then column, with typed blanks."""

    formats = ("flowchart",)

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        rows: dict[int, list] = {}
        for node in item.question.nodes:
            rows.setdefault(node.row, []).append(node)

        layout = []
        for row in sorted(rows):
            layout.append(
                {
                    "row": row,
                    "nodes": [
                        {
                            "id": node.id,
                            "type": node.type,
                            "label": node.label,
                            "segments": serialize_segments(
                                tokenize(node.content), item.start_num
                            ),
                        }
                        for node in sorted(rows[row], key=lambda n: n.col)
                    ],
                }
            )

        view = self.base_view(item)
        view["rows"] = layout
        view["values"] = {
            str(number): answers.get(number) for number in item.numbers
        }
        return view


class ShortAnswerHandler(TextSlotHandler):
    formats = ("short_answer",)

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        view = self.base_view(item)
        view["question"] = item.question.content
        view["values"] = {
            str(number): answers.get(number) for number in item.numbers
        }
        return view
