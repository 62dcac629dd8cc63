"""Handlers for option-picking formats: MCQ, TFNG/YNNG and map labeling."""
from __future__ import annotations

from delivery.exceptions import InvalidEvent
from delivery.formats.base import (
    AnswerEvent,
    AnswerMap,
    FormatHandler,
    is_filled,
    split_labels,
)
from delivery.numbering import QuestionItem


def _option_labels(item: QuestionItem) -> list[str]:
    return [option.label for option in item.question.options]


def _require_label(item: QuestionItem, event: AnswerEvent, labels: list[str]) -> str:
    if event.value is None:
        raise InvalidEvent("Option label is required")
    if event.value not in labels:
        raise InvalidEvent(
            f"{event.value!r} is not an option of question {item.question.id}"
        )
    return event.value


class McqSingleHandler(FormatHandler):
    formats = ("mcq_single",)

    def on_select(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        label = _require_label(item, event, _option_labels(item))
        answers[item.start_num] = label
        return answers

    def on_clear(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        answers.pop(item.start_num, None)
        return answers

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        question = item.question
        selected = answers.get(item.start_num)
        view = self.base_view(item)
        view.update(
            {
                "question": question.question or question.content,
                "displayMode": question.display_mode,
                "multiple": False,
                "options": [
                    {
                        "label": option.label,
                        "text": option.text,
                        "selected": option.label == selected,
                        "disabled": False,
                    }
                    for option in question.options
                ],
            }
        )
        return view


class McqMultipleHandler(FormatHandler):
    """
    Multiple-answer MCQ in both numbering modes.

    Shared number: one slot stores the ordered comma-joined label set.
    Separate numbers: each slot stores one label, filled left to right.
    """

    formats = ("mcq_multiple",)

    def selected_labels(self, item: QuestionItem, answers: AnswerMap) -> list[str]:
        if item.question.separate_numbers:
            return [answers[n] for n in item.numbers if is_filled(answers, n)]
        return split_labels(answers.get(item.start_num))

    def on_select(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        label = _require_label(item, event, _option_labels(item))
        if item.question.separate_numbers:
            return self._toggle_separate(item, answers, label)
        return self._toggle_shared(item, answers, label)

    def _toggle_shared(
        self, item: QuestionItem, answers: AnswerMap, label: str
    ) -> AnswerMap:
        selected = split_labels(answers.get(item.start_num))
        if label in selected:
            selected.remove(label)
        elif len(selected) >= item.question.selection_limit:
            return answers
        else:
            selected.append(label)

        if selected:
            answers[item.start_num] = ",".join(selected)
        else:
            answers.pop(item.start_num, None)
        return answers

    def _toggle_separate(
        self, item: QuestionItem, answers: AnswerMap, label: str
    ) -> AnswerMap:
        for number in item.numbers:
            if answers.get(number) == label:
                answers.pop(number)
                return answers
        for number in item.numbers:
            if not is_filled(answers, number):
                answers[number] = label
                return answers
        return answers

    def on_clear(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        if event.number is None:
            for number in item.numbers:
                answers.pop(number, None)
            return answers
        return super().on_clear(item, answers, event)

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        question = item.question
        selected = self.selected_labels(item, answers)
        limit_reached = len(selected) >= question.selection_limit
        view = self.base_view(item)
        view.update(
            {
                "question": question.question or question.content,
                "displayMode": question.display_mode,
                "multiple": True,
                "separateNumbers": question.separate_numbers,
                "maxSelections": question.selection_limit,
                "selectionCount": len(selected),
                "options": [
                    {
                        "label": option.label,
                        "text": option.text,
                        "selected": option.label in selected,
                        "disabled": option.label not in selected and limit_reached,
                    }
                    for option in question.options
                ],
            }
        )
        if question.separate_numbers:
            view["slots"] = [
                {"number": number, "label": answers.get(number) or None}
                for number in item.numbers
            ]
        return view


class JudgementHandler(FormatHandler):
    """TRUE/FALSE/NOT GIVEN (or YES/NO/NOT GIVEN), one number per statement."""

    formats = ("true_false_ng", "yes_no_ng")

    def on_select(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        number = self.require_number(item, event)
        choices = item.question.choices
        if event.value not in choices:
            raise InvalidEvent(
                f"{event.value!r} is not one of {', '.join(choices)}"
            )
        answers[number] = event.value
        return answers

    def statements(self, item: QuestionItem) -> list[str]:
        question = item.question
        texts: list[str] = []
        for index in range(item.slot_count):
            if index < len(question.statements):
                texts.append(question.statements[index].statement)
            elif index == 0 and question.content:
                texts.append(question.content)
            else:
                texts.append(f"Statement {index + 1}")
        return texts

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        choices = item.question.choices
        view = self.base_view(item)
        view.update(
            {
                "choices": [
                    {"value": value, "label": value.replace("_", " ").upper()}
                    for value in choices
                ],
                "statements": [
                    {
                        "number": item.start_num + index,
                        "statement": text,
                        "answer": answers.get(item.start_num + index),
                    }
                    for index, text in enumerate(self.statements(item))
                ],
            }
        )
        return view


class MapLabelingHandler(FormatHandler):
    """Row-by-label toggle grid over a labelled map or plan."""

    formats = ("map_labeling",)

    def on_select(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        number = self.require_number(item, event)
        label = _require_label(item, event, list(item.question.labels))
        if answers.get(number) == label:
            answers.pop(number)
        else:
            answers[number] = label
        return answers

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        question = item.question
        rows = []
        for index in range(item.slot_count):
            number = item.start_num + index
            statement = (
                question.items[index].statement if index < len(question.items) else ""
            )
            assigned = answers.get(number)
            rows.append(
                {
                    "number": number,
                    "statement": statement,
                    "cells": [
                        {"label": label, "checked": label == assigned}
                        for label in question.labels
                    ],
                }
            )
        view = self.base_view(item)
        view.update(
            {
                "imageUrl": question.image_url,
                "labels": list(question.labels),
                "prompt": (
                    f"The map has {len(question.labels)} labels "
                    f"({', '.join(question.labels)}). Choose the correct label."
                ),
                "rows": rows,
            }
        )
        return view
