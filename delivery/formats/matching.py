"""Matching and heading-matching: lettered option pool against numbered slots."""
from __future__ import annotations

from delivery.exceptions import InvalidEvent
from delivery.formats.base import AnswerEvent, AnswerMap, FormatHandler, is_filled
from delivery.numbering import QuestionItem


class MatchingHandler(FormatHandler):
    """
    Pool clicks either fill the pending slot (event.slot) or the first
    empty slot. Unless duplicates are allowed, an assigned option stays
    unavailable until its slot is cleared.
    """

    formats = ("matching", "heading_matching")

    def assigned_labels(self, item: QuestionItem, answers: AnswerMap) -> set[str]:
        return {answers[n] for n in item.numbers if is_filled(answers, n)}

    def is_available(self, item: QuestionItem, answers: AnswerMap, label: str) -> bool:
        if item.question.allow_duplicate:
            return True
        return label not in self.assigned_labels(item, answers)

    def on_select(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        labels = [option.label for option in item.question.options]
        label = self.require_value(event)
        if label not in labels:
            raise InvalidEvent(f"{label!r} is not an option of question {item.question.id}")
        if not self.is_available(item, answers, label):
            return answers

        if event.slot is not None:
            if not item.contains(event.slot):
                raise InvalidEvent(f"Slot {event.slot} is outside question {item.question.id}")
            answers[event.slot] = label
            return answers

        for number in item.numbers:
            if not is_filled(answers, number):
                answers[number] = label
                return answers
        return answers

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        question = item.question
        texts = {option.label: option.text for option in question.options}
        view = self.base_view(item)
        view.update(
            {
                "content": question.content,
                "allowDuplicate": question.allow_duplicate,
                "options": [
                    {
                        "label": option.label,
                        "text": option.text,
                        "used": not self.is_available(item, answers, option.label),
                    }
                    for option in question.options
                ],
                "slots": [
                    {
                        "number": number,
                        "statement": (
                            question.items[index].statement
                            if index < len(question.items)
                            else ""
                        ),
                        "label": answers.get(number) or None,
                        "text": texts.get(answers.get(number) or ""),
                        "active": number == active_slot,
                    }
                    for index, number in enumerate(item.numbers)
                ],
            }
        )
        return view
