"""Global item numbering for the questions of one section."""
from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from delivery.models import Question, QuestionGroup

logger = logging.getLogger(__name__)

RANGE_DASH = "–"


@dataclass(frozen=True)
class QuestionItem:
    """A question placed at [start_num, end_num] within its group."""

    question: Question
    start_num: int
    end_num: int
    group_id: str
    content_block_id: str | None = None

    @property
    def numbers(self) -> range:
        return range(self.start_num, self.end_num + 1)

    @property
    def slot_count(self) -> int:
        return self.end_num - self.start_num + 1

    def contains(self, number: int) -> bool:
        return self.start_num <= number <= self.end_num


@dataclass(frozen=True)
class NumberedGroup:
    """A question group with its allocated range and display title."""

    group: QuestionGroup
    start_num: int
    end_num: int
    items: tuple[QuestionItem, ...]

    @property
    def is_empty(self) -> bool:
        return self.end_num < self.start_num

    @property
    def title(self) -> str:
        if self.group.title:
            return self.group.title
        return group_title((item.start_num, item.end_num) for item in self.items)


@dataclass
class NumberingPlan:
    """Ordered items and groups of a section plus lookup helpers."""

    items: list[QuestionItem] = field(default_factory=list)
    groups: list[NumberedGroup] = field(default_factory=list)
    total_items: int = 0

    def item_for_number(self, number: int) -> QuestionItem | None:
        """Find the item whose range contains the number."""
        starts = [item.start_num for item in self.items]
        index = bisect_right(starts, number) - 1
        if index < 0:
            return None
        item = self.items[index]
        return item if item.contains(number) else None

    def group_for_number(self, number: int) -> NumberedGroup | None:
        for group in self.groups:
            if not group.is_empty and group.start_num <= number <= group.end_num:
                return group
        return None


def allocate_numbers(
    groups: Sequence[QuestionGroup],
    questions: Mapping[str, Question],
    reserve_missing_slots: bool = False,
) -> NumberingPlan:
    """
    Assign contiguous 1-based numbers to questions across ordered groups.

    Args:
        groups: Question groups in authored order
        questions: Resolved question payloads keyed by id
        reserve_missing_slots: Keep one number for each unresolved id
            instead of dropping it without consuming a number
    """
    plan = NumberingPlan()
    counter = 1

    for group in groups:
        group_start = counter
        group_items: list[QuestionItem] = []

        for question_id in group.question_ids:
            question = questions.get(question_id)
            if question is None:
                if reserve_missing_slots:
                    counter += 1
                logger.debug(
                    f"Group {group.id} references unresolved question {question_id}"
                )
                continue

            start = counter
            end = counter + question.item_count - 1
            item = QuestionItem(
                question=question,
                start_num=start,
                end_num=end,
                group_id=group.id,
                content_block_id=group.content_block_id,
            )
            group_items.append(item)
            plan.items.append(item)
            counter = end + 1

        plan.groups.append(
            NumberedGroup(
                group=group,
                start_num=group_start,
                end_num=counter - 1,
                items=tuple(group_items),
            )
        )

    plan.total_items = counter - 1
    return plan


def format_range(start: int, end: int) -> str:
    """Render a number range as "5" or "5–8"."""
    if start == end:
        return f"{start}"
    return f"{start}{RANGE_DASH}{end}"


def group_title(ranges: Iterable[tuple[int, int]]) -> str:
    """
    Build a heading such as "Questions 1–2, 4 and 6" from item ranges.

    Each range is listed as given; adjacent ranges are not merged.
    """
    parts: list[str] = []
    total = 0
    for start, end in ranges:
        total += end - start + 1
        parts.append(format_range(start, end))

    if not parts:
        return ""
    prefix = "Question" if total == 1 else "Questions"
    if len(parts) == 1:
        return f"{prefix} {parts[0]}"
    return f"{prefix} {', '.join(parts[:-1])} and {parts[-1]}"
