"""Essay capture and speaking prompt rendering."""
from __future__ import annotations

from delivery.exceptions import InvalidEvent
from delivery.formats.base import (
    AnswerEvent,
    AnswerMap,
    FormatHandler,
    TextSlotHandler,
)
from delivery.numbering import QuestionItem

BULLET_PREFIXES = ("-", "•", "*")


def word_count(text: str | None) -> int:
    """Count whitespace-separated tokens."""
    if not text:
        return 0
    return len(text.split())


def parse_cue_card(content: str) -> dict[str, object]:
    """
    Split Part 2 cue card text into topic, bullets and closing line.

    Expected layout: a topic line, "You should say:", "-" bullets, and
    an optional "and explain ..." line.
    """
    topic = ""
    bullets: list[str] = []
    closing = ""
    in_bullets = False

    for raw in content.splitlines():
        line = raw.strip()
        if not line:
            continue
        lowered = line.lower()
        if lowered.startswith("you should say"):
            in_bullets = True
            continue
        if line.startswith(BULLET_PREFIXES):
            bullets.append(line.lstrip("-•* ").strip())
            continue
        if in_bullets and lowered.startswith(("and explain", "and say")):
            closing = line
            continue
        if not in_bullets and not topic:
            topic = line

    return {"topic": topic, "bullets": bullets, "closing": closing}


class EssayHandler(TextSlotHandler):
    formats = ("essay", "essay_task1", "essay_task2")

    def on_text(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        if event.number is None:
            event = event.model_copy(update={"number": item.start_num})
        return super().on_text(item, answers, event)

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        question = item.question
        text = answers.get(item.start_num, "")
        count = word_count(text)
        min_words = question.min_words or 0
        view = self.base_view(item)
        view.update(
            {
                "content": question.content,
                "condition": question.condition,
                "text": text,
                "wordCount": count,
                "minWords": min_words or None,
                "meetsMinimum": count >= min_words,
            }
        )
        return view


class SpeakingHandler(FormatHandler):
    """Prompts and cue cards only; recordings never reach the answer map."""

    formats = ("speaking_part1", "speaking_part2", "speaking_part3")
    captures_answers = False

    def apply(
        self, item: QuestionItem, answers: AnswerMap, event: AnswerEvent
    ) -> AnswerMap:
        raise InvalidEvent("Speaking questions do not record answers")

    def render(
        self,
        item: QuestionItem,
        answers: AnswerMap,
        active_slot: int | None = None,
    ) -> dict[str, object]:
        question = item.question
        view = self.base_view(item)
        view["part"] = int(question.format[-1])
        view["speakingCategory"] = question.speaking_category

        if question.format == "speaking_part2":
            view["cueCard"] = parse_cue_card(question.content)
            view["prepTimeSeconds"] = question.prep_time_seconds or 60
            view["speakingTimeSeconds"] = question.speaking_time_seconds or 120
            return view

        prompts = [prompt.model_dump() for prompt in question.prompts]
        if not prompts and question.content:
            prompts = [{"text": question.content, "time_limit_seconds": None, "allow_response_reset": True}]
        view["prompts"] = prompts
        if question.format == "speaking_part3":
            view["depthLevel"] = question.depth_level
            view["relatedPart2Id"] = question.related_part2_id
        return view
