"""Per-format answer capture, dispatched by question format."""
from delivery.exceptions import InvalidEvent
from delivery.formats.base import (
    AnswerEvent,
    AnswerMap,
    EventKind,
    FormatHandler,
    collapsed_label,
)
from delivery.formats.blanks import (
    DragBlankHandler,
    FlowchartHandler,
    ShortAnswerHandler,
    TableCompletionHandler,
    TypingBlankHandler,
)
from delivery.formats.choice import (
    JudgementHandler,
    MapLabelingHandler,
    McqMultipleHandler,
    McqSingleHandler,
)
from delivery.formats.matching import MatchingHandler
from delivery.formats.writing import EssayHandler, SpeakingHandler, word_count
from delivery.numbering import QuestionItem

_HANDLERS: dict[str, FormatHandler] = {}


def register(handler: FormatHandler) -> None:
    for fmt in handler.formats:
        _HANDLERS[fmt] = handler


for _handler in (
    McqSingleHandler(),
    McqMultipleHandler(),
    JudgementHandler(),
    TypingBlankHandler(),
    DragBlankHandler(),
    TableCompletionHandler(),
    MatchingHandler(),
    FlowchartHandler(),
    MapLabelingHandler(),
    ShortAnswerHandler(),
    EssayHandler(),
    SpeakingHandler(),
):
    register(_handler)


def handler_for(fmt: str) -> FormatHandler:
    handler = _HANDLERS.get(fmt)
    if handler is None:
        raise InvalidEvent(f"Unsupported question format: {fmt}")
    return handler


def apply_event(item: QuestionItem, answers: AnswerMap, event: AnswerEvent) -> AnswerMap:
    """Apply an answer event to the item and return the updated answer map."""
    return handler_for(item.question.format).apply(item, answers, event)


def render_item(
    item: QuestionItem, answers: AnswerMap, active_slot: int | None = None
) -> dict[str, object]:
    return handler_for(item.question.format).render(item, answers, active_slot)


def captures_answers(item: QuestionItem) -> bool:
    return handler_for(item.question.format).captures_answers


__all__ = [
    "AnswerEvent",
    "AnswerMap",
    "EventKind",
    "FormatHandler",
    "apply_event",
    "captures_answers",
    "collapsed_label",
    "handler_for",
    "register",
    "render_item",
    "word_count",
]
