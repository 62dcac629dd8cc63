"""Exam delivery engine: numbering, answer capture and section sequencing."""
from delivery.exceptions import (
    DeliveryError,
    InvalidEvent,
    InvalidTransition,
    LoadFailure,
    QuestionUnavailable,
)
from delivery.formats import AnswerEvent, EventKind
from delivery.loader import CachingContentLoader, ContentLoader, HttpContentLoader
from delivery.models import PackageInstruction, Section, SectionStructure, parse_question
from delivery.numbering import allocate_numbers, group_title
from delivery.sequencer import SectionSequencer
from delivery.state import Phase

__all__ = [
    "AnswerEvent",
    "CachingContentLoader",
    "ContentLoader",
    "DeliveryError",
    "EventKind",
    "HttpContentLoader",
    "InvalidEvent",
    "InvalidTransition",
    "LoadFailure",
    "PackageInstruction",
    "Phase",
    "QuestionUnavailable",
    "Section",
    "SectionSequencer",
    "SectionStructure",
    "allocate_numbers",
    "group_title",
    "parse_question",
]
