"""Tokenizer for inline [k] blank markers in question content."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union

MARKER_PATTERN = re.compile(r"\[(\d+)\]")


@dataclass(frozen=True)
class TextSegment:
    text: str


@dataclass(frozen=True)
class BlankSegment:
    index: int  # 1-based position inside the question

    def number(self, start_num: int) -> int:
        return start_num + self.index - 1


Segment = Union[TextSegment, BlankSegment]


def tokenize(content: str | None) -> list[Segment]:
    """Split content into literal text and blank references."""
    if not content:
        return []
    segments: list[Segment] = []
    parts = MARKER_PATTERN.split(content)
    for position, part in enumerate(parts):
        if position % 2 == 1:
            segments.append(BlankSegment(int(part)))
        elif part:
            segments.append(TextSegment(part))
    return segments


def blank_indices(content: str | None) -> list[int]:
    """Distinct blank indices in ascending order."""
    if not content:
        return []
    return sorted({int(match) for match in MARKER_PATTERN.findall(content)})


def strip_markers(content: str | None, placeholder: str = "___") -> str:
    if not content:
        return ""
    return MARKER_PATTERN.sub(placeholder, content)


def serialize_segments(segments: list[Segment], start_num: int) -> list[dict[str, object]]:
    """Convert segments into view dicts with global item numbers."""
    result: list[dict[str, object]] = []
    for segment in segments:
        if isinstance(segment, BlankSegment):
            result.append({"type": "blank", "number": segment.number(start_num)})
        else:
            result.append({"type": "text", "text": segment.text})
    return result
