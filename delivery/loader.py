"""Content loader contract, payload normalizers and the HTTP implementation."""
from __future__ import annotations

import json
import logging
import string
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from delivery.exceptions import LoadFailure, QuestionUnavailable
from delivery.models import (
    ContentBlock,
    Question,
    QuestionGroup,
    Section,
    SectionStructure,
    parse_question,
)

logger = logging.getLogger(__name__)


class ContentLoader(Protocol):
    """Read-only source of authored content, cacheable per id."""

    async def get_section(self, section_id: str) -> Section: ...

    async def get_section_structure(self, section_id: str) -> SectionStructure: ...

    async def get_question(self, question_id: str) -> Question: ...


# Payload normalization


def _json_value(value: Any) -> Any:
    """Decode JSON text columns; pass decoded values through."""
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return value
    return value


def _json_dict(value: Any) -> dict[str, Any]:
    decoded = _json_value(value)
    return decoded if isinstance(decoded, dict) else {}


def _list(value: Any) -> list[Any]:
    """Authored lists; anything else reads as empty."""
    return list(value) if isinstance(value, (list, tuple)) else []


def _sort_key(entry: dict[str, Any]) -> int:
    order = entry.get("sort_order")
    return order if isinstance(order, int) else 0


def _first(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _options(raw: Any) -> list[dict[str, str]]:
    """Accept ["text", ...] or [{"label", "text"}, ...] option lists."""
    options = []
    for index, entry in enumerate(_list(raw)):
        default_label = string.ascii_uppercase[index % 26]
        if isinstance(entry, dict):
            options.append(
                {
                    "label": str(_first(entry, "label", "key", "id", default=default_label)),
                    "text": str(_first(entry, "text", "content", "value", default="")),
                }
            )
        else:
            options.append({"label": default_label, "text": str(entry)})
    return options


def _statements(raw: Any) -> list[dict[str, Any]]:
    statements = []
    for index, entry in enumerate(_list(raw), start=1):
        if isinstance(entry, dict):
            statements.append(
                {
                    "number": entry.get("number", index),
                    "statement": str(_first(entry, "statement", "text", "content", default="")),
                }
            )
        else:
            statements.append({"number": index, "statement": str(entry)})
    return statements


def _speaking_prompts(raw: Any) -> list[dict[str, Any]]:
    prompts = []
    for entry in _list(raw):
        if isinstance(entry, dict):
            prompts.append(
                {
                    "text": str(_first(entry, "text", "question", default="")),
                    "time_limit_seconds": entry.get("time_limit_seconds"),
                    "allow_response_reset": entry.get("allow_response_reset", True),
                }
            )
        else:
            prompts.append({"text": str(entry)})
    return prompts


def _format_fields(fmt: str, options: dict[str, Any], raw: dict[str, Any]) -> dict[str, Any]:
    """Map the authoring options_data of one format onto model fields."""
    if fmt in ("mcq_single", "mcq_multiple"):
        fields = {
            "question": _first(options, "question", default=""),
            "options": _options(options.get("options")),
        }
        if options.get("displayMode") in ("text", "alphabet"):
            fields["display_mode"] = options["displayMode"]
        if fmt == "mcq_multiple" and options.get("maxSelections"):
            fields["max_selections"] = options["maxSelections"]
        return fields

    if fmt in ("true_false_ng", "yes_no_ng"):
        return {"statements": _statements(_first(options, "statements", "items"))}

    word_bank = [str(word) for word in _list(_first(options, "word_bank", "wordBank"))]
    if fmt == "fill_blank_drag":
        return {"word_bank": word_bank}

    if fmt == "table_completion":
        return {
            "input_mode": "drag" if options.get("input_mode") == "drag" else "typing",
            "word_bank": word_bank,
        }

    if fmt in ("matching", "heading_matching"):
        return {
            "options": _options(options.get("options")),
            "items": _statements(_first(options, "items", "statements")),
            "allow_duplicate": bool(_first(options, "allowDuplicate", "allow_duplicate", default=False)),
        }

    if fmt == "flowchart":
        nodes = options.get("nodes")
        fields: dict[str, Any] = {}
        if nodes is None:
            chart = _json_dict(raw.get("content"))
            nodes = chart.get("nodes", [])
            if chart.get("title") and not raw.get("title"):
                fields["title"] = chart["title"]
            fields["content"] = ""
        fields["nodes"] = [
            {**node, "id": str(node.get("id", index))}
            for index, node in enumerate(_list(nodes))
            if isinstance(node, dict)
        ]
        return fields

    if fmt == "map_labeling":
        fields = {
            "labels": [str(label) for label in _list(options.get("labels"))],
            "items": _statements(_first(options, "items", "statements")),
        }
        if options.get("image_url"):
            fields["image_url"] = options["image_url"]
        return fields

    if fmt in ("essay", "essay_task1", "essay_task2"):
        return {"min_words": options.get("min_words"), "condition": options.get("condition")}

    if fmt in ("speaking_part1", "speaking_part2", "speaking_part3"):
        return {
            "prompts": _speaking_prompts(options.get("questions")),
            "prep_time_seconds": _first(options, "prep_time_seconds", "prepTimeSeconds"),
            "speaking_time_seconds": _first(options, "speaking_time_seconds", "speakingTimeSeconds"),
            "speaking_category": _first(raw, "speaking_category", default=options.get("speaking_category")),
            "depth_level": _first(raw, "depth_level", default=options.get("depth_level")),
            "related_part2_id": _first(raw, "related_part2_id", default=options.get("related_part2_id")),
        }

    return {}


def question_from_payload(payload: dict[str, Any], question_id: str) -> Question:
    """Build a question model from a `{"question": {...}}` authoring payload."""
    raw = payload.get("question", payload)
    if not isinstance(raw, dict):
        raise QuestionUnavailable(question_id, "payload is not an object")

    options = _json_dict(raw.get("options_data"))
    fmt = _first(raw, "question_format", "format")
    if fmt == "mcq":
        fmt = "mcq_multiple" if options.get("isMultiple") else "mcq_single"
    if not fmt:
        raise QuestionUnavailable(question_id, "question format missing")

    data: dict[str, Any] = {
        "id": str(raw.get("id") or question_id),
        "format": fmt,
        "item_count": raw.get("item_count") or 1,
        "title": raw.get("title"),
        "content": raw.get("content") or "",
        "instructions": raw.get("instructions"),
        "audio_url": raw.get("audio_url"),
        "image_url": raw.get("image_url"),
    }
    data.update(_format_fields(fmt, options, raw))
    try:
        return parse_question(data)
    except ValidationError as exc:
        raise QuestionUnavailable(question_id, f"invalid {fmt} payload: {exc.error_count()} errors") from exc


def section_from_payload(payload: dict[str, Any], section_id: str) -> Section:
    raw = payload.get("section", payload)
    return Section(
        id=str(raw.get("id") or section_id),
        title=raw.get("title") or "",
        section_type=_first(raw, "section_type", "exam_type", default="reading"),
        time_limit_minutes=_first(raw, "time_limit_minutes", "time_limit"),
        instruction_title=raw.get("instruction_title"),
        instruction_html=raw.get("instruction_html"),
    )


def structure_from_payload(payload: dict[str, Any]) -> SectionStructure:
    """Normalize `{content_blocks, question_groups[{items[{question_id}]}]}`."""
    blocks = [
        ContentBlock(
            id=str(block["id"]),
            content_type=block.get("content_type") or "passage",
            passage_title=block.get("passage_title"),
            passage_content=block.get("passage_content"),
            passage_footnotes=block.get("passage_footnotes"),
            audio_url=block.get("audio_url"),
            audio_transcript=block.get("audio_transcript"),
        )
        for block in _list(payload.get("content_blocks"))
        if isinstance(block, dict)
    ]

    groups = []
    groups_raw = [group for group in _list(payload.get("question_groups")) if isinstance(group, dict)]
    for group in sorted(groups_raw, key=_sort_key):
        question_ids = group.get("question_ids")
        if question_ids is None:
            items = sorted(
                (item for item in _list(group.get("items")) if isinstance(item, dict)),
                key=_sort_key,
            )
            question_ids = [item["question_id"] for item in items if item.get("question_id")]
        content_block_id = group.get("content_block_id")
        groups.append(
            QuestionGroup(
                id=str(group["id"]),
                title=group.get("title") or None,
                instructions=group.get("instructions"),
                sub_instructions=group.get("sub_instructions"),
                content_block_id=str(content_block_id) if content_block_id else None,
                question_ids=[str(question_id) for question_id in _list(question_ids)],
            )
        )
    return SectionStructure(content_blocks=blocks, question_groups=groups)


# Implementations


class HttpContentLoader:
    """Fetches authored content from a remote authoring API with httpx."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    async def _get_json(self, path: str) -> dict[str, Any]:
        response = await self._client.get(path)
        logger.debug(f"GET {path} -> {response.status_code}")
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Expected a JSON object from {path}")
        return payload

    async def get_section(self, section_id: str) -> Section:
        try:
            payload = await self._get_json(f"/api/sections/{section_id}")
            return section_from_payload(payload, section_id)
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            raise LoadFailure(section_id, str(exc)) from exc

    async def get_section_structure(self, section_id: str) -> SectionStructure:
        try:
            payload = await self._get_json(f"/api/sections/{section_id}/structure")
            return structure_from_payload(payload)
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            raise LoadFailure(section_id, str(exc)) from exc

    async def get_question(self, question_id: str) -> Question:
        try:
            payload = await self._get_json(f"/api/questions/{question_id}")
        except (httpx.HTTPError, ValueError) as exc:
            raise QuestionUnavailable(question_id, str(exc)) from exc
        return question_from_payload(payload, question_id)

    async def aclose(self) -> None:
        await self._client.aclose()


class CachingContentLoader:
    """Memoizes successful lookups of another loader by id."""

    def __init__(self, inner: ContentLoader) -> None:
        self.inner = inner
        self._sections: dict[str, Section] = {}
        self._structures: dict[str, SectionStructure] = {}
        self._questions: dict[str, Question] = {}

    async def get_section(self, section_id: str) -> Section:
        if section_id not in self._sections:
            self._sections[section_id] = await self.inner.get_section(section_id)
        return self._sections[section_id]

    async def get_section_structure(self, section_id: str) -> SectionStructure:
        if section_id not in self._structures:
            self._structures[section_id] = await self.inner.get_section_structure(section_id)
        return self._structures[section_id]

    async def get_question(self, question_id: str) -> Question:
        if question_id not in self._questions:
            self._questions[question_id] = await self.inner.get_question(question_id)
        return self._questions[question_id]

    def clear(self) -> None:
        self._sections.clear()
        self._structures.clear()
        self._questions.clear()
