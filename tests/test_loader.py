import json

import httpx
import pytest

from delivery.exceptions import LoadFailure, QuestionUnavailable
from delivery.loader import (
    CachingContentLoader,
    HttpContentLoader,
    question_from_payload,
    section_from_payload,
    structure_from_payload,
)

from conftest import FakeLoader


def test_mcq_string_options_get_letter_labels() -> None:
    question = question_from_payload(
        {
            "question": {
                "id": "q1",
                "question_format": "mcq_single",
                "options_data": json.dumps({"question": "Pick one", "options": ["Red", "Blue"]}),
            }
        },
        "q1",
    )
    assert question.format == "mcq_single"
    assert question.question == "Pick one"
    assert [(option.label, option.text) for option in question.options] == [("A", "Red"), ("B", "Blue")]


def test_legacy_mcq_with_multiple_flag() -> None:
    question = question_from_payload(
        {
            "question": {
                "id": "q2",
                "question_format": "mcq",
                "item_count": 2,
                "options_data": {"isMultiple": True, "options": ["a", "b", "c", "d"]},
            }
        },
        "q2",
    )
    assert question.format == "mcq_multiple"
    assert question.separate_numbers


def test_flowchart_nodes_read_from_content_json() -> None:
    chart = {
        "title": "Making honey",
        "nodes": [
            {"id": 1, "content": "Collect nectar", "row": 0, "col": 0},
            {"id": 2, "content": "Store in [1]", "row": 1, "col": 0},
        ],
    }
    question = question_from_payload(
        {"question": {"id": "f", "question_format": "flowchart", "content": json.dumps(chart)}},
        "f",
    )
    assert question.title == "Making honey"
    assert question.content == ""
    assert [node.id for node in question.nodes] == ["1", "2"]
    assert question.nodes[1].row == 1


def test_speaking_prompts_and_category() -> None:
    question = question_from_payload(
        {
            "question": {
                "id": "s1",
                "question_format": "speaking_part1",
                "speaking_category": "hometown",
                "options_data": {"questions": ["Where are you from?", {"text": "Do you like it?"}]},
            }
        },
        "s1",
    )
    assert [prompt.text for prompt in question.prompts] == ["Where are you from?", "Do you like it?"]
    assert question.speaking_category == "hometown"


def test_invalid_payload_is_question_unavailable() -> None:
    with pytest.raises(QuestionUnavailable):
        question_from_payload(
            {"question": {"id": "m", "question_format": "map_labeling", "options_data": {"labels": ["A"]}}},
            "m",
        )
    with pytest.raises(QuestionUnavailable):
        question_from_payload({"question": {"id": "x", "question_format": "diagram"}}, "x")
    with pytest.raises(QuestionUnavailable):
        question_from_payload({"question": {"id": "y"}}, "y")


def test_section_and_structure_payloads() -> None:
    section = section_from_payload(
        {"id": "s", "exam_type": "listening", "time_limit": 30, "title": "Part 1"}, "s"
    )
    assert section.section_type == "listening"
    assert section.time_limit_minutes == 30

    structure = structure_from_payload(
        {
            "content_blocks": [{"id": "b1", "passage_title": "Bees"}],
            "question_groups": [
                {"id": "g2", "sort_order": 2, "items": [{"question_id": "q3"}]},
                {
                    "id": "g1",
                    "sort_order": 1,
                    "content_block_id": "b1",
                    "items": [
                        {"question_id": "q2", "sort_order": 1},
                        {"question_id": "q1", "sort_order": 0},
                    ],
                },
            ],
        }
    )
    assert [group.id for group in structure.question_groups] == ["g1", "g2"]
    assert structure.question_ids() == ["q1", "q2", "q3"]
    assert structure.block("b1").passage_title == "Bees"


def _content_api(request: httpx.Request) -> httpx.Response:
    routes = {
        "/api/sections/sec-1": {"id": "sec-1", "title": "Reading", "time_limit_minutes": 60},
        "/api/sections/sec-1/structure": {
            "content_blocks": [],
            "question_groups": [{"id": "g1", "items": [{"question_id": "q1"}]}],
        },
        "/api/questions/q1": {"question": {"id": "q1", "question_format": "short_answer"}},
    }
    if request.url.path == "/api/sections/broken":
        return httpx.Response(500, json={"detail": "boom"})
    if request.url.path in routes:
        return httpx.Response(200, json=routes[request.url.path])
    return httpx.Response(404, json={"detail": "Not found"})


@pytest.mark.asyncio
async def test_http_loader_fetches_content() -> None:
    loader = HttpContentLoader("http://authoring.test/", transport=httpx.MockTransport(_content_api))
    try:
        section = await loader.get_section("sec-1")
        structure = await loader.get_section_structure("sec-1")
        question = await loader.get_question("q1")
    finally:
        await loader.aclose()

    assert section.title == "Reading"
    assert structure.question_ids() == ["q1"]
    assert question.format == "short_answer"


@pytest.mark.asyncio
async def test_http_loader_maps_errors() -> None:
    loader = HttpContentLoader("http://authoring.test", transport=httpx.MockTransport(_content_api))
    try:
        with pytest.raises(LoadFailure) as excinfo:
            await loader.get_section("broken")
        assert excinfo.value.section_id == "broken"

        with pytest.raises(QuestionUnavailable):
            await loader.get_question("q-gone")
    finally:
        await loader.aclose()


@pytest.mark.asyncio
async def test_caching_loader_fetches_once(exam_loader: FakeLoader) -> None:
    loader = CachingContentLoader(exam_loader)
    for _ in range(3):
        await loader.get_section("sec-a")
        await loader.get_question("q-mcq")
    assert exam_loader.calls == [("section", "sec-a"), ("question", "q-mcq")]

    loader.clear()
    await loader.get_section("sec-a")
    assert exam_loader.calls[-1] == ("section", "sec-a")
    assert len(exam_loader.calls) == 3


@pytest.mark.asyncio
async def test_caching_loader_does_not_cache_failures(exam_loader: FakeLoader) -> None:
    loader = CachingContentLoader(exam_loader)
    with pytest.raises(QuestionUnavailable):
        await loader.get_question("nope")
    with pytest.raises(QuestionUnavailable):
        await loader.get_question("nope")
    assert exam_loader.calls.count(("question", "nope")) == 2
