import os
import tempfile

# api.config reads the environment at import time.
os.environ.setdefault("DB_DIR", tempfile.mkdtemp(prefix="delivery-tests-"))
os.environ["SESSION_AUTOTICK"] = "0"
os.environ["SESSION_CLEANUP_INTERVAL_SECONDS"] = "0"

from typing import Any

import pytest

from delivery.exceptions import LoadFailure, QuestionUnavailable
from delivery.models import (
    Question,
    QuestionGroup,
    Section,
    SectionStructure,
    parse_question,
)


class FakeLoader:
    """In-memory content loader that records every fetch."""

    def __init__(
        self,
        sections: dict[str, Section],
        structures: dict[str, SectionStructure],
        questions: dict[str, Question],
        failing_sections: set[str] | None = None,
    ) -> None:
        self.sections = sections
        self.structures = structures
        self.questions = questions
        self.failing_sections = failing_sections or set()
        self.calls: list[tuple[str, str]] = []

    async def get_section(self, section_id: str) -> Section:
        self.calls.append(("section", section_id))
        if section_id in self.failing_sections or section_id not in self.sections:
            raise LoadFailure(section_id, "HTTP 500")
        return self.sections[section_id]

    async def get_section_structure(self, section_id: str) -> SectionStructure:
        self.calls.append(("structure", section_id))
        if section_id in self.failing_sections or section_id not in self.structures:
            raise LoadFailure(section_id, "HTTP 500")
        return self.structures[section_id]

    async def get_question(self, question_id: str) -> Question:
        self.calls.append(("question", question_id))
        if question_id not in self.questions:
            raise QuestionUnavailable(question_id, "HTTP 404")
        return self.questions[question_id]


def make_question(**data: Any) -> Question:
    return parse_question(data)


@pytest.fixture
def exam_loader() -> FakeLoader:
    """
    Section A: one MCQ (1 item) and a TFNG group of 3 statements.
    Section B: one essay behind an instruction page.
    """
    questions = {
        "q-mcq": make_question(
            id="q-mcq",
            format="mcq_single",
            content="What do bees collect?",
            options=[
                {"label": "A", "text": "Nectar"},
                {"label": "B", "text": "Leaves"},
                {"label": "C", "text": "Wood"},
            ],
        ),
        "q-tfng": make_question(
            id="q-tfng",
            format="true_false_ng",
            item_count=3,
            statements=[
                {"statement": "Bees sleep at night."},
                {"statement": "Bees can fly backwards."},
                {"statement": "Bees sing."},
            ],
        ),
        "q-essay": make_question(
            id="q-essay",
            format="essay_task2",
            content="Some people think bees are important. Discuss.",
            min_words=250,
        ),
    }
    sections = {
        "sec-a": Section(id="sec-a", title="Reading", section_type="reading", time_limit_minutes=1),
        "sec-b": Section(
            id="sec-b",
            title="Writing",
            section_type="writing",
            time_limit_minutes=60,
            instruction_title="Writing Task 2",
            instruction_html="<p>Write at least 250 words.</p>",
        ),
    }
    structures = {
        "sec-a": SectionStructure(
            question_groups=[
                QuestionGroup(id="g-a1", question_ids=["q-mcq"]),
                QuestionGroup(id="g-a2", instructions="TRUE, FALSE or NOT GIVEN", question_ids=["q-tfng"]),
            ]
        ),
        "sec-b": SectionStructure(
            question_groups=[QuestionGroup(id="g-b1", question_ids=["q-essay"])]
        ),
    }
    return FakeLoader(sections, structures, questions)


@pytest.fixture
def package_export() -> dict[str, Any]:
    """A package export in the authoring shape, as imported by the CLI."""
    return {
        "package": {
            "id": "pkg-1",
            "title": "Academic Mock 1",
            "instruction_title": "Welcome",
            "instruction_content": "<p>Read every instruction carefully.</p>",
        },
        "sections": [
            {
                "id": "sec-read",
                "section_type": "reading",
                "title": "Reading",
                "time_limit_minutes": 1,
                "content_blocks": [
                    {
                        "id": "blk-bees",
                        "content_type": "passage",
                        "passage_title": "The Secret Life of Bees",
                        "passage_content": "<p>Bees collect nectar.</p>",
                    }
                ],
                "question_groups": [
                    {
                        "id": "grp-mcq",
                        "content_block_id": "blk-bees",
                        "items": [{"question_id": "q-mcq"}],
                    },
                    {
                        "id": "grp-tfng",
                        "instructions": "Do the statements agree with the passage?",
                        "items": [{"question_id": "q-tfng"}, {"question_id": "q-missing"}],
                    },
                ],
            },
            {
                "id": "sec-write",
                "section_type": "writing",
                "title": "Writing",
                "instruction_title": "Writing Task 2",
                "instruction_html": "<p>Write at least 250 words.</p>",
                "time_limit_minutes": 60,
                "custom_time_limit_minutes": 40,
                "question_groups": [{"id": "grp-essay", "items": [{"question_id": "q-essay"}]}],
            },
        ],
        "questions": [
            {
                "id": "q-mcq",
                "question_format": "mcq_single",
                "content": "What do bees collect?",
                "options_data": {"options": ["Nectar", "Leaves", "Wood"]},
                "answer_data": {"correct": "A"},
            },
            {
                "id": "q-tfng",
                "question_format": "true_false_ng",
                "item_count": 3,
                "options_data": {
                    "statements": ["Bees sleep at night.", "Bees can fly backwards.", "Bees sing."]
                },
            },
            {
                "id": "q-essay",
                "question_format": "essay_task2",
                "content": "Some people think bees are important. Discuss.",
                "options_data": {"min_words": 250},
            },
        ],
    }
