import copy
from pathlib import Path
from typing import Any

import pytest
from fastapi import HTTPException

from api.database import init_db, make_engine, make_session_factory
from api.models.db import QuestionRecord, SectionRecord
from api.services import catalog_service
from delivery.exceptions import LoadFailure, QuestionUnavailable


@pytest.fixture
def session_factory(tmp_path: Path):
    engine = make_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def db(session_factory, package_export: dict[str, Any]):
    session = session_factory()
    catalog_service.import_package(session, package_export)
    try:
        yield session
    finally:
        session.close()


def test_import_package_and_read_back(db) -> None:
    packages = catalog_service.list_packages(db)
    assert [(entry["id"], entry["sectionCount"]) for entry in packages] == [("pkg-1", 2)]

    package = catalog_service.get_package(db, "pkg-1")
    assert package["instruction_title"] == "Welcome"
    assert [entry["section_id"] for entry in package["sections"]] == ["sec-read", "sec-write"]
    assert package["sections"][1]["custom_time_limit_minutes"] == 40

    section = catalog_service.get_section(db, "sec-read")
    assert section["time_limit_minutes"] == 1

    structure = catalog_service.get_section_structure(db, "sec-read")
    assert structure["content_blocks"][0]["passage_title"] == "The Secret Life of Bees"
    assert structure["question_groups"][0]["content_block_id"] == "blk-bees"
    assert structure["question_groups"][1]["items"] == [
        {"question_id": "q-tfng"},
        {"question_id": "q-missing"},
    ]


def test_answer_keys_are_not_stored(db) -> None:
    payload = catalog_service.get_question(db, "q-mcq")["question"]
    assert "answer_data" not in payload
    assert payload["options_data"] == {"options": ["Nectar", "Leaves", "Wood"]}


def test_missing_records_raise_404(db) -> None:
    for getter in (
        catalog_service.get_package,
        catalog_service.get_section,
        catalog_service.get_section_structure,
        catalog_service.get_question,
    ):
        with pytest.raises(HTTPException) as excinfo:
            getter(db, "nope")
        assert excinfo.value.status_code == 404


def test_package_delivery_plan(db) -> None:
    section_ids, instruction, overrides = catalog_service.package_delivery_plan(db, "pkg-1")
    assert section_ids == ["sec-read", "sec-write"]
    assert instruction.has_content
    assert overrides == {"sec-write": 40}


def test_package_without_sections_cannot_be_delivered(session_factory) -> None:
    session = session_factory()
    try:
        catalog_service.import_package(session, {"package": {"id": "empty", "title": "Empty"}})
        with pytest.raises(HTTPException) as excinfo:
            catalog_service.package_delivery_plan(session, "empty")
        assert excinfo.value.status_code == 400
    finally:
        session.close()


def test_import_requires_package_id(session_factory) -> None:
    session = session_factory()
    try:
        with pytest.raises(ValueError):
            catalog_service.import_package(session, {"package": {"title": "No id"}})
    finally:
        session.close()


def test_reimport_replaces_records(db, package_export: dict[str, Any]) -> None:
    updated = copy.deepcopy(package_export)
    updated["sections"] = updated["sections"][:1]
    updated["sections"][0]["question_groups"] = updated["sections"][0]["question_groups"][:1]
    updated["questions"][0]["content"] = "What do bees make?"

    catalog_service.import_package(db, updated)

    package = catalog_service.get_package(db, "pkg-1")
    assert [entry["section_id"] for entry in package["sections"]] == ["sec-read"]
    structure = catalog_service.get_section_structure(db, "sec-read")
    assert [group["id"] for group in structure["question_groups"]] == ["grp-mcq"]
    assert db.get(QuestionRecord, "q-mcq").content == "What do bees make?"
    assert db.get(SectionRecord, "sec-write") is not None


@pytest.mark.asyncio
async def test_catalog_loader_builds_delivery_models(db, session_factory) -> None:
    loader = catalog_service.CatalogContentLoader(session_factory)

    section = await loader.get_section("sec-write")
    assert section.has_instruction
    assert section.time_limit_minutes == 60

    structure = await loader.get_section_structure("sec-read")
    assert structure.question_ids() == ["q-mcq", "q-tfng", "q-missing"]

    question = await loader.get_question("q-mcq")
    assert [option.label for option in question.options] == ["A", "B", "C"]

    with pytest.raises(QuestionUnavailable):
        await loader.get_question("q-missing")
    with pytest.raises(LoadFailure):
        await loader.get_section("nope")
    with pytest.raises(LoadFailure):
        await loader.get_section_structure("nope")


def test_embedded_answer_keys_are_stripped_on_import(session_factory) -> None:
    export = {
        "package": {"id": "pkg-keys", "title": "Keys"},
        "questions": [
            {
                "id": "q-match",
                "question_format": "matching",
                "options_data": {
                    "options": [{"label": "A", "text": "Hive", "isCorrect": True}],
                    "items": [{"statement": "Where bees live", "answer": "A"}],
                    "correctAnswers": ["A"],
                    "allowDuplicate": False,
                },
            }
        ],
    }
    session = session_factory()
    try:
        catalog_service.import_package(session, export)
        options = catalog_service.get_question(session, "q-match")["question"]["options_data"]
    finally:
        session.close()

    assert options == {
        "options": [{"label": "A", "text": "Hive"}],
        "items": [{"statement": "Where bees live"}],
        "allowDuplicate": False,
    }
