"""Service layer for the read-only content catalog."""
import asyncio
import logging
from typing import Any

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session as DBSession, selectinload

from api.database import SessionLocal
from api.models.db.content import (
    ContentBlockRecord,
    GroupItemRecord,
    PackageRecord,
    PackageSectionRecord,
    QuestionGroupRecord,
    QuestionRecord,
    SectionRecord,
)
from delivery.exceptions import LoadFailure, QuestionUnavailable
from delivery.loader import question_from_payload, section_from_payload, structure_from_payload
from delivery.models import PackageInstruction, Question, Section, SectionStructure

logger = logging.getLogger(__name__)


# Lookups


def _find_section(db: DBSession, section_id: str) -> SectionRecord | None:
    return db.scalar(
        select(SectionRecord)
        .where(SectionRecord.id == section_id)
        .options(
            selectinload(SectionRecord.content_blocks),
            selectinload(SectionRecord.groups).selectinload(QuestionGroupRecord.items),
        )
    )


def _structure_payload(section: SectionRecord) -> dict[str, object]:
    return {
        "content_blocks": [block.to_payload() for block in section.content_blocks],
        "question_groups": [group.to_payload() for group in section.groups],
    }


def list_packages(db: DBSession) -> list[dict[str, object]]:
    """List imported packages with their section counts."""
    packages = db.scalars(
        select(PackageRecord)
        .options(selectinload(PackageRecord.sections))
        .order_by(PackageRecord.title)
    ).all()
    return [
        {
            "id": package.id,
            "title": package.title,
            "sectionCount": len(package.sections),
            "importedAt": package.imported_at.isoformat(),
        }
        for package in packages
    ]


def get_package(db: DBSession, package_id: str) -> dict[str, object]:
    """Get package metadata with ordered sections."""
    package = db.get(PackageRecord, package_id)
    if not package:
        raise HTTPException(status_code=404, detail="Package not found")
    return {
        "id": package.id,
        "title": package.title,
        "description": package.description,
        "instruction_title": package.instruction_title,
        "instruction_content": package.instruction_content,
        "sections": [
            {
                "section_id": entry.section_id,
                "display_order": entry.display_order,
                "custom_time_limit_minutes": entry.custom_time_limit_minutes,
                "title": entry.section.title,
                "section_type": entry.section.section_type,
            }
            for entry in package.sections
        ],
    }


def get_section(db: DBSession, section_id: str) -> dict[str, object]:
    section = db.get(SectionRecord, section_id)
    if not section:
        raise HTTPException(status_code=404, detail="Section not found")
    return section.to_payload()


def get_section_structure(db: DBSession, section_id: str) -> dict[str, object]:
    """Get content blocks and ordered question groups of a section."""
    section = _find_section(db, section_id)
    if not section:
        raise HTTPException(status_code=404, detail="Section not found")
    return _structure_payload(section)


def get_question(db: DBSession, question_id: str) -> dict[str, object]:
    question = db.get(QuestionRecord, question_id)
    if not question:
        raise HTTPException(status_code=404, detail="Question not found")
    return {"question": question.to_payload()}


def package_delivery_plan(
    db: DBSession, package_id: str
) -> tuple[list[str], PackageInstruction, dict[str, int]]:
    """
    Resolve what a session needs to open a package.

    Returns:
        Ordered section ids, the package instruction page and per-section
        time limit overrides
    """
    package = db.get(PackageRecord, package_id)
    if not package:
        raise HTTPException(status_code=404, detail="Package not found")
    if not package.sections:
        raise HTTPException(status_code=400, detail="Package has no sections")

    section_ids = [entry.section_id for entry in package.sections]
    overrides = {
        entry.section_id: entry.custom_time_limit_minutes
        for entry in package.sections
        if entry.custom_time_limit_minutes is not None
    }
    instruction = PackageInstruction(
        title=package.instruction_title, html=package.instruction_content
    )
    return section_ids, instruction, overrides


# Import

# Answer-key fields authors may embed in options_data.
ANSWER_KEY_FIELDS = frozenset(
    {
        "answer",
        "answers",
        "correct",
        "correct_answer",
        "correct_answers",
        "correctAnswer",
        "correctAnswers",
        "is_correct",
        "isCorrect",
        "acceptable_answers",
        "model_answer",
        "model_answers",
    }
)


def _strip_answer_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: _strip_answer_keys(entry)
            for key, entry in value.items()
            if key not in ANSWER_KEY_FIELDS
        }
    if isinstance(value, list):
        return [_strip_answer_keys(entry) for entry in value]
    return value


def _question_record(data: dict[str, Any]) -> QuestionRecord:
    record = QuestionRecord(
        id=str(data["id"]),
        question_format=str(data.get("question_format") or data.get("format")),
        item_count=int(data.get("item_count") or 1),
        title=data.get("title"),
        content=data.get("content") or "",
        instructions=data.get("instructions"),
        audio_url=data.get("audio_url"),
        image_url=data.get("image_url"),
        speaking_category=data.get("speaking_category"),
        depth_level=data.get("depth_level"),
        related_part2_id=data.get("related_part2_id"),
    )
    options = data.get("options_data")
    record.options_data = _strip_answer_keys(options) if isinstance(options, dict) else None
    return record


def _section_record(data: dict[str, Any]) -> SectionRecord:
    section = SectionRecord(
        id=str(data["id"]),
        section_type=data.get("section_type") or "reading",
        title=data.get("title") or "",
        instruction_title=data.get("instruction_title"),
        instruction_html=data.get("instruction_html"),
        time_limit_minutes=data.get("time_limit_minutes"),
    )
    for order, block in enumerate(data.get("content_blocks") or []):
        section.content_blocks.append(
            ContentBlockRecord(
                id=str(block["id"]),
                content_type=block.get("content_type") or "passage",
                display_order=order,
                passage_title=block.get("passage_title"),
                passage_content=block.get("passage_content"),
                passage_footnotes=block.get("passage_footnotes"),
                audio_url=block.get("audio_url"),
                audio_transcript=block.get("audio_transcript"),
            )
        )
    for order, group in enumerate(data.get("question_groups") or []):
        question_ids = group.get("question_ids")
        if question_ids is None:
            question_ids = [item["question_id"] for item in group.get("items") or []]
        section.groups.append(
            QuestionGroupRecord(
                id=str(group["id"]),
                display_order=order,
                title=group.get("title"),
                instructions=group.get("instructions"),
                sub_instructions=group.get("sub_instructions"),
                content_block_id=group.get("content_block_id"),
                items=[
                    GroupItemRecord(question_id=str(question_id), display_order=index)
                    for index, question_id in enumerate(question_ids)
                ],
            )
        )
    return section


def import_package(db: DBSession, data: dict[str, Any]) -> PackageRecord:
    """
    Import a package export, replacing any records with the same ids.

    Args:
        db: Database session
        data: {"package": {...}, "sections": [...], "questions": [...]}
    """
    package_data = data.get("package")
    if not isinstance(package_data, dict) or not package_data.get("id"):
        raise ValueError("Export must contain a package with an id")
    sections = data.get("sections") or []
    questions = data.get("questions") or []

    for entry in questions:
        db.merge(_question_record(entry))

    for entry in sections:
        existing = db.get(SectionRecord, str(entry["id"]))
        if existing:
            db.delete(existing)
            db.flush()
        db.add(_section_record(entry))

    package_id = str(package_data["id"])
    existing_package = db.get(PackageRecord, package_id)
    if existing_package:
        db.delete(existing_package)
        db.flush()

    package = PackageRecord(
        id=package_id,
        title=package_data.get("title") or "",
        description=package_data.get("description"),
        instruction_title=package_data.get("instruction_title"),
        instruction_content=package_data.get("instruction_content"),
        sections=[
            PackageSectionRecord(
                section_id=str(entry["id"]),
                display_order=order,
                custom_time_limit_minutes=entry.get("custom_time_limit_minutes"),
            )
            for order, entry in enumerate(sections)
        ],
    )
    db.add(package)
    db.commit()
    db.refresh(package)
    logger.info(
        f"Imported package {package.id}: {len(sections)} sections, "
        f"{len(questions)} questions"
    )
    return package


# Content loader


class CatalogContentLoader:
    """Serves delivery content from the catalog database off the event loop."""

    def __init__(self, session_factory=SessionLocal) -> None:
        self.session_factory = session_factory

    def _read(self, reader, key: str):
        db = self.session_factory()
        try:
            return reader(db, key)
        finally:
            db.close()

    @staticmethod
    def _section_payload(db: DBSession, section_id: str) -> dict[str, object] | None:
        section = db.get(SectionRecord, section_id)
        return section.to_payload() if section else None

    @staticmethod
    def _structure(db: DBSession, section_id: str) -> dict[str, object] | None:
        section = _find_section(db, section_id)
        return _structure_payload(section) if section else None

    @staticmethod
    def _question_payload(db: DBSession, question_id: str) -> dict[str, object] | None:
        question = db.get(QuestionRecord, question_id)
        return {"question": question.to_payload()} if question else None

    async def get_section(self, section_id: str) -> Section:
        payload = await asyncio.to_thread(self._read, self._section_payload, section_id)
        if payload is None:
            raise LoadFailure(section_id, "section not found")
        try:
            return section_from_payload(payload, section_id)
        except ValueError as exc:
            raise LoadFailure(section_id, str(exc)) from exc

    async def get_section_structure(self, section_id: str) -> SectionStructure:
        payload = await asyncio.to_thread(self._read, self._structure, section_id)
        if payload is None:
            raise LoadFailure(section_id, "section not found")
        try:
            return structure_from_payload(payload)
        except (ValueError, KeyError) as exc:
            raise LoadFailure(section_id, str(exc)) from exc

    async def get_question(self, question_id: str) -> Question:
        payload = await asyncio.to_thread(self._read, self._question_payload, question_id)
        if payload is None:
            raise QuestionUnavailable(question_id, "not found")
        return question_from_payload(payload, question_id)
