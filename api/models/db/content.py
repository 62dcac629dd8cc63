"""
Read-only catalog of authored exam content imported from package exports.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from api.database import Base


def _loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return default


class PackageRecord(Base):
    """An exam package: ordered sections plus an optional instruction page."""

    __tablename__ = "packages"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    instruction_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instruction_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    imported_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    sections: Mapped[list["PackageSectionRecord"]] = relationship(
        "PackageSectionRecord",
        back_populates="package",
        cascade="all, delete-orphan",
        order_by="PackageSectionRecord.display_order",
    )


class PackageSectionRecord(Base):
    """Position of a section inside a package."""

    __tablename__ = "package_sections"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    package_id: Mapped[str] = mapped_column(
        ForeignKey("packages.id", ondelete="CASCADE"), nullable=False, index=True
    )
    section_id: Mapped[str] = mapped_column(
        ForeignKey("sections.id", ondelete="CASCADE"), nullable=False
    )
    display_order: Mapped[int] = mapped_column(default=0, nullable=False)
    custom_time_limit_minutes: Mapped[int | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint("package_id", "section_id", name="uq_package_section"),
    )

    package: Mapped["PackageRecord"] = relationship(
        "PackageRecord", back_populates="sections"
    )
    section: Mapped["SectionRecord"] = relationship("SectionRecord")


class SectionRecord(Base):
    """Section metadata with its instruction page and time limit."""

    __tablename__ = "sections"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    section_type: Mapped[str] = mapped_column(String(20), nullable=False, default="reading")
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    instruction_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instruction_html: Mapped[str | None] = mapped_column(Text, nullable=True)
    time_limit_minutes: Mapped[int | None] = mapped_column(nullable=True)

    content_blocks: Mapped[list["ContentBlockRecord"]] = relationship(
        "ContentBlockRecord",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="ContentBlockRecord.display_order",
    )
    groups: Mapped[list["QuestionGroupRecord"]] = relationship(
        "QuestionGroupRecord",
        back_populates="section",
        cascade="all, delete-orphan",
        order_by="QuestionGroupRecord.display_order",
    )

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "section_type": self.section_type,
            "title": self.title,
            "instruction_title": self.instruction_title,
            "instruction_html": self.instruction_html,
            "time_limit_minutes": self.time_limit_minutes,
        }


class ContentBlockRecord(Base):
    """Reading passage or listening audio shared by question groups."""

    __tablename__ = "content_blocks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    section_id: Mapped[str] = mapped_column(
        ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content_type: Mapped[str] = mapped_column(String(20), nullable=False, default="passage")
    display_order: Mapped[int] = mapped_column(default=0, nullable=False)
    passage_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    passage_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    passage_footnotes: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    audio_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)

    section: Mapped["SectionRecord"] = relationship(
        "SectionRecord", back_populates="content_blocks"
    )

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "content_type": self.content_type,
            "passage_title": self.passage_title,
            "passage_content": self.passage_content,
            "passage_footnotes": self.passage_footnotes,
            "audio_url": self.audio_url,
            "audio_transcript": self.audio_transcript,
        }


class QuestionGroupRecord(Base):
    """A titled set of questions inside a section."""

    __tablename__ = "question_groups"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    section_id: Mapped[str] = mapped_column(
        ForeignKey("sections.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content_block_id: Mapped[str | None] = mapped_column(
        ForeignKey("content_blocks.id", ondelete="SET NULL"), nullable=True
    )
    display_order: Mapped[int] = mapped_column(default=0, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    sub_instructions: Mapped[str | None] = mapped_column(Text, nullable=True)

    section: Mapped["SectionRecord"] = relationship(
        "SectionRecord", back_populates="groups"
    )
    items: Mapped[list["GroupItemRecord"]] = relationship(
        "GroupItemRecord",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupItemRecord.display_order",
    )

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "instructions": self.instructions,
            "sub_instructions": self.sub_instructions,
            "content_block_id": self.content_block_id,
            "items": [{"question_id": item.question_id} for item in self.items],
        }


class GroupItemRecord(Base):
    """Ordered reference from a group to a question."""

    __tablename__ = "question_group_items"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    group_id: Mapped[str] = mapped_column(
        ForeignKey("question_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Not a foreign key: dangling references are kept as authored.
    question_id: Mapped[str] = mapped_column(String(64), nullable=False)
    display_order: Mapped[int] = mapped_column(default=0, nullable=False)

    group: Mapped["QuestionGroupRecord"] = relationship(
        "QuestionGroupRecord", back_populates="items"
    )


class QuestionRecord(Base):
    """
    Authored question in its authoring shape.
    options_data is kept as JSON text; answer_data and answer-key fields
    inside options_data are dropped on import.
    """

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, index=True)
    question_format: Mapped[str] = mapped_column(String(40), nullable=False)
    item_count: Mapped[int] = mapped_column(default=1, nullable=False)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    instructions: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    speaking_category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    depth_level: Mapped[int | None] = mapped_column(nullable=True)
    related_part2_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    options_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def options_data(self) -> dict[str, Any]:
        """Parse options_data from JSON."""
        return _loads(self.options_json, {})

    @options_data.setter
    def options_data(self, value: dict[str, Any] | None) -> None:
        """Serialize options_data to JSON."""
        self.options_json = json.dumps(value, ensure_ascii=False) if value else None

    def to_payload(self) -> dict[str, object]:
        return {
            "id": self.id,
            "question_format": self.question_format,
            "item_count": self.item_count,
            "title": self.title,
            "content": self.content,
            "instructions": self.instructions,
            "audio_url": self.audio_url,
            "image_url": self.image_url,
            "speaking_category": self.speaking_category,
            "depth_level": self.depth_level,
            "related_part2_id": self.related_part2_id,
            "options_data": self.options_data,
        }
