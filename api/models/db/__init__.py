"""Database models."""
from api.models.db.content import (
    ContentBlockRecord,
    GroupItemRecord,
    PackageRecord,
    PackageSectionRecord,
    QuestionGroupRecord,
    QuestionRecord,
    SectionRecord,
)

__all__ = [
    "ContentBlockRecord",
    "GroupItemRecord",
    "PackageRecord",
    "PackageSectionRecord",
    "QuestionGroupRecord",
    "QuestionRecord",
    "SectionRecord",
]
