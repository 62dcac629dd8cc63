"""Read-only catalog endpoints in the authoring API shape."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from api.database import get_db
from api.services import catalog_service
from api.utils import validate_id

router = APIRouter(prefix="/api", tags=["content"])


@router.get("/packages")
def list_packages(db: Annotated[DbSession, Depends(get_db)]) -> list[dict[str, object]]:
    """List imported packages."""
    return catalog_service.list_packages(db)


@router.get("/packages/{package_id}")
def get_package(
    package_id: str, db: Annotated[DbSession, Depends(get_db)]
) -> dict[str, object]:
    """Get a package with its ordered sections."""
    return catalog_service.get_package(db, validate_id("packageId", package_id))


@router.get("/sections/{section_id}")
def get_section(
    section_id: str, db: Annotated[DbSession, Depends(get_db)]
) -> dict[str, object]:
    """Get section metadata and instruction page."""
    return catalog_service.get_section(db, validate_id("sectionId", section_id))


@router.get("/sections/{section_id}/structure")
def get_section_structure(
    section_id: str, db: Annotated[DbSession, Depends(get_db)]
) -> dict[str, object]:
    """Get content blocks and question groups of a section."""
    return catalog_service.get_section_structure(
        db, validate_id("sectionId", section_id)
    )


@router.get("/questions/{question_id}")
def get_question(
    question_id: str, db: Annotated[DbSession, Depends(get_db)]
) -> dict[str, object]:
    """Get a question payload (without answer keys)."""
    return catalog_service.get_question(db, validate_id("questionId", question_id))
