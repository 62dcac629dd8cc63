"""Session-related Pydantic models."""
from pydantic import BaseModel, Field, model_validator


class SessionCreate(BaseModel):
    """Model for opening a delivery session from a package or explicit sections."""

    packageId: str | None = None
    sectionIds: list[str] | None = None
    instructionTitle: str | None = None
    instructionHtml: str | None = None

    @model_validator(mode="after")
    def _require_source(self) -> "SessionCreate":
        if not self.packageId and not self.sectionIds:
            raise ValueError("packageId or sectionIds is required")
        return self


class MatchSlotRequest(BaseModel):
    """Model for choosing (or clearing, with null) the pending matching slot."""

    number: int | None = Field(default=None, ge=1)


class SessionTick(BaseModel):
    """Model for host-driven countdown ticks."""

    seconds: int = Field(default=1, ge=1, le=3600)
