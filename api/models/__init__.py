"""Pydantic models."""
from api.models.sessions import MatchSlotRequest, SessionCreate, SessionTick

__all__ = [
    "MatchSlotRequest",
    "SessionCreate",
    "SessionTick",
]
