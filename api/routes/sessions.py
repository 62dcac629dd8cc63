"""Delivery session endpoints. Every response is the session view."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DbSession

from api.database import get_db
from api.models import MatchSlotRequest, SessionCreate, SessionTick
from api.services import session_service
from delivery.formats import AnswerEvent

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.post("")
async def create_session(
    payload: SessionCreate, db: Annotated[DbSession, Depends(get_db)]
) -> dict[str, object]:
    """Open a session for a package or an explicit list of sections."""
    return await session_service.open_session(db, payload)


@router.get("/{session_id}")
async def get_session(session_id: str) -> dict[str, object]:
    return await session_service.session_view(session_id)


@router.post("/{session_id}/start")
async def start(session_id: str) -> dict[str, object]:
    """Leave the package or section instruction page."""
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.start()
    )


@router.post("/{session_id}/items/{number}")
async def go_to_item(session_id: str, number: int) -> dict[str, object]:
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.go_to(number)
    )


@router.post("/{session_id}/next")
async def next_item(session_id: str) -> dict[str, object]:
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.next_item()
    )


@router.post("/{session_id}/previous")
async def previous_item(session_id: str) -> dict[str, object]:
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.previous_item()
    )


@router.post("/{session_id}/answers")
async def answer(session_id: str, event: AnswerEvent) -> dict[str, object]:
    """Apply a select/text/clear event to the targeted item."""
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.answer(event)
    )


@router.post("/{session_id}/match-slot")
async def select_match_slot(
    session_id: str, payload: MatchSlotRequest
) -> dict[str, object]:
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.select_match_slot(payload.number)
    )


@router.post("/{session_id}/tick")
async def tick(session_id: str, payload: SessionTick) -> dict[str, object]:
    """Advance the countdown when the host drives the timer."""
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.tick(payload.seconds)
    )


@router.post("/{session_id}/transition")
async def request_transition(session_id: str) -> dict[str, object]:
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.request_transition()
    )


@router.post("/{session_id}/transition/cancel")
async def cancel_transition(session_id: str) -> dict[str, object]:
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.cancel_transition()
    )


@router.post("/{session_id}/transition/confirm")
async def confirm_transition(session_id: str) -> dict[str, object]:
    """Move to the next section, or complete the session on the last one."""
    return await session_service.run_operation(
        session_id, lambda sequencer: sequencer.confirm_transition()
    )


@router.delete("/{session_id}")
async def close_session(session_id: str) -> dict[str, object]:
    return await session_service.close_session(session_id)
