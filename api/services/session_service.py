"""Service layer for in-memory delivery sessions."""
import asyncio
import inspect
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from fastapi import HTTPException
from sqlalchemy.orm import Session as DBSession

from api import config
from api.models.sessions import SessionCreate
from api.services import catalog_service
from delivery.exceptions import InvalidEvent, InvalidTransition
from delivery.loader import CachingContentLoader, ContentLoader, HttpContentLoader
from delivery.models import PackageInstruction, Question, Section, SectionStructure
from delivery.sequencer import SectionSequencer

logger = logging.getLogger(__name__)

Operation = Callable[[SectionSequencer], Any]


class TimeLimitOverrides:
    """Applies package-level time limits on top of the authored section limits."""

    def __init__(self, inner: ContentLoader, overrides: dict[str, int]) -> None:
        self.inner = inner
        self.overrides = overrides

    async def get_section(self, section_id: str) -> Section:
        section = await self.inner.get_section(section_id)
        if section_id in self.overrides:
            return section.model_copy(
                update={"time_limit_minutes": self.overrides[section_id]}
            )
        return section

    async def get_section_structure(self, section_id: str) -> SectionStructure:
        return await self.inner.get_section_structure(section_id)

    async def get_question(self, question_id: str) -> Question:
        return await self.inner.get_question(question_id)


class DeliverySession:
    """A sequencer plus the lock that serializes its events."""

    def __init__(
        self,
        session_id: str,
        sequencer: SectionSequencer,
        http_loader: HttpContentLoader | None = None,
    ) -> None:
        self.id = session_id
        self.sequencer = sequencer
        self.http_loader = http_loader
        self.lock = asyncio.Lock()
        self.created_at = datetime.now(timezone.utc)
        self.last_seen = self.created_at

    def touch(self) -> None:
        self.last_seen = datetime.now(timezone.utc)

    def view(self) -> dict[str, object]:
        view = self.sequencer.view()
        view["sessionId"] = self.id
        return view

    async def aclose(self) -> None:
        self.sequencer.close()
        if self.http_loader is not None:
            await self.http_loader.aclose()


class SessionRegistry:
    """Open sessions keyed by id. Nothing is persisted."""

    def __init__(self) -> None:
        self._sessions: dict[str, DeliverySession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def add(self, session: DeliverySession) -> None:
        self._sessions[session.id] = session

    def get(self, session_id: str) -> DeliverySession | None:
        return self._sessions.get(session_id)

    def pop(self, session_id: str) -> DeliverySession | None:
        return self._sessions.pop(session_id, None)

    def idle_since(self, cutoff: datetime) -> list[str]:
        return [
            session_id
            for session_id, session in self._sessions.items()
            if session.last_seen < cutoff
        ]

    def ids(self) -> list[str]:
        return list(self._sessions)


registry = SessionRegistry()


def _build_loader(
    overrides: dict[str, int],
) -> tuple[ContentLoader, HttpContentLoader | None]:
    """Pick the remote authoring API when configured, else the local catalog."""
    http_loader = None
    if config.CONTENT_API_URL:
        http_loader = HttpContentLoader(
            config.CONTENT_API_URL, timeout=config.CONTENT_API_TIMEOUT_SECONDS
        )
        source: ContentLoader = http_loader
    else:
        source = catalog_service.CatalogContentLoader()

    loader: ContentLoader = CachingContentLoader(source)
    if overrides:
        loader = TimeLimitOverrides(loader, overrides)
    return loader, http_loader


async def open_session(db: DBSession, payload: SessionCreate) -> dict[str, object]:
    """Create a session for a package (or explicit sections) and open it."""
    overrides: dict[str, int] = {}
    if payload.packageId:
        section_ids, instruction, overrides = catalog_service.package_delivery_plan(
            db, payload.packageId
        )
    else:
        section_ids = list(payload.sectionIds or [])
        instruction = PackageInstruction(
            title=payload.instructionTitle, html=payload.instructionHtml
        )

    loader, http_loader = _build_loader(overrides)
    sequencer = SectionSequencer(
        loader,
        section_ids,
        package_instruction=instruction,
        reserve_missing_slots=config.RESERVE_MISSING_SLOTS,
        autotick=config.SESSION_AUTOTICK,
    )
    session = DeliverySession(uuid.uuid4().hex, sequencer, http_loader)
    async with session.lock:
        try:
            await sequencer.open()
        except Exception:
            await session.aclose()
            raise
        registry.add(session)
        logger.info(f"Opened session {session.id} with {len(section_ids)} sections")
        return session.view()


def get_session(session_id: str) -> DeliverySession:
    session = registry.get(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


async def run_operation(session_id: str, operation: Operation) -> dict[str, object]:
    """
    Run one sequencer operation under the session lock and return the view.

    Engine errors become HTTP errors: InvalidTransition -> 409,
    InvalidEvent -> 400.
    """
    session = get_session(session_id)
    async with session.lock:
        try:
            result = operation(session.sequencer)
            if inspect.isawaitable(result):
                await result
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except InvalidEvent as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        session.touch()
        return session.view()


async def session_view(session_id: str) -> dict[str, object]:
    return await run_operation(session_id, lambda sequencer: None)


async def close_session(session_id: str) -> dict[str, object]:
    session = registry.pop(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    async with session.lock:
        await session.aclose()
    logger.info(f"Closed session {session_id}")
    return {"status": "closed", "sessionId": session_id}


async def evict_idle_sessions(idle_minutes: int | None = None) -> int:
    """Close sessions that have not been used for `idle_minutes`."""
    minutes = config.SESSION_IDLE_MINUTES if idle_minutes is None else idle_minutes
    if minutes <= 0:
        return 0
    cutoff = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    evicted = 0
    for session_id in registry.idle_since(cutoff):
        session = registry.pop(session_id)
        if session is None:
            continue
        async with session.lock:
            await session.aclose()
        evicted += 1
    if evicted:
        logger.info(f"Evicted {evicted} idle sessions")
    return evicted


async def close_all_sessions() -> None:
    for session_id in registry.ids():
        session = registry.pop(session_id)
        if session is not None:
            await session.aclose()
