from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from api.models import SessionCreate
from api.services import session_service
from delivery.sequencer import SectionSequencer

from conftest import FakeLoader

pytestmark = pytest.mark.asyncio


def _session(loader: FakeLoader, session_id: str) -> session_service.DeliverySession:
    sequencer = SectionSequencer(loader, ["sec-a"], autotick=False)
    return session_service.DeliverySession(session_id, sequencer)


async def test_time_limit_overrides(exam_loader: FakeLoader) -> None:
    loader = session_service.TimeLimitOverrides(exam_loader, {"sec-b": 45})
    assert (await loader.get_section("sec-b")).time_limit_minutes == 45
    assert (await loader.get_section("sec-a")).time_limit_minutes == 1
    assert exam_loader.sections["sec-b"].time_limit_minutes == 60


async def test_run_operation_maps_engine_errors(exam_loader: FakeLoader) -> None:
    session = _session(exam_loader, "ops")
    session_service.registry.add(session)
    try:
        view = await session_service.run_operation("ops", lambda sequencer: sequencer.open())
        assert view["sessionId"] == "ops"
        assert view["phase"] == "active_section"

        with pytest.raises(HTTPException) as excinfo:
            await session_service.run_operation("ops", lambda sequencer: sequencer.go_to(99))
        assert excinfo.value.status_code == 400

        with pytest.raises(HTTPException) as excinfo:
            await session_service.run_operation("ops", lambda sequencer: sequencer.start())
        assert excinfo.value.status_code == 409
    finally:
        await session_service.close_session("ops")


async def test_evict_idle_sessions(exam_loader: FakeLoader) -> None:
    stale = _session(exam_loader, "stale")
    fresh = _session(exam_loader, "fresh")
    stale.last_seen = datetime.now(timezone.utc) - timedelta(minutes=30)
    session_service.registry.add(stale)
    session_service.registry.add(fresh)
    try:
        assert await session_service.evict_idle_sessions(idle_minutes=0) == 0
        assert await session_service.evict_idle_sessions(idle_minutes=10) == 1
        assert "stale" not in session_service.registry
        assert "fresh" in session_service.registry
    finally:
        await session_service.close_all_sessions()
    assert "fresh" not in session_service.registry


async def test_closed_session_rejects_events(exam_loader: FakeLoader) -> None:
    session = _session(exam_loader, "gone")
    session_service.registry.add(session)
    await session_service.close_session("gone")

    with pytest.raises(HTTPException) as excinfo:
        await session_service.session_view("gone")
    assert excinfo.value.status_code == 404


async def test_failed_open_is_closed_and_not_registered(monkeypatch, exam_loader: FakeLoader) -> None:
    closed: list[str] = []
    original_aclose = session_service.DeliverySession.aclose

    async def recording_aclose(self) -> None:
        closed.append(self.id)
        await original_aclose(self)

    async def failing_open(self) -> None:
        raise RuntimeError("content source unreachable")

    monkeypatch.setattr(session_service, "_build_loader", lambda overrides: (exam_loader, None))
    monkeypatch.setattr(session_service.DeliverySession, "aclose", recording_aclose)
    monkeypatch.setattr(SectionSequencer, "open", failing_open)
    registered = set(session_service.registry.ids())

    with pytest.raises(RuntimeError):
        await session_service.open_session(None, SessionCreate(sectionIds=["sec-a"]))

    assert len(closed) == 1
    assert closed[0] not in session_service.registry
    assert set(session_service.registry.ids()) == registered
