"""Service for cleanup operations."""
import asyncio
import logging

from api.config import SESSION_CLEANUP_INTERVAL_SECONDS
from api.services.session_service import evict_idle_sessions

logger = logging.getLogger(__name__)

_cleanup_task: asyncio.Task | None = None


async def _cleanup_loop(interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await evict_idle_sessions()
        except Exception as e:
            logger.error(f"Failed to evict idle sessions: {e}")


def schedule_session_cleanup() -> asyncio.Task | None:
    """Schedule periodic eviction of idle sessions on the running loop."""
    global _cleanup_task
    if SESSION_CLEANUP_INTERVAL_SECONDS <= 0:
        return None
    if _cleanup_task is None or _cleanup_task.done():
        _cleanup_task = asyncio.get_running_loop().create_task(
            _cleanup_loop(SESSION_CLEANUP_INTERVAL_SECONDS)
        )
    return _cleanup_task


def cancel_session_cleanup() -> None:
    global _cleanup_task
    if _cleanup_task is not None:
        _cleanup_task.cancel()
        _cleanup_task = None
