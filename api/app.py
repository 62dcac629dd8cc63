"""Main FastAPI application with modularized routes."""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.database import init_db
from api.routes import content, sessions
from api.services.cleanup_service import cancel_session_cleanup, schedule_session_cleanup
from api.services.session_service import close_all_sessions
from core.logging_setup import setup_console_logging

setup_console_logging()

app = FastAPI(title="Exam Delivery API")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# Startup events
@app.on_event("startup")
async def startup_events() -> None:
    """Initialize database and schedule idle session cleanup on startup."""
    init_db()
    schedule_session_cleanup()


@app.on_event("shutdown")
async def shutdown_events() -> None:
    """Stop cleanup and close any open sessions."""
    cancel_session_cleanup()
    await close_all_sessions()


@app.get("/api/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


# Include routers
app.include_router(content.router)
app.include_router(sessions.router)
