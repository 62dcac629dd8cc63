"""API route modules."""
from api.routes import content, sessions

__all__ = ["content", "sessions"]
