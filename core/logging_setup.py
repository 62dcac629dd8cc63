from __future__ import annotations
import logging
import os

# Libraries that log every request at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def _env_level(default: int) -> int:
    raw = os.environ.get("LOG_LEVEL")
    if not raw:
        return default
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else default


def setup_console_logging(level: int | None = None) -> None:
    """
    Call once at app start. Prints delivery logs to console.
    LOG_LEVEL overrides the default level when no level is passed.
    """
    if level is None:
        level = _env_level(logging.INFO)

    root = logging.getLogger()
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if root.handlers:
        # already configured (avoid duplicates)
        root.setLevel(level)
        return

    root.setLevel(level)
    h = logging.StreamHandler()
    fmt = logging.Formatter(
        "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    h.setFormatter(fmt)
    root.addHandler(h)
