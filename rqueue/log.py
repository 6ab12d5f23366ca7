"""
structlog setup for processes embedding rqueue.

The library itself never configures logging; QueueClient logs through the
logger it is given. Applications and tools call configure() once at startup:

    from rqueue import log

    log.configure("debug")
    client = QueueClient("emails", "myapp", log.get_logger())
"""
from __future__ import annotations

import logging
from typing import Any

import structlog


def configure(level: str = "info", json: bool = False) -> None:
    """Console (or JSON) rendering, ISO timestamps, filtering below `level`."""
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=False,
    )


def get_logger(**initial: Any) -> Any:
    """A structlog logger bound to `initial` context."""
    return structlog.get_logger("rqueue", **initial)
