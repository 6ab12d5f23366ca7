"""
StructuredLogger — the logging sink handed to QueueClient.

structlog's bound loggers satisfy it, as does anything else taking an event
name plus keyword context.
"""

from __future__ import annotations

from typing import Any, Protocol


class StructuredLogger(Protocol):
    def debug(self, event: str, **kw: Any) -> Any: ...

    def info(self, event: str, **kw: Any) -> Any: ...

    def warning(self, event: str, **kw: Any) -> Any: ...

    def error(self, event: str, **kw: Any) -> Any: ...
