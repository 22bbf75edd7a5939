"""
Structured progress events from the pipeline stages to whoever is listening.

Stages call emit(); nothing is delivered until an emitter is installed with
set_emitter() (the CLI forwards to logging) or capture() (tests collect them).
The pipeline never imports logging or rich for progress output.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

EventEmitter = Callable[["RuntimeEvent"], None]

LOG_LEVELS: Dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_EMITTER: Optional[EventEmitter] = None


@dataclass(frozen=True)
class RuntimeEvent:
    # "message" | "progress" | "count"
    type: str
    message: str
    stream: Optional[str] = None
    count: Optional[int] = None
    level: str = "info"
    fields: Dict[str, Any] = field(default_factory=dict)
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def log_level(self) -> int:
        return LOG_LEVELS.get(self.level, logging.INFO)

    def describe(self) -> str:
        """One log line: `[stream] message count=N key=value ...`; None fields are dropped."""
        parts: List[str] = []
        if self.stream:
            parts.append(f"[{self.stream}]")
        parts.append(self.message)
        if self.count is not None:
            parts.append(f"count={self.count}")
        parts.extend(f"{k}={v}" for k, v in self.fields.items() if v is not None)
        return " ".join(parts)


def set_emitter(fn: Optional[EventEmitter]) -> None:
    global _EMITTER
    _EMITTER = fn


@contextmanager
def capture() -> Iterator[List[RuntimeEvent]]:
    """Collect every event emitted inside the block; the previous emitter is restored after."""
    global _EMITTER
    seen: List[RuntimeEvent] = []
    previous = _EMITTER
    _EMITTER = seen.append
    try:
        yield seen
    finally:
        _EMITTER = previous


def emit(
    event_type: str,
    message: str,
    *,
    stream: Optional[str] = None,
    count: Optional[int] = None,
    level: str = "info",
    **fields: Any,
) -> None:
    fn = _EMITTER
    if fn is None:
        return
    event = RuntimeEvent(
        type=event_type,
        message=message,
        stream=stream,
        count=count,
        level=level,
        fields=dict(fields),
    )
    try:
        fn(event)
    except Exception:
        # a broken listener must not abort the run
        logging.getLogger(__name__).debug("event emitter failed for %s", message, exc_info=True)
