from __future__ import annotations

from .events import RuntimeEvent, capture, emit, set_emitter

__all__ = ["RuntimeEvent", "capture", "emit", "set_emitter"]
