# contact_insights/hubspot/events.py
from __future__ import annotations

from typing import Any, Dict, Optional

from contact_insights.runtime.events import emit


def http_start(*, stream: str, method: str, url: str, extra: Optional[Dict[str, Any]] = None) -> None:
    emit(
        "message",
        "http.request.start",
        stream=stream,
        level="debug",
        method=method,
        url=url,
        **(extra or {}),
    )


def http_ok(
    *,
    stream: str,
    method: str,
    url: str,
    elapsed_ms: int,
    items_count: Optional[int] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    fields: Dict[str, Any] = dict(extra or {})
    fields.update({"method": method, "url": url, "elapsed_ms": elapsed_ms})
    if isinstance(items_count, int):
        fields["items_count"] = items_count
    emit("message", "http.request.ok", stream=stream, level="debug", **fields)


def http_error(
    *,
    stream: str,
    method: str,
    url: str,
    status: Optional[int],
    error: str,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    fields: Dict[str, Any] = dict(extra or {})
    fields.update({"method": method, "url": url, "status": status, "error": error})
    emit("message", "http.request.error", stream=stream, level="warn", **fields)


def paging_start(*, stream: str, page: int, cursor: Optional[str]) -> None:
    emit(
        "message",
        "paging.page.start",
        stream=stream,
        level="debug",
        page=page,
        cursor=str(cursor)[:24] if cursor else None,
    )


def paging_done(*, stream: str, reason: str, pages: int, items: int) -> None:
    emit("message", f"paging.done.{reason}", stream=stream, level="debug", pages=pages, items=items)


def batch_window(*, stream: str, window: int, size: int) -> None:
    emit("message", "batch.window", stream=stream, level="debug", window=window, size=size)


def records_seen(*, stream: str, count: int) -> None:
    emit("count", "records.seen", stream=stream, count=count)


def progress(message: str, *, stream: Optional[str] = None, **fields: Any) -> None:
    emit("progress", message, stream=stream, **fields)


def warn(message: str, *, stream: Optional[str] = None, **fields: Any) -> None:
    emit("message", message, stream=stream, level="warn", **fields)


def debug(message: str, *, stream: Optional[str] = None, **fields: Any) -> None:
    emit("message", message, stream=stream, level="debug", **fields)
