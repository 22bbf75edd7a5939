from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, Iterator, List, Optional, Protocol, TypeVar, Union

from contact_insights.utils import Throttle

from .errors import PaginationStalledError
from .events import paging_done, paging_start

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    next_cursor: Optional[str] = None


class PageSource(Protocol[T]):
    """One remote page read. `after` is absent on the first call."""

    def fetch_page(self, after: Optional[str]) -> Page[T]:
        ...


FetchPage = Callable[[Optional[str]], Page[Any]]


def next_after(data: Any) -> Optional[str]:
    """CRM v3/v4 cursor: {"paging": {"next": {"after": "..."}}}."""
    if not isinstance(data, dict):
        return None
    paging = data.get("paging") or {}
    if not isinstance(paging, dict):
        return None
    nxt = (paging.get("next") or {}).get("after")
    if nxt is None or nxt == "":
        return None
    return str(nxt)


def results_of(data: Any) -> List[Any]:
    if not isinstance(data, dict):
        return []
    results = data.get("results") or []
    return results if isinstance(results, list) else []


class CursorPaginator(Generic[T]):
    """
    Walks a cursor-paged API: fetch page → read continuation token → stop or advance.

    Stops when:
    - a page comes back empty,
    - no continuation token is returned (the page itself is still yielded),
    - the cumulative item count reaches `max_items` (the last page is truncated to fit),
    - `stop_when(item)` fires. That item, the rest of its page and all later pages are
      dropped. Correct as a time cutoff only when upstream returns newest-first.

    Pull pages explicitly with next_page(), or iterate. Not restartable.
    """

    def __init__(
        self,
        source: Union[PageSource[T], FetchPage],
        *,
        max_items: Optional[int] = None,
        stop_when: Optional[Callable[[T], bool]] = None,
        throttle: Optional[Throttle] = None,
        stream: str = "paging",
    ):
        self._fetch: FetchPage = source.fetch_page if hasattr(source, "fetch_page") else source  # type: ignore[union-attr,assignment]
        self.max_items = max_items if max_items and max_items > 0 else None
        self.stop_when = stop_when
        self.throttle = throttle
        self.stream = stream

        self.pages_fetched = 0
        self.items_yielded = 0
        self.done = False
        self.stop_reason: Optional[str] = None
        self._cursor: Optional[str] = None

    def _finish(self, reason: str) -> None:
        self.done = True
        self.stop_reason = reason
        paging_done(stream=self.stream, reason=reason, pages=self.pages_fetched, items=self.items_yielded)

    def next_page(self) -> Optional[List[T]]:
        """Fetch and return the next non-empty page, or None once exhausted."""
        if self.done:
            return None

        if self.pages_fetched > 0 and self.throttle is not None:
            self.throttle.wait()

        paging_start(stream=self.stream, page=self.pages_fetched + 1, cursor=self._cursor)
        page = self._fetch(self._cursor)
        self.pages_fetched += 1

        items = list(page.items or [])
        if not items:
            self._finish("empty")
            return None

        cut = False
        if self.stop_when is not None:
            for idx, item in enumerate(items):
                if self.stop_when(item):
                    items = items[:idx]
                    cut = True
                    break

        # the cap applies to whatever survives the cutoff
        if self.max_items is not None:
            remaining = self.max_items - self.items_yielded
            if len(items) >= remaining:
                items = items[:remaining]
                self._take(items)
                self._finish("max_items")
                return items or None

        self._take(items)
        if cut:
            self._finish("cutoff")
            return items or None

        nxt = page.next_cursor
        if not nxt:
            self._finish("last_page")
            return items
        if nxt == self._cursor:
            self.done = True
            raise PaginationStalledError(
                f"{self.stream}: continuation token did not advance ({str(nxt)[:24]}); refusing to loop"
            )
        self._cursor = nxt
        return items

    def _take(self, items: List[T]) -> None:
        self.items_yielded += len(items)

    def __iter__(self) -> Iterator[List[T]]:
        while True:
            page = self.next_page()
            if page is None:
                return
            yield page

    def items(self) -> Iterator[T]:
        for page in self:
            yield from page
