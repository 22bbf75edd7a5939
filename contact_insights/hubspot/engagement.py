from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Sequence

from contact_insights.utils import Throttle

from .client import HubSpotClient
from .constants import EVENTS_PAGE_SIZE_MAX, FEATURE_UNAVAILABLE_STATUSES
from .errors import ContactInsightsError, FeatureUnavailable, HubSpotRequestError
from .events import debug, warn
from .paging import CursorPaginator, Page, next_after, results_of

EVENT_TYPES_PATH = "/events/v3/events/event-types"
EVENTS_PATH = "/events/v3/events"


@dataclass(frozen=True)
class EngagementCount:
    opens: int = 0
    clicks: int = 0


ZERO = EngagementCount()


@dataclass(frozen=True)
class ResolvedEventTypes:
    opened: FrozenSet[str] = field(default_factory=frozenset)
    clicked: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def resolved(self) -> bool:
        return bool(self.opened or self.clicked)


def resolve_event_types(
    all_names: Iterable[str],
    *,
    opened_override: Sequence[str] = (),
    clicked_override: Sequence[str] = (),
) -> ResolvedEventTypes:
    """
    Explicit overrides win. Otherwise match names case-insensitively: anything mentioning
    "email" and "open" counts as an open, "email" and "click" as a click.
    """
    names = [n for n in all_names if isinstance(n, str) and n]
    opened = {n for n in opened_override if n}
    clicked = {n for n in clicked_override if n}
    if not opened:
        opened = {n for n in names if "email" in n.lower() and "open" in n.lower()}
    if not clicked:
        clicked = {n for n in names if "email" in n.lower() and "click" in n.lower()}
    return ResolvedEventTypes(opened=frozenset(opened), clicked=frozenset(clicked))


def _is_unavailable(exc: BaseException) -> bool:
    return isinstance(exc, HubSpotRequestError) and exc.status_code in FEATURE_UNAVAILABLE_STATUSES


class ContactEventSource:
    """Page source over one contact's event log."""

    def __init__(self, client: HubSpotClient, contact_id: str, *, page_size: int = EVENTS_PAGE_SIZE_MAX):
        self.client = client
        self.contact_id = contact_id
        self.page_size = min(page_size, EVENTS_PAGE_SIZE_MAX)

    def fetch_page(self, after: Optional[str]) -> Page[Dict[str, Any]]:
        params: Dict[str, Any] = {"objectType": "contact", "objectId": self.contact_id, "limit": self.page_size}
        if after:
            params["after"] = after
        try:
            data = self.client.get_json(stream="events", path=EVENTS_PATH, params=params)
        except HubSpotRequestError as e:
            if _is_unavailable(e):
                raise FeatureUnavailable("events", e.status_code) from e
            raise
        return Page(items=[r for r in results_of(data) if isinstance(r, dict)], next_cursor=next_after(data))


class EngagementCounter:
    """
    Tallies email opens/clicks per contact from the event log.

    Never aborts a run: an unlicensed tier (403/404) or any other failure yields zero counts.
    """

    def __init__(
        self,
        client: HubSpotClient,
        *,
        opened_override: Sequence[str] = (),
        clicked_override: Sequence[str] = (),
        page_size: int = EVENTS_PAGE_SIZE_MAX,
        throttle: Optional[Throttle] = None,
    ):
        self.client = client
        self.opened_override = list(opened_override)
        self.clicked_override = list(clicked_override)
        self.page_size = page_size
        self.throttle = throttle
        self.types = ResolvedEventTypes()
        self.enabled = False

    def prepare(self) -> ResolvedEventTypes:
        names: List[str] = []
        if not (self.opened_override and self.clicked_override):
            try:
                data = self.client.get_json(stream="events", path=EVENT_TYPES_PATH)
                names = [str(n) for n in (data.get("eventTypes") or []) if n]
            except HubSpotRequestError as e:
                if _is_unavailable(e):
                    debug("events.unavailable", stream="events", status=e.status_code)
                else:
                    warn("events.event_types.failed", stream="events", error=str(e))
            finally:
                if self.throttle is not None:
                    self.throttle.wait()

        self.types = resolve_event_types(
            names, opened_override=self.opened_override, clicked_override=self.clicked_override
        )
        self.enabled = self.types.resolved
        if not self.enabled:
            warn("events.types.unresolved", stream="events")
        return self.types

    def count(self, contact_id: str) -> EngagementCount:
        if not self.enabled:
            return ZERO

        paginator: CursorPaginator[Dict[str, Any]] = CursorPaginator(
            ContactEventSource(self.client, contact_id, page_size=self.page_size),
            throttle=self.throttle,
            stream="events",
        )
        opens = clicks = 0
        try:
            for event in paginator.items():
                et = event.get("eventType")
                if et in self.types.opened:
                    opens += 1
                elif et in self.types.clicked:
                    clicks += 1
        except FeatureUnavailable as e:
            debug("events.unavailable", stream="events", contact_id=contact_id, status=e.status_code)
            # tier-gated for the whole account; stop calling the event log
            self.enabled = False
            return ZERO
        except ContactInsightsError as e:
            warn("events.count.failed", stream="events", contact_id=contact_id, error=str(e))
            return ZERO
        finally:
            if self.throttle is not None:
                self.throttle.wait()
        return EngagementCount(opens=opens, clicks=clicks)

    def count_many(self, contact_ids: Iterable[str]) -> Dict[str, EngagementCount]:
        return {cid: self.count(cid) for cid in contact_ids}
