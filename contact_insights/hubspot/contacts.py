from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from contact_insights.utils import Throttle

from .client import HubSpotClient
from .config import ContactSearchConfig
from .paging import CursorPaginator, Page, next_after, results_of

CONTACT_SEARCH_PATH = "/crm/v3/objects/contacts/search"


@dataclass(frozen=True)
class Contact:
    id: str
    properties: Dict[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "Contact":
        props = raw.get("properties") or {}
        if not isinstance(props, dict):
            props = {}
        return cls(
            id=str(raw.get("id")),
            properties={str(k): (None if v is None else str(v)) for k, v in props.items()},
        )

    @property
    def email(self) -> Optional[str]:
        return self.properties.get("email")

    @property
    def email_key(self) -> str:
        """Lowercased, stripped email used to join form submissions; "" when absent."""
        return (self.email or "").strip().lower()

    @property
    def display_name(self) -> str:
        parts = [self.properties.get("firstname"), self.properties.get("lastname")]
        return " ".join(p for p in parts if p) or "(no name)"


class ContactSearchSource:
    """Page source over POST /crm/v3/objects/contacts/search."""

    def __init__(self, client: HubSpotClient, search: ContactSearchConfig, *, stream: str = "contacts"):
        self.client = client
        self.search = search
        self.stream = stream

    def fetch_page(self, after: Optional[str]) -> Page[Contact]:
        body = self.search.request_body()
        body["after"] = after if after is not None else 0
        data = self.client.post_json(stream=self.stream, path=CONTACT_SEARCH_PATH, payload=body)
        contacts: List[Contact] = [
            Contact.from_api(r) for r in results_of(data) if isinstance(r, dict) and r.get("id") is not None
        ]
        return Page(items=contacts, next_cursor=next_after(data))


def contact_pages(
    client: HubSpotClient,
    search: ContactSearchConfig,
    *,
    throttle: Optional[Throttle] = None,
    max_contacts: Optional[int] = None,
) -> CursorPaginator[Contact]:
    limit = search.max_contacts if max_contacts is None else max_contacts
    return CursorPaginator(
        ContactSearchSource(client, search),
        max_items=limit,
        throttle=throttle,
        stream="contacts",
    )
