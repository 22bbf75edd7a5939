from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from contact_insights.utils import Throttle

from .client import HubSpotClient
from .constants import FORM_SUBMISSIONS_PAGE_SIZE, UNNAMED_FORM
from .paging import CursorPaginator, Page, next_after
from .time_utils import parse_submitted_at

FORMS_LIST_PATH = "/forms/v2/forms"

# lowercased email → entries in first-seen order
ByEmail = Dict[str, List["FormSubmissionEntry"]]


@dataclass(frozen=True)
class FormRef:
    guid: str
    name: str

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> Optional["FormRef"]:
        guid = raw.get("guid") or raw.get("formId") or raw.get("id")
        if not guid:
            return None
        return cls(guid=str(guid), name=str(raw.get("name") or guid or UNNAMED_FORM))


@dataclass(frozen=True)
class FormSubmissionEntry:
    form_name: str
    form_guid: str
    submitted_at: Optional[int]
    page_url: Optional[str]
    conversion_id: Optional[str]
    values: List[Tuple[str, Any]] = field(default_factory=list)

    @property
    def key(self) -> Tuple[str, str]:
        """Dedup key within one email's entries."""
        return (self.form_guid or "", self.conversion_id or "")

    def to_json(self) -> Dict[str, Any]:
        return {
            "formName": self.form_name,
            "formGuid": self.form_guid,
            "submittedAt": self.submitted_at,
            "pageUrl": self.page_url,
            "conversionId": self.conversion_id,
            "values": [{"name": n, "value": v} for n, v in self.values],
        }

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "FormSubmissionEntry":
        return cls(
            form_name=str(raw.get("formName") or UNNAMED_FORM),
            form_guid=str(raw.get("formGuid") or ""),
            submitted_at=parse_submitted_at(raw.get("submittedAt")),
            page_url=raw.get("pageUrl"),
            conversion_id=raw.get("conversionId"),
            values=_parse_values(raw.get("values")),
        )


def _parse_values(raw: Any) -> List[Tuple[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [(str(v.get("name")), v.get("value")) for v in raw if isinstance(v, dict) and v.get("name") is not None]


def email_from_values(values: Any) -> Optional[str]:
    """HubSpot forms name the email field "email" or "e_mail"."""
    if not isinstance(values, list):
        return None
    by_name: Dict[str, Any] = {}
    for v in values:
        if isinstance(v, dict) and v.get("name") is not None:
            by_name[str(v["name"]).lower()] = v.get("value")
    email = by_name.get("email") or by_name.get("e_mail")
    if not isinstance(email, str):
        return None
    return email.strip().lower() or None


def entry_from_submission(sub: Dict[str, Any], form: FormRef) -> FormSubmissionEntry:
    submitted = sub.get("submittedAt", sub.get("submitted_at"))
    return FormSubmissionEntry(
        form_name=form.name,
        form_guid=form.guid,
        submitted_at=parse_submitted_at(submitted),
        page_url=sub.get("pageUrl", sub.get("page_url")),
        conversion_id=sub.get("conversionId", sub.get("conversion_id")),
        values=_parse_values(sub.get("values")),
    )


def list_forms(client: HubSpotClient, *, max_forms: int = 0) -> List[FormRef]:
    data = client.get_json(stream="forms", path=FORMS_LIST_PATH)
    raw = data.get("value") if "value" in data else data.get("results")
    forms: List[FormRef] = []
    for f in raw or []:
        if isinstance(f, dict):
            ref = FormRef.from_api(f)
            if ref is not None:
                forms.append(ref)
    if max_forms > 0:
        forms = forms[:max_forms]
    return forms


class FormSubmissionSource:
    """Page source over the legacy form-integrations v1 export (newest first)."""

    def __init__(self, client: HubSpotClient, form: FormRef, *, page_size: int = FORM_SUBMISSIONS_PAGE_SIZE):
        self.client = client
        self.form = form
        self.page_size = min(page_size, FORM_SUBMISSIONS_PAGE_SIZE)

    def fetch_page(self, after: Optional[str]) -> Page[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": self.page_size}
        if after is not None:
            params["after"] = after
        data = self.client.get_json(
            stream=f"forms.{self.form.guid}",
            path=f"/form-integrations/v1/submissions/forms/{self.form.guid}",
            params=params,
        )
        results = data.get("results") or []
        offset = data.get("offset")
        nxt = str(offset) if offset not in (None, "") else next_after(data)
        return Page(items=[r for r in results if isinstance(r, dict)], next_cursor=nxt)


def older_than(cutoff_ms: int) -> Optional[Callable[[Dict[str, Any]], bool]]:
    if not cutoff_ms or cutoff_ms <= 0:
        return None

    def _pred(sub: Dict[str, Any]) -> bool:
        ts = parse_submitted_at(sub.get("submittedAt", sub.get("submitted_at")))
        return ts is not None and ts < cutoff_ms

    return _pred


@dataclass
class FormFetchResult:
    form: FormRef
    by_email: ByEmail
    # raw submissions taken from upstream (with or without an email)
    seen: int
    oldest_submitted_at: Optional[int]


def collect_form(
    client: HubSpotClient,
    form: FormRef,
    *,
    max_per_form: int,
    cutoff_ms: int = 0,
    throttle: Optional[Throttle] = None,
) -> FormFetchResult:
    """Walk one form's submissions into a private email → entries map."""
    paginator: CursorPaginator[Dict[str, Any]] = CursorPaginator(
        FormSubmissionSource(client, form),
        max_items=max_per_form,
        stop_when=older_than(cutoff_ms),
        throttle=throttle,
        stream=f"forms.{form.guid}",
    )
    by_email: ByEmail = {}
    seen = 0
    oldest: Optional[int] = None
    for sub in paginator.items():
        seen += 1
        entry = entry_from_submission(sub, form)
        if entry.submitted_at is not None and (oldest is None or entry.submitted_at < oldest):
            oldest = entry.submitted_at
        email = email_from_values(sub.get("values"))
        if not email:
            continue
        by_email.setdefault(email, []).append(entry)
    return FormFetchResult(form=form, by_email=by_email, seen=seen, oldest_submitted_at=oldest)


def extend_by_email(into: ByEmail, part: ByEmail) -> ByEmail:
    for email, entries in part.items():
        into.setdefault(email, []).extend(entries)
    return into
