from __future__ import annotations

from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from contact_insights.utils import Throttle

from .batching import BatchChunker, merge_append
from .client import HubSpotClient
from .constants import ASSOCIATIONS_BATCH_SIZE
from .contacts import Contact
from .errors import AssociationFetchError, HubSpotRequestError
from .events import records_seen
from .paging import CursorPaginator, results_of

# contact id → relationship name → related ids (upstream order, duplicates kept)
AssociationSet = Dict[str, Dict[str, List[str]]]


def association_batch_path(from_object_type: str, to_object_type: str) -> str:
    return f"/crm/v4/associations/{from_object_type}/{to_object_type}/batch/read"


def fetch_association_window(
    client: HubSpotClient,
    contact_ids: Sequence[str],
    to_object_type: str,
    *,
    stream: str = "associations",
) -> Dict[str, List[str]]:
    """
    One v4 batch/read call. Returns {from_id: [to_id, ...]} for the ids HubSpot answered;
    ids with no associations are simply absent.
    """
    path = association_batch_path("contacts", to_object_type)
    payload = {"inputs": [{"id": str(i)} for i in contact_ids]}
    try:
        data = client.post_json(stream=f"{stream}.{to_object_type}", path=path, payload=payload)
    except HubSpotRequestError as e:
        raise AssociationFetchError(to_object_type, len(contact_ids), e) from e

    out: Dict[str, List[str]] = {}
    for r in results_of(data):
        if not isinstance(r, dict):
            continue
        from_id = (r.get("from") or {}).get("id")
        if from_id is None:
            continue
        to_ids = [str(t.get("toObjectId")) for t in (r.get("to") or []) if isinstance(t, dict) and t.get("toObjectId") is not None]
        out.setdefault(str(from_id), []).extend(to_ids)
    return out


class AssociationAggregator:
    """
    Per contact page: for every configured relationship type, batch-read associations
    and build contact id → {relationship name → [related ids]}.
    """

    def __init__(
        self,
        client: HubSpotClient,
        association_types: Mapping[str, str],
        *,
        batch_size: int = ASSOCIATIONS_BATCH_SIZE,
        throttle: Optional[Throttle] = None,
    ):
        self.client = client
        self.association_types = dict(association_types)
        self.chunker = BatchChunker(min(batch_size, ASSOCIATIONS_BATCH_SIZE), throttle=throttle, stream="associations")

    def ids_for_type(self, contact_ids: Sequence[str], to_object_type: str) -> Dict[str, List[str]]:
        return self.chunker.run(
            list(contact_ids),
            lambda window: fetch_association_window(self.client, window, to_object_type),
            merge_append,
            {},
        )

    def for_contacts(self, contact_ids: Sequence[str]) -> AssociationSet:
        by_type: Dict[str, Dict[str, List[str]]] = {}
        for name, remote_type in self.association_types.items():
            by_type[name] = self.ids_for_type(contact_ids, remote_type)

        result: AssociationSet = {}
        for cid in contact_ids:
            result[cid] = {name: list(by_type[name].get(cid, [])) for name in self.association_types}
        return result

    def pages(self, paginator: CursorPaginator[Contact]) -> Iterator[Tuple[List[Contact], AssociationSet]]:
        """SearchPage → FetchAssociationsForPage → yield, until the paginator is exhausted."""
        seen = 0
        for page in paginator:
            ids = [c.id for c in page]
            if not ids:
                continue
            associations = self.for_contacts(ids)
            seen += len(ids)
            records_seen(stream="contacts", count=seen)
            yield page, associations
