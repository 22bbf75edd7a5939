from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence

from contact_insights.utils import Throttle

from .batching import BatchChunker
from .client import HubSpotClient
from .constants import CONTACTS_BATCH_UPDATE_SIZE
from .time_utils import utc_midnight_ms

CONTACTS_BATCH_UPDATE_PATH = "/crm/v3/objects/contacts/batch/update"


def mark_analysis_completed(
    client: HubSpotClient,
    contact_ids: Sequence[str],
    property_name: str,
    *,
    today: Optional[datetime] = None,
    batch_size: int = CONTACTS_BATCH_UPDATE_SIZE,
    throttle: Optional[Throttle] = None,
) -> int:
    """
    Stamp `property_name` with today's UTC midnight on every contact. Returns updated count.
    """
    if not property_name or not contact_ids:
        return 0
    stamp = str(utc_midnight_ms(today))

    def _update(window: List[str]) -> int:
        inputs = [{"id": str(cid), "properties": {property_name: stamp}} for cid in window]
        client.post_json(stream="contacts.mark", path=CONTACTS_BATCH_UPDATE_PATH, payload={"inputs": inputs})
        return len(window)

    chunker = BatchChunker(min(batch_size, CONTACTS_BATCH_UPDATE_SIZE), throttle=throttle, stream="contacts.mark")
    return chunker.run(list(contact_ids), _update, lambda acc, n: acc + n, 0)
