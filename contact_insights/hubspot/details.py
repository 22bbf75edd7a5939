from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from contact_insights.utils import Throttle, unique_in_order

from .batching import BatchChunker, merge_replace
from .client import HubSpotClient
from .constants import NO_STAGE, OBJECTS_BATCH_SIZE, UNKNOWN
from .errors import DetailFetchError, HubSpotRequestError
from .paging import results_of


@dataclass(frozen=True)
class FieldValue:
    """
    A value that is either present (possibly "") or absent with a placeholder.

    Reporting calls display(); logic checks `present` so "" is never confused with missing.
    """

    value: Optional[str]
    placeholder: str = UNKNOWN

    @property
    def present(self) -> bool:
        return self.value is not None

    def display(self) -> str:
        return self.value if self.value is not None else self.placeholder

    @classmethod
    def absent(cls, placeholder: str = UNKNOWN) -> "FieldValue":
        return cls(None, placeholder)


@dataclass(frozen=True)
class RelatedObjectDetail:
    id: str
    object_type: str
    found: bool
    fields: Dict[str, FieldValue] = field(default_factory=dict)

    def get(self, name: str) -> FieldValue:
        return self.fields.get(name) or FieldValue.absent()

    @classmethod
    def unknown(cls, object_id: str, object_type: str, names: Sequence[str]) -> "RelatedObjectDetail":
        """Requested but never returned by batch/read (usually deleted)."""
        return cls(
            id=object_id,
            object_type=object_type,
            found=False,
            fields={n: FieldValue.absent(UNKNOWN) for n in names},
        )


def _batch_read_path(object_type: str) -> str:
    return f"/crm/v3/objects/{object_type}/batch/read"


class DetailEnricher:
    """
    Batch-reads display attributes for related objects.

    `properties` maps property name → placeholder used when the object exists but the
    property is empty. Ids are deduplicated before batching.
    """

    def __init__(
        self,
        client: HubSpotClient,
        object_type: str,
        properties: Mapping[str, str],
        *,
        batch_size: int = OBJECTS_BATCH_SIZE,
        throttle: Optional[Throttle] = None,
    ):
        self.client = client
        self.object_type = object_type
        self.properties = dict(properties)
        self.chunker = BatchChunker(min(batch_size, OBJECTS_BATCH_SIZE), throttle=throttle, stream=f"{object_type}.details")

    def _read_window(self, ids: List[str]) -> Dict[str, RelatedObjectDetail]:
        payload = {"inputs": [{"id": i} for i in ids], "properties": list(self.properties)}
        try:
            data = self.client.post_json(
                stream=f"{self.object_type}.details",
                path=_batch_read_path(self.object_type),
                payload=payload,
            )
        except HubSpotRequestError as e:
            raise DetailFetchError(self.object_type, len(ids), e) from e

        out: Dict[str, RelatedObjectDetail] = {}
        for r in results_of(data):
            if not isinstance(r, dict) or r.get("id") is None:
                continue
            rid = str(r.get("id"))
            props = r.get("properties") or {}
            if not isinstance(props, dict):
                props = {}
            out[rid] = RelatedObjectDetail(
                id=rid,
                object_type=self.object_type,
                found=True,
                fields={name: _field(props.get(name), placeholder) for name, placeholder in self.properties.items()},
            )
        return out

    def fetch(self, ids: Sequence[str]) -> Dict[str, RelatedObjectDetail]:
        unique_ids = unique_in_order([str(i) for i in ids])
        found = self.chunker.run(unique_ids, self._read_window, merge_replace, {})
        return {
            i: found.get(i) or RelatedObjectDetail.unknown(i, self.object_type, list(self.properties))
            for i in unique_ids
        }


def _field(raw: Any, placeholder: str) -> FieldValue:
    if raw is None:
        return FieldValue(None, placeholder)
    return FieldValue(str(raw), placeholder)


# =============================================================================
# Pipeline stage labels
# =============================================================================


def fetch_stage_labels(
    client: HubSpotClient,
    object_type: str = "deals",
    *,
    throttle: Optional[Throttle] = None,
) -> Dict[str, str]:
    """
    Build stage id → label across every pipeline of `object_type`. Built once per run.
    """
    labels: Dict[str, str] = {}
    stream = f"{object_type}.pipelines"
    listing = client.get_json(stream=stream, path=f"/crm/v3/pipelines/{object_type}")
    if throttle is not None:
        throttle.wait()

    for pipeline in results_of(listing):
        if not isinstance(pipeline, dict) or pipeline.get("id") is None:
            continue
        full = client.get_json(stream=stream, path=f"/crm/v3/pipelines/{object_type}/{pipeline['id']}")
        for stage in full.get("stages") or []:
            if isinstance(stage, dict) and stage.get("id") is not None:
                sid = str(stage["id"])
                labels[sid] = str(stage.get("label") or sid)
        if throttle is not None:
            throttle.wait()
    return labels


def stage_label(labels: Mapping[str, str], stage: FieldValue) -> str:
    """Human label for a deal stage; raw id when unmapped, "(no stage)" when absent."""
    if not stage.present:
        return stage.placeholder
    if not stage.value:
        return NO_STAGE
    return labels.get(stage.value, stage.value)
