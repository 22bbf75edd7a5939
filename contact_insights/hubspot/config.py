from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import tomlkit
from pydantic import BaseModel, Field, ValidationError, field_validator
from tomlkit.exceptions import ParseError

from .constants import (
    ASSOCIATIONS_BATCH_SIZE,
    DEFAULT_DELAY_BETWEEN_BATCHES_MS,
    EVENTS_PAGE_SIZE_MAX,
    OBJECTS_BATCH_SIZE,
    SEARCH_PAGE_LIMIT_MAX,
)


class ContactSearchConfig(BaseModel):
    """Which contacts are processed. Mirrors the CRM search request body."""

    filter_groups: List[Dict[str, Any]] = Field(default_factory=list)
    sorts: List[Dict[str, Any]] = Field(
        default_factory=lambda: [{"propertyName": "createdate", "direction": "DESCENDING"}]
    )
    properties: List[str] = Field(
        default_factory=lambda: ["email", "firstname", "lastname", "createdate", "lifecyclestage"]
    )
    limit: int = Field(default=100, ge=1)
    # 0 = no limit
    max_contacts: int = Field(default=20, ge=0)

    @property
    def page_limit(self) -> int:
        return min(self.limit, SEARCH_PAGE_LIMIT_MAX)

    def request_body(self) -> Dict[str, Any]:
        return {
            "filterGroups": self.filter_groups,
            "sorts": self.sorts,
            "properties": self.properties,
            "limit": self.page_limit,
        }


class FormSubmissionsConfig(BaseModel):
    enabled: bool = True
    # 0 = no limit (slow)
    max_per_form: int = Field(default=500, ge=0)
    # 0 = all forms
    max_forms: int = Field(default=0, ge=0)
    # 0 = no date filter
    max_age_months: int = Field(default=24, ge=0)
    concurrency: int = Field(default=3, ge=1, le=32)
    # empty = no cache, always full fetch
    cache_path: Optional[str] = "cache/form-submissions.json"

    @field_validator("cache_path")
    @classmethod
    def _blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        return str(v).strip()


class AnalysisConfig(BaseModel):
    contact_search: ContactSearchConfig = Field(default_factory=ContactSearchConfig)

    # counter name → HubSpot object type for the v4 associations API
    association_types: Dict[str, str] = Field(
        default_factory=lambda: {
            "deals": "deals",
            "calls": "calls",
            "emails": "emails",
            "meetings": "meetings",
            "notes": "notes",
            "tasks": "tasks",
        }
    )

    delay_between_batches_ms: int = Field(default=DEFAULT_DELAY_BETWEEN_BATCHES_MS, ge=0, le=60_000)
    association_batch_size: int = Field(default=ASSOCIATIONS_BATCH_SIZE, ge=1, le=ASSOCIATIONS_BATCH_SIZE)
    detail_batch_size: int = Field(default=OBJECTS_BATCH_SIZE, ge=1, le=OBJECTS_BATCH_SIZE)

    fetch_email_details: bool = True

    form_submissions: FormSubmissionsConfig = Field(default_factory=FormSubmissionsConfig)

    # Event log needs a higher product tier; off unless asked for.
    fetch_engagement: bool = False
    engagement_page_size: int = Field(default=EVENTS_PAGE_SIZE_MAX, ge=1, le=EVENTS_PAGE_SIZE_MAX)
    opened_event_types: List[str] = Field(default_factory=list)
    clicked_event_types: List[str] = Field(default_factory=list)

    # Contact date property stamped with today's date once a contact is processed.
    analysis_completed_property: str = "analysis_completed_date"
    mark_analysis_completed: bool = True

    @field_validator("association_types")
    @classmethod
    def _non_empty_types(cls, v: Dict[str, str]) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for name, remote in v.items():
            name = str(name).strip()
            remote = str(remote).strip()
            if not name or not remote:
                raise ValueError("association_types entries need a name and a remote object type")
            out[name] = remote
        return out


def load_config(source: Union[str, Path, Dict[str, Any], None] = None) -> AnalysisConfig:
    """
    Load config from a TOML file path or a plain dict; None returns defaults.

    Validation problems surface as ValueError with pydantic's message.
    """
    data: Dict[str, Any]
    if source is None:
        data = {}
    elif isinstance(source, dict):
        data = source
    else:
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ValueError(f"Cannot read config {path}: {e}") from e
        try:
            data = tomlkit.parse(text).unwrap()
        except ParseError as e:
            raise ValueError(f"Invalid TOML in {path}: {e}") from e

    try:
        return AnalysisConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config: {e}") from e
