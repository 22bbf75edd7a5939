# contact_insights/hubspot/pipeline.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from contact_insights.utils import Throttle

from .analysis_marker import mark_analysis_completed
from .associations import AssociationAggregator
from .client import HubSpotClient
from .config import AnalysisConfig
from .constants import DEAL_PROPERTIES, EMAIL_PROPERTIES
from .contacts import Contact, contact_pages
from .details import DetailEnricher, RelatedObjectDetail, fetch_stage_labels, stage_label
from .engagement import EngagementCount, EngagementCounter
from .errors import MissingCredentialsError
from .events import progress
from .forms import ByEmail, FormSubmissionEntry, list_forms
from .submissions_cache import IncrementalCacheMerger

TOKEN_ENV = "HUBSPOT_ACCESS_TOKEN"


# =============================================================================
# Report shapes consumed by the renderer
# =============================================================================


@dataclass(frozen=True)
class ContactReport:
    contact: Contact
    # relationship name → related ids (upstream order)
    associations: Dict[str, List[str]]
    deals: List[RelatedObjectDetail] = field(default_factory=list)
    # deal id → stage label (raw id when unmapped)
    deal_stages: Dict[str, str] = field(default_factory=dict)
    emails: List[RelatedObjectDetail] = field(default_factory=list)
    submissions: List[FormSubmissionEntry] = field(default_factory=list)
    engagement: Optional[EngagementCount] = None

    @property
    def counts(self) -> Dict[str, int]:
        return {name: len(ids) for name, ids in self.associations.items()}


@dataclass(frozen=True)
class PageReport:
    page: int
    contacts: List[ContactReport]
    total_processed: int


@dataclass
class RunSummary:
    pages: int = 0
    contacts: int = 0
    marked: int = 0
    emails_indexed: int = 0
    submissions_mode: Optional[str] = None
    possible_gaps: List[str] = field(default_factory=list)
    engagement_enabled: bool = False


def token_from_env() -> str:
    token = (os.getenv(TOKEN_ENV) or "").strip()
    if not token:
        raise MissingCredentialsError(
            f"Missing {TOKEN_ENV}. Set it in your environment (e.g. export {TOKEN_ENV}=your-token)."
        )
    return token


def _names_for_remote(config: AnalysisConfig, remote_type: str) -> List[str]:
    return [name for name, remote in config.association_types.items() if remote == remote_type]


class PipelineRun:
    """
    One invocation. prepare() builds the per-run lookup tables (stage labels, submission
    index, engagement event types); iterating yields one PageReport per contact page.
    """

    def __init__(
        self,
        *,
        client: HubSpotClient,
        config: AnalysisConfig,
        throttle: Optional[Throttle] = None,
    ):
        self.client = client
        self.config = config
        self.throttle = throttle if throttle is not None else Throttle.from_ms(config.delay_between_batches_ms)
        self.summary = RunSummary()

        self.deal_names = _names_for_remote(config, "deals")
        self.email_names = _names_for_remote(config, "emails") if config.fetch_email_details else []

        self.stage_labels: Dict[str, str] = {}
        self.submissions: ByEmail = {}
        self.engagement: Optional[EngagementCounter] = None
        self._prepared = False

    # -------------------------------------------------------------------------
    # once per run
    # -------------------------------------------------------------------------
    def prepare(self) -> "PipelineRun":
        if self._prepared:
            return self
        cfg = self.config

        if self.deal_names:
            progress("Fetching deal stage labels…", stream="deals.pipelines")
            self.stage_labels = fetch_stage_labels(self.client, "deals", throttle=self.throttle)

        if cfg.form_submissions.enabled:
            progress("Fetching form submissions…", stream="forms")
            forms = list_forms(self.client, max_forms=cfg.form_submissions.max_forms)
            self.throttle.wait()
            merger = IncrementalCacheMerger(self.client, cfg.form_submissions, throttle=self.throttle)
            built = merger.build(forms)
            self.submissions = built.by_email
            self.summary.submissions_mode = built.mode
            self.summary.possible_gaps = list(built.possible_gaps)
            self.summary.emails_indexed = len(built.by_email)

        if cfg.fetch_engagement:
            self.engagement = EngagementCounter(
                self.client,
                opened_override=cfg.opened_event_types,
                clicked_override=cfg.clicked_event_types,
                page_size=cfg.engagement_page_size,
                throttle=self.throttle,
            )
            self.engagement.prepare()
            self.summary.engagement_enabled = self.engagement.enabled

        self._prepared = True
        return self

    # -------------------------------------------------------------------------
    # per page
    # -------------------------------------------------------------------------
    def _details(
        self,
        names: List[str],
        associations: Dict[str, Dict[str, List[str]]],
        enricher: DetailEnricher,
    ) -> Dict[str, RelatedObjectDetail]:
        ids: List[str] = []
        for assoc in associations.values():
            for name in names:
                ids.extend(assoc.get(name, []))
        return enricher.fetch(ids) if ids else {}

    def pages(self) -> Iterator[PageReport]:
        self.prepare()
        cfg = self.config

        aggregator = AssociationAggregator(
            self.client,
            cfg.association_types,
            batch_size=cfg.association_batch_size,
            throttle=self.throttle,
        )
        deal_enricher = DetailEnricher(
            self.client, "deals", DEAL_PROPERTIES, batch_size=cfg.detail_batch_size, throttle=self.throttle
        )
        email_enricher = DetailEnricher(
            self.client, "emails", EMAIL_PROPERTIES, batch_size=cfg.detail_batch_size, throttle=self.throttle
        )
        paginator = contact_pages(self.client, cfg.contact_search, throttle=self.throttle)

        for page, associations in aggregator.pages(paginator):
            deal_details = self._details(self.deal_names, associations, deal_enricher)
            email_details = self._details(self.email_names, associations, email_enricher)

            reports: List[ContactReport] = []
            for contact in page:
                assoc = associations.get(contact.id) or {name: [] for name in cfg.association_types}
                deals = [deal_details[i] for name in self.deal_names for i in assoc.get(name, [])]
                emails = [email_details[i] for name in self.email_names for i in assoc.get(name, [])]
                reports.append(
                    ContactReport(
                        contact=contact,
                        associations=assoc,
                        deals=deals,
                        deal_stages={d.id: stage_label(self.stage_labels, d.get("dealstage")) for d in deals},
                        emails=emails,
                        submissions=list(self.submissions.get(contact.email_key, [])) if contact.email_key else [],
                        engagement=self.engagement.count(contact.id) if self.engagement is not None else None,
                    )
                )

            ids = [c.id for c in page]
            self.summary.pages += 1
            self.summary.contacts += len(ids)
            yield PageReport(page=self.summary.pages, contacts=reports, total_processed=self.summary.contacts)

            if cfg.mark_analysis_completed and cfg.analysis_completed_property:
                self.summary.marked += mark_analysis_completed(
                    self.client,
                    ids,
                    cfg.analysis_completed_property,
                    throttle=self.throttle,
                )

    def __iter__(self) -> Iterator[PageReport]:
        return self.pages()


def run_pipeline(
    *,
    config: AnalysisConfig,
    token: Optional[str] = None,
    client: Optional[HubSpotClient] = None,
    throttle: Optional[Throttle] = None,
) -> PipelineRun:
    if client is None:
        client = HubSpotClient(token=token or token_from_env())
    return PipelineRun(client=client, config=config, throttle=throttle)
