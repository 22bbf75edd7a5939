# contact_insights/hubspot/constants.py
from __future__ import annotations

from typing import Dict, Final

HUBSPOT_BASE_URL: Final[str] = "https://api.hubapi.com"

# Search page size is capped by HubSpot at 200.
SEARCH_PAGE_LIMIT_MAX: Final[int] = 200

# v4 associations batch/read accepts up to 1000 inputs.
ASSOCIATIONS_BATCH_SIZE: Final[int] = 1000

# v3 objects batch/read and batch/update accept up to 100 inputs.
OBJECTS_BATCH_SIZE: Final[int] = 100
CONTACTS_BATCH_UPDATE_SIZE: Final[int] = 100

# Legacy form-integrations v1 submissions endpoint returns at most 50 per page.
FORM_SUBMISSIONS_PAGE_SIZE: Final[int] = 50

# Event log pages (events v3) allow up to 100 per page.
EVENTS_PAGE_SIZE_MAX: Final[int] = 100

# Rate limiting / pacing
DEFAULT_DELAY_BETWEEN_BATCHES_MS: Final[int] = 150

# "Months" for the submission age cutoff are fixed 30-day windows.
DAYS_PER_MONTH: Final[int] = 30
MS_PER_DAY: Final[int] = 24 * 60 * 60 * 1000

# Placeholders shown for absent values.
UNKNOWN: Final[str] = "(unknown)"
NO_STAGE: Final[str] = "(no stage)"
UNNAMED_FORM: Final[str] = "(unnamed form)"

DEAL_PROPERTIES: Final[Dict[str, str]] = {
    "dealname": "(no name)",
    "amount": "(no amount)",
    "dealstage": NO_STAGE,
}

EMAIL_PROPERTIES: Final[Dict[str, str]] = {
    "hs_email_subject": "(no subject)",
    "hs_email_direction": "(no direction)",
    "hs_timestamp": "(no date)",
}

# Statuses from tier-gated sub-APIs that mean "feature not licensed on this account".
FEATURE_UNAVAILABLE_STATUSES: Final[tuple] = (403, 404)
