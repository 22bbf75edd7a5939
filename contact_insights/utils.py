"""
Shared utilities for the HubSpot pipeline.

Goals:
- One consistent HTTP stack (sessions + retry + timeouts)
- Fixed client-side pacing between rate-limited calls
- Small list helpers shared by the batching stages

Deliberately pipeline-only:
- NO Rich / CLI rendering
- Anything user-facing belongs in app.py / report.py
"""
from __future__ import annotations

import os
import time
from typing import Any, Callable, Iterator, List, Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

# Default (connect, read) timeout unless overridden.
# HUBSPOT_HTTP_TIMEOUT (seconds) overrides the read timeout.
DEFAULT_TIMEOUT: Tuple[int, int] = (10, int(os.getenv("HUBSPOT_HTTP_TIMEOUT") or "60"))


# -----------------------------
# Pacing
# -----------------------------
class Throttle:
    """
    Static pacing knob: every wait() sleeps a fixed delay.

    Called after each remote call that consumes API rate-limit budget.
    No backoff and no adaptive behaviour; 429s are handled by the session's retry policy.
    """

    def __init__(self, delay_seconds: float = 0.0, *, sleep: Callable[[float], None] = time.sleep):
        self.delay_seconds = max(0.0, float(delay_seconds or 0.0))
        self._sleep = sleep
        self.waits = 0

    @classmethod
    def from_ms(cls, delay_ms: int, **kwargs: Any) -> "Throttle":
        return cls(max(0, int(delay_ms or 0)) / 1000.0, **kwargs)

    def wait(self) -> None:
        self.waits += 1
        if not self.delay_seconds:
            return
        self._sleep(self.delay_seconds)


# -----------------------------
# HTTP sessions + retries
# -----------------------------
def requests_retry_session(
    retries: int = 6,
    backoff_factor: float = 0.6,
    status_forcelist: Tuple[int, ...] = (408, 409, 425, 429, 500, 502, 503, 504),
    allowed_methods: Tuple[str, ...] = ("HEAD", "GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"),
    session: Optional[requests.Session] = None,
) -> requests.Session:
    """
    Creates a requests.Session with a sensible retry strategy.

    Notes:
    - Retries 429 and common transient 5xx codes.
    - Allows POST retries because HubSpot uses POST for idempotent reads (search, batch/read).
    """
    sess = session or requests.Session()

    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=backoff_factor,
        status_forcelist=status_forcelist,
        allowed_methods=set(m.upper() for m in allowed_methods),
        raise_on_status=False,  # we handle status codes ourselves for better messages
        respect_retry_after_header=True,
    )

    adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=10)
    sess.mount("http://", adapter)
    sess.mount("https://", adapter)
    return sess


# -----------------------------
# List helpers
# -----------------------------
def chunked(xs: Sequence[Any], n: int) -> Iterator[List[Any]]:
    for i in range(0, len(xs), n):
        yield list(xs[i : i + n])


def unique_in_order(xs: Sequence[Any]) -> List[Any]:
    seen = set()
    out: List[Any] = []
    for x in xs:
        if x in seen:
            continue
        seen.add(x)
        out.append(x)
    return out
