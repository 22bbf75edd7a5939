# contact_insights/hubspot/client.py
from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urljoin

import requests

from contact_insights.utils import DEFAULT_TIMEOUT, requests_retry_session

from .constants import HUBSPOT_BASE_URL
from .errors import HubSpotRequestError
from .events import http_error, http_ok, http_start
from .redaction import body_excerpt


def _auth_headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def _is_html_response(resp: requests.Response) -> bool:
    ct = (resp.headers.get("Content-Type") or "").lower()
    head = (resp.text[:200].lower() if resp.text else "")
    return ("text/html" in ct) or ("text/plain" in ct and "<html" in head)


def _correlation_id(text: str) -> Optional[str]:
    try:
        if text and text.strip().startswith("{"):
            parsed = json.loads(text)
            if isinstance(parsed, dict):
                return parsed.get("correlationId") or parsed.get("correlation_id")
    except ValueError:
        return None
    return None


class HubSpotClient:
    """
    Thin JSON client over a retrying requests.Session.

    Every failure (non-2xx, HTML body, undecodable JSON, transport error) surfaces as
    HubSpotRequestError carrying the status code and a redacted body excerpt.
    Pacing is not done here; the paginators and batchers own the Throttle.
    """

    def __init__(
        self,
        *,
        token: str,
        base_url: str = HUBSPOT_BASE_URL,
        timeout: Tuple[int, int] = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.token = token
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests_retry_session()

    def get_json(self, *, stream: str, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self.request_json(stream=stream, method="GET", path=path, params=params)

    def post_json(self, *, stream: str, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self.request_json(stream=stream, method="POST", path=path, payload=payload)

    def request_json(
        self,
        *,
        stream: str,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = urljoin(self.base_url, path)
        method = method.upper()
        # emit BEFORE the request so the UI never sits silent during long reads
        http_start(stream=stream, method=method, url=url)

        t0 = time.monotonic()
        try:
            r = self.session.request(
                method,
                url,
                headers=_auth_headers(self.token),
                params=params,
                data=json.dumps(payload) if payload is not None else None,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            http_error(stream=stream, method=method, url=url, status=None, error=str(e))
            raise HubSpotRequestError(
                f"HubSpot {method} {path} failed: {e}",
                method=method,
                path=path,
            ) from e

        elapsed = int((time.monotonic() - t0) * 1000)

        if not (200 <= r.status_code < 300):
            excerpt = body_excerpt(r)
            corr = _correlation_id(excerpt)
            corr_txt = f" correlationId={corr}" if corr else ""
            kind = "HTML response" if _is_html_response(r) else f"HTTP {r.status_code}"
            http_error(stream=stream, method=method, url=url, status=r.status_code, error=kind)
            raise HubSpotRequestError(
                f"HubSpot {method} {path} failed: {kind}{corr_txt}",
                method=method,
                path=path,
                status_code=r.status_code,
                body_excerpt=excerpt,
            )

        if not r.content:
            http_ok(stream=stream, method=method, url=url, elapsed_ms=elapsed, items_count=0)
            return {}

        if _is_html_response(r):
            http_error(stream=stream, method=method, url=url, status=r.status_code, error="html_response")
            raise HubSpotRequestError(
                f"HubSpot {method} {path} returned HTML instead of JSON",
                method=method,
                path=path,
                status_code=r.status_code,
                body_excerpt=body_excerpt(r),
            )

        try:
            data = r.json()
        except ValueError as e:
            excerpt = body_excerpt(r)
            http_error(
                stream=stream,
                method=method,
                url=url,
                status=r.status_code,
                error=f"json_decode_error: {e}",
                extra={"body_excerpt": excerpt[:500]},
            )
            raise HubSpotRequestError(
                f"HubSpot {method} {path} returned undecodable JSON: {e}",
                method=method,
                path=path,
                status_code=r.status_code,
                body_excerpt=excerpt,
            ) from e

        # best-effort items count extraction
        items = None
        if isinstance(data, dict):
            arr = data.get("results")
            if isinstance(arr, list):
                items = len(arr)
        elif isinstance(data, list):
            items = len(data)

        http_ok(stream=stream, method=method, url=url, elapsed_ms=elapsed, items_count=items)
        return data if isinstance(data, dict) else {"value": data}
