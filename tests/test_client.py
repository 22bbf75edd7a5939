from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

import pytest
import requests

from contact_insights.hubspot.client import HubSpotClient
from contact_insights.hubspot.errors import HubSpotRequestError
from contact_insights.hubspot.redaction import redact_text
from contact_insights.runtime.events import capture


def make_response(status: int, body: Any = None, *, content_type: str = "application/json", raw: Optional[bytes] = None) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r.headers["Content-Type"] = content_type
    r.encoding = "utf-8"
    if raw is not None:
        r._content = raw
    elif body is None:
        r._content = b""
    else:
        r._content = json.dumps(body).encode("utf-8")
    return r


class StubSession:
    def __init__(self, responses: List[Any]):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        nxt = self.responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt


@pytest.fixture
def events():
    with capture() as seen:
        yield seen


def test_post_json_sends_bearer_and_body(events):
    sess = StubSession([make_response(200, {"results": [{"id": "1"}]})])
    c = HubSpotClient(token="pat-na1-secret", session=sess)
    out = c.post_json(stream="contacts", path="/crm/v3/objects/contacts/search", payload={"limit": 1})

    assert out == {"results": [{"id": "1"}]}
    req = sess.requests[0]
    assert req["method"] == "POST"
    assert req["url"] == "https://api.hubapi.com/crm/v3/objects/contacts/search"
    assert req["headers"]["Authorization"] == "Bearer pat-na1-secret"
    assert json.loads(req["data"]) == {"limit": 1}
    assert [e.message for e in events] == ["http.request.start", "http.request.ok"]
    assert events[1].fields["items_count"] == 1


def test_list_body_is_wrapped():
    sess = StubSession([make_response(200, [{"guid": "F1"}])])
    out = HubSpotClient(token="t", session=sess).get_json(stream="forms", path="/forms/v2/forms")
    assert out == {"value": [{"guid": "F1"}]}


def test_empty_body_is_empty_dict():
    sess = StubSession([make_response(204)])
    assert HubSpotClient(token="t", session=sess).get_json(stream="x", path="/x") == {}


def test_non_2xx_carries_status_and_redacted_body(events):
    body = {"status": "error", "message": "bad", "correlationId": "abc-123", "authorization": "Bearer pat-na1-0000"}
    sess = StubSession([make_response(403, body)])
    with pytest.raises(HubSpotRequestError) as ei:
        HubSpotClient(token="t", session=sess).get_json(stream="events", path="/events/v3/events")
    err = ei.value
    assert err.status_code == 403
    assert err.path == "/events/v3/events"
    assert "correlationId=abc-123" in str(err)
    assert "pat-na1-0000" not in err.body_excerpt
    assert events[-1].message == "http.request.error"
    assert events[-1].level == "warn"


def test_html_success_is_an_error():
    sess = StubSession([make_response(200, raw=b"<html>login</html>", content_type="text/html")])
    with pytest.raises(HubSpotRequestError, match="HTML"):
        HubSpotClient(token="t", session=sess).get_json(stream="x", path="/x")


def test_truncated_json_is_an_error():
    sess = StubSession([make_response(200, raw=b'{"results": [')])
    with pytest.raises(HubSpotRequestError, match="undecodable"):
        HubSpotClient(token="t", session=sess).get_json(stream="x", path="/x")


def test_transport_error_is_wrapped():
    sess = StubSession([requests.ConnectionError("reset")])
    with pytest.raises(HubSpotRequestError) as ei:
        HubSpotClient(token="t", session=sess).get_json(stream="x", path="/x")
    assert ei.value.status_code is None
    assert isinstance(ei.value.__cause__, requests.ConnectionError)


def test_redact_text_patterns():
    text = '{"access_token": "abc"} Authorization: Bearer xyz ?hapikey=k123&x=1'
    out = redact_text(text)
    assert "abc" not in out and "xyz" not in out and "k123" not in out
    assert out.count("[REDACTED]") == 3
