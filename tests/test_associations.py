from __future__ import annotations

import pytest

from contact_insights.hubspot.associations import AssociationAggregator, fetch_association_window
from contact_insights.hubspot.contacts import Contact
from contact_insights.hubspot.errors import AssociationFetchError
from contact_insights.hubspot.paging import CursorPaginator, Page

from .conftest import http_error


def _assoc_response(mapping):
    return {
        "results": [
            {"from": {"id": cid}, "to": [{"toObjectId": t, "associationTypes": []} for t in to]}
            for cid, to in mapping.items()
        ]
    }


def test_window_parses_from_and_to_ids(client):
    client.route("POST", "/crm/v4/associations/contacts/deals/batch/read", lambda p, q, b: _assoc_response({"1": ["10", "11"]}))
    out = fetch_association_window(client, ["1", "2"], "deals")
    assert out == {"1": ["10", "11"]}
    assert client.calls[0]["payload"] == {"inputs": [{"id": "1"}, {"id": "2"}]}


def test_missing_contact_resolves_to_empty_list(client):
    client.route("POST", "/crm/v4/associations/contacts/deals/", lambda p, q, b: _assoc_response({"1": ["d1", "d2"], "3": ["d1"]}))
    client.route("POST", "/crm/v4/associations/contacts/calls/", lambda p, q, b: {"results": []})

    agg = AssociationAggregator(client, {"deals": "deals", "calls": "calls"})
    result = agg.for_contacts(["1", "2", "3"])

    assert result == {
        "1": {"deals": ["d1", "d2"], "calls": []},
        "2": {"deals": [], "calls": []},
        "3": {"deals": ["d1"], "calls": []},
    }


def test_windows_respect_batch_size_and_keep_order(client):
    def handler(path, params, payload):
        ids = [i["id"] for i in payload["inputs"]]
        return _assoc_response({i: [f"{i}-a", f"{i}-b"] for i in ids})

    client.route("POST", "/crm/v4/associations/contacts/notes/", handler)
    agg = AssociationAggregator(client, {"notes": "notes"}, batch_size=2)
    ids = ["1", "2", "3", "4", "5"]
    result = agg.for_contacts(ids)

    assert len(client.calls) == 3
    assert [len(c["payload"]["inputs"]) for c in client.calls] == [2, 2, 1]
    assert result["5"]["notes"] == ["5-a", "5-b"]


def test_failed_window_is_fatal(client):
    def boom(path, params, payload):
        raise http_error(500, path, "server error")

    client.route("POST", "/crm/v4/associations/contacts/deals/", boom)
    agg = AssociationAggregator(client, {"deals": "deals"})
    with pytest.raises(AssociationFetchError) as ei:
        agg.for_contacts(["1"])
    assert ei.value.status_code == 500
    assert ei.value.to_object_type == "deals"


def test_pages_drive_search_then_associations(client):
    pages = [[Contact("1"), Contact("2")], [Contact("3")]]

    def fetch(after):
        idx = int(after or 0)
        return Page(items=pages[idx], next_cursor=str(idx + 1) if idx + 1 < len(pages) else None)

    client.route("POST", "/crm/v4/associations/contacts/deals/", lambda p, q, b: _assoc_response({"3": ["d9"]}))
    agg = AssociationAggregator(client, {"deals": "deals"})
    out = list(agg.pages(CursorPaginator(fetch)))

    assert [[c.id for c in page] for page, _ in out] == [["1", "2"], ["3"]]
    assert out[1][1] == {"3": {"deals": ["d9"]}}
    assert out[0][1] == {"1": {"deals": []}, "2": {"deals": []}}
