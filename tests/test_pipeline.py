from __future__ import annotations

import pytest

from contact_insights.hubspot.config import load_config
from contact_insights.hubspot.errors import AssociationFetchError, MissingCredentialsError
from contact_insights.hubspot.pipeline import run_pipeline, token_from_env

from .conftest import http_error


def _config(tmp_path, **overrides):
    data = {
        "contact_search": {"limit": 2, "max_contacts": 0},
        "association_types": {"deals": "deals"},
        "form_submissions": {"enabled": False},
        "mark_analysis_completed": False,
        "delay_between_batches_ms": 0,
    }
    data.update(overrides)
    return load_config(data)


def _install_search(client, contacts, page_size=2):
    def handler(path, params, payload):
        start = int(payload.get("after") or 0)
        chunk = contacts[start : start + page_size]
        body = {"results": [{"id": c[0], "properties": {"email": c[1], "firstname": c[2], "lastname": None}} for c in chunk]}
        if start + page_size < len(contacts):
            body["paging"] = {"next": {"after": str(start + page_size)}}
        return body

    client.route("POST", "/crm/v3/objects/contacts/search", handler)


def _install_deal_world(client):
    assoc = {"1": ["d1", "d2"], "3": ["d1"]}

    def assoc_handler(path, params, payload):
        ids = [i["id"] for i in payload["inputs"]]
        return {"results": [{"from": {"id": i}, "to": [{"toObjectId": t} for t in assoc[i]]} for i in ids if i in assoc]}

    def deals_handler(path, params, payload):
        ids = [i["id"] for i in payload["inputs"]]
        known = {"d1": {"dealname": "Acme", "amount": "100", "dealstage": "closedwon"}}
        return {"results": [{"id": i, "properties": known[i]} for i in ids if i in known]}

    client.route("POST", "/crm/v4/associations/contacts/deals/batch/read", assoc_handler)
    client.route("POST", "/crm/v3/objects/deals/batch/read", deals_handler)
    client.route("GET", "/crm/v3/pipelines/deals/default", lambda p, q, b: {"stages": [{"id": "closedwon", "label": "Closed won"}]})
    client.route("GET", "/crm/v3/pipelines/deals", lambda p, q, b: {"results": [{"id": "default"}]})


def test_three_contacts_with_deals_end_to_end(tmp_path, client, throttle):
    _install_search(client, [("1", "one@x.com", "One"), ("2", "two@x.com", "Two"), ("3", "three@x.com", "Three")], page_size=3)
    _install_deal_world(client)

    run = run_pipeline(config=_config(tmp_path), client=client, throttle=throttle)
    pages = list(run)

    assert len(pages) == 1
    by_id = {r.contact.id: r for r in pages[0].contacts}

    c1 = by_id["1"]
    assert c1.counts == {"deals": 2}
    assert [d.id for d in c1.deals] == ["d1", "d2"]
    assert c1.deals[0].get("dealname").display() == "Acme"
    assert c1.deal_stages["d1"] == "Closed won"
    assert not c1.deals[1].found
    assert c1.deals[1].get("dealname").display() == "(unknown)"
    assert c1.deal_stages["d2"] == "(unknown)"

    assert by_id["2"].counts == {"deals": 0}
    assert by_id["2"].deals == []

    c3 = by_id["3"]
    assert c3.counts == {"deals": 1}
    assert c3.deals[0].get("dealname").display() == "Acme"

    # d1 is shared by contacts 1 and 3 but fetched once
    deal_reads = client.calls_to("/crm/v3/objects/deals/batch/read")
    assert len(deal_reads) == 1
    assert sorted(i["id"] for i in deal_reads[0]["payload"]["inputs"]) == ["d1", "d2"]

    assert run.summary.contacts == 3
    assert run.summary.pages == 1


def test_pages_and_max_contacts(tmp_path, client, throttle):
    contacts = [(str(i), f"u{i}@x.com", f"U{i}") for i in range(1, 6)]
    _install_search(client, contacts, page_size=2)
    _install_deal_world(client)

    cfg = _config(tmp_path)
    cfg.contact_search.max_contacts = 3
    run = run_pipeline(config=cfg, client=client, throttle=throttle)
    pages = list(run)

    assert [[r.contact.id for r in p.contacts] for p in pages] == [["1", "2"], ["3"]]
    assert [p.total_processed for p in pages] == [2, 3]
    searches = client.calls_to("/crm/v3/objects/contacts/search")
    assert [s["payload"]["after"] for s in searches] == [0, "2"]
    assert searches[0]["payload"]["limit"] == 2


def test_association_failure_aborts_run(tmp_path, client, throttle):
    _install_search(client, [("1", "a@x.com", "A")])
    client.route("GET", "/crm/v3/pipelines/deals", lambda p, q, b: {"results": []})

    def boom(path, params, payload):
        raise http_error(500, path)

    client.route("POST", "/crm/v4/associations/", boom)
    with pytest.raises(AssociationFetchError):
        list(run_pipeline(config=_config(tmp_path), client=client, throttle=throttle))


def test_submissions_and_engagement_joined_by_contact(tmp_path, client, throttle):
    _install_search(client, [("1", " A@X.com ", "A"), ("2", None, "B")])
    client.route("POST", "/crm/v4/associations/", lambda p, q, b: {"results": []})
    client.route("GET", "/forms/v2/forms", lambda p, q, b: {"value": [{"guid": "F1", "name": "Signup"}, {"name": "no guid"}]})
    client.route(
        "GET",
        "/form-integrations/v1/submissions/forms/F1",
        lambda p, q, b: {"results": [{"conversionId": "C1", "submittedAt": 10, "values": [{"name": "email", "value": "a@x.com"}]}]},
    )
    client.route("GET", "/events/v3/events/event-types", lambda p, q, b: {"eventTypes": ["e_marketing_email_opened"]})

    def events(path, params, payload):
        if params["objectId"] == "2":
            raise http_error(403, path)
        return {"results": [{"eventType": "e_marketing_email_opened"}]}

    client.route("GET", "/events/v3/events", events)

    cache = tmp_path / "cache" / "subs.json"
    cfg = _config(
        tmp_path,
        association_types={"calls": "calls"},
        form_submissions={"enabled": True, "cache_path": str(cache), "max_age_months": 0, "concurrency": 1},
        fetch_engagement=True,
    )
    run = run_pipeline(config=cfg, client=client, throttle=throttle)
    reports = [r for p in run for r in p.contacts]

    assert [e.conversion_id for e in reports[0].submissions] == ["C1"]
    assert reports[1].submissions == []
    assert reports[0].engagement.opens == 1
    assert reports[1].engagement.opens == 0
    assert run.summary.submissions_mode == "full"
    assert cache.exists()


def test_marks_each_page_after_yield(tmp_path, client, throttle):
    _install_search(client, [("1", "a@x.com", "A"), ("2", "b@x.com", "B"), ("3", "c@x.com", "C")], page_size=2)
    client.route("POST", "/crm/v4/associations/", lambda p, q, b: {"results": []})
    client.route("GET", "/crm/v3/pipelines/deals", lambda p, q, b: {"results": []})
    client.route("POST", "/crm/v3/objects/contacts/batch/update", lambda p, q, b: {"status": "COMPLETE"})

    cfg = _config(tmp_path, mark_analysis_completed=True)
    run = run_pipeline(config=cfg, client=client, throttle=throttle)
    list(run)

    updates = client.calls_to("/crm/v3/objects/contacts/batch/update")
    assert [[i["id"] for i in u["payload"]["inputs"]] for u in updates] == [["1", "2"], ["3"]]
    props = updates[0]["payload"]["inputs"][0]["properties"]
    assert list(props) == ["analysis_completed_date"]
    assert props["analysis_completed_date"].endswith("00000")
    assert run.summary.marked == 3


def test_missing_token(monkeypatch):
    monkeypatch.delenv("HUBSPOT_ACCESS_TOKEN", raising=False)
    with pytest.raises(MissingCredentialsError):
        token_from_env()
    monkeypatch.setenv("HUBSPOT_ACCESS_TOKEN", "  pat-na1-abc  ")
    assert token_from_env() == "pat-na1-abc"
