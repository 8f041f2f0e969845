from __future__ import annotations

from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from friendcrm.config import Settings
from friendcrm.models import Relationship
from friendcrm.services.extraction import IngestSummary
from friendcrm.services.retrieval import HELP_TEXT
from friendcrm.store import EntityStore


class FakeNotifier:
    def __init__(self):
        self.sent = []

    async def notify(self, subject, message):
        self.sent.append((subject, message))
        return True


@pytest.fixture
def settings(tmp_path):
    return Settings(db_path=tmp_path / "test.db", timezone="America/New_York")


@pytest.fixture
def store(settings):
    return EntityStore(settings.db_path)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def client(settings, store, notifier, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    from friendcrm.web import create_app

    app = create_app(settings=settings, store=store, notifier=notifier)
    return TestClient(app)


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy", "tick_in_progress": False}


def test_people_list_empty(client):
    resp = client.get("/people")
    assert resp.status_code == 200
    assert resp.json() == []


def test_create_and_view_person(client):
    resp = client.post(
        "/people",
        json={"name": "Grace", "aliases": ["Gracie"], "relationship": "friend", "priority_level": "high"},
    )
    assert resp.status_code == 201
    person = resp.json()
    assert person["name"] == "Grace"
    assert person["priority_level"] == "high"

    resp = client.get(f"/people/{person['id']}")
    assert resp.status_code == 200
    body = resp.json()
    assert body["person"]["aliases"] == ["Gracie"]
    assert body["events"] == []
    assert body["situations"] == []


def test_create_person_rejects_bad_relationship(client):
    resp = client.post("/people", json={"name": "X", "relationship": "nemesis"})
    assert resp.status_code == 422


def test_person_not_found(client):
    assert client.get("/people/42").status_code == 404
    assert client.post("/people/42/contact", json={}).status_code == 404


def test_record_contact(client):
    person = client.post("/people", json={"name": "Claire"}).json()

    resp = client.post(f"/people/{person['id']}/contact", json={"on": "2026-04-01"})
    assert resp.status_code == 200
    assert resp.json()["advanced"] is True
    assert resp.json()["person"]["last_contact_date"] == "2026-04-01"

    resp = client.post(f"/people/{person['id']}/contact", json={"on": "2026-03-01"})
    assert resp.json()["advanced"] is False
    assert resp.json()["person"]["last_contact_date"] == "2026-04-01"


def test_create_event(client):
    person = client.post("/people", json={"name": "Sophie"}).json()
    resp = client.post(
        "/events",
        json={
            "person_id": person["id"],
            "description": "Sophie's wedding",
            "event_type": "wedding",
            "event_date": "2026-09-12",
        },
    )
    assert resp.status_code == 201
    event = resp.json()
    assert event["person_name"] == "Sophie"
    assert event["sent_1week"] is False

    resp = client.get("/events", params={"person_id": person["id"]})
    assert [e["id"] for e in resp.json()] == [event["id"]]
    assert client.get(f"/events/{event['id']}").json()["description"] == "Sophie's wedding"


def test_create_event_for_unknown_person(client):
    resp = client.post("/events", json={"person_id": 99, "description": "Trip"})
    assert resp.status_code == 404


def test_situation_create_and_resolve(client):
    person = client.post("/people", json={"name": "Liv"}).json()
    resp = client.post(
        "/situations",
        json={
            "person_id": person["id"],
            "description": "Dad in hospital",
            "situation_type": "sick_family",
            "severity": "high",
            "started_at": "2026-04-20",
        },
    )
    assert resp.status_code == 201
    situation = resp.json()
    assert situation["status"] == "active"

    resp = client.post(f"/situations/{situation['id']}/resolve")
    assert resp.status_code == 200
    assert resp.json()["status"] == "resolved"

    assert client.get("/situations", params={"status": "active"}).json() == []
    assert client.post("/situations/999/resolve").status_code == 404


@patch("friendcrm.routes.entries.ingest_entry", new_callable=AsyncMock)
def test_create_entry_calls_ingestion(mock_ingest, client):
    mock_ingest.return_value = IngestSummary(entry_id=1)
    resp = client.post("/entries", json={"text": "Had coffee with Grace"})
    assert resp.status_code == 201
    assert resp.json()["entry_id"] == 1
    mock_ingest.assert_called_once()
    assert mock_ingest.call_args.args[1] == "Had coffee with Grace"


def test_create_entry_rejects_blank_text(client):
    resp = client.post("/entries", json={"text": "   "})
    assert resp.status_code == 422


def test_entry_ingest_records_contact(client, store):
    person = store.create_person("Ellie")
    resp = client.post(
        "/entries",
        json={"text": "Long walk with Ellie today", "recorded_at": "2026-04-15T19:00:00-04:00"},
    )
    assert resp.status_code == 201
    assert [p["name"] for p in resp.json()["people"]] == ["Ellie"]
    assert store.get_person(person.id).last_contact_date == date(2026, 4, 15)


def test_due_and_run_reminders(client, store, notifier):
    person = store.create_person("Grace")
    store.record_contact(person.id, date(2026, 5, 1))
    event = store.create_event(person.id, "Grace's interview", event_date=date(2026, 5, 1) + timedelta(days=1))

    resp = client.get("/reminders/due", params={"at": "2026-05-01T09:00:00-04:00"})
    assert resp.status_code == 200
    due = resp.json()
    assert len(due) == 1
    assert due[0]["category"] == "event"
    assert "(1 day)" in due[0]["message"]
    assert notifier.sent == []

    resp = client.post("/reminders/run", params={"at": "2026-05-01T09:00:00-04:00"})
    assert resp.status_code == 200
    report = resp.json()
    assert report["sent"] == 1
    assert report["skipped"] is False
    assert store.get_event(event.id).sent_1day is True

    log = client.get("/reminders/log").json()
    assert len(log) == 1
    assert log[0]["category"] == "event"

    resp = client.post("/reminders/run", params={"at": "2026-05-01T10:00:00-04:00"})
    assert resp.json()["sent"] == 0


def test_list_entries_by_day_and_recent_days(client, store, settings):
    now = datetime.now(settings.tz).replace(microsecond=0)
    store.create_entry("Old news", now - timedelta(days=30))
    store.create_entry("Fresh news", now)

    resp = client.get("/entries", params={"on": (now - timedelta(days=30)).date().isoformat()})
    assert resp.status_code == 200
    assert [e["text"] for e in resp.json()] == ["Old news"]

    resp = client.get("/entries", params={"days": 7})
    assert [e["text"] for e in resp.json()] == ["Fresh news"]

    assert [e["text"] for e in client.get("/entries").json()] == ["Old news", "Fresh news"]
    assert client.get("/entries", params={"days": 0}).status_code == 422


def test_person_entries(client, store):
    person = store.create_person("Grace")
    first = store.create_entry("Coffee with Grace", datetime(2026, 4, 1, 9, 0))
    second = store.create_entry("Call with Grace", datetime(2026, 4, 3, 9, 0))
    store.create_entry("Gym", datetime(2026, 4, 2, 9, 0))
    store.link_entry_person(first, person.id)
    store.link_entry_person(second, person.id)

    resp = client.get(f"/people/{person.id}/entries")
    assert resp.status_code == 200
    assert [e["id"] for e in resp.json()] == [second, first]
    assert len(client.get(f"/people/{person.id}/entries", params={"limit": 1}).json()) == 1
    assert client.get("/people/42/entries").status_code == 404


def test_query_answers_questions(client, store):
    grace = store.create_person("Grace", relationship=Relationship.FRIEND)
    entry = store.create_entry("Coffee with Grace", datetime(2026, 4, 9, 18, 0))
    store.link_entry_person(entry, grace.id)

    resp = client.post("/query", json={"question": "What did I do yesterday?", "today": "2026-04-10"})
    assert resp.status_code == 200
    assert resp.json() == {"type": "date", "answer": "2026-04-09:\n\nEntry 1:\nCoffee with Grace"}

    resp = client.post("/query", json={"question": "Tell me about Grace", "today": "2026-04-10"})
    assert resp.json()["type"] == "person"
    assert "• [2026-04-09] Coffee with Grace" in resp.json()["answer"]

    resp = client.post("/query", json={"question": "Hmm"})
    assert resp.json() == {"type": "unknown", "answer": HELP_TEXT}

    assert client.post("/query", json={"question": "  "}).status_code == 422
