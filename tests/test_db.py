from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from friendcrm.db import get_db, init_db
from friendcrm.errors import StoreError
from friendcrm.models import (
    EventType,
    Milestone,
    PriorityLevel,
    Relationship,
    ReminderCategory,
    Severity,
    SituationStatus,
    SituationType,
)
from friendcrm.store import EntityStore

TODAY = date(2026, 3, 10)
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "test.db"
    init_db(path)
    return path


@pytest.fixture
def store(db_path):
    return EntityStore(db_path)


def test_schema_creation(db_path):
    with get_db(db_path) as db:
        tables = db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
    names = [t["name"] for t in tables]
    assert "people" in names
    assert "friend_events" in names
    assert "friend_situations" in names
    assert "reminder_log" in names
    assert "entries" in names
    assert "entry_people" in names


def test_person_crud(store):
    person = store.create_person("Grace", ["Gracie"], Relationship.FRIEND, PriorityLevel.HIGH)
    assert person.id > 0
    assert person.aliases == ["Gracie"]
    assert person.priority_level is PriorityLevel.HIGH
    assert person.last_contact_date is None

    assert store.get_person(person.id) == person
    assert store.get_person(999) is None
    assert [p.name for p in store.list_people()] == ["Grace"]


def test_find_person_by_name_or_alias_is_case_insensitive(store):
    person = store.create_person("Addi", ["Addison"])
    assert store.find_person_by_name_or_alias("addi").id == person.id
    assert store.find_person_by_name_or_alias("ADDISON").id == person.id
    assert store.find_person_by_name_or_alias("Addie") is None


def test_record_contact_never_regresses(store):
    person = store.create_person("Claire")
    assert store.record_contact(person.id, date(2026, 3, 1)) is True
    assert store.record_contact(person.id, date(2026, 2, 1)) is False
    assert store.get_person(person.id).last_contact_date == date(2026, 3, 1)
    assert store.record_contact(person.id, date(2026, 3, 5)) is True
    assert store.get_person(person.id).last_contact_date == date(2026, 3, 5)


def test_upsert_priority_person_updates_existing(store):
    existing = store.create_person("Katie", [], Relationship.UNKNOWN, PriorityLevel.NORMAL)
    updated = store.upsert_priority_person("katie", ["Sis"], Relationship.FAMILY, PriorityLevel.HIGH)
    assert updated.id == existing.id
    assert updated.priority_level is PriorityLevel.HIGH
    assert updated.relationship is Relationship.FAMILY
    assert updated.aliases == ["Sis"]

    created = store.upsert_priority_person("Ellie", [], Relationship.FRIEND, PriorityLevel.HIGH)
    assert created.id != existing.id
    assert len(store.list_people()) == 2


def test_events_in_window_only_with_exact_date(store):
    person = store.create_person("Sophie", relationship=Relationship.FRIEND)
    inside = store.create_event(person.id, "Sophie's birthday", EventType.BIRTHDAY, date(2026, 3, 17))
    store.create_event(person.id, "Trip to Lisbon", EventType.TRIP, date(2026, 4, 20))
    store.create_event(person.id, "Wedding", EventType.WEDDING, None, "sometime next month")
    store.create_event(person.id, "Past interview", EventType.INTERVIEW, date(2026, 3, 1))

    events = store.list_events_with_exact_date_in_window(14, TODAY)
    assert [e.id for e in events] == [inside.id]
    assert events[0].person_name == "Sophie"
    assert events[0].relationship is Relationship.FRIEND


def test_mark_event_milestone_sent_is_a_latch(store):
    person = store.create_person("Nati")
    event = store.create_event(person.id, "Surgery", EventType.SURGERY, date(2026, 3, 11))

    store.mark_event_milestone_sent(event.id, Milestone.ONE_DAY)
    store.mark_event_milestone_sent(event.id, Milestone.ONE_DAY)

    reloaded = store.get_event(event.id)
    assert reloaded.sent_1day is True
    assert reloaded.sent_1week is False
    assert reloaded.sent_dayof is False


def test_active_situations_and_resolve(store):
    person = store.create_person("Liv")
    active = store.create_situation(person.id, "Breakup", TODAY, SituationType.BREAKUP, Severity.HIGH)
    other = store.create_situation(person.id, "New job", TODAY, SituationType.NEW_JOB, Severity.MEDIUM)

    assert store.resolve_situation(other.id, TODAY) is True
    assert store.resolve_situation(other.id, TODAY) is False

    assert [s.id for s in store.list_active_situations()] == [active.id]
    resolved = store.get_situation(other.id)
    assert resolved.status is SituationStatus.RESOLVED
    assert resolved.resolved_at == TODAY
    assert [s.id for s in store.list_situations(SituationStatus.RESOLVED)] == [other.id]


def test_mark_situation_reminder_sent(store):
    person = store.create_person("Jamie")
    situation = store.create_situation(person.id, "Sick dad", TODAY, SituationType.SICK_FAMILY, Severity.HIGH)
    store.mark_situation_reminder_sent(situation.id, NOW)
    assert store.get_situation(situation.id).last_reminder_sent == NOW


def test_people_stale_uses_priority_thresholds(store):
    high = store.create_person("High", priority_level=PriorityLevel.HIGH)
    normal = store.create_person("Normal", priority_level=PriorityLevel.NORMAL)
    never = store.create_person("Never", priority_level=PriorityLevel.NORMAL)
    store.record_contact(high.id, date(2026, 2, 23))  # 15 days ago
    store.record_contact(normal.id, date(2026, 2, 23))

    stale = store.list_people_stale(14, 28, TODAY)
    assert {p.id for p in stale} == {high.id, never.id}


def test_reminder_log_append_and_list(store):
    person = store.create_person("Ashton")
    log_id = store.append_reminder_log(ReminderCategory.LAST_CONTACT, person.id, None, None, "Say hi", NOW)
    rows = store.list_reminder_log()
    assert len(rows) == 1
    assert rows[0].id == log_id
    assert rows[0].category is ReminderCategory.LAST_CONTACT
    assert rows[0].message == "Say hi"
    assert rows[0].sent_at == NOW


def test_cascade_delete_events_from_person(db_path, store):
    person = store.create_person("Bob")
    store.create_event(person.id, "Birthday", EventType.BIRTHDAY, TODAY)

    with get_db(db_path) as db:
        db.execute("DELETE FROM people WHERE id = ?", (person.id,))

    assert store.list_events() == []


def test_sqlite_errors_become_store_errors(tmp_path):
    store = EntityStore(tmp_path / "missing-schema.db")
    with pytest.raises(StoreError):
        store.list_active_situations()


def test_malformed_stored_dates_read_as_missing(db_path, store):
    person = store.create_person("Ellie")
    with get_db(db_path) as db:
        db.execute("UPDATE people SET last_contact_date = 'last spring' WHERE id = ?", (person.id,))
    assert store.get_person(person.id).last_contact_date is None


def test_list_entries_by_day_and_since(store):
    ny = timezone(timedelta(hours=-4))
    first = store.create_entry("Coffee with Grace", datetime(2026, 3, 8, 8, 0, tzinfo=ny))
    second = store.create_entry("Call with Mom", datetime(2026, 3, 9, 21, 30, tzinfo=ny))
    third = store.create_entry("Lunch with Nati", datetime(2026, 3, 10, 12, 0, tzinfo=ny))

    assert [e.id for e in store.list_entries(on_date=date(2026, 3, 9))] == [second]
    assert [e.id for e in store.list_entries(since=date(2026, 3, 9))] == [second, third]
    assert [e.id for e in store.list_entries()] == [first, second, third]
    assert [e.id for e in store.list_entries(limit=1)] == [first]

    entry = store.list_entries(on_date=date(2026, 3, 8))[0]
    assert entry.text == "Coffee with Grace"
    assert entry.recorded_at == datetime(2026, 3, 8, 8, 0, tzinfo=ny)


def test_entries_for_person_newest_first(store):
    grace = store.create_person("Grace")
    nati = store.create_person("Nati")
    older = store.create_entry("Coffee with Grace", datetime(2026, 3, 1, 9, 0))
    newer = store.create_entry("Grace and Nati at dinner", datetime(2026, 3, 5, 19, 0))
    store.link_entry_person(older, grace.id)
    store.link_entry_person(newer, grace.id)
    store.link_entry_person(newer, grace.id)
    store.link_entry_person(newer, nati.id)

    assert [e.id for e in store.list_entries_for_person(grace.id)] == [newer, older]
    assert [e.id for e in store.list_entries_for_person(grace.id, limit=1)] == [newer]
    assert [e.id for e in store.list_entries_for_person(nati.id)] == [newer]
