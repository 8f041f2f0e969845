"""
Entity store adapter.

One ``EntityStore`` is built at process start and handed to the reminder
engine, the ingestion service and the web app. Every write touches a single
entity row (plus the append-only reminder log).
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Generator

from friendcrm.db import get_db, init_db
from friendcrm.errors import StoreError
from friendcrm.models import (
    Entry,
    EventType,
    EventWithPerson,
    Milestone,
    Person,
    PriorityLevel,
    Relationship,
    ReminderCategory,
    ReminderLog,
    Severity,
    SituationStatus,
    SituationType,
    SituationWithPerson,
    coerce_enum,
)

logger = logging.getLogger(__name__)

_MILESTONE_COLUMNS = {
    Milestone.ONE_WEEK: "reminder_sent_1week",
    Milestone.ONE_DAY: "reminder_sent_1day",
    Milestone.DAY_OF: "reminder_sent_dayof",
}

_EVENT_SELECT = """SELECT e.*, p.name AS person_name, p.relationship AS person_relationship
                   FROM friend_events e
                   JOIN people p ON e.person_id = p.id"""

_SITUATION_SELECT = """SELECT s.*, p.name AS person_name, p.relationship AS person_relationship
                       FROM friend_situations s
                       JOIN people p ON s.person_id = p.id"""


def _to_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring malformed date %r", value)
        return None


def _to_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring malformed timestamp %r", value)
        return None


def _person(row: sqlite3.Row) -> Person:
    return Person(
        id=row["id"],
        name=row["name"],
        aliases=json.loads(row["aliases"] or "[]"),
        relationship=coerce_enum(Relationship, row["relationship"], Relationship.UNKNOWN),
        priority_level=coerce_enum(PriorityLevel, row["priority_level"], PriorityLevel.NORMAL),
        last_contact_date=_to_date(row["last_contact_date"]),
    )


def _event(row: sqlite3.Row) -> EventWithPerson:
    return EventWithPerson(
        id=row["id"],
        person_id=row["person_id"],
        event_type=coerce_enum(EventType, row["event_type"], EventType.OTHER),
        description=row["event_description"],
        event_date=_to_date(row["event_date"]),
        event_date_approximate=row["event_date_approximate"] or "",
        is_recurring=bool(row["is_recurring"]),
        sent_1week=bool(row["reminder_sent_1week"]),
        sent_1day=bool(row["reminder_sent_1day"]),
        sent_dayof=bool(row["reminder_sent_dayof"]),
        person_name=row["person_name"],
        relationship=coerce_enum(Relationship, row["person_relationship"], Relationship.UNKNOWN),
    )


def _situation(row: sqlite3.Row) -> SituationWithPerson:
    return SituationWithPerson(
        id=row["id"],
        person_id=row["person_id"],
        situation_type=coerce_enum(SituationType, row["situation_type"], SituationType.OTHER),
        description=row["situation_description"],
        severity=coerce_enum(Severity, row["severity"], Severity.MEDIUM),
        status=coerce_enum(SituationStatus, row["status"], SituationStatus.ACTIVE),
        started_at=_to_date(row["started_at"]),
        resolved_at=_to_date(row["resolved_at"]),
        last_reminder_sent=_to_datetime(row["last_reminder_sent"]),
        person_name=row["person_name"],
        relationship=coerce_enum(Relationship, row["person_relationship"], Relationship.UNKNOWN),
    )


def _entry(row: sqlite3.Row) -> Entry:
    return Entry(id=row["id"], recorded_at=_to_datetime(row["recorded_at"]), text=row["text"])


def _reminder_log(row: sqlite3.Row) -> ReminderLog:
    return ReminderLog(
        id=row["id"],
        category=ReminderCategory(row["reminder_type"]),
        person_id=row["person_id"],
        event_id=row["related_event_id"],
        situation_id=row["related_situation_id"],
        message=row["message_sent"],
        sent_at=_to_datetime(row["sent_at"]),
    )


class EntityStore:
    """sqlite-backed store for people, events, situations and the reminder log."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def init(self) -> None:
        init_db(self.db_path)

    @contextmanager
    def _db(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            with get_db(self.db_path) as db:
                yield db
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Reminder engine contract
    # ------------------------------------------------------------------

    def list_events_with_exact_date_in_window(self, days: int, today: date) -> list[EventWithPerson]:
        """Events with an exact date between ``today`` and ``today + days``."""
        with self._db() as db:
            rows = db.execute(
                f"""{_EVENT_SELECT}
                    WHERE e.event_date IS NOT NULL AND e.event_date BETWEEN ? AND ?
                    ORDER BY e.event_date, e.id""",
                (today.isoformat(), (today + timedelta(days=days)).isoformat()),
            ).fetchall()
        return [_event(r) for r in rows]

    def list_active_situations(self) -> list[SituationWithPerson]:
        with self._db() as db:
            rows = db.execute(
                f"""{_SITUATION_SELECT}
                    WHERE s.status = 'active'
                    ORDER BY s.started_at, s.id"""
            ).fetchall()
        return [_situation(r) for r in rows]

    def list_people_stale(self, priority_days: int, normal_days: int, today: date) -> list[Person]:
        """People never contacted, or last contacted before their tier's cutoff."""
        with self._db() as db:
            rows = db.execute(
                """SELECT * FROM people
                   WHERE last_contact_date IS NULL
                      OR (priority_level = 'high' AND last_contact_date < ?)
                      OR (priority_level = 'normal' AND last_contact_date < ?)
                   ORDER BY priority_level, name, id""",
                (
                    (today - timedelta(days=priority_days)).isoformat(),
                    (today - timedelta(days=normal_days)).isoformat(),
                ),
            ).fetchall()
        return [_person(r) for r in rows]

    def mark_event_milestone_sent(self, event_id: int, milestone: Milestone) -> None:
        column = _MILESTONE_COLUMNS[milestone]
        with self._db() as db:
            db.execute(
                f"UPDATE friend_events SET {column} = 1, updated_at = datetime('now') WHERE id = ?",
                (event_id,),
            )

    def mark_situation_reminder_sent(self, situation_id: int, now: datetime) -> None:
        with self._db() as db:
            db.execute(
                """UPDATE friend_situations
                   SET last_reminder_sent = ?, updated_at = datetime('now')
                   WHERE id = ?""",
                (now.isoformat(), situation_id),
            )

    def append_reminder_log(
        self,
        category: ReminderCategory,
        person_id: int | None,
        event_id: int | None,
        situation_id: int | None,
        message: str,
        now: datetime,
    ) -> int:
        with self._db() as db:
            cur = db.execute(
                """INSERT INTO reminder_log
                   (reminder_type, person_id, related_event_id, related_situation_id, message_sent, sent_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (category.value, person_id, event_id, situation_id, message, now.isoformat()),
            )
            return cur.lastrowid

    def list_reminder_log(self, limit: int = 50) -> list[ReminderLog]:
        with self._db() as db:
            rows = db.execute(
                "SELECT * FROM reminder_log ORDER BY sent_at DESC, id DESC LIMIT ?", (limit,)
            ).fetchall()
        return [_reminder_log(r) for r in rows]

    # ------------------------------------------------------------------
    # People
    # ------------------------------------------------------------------

    def create_person(
        self,
        name: str,
        aliases: list[str] | None = None,
        relationship: Relationship = Relationship.UNKNOWN,
        priority_level: PriorityLevel = PriorityLevel.NORMAL,
    ) -> Person:
        with self._db() as db:
            cur = db.execute(
                "INSERT INTO people (name, aliases, relationship, priority_level) VALUES (?, ?, ?, ?)",
                (name, json.dumps(aliases or []), relationship.value, priority_level.value),
            )
            row = db.execute("SELECT * FROM people WHERE id = ?", (cur.lastrowid,)).fetchone()
        return _person(row)

    def get_person(self, person_id: int) -> Person | None:
        with self._db() as db:
            row = db.execute("SELECT * FROM people WHERE id = ?", (person_id,)).fetchone()
        return _person(row) if row else None

    def list_people(self) -> list[Person]:
        with self._db() as db:
            rows = db.execute("SELECT * FROM people ORDER BY name, id").fetchall()
        return [_person(r) for r in rows]

    def find_person_by_name_or_alias(self, name_or_alias: str) -> Person | None:
        with self._db() as db:
            row = db.execute(
                """SELECT p.* FROM people p
                   WHERE lower(p.name) = lower(?)
                      OR EXISTS (SELECT 1 FROM json_each(p.aliases) a WHERE lower(a.value) = lower(?))
                   ORDER BY p.id
                   LIMIT 1""",
                (name_or_alias, name_or_alias),
            ).fetchone()
        return _person(row) if row else None

    def upsert_priority_person(
        self,
        name: str,
        aliases: list[str],
        relationship: Relationship,
        priority_level: PriorityLevel,
    ) -> Person:
        """Insert a person, or re-seed priority/aliases/relationship if the name exists."""
        with self._db() as db:
            row = db.execute(
                "SELECT id FROM people WHERE lower(name) = lower(?) ORDER BY id LIMIT 1", (name,)
            ).fetchone()
            if row:
                person_id = row["id"]
                db.execute(
                    """UPDATE people
                       SET priority_level = ?, aliases = ?, relationship = ?, updated_at = datetime('now')
                       WHERE id = ?""",
                    (priority_level.value, json.dumps(aliases), relationship.value, person_id),
                )
            else:
                person_id = db.execute(
                    "INSERT INTO people (name, aliases, relationship, priority_level) VALUES (?, ?, ?, ?)",
                    (name, json.dumps(aliases), relationship.value, priority_level.value),
                ).lastrowid
            row = db.execute("SELECT * FROM people WHERE id = ?", (person_id,)).fetchone()
        return _person(row)

    def record_contact(self, person_id: int, on_date: date) -> bool:
        """Advance ``last_contact_date``; returns False when it would regress."""
        with self._db() as db:
            cur = db.execute(
                """UPDATE people
                   SET last_contact_date = ?, updated_at = datetime('now')
                   WHERE id = ? AND (last_contact_date IS NULL OR last_contact_date < ?)""",
                (on_date.isoformat(), person_id, on_date.isoformat()),
            )
            return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def create_event(
        self,
        person_id: int,
        description: str,
        event_type: EventType = EventType.OTHER,
        event_date: date | None = None,
        event_date_approximate: str = "",
        is_recurring: bool = False,
        source_entry_id: int | None = None,
    ) -> EventWithPerson:
        with self._db() as db:
            cur = db.execute(
                """INSERT INTO friend_events
                   (person_id, event_type, event_description, event_date, event_date_approximate,
                    is_recurring, source_entry_id)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    person_id,
                    event_type.value,
                    description,
                    event_date.isoformat() if event_date else None,
                    event_date_approximate,
                    int(is_recurring),
                    source_entry_id,
                ),
            )
            row = db.execute(f"{_EVENT_SELECT} WHERE e.id = ?", (cur.lastrowid,)).fetchone()
        return _event(row)

    def get_event(self, event_id: int) -> EventWithPerson | None:
        with self._db() as db:
            row = db.execute(f"{_EVENT_SELECT} WHERE e.id = ?", (event_id,)).fetchone()
        return _event(row) if row else None

    def list_events(self, person_id: int | None = None) -> list[EventWithPerson]:
        with self._db() as db:
            if person_id is None:
                rows = db.execute(f"{_EVENT_SELECT} ORDER BY e.event_date IS NULL, e.event_date, e.id").fetchall()
            else:
                rows = db.execute(
                    f"{_EVENT_SELECT} WHERE e.person_id = ? ORDER BY e.event_date IS NULL, e.event_date, e.id",
                    (person_id,),
                ).fetchall()
        return [_event(r) for r in rows]

    # ------------------------------------------------------------------
    # Situations
    # ------------------------------------------------------------------

    def create_situation(
        self,
        person_id: int,
        description: str,
        started_at: date,
        situation_type: SituationType = SituationType.OTHER,
        severity: Severity = Severity.MEDIUM,
        source_entry_id: int | None = None,
    ) -> SituationWithPerson:
        with self._db() as db:
            cur = db.execute(
                """INSERT INTO friend_situations
                   (person_id, situation_type, situation_description, severity, started_at, source_entry_id)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (person_id, situation_type.value, description, severity.value, started_at.isoformat(), source_entry_id),
            )
            row = db.execute(f"{_SITUATION_SELECT} WHERE s.id = ?", (cur.lastrowid,)).fetchone()
        return _situation(row)

    def get_situation(self, situation_id: int) -> SituationWithPerson | None:
        with self._db() as db:
            row = db.execute(f"{_SITUATION_SELECT} WHERE s.id = ?", (situation_id,)).fetchone()
        return _situation(row) if row else None

    def list_situations(self, status: SituationStatus | None = None) -> list[SituationWithPerson]:
        with self._db() as db:
            if status is None:
                rows = db.execute(f"{_SITUATION_SELECT} ORDER BY s.started_at, s.id").fetchall()
            else:
                rows = db.execute(
                    f"{_SITUATION_SELECT} WHERE s.status = ? ORDER BY s.started_at, s.id", (status.value,)
                ).fetchall()
        return [_situation(r) for r in rows]

    def resolve_situation(self, situation_id: int, on_date: date) -> bool:
        with self._db() as db:
            cur = db.execute(
                """UPDATE friend_situations
                   SET status = 'resolved', resolved_at = ?, updated_at = datetime('now')
                   WHERE id = ? AND status = 'active'""",
                (on_date.isoformat(), situation_id),
            )
            return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Raw entries
    # ------------------------------------------------------------------

    def create_entry(self, text: str, recorded_at: datetime) -> int:
        with self._db() as db:
            cur = db.execute(
                "INSERT INTO entries (recorded_at, text) VALUES (?, ?)", (recorded_at.isoformat(), text)
            )
            return cur.lastrowid

    def link_entry_person(self, entry_id: int, person_id: int) -> None:
        with self._db() as db:
            db.execute(
                "INSERT OR IGNORE INTO entry_people (entry_id, person_id) VALUES (?, ?)", (entry_id, person_id)
            )

    def list_entries(
        self, on_date: date | None = None, since: date | None = None, limit: int | None = None
    ) -> list[Entry]:
        """Entries in recording order, optionally for one local day or from ``since`` onwards.

        ``recorded_at`` is stored in the configured zone, so its first ten
        characters are the local calendar date.
        """
        clauses, params = [], []
        if on_date is not None:
            clauses.append("substr(recorded_at, 1, 10) = ?")
            params.append(on_date.isoformat())
        if since is not None:
            clauses.append("substr(recorded_at, 1, 10) >= ?")
            params.append(since.isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._db() as db:
            rows = db.execute(
                f"SELECT * FROM entries {where} ORDER BY recorded_at, id LIMIT ?",
                (*params, -1 if limit is None else limit),
            ).fetchall()
        return [_entry(r) for r in rows]

    def list_entries_for_person(self, person_id: int, limit: int | None = None) -> list[Entry]:
        """Entries that mention ``person_id``, newest first."""
        with self._db() as db:
            rows = db.execute(
                """SELECT e.* FROM entries e
                   JOIN entry_people ep ON ep.entry_id = e.id
                   WHERE ep.person_id = ?
                   ORDER BY e.recorded_at DESC, e.id DESC
                   LIMIT ?""",
                (person_id, -1 if limit is None else limit),
            ).fetchall()
        return [_entry(r) for r in rows]
