from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from friendcrm.config import DEFAULT_DB_PATH

DB_PATH = DEFAULT_DB_PATH

SCHEMA = """\
CREATE TABLE IF NOT EXISTS people (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    aliases TEXT NOT NULL DEFAULT '[]',
    relationship TEXT NOT NULL DEFAULT 'unknown'
        CHECK(relationship IN ('friend', 'family', 'coworker', 'unknown')),
    priority_level TEXT NOT NULL DEFAULT 'normal' CHECK(priority_level IN ('high', 'normal')),
    last_contact_date TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recorded_at TEXT NOT NULL,
    text TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS entry_people (
    entry_id INTEGER NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
    person_id INTEGER NOT NULL REFERENCES people(id) ON DELETE CASCADE,
    PRIMARY KEY (entry_id, person_id)
);

CREATE TABLE IF NOT EXISTS friend_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    person_id INTEGER NOT NULL REFERENCES people(id) ON DELETE CASCADE,
    event_type TEXT NOT NULL DEFAULT 'other'
        CHECK(event_type IN ('birthday', 'wedding', 'trip', 'interview', 'surgery', 'other')),
    event_description TEXT NOT NULL,
    event_date TEXT,
    event_date_approximate TEXT NOT NULL DEFAULT '',
    is_recurring INTEGER NOT NULL DEFAULT 0,
    reminder_sent_1week INTEGER NOT NULL DEFAULT 0,
    reminder_sent_1day INTEGER NOT NULL DEFAULT 0,
    reminder_sent_dayof INTEGER NOT NULL DEFAULT 0,
    source_entry_id INTEGER REFERENCES entries(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS friend_situations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    person_id INTEGER NOT NULL REFERENCES people(id) ON DELETE CASCADE,
    situation_type TEXT NOT NULL DEFAULT 'other'
        CHECK(situation_type IN ('breakup', 'sick_family', 'wedding_planning', 'new_job', 'tough_time', 'other')),
    situation_description TEXT NOT NULL,
    severity TEXT NOT NULL DEFAULT 'medium' CHECK(severity IN ('high', 'medium', 'low')),
    status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active', 'resolved')),
    started_at TEXT NOT NULL,
    resolved_at TEXT,
    last_reminder_sent TEXT,
    source_entry_id INTEGER REFERENCES entries(id) ON DELETE SET NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS reminder_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    reminder_type TEXT NOT NULL CHECK(reminder_type IN ('event', 'situation', 'last_contact')),
    person_id INTEGER REFERENCES people(id) ON DELETE CASCADE,
    related_event_id INTEGER REFERENCES friend_events(id) ON DELETE CASCADE,
    related_situation_id INTEGER REFERENCES friend_situations(id) ON DELETE CASCADE,
    message_sent TEXT NOT NULL,
    sent_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_entries_recorded ON entries(recorded_at);
CREATE INDEX IF NOT EXISTS idx_entry_people_person ON entry_people(person_id);
CREATE INDEX IF NOT EXISTS idx_friend_events_date ON friend_events(event_date);
CREATE INDEX IF NOT EXISTS idx_friend_events_person ON friend_events(person_id);
CREATE INDEX IF NOT EXISTS idx_friend_situations_person ON friend_situations(person_id);
CREATE INDEX IF NOT EXISTS idx_friend_situations_status ON friend_situations(status);
CREATE INDEX IF NOT EXISTS idx_people_last_contact ON people(last_contact_date);
CREATE INDEX IF NOT EXISTS idx_people_priority ON people(priority_level);
"""


def _connect(db_path: Path | None = None) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path or DB_PATH))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path | None = None) -> None:
    target = Path(db_path or DB_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    conn = _connect(target)
    conn.executescript(SCHEMA)
    conn.close()


@contextmanager
def get_db(db_path: Path | None = None) -> Generator[sqlite3.Connection, None, None]:
    conn = _connect(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
