"""
Answers questions about what has been recorded: everything known about one
person, the entries from a given day, or a summary of the last few days.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, timedelta

import anthropic

from friendcrm.models import (
    Entry,
    EventWithPerson,
    ParsedQuery,
    Person,
    QueryKind,
    SituationStatus,
    SituationWithPerson,
    coerce_enum,
)
from friendcrm.services.extraction import MODEL
from friendcrm.store import EntityStore

logger = logging.getLogger(__name__)

RECENT_UPDATES_SHOWN = 5
DEFAULT_RECENT_DAYS = 7

QUERY_PROMPT = """\
Parse this question about a personal journal and decide what to look up.
Today's date is {today}. Yesterday was {yesterday}.

Query types:
- "person": asking about a specific person ("Tell me about Sarah")
- "date": asking about a specific day ("What did I do yesterday?", "my day today")
- "recent": asking about recent activity ("What happened this week?")
- "unknown": cannot tell

Return ONLY valid JSON:
{{"type": "person" | "date" | "recent" | "unknown", "person": "name if person",
  "date": "YYYY-MM-DD if date", "days": number of days back if recent}}

Question: {question}
"""

HELP_TEXT = (
    "Sorry, I couldn't understand what you're asking for. Try:\n"
    "\n"
    '• "Tell me about [person name]"\n'
    '• "What did I do yesterday?"\n'
    '• "What happened this week?"'
)

_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
_LAST_N_DAYS = re.compile(r"(?i)\b(?:last|past)\s+(\d+)\s+days?\b")
_PERIODS = [
    (re.compile(r"(?i)\b(?:this|last|past)\s+week\b"), 7),
    (re.compile(r"(?i)\b(?:this|last|past)\s+month\b"), 30),
    (re.compile(r"(?i)\brecent(?:ly)?\b"), DEFAULT_RECENT_DAYS),
]
_ABOUT = re.compile(r"\b(?i:about|how is|how's)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)")


@dataclass
class PersonReport:
    person: Person
    events: list[EventWithPerson] = field(default_factory=list)
    situations: list[SituationWithPerson] = field(default_factory=list)
    entries: list[Entry] = field(default_factory=list)
    total_entries: int = 0


@dataclass
class Answer:
    query: ParsedQuery
    text: str


# ------------------------------------------------------------------
# Query parsing
# ------------------------------------------------------------------


def parse_query_data(data: dict) -> ParsedQuery:
    """Turn the model's JSON into a ParsedQuery; anything incomplete is UNKNOWN."""
    kind = coerce_enum(QueryKind, data.get("type"), QueryKind.UNKNOWN)
    if kind is QueryKind.PERSON:
        name = str(data.get("person") or data.get("personName") or "").strip()
        return ParsedQuery(kind=kind, person_name=name) if name else ParsedQuery()
    if kind is QueryKind.DATE:
        try:
            return ParsedQuery(kind=kind, on_date=date.fromisoformat(str(data.get("date", "")).strip()))
        except ValueError:
            return ParsedQuery()
    if kind is QueryKind.RECENT:
        try:
            days = int(data.get("days") or DEFAULT_RECENT_DAYS)
        except (TypeError, ValueError):
            days = DEFAULT_RECENT_DAYS
        return ParsedQuery(kind=kind, days=max(days, 1))
    return ParsedQuery()


def _rule_based_parse(question: str, today: date, known_people: list[Person]) -> ParsedQuery:
    for person in known_people:
        for name in [person.name, *person.aliases]:
            if name and re.search(rf"(?i)\b{re.escape(name)}\b", question):
                return ParsedQuery(kind=QueryKind.PERSON, person_name=person.name)

    m = _ISO_DATE.search(question)
    if m:
        try:
            return ParsedQuery(kind=QueryKind.DATE, on_date=date.fromisoformat(m.group(1)))
        except ValueError:
            pass
    if re.search(r"(?i)\byesterday\b", question):
        return ParsedQuery(kind=QueryKind.DATE, on_date=today - timedelta(days=1))
    if re.search(r"(?i)\btoday\b", question):
        return ParsedQuery(kind=QueryKind.DATE, on_date=today)

    m = _LAST_N_DAYS.search(question)
    if m:
        return ParsedQuery(kind=QueryKind.RECENT, days=max(int(m.group(1)), 1))
    for pattern, days in _PERIODS:
        if pattern.search(question):
            return ParsedQuery(kind=QueryKind.RECENT, days=days)

    m = _ABOUT.search(question)
    if m:
        return ParsedQuery(kind=QueryKind.PERSON, person_name=m.group(1))
    return ParsedQuery()


async def parse_query(question: str, today: date, known_people: list[Person] | None = None) -> ParsedQuery:
    """Work out what a question asks for. Uses Claude if available, else regex rules."""
    api_key = os.environ.get("ANTHROPIC_API_KEY", "")

    if api_key:
        try:
            client = anthropic.Anthropic(api_key=api_key)
            message = client.messages.create(
                model=MODEL,
                max_tokens=256,
                messages=[
                    {
                        "role": "user",
                        "content": QUERY_PROMPT.format(
                            today=today.isoformat(),
                            yesterday=(today - timedelta(days=1)).isoformat(),
                            question=question,
                        ),
                    }
                ],
            )
            raw = message.content[0].text.strip()
            if raw.startswith("```"):
                raw = raw.split("\n", 1)[1]
                raw = raw.rsplit("```", 1)[0]
            return parse_query_data(json.loads(raw))
        except Exception:
            logger.exception("AI query parsing failed, falling back to rule-based parsing")

    return _rule_based_parse(question, today, known_people or [])


# ------------------------------------------------------------------
# Lookups
# ------------------------------------------------------------------


def person_report(store: EntityStore, name: str, limit: int = RECENT_UPDATES_SHOWN) -> PersonReport | None:
    person = store.find_person_by_name_or_alias(name)
    if person is None:
        return None
    entries = store.list_entries_for_person(person.id)
    return PersonReport(
        person=person,
        events=store.list_events(person.id),
        situations=[
            s for s in store.list_situations(SituationStatus.ACTIVE) if s.person_id == person.id
        ],
        entries=entries[:limit],
        total_entries=len(entries),
    )


def entries_since(store: EntityStore, days: int, today: date) -> list[Entry]:
    """Entries recorded on or after ``today - days``."""
    return store.list_entries(since=today - timedelta(days=days))


# ------------------------------------------------------------------
# Formatting
# ------------------------------------------------------------------


def format_person_report(report: PersonReport, today: date) -> str:
    person = report.person
    lines = [
        f"{person.name} ({person.relationship.value})",
        f"Priority: {person.priority_level.value}",
        f"Last contact: {person.last_contact_date.isoformat()}"
        if person.last_contact_date
        else "Last contact: never recorded",
    ]

    if report.events:
        lines += ["", "📅 UPCOMING EVENTS:", ""]
        for event in report.events:
            when = event.event_date.isoformat() if event.event_date else event.event_date_approximate or "date TBD"
            recurring = " (recurring)" if event.is_recurring else ""
            lines.append(f"• {event.description} ({when})")
            lines.append(f"  Type: {event.event_type.value}{recurring}")

    if report.situations:
        lines += ["", "💙 ACTIVE SITUATIONS:", ""]
        for situation in report.situations:
            elapsed = max((today - situation.started_at).days, 0) if situation.started_at else 0
            lines.append(f"• {situation.description}")
            lines.append(f"  Type: {situation.situation_type.value} | Severity: {situation.severity.value}")
            lines.append(f"  Duration: {elapsed} days")

    if report.entries:
        lines += ["", "📝 RECENT UPDATES:", ""]
        for entry in report.entries:
            stamp = entry.recorded_at.date().isoformat() if entry.recorded_at else "undated"
            lines.append(f"• [{stamp}] {entry.text}")
        hidden = report.total_entries - len(report.entries)
        if hidden > 0:
            lines.append(f"(+{hidden} more updates)")

    return "\n".join(lines)


def format_day(day: date, entries: list[Entry]) -> str:
    if not entries:
        return f"No entries found for {day.isoformat()}."
    body = "\n\n".join(f"Entry {i}:\n{entry.text}" for i, entry in enumerate(entries, 1))
    return f"{day.isoformat()}:\n\n{body}"


def format_recent(days: int, entries: list[Entry]) -> str:
    if not entries:
        return f"No entries in the last {days} days."
    per_day = Counter(e.recorded_at.date().isoformat() for e in entries if e.recorded_at)
    summary = "\n".join(f"{day}: {count} entry(ies)" for day, count in sorted(per_day.items()))
    return f"Last {days} days:\n\n{summary}\n\nTotal: {len(entries)} entries"


async def answer(store: EntityStore, question: str, today: date) -> Answer:
    query = await parse_query(question, today, store.list_people())

    if query.kind is QueryKind.PERSON:
        report = person_report(store, query.person_name)
        if report is None:
            return Answer(query, f"I don't have any information about {query.person_name} yet.")
        return Answer(query, format_person_report(report, today))
    if query.kind is QueryKind.DATE and query.on_date is not None:
        return Answer(query, format_day(query.on_date, store.list_entries(on_date=query.on_date)))
    if query.kind is QueryKind.RECENT:
        return Answer(query, format_recent(query.days, entries_since(store, query.days, today)))
    return Answer(query, HELP_TEXT)
