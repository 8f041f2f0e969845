from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import date, datetime

import anthropic

from friendcrm.models import (
    EventType,
    EventWithPerson,
    ExtractedEvent,
    ExtractedPerson,
    ExtractedSituation,
    ExtractionResult,
    Person,
    Relationship,
    Severity,
    SituationType,
    SituationWithPerson,
    coerce_enum,
)
from friendcrm.store import EntityStore

logger = logging.getLogger(__name__)

MODEL = "claude-sonnet-4-20250514"

EXTRACTION_PROMPT = """\
You are analyzing a personal journal entry. Extract the people mentioned, upcoming
events in their lives, and ongoing situations where they may need support.

Return a JSON object with these keys:
- "people": list of objects with "name" (string), "aliases" (list of strings),
  "relationship" ("friend", "family", "coworker" or "unknown")
- "events": list of objects with "person" (string, must match a person name),
  "type" ("birthday", "wedding", "trip", "interview", "surgery" or "other"),
  "description" (string), "date" (ISO date or empty if not exact),
  "date_approximate" (string such as "next month", or empty), "recurring" (boolean)
- "situations": list of objects with "person" (string, must match a person name),
  "type" ("breakup", "sick_family", "wedding_planning", "new_job", "tough_time" or "other"),
  "description" (string), "severity" ("high", "medium" or "low")

Rules:
- Only extract information explicitly mentioned or strongly implied in the entry
- Interpret relative dates like "Saturday" or "next week" relative to today ({today})
- Do not merge or deduplicate people; include each name as written
- If nothing is found for a category, return an empty list
- Return ONLY valid JSON, no markdown fences or extra text

Entry:
{text}
"""

# Interaction phrases that introduce a name in rule-based mode
_MENTION_PATTERNS = [
    r"\b(?i:with)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)",
    r"\b(?i:called|texted|saw|met|visited)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)",
    r"\b(?i:talked|spoke|caught up)\s+(?i:to|with)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)",
]

# Words that look like names but aren't
_STOP_WORDS = {
    "me", "him", "her", "them", "us", "it", "this", "that", "the", "a", "an",
    "my", "your", "his", "their", "our", "mom", "dad", "monday", "tuesday",
    "wednesday", "thursday", "friday", "saturday", "sunday", "today", "tomorrow",
    "everyone", "someone", "nobody",
}


@dataclass
class IngestSummary:
    entry_id: int
    people: list[Person] = field(default_factory=list)
    events: list[EventWithPerson] = field(default_factory=list)
    situations: list[SituationWithPerson] = field(default_factory=list)


def _parse_date(value: object) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def parse_extraction(data: dict) -> ExtractionResult:
    """Turn the model's loosely-typed JSON into an ExtractionResult."""
    result = ExtractionResult()
    for p in data.get("people", []):
        name = str(p.get("name", "")).strip()
        if not name:
            continue
        result.people.append(
            ExtractedPerson(
                name=name,
                aliases=[str(a).strip() for a in p.get("aliases", []) if str(a).strip()],
                relationship=coerce_enum(Relationship, p.get("relationship"), Relationship.UNKNOWN),
            )
        )
    for e in data.get("events", []):
        person = str(e.get("person", "")).strip()
        description = str(e.get("description", "")).strip()
        if not person or not description:
            continue
        exact = _parse_date(e.get("date"))
        approximate = str(e.get("date_approximate") or "").strip()
        if exact is None and e.get("date") and not approximate:
            approximate = str(e["date"]).strip()
        result.events.append(
            ExtractedEvent(
                person_name=person,
                description=description,
                event_type=coerce_enum(EventType, e.get("type"), EventType.OTHER),
                event_date=exact,
                event_date_approximate=approximate,
                is_recurring=bool(e.get("recurring", False)),
            )
        )
    for s in data.get("situations", []):
        person = str(s.get("person", "")).strip()
        description = str(s.get("description", "")).strip()
        if not person or not description:
            continue
        result.situations.append(
            ExtractedSituation(
                person_name=person,
                description=description,
                situation_type=coerce_enum(SituationType, s.get("type"), SituationType.OTHER),
                severity=coerce_enum(Severity, s.get("severity"), Severity.MEDIUM),
            )
        )
    return result


def _rule_based_extract(text: str, known_people: list[Person]) -> ExtractionResult:
    """Fallback extraction: known names/aliases plus 'talked to X' style mentions."""
    result = ExtractionResult()
    seen: set[str] = set()
    known_names = {n.lower() for p in known_people for n in [p.name, *p.aliases]}

    for person in known_people:
        for name in [person.name, *person.aliases]:
            if name and re.search(rf"(?i)\b{re.escape(name)}\b", text):
                if person.name.lower() not in seen:
                    seen.add(person.name.lower())
                    result.people.append(ExtractedPerson(name=person.name))
                break

    for pattern in _MENTION_PATTERNS:
        for m in re.finditer(pattern, text):
            name = m.group(1).strip()
            if name.lower() in _STOP_WORDS or name.lower() in seen or name.lower() in known_names:
                continue
            seen.add(name.lower())
            result.people.append(ExtractedPerson(name=name))

    return result


async def extract(text: str, known_people: list[Person] | None = None, today: date | None = None) -> ExtractionResult:
    """Extract people, events and situations. Uses Claude if available, else regex fallback."""
    api_key = os.environ.get("ANTHROPIC_API_KEY", "")
    today = today or date.today()

    if api_key:
        try:
            client = anthropic.Anthropic(api_key=api_key)
            message = client.messages.create(
                model=MODEL,
                max_tokens=2048,
                messages=[
                    {
                        "role": "user",
                        "content": EXTRACTION_PROMPT.format(today=today.isoformat(), text=text),
                    }
                ],
            )
            raw = message.content[0].text.strip()
            if raw.startswith("```"):
                raw = raw.split("\n", 1)[1]
                raw = raw.rsplit("```", 1)[0]
            return parse_extraction(json.loads(raw))
        except Exception:
            logger.exception("AI extraction failed, falling back to rule-based extraction")

    logger.info("Using rule-based extraction")
    return _rule_based_extract(text, known_people or [])


def _resolve_person(store: EntityStore, cache: dict[str, Person], name: str) -> Person:
    key = name.lower()
    if key not in cache:
        cache[key] = store.find_person_by_name_or_alias(name) or store.create_person(name)
    return cache[key]


async def ingest_entry(store: EntityStore, text: str, recorded_at: datetime) -> IngestSummary:
    """Store a raw entry and persist whatever extraction finds in it.

    Every person mentioned counts as an interaction on the entry's date, and
    the entry is linked to everyone it mentions for later retrieval.
    """
    entry_id = store.create_entry(text, recorded_at)
    on_date = recorded_at.date()
    result = await extract(text, store.list_people(), on_date)

    summary = IngestSummary(entry_id=entry_id)
    cache: dict[str, Person] = {}

    for extracted in result.people:
        person = store.find_person_by_name_or_alias(extracted.name)
        if person is None:
            person = store.create_person(extracted.name, extracted.aliases, extracted.relationship)
            logger.info("Created person %s", person.name)
        cache[extracted.name.lower()] = person
        store.record_contact(person.id, on_date)
        store.link_entry_person(entry_id, person.id)
        summary.people.append(person)

    for ev in result.events:
        person = _resolve_person(store, cache, ev.person_name)
        store.link_entry_person(entry_id, person.id)
        summary.events.append(
            store.create_event(
                person.id,
                ev.description,
                event_type=ev.event_type,
                event_date=ev.event_date,
                event_date_approximate=ev.event_date_approximate,
                is_recurring=ev.is_recurring,
                source_entry_id=entry_id,
            )
        )

    for sit in result.situations:
        person = _resolve_person(store, cache, sit.person_name)
        store.link_entry_person(entry_id, person.id)
        summary.situations.append(
            store.create_situation(
                person.id,
                sit.description,
                started_at=on_date,
                situation_type=sit.situation_type,
                severity=sit.severity,
                source_entry_id=entry_id,
            )
        )

    logger.info(
        "Entry %d: %d people, %d events, %d situations",
        entry_id,
        len(summary.people),
        len(summary.events),
        len(summary.situations),
    )
    return summary
