"""
Due-reminder evaluators.

Pure decision functions over entity snapshots and "today". They never touch
the store; the engine feeds them fresh snapshots each tick and commits the
resulting latches only after a successful send.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timedelta, tzinfo

from friendcrm.models import (
    EventDue,
    EventWithPerson,
    Milestone,
    Person,
    PriorityLevel,
    Severity,
    SituationDue,
    SituationStatus,
    SituationWithPerson,
    StalenessDue,
)

# Days since the last reminder when none was ever sent; always past any interval.
NEVER_SENT_DAYS = 999

# High-severity situations get daily reminders for this many days after they start.
HIGH_SEVERITY_ACUTE_DAYS = 14

_SEVERITY_INTERVALS = {
    Severity.HIGH: (1, 7),  # (acute phase, afterwards)
    Severity.MEDIUM: (7, 7),
    Severity.LOW: (14, 14),
}


def local_date(value: datetime, tz: tzinfo) -> date:
    """Calendar date of ``value`` in ``tz``; naive values are taken as already local."""
    if value.tzinfo is None:
        return value.date()
    return value.astimezone(tz).date()


# ------------------------------------------------------------------
# Events
# ------------------------------------------------------------------


def evaluate_events(events: Iterable[EventWithPerson], today: date) -> list[EventDue]:
    due: list[EventDue] = []
    for event in events:
        if event.event_date is None:
            continue
        days_until = (event.event_date - today).days
        for milestone in Milestone:
            if days_until == milestone.days_before and not event.milestone_sent(milestone):
                due.append(EventDue(event=event, milestone=milestone))
    return due


# ------------------------------------------------------------------
# Situations
# ------------------------------------------------------------------


def reminder_interval(severity: Severity, elapsed_days: int) -> int:
    acute, settled = _SEVERITY_INTERVALS[severity]
    return acute if elapsed_days <= HIGH_SEVERITY_ACUTE_DAYS else settled


def days_since_last_reminder(situation: SituationWithPerson, today: date, tz: tzinfo) -> int:
    if situation.last_reminder_sent is None:
        return NEVER_SENT_DAYS
    return (today - local_date(situation.last_reminder_sent, tz)).days


def evaluate_situations(
    situations: Iterable[SituationWithPerson], today: date, tz: tzinfo
) -> list[SituationDue]:
    """Active situations whose severity cadence has elapsed, most severe and oldest first."""
    due: list[SituationDue] = []
    for situation in situations:
        if situation.status is not SituationStatus.ACTIVE or situation.started_at is None:
            continue
        # a start date in the future counts as starting today
        elapsed = max((today - situation.started_at).days, 0)
        interval = reminder_interval(situation.severity, elapsed)
        if days_since_last_reminder(situation, today, tz) >= interval:
            due.append(SituationDue(situation=situation, elapsed_days=elapsed, interval_days=interval))
    due.sort(key=lambda d: (-d.situation.severity.rank, d.situation.started_at, d.situation.id))
    return due


# ------------------------------------------------------------------
# Contact staleness
# ------------------------------------------------------------------


def staleness_threshold(priority: PriorityLevel, priority_days: int, normal_days: int) -> int:
    return {PriorityLevel.HIGH: priority_days, PriorityLevel.NORMAL: normal_days}[priority]


def is_stale(person: Person, today: date, priority_days: int, normal_days: int) -> bool:
    if person.last_contact_date is None:
        return True
    threshold = staleness_threshold(person.priority_level, priority_days, normal_days)
    return person.last_contact_date < today - timedelta(days=threshold)


def evaluate_staleness(
    people: Iterable[Person], today: date, priority_days: int = 14, normal_days: int = 28
) -> list[StalenessDue]:
    """One grouped notification per priority tier that has stale contacts."""
    groups: dict[PriorityLevel, list[Person]] = {level: [] for level in PriorityLevel}
    for person in people:
        if is_stale(person, today, priority_days, normal_days):
            groups[person.priority_level].append(person)
    return [
        StalenessDue(
            priority=level,
            threshold_days=staleness_threshold(level, priority_days, normal_days),
            people=members,
        )
        for level, members in groups.items()
        if members
    ]
