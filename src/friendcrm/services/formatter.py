from __future__ import annotations

from friendcrm.models import (
    DueNotification,
    EventDue,
    Milestone,
    Notification,
    PriorityLevel,
    SituationDue,
    SituationType,
    StalenessDue,
)

EARLY = "early"
LATER = "later"
ANY = "any"

# Situation types whose advice changes after this many days.
_PHASE_THRESHOLDS = {
    SituationType.BREAKUP: 14,
    SituationType.NEW_JOB: 30,
}

SUPPORT_TIPS = {
    (SituationType.BREAKUP, EARLY): "Early days - just listen and be present. Avoid giving advice unless asked.",
    (SituationType.BREAKUP, LATER): "Check in on how they're doing. Invite them to do something fun.",
    (SituationType.SICK_FAMILY, ANY): (
        'Ask specific questions: "How is [family member] doing?" "How are YOU holding up?" '
        "Offer concrete help."
    ),
    (SituationType.WEDDING_PLANNING, ANY): "Be excited for them! Ask how planning is going. Offer to help if you can.",
    (SituationType.NEW_JOB, EARLY): "Ask how the first few weeks are going. Be encouraging.",
    (SituationType.NEW_JOB, LATER): "Check in on how they're settling in.",
    (SituationType.TOUGH_TIME, ANY): 'Reach out with a simple "Thinking of you" message. Offer to chat or hang out.',
    (SituationType.OTHER, ANY): "Send a quick message to see how things are going.",
}

_EVENT_SUBJECTS = {
    Milestone.ONE_WEEK: "Event Reminder (1 Week)",
    Milestone.ONE_DAY: "Event Reminder (Tomorrow!)",
    Milestone.DAY_OF: "Event Reminder (TODAY!)",
}

_STALENESS_SUBJECTS = {
    PriorityLevel.HIGH: "Check In With Close Friends",
    PriorityLevel.NORMAL: "Check In With Friends",
}


def support_phase(situation_type: SituationType, elapsed_days: int) -> str:
    threshold = _PHASE_THRESHOLDS.get(situation_type)
    if threshold is None:
        return ANY
    return EARLY if elapsed_days < threshold else LATER


def support_tip(situation_type: SituationType, elapsed_days: int) -> str:
    return SUPPORT_TIPS[(situation_type, support_phase(situation_type, elapsed_days))]


def describe_days(days: int) -> str:
    """Human label for a threshold, e.g. 14 -> '2 weeks'."""
    if days % 7 == 0:
        weeks = days // 7
        return f"{weeks} week" if weeks == 1 else f"{weeks} weeks"
    return "1 day" if days == 1 else f"{days} days"


def format_event(due: EventDue) -> Notification:
    event = due.event
    message = (
        f"🎉 Reminder: {event.description}\n"
        "\n"
        f"Who: {event.person_name} ({event.relationship.value})\n"
        f"When: {event.event_date.isoformat()} ({due.milestone.label})\n"
        f"Type: {event.event_type.value}\n"
        "\n"
        "Consider reaching out to show your support!"
    )
    return Notification(subject=_EVENT_SUBJECTS[due.milestone], message=message)


def format_situation(due: SituationDue) -> Notification:
    situation = due.situation
    message = (
        f"💙 {situation.person_name} needs your support\n"
        "\n"
        f"Situation: {situation.description}\n"
        f"Severity: {situation.severity.value}\n"
        f"Duration: {due.elapsed_days} days\n"
        "\n"
        f"{support_tip(situation.situation_type, due.elapsed_days)}\n"
        "\n"
        "Consider reaching out today!"
    )
    return Notification(subject="Friend Support Reminder", message=message)


def format_staleness(due: StalenessDue) -> Notification:
    close = "close friends" if due.priority is PriorityLevel.HIGH else "friends"
    lines = [f"📱 You haven't talked to these {close} in over {describe_days(due.threshold_days)}:", ""]
    for person in due.people:
        last = (
            f"Last contact: {person.last_contact_date.isoformat()}"
            if person.last_contact_date
            else "Last contact: never"
        )
        lines.append(f"• {person.name} ({person.relationship.value}) - {last}")
    lines += ["", "Consider reaching out to catch up!"]
    return Notification(subject=_STALENESS_SUBJECTS[due.priority], message="\n".join(lines))


def render(due: DueNotification) -> Notification:
    if isinstance(due, EventDue):
        return format_event(due)
    if isinstance(due, SituationDue):
        return format_situation(due)
    if isinstance(due, StalenessDue):
        return format_staleness(due)
    raise TypeError(f"Unsupported notification: {type(due).__name__}")
