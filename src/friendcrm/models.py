from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import TypeVar, Union


class Relationship(str, Enum):
    FRIEND = "friend"
    FAMILY = "family"
    COWORKER = "coworker"
    UNKNOWN = "unknown"


class PriorityLevel(str, Enum):
    HIGH = "high"
    NORMAL = "normal"


class EventType(str, Enum):
    BIRTHDAY = "birthday"
    WEDDING = "wedding"
    TRIP = "trip"
    INTERVIEW = "interview"
    SURGERY = "surgery"
    OTHER = "other"


class SituationType(str, Enum):
    BREAKUP = "breakup"
    SICK_FAMILY = "sick_family"
    WEDDING_PLANNING = "wedding_planning"
    NEW_JOB = "new_job"
    TOUGH_TIME = "tough_time"
    OTHER = "other"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.HIGH: 2, Severity.MEDIUM: 1, Severity.LOW: 0}


class SituationStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class ReminderCategory(str, Enum):
    EVENT = "event"
    SITUATION = "situation"
    LAST_CONTACT = "last_contact"


class Milestone(str, Enum):
    ONE_WEEK = "1week"
    ONE_DAY = "1day"
    DAY_OF = "dayof"

    @property
    def days_before(self) -> int:
        return _MILESTONE_DAYS[self]

    @property
    def label(self) -> str:
        return _MILESTONE_LABELS[self]

    @property
    def flag(self) -> str:
        """Name of the Event attribute latching this milestone."""
        return f"sent_{self.value}"


_MILESTONE_DAYS = {Milestone.ONE_WEEK: 7, Milestone.ONE_DAY: 1, Milestone.DAY_OF: 0}
_MILESTONE_LABELS = {Milestone.ONE_WEEK: "1 week", Milestone.ONE_DAY: "1 day", Milestone.DAY_OF: "today"}

E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: type[E], value: object, default: E) -> E:
    """Map a loose string onto ``enum_cls``, falling back to ``default``."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default


# --- Entities ---


@dataclass
class Person:
    id: int = 0
    name: str = ""
    aliases: list[str] = field(default_factory=list)
    relationship: Relationship = Relationship.UNKNOWN
    priority_level: PriorityLevel = PriorityLevel.NORMAL
    last_contact_date: date | None = None


@dataclass
class Event:
    id: int = 0
    person_id: int = 0
    event_type: EventType = EventType.OTHER
    description: str = ""
    event_date: date | None = None
    event_date_approximate: str = ""
    is_recurring: bool = False
    sent_1week: bool = False
    sent_1day: bool = False
    sent_dayof: bool = False

    def milestone_sent(self, milestone: Milestone) -> bool:
        return getattr(self, milestone.flag)


@dataclass
class EventWithPerson(Event):
    # joined fields
    person_name: str = ""
    relationship: Relationship = Relationship.UNKNOWN


@dataclass
class Situation:
    id: int = 0
    person_id: int = 0
    situation_type: SituationType = SituationType.OTHER
    description: str = ""
    severity: Severity = Severity.MEDIUM
    status: SituationStatus = SituationStatus.ACTIVE
    started_at: date | None = None
    resolved_at: date | None = None
    last_reminder_sent: datetime | None = None


@dataclass
class SituationWithPerson(Situation):
    # joined fields
    person_name: str = ""
    relationship: Relationship = Relationship.UNKNOWN


@dataclass
class ReminderLog:
    id: int = 0
    category: ReminderCategory = ReminderCategory.EVENT
    person_id: int | None = None
    event_id: int | None = None
    situation_id: int | None = None
    message: str = ""
    sent_at: datetime | None = None


@dataclass
class Entry:
    id: int = 0
    recorded_at: datetime | None = None
    text: str = ""


# --- Due notifications ---


@dataclass
class EventDue:
    event: EventWithPerson
    milestone: Milestone
    category: ReminderCategory = field(default=ReminderCategory.EVENT, init=False)

    @property
    def entity_id(self) -> int:
        return self.event.id

    @property
    def person_ids(self) -> list[int]:
        return [self.event.person_id]


@dataclass
class SituationDue:
    situation: SituationWithPerson
    elapsed_days: int
    interval_days: int
    category: ReminderCategory = field(default=ReminderCategory.SITUATION, init=False)

    @property
    def entity_id(self) -> int:
        return self.situation.id

    @property
    def person_ids(self) -> list[int]:
        return [self.situation.person_id]


@dataclass
class StalenessDue:
    priority: PriorityLevel
    threshold_days: int
    people: list[Person] = field(default_factory=list)
    category: ReminderCategory = field(default=ReminderCategory.LAST_CONTACT, init=False)

    @property
    def entity_id(self) -> None:
        return None

    @property
    def person_ids(self) -> list[int]:
        return [p.id for p in self.people]


DueNotification = Union[EventDue, SituationDue, StalenessDue]


@dataclass
class Notification:
    subject: str
    message: str


# --- Dispatch results ---


class DispatchStatus(str, Enum):
    SENT = "sent"
    DELIVERY_FAILED = "delivery_failed"
    TIMED_OUT = "timed_out"
    STORE_FAILED = "store_failed"


@dataclass
class DispatchResult:
    category: ReminderCategory
    entity_id: int | None
    person_ids: list[int]
    status: DispatchStatus
    subject: str = ""
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status is DispatchStatus.SENT


@dataclass
class TickReport:
    now: datetime
    skipped: bool = False
    results: list[DispatchResult] = field(default_factory=list)
    # category -> error message for pipelines whose snapshot read failed
    pipeline_errors: dict[str, str] = field(default_factory=dict)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)

    def to_dict(self) -> dict:
        return {
            "now": self.now.isoformat(),
            "skipped": self.skipped,
            "sent": self.sent,
            "failed": self.failed,
            "results": [
                {**asdict(r), "category": r.category.value, "status": r.status.value}
                for r in self.results
            ],
            "pipeline_errors": dict(self.pipeline_errors),
        }


# --- Extraction ---


@dataclass
class ExtractedPerson:
    name: str
    aliases: list[str] = field(default_factory=list)
    relationship: Relationship = Relationship.UNKNOWN


@dataclass
class ExtractedEvent:
    person_name: str
    description: str
    event_type: EventType = EventType.OTHER
    event_date: date | None = None
    event_date_approximate: str = ""
    is_recurring: bool = False


@dataclass
class ExtractedSituation:
    person_name: str
    description: str
    situation_type: SituationType = SituationType.OTHER
    severity: Severity = Severity.MEDIUM


@dataclass
class ExtractionResult:
    people: list[ExtractedPerson] = field(default_factory=list)
    events: list[ExtractedEvent] = field(default_factory=list)
    situations: list[ExtractedSituation] = field(default_factory=list)


# --- Retrieval ---


class QueryKind(str, Enum):
    PERSON = "person"
    DATE = "date"
    RECENT = "recent"
    UNKNOWN = "unknown"


@dataclass
class ParsedQuery:
    kind: QueryKind = QueryKind.UNKNOWN
    person_name: str = ""
    on_date: date | None = None
    days: int = 7
