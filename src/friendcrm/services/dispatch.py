"""
Reminder engine: one tick evaluates every category, renders the due
notifications, sends them and commits the "sent" state for each accepted one.

Failures are isolated per notification and reported on the returned
``TickReport``; nothing raised by a single item escapes the tick.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Sequence

from friendcrm.config import Settings
from friendcrm.errors import StoreError
from friendcrm.models import (
    DispatchResult,
    DispatchStatus,
    DueNotification,
    EventDue,
    Notification,
    ReminderCategory,
    SituationDue,
    StalenessDue,
    TickReport,
)
from friendcrm.services.delivery import Notifier
from friendcrm.services.evaluators import (
    evaluate_events,
    evaluate_situations,
    evaluate_staleness,
    local_date,
)
from friendcrm.services.formatter import render
from friendcrm.store import EntityStore

logger = logging.getLogger(__name__)

Evaluator = Callable[[date], Sequence[DueNotification]]


class ReminderEngine:
    def __init__(self, store: EntityStore, notifier: Notifier, settings: Settings) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings
        self._tick_lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._tick_lock.locked()

    def today(self, now: datetime) -> date:
        return local_date(now, self.settings.tz)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def due_events(self, today: date) -> list[EventDue]:
        events = self.store.list_events_with_exact_date_in_window(self.settings.event_lookahead_days, today)
        return evaluate_events(events, today)

    def due_situations(self, today: date) -> list[SituationDue]:
        return evaluate_situations(self.store.list_active_situations(), today, self.settings.tz)

    def due_staleness(self, today: date) -> list[StalenessDue]:
        people = self.store.list_people_stale(self.settings.priority_days, self.settings.normal_days, today)
        return evaluate_staleness(people, today, self.settings.priority_days, self.settings.normal_days)

    def _pipelines(self) -> list[tuple[ReminderCategory, Evaluator]]:
        return [
            (ReminderCategory.EVENT, self.due_events),
            (ReminderCategory.SITUATION, self.due_situations),
            (ReminderCategory.LAST_CONTACT, self.due_staleness),
        ]

    def preview(self, now: datetime) -> list[tuple[DueNotification, Notification]]:
        """Everything that would be sent at ``now``, rendered, without sending or committing."""
        today = self.today(now)
        due: list[DueNotification] = []
        for _, evaluate in self._pipelines():
            due.extend(evaluate(today))
        return [(item, render(item)) for item in due]

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def run_tick(self, now: datetime) -> TickReport:
        report = TickReport(now=now)
        if self._tick_lock.locked():
            logger.warning("Reminder tick still in progress, skipping tick at %s", now.isoformat())
            report.skipped = True
            return report

        async with self._tick_lock:
            today = self.today(now)
            logger.info("Running friend reminders check for %s", today.isoformat())
            outcomes = await asyncio.gather(
                *(self._run_pipeline(category, evaluate, today, now, report) for category, evaluate in self._pipelines())
            )
            for results in outcomes:
                report.results.extend(results)

        logger.info(
            "Friend reminders check complete: %d sent, %d failed, %d pipeline errors",
            report.sent,
            report.failed,
            len(report.pipeline_errors),
        )
        return report

    async def _run_pipeline(
        self,
        category: ReminderCategory,
        evaluate: Evaluator,
        today: date,
        now: datetime,
        report: TickReport,
    ) -> list[DispatchResult]:
        try:
            due = await asyncio.to_thread(evaluate, today)
        except StoreError as exc:
            logger.error("Could not load %s reminders: %s", category.value, exc)
            report.pipeline_errors[category.value] = str(exc)
            return []
        except Exception as exc:
            logger.exception("Evaluating %s reminders failed", category.value)
            report.pipeline_errors[category.value] = f"{type(exc).__name__}: {exc}"
            return []

        if not due:
            logger.info("No %s reminders due", category.value)
            return []
        return list(await asyncio.gather(*(self._dispatch(item, now) for item in due)))

    async def _dispatch(self, due: DueNotification, now: datetime) -> DispatchResult:
        rendered = render(due)
        result = DispatchResult(
            category=due.category,
            entity_id=due.entity_id,
            person_ids=due.person_ids,
            status=DispatchStatus.SENT,
            subject=rendered.subject,
        )

        try:
            accepted = await asyncio.wait_for(
                self.notifier.notify(rendered.subject, rendered.message),
                timeout=self.settings.notify_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Timed out delivering %r after %ss", rendered.subject, self.settings.notify_timeout)
            result.status = DispatchStatus.TIMED_OUT
            result.error = f"timed out after {self.settings.notify_timeout}s"
            return result
        except Exception as exc:
            logger.exception("Failed to deliver %r", rendered.subject)
            result.status = DispatchStatus.DELIVERY_FAILED
            result.error = str(exc)
            return result

        if not accepted:
            logger.warning("Delivery of %r was not accepted", rendered.subject)
            result.status = DispatchStatus.DELIVERY_FAILED
            result.error = "rejected by notifier"
            return result

        try:
            await asyncio.to_thread(self._commit, due, rendered.message, now)
        except StoreError as exc:
            logger.error("Sent %r but could not record it: %s", rendered.subject, exc)
            result.status = DispatchStatus.STORE_FAILED
            result.error = str(exc)
            return result

        logger.info("✓ Sent %s reminder: %s", due.category.value, rendered.subject)
        return result

    def _commit(self, due: DueNotification, message: str, now: datetime) -> None:
        if isinstance(due, EventDue):
            event = due.event
            self.store.append_reminder_log(ReminderCategory.EVENT, event.person_id, event.id, None, message, now)
            self.store.mark_event_milestone_sent(event.id, due.milestone)
        elif isinstance(due, SituationDue):
            situation = due.situation
            self.store.append_reminder_log(
                ReminderCategory.SITUATION, situation.person_id, None, situation.id, message, now
            )
            self.store.mark_situation_reminder_sent(situation.id, now)
        elif isinstance(due, StalenessDue):
            # No per-person latch: a stale contact stays due until contact is recorded.
            for person in due.people:
                self.store.append_reminder_log(ReminderCategory.LAST_CONTACT, person.id, None, None, message, now)
        else:
            raise TypeError(f"Unsupported notification: {type(due).__name__}")
