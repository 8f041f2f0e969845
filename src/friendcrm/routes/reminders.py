from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Request

router = APIRouter(prefix="/reminders", tags=["reminders"])


def _now(request: Request, at: datetime | None) -> datetime:
    """Evaluation time in the configured zone; ``at`` overrides the wall clock."""
    tz = request.app.state.settings.tz
    if at is None:
        return datetime.now(tz)
    return at.astimezone(tz) if at.tzinfo else at.replace(tzinfo=tz)


@router.get("/log")
async def reminder_log(request: Request, limit: int = 50):
    return request.app.state.store.list_reminder_log(limit)


@router.get("/due")
async def due_reminders(request: Request, at: datetime | None = None):
    preview = request.app.state.engine.preview(_now(request, at))
    return [
        {
            "category": due.category.value,
            "person_ids": due.person_ids,
            "subject": rendered.subject,
            "message": rendered.message,
        }
        for due, rendered in preview
    ]


@router.post("/run")
async def run_reminders(request: Request, at: datetime | None = None):
    report = await request.app.state.engine.run_tick(_now(request, at))
    return report.to_dict()
