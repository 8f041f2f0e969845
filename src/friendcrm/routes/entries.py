from __future__ import annotations

from datetime import date, datetime, timedelta

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from friendcrm.services.extraction import ingest_entry

router = APIRouter(prefix="/entries", tags=["entries"])


class EntryIn(BaseModel):
    text: str
    recorded_at: datetime | None = None


@router.get("")
async def list_entries(
    request: Request, on: date | None = None, days: int | None = None, limit: int | None = None
):
    """Entries for one day (``on``), or from the last ``days`` days, oldest first."""
    store = request.app.state.store
    if on is not None:
        return store.list_entries(on_date=on, limit=limit)
    if days is not None:
        if days < 1:
            raise HTTPException(status_code=422, detail="days must be positive")
        today = datetime.now(request.app.state.settings.tz).date()
        return store.list_entries(since=today - timedelta(days=days), limit=limit)
    return store.list_entries(limit=limit)


@router.post("", status_code=201)
async def create_entry(request: Request, body: EntryIn):
    if not body.text.strip():
        raise HTTPException(status_code=422, detail="Entry text is empty")
    tz = request.app.state.settings.tz
    recorded_at = body.recorded_at or datetime.now(tz)
    if recorded_at.tzinfo is not None:
        recorded_at = recorded_at.astimezone(tz)
    return await ingest_entry(request.app.state.store, body.text, recorded_at)
