from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from friendcrm.models import EventType
from friendcrm.store import EntityStore

router = APIRouter(prefix="/events", tags=["events"])


class EventIn(BaseModel):
    person_id: int
    description: str = Field(min_length=1)
    event_type: EventType = EventType.OTHER
    event_date: date | None = None
    event_date_approximate: str = ""
    is_recurring: bool = False


def _store(request: Request) -> EntityStore:
    return request.app.state.store


@router.get("")
async def list_events(request: Request, person_id: int | None = None):
    return _store(request).list_events(person_id)


@router.post("", status_code=201)
async def create_event(request: Request, body: EventIn):
    store = _store(request)
    if not store.get_person(body.person_id):
        raise HTTPException(status_code=404, detail="Person not found")
    return store.create_event(
        body.person_id,
        body.description,
        event_type=body.event_type,
        event_date=body.event_date,
        event_date_approximate=body.event_date_approximate,
        is_recurring=body.is_recurring,
    )


@router.get("/{event_id}")
async def event_detail(request: Request, event_id: int):
    event = _store(request).get_event(event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event
