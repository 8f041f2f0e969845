from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from friendcrm.models import PriorityLevel, Relationship
from friendcrm.store import EntityStore

router = APIRouter(prefix="/people", tags=["people"])


class PersonIn(BaseModel):
    name: str = Field(min_length=1)
    aliases: list[str] = []
    relationship: Relationship = Relationship.UNKNOWN
    priority_level: PriorityLevel = PriorityLevel.NORMAL


class ContactIn(BaseModel):
    on: date | None = None


def _store(request: Request) -> EntityStore:
    return request.app.state.store


@router.get("")
async def list_people(request: Request):
    return _store(request).list_people()


@router.post("", status_code=201)
async def create_person(request: Request, body: PersonIn):
    return _store(request).create_person(body.name, body.aliases, body.relationship, body.priority_level)


@router.get("/{person_id}")
async def person_detail(request: Request, person_id: int):
    store = _store(request)
    person = store.get_person(person_id)
    if not person:
        raise HTTPException(status_code=404, detail="Person not found")
    situations = [s for s in store.list_situations() if s.person_id == person_id]
    return {"person": person, "events": store.list_events(person_id), "situations": situations}


@router.post("/{person_id}/contact")
async def record_contact(request: Request, person_id: int, body: ContactIn | None = None):
    store = _store(request)
    if not store.get_person(person_id):
        raise HTTPException(status_code=404, detail="Person not found")
    on = body.on if body and body.on else datetime.now(request.app.state.settings.tz).date()
    advanced = store.record_contact(person_id, on)
    return {"person": store.get_person(person_id), "advanced": advanced}


@router.get("/{person_id}/entries")
async def person_entries(request: Request, person_id: int, limit: int | None = None):
    store = _store(request)
    if not store.get_person(person_id):
        raise HTTPException(status_code=404, detail="Person not found")
    return store.list_entries_for_person(person_id, limit)
