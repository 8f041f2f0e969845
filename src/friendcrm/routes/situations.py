from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from friendcrm.models import Severity, SituationStatus, SituationType
from friendcrm.store import EntityStore

router = APIRouter(prefix="/situations", tags=["situations"])


class SituationIn(BaseModel):
    person_id: int
    description: str = Field(min_length=1)
    situation_type: SituationType = SituationType.OTHER
    severity: Severity = Severity.MEDIUM
    started_at: date | None = None


def _store(request: Request) -> EntityStore:
    return request.app.state.store


def _today(request: Request) -> date:
    return datetime.now(request.app.state.settings.tz).date()


@router.get("")
async def list_situations(request: Request, status: SituationStatus | None = None):
    return _store(request).list_situations(status)


@router.post("", status_code=201)
async def create_situation(request: Request, body: SituationIn):
    store = _store(request)
    if not store.get_person(body.person_id):
        raise HTTPException(status_code=404, detail="Person not found")
    return store.create_situation(
        body.person_id,
        body.description,
        started_at=body.started_at or _today(request),
        situation_type=body.situation_type,
        severity=body.severity,
    )


@router.post("/{situation_id}/resolve")
async def resolve_situation(request: Request, situation_id: int):
    store = _store(request)
    if not store.get_situation(situation_id):
        raise HTTPException(status_code=404, detail="Situation not found")
    store.resolve_situation(situation_id, _today(request))
    return store.get_situation(situation_id)
