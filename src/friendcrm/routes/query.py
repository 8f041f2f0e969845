from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from friendcrm.services.retrieval import answer

router = APIRouter(prefix="/query", tags=["query"])


class QueryIn(BaseModel):
    question: str
    today: date | None = None


@router.post("")
async def ask(request: Request, body: QueryIn):
    if not body.question.strip():
        raise HTTPException(status_code=422, detail="Question is empty")
    today = body.today or datetime.now(request.app.state.settings.tz).date()
    result = await answer(request.app.state.store, body.question, today)
    return {"type": result.query.kind.value, "answer": result.text}
