from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI

from friendcrm.config import Settings, load_settings
from friendcrm.routes import entries, events, people, query, reminders, situations
from friendcrm.scheduler import DailyScheduler
from friendcrm.services.delivery import Notifier, build_notifier
from friendcrm.services.dispatch import ReminderEngine
from friendcrm.store import EntityStore


def create_app(
    settings: Settings | None = None,
    store: EntityStore | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    settings = settings or load_settings()
    store = store or EntityStore(settings.db_path)
    store.init()
    engine = ReminderEngine(store, notifier or build_notifier(settings), settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        task = None
        if settings.scheduler_enabled:
            task = asyncio.create_task(DailyScheduler(engine, settings).run_forever())
        yield
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="FriendCRM", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.engine = engine

    app.include_router(people.router)
    app.include_router(events.router)
    app.include_router(situations.router)
    app.include_router(entries.router)
    app.include_router(reminders.router)
    app.include_router(query.router)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "tick_in_progress": engine.running}

    return app
