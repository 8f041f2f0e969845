from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

import asyncio
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from friendcrm.config import Settings, load_settings
from friendcrm.models import (
    EventType,
    PriorityLevel,
    Relationship,
    Severity,
    SituationType,
    coerce_enum,
)
from friendcrm.services.delivery import ConsoleNotifier, build_notifier
from friendcrm.services.dispatch import ReminderEngine
from friendcrm.store import EntityStore

app = typer.Typer(help="FriendCRM — keep up with the people you care about")
console = Console()


def _setup() -> tuple[Settings, EntityStore]:
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    store = EntityStore(settings.db_path)
    store.init()
    return settings, store


def _person_or_exit(store: EntityStore, name: str):
    person = store.find_person_by_name_or_alias(name)
    if person is None:
        console.print(f"[red]No person named {name!r}.[/red]")
        raise typer.Exit(code=1)
    return person


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Start the FriendCRM web server."""
    import uvicorn

    uvicorn.run("friendcrm.web:create_app", host=host, port=port, reload=reload, factory=True)


@app.command()
def tick(dry_run: bool = typer.Option(False, "--dry-run", help="Print reminders instead of sending them")) -> None:
    """Run one reminder check now."""
    settings, store = _setup()
    notifier = ConsoleNotifier(console) if dry_run else build_notifier(settings)
    engine = ReminderEngine(store, notifier, settings)
    report = asyncio.run(engine.run_tick(datetime.now(settings.tz)))

    if not report.results:
        console.print("[green]Nothing due today.[/green]")
    for result in report.results:
        style = "green" if result.ok else "red"
        console.print(f"[{style}]{result.status.value}[/{style}] {result.category.value}: {result.subject} {result.error}")
    for category, error in report.pipeline_errors.items():
        console.print(f"[red]{category} reminders could not be loaded: {error}[/red]")
    if report.failed or report.pipeline_errors:
        raise typer.Exit(code=1)


@app.command()
def schedule() -> None:
    """Run the daily reminder scheduler in the foreground."""
    from friendcrm.scheduler import DailyScheduler

    settings, store = _setup()
    engine = ReminderEngine(store, build_notifier(settings), settings)
    try:
        asyncio.run(DailyScheduler(engine, settings).run_forever())
    except KeyboardInterrupt:
        console.print("Scheduler stopped.")


@app.command()
def remind() -> None:
    """Show what would be sent today, without sending anything."""
    settings, store = _setup()
    engine = ReminderEngine(store, ConsoleNotifier(console), settings)
    preview = engine.preview(datetime.now(settings.tz))

    if not preview:
        console.print("[green]All clear! Nothing due today.[/green]")
        return

    table = Table(title="Due Reminders")
    table.add_column("Category", style="magenta")
    table.add_column("Subject", style="cyan")
    table.add_column("Message", style="white")
    for due, rendered in preview:
        table.add_row(due.category.value, rendered.subject, rendered.message)
    console.print(table)


@app.command("add-person")
def add_person(
    name: str,
    relationship: str = typer.Option("friend", help="friend, family, coworker or unknown"),
    priority: str = typer.Option("normal", help="high or normal"),
    alias: list[str] = typer.Option([], "--alias", help="Alternative name (repeatable)"),
) -> None:
    """Add someone to keep in touch with."""
    _, store = _setup()
    person = store.create_person(
        name,
        alias,
        coerce_enum(Relationship, relationship, Relationship.UNKNOWN),
        coerce_enum(PriorityLevel, priority, PriorityLevel.NORMAL),
    )
    console.print(f"Added [cyan]{person.name}[/cyan] (#{person.id})")


@app.command("add-event")
def add_event(
    person: str,
    description: str,
    on: Optional[str] = typer.Option(None, "--on", help="Exact date (YYYY-MM-DD)"),
    approx: str = typer.Option("", help="Approximate date, e.g. 'next month'"),
    event_type: str = typer.Option("other", "--type", help="birthday, wedding, trip, interview, surgery, other"),
    recurring: bool = typer.Option(False, help="Recurs every year"),
) -> None:
    """Record an upcoming event in someone's life."""
    _, store = _setup()
    target = _person_or_exit(store, person)
    event = store.create_event(
        target.id,
        description,
        event_type=coerce_enum(EventType, event_type, EventType.OTHER),
        event_date=date.fromisoformat(on) if on else None,
        event_date_approximate=approx,
        is_recurring=recurring,
    )
    console.print(f"Added event #{event.id} for [cyan]{target.name}[/cyan]")


@app.command("add-situation")
def add_situation(
    person: str,
    description: str,
    situation_type: str = typer.Option("other", "--type", help="breakup, sick_family, wedding_planning, new_job, tough_time, other"),
    severity: str = typer.Option("medium", help="high, medium or low"),
    started: Optional[str] = typer.Option(None, help="Start date (YYYY-MM-DD), defaults to today"),
) -> None:
    """Record an ongoing situation where someone could use support."""
    settings, store = _setup()
    target = _person_or_exit(store, person)
    situation = store.create_situation(
        target.id,
        description,
        started_at=date.fromisoformat(started) if started else datetime.now(settings.tz).date(),
        situation_type=coerce_enum(SituationType, situation_type, SituationType.OTHER),
        severity=coerce_enum(Severity, severity, Severity.MEDIUM),
    )
    console.print(f"Added situation #{situation.id} for [cyan]{target.name}[/cyan]")


@app.command()
def resolve(situation_id: int) -> None:
    """Mark a situation as resolved; it gets no further reminders."""
    settings, store = _setup()
    if store.resolve_situation(situation_id, datetime.now(settings.tz).date()):
        console.print(f"Situation #{situation_id} resolved.")
    else:
        console.print(f"[yellow]Situation #{situation_id} not found or already resolved.[/yellow]")


@app.command()
def contact(
    person: str,
    on: Optional[str] = typer.Option(None, "--on", help="Date of contact (YYYY-MM-DD), defaults to today"),
) -> None:
    """Record that you were in touch with someone."""
    settings, store = _setup()
    target = _person_or_exit(store, person)
    when = date.fromisoformat(on) if on else datetime.now(settings.tz).date()
    if store.record_contact(target.id, when):
        console.print(f"Last contact with [cyan]{target.name}[/cyan] set to {when.isoformat()}")
    else:
        console.print(f"[yellow]{target.name} already has a more recent contact.[/yellow]")


@app.command()
def ingest(text: str) -> None:
    """Extract people, events and situations from a journal entry."""
    from friendcrm.services.extraction import ingest_entry

    settings, store = _setup()
    summary = asyncio.run(ingest_entry(store, text, datetime.now(settings.tz)))
    console.print(
        f"Entry #{summary.entry_id}: {len(summary.people)} people, "
        f"{len(summary.events)} events, {len(summary.situations)} situations"
    )
    for person in summary.people:
        console.print(f"  • {person.name}")


@app.command()
def seed(path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Lines of name|aliases|relationship")) -> None:
    """Upsert high-priority people from a file.

    Each line is ``name|alias1,alias2|relationship``; blank lines and lines
    starting with ``#`` are ignored.
    """
    _, store = _setup()
    count = 0
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        parts = [p.strip() for p in line.split("|")]
        name = parts[0]
        aliases = [a.strip() for a in parts[1].split(",") if a.strip()] if len(parts) > 1 else []
        relationship = coerce_enum(Relationship, parts[2], Relationship.FRIEND) if len(parts) > 2 else Relationship.FRIEND
        store.upsert_priority_person(name, aliases, relationship, PriorityLevel.HIGH)
        count += 1
    console.print(f"Seeded {count} priority people.")


@app.command()
def log(limit: int = typer.Option(20, help="Number of entries to show")) -> None:
    """Show recently sent reminders."""
    _, store = _setup()
    rows = store.list_reminder_log(limit)
    if not rows:
        console.print("No reminders sent yet.")
        return

    table = Table(title="Reminder Log")
    table.add_column("Sent", style="yellow")
    table.add_column("Type", style="magenta")
    table.add_column("Person", style="cyan")
    table.add_column("Message", style="white")
    names = {p.id: p.name for p in store.list_people()}
    for row in rows:
        table.add_row(
            row.sent_at.isoformat(timespec="minutes") if row.sent_at else "—",
            row.category.value,
            names.get(row.person_id, "—"),
            row.message.splitlines()[0] if row.message else "",
        )
    console.print(table)


@app.command()
def show(person: str) -> None:
    """Everything known about someone: events, situations and recent updates."""
    from friendcrm.services.retrieval import format_person_report, person_report

    settings, store = _setup()
    report = person_report(store, person)
    if report is None:
        console.print(f"[yellow]I don't have any information about {person} yet.[/yellow]")
        raise typer.Exit(code=1)
    console.print(format_person_report(report, datetime.now(settings.tz).date()), markup=False)


@app.command()
def recent(days: int = typer.Option(7, help="How many days back to look")) -> None:
    """List journal entries from the last few days."""
    from friendcrm.services.retrieval import entries_since

    settings, store = _setup()
    entries = entries_since(store, days, datetime.now(settings.tz).date())
    if not entries:
        console.print(f"No entries in the last {days} days.")
        return

    table = Table(title=f"Last {days} days")
    table.add_column("Recorded", style="yellow")
    table.add_column("Entry", style="white")
    for entry in entries:
        table.add_row(
            entry.recorded_at.isoformat(timespec="minutes") if entry.recorded_at else "—",
            entry.text,
        )
    console.print(table)
    console.print(f"Total: {len(entries)} entries")


@app.command()
def ask(question: str) -> None:
    """Ask about a person, a day or recent activity in plain English."""
    from friendcrm.services.retrieval import answer

    settings, store = _setup()
    result = asyncio.run(answer(store, question, datetime.now(settings.tz).date()))
    console.print(result.text, markup=False)
