"""Command line interface for habitsync."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Awaitable, Optional, TypeVar

import click

from .config import BaseConfig
from .context import AppContext, create_app_context
from .errors import HabitSyncError
from .logging_config import setup_logging
from .models.habit import Frequency, Habit, utcnow
from .serializers import parse_timestamp

T = TypeVar("T")

FREQUENCY_CHOICE = click.Choice([f.value for f in Frequency], case_sensitive=False)


def _run(awaitable: Awaitable[T]) -> T:
    try:
        return asyncio.run(awaitable)  # type: ignore[arg-type]
    except HabitSyncError as exc:
        raise click.ClickException(exc.message) from exc


def _describe(app: AppContext, habit: Habit) -> str:
    metrics = app.habits.get_streak(habit)
    current = "" if app.habits.is_streak_current(habit) else " (stale)"
    return (
        f"{habit.id}  {habit.title}  [{habit.frequency.value}]  "
        f"streak {metrics.streak}{current}, best {metrics.best_streak}, total {metrics.total}"
    )


@click.group()
@click.option("--user", "user_id", default=None, help="Act as this user id.")
@click.pass_context
def cli(ctx: click.Context, user_id: Optional[str]) -> None:
    """Track habits and streaks against the configured backend."""

    config = BaseConfig()
    setup_logging(config)
    app = create_app_context(config)
    if user_id:
        app.session.sign_in(user_id)
    ctx.obj = app
    ctx.call_on_close(app.close)


@cli.command("list")
@click.pass_obj
def list_habits(app: AppContext) -> None:
    """Show active habits with their streaks."""

    habits = _run(app.habits.refresh())
    if not habits:
        click.echo("No habits yet. Add one with `habitsync add TITLE`.")
        return
    for habit in habits:
        click.echo(_describe(app, habit))


@cli.command("add")
@click.argument("title")
@click.option("--description", "-d", default=None)
@click.option("--frequency", "-f", type=FREQUENCY_CHOICE, default="DAILY", show_default=True)
@click.pass_obj
def add_habit(app: AppContext, title: str, description: Optional[str], frequency: str) -> None:
    """Create a habit."""

    habit = _run(
        app.habits.create_habit(
            None, {"title": title, "description": description, "frequency": frequency}
        )
    )
    click.echo(f"Created {habit.id}  {habit.title}")


@cli.command("done")
@click.argument("habit_id")
@click.option("--notes", "-n", default=None)
@click.option("--at", "completed_at", default=None, help="ISO timestamp to backfill.")
@click.pass_obj
def complete_habit(
    app: AppContext, habit_id: str, notes: Optional[str], completed_at: Optional[str]
) -> None:
    """Record a completion for HABIT_ID."""

    try:
        when = parse_timestamp(completed_at)
    except HabitSyncError as exc:
        raise click.BadParameter(exc.message, param_hint="--at") from exc
    completion = _run(app.habits.complete_habit(habit_id, None, completed_at=when, notes=notes))
    click.echo(f"Completed {habit_id} at {completion.completed_at.isoformat()} ({completion.id})")


@cli.command("undo")
@click.argument("completion_id")
@click.pass_obj
def undo_completion(app: AppContext, completion_id: str) -> None:
    """Delete completion COMPLETION_ID."""

    removed = _run(app.habits.delete_completion(completion_id, None))
    click.echo(f"Removed completion {removed.id} of {removed.habit_id}")


@cli.command("edit")
@click.argument("habit_id")
@click.option("--title", default=None)
@click.option("--description", default=None)
@click.option("--frequency", type=FREQUENCY_CHOICE, default=None)
@click.option("--color", default=None)
@click.pass_obj
def edit_habit(app: AppContext, habit_id: str, **options: Optional[str]) -> None:
    """Change a habit's title, description, frequency or color."""

    fields = {key: value for key, value in options.items() if value is not None}
    if not fields:
        raise click.UsageError("Nothing to change; pass at least one option.")
    habit = _run(app.habits.update_habit(habit_id, None, fields))
    click.echo(f"Updated {habit.id}  {habit.title}")


@cli.command("delete")
@click.argument("habit_id")
@click.confirmation_option(prompt="Delete this habit and its completions?")
@click.pass_obj
def delete_habit(app: AppContext, habit_id: str) -> None:
    """Delete HABIT_ID."""

    _run(app.habits.delete_habit(habit_id, None))
    click.echo(f"Deleted {habit_id}")


@cli.command("today")
@click.option("--yesterday", is_flag=True, default=False)
@click.pass_obj
def today(app: AppContext, yesterday: bool) -> None:
    """List completions recorded today (UTC)."""

    day = (utcnow() - timedelta(days=1)).date() if yesterday else None
    completions = _run(app.habits.completions_for_day(None, day))
    if not completions:
        click.echo("Nothing completed.")
        return
    for completion in completions:
        click.echo(f"{completion.completed_at.isoformat()}  {completion.habit_id}  {completion.id}")


@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.pass_obj
def serve(app: AppContext, host: str, port: int) -> None:
    """Run the REST API on the relational backend."""

    from .api import create_app

    create_app(app.config).run(host=host, port=port, debug=app.config.DEV_MODE)


@cli.command("issue-token")
@click.argument("user_id")
@click.option("--days", default=30, show_default=True, type=int)
@click.pass_obj
def issue_token(app: AppContext, user_id: str, days: int) -> None:
    """Print a bearer token for USER_ID to use with the REST backend."""

    from flask_jwt_extended import create_access_token

    from .api import create_app

    api = create_app(app.config)
    with api.app_context():
        click.echo(create_access_token(identity=user_id, expires_delta=timedelta(days=days)))


if __name__ == "__main__":
    cli()
