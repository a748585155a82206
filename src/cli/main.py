"""taskdeck command line interface (Typer + Rich).

One-shot commands (`list`, `add`, `edit`, `done`, `rm`) open a workspace,
sync it, run a single command through the history engine and exit. `shell`
keeps a workspace alive so undo/redo work across lines.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

import typer
from pydantic import ValidationError
from rich.console import Console

from adapters.logging_setup import configure_logging
from adapters.notifier import ConsoleNotifier
from cli import doctor
from cli.shell import TaskShell
from cli.ui_components import build_tasks_table
from core.config import AppSettings, GatewayKind, RollbackPolicy
from core.domain.errors import TaskdeckError
from core.domain.models import TaskDraft, TaskPatch, TaskPriority
from core.services.workspace import TaskWorkspace

T = TypeVar("T")

app = typer.Typer(no_args_is_help=True, help="Tasks with undo/redo over an optimistic local store.")
app.add_typer(doctor.app, name="doctor")

_console = Console()
_err_console = Console(stderr=True)


@app.callback()
def main(
    ctx: typer.Context,
    gateway: GatewayKind | None = typer.Option(None, "--gateway", "-g", help="Backend: memory, json or http."),
    data_file: Path | None = typer.Option(None, "--data-file", help="JSON file for the json backend."),
    api_base_url: str | None = typer.Option(None, "--api", help="Base URL for the http backend."),
    rollback: RollbackPolicy | None = typer.Option(None, "--rollback", help="Rollback scope: store or entity."),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR."),
) -> None:
    overrides = {
        "gateway": gateway,
        "data_file": data_file,
        "api_base_url": api_base_url,
        "rollback_policy": rollback,
        "log_level": log_level,
    }
    try:
        settings = AppSettings(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    configure_logging(settings.log_level, console=_err_console)
    ctx.obj = settings


def _settings(ctx: typer.Context) -> AppSettings:
    return ctx.obj if isinstance(ctx.obj, AppSettings) else AppSettings()


def _run(settings: AppSettings, action: Callable[[TaskWorkspace], Awaitable[T]]) -> T:
    """Open a workspace, sync it, run `action` and close it."""

    notifier = ConsoleNotifier(_err_console)

    async def _session() -> T:
        workspace = TaskWorkspace.create(settings, notifier=notifier)
        try:
            await workspace.start()
            return await action(workspace)
        finally:
            await workspace.aclose()

    try:
        return asyncio.run(_session())
    except TaskdeckError as exc:
        if exc not in notifier.error_log:
            _err_console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc


def _draft(**fields: object) -> TaskDraft:
    try:
        return TaskDraft.model_validate({k: v for k, v in fields.items() if v is not None})
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("list")
def list_tasks(
    ctx: typer.Context,
    open_only: bool = typer.Option(False, "--open", help="Hide completed tasks."),
) -> None:
    """Show tasks."""

    async def _action(ws: TaskWorkspace) -> None:
        tasks = [t for t in ws.tasks() if not (open_only and t.completed)]
        _console.print(build_tasks_table(tasks))

    _run(_settings(ctx), _action)


@app.command()
def add(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Task title."),
    description: str | None = typer.Option(None, "--description", "-d"),
    priority: TaskPriority = typer.Option(TaskPriority.MEDIUM, "--priority", "-p"),
    due: datetime | None = typer.Option(None, "--due", formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M"]),
    project: str | None = typer.Option(None, "--project"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Repeatable."),
) -> None:
    """Create a task."""

    draft = _draft(
        title=title,
        description=description,
        priority=priority,
        due_date=due,
        project_id=project,
        tags=tag,
    )

    async def _action(ws: TaskWorkspace) -> None:
        task = await ws.add_task(draft)
        _console.print(f"Added [cyan]{task.id[:8]}[/cyan] {task.title}")

    _run(_settings(ctx), _action)


@app.command()
def edit(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Task id or unique id prefix."),
    title: str | None = typer.Option(None, "--title"),
    description: str | None = typer.Option(None, "--description", "-d"),
    priority: TaskPriority | None = typer.Option(None, "--priority", "-p"),
    due: datetime | None = typer.Option(None, "--due", formats=["%Y-%m-%d", "%Y-%m-%dT%H:%M"]),
    project: str | None = typer.Option(None, "--project"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Replaces all tags. Repeatable."),
) -> None:
    """Update fields of a task."""

    fields = {
        "title": title,
        "description": description,
        "priority": priority,
        "due_date": due,
        "project_id": project,
        "tags": tag or None,
    }
    try:
        patch = TaskPatch.model_validate({k: v for k, v in fields.items() if v is not None})
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if patch.is_empty():
        raise typer.BadParameter("Nothing to change: pass at least one option.")

    async def _action(ws: TaskWorkspace) -> None:
        task = await ws.edit_task(ws.resolve(ref).id, patch)
        _console.print(f"Updated [cyan]{task.id[:8]}[/cyan] {task.title}")

    _run(_settings(ctx), _action)


@app.command()
def done(ctx: typer.Context, ref: str = typer.Argument(..., help="Task id or unique id prefix.")) -> None:
    """Toggle completion of a task."""

    async def _action(ws: TaskWorkspace) -> None:
        task = await ws.toggle_task(ws.resolve(ref).id)
        _console.print(f"[cyan]{task.id[:8]}[/cyan] {task.title} is now {'done' if task.completed else 'open'}")

    _run(_settings(ctx), _action)


@app.command()
def rm(ctx: typer.Context, ref: str = typer.Argument(..., help="Task id or unique id prefix.")) -> None:
    """Delete a task."""

    async def _action(ws: TaskWorkspace) -> None:
        task = ws.resolve(ref)
        await ws.remove_task(task.id)
        _console.print(f"Deleted [cyan]{task.id[:8]}[/cyan] {task.title}")

    _run(_settings(ctx), _action)


@app.command()
def shell(ctx: typer.Context) -> None:
    """Interactive session with undo/redo."""

    settings = _settings(ctx)
    notifier = ConsoleNotifier(_console)

    async def _session() -> None:
        workspace = TaskWorkspace.create(settings, notifier=notifier)
        try:
            await TaskShell(workspace, _console, notifier.error_log).run()
        finally:
            await workspace.aclose()

    try:
        asyncio.run(_session())
    except TaskdeckError as exc:
        if exc not in notifier.error_log:
            _err_console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc


def run() -> None:
    app()


if __name__ == "__main__":
    run()
