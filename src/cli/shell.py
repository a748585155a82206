"""Interactive shell.

One-shot CLI commands build and drop a workspace per invocation, so history
does not survive between them. The shell keeps a single `TaskWorkspace` alive
for the whole session, which is what makes `undo` / `redo` meaningful.
"""

from __future__ import annotations

import asyncio
import shlex
from typing import Any

from pydantic import ValidationError
from rich.console import Console

from adapters.notifier import ErrorLog
from cli.ui_components import build_history_panel, build_tasks_table, print_banner
from core.domain.errors import TaskdeckError
from core.domain.models import TaskDraft, TaskPatch
from core.services.workspace import TaskWorkspace

SHELL_HELP = """\
[bold]Commands[/bold]
  add <title>                  create a task
  edit <id> field=value ...    update fields (title, priority, due_date, tags=a,b, ...)
  done <id>                    toggle completion
  rm <id>                      delete a task
  undo / redo                  walk the history
  list                         show tasks
  history                      show the undo log
  help                         this help
  quit                         leave the shell
Task ids can be shortened to any unique prefix.
"""

_NULL_WORDS = {"", "none", "null", "-"}


def parse_assignments(args: list[str]) -> TaskPatch:
    """Turn `["title=Buy bread", "tags=home,errands"]` into a `TaskPatch`."""

    data: dict[str, Any] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected field=value, got {arg!r}")
        if key == "tags":
            data[key] = [tag.strip() for tag in value.split(",") if tag.strip()]
        elif value.strip().lower() in _NULL_WORDS:
            data[key] = None
        else:
            data[key] = value
    if not data:
        raise ValueError("Nothing to change")
    return TaskPatch.model_validate(data)


class TaskShell:
    """Read-eval-print loop over one workspace."""

    def __init__(self, workspace: TaskWorkspace, console: Console, error_log: ErrorLog) -> None:
        self.workspace = workspace
        self.console = console
        self.error_log = error_log

    async def run(self) -> None:
        print_banner(self.console)
        await self.workspace.start()
        self.console.print(build_tasks_table(self.workspace.tasks()))
        self.console.print("[dim]Type 'help' for commands.[/dim]")
        while True:
            try:
                line = await asyncio.to_thread(self.console.input, "[bold cyan]taskdeck>[/bold cyan] ")
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                break
            if not await self.handle_line(line):
                break

    async def handle_line(self, line: str) -> bool:
        """Run one input line. Returns False when the session should end."""

        try:
            argv = shlex.split(line)
        except ValueError as exc:
            self.console.print(f"[red]{exc}[/red]")
            return True
        if not argv:
            return True
        name, args = argv[0].lower(), argv[1:]
        if name in ("quit", "exit", "q"):
            return False
        try:
            await self.dispatch(name, args)
        except ValidationError as exc:
            first = exc.errors()[0]
            where = ".".join(str(part) for part in first.get("loc", ()))
            self.console.print(f"[red]Invalid value[/red] {where}: {first.get('msg')}")
        except TaskdeckError as exc:
            if exc not in self.error_log:
                self.console.print(f"[bold red]Error:[/bold red] {exc}")
        except ValueError as exc:
            self.console.print(f"[red]{exc}[/red]")
        return True

    async def dispatch(self, name: str, args: list[str]) -> None:
        ws = self.workspace
        if name == "add":
            if not args:
                raise ValueError("Usage: add <title>")
            task = await ws.add_task(TaskDraft(title=" ".join(args)))
            self.console.print(f"Added [cyan]{task.id[:8]}[/cyan] {task.title}")
        elif name == "edit":
            if len(args) < 2:
                raise ValueError("Usage: edit <id> field=value ...")
            task = ws.resolve(args[0])
            updated = await ws.edit_task(task.id, parse_assignments(args[1:]))
            self.console.print(f"Updated [cyan]{updated.id[:8]}[/cyan] {updated.title}")
        elif name in ("done", "toggle"):
            task = ws.resolve(self._single(name, args))
            toggled = await ws.toggle_task(task.id)
            state = "done" if toggled.completed else "open"
            self.console.print(f"[cyan]{toggled.id[:8]}[/cyan] {toggled.title} is now {state}")
        elif name in ("rm", "delete"):
            task = ws.resolve(self._single(name, args))
            await ws.remove_task(task.id)
            self.console.print(f"Deleted [cyan]{task.id[:8]}[/cyan] {task.title}")
        elif name == "undo":
            if not ws.history.can_undo():
                self.console.print("[dim]Nothing to undo.[/dim]")
            await ws.undo()
        elif name == "redo":
            if not ws.history.can_redo():
                self.console.print("[dim]Nothing to redo.[/dim]")
            await ws.redo()
        elif name in ("list", "ls"):
            self.console.print(build_tasks_table(ws.tasks()))
        elif name == "history":
            self.console.print(build_history_panel(ws.history))
        elif name in ("help", "?"):
            self.console.print(SHELL_HELP)
        else:
            self.console.print(f"[yellow]Unknown command {name!r}.[/yellow] Type 'help'.")

    @staticmethod
    def _single(name: str, args: list[str]) -> str:
        if len(args) != 1:
            raise ValueError(f"Usage: {name} <id>")
        return args[0]
