"""CLI UI components (Rich).

Why separate components:
- Keeps command logic apart from visual details.
- Lets the one-shot commands and the interactive shell share tables/panels.
"""

from __future__ import annotations

from collections.abc import Iterable

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import Task, TaskPriority
from core.services.command_history import CommandHistory

_PRIORITY_STYLES = {
    TaskPriority.HIGH: "bold red",
    TaskPriority.MEDIUM: "yellow",
    TaskPriority.LOW: "dim",
}

SHORT_ID_LENGTH = 8


def print_banner(console: Console) -> None:
    """Print the shell welcome banner."""

    title = Text("taskdeck", style="bold cyan")
    subtitle = Text("Tasks • Undo/Redo • Optimistic sync", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_tasks_table(tasks: Iterable[Task], *, title: str = "Tasks") -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Priority", no_wrap=True)
    table.add_column("Due", style="magenta", no_wrap=True)
    table.add_column("Tags", style="green")

    for task in tasks:
        table.add_row(
            task.id[:SHORT_ID_LENGTH],
            "[green]✔[/green]" if task.completed else "•",
            Text(task.title, style="strike dim" if task.completed else ""),
            Text(task.priority.value, style=_PRIORITY_STYLES[task.priority]),
            task.due_date.strftime("%Y-%m-%d") if task.due_date else "",
            ", ".join(task.tags),
        )
    return table


def build_history_panel(history: CommandHistory) -> Panel:
    """Undo log with the cursor marked; entries after it are the redo tail."""

    body = Text()
    descriptions = history.history()
    if not descriptions:
        body.append("(empty)", style="dim")
    for index, description in enumerate(descriptions):
        if index == history.cursor:
            body.append(f"➜ {description}\n", style="bold")
        elif index > history.cursor:
            body.append(f"  {description}\n", style="dim italic")
        else:
            body.append(f"  {description}\n")
    subtitle = f"undo: {'yes' if history.can_undo() else 'no'} · redo: {'yes' if history.can_redo() else 'no'}"
    return Panel(body, title="History", subtitle=subtitle, border_style="yellow")
