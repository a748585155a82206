"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio
import os

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_gateway import HttpGateway
from adapters.json_gateway import read_tasks
from core.config import AppSettings, GatewayKind, get_user_env_file, write_user_env_vars
from core.domain.errors import GatewayError

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()


async def _check_http(settings: AppSettings) -> tuple[bool, str]:
    try:
        async with HttpGateway(settings) as gateway:
            tasks = await gateway.list_all()
        return True, f"{len(tasks)} tasks"
    except GatewayError as exc:
        return False, str(exc)


def _check_data_file(settings: AppSettings) -> tuple[bool, str]:
    path = settings.data_file
    try:
        tasks = read_tasks(path)
    except GatewayError as exc:
        return False, str(exc)
    target = path if path.exists() else path.parent
    while not target.exists() and target != target.parent:
        target = target.parent
    if not os.access(target, os.W_OK):
        return False, f"{target} is not writable"
    return True, f"{len(tasks)} tasks in {path}"


def _settings(ctx: typer.Context) -> AppSettings:
    parent = ctx.parent.obj if ctx.parent is not None else None
    return parent if isinstance(parent, AppSettings) else AppSettings()


@app.command()
def run(ctx: typer.Context) -> None:
    """Run baseline diagnostics and show recommended fixes."""

    settings = _settings(ctx)

    table = Table(title="taskdeck Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    # Config
    table.add_row("Gateway", "OK", settings.gateway.value)
    table.add_row("Rollback policy", "OK", settings.rollback_policy.value)
    table.add_row("History size", "OK", str(settings.max_history))
    env_file = get_user_env_file()
    table.add_row("User config", "OK" if env_file.exists() else "OPTIONAL", str(env_file))

    ok = True
    if settings.gateway is GatewayKind.JSON:
        ok, detail = _check_data_file(settings)
        table.add_row("Data file", "OK" if ok else "FAIL", detail)
    elif settings.gateway is GatewayKind.HTTP:
        ok, detail = asyncio.run(_check_http(settings))
        table.add_row("Backend", "OK" if ok else "FAIL", f"{settings.api_base_url} -> {detail}")
    else:
        table.add_row("Backend", "OK", "in-memory (nothing is persisted)")

    _console.print(table)

    if not ok:
        _console.print("\n[yellow]Note:[/yellow] run `taskdeck doctor configure` to pick another backend.")
        raise typer.Exit(code=1)


@app.command()
def configure() -> None:
    """Interactive backend setup (stored in the user config .env)."""

    kind = typer.prompt(
        "Backend (memory/json/http)",
        default=GatewayKind.JSON.value,
        show_default=True,
    ).strip().lower()
    try:
        gateway = GatewayKind(kind)
    except ValueError as exc:
        raise typer.BadParameter(f"Unknown backend {kind!r}") from exc

    values = {"TASKDECK_GATEWAY": gateway.value}
    defaults = AppSettings()
    if gateway is GatewayKind.JSON:
        values["TASKDECK_DATA_FILE"] = typer.prompt("Data file", default=str(defaults.data_file)).strip()
    elif gateway is GatewayKind.HTTP:
        values["TASKDECK_API_BASE_URL"] = typer.prompt("API base URL", default=defaults.api_base_url).strip()

    env_path = write_user_env_vars(values)
    _console.print(f"[green]Saved config to:[/green] {env_path}")
