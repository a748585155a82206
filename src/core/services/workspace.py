"""Application root for the mutation core.

This module wires settings, the persistence gateway, the entity store, the
command history and the notification port into one explicitly constructed
object. Hosts (CLI, shell, tests) own a `TaskWorkspace` and pass it down; there
is no module-level state, so several independent workspaces can coexist.

The workspace is also the host-level guard the engine relies on: it rejects a
new mutation with `BusyError` while the previous one is still awaiting the
gateway.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from adapters.http_gateway import HttpGateway
from adapters.json_gateway import JsonFileGateway
from adapters.memory_gateway import InMemoryGateway
from adapters.notifier import LoggingNotifier
from core.config import AppSettings, GatewayKind
from core.domain.errors import BusyError, NotFoundError
from core.domain.models import Task, TaskDraft, TaskPatch
from core.interfaces.gateway import PersistenceGateway
from core.interfaces.notifier import NotificationPort
from core.services.command_history import CommandHistory
from core.services.commands import (
    Command,
    CreateTaskCommand,
    DeleteTaskCommand,
    ToggleTaskCommand,
    UpdateTaskCommand,
)
from core.services.entity_store import EntityStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def build_gateway(settings: AppSettings) -> PersistenceGateway:
    """Instantiate the backend selected by `settings.gateway`."""

    if settings.gateway is GatewayKind.MEMORY:
        return InMemoryGateway()
    if settings.gateway is GatewayKind.HTTP:
        return HttpGateway(settings)
    return JsonFileGateway(settings.data_file)


@dataclass
class TaskWorkspace:
    settings: AppSettings
    gateway: PersistenceGateway
    notifier: NotificationPort
    store: EntityStore
    history: CommandHistory
    _busy: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        settings: AppSettings | None = None,
        *,
        gateway: PersistenceGateway | None = None,
        notifier: NotificationPort | None = None,
    ) -> TaskWorkspace:
        settings = settings or AppSettings()
        gateway = gateway or build_gateway(settings)
        notifier = notifier or LoggingNotifier()
        store = EntityStore(gateway, notifier=notifier, rollback_policy=settings.rollback_policy)
        history = CommandHistory(notifier=notifier, max_history=settings.max_history)
        return cls(settings=settings, gateway=gateway, notifier=notifier, store=store, history=history)

    @property
    def busy(self) -> bool:
        return self._busy or self.history.busy

    # ---------------------------------------------------------------- reads

    def tasks(self) -> list[Task]:
        """Tasks in display order: open first, then by manual order and age."""

        return sorted(self.store.all(), key=lambda t: (t.completed, t.order_index, t.created_at))

    def resolve(self, ref: str) -> Task:
        """Find a task by full identifier or by a unique identifier prefix."""

        task = self.store.get(ref)
        if task is not None:
            return task
        matches = [t for t in self.store.all() if t.id.startswith(ref)]
        if len(matches) == 1:
            return matches[0]
        if matches:
            raise NotFoundError(ref, f"Task {ref!r} not found: prefix is ambiguous ({len(matches)} candidates)")
        raise NotFoundError(ref)

    # ------------------------------------------------------------ lifecycle

    async def start(self) -> list[Task]:
        """Initial full sync from the gateway."""

        return await self.store.sync()

    def reset(self) -> None:
        """Forget history and local state (logout-style reset)."""

        self.history.clear()
        self.store.clear()

    async def aclose(self) -> None:
        closer = getattr(self.gateway, "aclose", None)
        if closer is None:
            return
        result = closer()
        if inspect.isawaitable(result):
            await result

    # -------------------------------------------------------------- actions

    async def add_task(self, draft: TaskDraft) -> Task:
        command = CreateTaskCommand(self.store, draft)
        await self.execute(command)
        return self._current(command.task_id)

    async def edit_task(self, task_id: str, patch: TaskPatch) -> Task:
        await self.execute(UpdateTaskCommand(self.store, task_id, patch))
        return self._current(task_id)

    async def remove_task(self, task_id: str) -> None:
        await self.execute(DeleteTaskCommand(self.store, task_id))

    async def toggle_task(self, task_id: str) -> Task:
        await self.execute(ToggleTaskCommand(self.store, task_id))
        return self._current(task_id)

    async def execute(self, command: Command) -> None:
        await self._exclusive("execute", lambda: self.history.execute(command))

    async def undo(self) -> None:
        await self._exclusive("undo", self.history.undo)

    async def redo(self) -> None:
        await self._exclusive("redo", self.history.redo)

    async def _exclusive(self, action: str, call: Callable[[], Awaitable[T]]) -> T:
        if self.busy:
            raise BusyError(action)
        self._busy = True
        try:
            return await call()
        finally:
            self._busy = False

    def _current(self, task_id: str | None) -> Task:
        task = self.store.get(task_id) if task_id is not None else None
        if task is None:
            raise NotFoundError(str(task_id))
        return task
