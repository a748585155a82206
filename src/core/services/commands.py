"""Reversible task commands.

Every command is self-contained: it keeps the snapshot it needs to undo itself
(a copy of the entity, never a live reference into the store) and drives all
of its writes through the entity store's mutation pipeline. A command whose
`execute()` fails leaves the store as it found it and lets the error propagate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from core.domain.errors import NotFoundError
from core.domain.models import Task, TaskDraft, TaskPatch
from core.services.entity_store import EntityStore


class Command(ABC):
    """A reversible unit of work driven by `CommandHistory`."""

    @abstractmethod
    async def execute(self) -> None:
        """Apply the command. Also used for redo."""

    @abstractmethod
    async def undo(self) -> None:
        """Revert exactly what the last `execute()` did."""

    @abstractmethod
    def describe(self) -> str:
        """Short human readable description for notifications and history."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.describe()!r}>"


class _TaskCommand(Command):
    def __init__(self, store: EntityStore, task_id: str) -> None:
        self._store = store
        self.task_id = task_id
        self._title: str | None = None

    def _require(self) -> Task:
        task = self._store.get(self.task_id)
        if task is None:
            raise NotFoundError(self.task_id)
        self._title = task.title
        return task

    def _label(self) -> str:
        return self._title or self.task_id


class CreateTaskCommand(Command):
    """Create a task; undo deletes it, redo restores it under the same identifier."""

    def __init__(self, store: EntityStore, draft: TaskDraft) -> None:
        self._store = store
        self._draft = draft
        self._created: Task | None = None

    @property
    def task_id(self) -> str | None:
        return self._created.id if self._created is not None else None

    async def execute(self) -> None:
        if self._created is None:
            self._created = await self._store.create(self._draft)
            return
        restored = await self._store.restore(self._created)
        if restored is not None:
            self._created = restored

    async def undo(self) -> None:
        if self._created is None:
            return
        # Keep the latest local version so redo brings back exactly what was removed.
        self._created = self._store.get(self._created.id) or self._created
        await self._store.delete(self._created.id)

    def describe(self) -> str:
        return f"Create task: {self._draft.title}"


class UpdateTaskCommand(_TaskCommand):
    """Apply a patch; undo restores every editable field of the prior version."""

    def __init__(self, store: EntityStore, task_id: str, patch: TaskPatch) -> None:
        super().__init__(store, task_id)
        self._patch = patch
        self._previous: Task | None = None

    async def execute(self) -> None:
        if self._previous is None:
            self._previous = self._require()
        await self._store.update(self.task_id, self._patch)

    async def undo(self) -> None:
        if self._previous is None:
            return
        await self._store.update(self.task_id, self._previous.editable_snapshot())

    def describe(self) -> str:
        return f"Update task: {self._label()}"


class DeleteTaskCommand(_TaskCommand):
    """Delete a task; undo re-creates it verbatim, same identifier and fields."""

    def __init__(self, store: EntityStore, task_id: str) -> None:
        super().__init__(store, task_id)
        self._deleted: Task | None = None

    async def execute(self) -> None:
        if self._deleted is None:
            self._deleted = self._require()
        await self._store.delete(self.task_id)

    async def undo(self) -> None:
        if self._deleted is None:
            return
        await self._store.restore(self._deleted)

    def describe(self) -> str:
        return f"Delete task: {self._label()}"


class ToggleTaskCommand(_TaskCommand):
    """Flip completion. Self-inverse: undo toggles again."""

    async def execute(self) -> None:
        if self._title is None:
            self._require()
        await self._store.toggle(self.task_id)

    async def undo(self) -> None:
        await self._store.toggle(self.task_id)

    def describe(self) -> str:
        return f"Toggle task: {self._label()}"
