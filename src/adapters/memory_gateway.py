"""In-process persistence gateway.

Why it exists:
- Default backend for tests, demos and the interactive shell when no storage
  is configured.
- Behaves like a real backend: it assigns identifiers and timestamps, and it
  does not persist local-only fields (see `Task.LOCAL_FIELDS`).

`JsonFileGateway` builds on it by persisting the collection after each change.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from pydantic import ValidationError

from core.domain.errors import ErrorCode, GatewayError, NotFoundError
from core.domain.models import Task, TaskDraft, TaskPatch, utc_now


def new_task_id() -> str:
    return str(uuid.uuid4())


class InMemoryGateway:
    """Dictionary-backed `PersistenceGateway`."""

    def __init__(
        self,
        tasks: Iterable[Task] = (),
        *,
        id_factory: Callable[[], str] = new_task_id,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._id_factory = id_factory
        self._clock = clock
        self._tasks: dict[str, Task] = {}
        for task in tasks:
            self._tasks[task.id] = self._persistable(task)

    async def list_all(self) -> list[Task]:
        self._load()
        return list(self._tasks.values())

    async def create(self, draft: TaskDraft) -> Task:
        self._load()
        now = self._clock()
        data = draft.model_dump()
        data.update(id=self._id_factory(), created_at=now, updated_at=now)
        task = self._persistable(self._validate(data))
        self._tasks[task.id] = task
        self._commit()
        return task

    async def update(self, entity_id: str, patch: TaskPatch) -> Task:
        current = self._get(entity_id)
        data = current.model_dump()
        data.update(patch.changes())
        data.update(id=current.id, created_at=current.created_at, updated_at=self._clock())
        task = self._persistable(self._validate(data))
        self._tasks[entity_id] = task
        self._commit()
        return task

    async def delete(self, entity_id: str) -> None:
        self._get(entity_id)
        del self._tasks[entity_id]
        self._commit()

    async def toggle(self, entity_id: str) -> Task:
        current = self._get(entity_id)
        task = current.apply({"completed": not current.completed, "updated_at": self._clock()})
        self._tasks[entity_id] = task
        self._commit()
        return task

    async def restore(self, task: Task) -> Task:
        self._load()
        if task.id in self._tasks:
            raise GatewayError(
                f"Task {task.id!r} already exists",
                code=ErrorCode.VALIDATION_ERROR,
                context={"entity_id": task.id},
            )
        restored = self._persistable(task)
        self._tasks[task.id] = restored
        self._commit()
        return restored

    # -------------------------------------------------------------- hooks

    def _load(self) -> None:
        """Bring `_tasks` up to date with the backing storage (none here)."""

    def _commit(self) -> None:
        """Flush `_tasks` to the backing storage (none here)."""

    # ------------------------------------------------------------ helpers

    def _get(self, entity_id: str) -> Task:
        self._load()
        task = self._tasks.get(entity_id)
        if task is None:
            raise NotFoundError(entity_id)
        return task

    @staticmethod
    def _validate(data: dict[str, object]) -> Task:
        try:
            return Task.model_validate(data)
        except ValidationError as exc:
            raise GatewayError(str(exc), code=ErrorCode.VALIDATION_ERROR) from exc

    @staticmethod
    def _persistable(task: Task) -> Task:
        defaults = {name: Task.model_fields[name].get_default(call_default_factory=True) for name in Task.LOCAL_FIELDS}
        if all(getattr(task, name) == value for name, value in defaults.items()):
            return task
        return task.apply(defaults)
