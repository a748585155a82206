"""Test doubles shared by the test modules."""

from __future__ import annotations

import asyncio
from typing import Any

from adapters.memory_gateway import InMemoryGateway
from core.domain.errors import ErrorCode, GatewayError
from core.domain.models import Task, TaskDraft, TaskPatch
from core.services.commands import Command


class RecordingNotifier:
    def __init__(self) -> None:
        self.successes: list[str] = []
        self.errors: list[tuple[BaseException, dict[str, Any]]] = []

    def notify_success(self, message: str) -> None:
        self.successes.append(message)

    def notify_error(self, error: BaseException, context: dict[str, Any]) -> None:
        self.errors.append((error, dict(context)))


class FlakyGateway(InMemoryGateway):
    """In-memory gateway that fails selected operations on demand."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.calls: list[str] = []
        self._failures: dict[str, int] = {}

    def fail_next(self, operation: str, times: int = 1) -> None:
        self._failures[operation] = self._failures.get(operation, 0) + times

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        remaining = self._failures.get(operation, 0)
        if remaining:
            self._failures[operation] = remaining - 1
            raise GatewayError(f"{operation} failed", code=ErrorCode.NETWORK_ERROR)

    async def list_all(self) -> list[Task]:
        self._maybe_fail("list_all")
        return await super().list_all()

    async def create(self, draft: TaskDraft) -> Task:
        self._maybe_fail("create")
        return await super().create(draft)

    async def update(self, entity_id: str, patch: TaskPatch) -> Task:
        self._maybe_fail("update")
        return await super().update(entity_id, patch)

    async def delete(self, entity_id: str) -> None:
        self._maybe_fail("delete")
        await super().delete(entity_id)

    async def toggle(self, entity_id: str) -> Task:
        self._maybe_fail("toggle")
        return await super().toggle(entity_id)

    async def restore(self, task: Task) -> Task:
        self._maybe_fail("restore")
        return await super().restore(task)


class GatedGateway(FlakyGateway):
    """Holds every `update` until the test releases it.

    `pending` lists `(entity_id, future)` in call order; resolving a future with
    `None` lets the call proceed, resolving it with an exception makes it fail.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.pending: list[tuple[str, asyncio.Future[None]]] = []

    async def update(self, entity_id: str, patch: TaskPatch) -> Task:
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self.pending.append((entity_id, future))
        await future
        return await super().update(entity_id, patch)

    def release(self, index: int = 0, error: BaseException | None = None) -> None:
        _, future = self.pending[index]
        if error is None:
            future.set_result(None)
        else:
            future.set_exception(error)


class FakeCommand(Command):
    """Command recording its calls into a shared journal."""

    def __init__(self, name: str, journal: list[str] | None = None) -> None:
        self.name = name
        self.journal = journal if journal is not None else []
        self.fail_execute = False
        self.fail_undo = False

    async def execute(self) -> None:
        if self.fail_execute:
            raise GatewayError(f"{self.name} execute failed")
        self.journal.append(f"execute:{self.name}")

    async def undo(self) -> None:
        if self.fail_undo:
            raise GatewayError(f"{self.name} undo failed")
        self.journal.append(f"undo:{self.name}")

    def describe(self) -> str:
        return self.name


def make_task(task_id: str, title: str, **fields: Any) -> Task:
    return Task(id=task_id, title=title, **fields)


async def settle() -> None:
    """Let every ready task run until it blocks again."""

    for _ in range(5):
        await asyncio.sleep(0)
