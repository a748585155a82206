"""Persistence gateway contract.

Why Protocol:
- Structural contract (duck typing) with no rigid inheritance.
- Lets the in-memory, JSON file and HTTP backends be swapped (and faked in
  tests) without touching the entity store.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from core.domain.models import Task, TaskDraft, TaskPatch


@runtime_checkable
class PersistenceGateway(Protocol):
    """Asynchronous, fallible backend that durably stores tasks.

    Design rules:
    - Every method is async because it typically does I/O.
    - Every failure is raised as `GatewayError` (or `NotFoundError`).
    - Successful calls return the canonical entity, which may carry
      server-assigned fields (timestamps) the caller did not send.
    """

    async def create(self, draft: TaskDraft) -> Task:
        """Persist a new task; the backend assigns identifier and timestamps."""

        ...

    async def update(self, entity_id: str, patch: TaskPatch) -> Task:
        """Apply `patch` and return the canonical task. `NotFoundError` if missing."""

        ...

    async def delete(self, entity_id: str) -> None:
        ...

    async def toggle(self, entity_id: str) -> Task:
        """Flip `completed` and return the canonical task."""

        ...

    async def restore(self, task: Task) -> Task:
        """Recreate `task` verbatim, keeping its identifier.

        Used by undo of a delete and redo of a create so that identifiers
        captured by other history entries stay valid.
        """

        ...

    async def list_all(self) -> list[Task]:
        """Full listing used for the startup sync."""

        ...
