"""Optimistic entity store.

This module owns the authoritative in-memory collection of tasks and the only
write path into it: the optimistic mutation pipeline.

Pipeline for a mutation of entity `id`:

1. Snapshot the state needed for rollback (whole collection or the single
   entity, depending on `RollbackPolicy`).
2. Apply the change locally and notify subscribers, so readers see it before
   any I/O happens.
3. Await the persistence gateway.
4. On success, replace the optimistic value with the canonical entity and
   re-apply local-only fields the backend does not round-trip.
5. On failure, roll back, record `last_error`, report through the
   notification port and re-raise.

Mutations are serialised with `asyncio.Lock`s, so a rollback always restores
the state its own mutation observed. Under `RollbackPolicy.STORE` a single
store-wide lock queues every mutation, since a whole-collection snapshot is
only safe while no other write is in flight. Under `RollbackPolicy.ENTITY`
the lock is per identifier and writes to different entities overlap.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from core.config import RollbackPolicy
from core.domain.errors import ListenerError
from core.domain.models import Task, TaskDraft, TaskPatch
from core.interfaces.gateway import PersistenceGateway
from core.interfaces.notifier import NotificationPort

logger = logging.getLogger(__name__)

_STORE_LOCK_KEY = "*"

StoreListener = Callable[[], Any]


@dataclass
class _LockSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class EntityStore:
    """In-memory task collection with optimistic writes and rollback."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        notifier: NotificationPort | None = None,
        rollback_policy: RollbackPolicy = RollbackPolicy.STORE,
        local_fields: frozenset[str] = Task.LOCAL_FIELDS,
        toggle_field: str = "completed",
    ) -> None:
        self._gateway = gateway
        self._notifier = notifier
        self.rollback_policy = rollback_policy
        self._local_fields = local_fields
        self._toggle_field = toggle_field
        self._by_id: dict[str, Task] = {}
        self._listeners: list[StoreListener] = []
        self._locks: dict[str, _LockSlot] = {}
        self._pending: dict[str, int] = {}
        self.loading = False
        self.last_error: BaseException | None = None

    # ------------------------------------------------------------------ reads

    @property
    def by_id(self) -> Mapping[str, Task]:
        """Read-only live view of the collection."""

        return MappingProxyType(self._by_id)

    def get(self, entity_id: str) -> Task | None:
        return self._by_id.get(entity_id)

    def all(self) -> list[Task]:
        return list(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._by_id

    def is_pending(self, entity_id: str) -> bool:
        """True while a mutation of `entity_id` is in flight or queued."""

        return entity_id in self._pending

    # ------------------------------------------------------------ subscribers

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as exc:
                error = ListenerError(listener, exc)
                logger.error("Store listener failed: %s", error, exc_info=exc)

    # ------------------------------------------------------------- lifecycle

    async def sync(self) -> list[Task]:
        """Replace the collection with a full listing from the gateway."""

        self.loading = True
        self.last_error = None
        self._notify()
        try:
            tasks = await self._gateway.list_all()
        except Exception as exc:
            self.loading = False
            self._fail(exc, operation="sync", entity_id=None)
            self._notify()
            raise
        self._by_id.clear()
        self._by_id.update((task.id, task) for task in tasks)
        self.loading = False
        logger.debug("Synced %d tasks", len(tasks))
        self._notify()
        return tasks

    def clear(self) -> None:
        """Drop every entity and transient flag (host-level reset)."""

        self._by_id.clear()
        self.loading = False
        self.last_error = None
        self._notify()

    # ------------------------------------------------------------- mutations

    async def create(self, draft: TaskDraft) -> Task:
        """Create through the gateway, then insert the canonical entity.

        Nothing is written locally before the gateway answers: the identifier
        is server assigned, so there is no key to write an optimistic value under.
        """

        try:
            created = await self._gateway.create(draft)
        except Exception as exc:
            self._fail(exc, operation="create", entity_id=None)
            raise
        created = self._with_local_fields(created, draft.model_dump(include=set(self._local_fields)))
        self._by_id[created.id] = created
        logger.debug("Created task %s", created.id)
        self._notify()
        return created

    async def update(self, entity_id: str, patch: TaskPatch) -> Task | None:
        changes = patch.changes()

        def _optimistic(current: Task | None) -> Task | None:
            return current.apply(changes) if current is not None else None

        return await self._mutate(
            entity_id,
            operation="update",
            optimistic=_optimistic,
            remote=lambda: self._gateway.update(entity_id, patch),
            pending_changes=changes,
        )

    async def toggle(self, entity_id: str) -> Task | None:
        field_name = self._toggle_field

        def _optimistic(current: Task | None) -> Task | None:
            if current is None:
                return None
            return current.apply({field_name: not getattr(current, field_name)})

        return await self._mutate(
            entity_id,
            operation="toggle",
            optimistic=_optimistic,
            remote=lambda: self._gateway.toggle(entity_id),
        )

    async def delete(self, entity_id: str) -> None:
        async def _remote() -> None:
            await self._gateway.delete(entity_id)
            return None

        await self._mutate(
            entity_id,
            operation="delete",
            optimistic=lambda current: None,
            remote=_remote,
        )

    async def restore(self, task: Task) -> Task | None:
        """Re-insert `task` with its original identifier (undo of a delete)."""

        return await self._mutate(
            task.id,
            operation="restore",
            optimistic=lambda current: task,
            remote=lambda: self._gateway.restore(task),
            pending_changes=task.model_dump(include=set(self._local_fields)),
        )

    # -------------------------------------------------------------- pipeline

    async def _mutate(
        self,
        entity_id: str,
        *,
        operation: str,
        optimistic: Callable[[Task | None], Task | None],
        remote: Callable[[], Awaitable[Task | None]],
        pending_changes: dict[str, Any] | None = None,
    ) -> Task | None:
        async with self._mutation_lock(entity_id):
            previous_entity = self._by_id.get(entity_id)
            previous_state = dict(self._by_id)

            optimistic_value = optimistic(previous_entity)
            self._write(entity_id, optimistic_value)
            self._notify()

            try:
                canonical = await remote()
            except Exception as exc:
                self._rollback(entity_id, previous_state, previous_entity)
                self._fail(exc, operation=operation, entity_id=entity_id)
                self._notify()
                raise

            if canonical is not None:
                local_values: dict[str, Any] = {}
                if previous_entity is not None:
                    local_values.update(previous_entity.model_dump(include=set(self._local_fields)))
                local_values.update(pending_changes or {})
                canonical = self._with_local_fields(canonical, local_values)
            self._write(entity_id, canonical)
            logger.debug("Confirmed %s of task %s", operation, entity_id)
            self._notify()
            return canonical

    def _write(self, entity_id: str, value: Task | None) -> None:
        if value is None:
            self._by_id.pop(entity_id, None)
        else:
            self._by_id[entity_id] = value

    def _rollback(
        self,
        entity_id: str,
        previous_state: dict[str, Task],
        previous_entity: Task | None,
    ) -> None:
        if self.rollback_policy is RollbackPolicy.ENTITY:
            self._write(entity_id, previous_entity)
        else:
            self._by_id.clear()
            self._by_id.update(previous_state)
        logger.info("Rolled back task %s (%s rollback)", entity_id, self.rollback_policy.value)

    def _with_local_fields(self, task: Task, values: dict[str, Any]) -> Task:
        local = {k: v for k, v in values.items() if k in self._local_fields}
        if not local:
            return task
        if all(getattr(task, k) == v for k, v in local.items()):
            return task
        return task.apply(local)

    def _fail(self, exc: BaseException, *, operation: str, entity_id: str | None) -> None:
        self.last_error = exc
        logger.warning("Task %s failed (entity=%s): %s", operation, entity_id, exc)
        if self._notifier is None:
            return
        try:
            self._notifier.notify_error(exc, {"operation": operation, "entity_id": entity_id})
        except Exception:
            logger.exception("Notifier raised while reporting a store failure")

    @contextlib.asynccontextmanager
    async def _mutation_lock(self, entity_id: str) -> AsyncIterator[None]:
        key = entity_id if self.rollback_policy is RollbackPolicy.ENTITY else _STORE_LOCK_KEY
        slot = self._locks.get(key)
        if slot is None:
            slot = self._locks[key] = _LockSlot()
        slot.users += 1
        self._pending[entity_id] = self._pending.get(entity_id, 0) + 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                self._locks.pop(key, None)
            self._pending[entity_id] -= 1
            if not self._pending[entity_id]:
                del self._pending[entity_id]
