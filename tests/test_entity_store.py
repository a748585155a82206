from __future__ import annotations

import asyncio

import pytest

from core.config import RollbackPolicy
from core.domain.errors import ErrorCode, GatewayError, NotFoundError
from core.domain.models import Task, TaskDraft, TaskPatch, TaskStatus
from core.services.entity_store import EntityStore
from helpers import FlakyGateway, GatedGateway, RecordingNotifier, make_task, settle


def _store(gateway, **kwargs) -> EntityStore:
    store = EntityStore(gateway, **kwargs)
    asyncio.run(store.sync())
    return store


def test_sync_loads_everything() -> None:
    gateway = FlakyGateway([make_task("t1", "One"), make_task("t2", "Two")])
    store = EntityStore(gateway)
    seen: list[bool] = []
    store.subscribe(lambda: seen.append(store.loading))

    asyncio.run(store.sync())

    assert sorted(store.by_id) == ["t1", "t2"]
    assert seen == [True, False]
    assert store.last_error is None


def test_sync_failure_sets_last_error_and_raises() -> None:
    gateway = FlakyGateway([make_task("t1", "One")])
    gateway.fail_next("list_all")
    notifier = RecordingNotifier()
    store = EntityStore(gateway, notifier=notifier)

    with pytest.raises(GatewayError):
        asyncio.run(store.sync())

    assert not store.loading
    assert isinstance(store.last_error, GatewayError)
    assert notifier.errors[0][1] == {"operation": "sync", "entity_id": None}


def test_by_id_is_read_only() -> None:
    store = _store(FlakyGateway([make_task("t1", "One")]))

    with pytest.raises(TypeError):
        store.by_id["t1"] = make_task("t1", "Hacked")  # type: ignore[index]


def test_failed_update_rolls_back_to_previous_title() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    notifier = RecordingNotifier()
    store = _store(gateway, notifier=notifier)
    gateway.fail_next("update")

    with pytest.raises(GatewayError):
        asyncio.run(store.update("x", TaskPatch(title="B")))

    assert store.get("x").title == "A"
    assert store.last_error is not None
    error, context = notifier.errors[0]
    assert error is store.last_error
    assert context == {"operation": "update", "entity_id": "x"}


def test_update_is_visible_before_confirmation() -> None:
    gateway = GatedGateway([make_task("x", "A")])
    store = _store(gateway)
    seen: list[str] = []

    async def scenario() -> Task | None:
        pending = asyncio.create_task(store.update("x", TaskPatch(title="B")))
        await settle()
        seen.append(store.get("x").title)
        gateway.release(0)
        return await pending

    result = asyncio.run(scenario())

    assert seen == ["B"]
    assert result.title == "B"
    assert store.get("x") is result


def test_confirmation_replaces_optimistic_value_with_canonical() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)
    before = store.get("x").updated_at

    result = asyncio.run(store.update("x", TaskPatch(description="notes")))

    assert result.description == "notes"
    assert result.updated_at >= before
    assert store.get("x") == result


def test_local_fields_survive_confirmation() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)

    moved = asyncio.run(store.update("x", TaskPatch(status=TaskStatus.IN_PROGRESS)))
    assert moved.status is TaskStatus.IN_PROGRESS

    # The backend does not store `status`; a later unrelated edit must keep it.
    renamed = asyncio.run(store.update("x", TaskPatch(title="Renamed")))
    assert renamed.status is TaskStatus.IN_PROGRESS
    assert renamed.title == "Renamed"


def test_toggle_twice_restores_original_value() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)

    asyncio.run(store.toggle("x"))
    assert store.get("x").completed is True
    asyncio.run(store.toggle("x"))

    assert store.get("x").completed is False
    assert gateway.calls.count("toggle") == 2


def test_failed_toggle_rolls_back() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)
    asyncio.run(store.toggle("x"))
    gateway.fail_next("toggle")

    with pytest.raises(GatewayError):
        asyncio.run(store.toggle("x"))

    assert store.get("x").completed is True


def test_create_inserts_canonical_entity() -> None:
    gateway = FlakyGateway()
    store = _store(gateway)

    created = asyncio.run(store.create(TaskDraft(title="Buy milk", status=TaskStatus.DONE)))

    assert store.get(created.id) is created
    assert created.title == "Buy milk"
    assert created.status is TaskStatus.DONE


def test_failed_create_leaves_store_untouched() -> None:
    gateway = FlakyGateway([make_task("t1", "One")])
    store = _store(gateway)
    before = dict(store.by_id)
    gateway.fail_next("create")

    with pytest.raises(GatewayError):
        asyncio.run(store.create(TaskDraft(title="Nope")))

    assert dict(store.by_id) == before


def test_failed_delete_brings_entity_back() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)
    original = store.get("x")
    gateway.fail_next("delete")

    with pytest.raises(GatewayError):
        asyncio.run(store.delete("x"))

    assert store.get("x") == original


def test_delete_and_restore_keep_identifier() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)
    original = store.get("x")

    asyncio.run(store.delete("x"))
    assert "x" not in store
    restored = asyncio.run(store.restore(original))

    assert restored.id == "x"
    assert store.get("x").title == "A"


def test_update_of_unknown_entity_propagates_not_found() -> None:
    store = _store(FlakyGateway())

    with pytest.raises(NotFoundError) as info:
        asyncio.run(store.update("ghost", TaskPatch(title="B")))

    assert info.value.code is ErrorCode.TASK_NOT_FOUND
    assert "ghost" not in store


def test_same_entity_mutations_are_serialised() -> None:
    gateway = GatedGateway([make_task("x", "A")])
    store = _store(gateway)

    async def scenario() -> None:
        first = asyncio.create_task(store.update("x", TaskPatch(title="B")))
        second = asyncio.create_task(store.update("x", TaskPatch(title="C")))
        await settle()
        # Only the first mutation reached the gateway; the second is queued.
        assert len(gateway.pending) == 1
        assert store.is_pending("x")
        gateway.release(0, GatewayError("nope"))
        with pytest.raises(GatewayError):
            await first
        await settle()
        assert store.get("x").title == "C"
        gateway.release(1)
        await second

    asyncio.run(scenario())

    assert store.get("x").title == "C"
    assert not store.is_pending("x")


def _titles(tasks) -> dict[str, str]:
    return {task.id: task.title for task in tasks}


def test_store_rollback_queues_writes_to_other_entities() -> None:
    gateway = GatedGateway([make_task("x", "A"), make_task("y", "P")])
    store = _store(gateway, rollback_policy=RollbackPolicy.STORE)

    async def scenario() -> None:
        first = asyncio.create_task(store.update("x", TaskPatch(title="B")))
        await settle()
        second = asyncio.create_task(store.update("y", TaskPatch(title="Q")))
        await settle()
        # The write to y waits for x: nothing reached the gateway or the store yet.
        assert len(gateway.pending) == 1
        assert store.is_pending("y")
        assert store.get("y").title == "P"
        gateway.release(0, GatewayError("nope"))
        with pytest.raises(GatewayError):
            await first
        await settle()
        assert store.get("x").title == "A"
        assert store.get("y").title == "Q"
        gateway.release(1)
        await second

    asyncio.run(scenario())

    assert store.get("x").title == "A"
    assert store.get("y").title == "Q"
    assert not store.is_pending("y")


def test_store_rollback_leaves_no_failed_value_behind() -> None:
    gateway = GatedGateway([make_task("x", "A"), make_task("y", "P")])
    store = _store(gateway, rollback_policy=RollbackPolicy.STORE)

    async def scenario() -> dict[str, str]:
        first = asyncio.create_task(store.update("x", TaskPatch(title="B")))
        second = asyncio.create_task(store.update("y", TaskPatch(title="Q")))
        await settle()
        gateway.release(0, GatewayError("x failed"))
        with pytest.raises(GatewayError):
            await first
        await settle()
        gateway.release(1, GatewayError("y failed"))
        with pytest.raises(GatewayError):
            await second
        return _titles(await gateway.list_all())

    remote = asyncio.run(scenario())

    assert remote == {"x": "A", "y": "P"}
    assert _titles(store.all()) == remote


def test_store_rollback_keeps_confirmed_writes() -> None:
    gateway = GatedGateway([make_task("x", "A"), make_task("y", "P")])
    store = _store(gateway, rollback_policy=RollbackPolicy.STORE)

    async def scenario() -> dict[str, str]:
        first = asyncio.create_task(store.update("y", TaskPatch(title="Q")))
        second = asyncio.create_task(store.update("x", TaskPatch(title="B")))
        await settle()
        gateway.release(0)
        await first
        await settle()
        gateway.release(1, GatewayError("x failed"))
        with pytest.raises(GatewayError):
            await second
        return _titles(await gateway.list_all())

    remote = asyncio.run(scenario())

    assert remote == {"x": "A", "y": "Q"}
    assert _titles(store.all()) == remote


def test_entity_rollback_keeps_other_pending_writes() -> None:
    gateway = GatedGateway([make_task("x", "A"), make_task("y", "P")])
    store = _store(gateway, rollback_policy=RollbackPolicy.ENTITY)

    async def scenario() -> None:
        first = asyncio.create_task(store.update("x", TaskPatch(title="B")))
        await settle()
        second = asyncio.create_task(store.update("y", TaskPatch(title="Q")))
        await settle()
        gateway.release(0, GatewayError("nope"))
        with pytest.raises(GatewayError):
            await first
        assert store.get("y").title == "Q"
        gateway.release(1)
        await second

    asyncio.run(scenario())

    assert store.get("x").title == "A"
    assert store.get("y").title == "Q"


def test_store_listener_errors_are_contained() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)
    calls: list[str] = []

    def broken() -> None:
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda: calls.append(store.get("x").title))

    asyncio.run(store.update("x", TaskPatch(title="B")))

    # Optimistic write, then confirmation.
    assert calls == ["B", "B"]


def test_clear_drops_entities_and_flags() -> None:
    gateway = FlakyGateway([make_task("x", "A")])
    store = _store(gateway)
    gateway.fail_next("update")
    with pytest.raises(GatewayError):
        asyncio.run(store.update("x", TaskPatch(title="B")))

    store.clear()

    assert len(store) == 0
    assert store.last_error is None
