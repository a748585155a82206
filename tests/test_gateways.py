from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from adapters.http_gateway import HttpGateway
from adapters.json_gateway import JsonFileGateway, read_tasks
from adapters.memory_gateway import InMemoryGateway
from core.config import AppSettings
from core.domain.errors import ErrorCode, GatewayError, NotFoundError
from core.domain.models import Task, TaskDraft, TaskPatch, TaskStatus
from core.interfaces.gateway import PersistenceGateway
from helpers import make_task

FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _ids():
    counter = iter(range(1, 1000))
    return lambda: f"task-{next(counter)}"


def test_gateways_satisfy_protocol(tmp_path: Path) -> None:
    assert isinstance(InMemoryGateway(), PersistenceGateway)
    assert isinstance(JsonFileGateway(tmp_path / "tasks.json"), PersistenceGateway)
    assert isinstance(HttpGateway(AppSettings()), PersistenceGateway)


def test_memory_gateway_assigns_ids_and_timestamps() -> None:
    gateway = InMemoryGateway(id_factory=_ids(), clock=lambda: FIXED_NOW)

    created = asyncio.run(gateway.create(TaskDraft(title="Buy milk")))

    assert created.id == "task-1"
    assert created.created_at == FIXED_NOW
    assert created.updated_at == FIXED_NOW


def test_memory_gateway_does_not_persist_local_fields() -> None:
    gateway = InMemoryGateway(id_factory=_ids())

    created = asyncio.run(gateway.create(TaskDraft(title="Board", status=TaskStatus.DONE)))
    updated = asyncio.run(gateway.update(created.id, TaskPatch(status=TaskStatus.IN_PROGRESS)))

    assert created.status is TaskStatus.TODO
    assert updated.status is TaskStatus.TODO


def test_memory_gateway_errors() -> None:
    gateway = InMemoryGateway([make_task("x", "A")])

    with pytest.raises(NotFoundError):
        asyncio.run(gateway.toggle("missing"))
    with pytest.raises(NotFoundError):
        asyncio.run(gateway.delete("missing"))
    with pytest.raises(GatewayError) as info:
        asyncio.run(gateway.restore(make_task("x", "Duplicate")))
    assert info.value.code is ErrorCode.VALIDATION_ERROR
    with pytest.raises(GatewayError) as info:
        # Skip patch validation so the gateway's own check is reached.
        asyncio.run(gateway.update("x", TaskPatch.model_construct(title=None)))
    assert info.value.code is ErrorCode.VALIDATION_ERROR


def test_json_gateway_persists_between_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "tasks.json"
    first = JsonFileGateway(path, id_factory=_ids())

    async def write() -> Task:
        created = await first.create(TaskDraft(title="Buy milk", tags=["home"]))
        await first.toggle(created.id)
        return created

    created = asyncio.run(write())

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["version"] == 1
    assert [item["title"] for item in payload["tasks"]] == ["Buy milk"]

    second = JsonFileGateway(path)
    tasks = asyncio.run(second.list_all())
    assert [(t.id, t.completed, t.tags) for t in tasks] == [(created.id, True, ["home"])]


def test_json_gateway_missing_file_is_empty(tmp_path: Path) -> None:
    assert asyncio.run(JsonFileGateway(tmp_path / "none.json").list_all()) == []


def test_json_gateway_rejects_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(GatewayError) as info:
        asyncio.run(JsonFileGateway(path).list_all())

    assert info.value.code is ErrorCode.DATABASE_ERROR


def test_read_tasks_rejects_unexpected_layout(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text(json.dumps([{"title": "x"}]), encoding="utf-8")

    with pytest.raises(GatewayError):
        read_tasks(path)


def _task_payload(task_id: str, title: str, **extra: object) -> dict[str, object]:
    payload = make_task(task_id, title).model_dump(mode="json")
    payload.update(extra)
    return payload


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url="http://backend/api/", transport=httpx.MockTransport(handler))


def test_http_gateway_routes_and_payloads() -> None:
    seen: list[tuple[str, str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        seen.append((request.method, request.url.path, body))
        if request.method == "GET":
            return httpx.Response(200, json=[_task_payload("t1", "One", audit_user="ana")])
        if request.method == "DELETE":
            return httpx.Response(204)
        if request.url.path.endswith("/toggle"):
            return httpx.Response(200, json=_task_payload("t1", "One", completed=True))
        title = body.get("title", "One") if isinstance(body, dict) else "One"
        return httpx.Response(200, json=_task_payload("t1", title))

    async def scenario() -> None:
        async with HttpGateway(client=_client(handler)) as gateway:
            listed = await gateway.list_all()
            assert [t.id for t in listed] == ["t1"]
            created = await gateway.create(TaskDraft(title="New"))
            assert created.title == "New"
            updated = await gateway.update("t1", TaskPatch(title="Renamed"))
            assert updated.title == "Renamed"
            toggled = await gateway.toggle("t1")
            assert toggled.completed is True
            await gateway.delete("t1")
            restored = await gateway.restore(make_task("t1", "One"))
            assert restored.id == "t1"

    asyncio.run(scenario())

    assert [(method, path) for method, path, _ in seen] == [
        ("GET", "/api/tasks"),
        ("POST", "/api/tasks"),
        ("PATCH", "/api/tasks/t1"),
        ("POST", "/api/tasks/t1/toggle"),
        ("DELETE", "/api/tasks/t1"),
        ("PUT", "/api/tasks/t1"),
    ]
    # PATCH only carries the fields that were set.
    assert seen[2][2] == {"title": "Renamed"}


@pytest.mark.parametrize(
    ("response", "expected_type", "expected_code"),
    [
        (httpx.Response(404), NotFoundError, ErrorCode.TASK_NOT_FOUND),
        (httpx.Response(422, text="bad title"), GatewayError, ErrorCode.VALIDATION_ERROR),
        (httpx.Response(500), GatewayError, ErrorCode.DATABASE_ERROR),
        (httpx.Response(200, content=b"<html>"), GatewayError, ErrorCode.VALIDATION_ERROR),
        (httpx.Response(200, json={"title": ""}), GatewayError, ErrorCode.VALIDATION_ERROR),
    ],
)
def test_http_gateway_maps_errors(response, expected_type, expected_code) -> None:
    gateway = HttpGateway(client=_client(lambda request: response))

    with pytest.raises(expected_type) as info:
        asyncio.run(gateway.update("t1", TaskPatch(title="x")))

    assert info.value.code is expected_code


def test_http_gateway_maps_transport_failures() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(GatewayError) as info:
        asyncio.run(HttpGateway(client=_client(timeout)).list_all())
    assert info.value.code is ErrorCode.TIMEOUT

    with pytest.raises(GatewayError) as info:
        asyncio.run(HttpGateway(client=_client(refused)).list_all())
    assert info.value.code is ErrorCode.NETWORK_ERROR
