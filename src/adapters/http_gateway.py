"""REST persistence gateway over httpx.

Endpoints (relative to `api_base_url`):

    GET    tasks                -> [Task]
    POST   tasks                -> Task      (body: TaskDraft)
    PATCH  tasks/{id}           -> Task      (body: changed fields only)
    DELETE tasks/{id}           -> 204
    POST   tasks/{id}/toggle    -> Task
    PUT    tasks/{id}           -> Task      (body: full Task, keeps the id)

Every transport or protocol failure is translated into `GatewayError`, and a
404 on an entity route into `NotFoundError`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from adapters.http_client import build_async_client
from core.config import AppSettings
from core.domain.errors import ErrorCode, GatewayError, NotFoundError
from core.domain.models import Task, TaskDraft, TaskPatch

logger = logging.getLogger(__name__)


class HttpGateway:
    """`PersistenceGateway` backed by a REST API."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or build_async_client(settings)

    async def __aenter__(self) -> HttpGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def list_all(self) -> list[Task]:
        payload = await self._request("GET", "tasks")
        if not isinstance(payload, list):
            raise GatewayError("Expected a JSON list of tasks", code=ErrorCode.VALIDATION_ERROR)
        return [self._parse(item) for item in payload]

    async def create(self, draft: TaskDraft) -> Task:
        return self._parse(await self._request("POST", "tasks", json=draft.model_dump(mode="json")))

    async def update(self, entity_id: str, patch: TaskPatch) -> Task:
        body = patch.model_dump(mode="json", exclude_unset=True)
        return self._parse(await self._request("PATCH", f"tasks/{entity_id}", json=body, entity_id=entity_id))

    async def delete(self, entity_id: str) -> None:
        await self._request("DELETE", f"tasks/{entity_id}", entity_id=entity_id)

    async def toggle(self, entity_id: str) -> Task:
        return self._parse(await self._request("POST", f"tasks/{entity_id}/toggle", entity_id=entity_id))

    async def restore(self, task: Task) -> Task:
        body = task.model_dump(mode="json")
        return self._parse(await self._request("PUT", f"tasks/{task.id}", json=body, entity_id=task.id))

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        entity_id: str | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.TimeoutException as exc:
            raise GatewayError(f"{method} {path} timed out", code=ErrorCode.TIMEOUT) from exc
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {path} failed: {exc}", code=ErrorCode.NETWORK_ERROR) from exc

        logger.debug("%s %s -> HTTP %s", method, path, response.status_code)
        if response.status_code == 404 and entity_id is not None:
            raise NotFoundError(entity_id)
        if response.status_code in (400, 409, 422):
            raise GatewayError(
                f"{method} {path} rejected: HTTP {response.status_code} {response.text[:200]}",
                code=ErrorCode.VALIDATION_ERROR,
            )
        if response.is_error:
            raise GatewayError(
                f"{method} {path} failed: HTTP {response.status_code}",
                code=ErrorCode.DATABASE_ERROR,
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise GatewayError(f"{method} {path} returned invalid JSON", code=ErrorCode.VALIDATION_ERROR) from exc

    @staticmethod
    def _parse(payload: Any) -> Task:
        if isinstance(payload, dict):
            # Backends may send more than we model (joined tag rows, audit columns).
            payload = {k: v for k, v in payload.items() if k in Task.model_fields}
        try:
            return Task.model_validate(payload)
        except ValidationError as exc:
            raise GatewayError(f"Backend returned an invalid task: {exc}", code=ErrorCode.VALIDATION_ERROR) from exc
