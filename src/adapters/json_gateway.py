"""JSON file persistence gateway.

Why JSON:
- Zero-setup local backend for the CLI: one human readable file.
- Stable formatting (sorted keys, indent) keeps the file diff-friendly.

Format:
    {"version": 1, "tasks": [<Task as JSON>, ...]}
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from adapters.memory_gateway import InMemoryGateway
from core.domain.errors import ErrorCode, GatewayError
from core.domain.models import Task

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class JsonFileGateway(InMemoryGateway):
    """`InMemoryGateway` that loads lazily from, and flushes to, a JSON file."""

    def __init__(self, path: Path, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.path = path
        self._loaded = False

    def _load(self) -> None:
        if self._loaded:
            return
        self._tasks = {task.id: task for task in read_tasks(self.path)}
        self._loaded = True
        logger.debug("Loaded %d tasks from %s", len(self._tasks), self.path)

    def _commit(self) -> None:
        try:
            write_tasks(self.path, self._tasks.values())
        except GatewayError:
            # The file still holds the last good state; reread it on next access.
            self._loaded = False
            raise


def read_tasks(path: Path) -> list[Task]:
    """Read tasks from `path`. A missing file is an empty collection."""

    if not path.exists():
        return []
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise GatewayError(f"Cannot read {path}: {exc}", code=ErrorCode.DATABASE_ERROR) from exc

    if not isinstance(payload, dict) or not isinstance(payload.get("tasks"), list):
        raise GatewayError(f"Unexpected layout in {path}", code=ErrorCode.DATABASE_ERROR)
    try:
        return [Task.model_validate(item) for item in payload["tasks"]]
    except ValidationError as exc:
        raise GatewayError(f"Invalid task data in {path}: {exc}", code=ErrorCode.DATABASE_ERROR) from exc


def write_tasks(path: Path, tasks: Iterable[Task]) -> Path:
    """Write tasks as UTF-8 JSON with stable formatting (atomic replace)."""

    payload = {
        "version": FORMAT_VERSION,
        "tasks": [task.model_dump(mode="json") for task in tasks],
    }
    tmp = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp.write_text(
            json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        os.replace(tmp, path)
    except OSError as exc:
        raise GatewayError(f"Cannot write {path}: {exc}", code=ErrorCode.DATABASE_ERROR) from exc
    return path
