"""Domain models (Pydantic v2).

Why Pydantic in the domain:
- Strict validation and self-documenting fields (Field) without coupling the
  core to any I/O library.
- Frozen models make every entity version a value: mutations produce a new
  instance and replace the store entry, never edit a shared object in place.

Note:
- These models describe *what* a task is, not *how* it is persisted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator
from pydantic.config import ConfigDict


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc).replace(microsecond=0)


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecurrenceType(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class TaskStatus(str, Enum):
    """Kanban column of a task. Tracked locally, the backend does not store it."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class _TaskFields(BaseModel):
    """User-editable fields shared by `Task`, `TaskDraft` and `TaskPatch`."""

    model_config = ConfigDict(extra="forbid")

    title: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Short human readable title.",
    )
    description: str | None = Field(
        default=None,
        max_length=20_000,
        description="Free-form notes.",
    )
    completed: bool = Field(
        default=False,
        description="Whether the task has been marked as done.",
    )
    due_date: datetime | None = Field(
        default=None,
        description="Deadline (UTC) if any.",
    )
    priority: TaskPriority = Field(
        default=TaskPriority.MEDIUM,
        description="Priority bucket.",
    )
    project_id: str | None = Field(
        default=None,
        description="Owning project identifier (opaque).",
    )
    order_index: int = Field(
        default=0,
        description="Manual ordering inside a list or kanban column.",
    )
    recurrence_type: RecurrenceType = Field(
        default=RecurrenceType.NONE,
        description="Recurrence rule.",
    )
    recurrence_interval: int = Field(
        default=1,
        ge=1,
        description="Every N days/weeks/months.",
    )
    recurrence_parent_id: str | None = Field(
        default=None,
        description="Identifier of the task this occurrence was spawned from.",
    )
    reminder_minutes_before: int | None = Field(
        default=None,
        ge=0,
        description="Reminder offset before `due_date`.",
    )
    notification_repeat: bool = Field(
        default=False,
        description="Repeat the reminder until acknowledged.",
    )
    tags: list[str] = Field(
        default_factory=list,
        description="Tag names attached to the task.",
    )
    status: TaskStatus = Field(
        default=TaskStatus.TODO,
        description="Kanban column (local only).",
    )


class TaskDraft(_TaskFields):
    """Input for creating a task; the gateway assigns `id` and timestamps."""


class Task(_TaskFields):
    """A persisted task as returned by the persistence gateway.

    Why frozen:
    - The entity store hands out the same instance to many readers. A frozen
      value guarantees a reader never observes a half-applied mutation.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Fields the backend never round-trips; re-applied after a confirmation.
    LOCAL_FIELDS: ClassVar[frozenset[str]] = frozenset({"status"})

    id: str = Field(
        ...,
        min_length=1,
        description="Opaque identifier assigned by the gateway.",
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Creation time (UTC), server assigned.",
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last modification time (UTC), server assigned.",
    )

    def apply(self, patch: TaskPatch | dict[str, Any]) -> Task:
        """Return a new version with `patch` applied (only explicitly set fields)."""

        changes = patch.changes() if isinstance(patch, TaskPatch) else dict(patch)
        if not changes:
            return self
        data = self.model_dump()
        data.update(changes)
        return Task.model_validate(data)

    def editable_snapshot(self) -> TaskPatch:
        """Patch that restores every user-editable field to this version."""

        data = self.model_dump(include=set(_TaskFields.model_fields))
        return TaskPatch(**data)

    def to_draft(self) -> TaskDraft:
        return TaskDraft(**self.model_dump(include=set(_TaskFields.model_fields)))


class TaskPatch(BaseModel):
    """Partial update. Only fields explicitly passed are applied.

    `model_dump(exclude_unset=True)` is the source of truth, so `None` can be
    used to clear an optional field.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=20_000)
    completed: bool | None = None
    due_date: datetime | None = None
    priority: TaskPriority | None = None
    project_id: str | None = None
    order_index: int | None = None
    recurrence_type: RecurrenceType | None = None
    recurrence_interval: int | None = Field(default=None, ge=1)
    recurrence_parent_id: str | None = None
    reminder_minutes_before: int | None = Field(default=None, ge=0)
    notification_repeat: bool | None = None
    tags: list[str] | None = None
    status: TaskStatus | None = None

    @field_validator(
        "title",
        "completed",
        "priority",
        "order_index",
        "recurrence_type",
        "recurrence_interval",
        "notification_repeat",
        "tags",
        "status",
    )
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        # `None` means "clear" and only nullable task fields can be cleared.
        if value is None:
            raise ValueError("cannot be cleared")
        return value

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)

    def is_empty(self) -> bool:
        return not self.model_fields_set
