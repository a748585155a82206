"""Error taxonomy of the core.

Why a dedicated module:
- Adapters translate transport failures (HTTP, disk, JSON) into these types,
  so the store and the command engine only ever reason about domain errors.
- Each error carries a stable `code` and a human readable `user_message`
  that notification adapters can show without inspecting the cause.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    DATABASE_ERROR = "DATABASE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_DEFAULT_USER_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.NETWORK_ERROR: "Failed to communicate with the backend. Please try again.",
    ErrorCode.TIMEOUT: "The backend took too long to answer. Please try again.",
    ErrorCode.DATABASE_ERROR: "Storage error occurred. Your data may not have been saved.",
    ErrorCode.VALIDATION_ERROR: "The backend rejected the data.",
    ErrorCode.TASK_NOT_FOUND: "The task no longer exists.",
    ErrorCode.UNKNOWN_ERROR: "An unexpected error occurred. Please try again.",
}


class TaskdeckError(Exception):
    """Base class for every error raised by taskdeck."""

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        user_message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.user_message = user_message or _DEFAULT_USER_MESSAGES[code]
        self.context: dict[str, Any] = dict(context or {})


class GatewayError(TaskdeckError):
    """Any failure of the persistence gateway (network, validation, storage).

    Always recoverable locally through rollback.
    """


class NotFoundError(GatewayError):
    def __init__(self, entity_id: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Task {entity_id!r} not found",
            code=ErrorCode.TASK_NOT_FOUND,
            context={"entity_id": entity_id},
        )
        self.entity_id = entity_id


class HistoryBoundsError(TaskdeckError):
    """Cursor or history length escaped its bounds. Indicates a bug in the engine."""


class ListenerError(TaskdeckError):
    """A subscriber callback raised. Logged, never propagated."""

    def __init__(self, listener: object, cause: BaseException) -> None:
        super().__init__(f"Listener {listener!r} raised {type(cause).__name__}: {cause}")
        self.listener = listener
        self.__cause__ = cause


class BusyError(TaskdeckError):
    """A mutation was requested while another one is still pending."""

    def __init__(self, action: str) -> None:
        super().__init__(
            f"Cannot {action} while another change is still being saved",
            user_message="Another change is still being saved. Please wait.",
            context={"action": action},
        )
