"""Notification adapters (implementations of `NotificationPort`).

Why two adapters:
- `ConsoleNotifier` is the user-facing sink for the CLI (Rich).
- `LoggingNotifier` is the headless sink (batch jobs, embedding the core in
  another host) and the fallback when no console is available.

Both keep a bounded error log. The entity store and the command engine can
report the same exception (store rollback, then engine re-raise); the log
merges the second report's context into the first instead of showing the
error twice.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from rich.console import Console

from core.domain.errors import ErrorCode, TaskdeckError

logger = logging.getLogger(__name__)

MAX_ERROR_LOG = 100


@dataclass
class ErrorRecord:
    """One reported error with the merged context of every report."""

    error: BaseException
    code: ErrorCode
    user_message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))


def describe_error(error: BaseException) -> tuple[ErrorCode, str]:
    """Normalise any exception into `(code, user_message)`."""

    if isinstance(error, TaskdeckError):
        return error.code, error.user_message
    return ErrorCode.UNKNOWN_ERROR, "An unexpected error occurred. Please try again."


class ErrorLog:
    """Bounded, identity-deduplicated log of reported errors."""

    def __init__(self, max_size: int = MAX_ERROR_LOG) -> None:
        self._records: deque[ErrorRecord] = deque(maxlen=max_size)

    def record(self, error: BaseException, context: dict[str, Any]) -> tuple[ErrorRecord, bool]:
        """Add `error`; returns the record and whether it is a new report."""

        for existing in self._records:
            if existing.error is error:
                existing.context.update(context)
                return existing, False
        code, user_message = describe_error(error)
        record = ErrorRecord(error=error, code=code, user_message=user_message, context=dict(context))
        self._records.append(record)
        return record, True

    def records(self) -> list[ErrorRecord]:
        return list(self._records)

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, error: object) -> bool:
        return any(record.error is error for record in self._records)


class LoggingNotifier:
    """`NotificationPort` that only writes to the `logging` tree."""

    def __init__(self, error_log: ErrorLog | None = None) -> None:
        self.error_log = error_log or ErrorLog()

    def notify_success(self, message: str) -> None:
        logger.info(message)

    def notify_error(self, error: BaseException, context: dict[str, Any]) -> None:
        record, is_new = self.error_log.record(error, context)
        if is_new:
            logger.error("[%s] %s | context=%s", record.code.value, error, record.context)


class ConsoleNotifier:
    """`NotificationPort` printing toasts to a Rich console."""

    def __init__(self, console: Console | None = None, error_log: ErrorLog | None = None) -> None:
        self.console = console or Console(stderr=True)
        self.error_log = error_log or ErrorLog()

    def notify_success(self, message: str) -> None:
        try:
            self.console.print(f"[green]✓[/green] {message}")
        except Exception:
            logger.exception("Could not print success notification")

    def notify_error(self, error: BaseException, context: dict[str, Any]) -> None:
        record, is_new = self.error_log.record(error, context)
        logger.debug("Error report (%s): %s | context=%s", record.code.value, error, context)
        if not is_new:
            return
        try:
            self.console.print(f"[bold red]Error:[/bold red] {record.user_message} [dim]({error})[/dim]")
        except Exception:
            logger.exception("Could not print error notification")
