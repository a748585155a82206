"""Notification/error port.

The command engine and the entity store report through this port instead of
importing UI modules. Implementations are fire-and-forget: they must never
raise back into the caller.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class NotificationPort(Protocol):
    def notify_success(self, message: str) -> None:
        ...

    def notify_error(self, error: BaseException, context: dict[str, Any]) -> None:
        ...
