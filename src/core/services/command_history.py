"""Command history engine (undo/redo).

Why an explicit object instead of a module-level singleton:
- The application root builds one per workspace and passes it down, so tests
  and multiple windows get independent histories.
- Side effects (toasts, error reports) go through an injected
  `NotificationPort`; the engine never imports UI code.

State:
- `entries` is the ordered log of successfully executed commands.
- `cursor` points at the last applied entry (`-1`: nothing to undo).
- Entries after the cursor are the redo tail.
- `len(entries) <= max_history`; overflow drops the oldest entry.

History only moves on success. A failed execute never enters the log and a
failed undo/redo leaves the cursor where it was.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from core.domain.errors import HistoryBoundsError, ListenerError
from core.interfaces.notifier import NotificationPort
from core.services.commands import Command

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 50

HistoryListener = Callable[[], Any]


class CommandHistory:
    """Bounded undo/redo log with a cursor and change subscribers."""

    def __init__(
        self,
        *,
        notifier: NotificationPort | None = None,
        max_history: int = DEFAULT_MAX_HISTORY,
    ) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self._notifier = notifier
        self._max_history = max_history
        self._entries: list[Command] = []
        self._cursor = -1
        self._listeners: list[HistoryListener] = []
        self._busy = False

    @property
    def max_history(self) -> int:
        return self._max_history

    @property
    def entries(self) -> tuple[Command, ...]:
        return tuple(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def busy(self) -> bool:
        """True while a command's execute/undo is awaiting its gateway call."""

        return self._busy

    def can_undo(self) -> bool:
        return self._cursor >= 0

    def can_redo(self) -> bool:
        return self._cursor < len(self._entries) - 1

    def history(self) -> list[str]:
        """Descriptions of every entry, oldest first."""

        return [command.describe() for command in self._entries]

    # ----------------------------------------------------------- operations

    async def execute(self, command: Command) -> None:
        await self._run(command, "execute", command.execute)

        del self._entries[self._cursor + 1 :]
        self._entries.append(command)
        self._cursor += 1
        overflow = len(self._entries) - self._max_history
        if overflow > 0:
            del self._entries[:overflow]
            self._cursor -= overflow
        self._check_invariants()
        logger.debug("Executed %s (cursor=%d, size=%d)", command.describe(), self._cursor, len(self._entries))
        self._notify()

    async def undo(self) -> None:
        if not self.can_undo():
            return
        command = self._entries[self._cursor]
        await self._run(command, "undo", command.undo)

        self._cursor -= 1
        self._check_invariants()
        self._notify()
        self._success(f"Undone: {command.describe()}")

    async def redo(self) -> None:
        if not self.can_redo():
            return
        command = self._entries[self._cursor + 1]
        await self._run(command, "redo", command.execute)

        self._cursor += 1
        self._check_invariants()
        self._notify()
        self._success(f"Redone: {command.describe()}")

    def clear(self) -> None:
        """Back to the initial empty state. Only for host-level resets (logout)."""

        self._entries.clear()
        self._cursor = -1
        self._notify()

    # ------------------------------------------------------------ listeners

    def subscribe(self, listener: HistoryListener) -> Callable[[], None]:
        """Call `listener()` after every successful execute/undo/redo.

        Returns a function that unsubscribes it.
        """

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
                logger.error("History listener failed: %s", error, exc_info=exc)

    # -------------------------------------------------------------- helpers

    async def _run(self, command: Command, action: str, step: Callable[[], Awaitable[None]]) -> None:
        self._busy = True
        try:
            await step()
        except Exception as exc:
            self._report(exc, command, action)
            raise
        finally:
            self._busy = False

    def _report(self, exc: BaseException, command: Command, action: str) -> None:
        description = command.describe()
        logger.warning("Command %s failed during %s: %s", description, action, exc)
        if self._notifier is None:
            return
        try:
            self._notifier.notify_error(exc, {"command": description, "action": action})
        except Exception:
            logger.exception("Notifier raised while reporting a command failure")

    def _success(self, message: str) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify_success(message)
        except Exception:
            logger.exception("Notifier raised while reporting success")

    def _check_invariants(self) -> None:
        size = len(self._entries)
        if not -1 <= self._cursor <= size - 1:
            raise HistoryBoundsError(f"cursor {self._cursor} outside [-1, {size - 1}]")
        if size > self._max_history:
            raise HistoryBoundsError(f"{size} entries exceed max_history={self._max_history}")
