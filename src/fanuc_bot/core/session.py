"""Process-wide registry of live sessions, at most one per user."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field

from fanuc_bot.log import get_logger

logger = get_logger(__name__)


@dataclass(eq=False)
class LiveHandle:
    """Cancellation handle of one live session.

    ``token`` is set once and never cleared: a cancelled handle stays cancelled.
    """

    user_id: int
    target_id: int
    key_id: int
    token: asyncio.Event = field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None

    def cancel(self) -> None:
        self.token.set()

    @property
    def cancelled(self) -> bool:
        return self.token.is_set()


class LiveSessionRegistry:
    """Maps user id -> the only live handle allowed for that user.

    The map itself is never exposed; ``replace`` and ``remove`` are the only
    mutations and each one is a single critical section.
    """

    def __init__(self) -> None:
        self._handles: dict[int, LiveHandle] = {}
        self._lock = threading.Lock()

    def replace(self, user_id: int, handle: LiveHandle) -> LiveHandle | None:
        """Install ``handle`` for ``user_id``, cancelling and returning the previous one."""
        with self._lock:
            previous = self._handles.get(user_id)
            self._handles[user_id] = handle
            if previous is not None and previous is not handle:
                previous.cancel()
        if previous is not None:
            logger.debug("live_session_replaced", user_id=user_id)
        return previous

    def remove(self, user_id: int, handle: LiveHandle | None = None) -> LiveHandle | None:
        """Cancel and drop the user's handle.

        When ``handle`` is given, only that exact handle is removed, so a stale
        loop can never tear down a session started after it.
        """
        with self._lock:
            current = self._handles.get(user_id)
            if current is None or (handle is not None and current is not handle):
                return None
            del self._handles[user_id]
            current.cancel()
        return current

    def get(self, user_id: int) -> LiveHandle | None:
        with self._lock:
            return self._handles.get(user_id)

    def drain(self) -> list[LiveHandle]:
        """Cancel and remove every handle (shutdown)."""
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            for handle in handles:
                handle.cancel()
        return handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)
