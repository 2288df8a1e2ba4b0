"""In-memory conversation store.

Implements the SessionStore protocol for tests, the CLI and single-process
deployments. Persistent stores live outside the execution core.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from strand.protocols import Message


class InMemorySessionStore:
    """Append-only per-session message lists."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, list[Message]] = {}

    async def append(self, session_key: str, messages: Sequence[Message]) -> None:
        async with self._lock:
            self._sessions.setdefault(session_key, []).extend(messages)

    async def history(self, session_key: str, limit: int | None = None) -> list[Message]:
        """Messages of a session, oldest first; the last *limit* if given."""
        async with self._lock:
            messages = list(self._sessions.get(session_key, []))
        if limit is not None:
            return messages[-limit:] if limit > 0 else []
        return messages

    def sessions(self) -> list[str]:
        return list(self._sessions)

    def clear(self, session_key: str | None = None) -> None:
        if session_key is None:
            self._sessions.clear()
        else:
            self._sessions.pop(session_key, None)
