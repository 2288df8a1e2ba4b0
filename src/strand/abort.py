"""Cooperative cancellation for agent runs.

Each run owns an AbortController. Every suspension point of the run (model
stream increments, tool awaits, rate-limit sleeps) is raced against the
controller's signal: whichever finishes first decides what happens next.
CPU-bound work between suspension points is not interruptible.

The AbortRegistry maps session keys to the controllers of live runs so that
an external caller (possibly on another thread) can abort a run by key.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Awaitable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from strand.exceptions import AbortedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AbortController:
    """Cancellation signal for a single run.

    ``abort()`` is idempotent and thread-safe. The asyncio side of the
    signal is bound to the loop that first awaits it.
    """

    def __init__(self, session_key: str, grace_period: float = 2.0) -> None:
        self.session_key = session_key
        self.grace_period = grace_period
        self._lock = threading.Lock()
        self._aborted = False
        self._event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._children: list[AbortController] = []

    def __repr__(self) -> str:
        return f"AbortController({self.session_key!r}, aborted={self._aborted})"

    # -- signal -------------------------------------------------------------

    def abort(self) -> bool:
        """Trigger the signal. Returns True only for the first call."""
        with self._lock:
            if self._aborted:
                return False
            self._aborted = True
            children = list(self._children)
            event, loop = self._event, self._loop

        logger.warning("Abort requested for session %s", self.session_key)
        if event is not None and loop is not None:
            if _running_loop() is loop:
                event.set()
            elif not loop.is_closed():
                loop.call_soon_threadsafe(event.set)
        for child in children:
            child.abort()
        return True

    def is_aborted(self) -> bool:
        return self._aborted

    def raise_if_aborted(self) -> None:
        if self._aborted:
            raise AbortedError(self.session_key)

    def link(self, child: AbortController) -> None:
        """Cascade this controller's abort to *child*."""
        with self._lock:
            self._children.append(child)
            aborted = self._aborted
        if aborted:
            child.abort()

    def unlink(self, child: AbortController) -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def _signal(self) -> asyncio.Event:
        with self._lock:
            if self._event is None:
                self._event = asyncio.Event()
                self._loop = asyncio.get_running_loop()
                if self._aborted:
                    self._event.set()
            return self._event

    async def wait(self) -> None:
        """Block until the signal is triggered."""
        await self._signal().wait()

    # -- racing -------------------------------------------------------------

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the signal fires first.

        Raises:
            AbortedError: If the signal wins; the work is cancelled.
        """
        self.raise_if_aborted()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()
        work.cancel()
        await _drain(work)
        raise AbortedError(self.session_key)

    async def race_with_grace(self, awaitable: Awaitable[T]) -> T:
        """Like :meth:`race`, but give in-flight work ``grace_period`` seconds.

        Once the signal fires the work may still finish within the grace
        period; either way the run is told to stop by AbortedError.
        """
        self.raise_if_aborted()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work in done:
            return work.result()

        _, pending = await asyncio.wait({work}, timeout=self.grace_period)
        if pending:
            logger.warning(
                "Abandoning in-flight work for session %s after %.1fs grace period",
                self.session_key, self.grace_period,
            )
            work.cancel()
        await _drain(work)
        raise AbortedError(self.session_key)

    async def sleep(self, delay: float) -> None:
        """Abortable ``asyncio.sleep``."""
        await self.race(asyncio.sleep(delay))


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


async def _drain(task: asyncio.Future) -> None:
    """Wait for a cancelled task to settle, discarding its outcome."""
    await asyncio.gather(task, return_exceptions=True)


class AbortRegistry:
    """Process-wide ``session_key -> AbortController`` map for live runs.

    Lock-protected; never held across an await, so no run blocks another.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._controllers: dict[str, AbortController] = {}

    def register(self, session_key: str, grace_period: float = 2.0) -> AbortController:
        """Create and register a controller for *session_key*.

        A controller already registered under the same key is aborted.
        """
        controller = AbortController(session_key, grace_period=grace_period)
        with self._lock:
            displaced = self._controllers.get(session_key)
            self._controllers[session_key] = controller
        if displaced is not None:
            logger.warning("Session %s started again; aborting previous run", session_key)
            displaced.abort()
        return controller

    def get(self, session_key: str) -> AbortController | None:
        with self._lock:
            return self._controllers.get(session_key)

    def abort(self, session_key: str) -> bool:
        """Abort the run registered under *session_key*.

        Returns False if no run is registered or it was already aborted.
        """
        controller = self.get(session_key)
        if controller is None:
            return False
        return controller.abort()

    def remove(self, session_key: str, controller: AbortController | None = None) -> None:
        """Remove the entry; with *controller*, only if it is still current."""
        with self._lock:
            current = self._controllers.get(session_key)
            if current is None:
                return
            if controller is None or current is controller:
                del self._controllers[session_key]

    @contextmanager
    def scoped(self, session_key: str, grace_period: float = 2.0) -> Iterator[AbortController]:
        """Register for the duration of a ``with`` block; always removed on exit."""
        controller = self.register(session_key, grace_period=grace_period)
        try:
            yield controller
        finally:
            self.remove(session_key, controller)

    def __len__(self) -> int:
        with self._lock:
            return len(self._controllers)

    def __contains__(self, session_key: object) -> bool:
        with self._lock:
            return session_key in self._controllers


default_registry = AbortRegistry()
