"""Tests for AbortController and AbortRegistry."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from strand.abort import AbortController, AbortRegistry
from strand.exceptions import AbortedError


async def _slow(flags: dict, delay: float = 10.0, value: str = "done") -> str:
    try:
        await asyncio.sleep(delay)
    except asyncio.CancelledError:
        flags["cancelled"] = True
        raise
    flags["finished"] = True
    return value


# ---------------------------------------------------------------------------
# Signal
# ---------------------------------------------------------------------------

class TestSignal:
    def test_abort_is_idempotent(self):
        controller = AbortController("s1")
        assert controller.abort() is True
        assert controller.abort() is False
        assert controller.is_aborted()

    def test_raise_if_aborted(self):
        controller = AbortController("s1")
        controller.raise_if_aborted()
        controller.abort()
        with pytest.raises(AbortedError) as exc_info:
            controller.raise_if_aborted()
        assert exc_info.value.session_key == "s1"
        assert exc_info.value.kind == "aborted"

    def test_link_cascades(self):
        parent = AbortController("p")
        child = AbortController("p/sub-1")
        parent.link(child)
        parent.abort()
        assert child.is_aborted()

    def test_link_to_aborted_parent_aborts_child(self):
        parent = AbortController("p")
        parent.abort()
        child = AbortController("p/sub-1")
        parent.link(child)
        assert child.is_aborted()

    def test_unlink_stops_cascade(self):
        parent = AbortController("p")
        child = AbortController("p/sub-1")
        parent.link(child)
        parent.unlink(child)
        parent.abort()
        assert not child.is_aborted()

    def test_child_abort_does_not_reach_parent(self):
        parent = AbortController("p")
        child = AbortController("p/sub-1")
        parent.link(child)
        child.abort()
        assert not parent.is_aborted()


# ---------------------------------------------------------------------------
# Racing
# ---------------------------------------------------------------------------

class TestRace:
    @pytest.mark.asyncio
    async def test_returns_result_without_abort(self):
        controller = AbortController("s1")
        flags: dict = {}
        assert await controller.race(_slow(flags, delay=0.01)) == "done"
        assert flags == {"finished": True}

    @pytest.mark.asyncio
    async def test_abort_cancels_work(self):
        controller = AbortController("s1")
        flags: dict = {}
        asyncio.get_running_loop().call_later(0.02, controller.abort)

        with pytest.raises(AbortedError):
            await controller.race(_slow(flags))
        assert flags == {"cancelled": True}

    @pytest.mark.asyncio
    async def test_already_aborted_raises_immediately(self):
        controller = AbortController("s1")
        controller.abort()
        future = asyncio.get_running_loop().create_future()
        with pytest.raises(AbortedError):
            await controller.race(future)
        assert not future.done()

    @pytest.mark.asyncio
    async def test_abort_from_another_thread(self):
        controller = AbortController("s1")
        flags: dict = {}

        def trigger():
            time.sleep(0.05)
            controller.abort()

        thread = threading.Thread(target=trigger)
        thread.start()
        started = time.monotonic()
        with pytest.raises(AbortedError):
            await controller.race(_slow(flags))
        thread.join()
        assert time.monotonic() - started < 5
        assert flags.get("cancelled")

    @pytest.mark.asyncio
    async def test_work_errors_propagate(self):
        controller = AbortController("s1")

        async def broken():
            raise ValueError("boom")

        with pytest.raises(ValueError, match="boom"):
            await controller.race(broken())

    @pytest.mark.asyncio
    async def test_sleep_is_abortable(self):
        controller = AbortController("s1")
        asyncio.get_running_loop().call_later(0.02, controller.abort)
        started = time.monotonic()
        with pytest.raises(AbortedError):
            await controller.sleep(10)
        assert time.monotonic() - started < 5


class TestRaceWithGrace:
    @pytest.mark.asyncio
    async def test_work_finishing_within_grace_still_aborts(self):
        controller = AbortController("s1", grace_period=1.0)
        flags: dict = {}
        asyncio.get_running_loop().call_later(0.01, controller.abort)

        with pytest.raises(AbortedError):
            await controller.race_with_grace(_slow(flags, delay=0.1))
        assert flags == {"finished": True}

    @pytest.mark.asyncio
    async def test_work_past_grace_is_cancelled(self):
        controller = AbortController("s1", grace_period=0.05)
        flags: dict = {}
        asyncio.get_running_loop().call_later(0.01, controller.abort)

        started = time.monotonic()
        with pytest.raises(AbortedError):
            await controller.race_with_grace(_slow(flags))
        assert time.monotonic() - started < 5
        assert flags == {"cancelled": True}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TestRegistry:
    def test_register_and_lookup(self):
        registry = AbortRegistry()
        controller = registry.register("s1", grace_period=0.5)
        assert registry.get("s1") is controller
        assert "s1" in registry
        assert len(registry) == 1
        assert controller.grace_period == 0.5

    def test_abort_by_key(self):
        registry = AbortRegistry()
        controller = registry.register("s1")
        assert registry.abort("s1") is True
        assert controller.is_aborted()
        assert registry.abort("s1") is False

    def test_abort_unknown_key(self):
        assert AbortRegistry().abort("missing") is False

    def test_register_displaces_previous_run(self):
        registry = AbortRegistry()
        first = registry.register("s1")
        second = registry.register("s1")
        assert first.is_aborted()
        assert not second.is_aborted()
        assert registry.get("s1") is second

    def test_remove_with_stale_controller_is_noop(self):
        registry = AbortRegistry()
        first = registry.register("s1")
        second = registry.register("s1")
        registry.remove("s1", first)
        assert registry.get("s1") is second
        registry.remove("s1", second)
        assert "s1" not in registry

    def test_scoped_removes_on_error(self):
        registry = AbortRegistry()
        with pytest.raises(RuntimeError):
            with registry.scoped("s1") as controller:
                assert registry.get("s1") is controller
                raise RuntimeError("boom")
        assert len(registry) == 0

    def test_concurrent_register_and_remove(self):
        registry = AbortRegistry()

        def worker(n: int) -> None:
            for i in range(200):
                key = f"w{n}-{i}"
                with registry.scoped(key):
                    registry.abort(key)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(registry) == 0
