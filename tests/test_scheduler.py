"""Tests for the real-time and virtual-time schedulers."""

from __future__ import annotations

import asyncio

import pytest

from conductor.scheduler import AsyncioScheduler, VirtualScheduler


class TestVirtualScheduler:
    def test_advance_runs_due_callbacks_in_order(self):
        scheduler = VirtualScheduler()
        ran = []
        scheduler.call_later(0.7, lambda: ran.append("late"))
        scheduler.call_later(0.5, lambda: ran.append("early"))
        scheduler.call_later(2.0, lambda: ran.append("later"))

        assert scheduler.advance(1.0) == 2
        assert ran == ["early", "late"]
        assert scheduler.now == 1.0
        assert scheduler.pending == 1

    def test_ties_keep_scheduling_order(self):
        scheduler = VirtualScheduler()
        ran = []
        for name in "abc":
            scheduler.call_later(0.5, lambda n=name: ran.append(n))
        scheduler.advance(0.5)
        assert ran == ["a", "b", "c"]

    def test_cancelled_handle_does_not_run(self):
        scheduler = VirtualScheduler()
        ran = []
        handle = scheduler.call_later(0.1, lambda: ran.append(1))
        handle.cancel()

        assert scheduler.advance(1.0) == 0
        assert ran == []
        assert handle.cancelled()

    def test_callbacks_can_schedule_more_work(self):
        scheduler = VirtualScheduler()
        ran = []

        def first():
            ran.append("first")
            scheduler.call_later(0.2, lambda: ran.append("second"))

        scheduler.call_later(0.1, first)
        assert scheduler.run_all() == 2
        assert ran == ["first", "second"]
        assert scheduler.now == pytest.approx(0.3)

    def test_cancel_all(self):
        scheduler = VirtualScheduler()
        scheduler.call_later(0.1, lambda: None)
        scheduler.call_later(0.2, lambda: None)
        scheduler.cancel_all()
        assert scheduler.pending == 0
        assert scheduler.run_all() == 0


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_runs_on_event_loop(self):
        scheduler = AsyncioScheduler()
        done = asyncio.Event()
        scheduler.call_later(0.01, done.set)
        assert scheduler.pending == 1

        await asyncio.wait_for(done.wait(), timeout=1.0)
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancel_all(self):
        scheduler = AsyncioScheduler()
        ran = []
        scheduler.call_later(0.01, lambda: ran.append(1))
        scheduler.cancel_all()
        await asyncio.sleep(0.05)
        assert ran == []
        assert scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_cancelled_handle_leaves_registry(self):
        scheduler = AsyncioScheduler()
        ran = []
        handle = scheduler.call_later(0.01, lambda: ran.append(1))
        scheduler.call_later(0.01, lambda: ran.append(2))

        handle.cancel()
        handle.cancel()

        assert handle.cancelled()
        assert scheduler.pending == 1
        await asyncio.sleep(0.05)
        assert ran == [2]
        assert scheduler.pending == 0
