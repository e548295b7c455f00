"""Tests for BroadcastChannel fan-out pub/sub."""

from __future__ import annotations

import asyncio

import pytest

from conductor.channels import BroadcastChannel


class TestSubscribe:
    def test_every_subscriber_sees_every_item_in_order(self):
        channel: BroadcastChannel[int] = BroadcastChannel("numbers")
        first, second = [], []
        channel.subscribe(first.append)
        channel.subscribe(second.append)

        for i in range(3):
            channel.publish(i)

        assert first == [0, 1, 2]
        assert second == [0, 1, 2]

    def test_unsubscribe_stops_delivery(self):
        channel: BroadcastChannel[str] = BroadcastChannel()
        seen = []
        sub = channel.subscribe(seen.append)
        channel.publish("a")
        sub.unsubscribe()
        sub.unsubscribe()
        channel.publish("b")

        assert seen == ["a"]
        assert sub.active is False
        assert channel.subscriber_count == 0

    def test_failing_subscriber_is_isolated(self):
        channel: BroadcastChannel[str] = BroadcastChannel()
        seen = []

        def boom(item):
            raise RuntimeError("subscriber bug")

        channel.subscribe(boom)
        channel.subscribe(seen.append)
        channel.publish("x")

        assert seen == ["x"]

    @pytest.mark.asyncio
    async def test_async_callback_is_scheduled(self):
        channel: BroadcastChannel[str] = BroadcastChannel()
        seen = []

        async def handler(item):
            seen.append(item)

        channel.subscribe(handler)
        channel.publish("async")
        await asyncio.sleep(0)

        assert seen == ["async"]


class TestClose:
    def test_publish_after_close_is_noop(self):
        channel: BroadcastChannel[str] = BroadcastChannel()
        seen = []
        channel.subscribe(seen.append)
        channel.close()
        channel.close()
        channel.publish("late")

        assert seen == []
        assert channel.closed is True

    def test_subscribe_after_close_is_inactive(self):
        channel: BroadcastChannel[str] = BroadcastChannel()
        channel.close()
        sub = channel.subscribe(print)
        assert sub.active is False
        assert channel.subscriber_count == 0


class TestStream:
    @pytest.mark.asyncio
    async def test_stream_receives_until_close(self):
        channel: BroadcastChannel[int] = BroadcastChannel()

        async def collect():
            return [item async for item in channel.stream()]

        task = asyncio.create_task(collect())
        await asyncio.sleep(0)

        channel.publish(1)
        channel.publish(2)
        channel.close()

        assert await asyncio.wait_for(task, timeout=1.0) == [1, 2]
        assert channel.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_stream_on_closed_channel_is_empty(self):
        channel: BroadcastChannel[int] = BroadcastChannel()
        channel.close()
        assert [item async for item in channel.stream()] == []
