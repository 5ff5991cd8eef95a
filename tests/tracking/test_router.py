"""Tests for the event router."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from sei_analytics.tracking.router import EventRouter
from sei_analytics.upstream.models import EntityKind


class TestEventRouter:
    """Tests for EventRouter."""

    @pytest.mark.asyncio
    async def test_consumes_until_stream_ends(self, stub_feed, registry, transport, event_factory):
        """The router should dispatch every event in order until the feed closes."""
        await registry.subscribe(EntityKind.COIN, "PEPE", "conn-1")
        router = EventRouter(stub_feed, registry)

        for i in range(3):
            await stub_feed.queue.put(event_factory({"denom": "PEPE", "inflow": i}, hash=f"0x{i}"))
        await stub_feed.close()

        await asyncio.wait_for(router.run(), timeout=1)

        assert router.stats.events_received == 3
        assert router.stats.updates_dispatched == 3
        updates = transport.events_for("conn-1", "memecoin_update")
        assert [u["newEvent"]["inflow"] for u in updates] == ["0", "1", "2"]

    @pytest.mark.asyncio
    async def test_dispatch_error_does_not_stop_loop(self, stub_feed, event_factory):
        """An exception for one event should be counted and the loop continue."""
        registry = AsyncMock()
        registry.dispatch_event.side_effect = [RuntimeError("boom"), []]
        router = EventRouter(stub_feed, registry)

        await stub_feed.queue.put(event_factory({"denom": "PEPE"}, hash="0x1"))
        await stub_feed.queue.put(event_factory({"denom": "PEPE"}, hash="0x2"))
        await stub_feed.close()
        await asyncio.wait_for(router.run(), timeout=1)

        assert router.stats.events_received == 2
        assert router.stats.errors == 1
        assert router.stats.last_error == "boom"
        assert registry.dispatch_event.await_count == 2
