"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import MagicMock

import pytest

from sei_analytics.config import Settings, TrackerSettings
from sei_analytics.tracking.broadcaster import FanOutBroadcaster
from sei_analytics.tracking.registry import EntityRegistry
from sei_analytics.upstream.models import (
    CoinSnapshot,
    EntityKind,
    NFTSnapshot,
    Snapshot,
    UpstreamEvent,
    WalletSnapshot,
)

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
WALLET_ADDRESS = "sei1wallet1abcdefghijklmnopqrstuvwxyz123456789"


class StubFeed:
    """In-memory upstream feed with scriptable snapshots and failures."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now
        self.connected = True
        self.snapshots: dict[tuple[EntityKind, str], Snapshot] = {}
        self.fail_with: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.fetch_calls: list[tuple[EntityKind, str]] = []
        self.queue: asyncio.Queue[UpstreamEvent | None] = asyncio.Queue()

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect(self) -> bool:
        self.connected = True
        return True

    async def close(self) -> None:
        self.connected = False
        await self.queue.put(None)

    async def events(self) -> AsyncIterator[UpstreamEvent]:
        while True:
            event = await self.queue.get()
            if event is None:
                return
            yield event

    async def fetch_snapshot(self, kind: EntityKind, key: str) -> Snapshot:
        self.fetch_calls.append((kind, key))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        if (kind, key) in self.snapshots:
            return self.snapshots[(kind, key)]
        return self.default_snapshot(kind, key)

    def default_snapshot(self, kind: EntityKind, key: str) -> Snapshot:
        if kind is EntityKind.WALLET:
            return WalletSnapshot(
                address=key,
                balance=100.0,
                denom="usei",
                token_holdings={"usei": 100.0},
                fetched_at=self.now,
            )
        if kind is EntityKind.COIN:
            return CoinSnapshot(
                symbol=key,
                name=f"{key} Token",
                denom=f"u{key.lower()}",
                price=0.005,
                market_cap=500_000.0,
                volume_24h=100_000.0,
                price_change_24h=1.5,
                total_supply=1_000_000.0,
                circulating_supply=600_000.0,
                fetched_at=self.now,
            )
        return NFTSnapshot(
            token_id=key,
            name=f"NFT #{key}",
            collection="Test Collection",
            owner="sei1creator",
            mint_date=self.now - timedelta(days=30),
            current_price=0.0,
            floor_price=0.0,
            last_sale_price=0.0,
            fetched_at=self.now,
        )


class RecordingTransport:
    """Connection transport that records deliveries and can fail on demand."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.failing: set[str] = set()

    async def send(self, connection_id: str, event: str, payload: dict[str, Any]) -> None:
        if connection_id in self.failing:
            raise ConnectionError(f"{connection_id} is gone")
        self.sent.append((connection_id, event, payload))

    def events_for(self, connection_id: str, event: str | None = None) -> list[dict[str, Any]]:
        return [
            payload
            for cid, name, payload in self.sent
            if cid == connection_id and (event is None or name == event)
        ]


def make_event(data: dict[str, Any], *, hash: str = "0xabc", timestamp: datetime = FIXED_NOW) -> UpstreamEvent:
    """Create an UpstreamEvent for testing."""
    return UpstreamEvent(hash=hash, block_height=1, data=data, timestamp=timestamp)


@pytest.fixture
def now() -> datetime:
    """Fixed point in time used as the engine clock."""
    return FIXED_NOW


@pytest.fixture
def wallet_address() -> str:
    """A valid tracked wallet address."""
    return WALLET_ADDRESS


@pytest.fixture
def event_factory():
    """Factory for upstream events stamped at the fixed clock."""
    return make_event


@pytest.fixture
def stub_feed() -> StubFeed:
    """Create a connected in-memory feed."""
    return StubFeed()


@pytest.fixture
def transport() -> RecordingTransport:
    """Create a recording connection transport."""
    return RecordingTransport()


@pytest.fixture
def broadcaster(transport: RecordingTransport) -> FanOutBroadcaster:
    """Create a broadcaster over the recording transport."""
    return FanOutBroadcaster(transport)


@pytest.fixture
def tracker_settings() -> TrackerSettings:
    """Tracker settings with default caps."""
    return TrackerSettings()


@pytest.fixture
def registry(stub_feed: StubFeed, broadcaster: FanOutBroadcaster, tracker_settings: TrackerSettings) -> EntityRegistry:
    """Create a registry on the stub feed with a fixed clock."""
    return EntityRegistry.from_settings(stub_feed, broadcaster, tracker_settings, clock=lambda: FIXED_NOW)


@pytest.fixture
def mock_settings(tracker_settings: TrackerSettings):
    """Create mock settings for testing."""
    sei = MagicMock()
    sei.event_interval_seconds = 5.0
    sei.seed = 7
    sei.max_retries = 0
    sei.retry_base_delay = 0.0
    sei.reconnect_base_delay = 0.01
    sei.reconnect_max_delay = 0.04

    redis = MagicMock()
    redis.url = None
    redis.snapshot_ttl_seconds = 120

    server = MagicMock()
    server.host = "127.0.0.1"
    server.port = 3001
    server.cors_origin = "*"

    settings = MagicMock(spec=Settings)
    settings.sei = sei
    settings.redis = redis
    settings.server = server
    settings.tracker = tracker_settings
    settings.log_level = "INFO"
    return settings
