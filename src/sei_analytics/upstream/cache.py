"""Redis-backed TTL cache for upstream snapshots.

Cache failures never fail a fetch: they are logged and the feed is asked
directly.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime
from decimal import Decimal
from typing import Any

from redis.asyncio import Redis

from sei_analytics.upstream.feed import UpstreamFeed
from sei_analytics.upstream.models import (
    CoinSnapshot,
    EntityKind,
    NFTMovement,
    NFTSnapshot,
    Snapshot,
    TokenHolder,
    UpstreamEvent,
    WalletSnapshot,
    WalletTransaction,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_CACHE_TTL = 120  # 2 minutes
CACHE_KEY_PREFIX = "sei:snapshot:"


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_snapshot(snapshot: Snapshot) -> str:
    return json.dumps(dataclasses.asdict(snapshot), default=_json_default)


def _optional_ts(value: Any) -> datetime | None:
    return parse_timestamp(value) if value else None


def decode_snapshot(kind: EntityKind, payload: str | bytes) -> Snapshot:
    data = json.loads(payload if isinstance(payload, str) else payload.decode())
    data["fetched_at"] = parse_timestamp(data["fetched_at"])

    if kind is EntityKind.WALLET:
        data["recent_transactions"] = tuple(
            WalletTransaction(
                **{**tx, "amount": Decimal(tx["amount"]), "timestamp": parse_timestamp(tx["timestamp"])}
            )
            for tx in data.get("recent_transactions", [])
        )
        return WalletSnapshot(**data)

    if kind is EntityKind.COIN:
        data["holders"] = tuple(
            TokenHolder(**{**h, "last_activity": _optional_ts(h.get("last_activity"))})
            for h in data.get("holders", [])
        )
        return CoinSnapshot(**data)

    data["mint_date"] = parse_timestamp(data["mint_date"])
    data["attributes"] = tuple(data.get("attributes", []))
    data["movements"] = tuple(
        NFTMovement(**{**m, "price": Decimal(m["price"]), "timestamp": parse_timestamp(m["timestamp"])})
        for m in data.get("movements", [])
    )
    return NFTSnapshot(**data)


class CachedFeed:
    """Feed wrapper that serves snapshots from Redis while they are fresh."""

    def __init__(
        self,
        feed: UpstreamFeed,
        *,
        redis: Redis | None = None,
        ttl_seconds: int = DEFAULT_SNAPSHOT_CACHE_TTL,
    ) -> None:
        self._feed = feed
        self._redis = redis
        self._ttl = ttl_seconds

    @property
    def is_connected(self) -> bool:
        return self._feed.is_connected

    def _cache_key(self, kind: EntityKind, key: str) -> str:
        return f"{CACHE_KEY_PREFIX}{kind.value}:{key}"

    async def _get_cached(self, kind: EntityKind, key: str) -> Snapshot | None:
        if not self._redis:
            return None
        try:
            cached = await self._redis.get(self._cache_key(kind, key))
            if cached is None:
                return None
            return decode_snapshot(kind, cached)
        except Exception as e:
            logger.warning("Failed to read cached %s snapshot for %s: %s", kind.value, key, e)
            return None

    async def _store(self, kind: EntityKind, key: str, snapshot: Snapshot) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(self._cache_key(kind, key), encode_snapshot(snapshot), ex=self._ttl)
        except Exception as e:
            logger.warning("Failed to cache %s snapshot for %s: %s", kind.value, key, e)

    async def connect(self) -> bool:
        return await self._feed.connect()

    async def fetch_snapshot(self, kind: EntityKind, key: str) -> Snapshot:
        cached = await self._get_cached(kind, key)
        if cached is not None:
            return cached
        snapshot = await self._feed.fetch_snapshot(kind, key)
        await self._store(kind, key, snapshot)
        return snapshot

    def events(self) -> AsyncIterator[UpstreamEvent]:
        return self._feed.events()

    async def close(self) -> None:
        await self._feed.close()
