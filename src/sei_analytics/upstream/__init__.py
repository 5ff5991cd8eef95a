"""Upstream layer - Sei chain data feed and its wrappers."""

from sei_analytics.upstream.cache import CachedFeed
from sei_analytics.upstream.feed import RetryingFeed, UpstreamFeed, retry_async
from sei_analytics.upstream.mock import MockSeiFeed
from sei_analytics.upstream.models import (
    CoinSnapshot,
    EntityKind,
    FlowRecord,
    NFTMovement,
    NFTSnapshot,
    TokenHolder,
    UpstreamEvent,
    WalletSnapshot,
    WalletTransaction,
    WhaleHolder,
)

__all__ = [
    "CachedFeed",
    "CoinSnapshot",
    "EntityKind",
    "FlowRecord",
    "MockSeiFeed",
    "NFTMovement",
    "NFTSnapshot",
    "RetryingFeed",
    "TokenHolder",
    "UpstreamEvent",
    "UpstreamFeed",
    "WalletSnapshot",
    "WalletTransaction",
    "WhaleHolder",
    "retry_async",
]
