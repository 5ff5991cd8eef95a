"""Kind-routing facade over the three entity trackers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from sei_analytics.config import TrackerSettings
from sei_analytics.tracking.broadcaster import FanOutBroadcaster
from sei_analytics.tracking.kinds import CoinKind, NFTKind, WalletKind
from sei_analytics.tracking.models import EntityUpdate, TrackedEntity, TrackerStats
from sei_analytics.tracking.tracker import Clock, EntityTracker, utc_now
from sei_analytics.upstream.feed import UpstreamFeed
from sei_analytics.upstream.models import EntityKind, Snapshot, UpstreamEvent

logger = logging.getLogger(__name__)


class EntityRegistry:
    """Routes registry operations by entity kind.

    Example:
        ```python
        registry = EntityRegistry.from_settings(feed, broadcaster, settings.tracker)
        snapshot, metrics = await registry.subscribe(EntityKind.COIN, "PEPE", "conn-1")
        ```
    """

    def __init__(self, trackers: Mapping[EntityKind, EntityTracker]) -> None:
        missing = set(EntityKind) - set(trackers)
        if missing:
            raise ValueError(f"Missing trackers for: {', '.join(sorted(k.value for k in missing))}")
        self._trackers = dict(trackers)

    @classmethod
    def from_settings(
        cls,
        feed: UpstreamFeed,
        broadcaster: FanOutBroadcaster,
        settings: TrackerSettings | None = None,
        *,
        clock: Clock = utc_now,
    ) -> EntityRegistry:
        """Build the three trackers from tracker settings."""
        settings = settings or TrackerSettings()
        specs = (
            WalletKind(
                history_size=settings.wallet_history_size,
                address_prefix=settings.wallet_address_prefix,
                address_length=settings.wallet_address_length,
            ),
            CoinKind(
                history_size=settings.coin_history_size,
                whale_refresh_interval=timedelta(minutes=settings.whale_refresh_minutes),
            ),
            NFTKind(history_size=settings.nft_history_size),
        )
        return cls({spec.kind: EntityTracker(spec, feed, broadcaster, clock=clock) for spec in specs})

    def tracker(self, kind: EntityKind | str) -> EntityTracker:
        if not isinstance(kind, EntityKind):
            kind = EntityKind.parse(kind)
        return self._trackers[kind]

    async def subscribe(
        self,
        kind: EntityKind | str,
        key: Any,
        connection_id: str,
        options: dict[str, Any] | None = None,
    ) -> tuple[Snapshot, Any]:
        return await self.tracker(kind).subscribe(key, connection_id, options)

    def unsubscribe(self, kind: EntityKind | str, key: str, connection_id: str) -> bool:
        return self.tracker(kind).unsubscribe(key, connection_id)

    def remove_connection(self, connection_id: str) -> dict[EntityKind, list[str]]:
        """Detach a connection from every entity of every kind."""
        removed = {kind: tracker.remove_connection(connection_id) for kind, tracker in self._trackers.items()}
        count = sum(len(keys) for keys in removed.values())
        if count:
            logger.debug("Removed connection %s from %d entities", connection_id, count)
        return removed

    async def dispatch_event(self, event: UpstreamEvent) -> list[EntityUpdate]:
        """Apply one upstream event to all kinds, in a fixed kind order."""
        updates: list[EntityUpdate] = []
        for kind in EntityKind:
            updates.extend(await self._trackers[kind].dispatch(event))
        return updates

    def get(self, kind: EntityKind | str, key: Any) -> TrackedEntity:
        return self.tracker(kind).get(key)

    def tracked(self) -> list[tuple[EntityKind, str]]:
        """Every tracked entity as a (kind, key) pair."""
        return [(kind, key) for kind, tracker in self._trackers.items() for key in tracker.tracked_keys()]

    def __len__(self) -> int:
        return sum(len(tracker) for tracker in self._trackers.values())

    def stats(self) -> dict[EntityKind, TrackerStats]:
        return {kind: tracker.stats() for kind, tracker in self._trackers.items()}
