"""Single consumer of the upstream event stream."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sei_analytics.tracking.registry import EntityRegistry
from sei_analytics.upstream.feed import UpstreamFeed
from sei_analytics.upstream.models import UpstreamEvent

logger = logging.getLogger(__name__)


@dataclass
class RouterStats:
    """Statistics for the event router."""

    events_received: int = 0
    updates_dispatched: int = 0
    errors: int = 0
    last_event_time: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "eventsReceived": self.events_received,
            "updatesDispatched": self.updates_dispatched,
            "errors": self.errors,
            "lastEventTime": self.last_event_time.isoformat() if self.last_event_time else None,
            "lastError": self.last_error,
        }


class EventRouter:
    """Feeds upstream events to the registry strictly one at a time.

    Being the only consumer of ``feed.events()`` is what makes history
    append, recompute and broadcast atomic per event.
    """

    def __init__(self, feed: UpstreamFeed, registry: EntityRegistry) -> None:
        self._feed = feed
        self._registry = registry
        self._stats = RouterStats()

    @property
    def stats(self) -> RouterStats:
        return self._stats

    async def handle(self, event: UpstreamEvent) -> int:
        """Dispatch one event; errors are logged and counted, never raised."""
        self._stats.events_received += 1
        self._stats.last_event_time = datetime.now(UTC)
        try:
            updates = await self._registry.dispatch_event(event)
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.error("Error dispatching event %s: %s", event.hash, e)
            return 0
        self._stats.updates_dispatched += len(updates)
        return len(updates)

    async def run(self) -> None:
        """Consume the feed until it ends or the task is cancelled."""
        logger.info("Event router started")
        async for event in self._feed.events():
            await self.handle(event)
        logger.info("Event stream ended")
