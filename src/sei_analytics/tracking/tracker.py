"""Generic entity tracker.

One ``EntityTracker`` serves one entity kind. The kind's capability set
(``KindSpec``) supplies validation, backfill and metrics; the tracker owns
the entity lifecycle, the refresh cycle and fan-out.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from sei_analytics.errors import (
    EntityNotFound,
    InternalComputeError,
    ServiceUnavailable,
    SubscriptionCancelled,
    UpstreamUnavailable,
)
from sei_analytics.tracking.broadcaster import FanOutBroadcaster
from sei_analytics.tracking.history import HistoryBuffer
from sei_analytics.tracking.kinds import KindSpec
from sei_analytics.tracking.models import EntityUpdate, TrackedEntity, TrackerStats
from sei_analytics.upstream.feed import UpstreamFeed
from sei_analytics.upstream.models import EntityKind, Snapshot, UpstreamEvent

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


class EntityTracker:
    """Registry and refresh cycle for every tracked entity of one kind.

    Creation is serialized per key with an ``asyncio.Lock``: concurrent
    first subscribers share a single snapshot fetch, and other keys are
    never blocked. If every subscriber leaves while the creation fetch is
    in flight, the result is discarded and nothing is registered.
    """

    def __init__(
        self,
        spec: KindSpec,
        feed: UpstreamFeed,
        broadcaster: FanOutBroadcaster,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._spec = spec
        self._feed = feed
        self._broadcaster = broadcaster
        self._clock = clock
        self._entities: dict[str, TrackedEntity] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiting: dict[str, set[str]] = {}
        self._stats = TrackerStats(kind=spec.kind)

    @property
    def kind(self) -> EntityKind:
        return self._spec.kind

    @property
    def spec(self) -> KindSpec:
        return self._spec

    def validate_key(self, key: Any) -> str:
        return self._spec.validate_key(key)

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Subscription lifecycle
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        key: Any,
        connection_id: str,
        options: dict[str, Any] | None = None,
    ) -> tuple[Snapshot, Any]:
        """Attach a connection to an entity, creating the entity if needed.

        Returns:
            The entity's current snapshot and metrics.

        Raises:
            InvalidKeyFormat: If the key fails validation. Nothing is mutated.
            ServiceUnavailable: If the upstream feed is not connected.
            UpstreamUnavailable: If the initial snapshot cannot be fetched.
            InternalComputeError: If the initial metrics cannot be computed.
            SubscriptionCancelled: If every subscriber left while the entity
                was being created. Nothing is registered.
        """
        key = self._spec.validate_key(key)
        if not self._feed.is_connected:
            raise ServiceUnavailable("Upstream feed is not connected")

        entity = self._entities.get(key)
        if entity is not None:
            entity.subscribers.add(connection_id)
            return entity.snapshot, entity.metrics

        waiting = self._waiting.setdefault(key, set())
        waiting.add(connection_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                entity = self._entities.get(key)
                if entity is None:
                    entity = await self._create(key, options or {})
                    if not waiting:
                        logger.info(
                            "Discarding %s %s: all subscribers left during creation",
                            self.kind.value,
                            key,
                        )
                        raise SubscriptionCancelled(self.kind.value, key)
                    entity.subscribers.update(waiting)
                    self._entities[key] = entity
                    self._stats.entities_created += 1
                    logger.info("Started tracking %s %s", self.kind.value, key)
                elif connection_id in waiting:
                    entity.subscribers.add(connection_id)
                return entity.snapshot, entity.metrics
        finally:
            waiting.discard(connection_id)
            if not waiting and self._waiting.get(key) is waiting:
                del self._waiting[key]
                self._locks.pop(key, None)

    async def _create(self, key: str, options: dict[str, Any]) -> TrackedEntity:
        now = self._clock()
        snapshot = await self._fetch(key)
        history: HistoryBuffer[Any] = HistoryBuffer(
            self._spec.history_size,
            self._spec.backfill(key, snapshot, as_of=now),
        )
        metrics = self._compute(key, history, snapshot, None, as_of=now)
        return TrackedEntity(
            key=key,
            kind=self.kind,
            snapshot=snapshot,
            metrics=metrics,
            history=history,
            options=dict(options),
            created_at=now,
            last_refresh=now,
        )

    async def _fetch(self, key: str) -> Snapshot:
        try:
            return await self._feed.fetch_snapshot(self.kind, key)
        except UpstreamUnavailable:
            raise
        except Exception as e:
            raise UpstreamUnavailable(
                f"Failed to fetch {self.kind.value} {key}: {e}", last_exception=e
            ) from e

    def _compute(
        self,
        key: str,
        history: HistoryBuffer[Any],
        snapshot: Snapshot,
        previous: Any | None,
        *,
        as_of: datetime,
    ) -> Any:
        try:
            return self._spec.compute_metrics(key, history.items(), snapshot, previous, as_of=as_of)
        except Exception as e:
            raise InternalComputeError(
                f"Failed to compute {self.kind.value} metrics for {key}: {e}"
            ) from e

    def unsubscribe(self, key: str, connection_id: str) -> bool:
        """Detach a connection. Idempotent.

        Returns:
            True if the connection was subscribed.
        """
        waiting = self._waiting.get(key)
        if waiting is not None:
            waiting.discard(connection_id)

        entity = self._entities.get(key)
        if entity is None or connection_id not in entity.subscribers:
            return False

        entity.subscribers.discard(connection_id)
        if not entity.subscribers:
            del self._entities[key]
            self._stats.entities_evicted += 1
            logger.info("Stopped tracking %s %s", self.kind.value, key)
        return True

    def remove_connection(self, connection_id: str) -> list[str]:
        """Detach a connection from every entity of this kind."""
        for waiting in self._waiting.values():
            waiting.discard(connection_id)
        keys = [key for key, entity in self._entities.items() if connection_id in entity.subscribers]
        for key in keys:
            self.unsubscribe(key, connection_id)
        return keys

    # ------------------------------------------------------------------
    # Live updates
    # ------------------------------------------------------------------

    async def dispatch(self, event: UpstreamEvent) -> list[EntityUpdate]:
        """Apply an upstream event to every tracked entity it touches."""
        updates: list[EntityUpdate] = []
        for key in sorted(self._spec.extract_keys(event)):
            entity = self._entities.get(key)
            if entity is None:
                continue
            update = await self._apply(entity, event)
            if update is not None:
                updates.append(update)
        return updates

    async def _apply(self, entity: TrackedEntity, event: UpstreamEvent) -> EntityUpdate | None:
        key = entity.key
        try:
            record = self._spec.derive_record(key, event)
        except (KeyError, TypeError, ValueError) as e:
            self._record_failure("Malformed event %s for %s %s: %s", event.hash, self.kind.value, key, e)
            return None

        entity.history.append(record)
        now = self._clock()

        try:
            snapshot = await self._fetch(key)
            metrics = self._compute(key, entity.history, snapshot, entity.metrics, as_of=now)
        except (UpstreamUnavailable, InternalComputeError) as e:
            self._record_failure("Keeping previous state of %s %s: %s", self.kind.value, key, e)
            return None

        if self._entities.get(key) is not entity:
            logger.debug("%s %s was evicted during refresh", self.kind.value, key)
            return None

        entity.snapshot = snapshot
        entity.metrics = metrics
        entity.last_refresh = now
        self._stats.updates_applied += 1

        update = EntityUpdate(
            kind=self.kind,
            key=key,
            record=record,
            event=event,
            snapshot=snapshot,
            metrics=metrics,
            timestamp=now,
            recipients=tuple(sorted(entity.subscribers)),
        )
        await self._broadcaster.broadcast(update.event_name, update.recipients, update.to_payload())
        return update

    def _record_failure(self, message: str, *args: Any) -> None:
        self._stats.refresh_failures += 1
        self._stats.last_error = message % args
        logger.warning(message, *args)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, key: Any) -> TrackedEntity:
        """Look up a tracked entity.

        Raises:
            InvalidKeyFormat: If the key fails validation.
            EntityNotFound: If the key is not tracked.
        """
        key = self._spec.validate_key(key)
        entity = self._entities.get(key)
        if entity is None:
            raise EntityNotFound(self.kind.channel, key)
        return entity

    def is_tracked(self, key: str) -> bool:
        return key in self._entities

    def tracked_keys(self) -> list[str]:
        return sorted(self._entities)

    def __len__(self) -> int:
        return len(self._entities)

    def stats(self) -> TrackerStats:
        self._stats.tracked_entities = len(self._entities)
        self._stats.subscriptions = sum(e.subscriber_count for e in self._entities.values())
        return self._stats
