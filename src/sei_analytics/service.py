"""Service orchestrator for the Sei analytics tracker.

This module provides the AnalyticsService class that wires the upstream
feed, the entity registry, the event router and the fan-out broadcaster
together and manages their lifecycle.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from redis.asyncio import Redis

from sei_analytics.config import Settings, get_settings
from sei_analytics.errors import ServiceUnavailable
from sei_analytics.tracking.broadcaster import ConnectionTransport, FanOutBroadcaster
from sei_analytics.tracking.models import TrackedEntity
from sei_analytics.tracking.registry import EntityRegistry
from sei_analytics.tracking.router import EventRouter
from sei_analytics.tracking.tracker import Clock, utc_now
from sei_analytics.upstream.cache import CachedFeed
from sei_analytics.upstream.feed import RetryingFeed, UpstreamFeed
from sei_analytics.upstream.mock import MockSeiFeed
from sei_analytics.upstream.models import EntityKind, Snapshot

logger = logging.getLogger(__name__)


class ServiceState(str, Enum):
    """Service lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class ServiceStats:
    """Statistics for the service."""

    started_at: datetime | None = None
    connect_attempts: int = 0
    connect_failures: int = 0
    last_error: str | None = None


class AnalyticsService:
    """Main orchestrator for wallet, meme-coin and NFT tracking.

    Service flow:
        Upstream Feed → Event Router → Entity Registry → Fan-out Broadcaster

    If the upstream feed cannot connect at startup, or its event stream
    ends while running, the service enters ``ERROR`` and refuses
    subscriptions until ``reconnect()`` succeeds. ``maintain_connection()``
    retries with exponential backoff.

    Example:
        ```python
        service = AnalyticsService(connection_manager)

        await service.start()
        snapshot, metrics = await service.subscribe("memecoin", "PEPE", connection_id)
        await service.stop()
        ```
    """

    def __init__(
        self,
        transport: ConnectionTransport,
        settings: Settings | None = None,
        *,
        feed: UpstreamFeed | None = None,
        redis: Redis | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the service.

        Args:
            transport: Delivers push events to subscriber connections.
            settings: Application settings. If not provided, uses get_settings().
            feed: Upstream feed. Defaults to the synthetic mock feed.
            redis: Redis client for snapshot caching. Created from
                ``settings.redis.url`` when not provided and a URL is set.
            clock: Source of "now" for history windows and metrics.
        """
        self._settings = settings or get_settings()
        self._clock = clock

        self._state = ServiceState.STOPPED
        self._stats = ServiceStats()

        self._owns_redis = False
        if redis is None and self._settings.redis.url:
            redis = Redis.from_url(self._settings.redis.url)
            self._owns_redis = True
        self._redis = redis

        upstream: UpstreamFeed = feed or MockSeiFeed(
            event_interval=self._settings.sei.event_interval_seconds,
            seed=self._settings.sei.seed,
            tracked_keys=lambda: self._registry.tracked(),
        )
        if self._redis is not None:
            upstream = CachedFeed(
                upstream,
                redis=self._redis,
                ttl_seconds=self._settings.redis.snapshot_ttl_seconds,
            )
        self._feed = RetryingFeed(
            upstream,
            max_retries=self._settings.sei.max_retries,
            base_delay=self._settings.sei.retry_base_delay,
        )

        self._broadcaster = FanOutBroadcaster(transport)
        self._registry = EntityRegistry.from_settings(
            self._feed,
            self._broadcaster,
            self._settings.tracker,
            clock=clock,
        )
        self._router = EventRouter(self._feed, self._registry)

        self._router_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> ServiceState:
        """Current service state."""
        return self._state

    @property
    def stats(self) -> ServiceStats:
        """Current service statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if the service accepts subscriptions."""
        return self._state == ServiceState.RUNNING

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    @property
    def broadcaster(self) -> FanOutBroadcaster:
        return self._broadcaster

    @property
    def router(self) -> EventRouter:
        return self._router

    def now(self) -> datetime:
        return self._clock()

    async def start(self) -> bool:
        """Start the service.

        Connects the upstream feed and begins routing its events.

        Returns:
            True if the feed connected and the service is running.

        Raises:
            RuntimeError: If the service is not stopped.
        """
        if self._state != ServiceState.STOPPED:
            raise RuntimeError(f"Cannot start service in state {self._state}")

        logger.info("Starting analytics service...")
        return await self._connect()

    async def reconnect(self) -> bool:
        """Retry the upstream connection after a failure."""
        if self._state == ServiceState.RUNNING:
            return True
        if self._state != ServiceState.ERROR:
            raise RuntimeError(f"Cannot reconnect service in state {self._state}")
        logger.info("Reconnecting to upstream feed...")
        return await self._connect()

    async def _connect(self) -> bool:
        self._state = ServiceState.STARTING
        self._stats.connect_attempts += 1

        try:
            connected = await self._feed.connect()
            error = None if connected else "Upstream feed refused the connection"
        except Exception as e:
            connected = False
            error = str(e)

        if not connected:
            self._state = ServiceState.ERROR
            self._stats.connect_failures += 1
            self._stats.last_error = error
            logger.error("Failed to connect upstream feed, refusing subscriptions: %s", error)
            return False

        self._router_task = asyncio.create_task(self._run_router())
        self._stats.started_at = datetime.now(UTC)
        self._state = ServiceState.RUNNING
        logger.info("Analytics service started successfully")
        return True

    async def stop(self) -> None:
        """Stop the service gracefully."""
        if self._state == ServiceState.STOPPED:
            return

        self._state = ServiceState.STOPPING
        logger.info("Stopping analytics service...")

        await self._feed.close()

        if self._router_task:
            self._router_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._router_task
            self._router_task = None

        if self._redis is not None and self._owns_redis:
            await self._redis.aclose()

        self._state = ServiceState.STOPPED
        logger.info("Analytics service stopped")

    async def _run_router(self) -> None:
        """Run the event router; losing the stream while running is an error."""
        try:
            await self._router.run()
            error = "Upstream event stream ended"
        except asyncio.CancelledError:
            logger.debug("Event router task cancelled")
            return
        except Exception as e:
            logger.error("Event router error: %s", e)
            error = str(e)

        if self._state == ServiceState.RUNNING:
            self._state = ServiceState.ERROR
            self._stats.last_error = error
            logger.error("Lost upstream feed, refusing subscriptions: %s", error)

    async def maintain_connection(self) -> None:
        """Reconnect whenever the service is in ERROR, until cancelled.

        Waits ``reconnect_base_delay`` between checks. Each failed attempt
        doubles the wait up to ``reconnect_max_delay``; success resets it.
        """
        base_delay = self._settings.sei.reconnect_base_delay
        max_delay = self._settings.sei.reconnect_max_delay
        delay = base_delay
        while True:
            await asyncio.sleep(delay)
            if self._state != ServiceState.ERROR:
                delay = base_delay
                continue
            if await self.reconnect():
                delay = base_delay
            else:
                delay = min(delay * 2, max_delay)
                logger.info("Next upstream reconnect attempt in %.1fs", delay)

    # ------------------------------------------------------------------
    # Subscriber-facing operations
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        kind: EntityKind | str,
        key: Any,
        connection_id: str,
        options: dict[str, Any] | None = None,
    ) -> tuple[Snapshot, Any]:
        """Subscribe a connection to an entity.

        Raises:
            InvalidKeyFormat: If the key fails validation.
            ServiceUnavailable: If the service is not running.
            UpstreamUnavailable: If the initial snapshot cannot be fetched.
        """
        tracker = self._registry.tracker(kind)
        tracker.validate_key(key)
        if not self.is_running:
            raise ServiceUnavailable(f"Service is {self._state.value}; subscriptions are refused")
        return await tracker.subscribe(key, connection_id, options)

    def unsubscribe(self, kind: EntityKind | str, key: str, connection_id: str) -> bool:
        return self._registry.unsubscribe(kind, key, connection_id)

    def remove_connection(self, connection_id: str) -> None:
        self._registry.remove_connection(connection_id)

    def get(self, kind: EntityKind | str, key: Any) -> TrackedEntity:
        return self._registry.get(kind, key)

    def health(self) -> dict[str, Any]:
        """Service state plus per-kind tracking statistics."""
        return {
            "status": "ok" if self.is_running else self._state.value,
            "state": self._state.value,
            "startedAt": self._stats.started_at.isoformat() if self._stats.started_at else None,
            "feedConnected": self._feed.is_connected,
            "lastError": self._stats.last_error,
            "tracking": {kind.channel: s.to_dict() for kind, s in self._registry.stats().items()},
            "router": self._router.stats.to_dict(),
            "broadcast": self._broadcaster.stats.to_dict(),
        }

    async def __aenter__(self) -> AnalyticsService:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
