"""Data models for the entity tracking engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sei_analytics.tracking.history import HistoryBuffer
from sei_analytics.upstream.models import EntityKind, Snapshot, UpstreamEvent


@dataclass
class TrackedEntity:
    """Everything the engine holds for one tracked key.

    Snapshot, metrics and history live on the same object so they can
    never drift apart. The entity exists only while ``subscribers`` is
    non-empty.
    """

    key: str
    kind: EntityKind
    snapshot: Snapshot
    metrics: Any
    history: HistoryBuffer[Any]
    subscribers: set[str] = field(default_factory=set)
    options: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_refresh: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def subscriber_count(self) -> int:
        return len(self.subscribers)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.channel,
            "snapshot": self.snapshot.to_dict(),
            "metrics": self.metrics.to_dict(),
            "historySize": len(self.history),
            "subscribers": self.subscriber_count,
            "createdAt": self.created_at.isoformat(),
            "lastRefresh": self.last_refresh.isoformat(),
        }


@dataclass(frozen=True)
class EntityUpdate:
    """One computed update, delivered identically to every subscriber."""

    kind: EntityKind
    key: str
    record: Any
    event: UpstreamEvent
    snapshot: Snapshot
    metrics: Any
    timestamp: datetime
    recipients: tuple[str, ...] = ()

    @property
    def event_name(self) -> str:
        return f"{self.kind.channel}_update"

    def to_payload(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "newEvent": self.record.to_dict(),
            "updatedSnapshot": self.snapshot.to_dict(),
            "updatedMetrics": self.metrics.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class TrackerStats:
    """Statistics for one kind's tracker."""

    kind: EntityKind
    tracked_entities: int = 0
    subscriptions: int = 0
    entities_created: int = 0
    entities_evicted: int = 0
    updates_applied: int = 0
    refresh_failures: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "trackedEntities": self.tracked_entities,
            "subscriptions": self.subscriptions,
            "entitiesCreated": self.entities_created,
            "entitiesEvicted": self.entities_evicted,
            "updatesApplied": self.updates_applied,
            "refreshFailures": self.refresh_failures,
            "lastError": self.last_error,
        }
