"""Domain errors raised by the tracking engine and its read surfaces."""

from __future__ import annotations


class TrackerError(Exception):
    """Base exception for entity tracking errors."""


class InvalidKeyFormat(TrackerError):
    """Raised when an entity key fails kind-specific validation."""

    def __init__(self, kind: str, key: object, reason: str) -> None:
        super().__init__(f"Invalid {kind} key {key!r}: {reason}")
        self.kind = kind
        self.key = key
        self.reason = reason


class EntityNotFound(TrackerError):
    """Raised when a read targets an entity that is not tracked."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"{kind} {key!r} is not being tracked")
        self.kind = kind
        self.key = key


class UpstreamUnavailable(TrackerError):
    """Raised when the upstream feed cannot produce a snapshot."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


class InternalComputeError(TrackerError):
    """Raised when a metrics function fails on malformed history."""


class ServiceUnavailable(TrackerError):
    """Raised when subscriptions are refused because the feed is not connected."""


class SubscriptionCancelled(TrackerError):
    """Raised when every subscriber left before a new entity finished creating."""

    def __init__(self, kind: str, key: str) -> None:
        super().__init__(f"All subscribers left {kind} {key!r} during creation")
        self.kind = kind
        self.key = key
