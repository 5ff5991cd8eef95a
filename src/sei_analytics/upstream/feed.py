"""Upstream feed contract and retry wrapper.

The feed is the only source of chain data: it answers "current state of
entity X" and emits a single system-wide stream of raw transactions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Protocol, TypeVar

from sei_analytics.errors import UpstreamUnavailable
from sei_analytics.upstream.models import EntityKind, Snapshot, UpstreamEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 0.5


class UpstreamFeed(Protocol):
    """Capability set the tracking engine needs from the chain data provider."""

    @property
    def is_connected(self) -> bool: ...

    async def connect(self) -> bool: ...

    async def fetch_snapshot(self, kind: EntityKind, key: str) -> Snapshot: ...

    def events(self) -> AsyncIterator[UpstreamEvent]: ...

    async def close(self) -> None: ...


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    description: str,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> T:
    """Run an awaitable factory with exponential backoff.

    Args:
        operation: Zero-argument callable producing the awaitable to run.
        description: Human-readable name used in logs and the final error.
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.

    Raises:
        UpstreamUnavailable: When all attempts are exhausted.
    """
    last_exception: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except retry_on as e:
            last_exception = e
            if attempt == max_retries:
                break

            delay = base_delay * (2**attempt)
            logger.warning(
                "Attempt %d/%d for %s failed: %s. Retrying in %.1f seconds...",
                attempt + 1,
                max_retries + 1,
                description,
                str(e),
                delay,
            )
            await asyncio.sleep(delay)

    raise UpstreamUnavailable(
        f"All {max_retries + 1} attempts failed for {description}",
        last_exception=last_exception,
    )


class RetryingFeed:
    """Wraps a feed so snapshot fetches get bounded retry with backoff."""

    def __init__(
        self,
        feed: UpstreamFeed,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    ) -> None:
        self._feed = feed
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def is_connected(self) -> bool:
        return self._feed.is_connected

    async def connect(self) -> bool:
        return await self._feed.connect()

    async def fetch_snapshot(self, kind: EntityKind, key: str) -> Snapshot:
        return await retry_async(
            lambda: self._feed.fetch_snapshot(kind, key),
            description=f"fetch_snapshot({kind.value}, {key})",
            max_retries=self._max_retries,
            base_delay=self._base_delay,
        )

    def events(self) -> AsyncIterator[UpstreamEvent]:
        return self._feed.events()

    async def close(self) -> None:
        await self._feed.close()
