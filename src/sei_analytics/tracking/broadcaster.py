"""Fan-out of computed updates to subscriber connections."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ConnectionTransport(Protocol):
    """Delivers one named event to one connection."""

    async def send(self, connection_id: str, event: str, payload: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class BroadcastResult:
    """Outcome of delivering one payload to a set of connections."""

    delivered: tuple[str, ...]
    failed: tuple[str, ...]

    @property
    def success_count(self) -> int:
        return len(self.delivered)

    @property
    def failure_count(self) -> int:
        return len(self.failed)


@dataclass
class BroadcastStats:
    broadcasts: int = 0
    deliveries: int = 0
    failures: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "broadcasts": self.broadcasts,
            "deliveries": self.deliveries,
            "failures": self.failures,
            "lastError": self.last_error,
        }


class FanOutBroadcaster:
    """Sends one payload to many connections concurrently.

    A failed delivery is logged and counted. It never prevents delivery to
    the other connections and never propagates to the caller.
    """

    def __init__(self, transport: ConnectionTransport) -> None:
        self._transport = transport
        self._stats = BroadcastStats()

    @property
    def stats(self) -> BroadcastStats:
        return self._stats

    async def broadcast(
        self,
        event: str,
        connection_ids: Iterable[str],
        payload: dict[str, Any],
    ) -> BroadcastResult:
        recipients = tuple(connection_ids)
        if not recipients:
            return BroadcastResult(delivered=(), failed=())

        results = await asyncio.gather(
            *(self._transport.send(cid, event, payload) for cid in recipients),
            return_exceptions=True,
        )

        delivered: list[str] = []
        failed: list[str] = []
        for cid, result in zip(recipients, results):
            if isinstance(result, BaseException):
                failed.append(cid)
                self._stats.last_error = str(result)
                logger.warning("Failed to deliver %s to connection %s: %s", event, cid, result)
            else:
                delivered.append(cid)

        self._stats.broadcasts += 1
        self._stats.deliveries += len(delivered)
        self._stats.failures += len(failed)
        logger.debug(
            "Broadcast %s: %d delivered, %d failed", event, len(delivered), len(failed)
        )
        return BroadcastResult(delivered=tuple(delivered), failed=tuple(failed))
