"""FastAPI application: REST read surface, WebSocket push channel and health.

The REST endpoints only read tracked state; entities are created and
evicted exclusively through WebSocket subscriptions.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Literal

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sei_analytics import __version__
from sei_analytics.analytics.coin import flow_summary, whale_analytics
from sei_analytics.analytics.nft import movement_analytics, ownership_analytics
from sei_analytics.analytics.wallet import compute_wallet_metrics
from sei_analytics.config import Settings, get_settings
from sei_analytics.errors import (
    EntityNotFound,
    InvalidKeyFormat,
    ServiceUnavailable,
    SubscriptionCancelled,
    TrackerError,
)
from sei_analytics.server.connections import ConnectionManager
from sei_analytics.service import AnalyticsService
from sei_analytics.upstream.models import EntityKind

logger = logging.getLogger(__name__)

Timeframe = Literal["1h", "1d", "24h", "7d", "30d", "90d", "1y", "all"]

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000

# Pre-generic push-channel commands: action -> (kind, key field).
LEGACY_TRACK_ACTIONS: dict[str, tuple[EntityKind, str]] = {
    "track_wallet": (EntityKind.WALLET, "address"),
    "track_memecoin": (EntityKind.COIN, "symbol"),
    "track_nft": (EntityKind.NFT, "tokenId"),
}


@dataclass(frozen=True)
class Command:
    """A parsed inbound push-channel message."""

    action: Literal["track", "stop_tracking"]
    kind: EntityKind
    key: Any
    options: dict[str, Any] = field(default_factory=dict)


def parse_command(message: Any) -> Command:
    """Parse an inbound message into a command.

    Accepts ``{"action": "track", "kind", "key", "options"}`` and
    ``{"action": "stop_tracking", "kind", "key"}`` as well as the legacy
    ``track_wallet``/``track_memecoin``/``track_nft`` and
    ``stop_tracking{type, identifier}`` forms. Fields may sit at the top
    level or under ``data``.

    Raises:
        ValueError: If the message is not a recognised command.
    """
    if not isinstance(message, dict):
        raise ValueError("Message must be a JSON object")
    action = message.get("action")
    fields = message.get("data") if isinstance(message.get("data"), dict) else message

    if action in LEGACY_TRACK_ACTIONS:
        kind, key_field = LEGACY_TRACK_ACTIONS[action]
        return Command(action="track", kind=kind, key=fields.get(key_field))

    if action == "track":
        options = fields.get("options") or {}
        if not isinstance(options, dict):
            raise ValueError("options must be an object")
        return Command(action="track", kind=_parse_kind(fields.get("kind")), key=fields.get("key"), options=options)

    if action == "stop_tracking":
        if "kind" in fields:
            kind, key = fields.get("kind"), fields.get("key")
        else:
            kind, key = fields.get("type"), fields.get("identifier")
        if not isinstance(key, str) or not key:
            raise ValueError("stop_tracking requires a key")
        return Command(action="stop_tracking", kind=_parse_kind(kind), key=key)

    raise ValueError(f"Unknown action: {action!r}")


def _parse_kind(value: Any) -> EntityKind:
    try:
        return EntityKind.parse(value)
    except ValueError:
        raise ValueError(f"Unknown entity kind: {value!r}") from None


def _page(items: Sequence[Any], limit: int, offset: int) -> list[Any]:
    return list(items[offset : offset + limit])


def create_app(
    settings: Settings | None = None,
    *,
    service: AnalyticsService | None = None,
    connections: ConnectionManager | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Application settings. If not provided, uses get_settings().
        service: Pre-built service. It must send through ``connections``.
        connections: WebSocket connection manager.
    """
    settings = settings or get_settings()
    connections = connections or ConnectionManager()
    service = service or AnalyticsService(connections, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await service.start()
        reconnect_task = asyncio.create_task(service.maintain_connection())
        try:
            yield
        finally:
            reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reconnect_task
            await service.stop()

    app = FastAPI(title="Sei Analytics API", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.state.connections = connections

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.server.cors_origin.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidKeyFormat)
    async def invalid_key_handler(request: Request, exc: InvalidKeyFormat) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(EntityNotFound)
    async def not_found_handler(request: Request, exc: EntityNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @app.exception_handler(ServiceUnavailable)
    async def unavailable_handler(request: Request, exc: ServiceUnavailable) -> JSONResponse:
        return JSONResponse(status_code=503, content={"error": str(exc)})

    @app.get("/health")
    async def health() -> JSONResponse:
        body = service.health()
        body["connections"] = connections.active_connections
        return JSONResponse(status_code=200 if service.is_running else 503, content=body)

    # Wallets

    @app.get("/api/wallet/{address}")
    async def get_wallet(address: str) -> dict[str, Any]:
        return service.get(EntityKind.WALLET, address).to_dict()

    @app.get("/api/wallet/{address}/transactions")
    async def get_wallet_transactions(
        address: str,
        timeframe: Timeframe = "all",
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        offset: int = Query(0, ge=0),
    ) -> dict[str, Any]:
        entity = service.get(EntityKind.WALLET, address)
        records = entity.history.window(as_of=service.now(), timeframe=timeframe)
        records.reverse()
        return {
            "address": entity.key,
            "timeframe": timeframe,
            "total": len(records),
            "limit": limit,
            "offset": offset,
            "transactions": [tx.to_dict() for tx in _page(records, limit, offset)],
        }

    @app.get("/api/wallet/{address}/behavior")
    async def get_wallet_behavior(address: str, timeframe: Timeframe = "all") -> dict[str, Any]:
        entity = service.get(EntityKind.WALLET, address)
        now = service.now()
        records = entity.history.window(as_of=now, timeframe=timeframe)
        return {
            "address": entity.key,
            "timeframe": timeframe,
            "behavior": compute_wallet_metrics(records, as_of=now).to_dict(),
        }

    # Meme coins

    @app.get("/api/memecoin/{symbol}")
    async def get_memecoin(symbol: str) -> dict[str, Any]:
        return service.get(EntityKind.COIN, symbol).to_dict()

    @app.get("/api/memecoin/{symbol}/flow")
    async def get_memecoin_flow(
        symbol: str,
        timeframe: Timeframe = "24h",
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        offset: int = Query(0, ge=0),
    ) -> dict[str, Any]:
        entity = service.get(EntityKind.COIN, symbol)
        now = service.now()
        records = entity.history.window(as_of=now, timeframe=timeframe)
        summary = flow_summary(records, as_of=now, timeframe=timeframe)
        records.reverse()
        return {
            "symbol": entity.key,
            "summary": summary.to_dict(),
            "total": len(records),
            "limit": limit,
            "offset": offset,
            "flows": [r.to_dict() for r in _page(records, limit, offset)],
        }

    @app.get("/api/memecoin/{symbol}/whales")
    async def get_memecoin_whales(
        symbol: str,
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    ) -> dict[str, Any]:
        entity = service.get(EntityKind.COIN, symbol)
        metrics = entity.metrics
        return {
            "symbol": entity.key,
            "whales": [w.to_dict() for w in metrics.whales[:limit]],
            "analytics": whale_analytics(metrics.whales).to_dict(),
            "refreshedAt": metrics.whales_refreshed_at.isoformat(),
        }

    @app.get("/api/memecoin/{symbol}/analytics")
    async def get_memecoin_analytics(symbol: str, timeframe: Timeframe = "24h") -> dict[str, Any]:
        entity = service.get(EntityKind.COIN, symbol)
        now = service.now()
        return {
            "symbol": entity.key,
            "market": entity.snapshot.to_dict(),
            "flow": flow_summary(entity.history.items(), as_of=now, timeframe=timeframe).to_dict(),
            "whales": whale_analytics(entity.metrics.whales).to_dict(),
        }

    # NFTs

    @app.get("/api/nft/{token_id}")
    async def get_nft(token_id: str) -> dict[str, Any]:
        return service.get(EntityKind.NFT, token_id).to_dict()

    @app.get("/api/nft/{token_id}/movement")
    async def get_nft_movement(
        token_id: str,
        timeframe: Timeframe = "all",
        limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        offset: int = Query(0, ge=0),
    ) -> dict[str, Any]:
        entity = service.get(EntityKind.NFT, token_id)
        now = service.now()
        records = entity.history.window(as_of=now, timeframe=timeframe)
        analytics = movement_analytics(records, as_of=now, timeframe=timeframe)
        records.reverse()
        return {
            "tokenId": entity.key,
            "analytics": analytics,
            "total": len(records),
            "limit": limit,
            "offset": offset,
            "movements": [m.to_dict() for m in _page(records, limit, offset)],
        }

    @app.get("/api/nft/{token_id}/performance")
    async def get_nft_performance(token_id: str) -> dict[str, Any]:
        entity = service.get(EntityKind.NFT, token_id)
        return {"tokenId": entity.key, "performance": entity.metrics.to_dict()}

    @app.get("/api/nft/{token_id}/ownership")
    async def get_nft_ownership(token_id: str) -> dict[str, Any]:
        entity = service.get(EntityKind.NFT, token_id)
        return {"tokenId": entity.key, **ownership_analytics(entity.history.items())}

    # Push channel

    async def handle_message(connection_id: str, raw: str) -> None:
        try:
            command = parse_command(json.loads(raw))
        except ValueError as e:
            await connections.send(connection_id, "tracking_error", {"error": str(e)})
            return

        channel = command.kind.channel
        if command.action == "stop_tracking":
            service.unsubscribe(command.kind, command.key, connection_id)
            await connections.send(connection_id, "tracking_stopped", {"kind": channel, "key": command.key})
            return

        try:
            snapshot, metrics = await service.subscribe(
                command.kind, command.key, connection_id, command.options
            )
        except SubscriptionCancelled:
            logger.debug("Tracking request for %s %r dropped: no subscribers left", channel, command.key)
            return
        except TrackerError as e:
            logger.warning("Tracking request for %s %r failed: %s", channel, command.key, e)
            await connections.send(
                connection_id,
                "tracking_error",
                {"error": str(e), "kind": channel, "key": command.key},
            )
            return

        await connections.send(
            connection_id,
            f"{channel}_data",
            {"key": command.key, "snapshot": snapshot.to_dict(), "metrics": metrics.to_dict()},
        )
        await connections.send(connection_id, "tracking_started", {"kind": channel, "key": command.key})

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket) -> None:
        connection_id = await connections.connect(websocket)
        try:
            while True:
                raw = await websocket.receive_text()
                await handle_message(connection_id, raw)
        except WebSocketDisconnect:
            logger.debug("WebSocket %s closed by client", connection_id)
        finally:
            connections.disconnect(connection_id)
            service.remove_connection(connection_id)

    return app
