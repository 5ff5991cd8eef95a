"""Synthetic Sei feed for development and demos.

Snapshots are generated from a ``random.Random`` seeded by the entity key,
so the same key always yields the same holders, movements and recent
transactions. Live values (prices, balances) vary per fetch.
"""

from __future__ import annotations

import asyncio
import logging
import random
import string
from collections.abc import AsyncIterator, Callable, Iterable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from sei_analytics.upstream.models import (
    CoinSnapshot,
    EntityKind,
    NFTMovement,
    NFTSnapshot,
    Snapshot,
    TokenHolder,
    UpstreamEvent,
    WalletSnapshot,
    WalletTransaction,
)

logger = logging.getLogger(__name__)

DEFAULT_EVENT_INTERVAL = 5.0  # seconds
RECENT_TRANSACTION_COUNT = 50
HOLDER_COUNT = 10


def _rand_suffix(rng: random.Random, length: int) -> str:
    return "".join(rng.choices(string.ascii_lowercase + string.digits, k=length))


def _rand_hex(rng: random.Random, length: int) -> str:
    return "".join(rng.choices("0123456789abcdef", k=length))


def _amount(value: float, places: int = 6) -> Decimal:
    return Decimal(f"{value:.{places}f}")


class MockSeiFeed:
    """In-process stand-in for the Sei chain data provider.

    Events are taken from an internal queue. ``publish`` injects an event
    or a raw feed message; when the queue stays empty for ``event_interval``
    seconds a synthetic transaction touching one of the keys reported by
    ``tracked_keys`` is generated.
    """

    def __init__(
        self,
        *,
        event_interval: float | None = DEFAULT_EVENT_INTERVAL,
        seed: int | None = None,
        now: datetime | None = None,
        tracked_keys: Callable[[], Iterable[tuple[EntityKind, str]]] | None = None,
    ) -> None:
        self._event_interval = event_interval
        self._rng = random.Random(seed)
        self._fixed_now = now
        self._connected = False
        self._queue: asyncio.Queue[UpstreamEvent | None] = asyncio.Queue()
        self._tracked_keys = tracked_keys
        self._block_height = 1_000_000

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _now(self) -> datetime:
        return self._fixed_now or datetime.now(UTC)

    async def connect(self) -> bool:
        logger.info("Connecting to Sei network (mock mode)...")
        if not self._connected:
            self._queue = asyncio.Queue()
        self._connected = True
        logger.info("Sei feed connected (mock mode)")
        return True

    async def close(self) -> None:
        if not self._connected:
            return
        self._connected = False
        await self._queue.put(None)
        logger.info("Sei feed disconnected")

    async def publish(self, event: UpstreamEvent | dict[str, Any]) -> None:
        """Inject an event, or a raw feed message, into the stream."""
        if isinstance(event, dict):
            event = UpstreamEvent.from_dict(event)
        await self._queue.put(event)

    async def events(self) -> AsyncIterator[UpstreamEvent]:
        while self._connected:
            try:
                if self._event_interval is None:
                    event = await self._queue.get()
                else:
                    event = await asyncio.wait_for(self._queue.get(), timeout=self._event_interval)
            except TimeoutError:
                event = self._synthetic_event()
                if event is None:
                    continue
            if event is None:
                break
            yield event

    async def fetch_snapshot(self, kind: EntityKind, key: str) -> Snapshot:
        if not self._connected:
            raise ConnectionError("Sei feed is not connected")
        if kind is EntityKind.WALLET:
            return self._wallet_snapshot(key)
        if kind is EntityKind.COIN:
            return self._coin_snapshot(key)
        return self._nft_snapshot(key)

    def _wallet_snapshot(self, address: str) -> WalletSnapshot:
        rng = random.Random(f"wallet:{address}")
        now = self._now()
        transactions = sorted(
            (
                WalletTransaction(
                    hash="0x" + _rand_hex(rng, 64),
                    from_address=address,
                    to_address="0x" + _rand_hex(rng, 40),
                    amount=_amount(rng.random() * 100),
                    denom="usei",
                    type="transfer",
                    timestamp=now - timedelta(seconds=rng.random() * 86400),
                )
                for _ in range(RECENT_TRANSACTION_COUNT)
            ),
            key=lambda tx: tx.timestamp,
        )
        return WalletSnapshot(
            address=address,
            balance=self._rng.random() * 1000,
            denom="usei",
            token_holdings={"usei": 1_000_000.0},
            recent_transactions=tuple(transactions),
            fetched_at=now,
        )

    def _coin_snapshot(self, symbol: str) -> CoinSnapshot:
        rng = random.Random(f"coin:{symbol}")
        now = self._now()
        holders = tuple(
            TokenHolder(
                address="sei1" + _rand_suffix(rng, 38),
                balance=rng.random() * 100_000,
                last_activity=now - timedelta(seconds=rng.random() * 86400),
            )
            for _ in range(HOLDER_COUNT)
        )
        held = sum(h.balance for h in holders)
        total_supply = held * rng.uniform(1.5, 20.0)
        return CoinSnapshot(
            symbol=symbol,
            name=f"{symbol} Token",
            denom=f"u{symbol.lower()}",
            price=self._rng.random() * 0.01 + 0.001,
            market_cap=self._rng.random() * 1_000_000 + 100_000,
            volume_24h=self._rng.random() * 500_000 + 50_000,
            price_change_24h=(self._rng.random() - 0.5) * 20,
            total_supply=total_supply,
            circulating_supply=total_supply * rng.uniform(0.2, 0.8),
            holders=holders,
            fetched_at=now,
        )

    def _nft_snapshot(self, token_id: str) -> NFTSnapshot:
        rng = random.Random(f"nft:{token_id}")
        now = self._now()
        mint_date = now - timedelta(days=rng.random() * 365)
        owner = "sei1creator" + _rand_suffix(rng, 9)
        movements = [
            NFTMovement(
                type="mint",
                from_address=None,
                to_address=owner,
                price=Decimal(0),
                timestamp=mint_date,
                transaction_hash=f"mint_{token_id}",
                block_height=rng.randrange(1_000_000),
            )
        ]
        at = mint_date
        for i in range(1, rng.randint(2, 9) + 1):
            at = min(now, at + timedelta(days=rng.random() * 30))
            new_owner = f"sei1owner{i}" + _rand_suffix(rng, 9)
            movements.append(
                NFTMovement(
                    type="transfer",
                    from_address=owner,
                    to_address=new_owner,
                    price=_amount(rng.random() * 1000 + 50, 2),
                    timestamp=at,
                    transaction_hash=f"transfer_{token_id}_{i}",
                    block_height=rng.randrange(1_000_000),
                )
            )
            owner = new_owner
        return NFTSnapshot(
            token_id=token_id,
            name=f"NFT #{token_id}",
            collection="Mock Collection",
            owner=owner,
            mint_date=mint_date,
            current_price=self._rng.random() * 1000 + 100,
            floor_price=self._rng.random() * 500 + 50,
            last_sale_price=float(movements[-1].price),
            image="https://via.placeholder.com/300x300",
            attributes=({"trait": "Rarity", "value": "Common"}, {"trait": "Type", "value": "Mock"}),
            movements=tuple(movements),
            fetched_at=now,
        )

    def _synthetic_event(self) -> UpstreamEvent | None:
        if self._tracked_keys is None:
            return None
        candidates = sorted(self._tracked_keys())
        if not candidates:
            return None
        kind, key = self._rng.choice(candidates)
        self._block_height += 1
        counterparty = "sei1" + _rand_suffix(self._rng, 38)
        if kind is EntityKind.WALLET:
            data = {
                "from": key,
                "to": counterparty,
                "amount": str(_amount(self._rng.random() * 100)),
                "denom": "usei",
                "type": "transfer",
            }
        elif kind is EntityKind.COIN:
            data = {
                "denom": key,
                "amount": str(_amount(self._rng.random() * 10_000)),
                "from": counterparty,
                "to": "sei1" + _rand_suffix(self._rng, 38),
            }
        else:
            data = {
                "tokenId": key,
                "type": "transfer",
                "from": counterparty,
                "to": "sei1" + _rand_suffix(self._rng, 38),
                "price": str(_amount(self._rng.random() * 1000 + 50, 2)),
            }
        return UpstreamEvent.from_dict(
            {
                "hash": "0x" + _rand_hex(self._rng, 64),
                "blockHeight": self._block_height,
                "timestamp": self._now().isoformat(),
                "decodedTx": {"data": data},
            }
        )
