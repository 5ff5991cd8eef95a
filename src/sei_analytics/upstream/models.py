"""Data models for the upstream Sei feed."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Literal


class EntityKind(str, Enum):
    """Kinds of entity the tracker can follow."""

    WALLET = "wallet"
    COIN = "coin"
    NFT = "nft"

    @property
    def channel(self) -> str:
        """Prefix of the push-channel event names for this kind."""
        return "memecoin" if self is EntityKind.COIN else self.value

    @classmethod
    def parse(cls, value: str) -> EntityKind:
        """Parse a kind name, accepting the push-channel aliases."""
        normalized = str(value).strip().lower()
        if normalized == "memecoin":
            return cls.COIN
        return cls(normalized)


def parse_timestamp(value: Any, *, default: datetime | None = None) -> datetime:
    """Parse epoch seconds/milliseconds, ISO strings or datetimes into UTC."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
        if seconds > 1e12:
            seconds /= 1000.0
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str) and value:
        with contextlib.suppress(ValueError):
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    if default is not None:
        return default
    raise ValueError(f"Unparseable timestamp: {value!r}")


def to_decimal(value: Any) -> Decimal:
    """Parse an upstream amount, rejecting NaN and infinities."""
    if value is None or value == "":
        return Decimal(0)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Unparseable amount: {value!r}") from None
    if not amount.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return amount


@dataclass(frozen=True)
class WalletTransaction:
    """A transaction touching a tracked wallet."""

    hash: str
    from_address: str | None
    to_address: str | None
    amount: Decimal
    denom: str
    type: str
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletTransaction:
        return cls(
            hash=str(data.get("hash", "")),
            from_address=data.get("from"),
            to_address=data.get("to"),
            amount=to_decimal(data.get("amount")),
            denom=str(data.get("denom") or "unknown"),
            type=str(data.get("type") or "transfer"),
            timestamp=parse_timestamp(data.get("timestamp") or data.get("blockTime")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "from": self.from_address,
            "to": self.to_address,
            "amount": str(self.amount),
            "denom": self.denom,
            "type": self.type,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class FlowRecord:
    """Inflow/outflow of a coin over one observation."""

    timestamp: datetime
    inflow: Decimal
    outflow: Decimal
    transaction_hash: str | None = None

    @property
    def net_flow(self) -> Decimal:
        return self.inflow - self.outflow

    @property
    def volume(self) -> Decimal:
        return self.inflow + self.outflow

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "inflow": str(self.inflow),
            "outflow": str(self.outflow),
            "netFlow": str(self.net_flow),
            "volume": str(self.volume),
            "transactionHash": self.transaction_hash,
        }


@dataclass(frozen=True)
class NFTMovement:
    """A mint or transfer of a tracked NFT."""

    type: Literal["mint", "transfer"]
    from_address: str | None
    to_address: str | None
    price: Decimal
    timestamp: datetime
    transaction_hash: str | None = None
    block_height: int | None = None

    @property
    def is_transfer(self) -> bool:
        return self.type == "transfer"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NFTMovement:
        movement_type = "mint" if str(data.get("type", "transfer")).lower() == "mint" else "transfer"
        block_height = data.get("blockHeight", data.get("block_height"))
        return cls(
            type=movement_type,
            from_address=data.get("from"),
            to_address=data.get("to"),
            price=to_decimal(data.get("price")),
            timestamp=parse_timestamp(data.get("timestamp")),
            transaction_hash=data.get("transactionHash") or data.get("hash"),
            block_height=int(block_height) if block_height is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "from": self.from_address,
            "to": self.to_address,
            "price": str(self.price),
            "timestamp": self.timestamp.isoformat(),
            "transactionHash": self.transaction_hash,
            "blockHeight": self.block_height,
        }


@dataclass(frozen=True)
class WhaleHolder:
    """A coin holder ranked in the top decile by balance."""

    address: str
    balance: float
    percentage: float
    last_activity: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "balance": self.balance,
            "percentage": self.percentage,
            "lastActivity": self.last_activity.isoformat() if self.last_activity else None,
        }


@dataclass(frozen=True)
class TokenHolder:
    """A raw holder entry as reported by the upstream feed."""

    address: str
    balance: float
    last_activity: datetime | None = None


@dataclass(frozen=True)
class WalletSnapshot:
    """Point-in-time view of a wallet."""

    address: str
    balance: float
    denom: str
    token_holdings: dict[str, float]
    recent_transactions: tuple[WalletTransaction, ...] = ()
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "balance": self.balance,
            "denom": self.denom,
            "tokenHoldings": dict(self.token_holdings),
            "lastUpdated": self.fetched_at.isoformat(),
        }


@dataclass(frozen=True)
class CoinSnapshot:
    """Point-in-time market view of a meme coin."""

    symbol: str
    name: str
    denom: str
    price: float
    market_cap: float
    volume_24h: float
    price_change_24h: float
    total_supply: float
    circulating_supply: float
    holders: tuple[TokenHolder, ...] = ()
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "denom": self.denom,
            "price": self.price,
            "marketCap": self.market_cap,
            "volume24h": self.volume_24h,
            "priceChange24h": self.price_change_24h,
            "totalSupply": self.total_supply,
            "circulatingSupply": self.circulating_supply,
            "lastUpdated": self.fetched_at.isoformat(),
        }


@dataclass(frozen=True)
class NFTSnapshot:
    """Point-in-time ownership and market view of an NFT."""

    token_id: str
    name: str
    collection: str
    owner: str | None
    mint_date: datetime
    current_price: float
    floor_price: float
    last_sale_price: float
    description: str = "No description available"
    image: str | None = None
    attributes: tuple[dict[str, str], ...] = ()
    movements: tuple[NFTMovement, ...] = ()
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tokenId": self.token_id,
            "name": self.name,
            "description": self.description,
            "image": self.image,
            "attributes": [dict(a) for a in self.attributes],
            "collection": self.collection,
            "owner": self.owner,
            "mintDate": self.mint_date.isoformat(),
            "currentPrice": self.current_price,
            "floorPrice": self.floor_price,
            "lastSalePrice": self.last_sale_price,
            "lastUpdated": self.fetched_at.isoformat(),
        }


Snapshot = WalletSnapshot | CoinSnapshot | NFTSnapshot


@dataclass(frozen=True)
class UpstreamEvent:
    """A raw transaction-like event from the upstream feed.

    ``data`` carries the kind-specific fields: ``from``/``to`` (wallets),
    ``denom`` plus ``amount`` or explicit ``inflow``/``outflow`` (coins),
    ``tokenId`` plus ``type``/``price`` (NFTs).
    """

    hash: str
    block_height: int
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> UpstreamEvent:
        """Create an event from a feed message.

        Accepts both the flat ``{hash, blockHeight, data}`` shape and the
        ``decodedTx.data`` nesting.
        """
        data = raw.get("data")
        if data is None:
            decoded = raw.get("decodedTx") or {}
            data = decoded.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("event data must be an object")
        block_height = raw.get("blockHeight", raw.get("block_height", 0))
        return cls(
            hash=str(raw.get("hash", "")),
            block_height=int(block_height or 0),
            data=dict(data),
            timestamp=parse_timestamp(raw.get("timestamp"), default=datetime.now(UTC)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "blockHeight": self.block_height,
            "timestamp": self.timestamp.isoformat(),
            "data": dict(self.data),
        }
