"""Per-kind capability sets plugged into the generic tracker.

Each kind supplies key validation, one-time history backfill, event key
extraction, record derivation and its metric computation. Nothing else in
the engine knows which kind it is serving.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, ClassVar, Protocol

from sei_analytics.analytics import coin as coin_analytics
from sei_analytics.analytics.nft import compute_nft_metrics
from sei_analytics.analytics.wallet import compute_wallet_metrics
from sei_analytics.errors import InvalidKeyFormat
from sei_analytics.upstream.models import (
    CoinSnapshot,
    EntityKind,
    NFTMovement,
    NFTSnapshot,
    Snapshot,
    UpstreamEvent,
    WalletSnapshot,
    WalletTransaction,
)

DEFAULT_WALLET_PREFIX = "sei1"
DEFAULT_WALLET_LENGTH = 46
DEFAULT_WALLET_HISTORY = 1000
DEFAULT_COIN_HISTORY = 168
DEFAULT_NFT_HISTORY = 1000
DEFAULT_WHALE_REFRESH = timedelta(minutes=15)
NFT_KEY_MAX_LENGTH = 100


class KindSpec(Protocol):
    """Capability set the tracker needs for one entity kind."""

    kind: EntityKind
    history_size: int

    def validate_key(self, key: Any) -> str: ...

    def backfill(self, key: str, snapshot: Snapshot, *, as_of: datetime) -> list[Any]: ...

    def extract_keys(self, event: UpstreamEvent) -> set[str]: ...

    def derive_record(self, key: str, event: UpstreamEvent) -> Any: ...

    def compute_metrics(
        self,
        key: str,
        history: Sequence[Any],
        snapshot: Snapshot,
        previous: Any | None,
        *,
        as_of: datetime,
    ) -> Any: ...


def _require_string(kind: EntityKind, key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise InvalidKeyFormat(kind.channel, key, "key must be a non-empty string")
    return key


class WalletKind:
    """Wallets keyed by bech32-style address."""

    kind = EntityKind.WALLET

    def __init__(
        self,
        *,
        history_size: int = DEFAULT_WALLET_HISTORY,
        address_prefix: str = DEFAULT_WALLET_PREFIX,
        address_length: int = DEFAULT_WALLET_LENGTH,
    ) -> None:
        self.history_size = history_size
        self.address_prefix = address_prefix
        self.address_length = address_length

    def validate_key(self, key: Any) -> str:
        address = _require_string(self.kind, key)
        if not address.startswith(self.address_prefix):
            raise InvalidKeyFormat(self.kind.channel, key, f"address must start with {self.address_prefix!r}")
        if len(address) != self.address_length:
            raise InvalidKeyFormat(
                self.kind.channel, key, f"address must be {self.address_length} characters long"
            )
        return address

    def backfill(self, key: str, snapshot: Snapshot, *, as_of: datetime) -> list[WalletTransaction]:
        assert isinstance(snapshot, WalletSnapshot)
        return sorted(snapshot.recent_transactions, key=lambda tx: tx.timestamp)

    def extract_keys(self, event: UpstreamEvent) -> set[str]:
        return {
            value
            for value in (event.data.get("from"), event.data.get("to"))
            if isinstance(value, str) and value
        }

    def derive_record(self, key: str, event: UpstreamEvent) -> WalletTransaction:
        return WalletTransaction.from_dict(
            {**event.data, "hash": event.hash, "timestamp": event.timestamp}
        )

    def compute_metrics(
        self,
        key: str,
        history: Sequence[WalletTransaction],
        snapshot: Snapshot,
        previous: Any | None,
        *,
        as_of: datetime,
    ) -> Any:
        return compute_wallet_metrics(history, as_of=as_of)


class CoinKind:
    """Meme coins keyed by ticker symbol."""

    kind = EntityKind.COIN
    KEY_PATTERN: ClassVar[re.Pattern[str]] = re.compile(r"^[A-Z0-9]{2,10}$")

    def __init__(
        self,
        *,
        history_size: int = DEFAULT_COIN_HISTORY,
        whale_refresh_interval: timedelta = DEFAULT_WHALE_REFRESH,
    ) -> None:
        self.history_size = history_size
        self.whale_refresh_interval = whale_refresh_interval

    def validate_key(self, key: Any) -> str:
        symbol = _require_string(self.kind, key)
        if not self.KEY_PATTERN.match(symbol):
            raise InvalidKeyFormat(self.kind.channel, key, "symbol must be 2-10 uppercase letters or digits")
        return symbol

    def backfill(self, key: str, snapshot: Snapshot, *, as_of: datetime) -> list[Any]:
        return coin_analytics.estimate_hourly_flows(key, as_of=as_of)

    def extract_keys(self, event: UpstreamEvent) -> set[str]:
        denom = event.data.get("denom")
        return {denom} if isinstance(denom, str) and denom else set()

    def derive_record(self, key: str, event: UpstreamEvent) -> Any:
        return coin_analytics.derive_flow(event)

    def compute_metrics(
        self,
        key: str,
        history: Sequence[Any],
        snapshot: Snapshot,
        previous: Any | None,
        *,
        as_of: datetime,
    ) -> coin_analytics.CoinMetrics:
        assert isinstance(snapshot, CoinSnapshot)
        if previous is not None and as_of - previous.whales_refreshed_at < self.whale_refresh_interval:
            whales = previous.whales
            refreshed_at = previous.whales_refreshed_at
        else:
            whales = self._derive_whales(key, snapshot, as_of=as_of)
            refreshed_at = as_of
        return coin_analytics.compute_coin_metrics(
            history,
            whales=whales,
            whales_refreshed_at=refreshed_at,
            as_of=as_of,
        )

    def _derive_whales(self, key: str, snapshot: CoinSnapshot, *, as_of: datetime) -> tuple[Any, ...]:
        if snapshot.holders:
            return coin_analytics.select_whales(snapshot.holders, total_supply=snapshot.total_supply)
        return coin_analytics.synthetic_whales(key, as_of=as_of)


class NFTKind:
    """NFTs keyed by token id."""

    kind = EntityKind.NFT

    def __init__(self, *, history_size: int = DEFAULT_NFT_HISTORY) -> None:
        self.history_size = history_size

    def validate_key(self, key: Any) -> str:
        token_id = _require_string(self.kind, key)
        if len(token_id) > NFT_KEY_MAX_LENGTH:
            raise InvalidKeyFormat(
                self.kind.channel, key, f"token id must be at most {NFT_KEY_MAX_LENGTH} characters"
            )
        return token_id

    def backfill(self, key: str, snapshot: Snapshot, *, as_of: datetime) -> list[NFTMovement]:
        assert isinstance(snapshot, NFTSnapshot)
        if snapshot.movements:
            return sorted(snapshot.movements, key=lambda m: m.timestamp)
        return [
            NFTMovement(
                type="mint",
                from_address=None,
                to_address=snapshot.owner,
                price=Decimal(0),
                timestamp=snapshot.mint_date,
                transaction_hash=f"mint_{key}",
            )
        ]

    def extract_keys(self, event: UpstreamEvent) -> set[str]:
        token_id = event.data.get("tokenId")
        return {str(token_id)} if token_id not in (None, "") else set()

    def derive_record(self, key: str, event: UpstreamEvent) -> NFTMovement:
        return NFTMovement.from_dict(
            {
                **event.data,
                "timestamp": event.timestamp,
                "hash": event.hash or None,
                "blockHeight": event.block_height,
            }
        )

    def compute_metrics(
        self,
        key: str,
        history: Sequence[NFTMovement],
        snapshot: Snapshot,
        previous: Any | None,
        *,
        as_of: datetime,
    ) -> Any:
        return compute_nft_metrics(history, as_of=as_of)
