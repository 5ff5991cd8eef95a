"""NFT movement and performance analytics."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Literal

from sei_analytics.tracking.history import within
from sei_analytics.upstream.models import NFTMovement

Rarity = Literal["common", "rare", "legendary"]
MarketActivity = Literal["inactive", "low", "medium", "high"]

RECENT_OWNERSHIP_CHANGES = 10


@dataclass(frozen=True)
class PriceChange:
    change: Decimal = Decimal(0)
    percentage: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"change": str(self.change), "percentage": self.percentage}


@dataclass(frozen=True)
class HoldingPeriods:
    """Gaps between consecutive transfers, in seconds."""

    average: float = 0.0
    shortest: float = 0.0
    longest: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {"average": self.average, "shortest": self.shortest, "longest": self.longest}


@dataclass(frozen=True)
class NFTMetrics:
    total_transfers: int
    total_volume: Decimal
    average_price: Decimal
    price_change: PriceChange
    holding_periods: HoldingPeriods
    rarity: Rarity
    market_activity: MarketActivity
    performance_score: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalTransfers": self.total_transfers,
            "totalVolume": str(self.total_volume),
            "averagePrice": str(self.average_price),
            "priceChange": self.price_change.to_dict(),
            "holdingPeriods": self.holding_periods.to_dict(),
            "rarity": self.rarity,
            "marketActivity": self.market_activity,
            "performanceScore": self.performance_score,
        }


def _transfers(movements: Sequence[NFTMovement]) -> list[NFTMovement]:
    return [m for m in movements if m.is_transfer]


def _priced_transfers(movements: Sequence[NFTMovement]) -> list[NFTMovement]:
    return [m for m in movements if m.is_transfer and m.price > 0]


def total_volume(movements: Sequence[NFTMovement]) -> Decimal:
    return sum((m.price for m in _priced_transfers(movements)), Decimal(0))


def average_price(movements: Sequence[NFTMovement]) -> Decimal:
    priced = _priced_transfers(movements)
    if not priced:
        return Decimal(0)
    return total_volume(priced) / len(priced)


def price_change(movements: Sequence[NFTMovement]) -> PriceChange:
    """First versus last priced transfer; zero without a baseline."""
    priced = _priced_transfers(movements)
    if len(priced) < 2:
        return PriceChange()
    first, last = priced[0].price, priced[-1].price
    change = last - first
    return PriceChange(change=change, percentage=float(change / first * 100))


def holding_periods(movements: Sequence[NFTMovement]) -> HoldingPeriods:
    transfers = _transfers(movements)
    if len(transfers) < 2:
        return HoldingPeriods()
    gaps = [
        (later.timestamp - earlier.timestamp).total_seconds()
        for earlier, later in zip(transfers, transfers[1:])
    ]
    return HoldingPeriods(average=sum(gaps) / len(gaps), shortest=min(gaps), longest=max(gaps))


def rarity(movements: Sequence[NFTMovement]) -> Rarity:
    transfer_count = len(_transfers(movements))
    span = movements[-1].timestamp - movements[0].timestamp if len(movements) > 1 else timedelta(0)
    if transfer_count <= 1 and span > timedelta(days=365):
        return "legendary"
    if transfer_count <= 2 and span > timedelta(days=180):
        return "rare"
    return "common"


def market_activity(movements: Sequence[NFTMovement], *, as_of: datetime) -> MarketActivity:
    recent = len(within(movements, as_of=as_of, timeframe="30d"))
    if recent == 0:
        return "inactive"
    if recent < 3:
        return "low"
    if recent < 8:
        return "medium"
    return "high"


def performance_score(movements: Sequence[NFTMovement], *, as_of: datetime) -> int:
    score = 50
    transfer_count = len(_transfers(movements))
    if transfer_count > 5:
        score += 15
    if transfer_count > 10:
        score += 10

    percentage = price_change(movements).percentage
    if percentage > 100:
        score += 20
    elif percentage > 50:
        score += 15
    elif percentage > 0:
        score += 10

    if within(movements, as_of=as_of, timeframe="7d"):
        score += 5
    return min(100, max(0, score))


def movement_analytics(
    movements: Sequence[NFTMovement],
    *,
    as_of: datetime,
    timeframe: str = "all",
) -> dict[str, Any]:
    """Movement totals inside a lookback window."""
    window = within(movements, as_of=as_of, timeframe=timeframe)
    transfers = _transfers(window)
    volume = total_volume(window)
    owners = {addr for m in transfers for addr in (m.from_address, m.to_address) if addr}
    return {
        "timeframe": timeframe,
        "totalMovements": len(window),
        "totalTransfers": len(transfers),
        "totalVolume": str(volume),
        "averagePrice": str(volume / (len(transfers) or 1)),
        "uniqueOwners": len(owners),
        "dataPoints": len(window),
    }


def ownership_analytics(movements: Sequence[NFTMovement]) -> dict[str, Any]:
    """Replay the movement chain into a list of ownership changes."""
    changes: list[dict[str, Any]] = []
    current_owner: str | None = None
    for movement in movements:
        if movement.is_transfer:
            changes.append(
                {
                    "owner": current_owner,
                    "from": movement.from_address,
                    "to": movement.to_address,
                    "timestamp": movement.timestamp.isoformat(),
                    "price": str(movement.price),
                }
            )
        current_owner = movement.to_address

    transfer_times = [m.timestamp for m in movements if m.is_transfer]
    durations = [(b - a).total_seconds() for a, b in zip(transfer_times, transfer_times[1:])]
    return {
        "totalOwners": len({c["owner"] for c in changes}),
        "ownershipHistory": changes[-RECENT_OWNERSHIP_CHANGES:],
        "averageOwnershipDuration": sum(durations) / len(durations) if durations else 0.0,
        "currentOwner": current_owner,
    }


def compute_nft_metrics(movements: Sequence[NFTMovement], *, as_of: datetime) -> NFTMetrics:
    """Compute the full NFT metric set."""
    return NFTMetrics(
        total_transfers=len(_transfers(movements)),
        total_volume=total_volume(movements),
        average_price=average_price(movements),
        price_change=price_change(movements),
        holding_periods=holding_periods(movements),
        rarity=rarity(movements),
        market_activity=market_activity(movements, as_of=as_of),
        performance_score=performance_score(movements, as_of=as_of),
    )
