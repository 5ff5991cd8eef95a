"""Meme-coin flow and whale analytics."""

from __future__ import annotations

import math
import random
import string
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sei_analytics.tracking.history import within
from sei_analytics.upstream.models import FlowRecord, TokenHolder, UpstreamEvent, WhaleHolder, to_decimal

WHALE_DECILE = 0.1
BACKFILL_HOURS = 24
SUMMARY_TIMEFRAME = "24h"


@dataclass(frozen=True)
class FlowSummary:
    timeframe: str
    total_inflow: Decimal
    total_outflow: Decimal
    net_flow: Decimal
    total_volume: Decimal
    average_inflow: Decimal
    average_outflow: Decimal
    flow_ratio: float
    data_points: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeframe": self.timeframe,
            "totalInflow": str(self.total_inflow),
            "totalOutflow": str(self.total_outflow),
            "netFlow": str(self.net_flow),
            "totalVolume": str(self.total_volume),
            "averageInflow": str(self.average_inflow),
            "averageOutflow": str(self.average_outflow),
            "flowRatio": self.flow_ratio,
            "dataPoints": self.data_points,
        }


@dataclass(frozen=True)
class WhaleAnalytics:
    whale_count: int
    total_whale_balance: float
    average_whale_balance: float
    whale_concentration: float
    top_whale: WhaleHolder | None
    distribution: tuple[WhaleHolder, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "whaleCount": self.whale_count,
            "totalWhaleBalance": self.total_whale_balance,
            "averageWhaleBalance": self.average_whale_balance,
            "whaleConcentration": self.whale_concentration,
            "topWhale": self.top_whale.to_dict() if self.top_whale else None,
            "distribution": [w.to_dict() for w in self.distribution],
        }


@dataclass(frozen=True)
class CoinMetrics:
    """Derived flow and holder view of a coin.

    ``whales_refreshed_at`` records when the whale set was last derived so
    later refreshes can reuse it inside the throttle interval.
    """

    flow_summary: FlowSummary
    whales: tuple[WhaleHolder, ...]
    whale_concentration: float
    whales_refreshed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "flowSummary": self.flow_summary.to_dict(),
            "whales": [w.to_dict() for w in self.whales],
            "whaleConcentration": self.whale_concentration,
            "whalesRefreshedAt": self.whales_refreshed_at.isoformat(),
        }


def flow_summary(
    records: Sequence[FlowRecord],
    *,
    as_of: datetime,
    timeframe: str = SUMMARY_TIMEFRAME,
) -> FlowSummary:
    """Aggregate flows inside the lookback window."""
    window = within(records, as_of=as_of, timeframe=timeframe)
    total_inflow = sum((r.inflow for r in window), Decimal(0))
    total_outflow = sum((r.outflow for r in window), Decimal(0))
    count = len(window)
    return FlowSummary(
        timeframe=timeframe,
        total_inflow=total_inflow,
        total_outflow=total_outflow,
        net_flow=total_inflow - total_outflow,
        total_volume=total_inflow + total_outflow,
        average_inflow=total_inflow / count if count else Decimal(0),
        average_outflow=total_outflow / count if count else Decimal(0),
        flow_ratio=float(total_inflow / max(total_outflow, Decimal(1))),
        data_points=count,
    )


def derive_flow(event: UpstreamEvent) -> FlowRecord:
    """Turn a coin event into a flow record.

    Explicit ``inflow``/``outflow`` fields win. Otherwise a mint (receiver
    only) is an inflow, a burn (sender only) an outflow, and a transfer is
    split evenly.
    """
    data = event.data
    if "inflow" in data or "outflow" in data:
        inflow = to_decimal(data.get("inflow"))
        outflow = to_decimal(data.get("outflow"))
    else:
        amount = to_decimal(data.get("amount"))
        sender, receiver = data.get("from"), data.get("to")
        if receiver and not sender:
            inflow, outflow = amount, Decimal(0)
        elif sender and not receiver:
            inflow, outflow = Decimal(0), amount
        else:
            inflow = outflow = amount / 2
    if inflow < 0 or outflow < 0:
        raise ValueError("flow amounts must be non-negative")
    return FlowRecord(
        timestamp=event.timestamp,
        inflow=inflow,
        outflow=outflow,
        transaction_hash=event.hash or None,
    )


def _money(value: float) -> Decimal:
    return Decimal(f"{value:.2f}")


def estimate_hourly_flows(symbol: str, *, as_of: datetime, hours: int = BACKFILL_HOURS) -> list[FlowRecord]:
    """Synthetic hourly buckets ending at ``as_of``, deterministic per symbol."""
    rng = random.Random(f"flows:{symbol}")
    return [
        FlowRecord(
            timestamp=as_of - timedelta(hours=i),
            inflow=_money(rng.random() * 10_000 + 1_000),
            outflow=_money(rng.random() * 8_000 + 500),
        )
        for i in range(hours - 1, -1, -1)
    ]


def select_whales(holders: Sequence[TokenHolder], *, total_supply: float) -> tuple[WhaleHolder, ...]:
    """Top decile of holders by balance."""
    if not holders:
        return ()
    ranked = sorted(holders, key=lambda h: h.balance, reverse=True)
    cutoff = math.ceil(len(ranked) * WHALE_DECILE)
    return tuple(
        WhaleHolder(
            address=h.address,
            balance=h.balance,
            percentage=(h.balance / total_supply * 100) if total_supply > 0 else 0.0,
            last_activity=h.last_activity,
        )
        for h in ranked[:cutoff]
    )


def synthetic_whales(symbol: str, *, as_of: datetime) -> tuple[WhaleHolder, ...]:
    """Stand-in whale set for coins without a holder feed."""
    rng = random.Random(f"whales:{symbol}")
    whales = [
        WhaleHolder(
            address=f"sei1whale{i}" + "".join(rng.choices(string.ascii_lowercase + string.digits, k=9)),
            balance=float(round(rng.random() * 1_000_000 + 100_000)),
            percentage=round(rng.random() * 5 + 1, 2),
            last_activity=as_of - timedelta(seconds=rng.random() * 86400),
        )
        for i in range(rng.randint(3, 7))
    ]
    return tuple(sorted(whales, key=lambda w: w.balance, reverse=True))


def whale_concentration(whales: Sequence[WhaleHolder]) -> float:
    return max(0.0, sum(max(0.0, w.percentage) for w in whales))


def whale_analytics(whales: Sequence[WhaleHolder]) -> WhaleAnalytics:
    total = sum(w.balance for w in whales)
    return WhaleAnalytics(
        whale_count=len(whales),
        total_whale_balance=total,
        average_whale_balance=total / len(whales) if whales else 0.0,
        whale_concentration=whale_concentration(whales),
        top_whale=whales[0] if whales else None,
        distribution=tuple(whales),
    )


def compute_coin_metrics(
    records: Sequence[FlowRecord],
    *,
    whales: Sequence[WhaleHolder],
    whales_refreshed_at: datetime,
    as_of: datetime,
) -> CoinMetrics:
    """Compute the coin metric set from flows and an already-derived whale set."""
    return CoinMetrics(
        flow_summary=flow_summary(records, as_of=as_of),
        whales=tuple(whales),
        whale_concentration=whale_concentration(whales),
        whales_refreshed_at=whales_refreshed_at,
    )
