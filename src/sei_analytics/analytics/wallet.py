"""Wallet behavior analytics.

All functions are pure: they read an oldest-first sequence of
transactions and an explicit ``as_of`` time.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Literal

from sei_analytics.upstream.models import WalletTransaction

ActivityLevel = Literal["inactive", "low", "medium", "high"]
BehaviorType = Literal["trader", "active_user", "regular_user", "occasional_user", "inactive"]
Trend = Literal["increasing", "decreasing", "stable", "insufficient_data"]

LARGE_TRANSACTION_AMOUNT = Decimal("1000000")  # usei
LARGE_TRANSACTION_RISK_COUNT = 10
HIGH_ACTIVITY_RECORD_COUNT = 100
LOW_ACTIVITY_RECORD_COUNT = 5
RAPID_WINDOW = timedelta(seconds=60)
RAPID_SAMPLE_SIZE = 10
VARIATION_MIN_RECORDS = 5
VARIATION_FACTOR = 10
TREND_MIN_RECORDS = 10
TREND_UP_RATIO = 1.5
TREND_DOWN_RATIO = 0.7
TOP_TOKEN_COUNT = 5


@dataclass(frozen=True)
class SpendingPatterns:
    average_transaction_size: Decimal = Decimal(0)
    largest_transaction: Decimal = Decimal(0)
    smallest_transaction: Decimal = Decimal(0)


@dataclass(frozen=True)
class WalletMetrics:
    """Derived behavior view of a wallet."""

    transaction_count: int
    total_volume: Decimal
    activity_level: ActivityLevel
    risk_score: int
    behavior_type: BehaviorType
    unusual_activity: frozenset[str]
    trend: Trend
    spending_patterns: SpendingPatterns = field(default_factory=SpendingPatterns)
    token_preferences: tuple[tuple[str, int], ...] = ()
    last_activity: WalletTransaction | None = None

    def to_dict(self) -> dict[str, Any]:
        change = {"increasing": "up", "decreasing": "down", "stable": "stable"}.get(self.trend)
        last = self.last_activity
        return {
            "transactionCount": self.transaction_count,
            "totalVolume": str(self.total_volume),
            "activityLevel": self.activity_level,
            "riskScore": self.risk_score,
            "behaviorType": self.behavior_type,
            "unusualActivity": sorted(self.unusual_activity),
            "trends": {"trend": self.trend, "change": change} if change else {"trend": self.trend},
            "spendingPatterns": {
                "averageTransactionSize": str(self.spending_patterns.average_transaction_size),
                "largestTransaction": str(self.spending_patterns.largest_transaction),
                "smallestTransaction": str(self.spending_patterns.smallest_transaction),
            },
            "tokenPreferences": [{"denom": d, "count": c} for d, c in self.token_preferences],
            "lastActivity": (
                {"timestamp": last.timestamp.isoformat(), "type": last.type, "amount": str(last.amount)}
                if last
                else None
            ),
        }


def _count_since(transactions: Sequence[WalletTransaction], cutoff: datetime) -> int:
    return sum(1 for tx in transactions if tx.timestamp > cutoff)


def activity_level(transactions: Sequence[WalletTransaction], *, as_of: datetime) -> ActivityLevel:
    recent = _count_since(transactions, as_of - timedelta(days=7))
    if recent == 0:
        return "inactive"
    if recent < 5:
        return "low"
    if recent < 20:
        return "medium"
    return "high"


def risk_score(transactions: Sequence[WalletTransaction]) -> int:
    score = 0
    if len(transactions) > HIGH_ACTIVITY_RECORD_COUNT:
        score += 20
    if len(transactions) < LOW_ACTIVITY_RECORD_COUNT:
        score += 15
    large = sum(1 for tx in transactions if tx.amount > LARGE_TRANSACTION_AMOUNT)
    if large > LARGE_TRANSACTION_RISK_COUNT:
        score += 25
    return min(100, max(0, score))


def behavior_type(transactions: Sequence[WalletTransaction], *, as_of: datetime) -> BehaviorType:
    recent = _count_since(transactions, as_of - timedelta(hours=24))
    if recent > 50:
        return "trader"
    if recent > 20:
        return "active_user"
    if recent > 5:
        return "regular_user"
    if recent > 0:
        return "occasional_user"
    return "inactive"


def unusual_activity(transactions: Sequence[WalletTransaction]) -> frozenset[str]:
    flags: set[str] = set()

    if len(transactions) >= RAPID_SAMPLE_SIZE:
        recent = transactions[-RAPID_SAMPLE_SIZE:]
        stamps = [tx.timestamp for tx in recent]
        if max(stamps) - min(stamps) < RAPID_WINDOW:
            flags.add("rapid_transactions")

    if len(transactions) >= VARIATION_MIN_RECORDS:
        amounts = [tx.amount for tx in transactions]
        mean = sum(amounts, Decimal(0)) / len(amounts)
        if any(amount > mean * VARIATION_FACTOR for amount in amounts):
            flags.add("large_amount_variations")

    return frozenset(flags)


def trend(transactions: Sequence[WalletTransaction], *, as_of: datetime) -> Trend:
    if len(transactions) < TREND_MIN_RECORDS:
        return "insufficient_data"
    week_ago = as_of - timedelta(days=7)
    two_weeks_ago = as_of - timedelta(days=14)
    recent_week = sum(1 for tx in transactions if tx.timestamp > week_ago)
    previous_week = sum(1 for tx in transactions if two_weeks_ago < tx.timestamp <= week_ago)
    if recent_week == 0 and previous_week == 0:
        return "stable"
    if recent_week >= previous_week * TREND_UP_RATIO:
        return "increasing"
    if recent_week <= previous_week * TREND_DOWN_RATIO:
        return "decreasing"
    return "stable"


def spending_patterns(transactions: Sequence[WalletTransaction]) -> SpendingPatterns:
    amounts = [tx.amount for tx in transactions if tx.amount > 0]
    if not amounts:
        return SpendingPatterns()
    return SpendingPatterns(
        average_transaction_size=sum(amounts, Decimal(0)) / len(amounts),
        largest_transaction=max(amounts),
        smallest_transaction=min(amounts),
    )


def token_preferences(transactions: Sequence[WalletTransaction]) -> tuple[tuple[str, int], ...]:
    counts = Counter(tx.denom or "unknown" for tx in transactions)
    return tuple(counts.most_common(TOP_TOKEN_COUNT))


def compute_wallet_metrics(
    transactions: Sequence[WalletTransaction],
    *,
    as_of: datetime,
) -> WalletMetrics:
    """Compute the full wallet metric set."""
    return WalletMetrics(
        transaction_count=len(transactions),
        total_volume=sum((tx.amount for tx in transactions), Decimal(0)),
        activity_level=activity_level(transactions, as_of=as_of),
        risk_score=risk_score(transactions),
        behavior_type=behavior_type(transactions, as_of=as_of),
        unusual_activity=unusual_activity(transactions),
        trend=trend(transactions, as_of=as_of),
        spending_patterns=spending_patterns(transactions),
        token_preferences=token_preferences(transactions),
        last_activity=max(transactions, key=lambda tx: tx.timestamp) if transactions else None,
    )
