"""Tests for NFT movement and performance analytics."""

from __future__ import annotations

import random
from datetime import timedelta
from decimal import Decimal

from sei_analytics.analytics.nft import (
    average_price,
    compute_nft_metrics,
    holding_periods,
    market_activity,
    movement_analytics,
    ownership_analytics,
    performance_score,
    price_change,
    rarity,
    total_volume,
)
from sei_analytics.upstream.models import NFTMovement


def create_movement(
    now,
    *,
    days_ago: float = 0,
    price: float = 0.0,
    type: str = "transfer",
    from_address: str | None = "sei1seller",
    to_address: str | None = "sei1buyer",
) -> NFTMovement:
    """Create an NFTMovement for testing."""
    return NFTMovement(
        type=type,
        from_address=from_address if type == "transfer" else None,
        to_address=to_address,
        price=Decimal(str(price)),
        timestamp=now - timedelta(days=days_ago),
    )


def create_mint(now, *, days_ago: float, owner: str = "sei1creator") -> NFTMovement:
    return create_movement(now, days_ago=days_ago, type="mint", to_address=owner)


class TestPricing:
    """Tests for volume, average price and price change."""

    def test_volume_counts_priced_transfers_only(self, now):
        """Mints and zero-priced transfers should not contribute."""
        movements = [
            create_mint(now, days_ago=10),
            create_movement(now, days_ago=5, price=0.0),
            create_movement(now, days_ago=2, price=100.0),
            create_movement(now, days_ago=1, price=300.0),
        ]
        assert total_volume(movements) == 400
        assert average_price(movements) == 200

    def test_no_priced_transfers(self, now):
        """Average price should be zero without priced transfers."""
        assert average_price([create_mint(now, days_ago=1)]) == 0

    def test_price_change_first_versus_last(self, now):
        """Change should compare the first and last priced transfer."""
        movements = [
            create_movement(now, days_ago=3, price=100.0),
            create_movement(now, days_ago=2, price=50.0),
            create_movement(now, days_ago=1, price=150.0),
        ]
        change = price_change(movements)
        assert change.change == 50
        assert change.percentage == 50

    def test_price_change_needs_two_priced_transfers(self, now):
        """A single priced transfer has no baseline."""
        change = price_change([create_mint(now, days_ago=2), create_movement(now, days_ago=1, price=100.0)])
        assert change.to_dict() == {"change": "0", "percentage": 0.0}


class TestHoldingPeriods:
    """Tests for holding_periods."""

    def test_gaps_between_transfers(self, now):
        """Gaps should be measured between consecutive transfers."""
        movements = [
            create_movement(now, days_ago=10),
            create_movement(now, days_ago=9),
            create_movement(now, days_ago=6),
        ]
        periods = holding_periods(movements)
        day = timedelta(days=1).total_seconds()
        assert periods.shortest == day
        assert periods.longest == 3 * day
        assert periods.average == 2 * day

    def test_single_transfer(self, now):
        """Fewer than two transfers yields zero periods."""
        assert holding_periods([create_movement(now)]).average == 0


class TestRarity:
    """Tests for rarity."""

    def test_legendary(self, now):
        """An NFT held for over a year with one transfer is legendary."""
        movements = [create_mint(now, days_ago=400), create_movement(now, days_ago=1)]
        assert rarity(movements) == "legendary"

    def test_rare(self, now):
        """Two transfers over half a year is rare."""
        movements = [
            create_mint(now, days_ago=200),
            create_movement(now, days_ago=100),
            create_movement(now, days_ago=1),
        ]
        assert rarity(movements) == "rare"

    def test_common(self, now):
        """Frequently traded NFTs are common."""
        movements = [create_mint(now, days_ago=400)] + [create_movement(now, days_ago=d) for d in (300, 200, 100)]
        assert rarity(movements) == "common"

    def test_single_movement(self, now):
        """A lone mint has no span and is common."""
        assert rarity([create_mint(now, days_ago=1000)]) == "common"


class TestMarketActivity:
    """Tests for market_activity."""

    def test_bands(self, now):
        """Thirty-day movement counts map onto activity bands."""
        assert market_activity([create_mint(now, days_ago=60)], as_of=now) == "inactive"
        assert market_activity([create_movement(now, days_ago=1)] * 2, as_of=now) == "low"
        assert market_activity([create_movement(now, days_ago=1)] * 7, as_of=now) == "medium"
        assert market_activity([create_movement(now, days_ago=1)] * 8, as_of=now) == "high"


class TestPerformanceScore:
    """Tests for performance_score."""

    def test_baseline(self, now):
        """An idle NFT scores the base value."""
        assert performance_score([create_mint(now, days_ago=60)], as_of=now) == 50

    def test_empty(self, now):
        """An empty history still scores within bounds."""
        assert performance_score([], as_of=now) == 50

    def test_price_bonuses_are_exclusive(self, now):
        """Only the highest price-change band applies."""
        movements = [
            create_movement(now, days_ago=20, price=100.0),
            create_movement(now, days_ago=10, price=300.0),
        ]
        assert performance_score(movements, as_of=now) == 70

    def test_recent_activity_bonus(self, now):
        """Activity inside a week adds a small bonus."""
        movements = [create_movement(now, days_ago=20, price=100.0), create_movement(now, days_ago=1, price=120.0)]
        assert performance_score(movements, as_of=now) == 65

    def test_heavy_trading_capped(self, now):
        """Many transfers and a big price jump should stay at or below 100."""
        movements = [create_movement(now, days_ago=12 - i, price=10.0 * (i + 1) ** 2) for i in range(12)]
        assert performance_score(movements, as_of=now) == 100

    def test_always_in_bounds(self, now):
        """Arbitrary histories should score within [0, 100]."""
        rng = random.Random(3)
        for _ in range(50):
            movements = sorted(
                (
                    create_movement(now, days_ago=rng.random() * 400, price=rng.choice([0.0, rng.random() * 1000]))
                    for _ in range(rng.randint(0, 30))
                ),
                key=lambda m: m.timestamp,
            )
            assert 0 <= performance_score(movements, as_of=now) <= 100


class TestMovementAnalytics:
    """Tests for movement and ownership analytics."""

    def test_movement_window(self, now):
        """Movement totals should respect the timeframe."""
        movements = [
            create_mint(now, days_ago=60),
            create_movement(now, days_ago=40, price=10.0, from_address="sei1a", to_address="sei1b"),
            create_movement(now, days_ago=1, price=30.0, from_address="sei1b", to_address="sei1c"),
        ]
        everything = movement_analytics(movements, as_of=now)
        assert everything["totalMovements"] == 3
        assert everything["totalTransfers"] == 2
        assert Decimal(everything["totalVolume"]) == 40
        assert Decimal(everything["averagePrice"]) == 20
        assert everything["uniqueOwners"] == 3

        recent = movement_analytics(movements, as_of=now, timeframe="30d")
        assert recent["totalTransfers"] == 1
        assert Decimal(recent["totalVolume"]) == 30

    def test_ownership_chain(self, now):
        """Replaying the chain should track the current owner."""
        movements = [
            create_mint(now, days_ago=30, owner="sei1creator"),
            create_movement(now, days_ago=20, from_address="sei1creator", to_address="sei1a"),
            create_movement(now, days_ago=10, from_address="sei1a", to_address="sei1b"),
        ]
        ownership = ownership_analytics(movements)
        assert ownership["currentOwner"] == "sei1b"
        assert [c["owner"] for c in ownership["ownershipHistory"]] == ["sei1creator", "sei1a"]
        assert ownership["totalOwners"] == 2
        assert ownership["averageOwnershipDuration"] == timedelta(days=10).total_seconds()

    def test_ownership_history_keeps_latest_ten(self, now):
        """Only the most recent ownership changes are reported."""
        movements = [create_movement(now, days_ago=30 - i, to_address=f"sei1owner{i}") for i in range(15)]
        history = ownership_analytics(movements)["ownershipHistory"]
        assert len(history) == 10
        assert history[-1]["to"] == "sei1owner14"


class TestComputeNFTMetrics:
    """Tests for the combined metric set."""

    def test_mint_then_sale(self, now):
        """A mint followed by one sale should report that sale."""
        movements = [create_mint(now, days_ago=30), create_movement(now, days_ago=0, price=100.0)]
        data = compute_nft_metrics(movements, as_of=now).to_dict()
        assert data["totalTransfers"] == 1
        assert Decimal(data["averagePrice"]) == 100
        assert data["priceChange"]["percentage"] == 0
        assert data["marketActivity"] == "low"
        assert data["rarity"] == "common"
