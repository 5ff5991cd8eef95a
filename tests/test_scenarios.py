"""End-to-end tracking scenarios across the registry."""

from __future__ import annotations

from decimal import Decimal

import pytest

from sei_analytics.upstream.models import EntityKind


class TestWalletScenario:
    """Tracking a wallet from a cold start."""

    @pytest.mark.asyncio
    async def test_subscribe_returns_snapshot_and_metrics(self, registry, wallet_address):
        """A first subscription returns live data with computed metrics."""
        snapshot, metrics = await registry.subscribe(EntityKind.WALLET, wallet_address, "conn-1")

        assert snapshot.address == wallet_address
        data = metrics.to_dict()
        assert data["activityLevel"] == "inactive"
        assert 0 <= data["riskScore"] <= 100
        assert registry.get(EntityKind.WALLET, wallet_address).subscribers == {"conn-1"}

    @pytest.mark.asyncio
    async def test_transfer_updates_both_parties(self, registry, transport, event_factory, wallet_address):
        """A transfer between two tracked wallets updates each of them."""
        other = "sei1" + "q" * 42
        await registry.subscribe(EntityKind.WALLET, wallet_address, "conn-1")
        await registry.subscribe(EntityKind.WALLET, other, "conn-2")

        await registry.dispatch_event(
            event_factory({"from": wallet_address, "to": other, "amount": 25, "denom": "usei"})
        )

        assert transport.events_for("conn-1", "wallet_update")[0]["key"] == wallet_address
        assert transport.events_for("conn-2", "wallet_update")[0]["key"] == other
        assert len(registry.get(EntityKind.WALLET, other).history) == 1


class TestCoinScenario:
    """Tracking meme-coin flows."""

    @pytest.mark.asyncio
    async def test_flow_event_updates_summary(self, registry, transport, event_factory):
        """An inflow-heavy event shows up as positive net flow."""
        _, before = await registry.subscribe(EntityKind.COIN, "PEPE", "conn-1")

        await registry.dispatch_event(event_factory({"denom": "PEPE", "inflow": 5000, "outflow": 1000}))

        update = transport.events_for("conn-1", "memecoin_update")[0]
        assert update["newEvent"]["netFlow"] == "4000"
        summary = update["updatedMetrics"]["flowSummary"]
        assert Decimal(summary["netFlow"]) == before.flow_summary.net_flow + 4000
        assert summary["dataPoints"] == before.flow_summary.data_points + 1

    @pytest.mark.asyncio
    async def test_remaining_subscriber_keeps_receiving(self, registry, transport, event_factory):
        """One subscriber leaving does not affect the other."""
        await registry.subscribe(EntityKind.COIN, "PEPE", "conn-1")
        await registry.subscribe(EntityKind.COIN, "PEPE", "conn-2")

        assert registry.unsubscribe(EntityKind.COIN, "PEPE", "conn-1")
        await registry.dispatch_event(event_factory({"denom": "PEPE", "amount": 10, "to": "sei1a"}))

        assert transport.events_for("conn-1", "memecoin_update") == []
        assert len(transport.events_for("conn-2", "memecoin_update")) == 1
        assert registry.get(EntityKind.COIN, "PEPE").subscribers == {"conn-2"}


class TestNFTScenario:
    """Tracking an NFT through its first sale."""

    @pytest.mark.asyncio
    async def test_mint_then_transfer(self, registry, transport, event_factory):
        """The first sale sets the average price with no price change yet."""
        _, metrics = await registry.subscribe(EntityKind.NFT, "nft001", "conn-1")
        assert metrics.total_transfers == 0

        await registry.dispatch_event(
            event_factory(
                {"tokenId": "nft001", "type": "transfer", "from": "sei1creator", "to": "sei1buyer", "price": 100}
            )
        )

        update = transport.events_for("conn-1", "nft_update")[0]
        performance = update["updatedMetrics"]
        assert performance["totalTransfers"] == 1
        assert Decimal(performance["averagePrice"]) == 100
        assert performance["priceChange"]["percentage"] == 0
        assert update["newEvent"]["type"] == "transfer"

        entity = registry.get(EntityKind.NFT, "nft001")
        assert [m.type for m in entity.history] == ["mint", "transfer"]

    @pytest.mark.asyncio
    async def test_untracked_events_are_ignored(self, registry, transport, event_factory):
        """Events for entities nobody watches produce no updates."""
        updates = await registry.dispatch_event(event_factory({"tokenId": "nft999", "price": 5}))
        assert updates == []
        assert transport.sent == []
