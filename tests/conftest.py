"""Shared fixtures: a fake clock and a fully in-memory marketplace."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from farmbid.auctions import AuctionService, AuctionSettings, AuctionSpec
from farmbid.auctions.memory import (
    InMemoryAuctionStore,
    InMemoryEscrowLedger,
    InMemoryListingCatalog,
    InMemoryUserDirectory,
    RecordingPublisher,
)
from farmbid.models.entities.couchbase.auctions import Auction

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

FARMER = "farmer-1"
LISTING = "listing-1"


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, when: datetime) -> None:
        self.now = when


class Marketplace:
    """An auction service wired to in-memory collaborators.

    The listing is 10 kg at 2.0/kg, so with a 10% deposit a bid of ``x``
    needs a held deposit of ``2 * x``.
    """

    def __init__(self, settings: Optional[AuctionSettings] = None):
        self.clock = FakeClock()
        self.store = InMemoryAuctionStore()
        self.users = InMemoryUserDirectory()
        self.listings = InMemoryListingCatalog()
        self.escrow = InMemoryEscrowLedger()
        self.publisher = RecordingPublisher()
        self.service = AuctionService(
            self.store,
            self.users,
            self.listings,
            self.escrow,
            self.publisher,
            settings or AuctionSettings(),
            clock=self.clock,
        )
        self.users.add(FARMER, role="farmer", status="active", kyc_status="verified")
        self.listings.add(LISTING, farmer_id=FARMER, title="Tomatoes", quantity=10.0, price_per_unit=2.0)

    def add_buyer(self, buyer_id: str, deposit: Optional[float] = 2000.0, **fields) -> str:
        fields.setdefault("status", "active")
        fields.setdefault("kyc_status", "verified")
        self.users.add(buyer_id, role="buyer", **fields)
        if deposit is not None:
            self.escrow.add(
                f"hold-{buyer_id}",
                buyer_id=buyer_id,
                listing_id=LISTING,
                status="held",
                amount=deposit,
            )
        return buyer_id

    def spec(self, start_in: int = 60, duration: int = 600, **overrides) -> AuctionSpec:
        start = self.clock() + timedelta(seconds=start_in)
        fields = dict(
            listing_id=LISTING,
            start_time=start,
            end_time=start + timedelta(seconds=duration),
            starting_bid=100.0,
            min_bid_increment=10.0,
        )
        fields.update(overrides)
        return AuctionSpec(**fields)

    async def scheduled_auction(self, **overrides) -> Auction:
        return await self.service.create_auction(self.spec(**overrides), FARMER)

    async def live_auction(self, **overrides) -> Auction:
        """Create an auction and start it at its start time."""
        auction = await self.scheduled_auction(**overrides)
        self.clock.set(auction.data.start_time)
        return await self.service.start_auction(auction.id, FARMER)

    async def reload(self, auction_id: str) -> Auction:
        return await self.store.get(auction_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def market() -> Marketplace:
    return Marketplace()
