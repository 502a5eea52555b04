"""Tests for derived auction reads."""

from datetime import timedelta

from farmbid.auctions import rules
from farmbid.models.entities.couchbase.auctions import AuctionData
from farmbid.models.entities.couchbase.listings import ListingData

from conftest import T0


def _auction(**overrides) -> AuctionData:
    fields = dict(
        listing_id="L-1",
        farmer_id="F-1",
        status="live",
        start_time=T0,
        end_time=T0 + timedelta(minutes=10),
        starting_bid=100.0,
        min_bid_increment=10.0,
    )
    fields.update(overrides)
    return AuctionData(**fields)


class TestNextMinBid:
    def test_starting_bid_when_no_bids(self) -> None:
        assert rules.next_min_bid(_auction()) == 100.0

    def test_current_plus_increment(self) -> None:
        assert rules.next_min_bid(_auction(current_bid=110.0)) == 120.0

    def test_rounded_to_cents(self) -> None:
        auction = _auction(current_bid=0.1, min_bid_increment=0.2)
        assert rules.next_min_bid(auction) == 0.3


class TestTiming:
    def test_can_start_only_when_scheduled_and_due(self) -> None:
        auction = _auction(status="scheduled")
        assert not rules.can_start(auction, T0 - timedelta(seconds=1))
        assert rules.can_start(auction, T0)
        assert not rules.can_start(_auction(status="live"), T0)

    def test_should_end_only_when_live_and_past_end(self) -> None:
        auction = _auction()
        assert not rules.should_end(auction, T0 + timedelta(minutes=9, seconds=59))
        assert rules.should_end(auction, T0 + timedelta(minutes=10))
        assert not rules.should_end(_auction(status="paused"), T0 + timedelta(hours=1))

    def test_time_remaining_floors_and_clamps(self) -> None:
        auction = _auction()
        assert rules.time_remaining(auction, T0 + timedelta(minutes=9, seconds=29, milliseconds=500)) == 30
        assert rules.time_remaining(auction, T0 + timedelta(hours=1)) == 0


class TestReserve:
    def test_no_reserve_is_always_met(self) -> None:
        assert rules.reserve_met(_auction())

    def test_reserve_needs_a_bid_at_or_above_it(self) -> None:
        assert not rules.reserve_met(_auction(reserve_price=150.0))
        assert not rules.reserve_met(_auction(reserve_price=150.0, current_bid=140.0))
        assert rules.reserve_met(_auction(reserve_price=150.0, current_bid=150.0))

    def test_has_sale_needs_a_winner(self) -> None:
        assert not rules.has_sale(_auction())
        assert rules.has_sale(_auction(current_bid=120.0, winning_bid_id="b-1"))


class TestRequiredEscrow:
    def test_percentage_of_transaction_value(self) -> None:
        listing = ListingData(farmer_id="F-1", title="Apples", quantity=10.0, price_per_unit=2.0)
        assert rules.required_escrow(110.0, listing, 10.0) == 220.0
