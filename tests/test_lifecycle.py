"""Tests for auction creation and lifecycle operations on the service."""

import asyncio
from datetime import timedelta

import pytest

from farmbid.auctions import ConflictError, ForbiddenError, NotFoundError, ValidationError

from conftest import FARMER, LISTING


class TestCreate:
    def test_creates_scheduled_auction(self, market) -> None:
        auction = asyncio.run(market.scheduled_auction())
        assert auction.data.status == "scheduled"
        assert auction.data.farmer_id == FARMER
        assert auction.data.listing_id == LISTING
        assert auction.cas is not None

    def test_only_farmers_create(self, market) -> None:
        buyer = market.add_buyer("buyer-1")
        with pytest.raises(ForbiddenError):
            asyncio.run(market.service.create_auction(market.spec(), buyer))

    def test_listing_must_exist(self, market) -> None:
        with pytest.raises(NotFoundError):
            asyncio.run(market.service.create_auction(market.spec(listing_id="nope"), FARMER))

    def test_listing_must_belong_to_farmer(self, market) -> None:
        market.users.add("farmer-2", role="farmer", status="active", kyc_status="verified")
        with pytest.raises(ForbiddenError):
            asyncio.run(market.service.create_auction(market.spec(), "farmer-2"))

    def test_one_scheduled_auction_per_listing(self, market) -> None:
        async def scenario():
            await market.scheduled_auction()
            with pytest.raises(ConflictError):
                await market.scheduled_auction()

        asyncio.run(scenario())

    def test_concurrent_creates_for_same_listing(self, market) -> None:
        async def scenario():
            return await asyncio.gather(
                market.scheduled_auction(),
                market.scheduled_auction(),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        assert asyncio.run(market.store.count(status="scheduled")) == 1

    def test_invalid_timing_rejected(self, market) -> None:
        with pytest.raises(ValidationError):
            asyncio.run(market.scheduled_auction(duration=120))


class TestTransitions:
    def test_start_publishes_auction_started(self, market) -> None:
        auction = asyncio.run(market.live_auction())
        assert auction.data.status == "live"
        assert auction.data.actual_start_time == auction.data.start_time
        [event] = market.publisher.of_type("auction_started")
        assert event.auction_id == auction.id
        assert event.end_time == auction.data.end_time

    def test_start_before_start_time_rejected(self, market) -> None:
        async def scenario():
            auction = await market.scheduled_auction()
            with pytest.raises(ConflictError):
                await market.service.start_auction(auction.id, FARMER)

        asyncio.run(scenario())

    def test_only_owner_transitions(self, market) -> None:
        market.users.add("farmer-2", role="farmer", status="active", kyc_status="verified")

        async def scenario():
            auction = await market.live_auction()
            for op in (
                market.service.pause_auction,
                market.service.end_auction,
            ):
                with pytest.raises(ForbiddenError):
                    await op(auction.id, "farmer-2")

        asyncio.run(scenario())

    def test_cancel_scheduled(self, market) -> None:
        async def scenario():
            auction = await market.scheduled_auction()
            return await market.service.cancel_auction(auction.id, FARMER)

        assert asyncio.run(scenario()).data.status == "cancelled"

    def test_cannot_cancel_live(self, market) -> None:
        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ConflictError):
                await market.service.cancel_auction(auction.id, FARMER)

        asyncio.run(scenario())

    def test_pause_resume_extends_by_paused_time(self, market) -> None:
        async def scenario():
            auction = await market.live_auction()
            await market.service.pause_auction(auction.id, FARMER)
            market.clock.advance(minutes=2)
            resumed = await market.service.resume_auction(auction.id, FARMER)
            return auction.data.end_time, resumed

        original_end, resumed = asyncio.run(scenario())
        assert resumed.data.status == "live"
        assert resumed.data.end_time == original_end + timedelta(minutes=2)


class TestEndAndSettle:
    def test_end_with_sale_refunds_losers_only(self, market) -> None:
        a = market.add_buyer("buyer-a")
        b = market.add_buyer("buyer-b")

        async def scenario():
            auction = await market.live_auction()
            await market.service.place_bid(auction.id, a, 100.0)
            await market.service.place_bid(auction.id, b, 110.0)
            market.clock.set(auction.data.end_time)
            return await market.service.end_auction(auction.id, FARMER)

        ended = asyncio.run(scenario())
        assert ended.data.status == "ended"
        assert ended.data.winning_bidder_id == b
        assert ended.data.reserve_met is True
        winning = [bid for bid in ended.data.bids if bid.status == "winning"]
        assert [bid.bidder_id for bid in winning] == [b]

        assert [(action, hold) for action, hold, _ in market.escrow.instructions] == [("refund", f"hold-{a}")]
        assert market.escrow.holds[f"hold-{b}"].data.status == "held"

        [event] = market.publisher.of_type("auction_ended")
        assert event.winning_bid.bidder_id == b
        assert event.winning_bid.amount == 110.0
        assert event.reserve_met is True

    def test_end_without_reserve_refunds_everyone(self, market) -> None:
        a = market.add_buyer("buyer-a")
        b = market.add_buyer("buyer-b")

        async def scenario():
            auction = await market.live_auction(reserve_price=500.0)
            await market.service.place_bid(auction.id, a, 100.0)
            await market.service.place_bid(auction.id, b, 110.0)
            return await market.service.end_auction(auction.id, FARMER)

        ended = asyncio.run(scenario())
        assert ended.data.reserve_met is False
        assert ended.data.bids[-1].status == "expired"
        refunded = sorted(hold for action, hold, _ in market.escrow.instructions if action == "refund")
        assert refunded == [f"hold-{a}", f"hold-{b}"]

    def test_complete_releases_winner_deposit(self, market) -> None:
        a = market.add_buyer("buyer-a")

        async def scenario():
            auction = await market.live_auction()
            await market.service.place_bid(auction.id, a, 100.0)
            await market.service.end_auction(auction.id, FARMER)
            return await market.service.complete_auction(auction.id)

        completed = asyncio.run(scenario())
        assert completed.data.status == "completed"
        assert market.escrow.instructions[-1][:2] == ("release", f"hold-{a}")

    def test_escrow_failure_does_not_undo_end(self, market) -> None:
        a = market.add_buyer("buyer-a")
        b = market.add_buyer("buyer-b")

        async def broken_refund(hold_id, reason):
            raise RuntimeError("payments offline")

        market.escrow.refund_hold = broken_refund

        async def scenario():
            auction = await market.live_auction()
            await market.service.place_bid(auction.id, a, 100.0)
            await market.service.place_bid(auction.id, b, 110.0)
            await market.service.end_auction(auction.id, FARMER)
            return await market.reload(auction.id)

        assert asyncio.run(scenario()).data.status == "ended"


class TestQueries:
    def test_list_paginates(self, market) -> None:
        for i in range(3):
            market.listings.add(f"listing-{i}", farmer_id=FARMER, title=f"Lot {i}", quantity=1.0, price_per_unit=1.0)

        async def scenario():
            for i in range(3):
                await market.scheduled_auction(listing_id=f"listing-{i}")
            return await market.service.list_auctions(page=2, limit=2)

        items, total = asyncio.run(scenario())
        assert total == 3
        assert len(items) == 1

    def test_user_bids_and_auctions(self, market) -> None:
        a = market.add_buyer("buyer-a")

        async def scenario():
            auction = await market.live_auction()
            await market.service.place_bid(auction.id, a, 100.0)
            bids = await market.service.get_user_bids(a)
            mine = await market.service.get_user_auctions(FARMER)
            return auction, bids, mine

        auction, bids, mine = asyncio.run(scenario())
        assert [b.amount for b in bids] == [100.0]
        assert [x.id for x in mine] == [auction.id]
