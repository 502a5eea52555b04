"""Tests for placing bids: admission order, the ledger and counters."""

import asyncio
from datetime import timedelta

import pytest

from farmbid.auctions import ConflictError, ForbiddenError, NotFoundError, ValidationError

from conftest import FARMER


class TestMinimumIncrement:
    def test_below_starting_bid_rejected_then_accepted(self, market) -> None:
        buyer = market.add_buyer("buyer-1")

        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ValidationError, match="at least 100.00"):
                await market.service.place_bid(auction.id, buyer, 95.0)

            bid = await market.service.place_bid(auction.id, buyer, 110.0)
            return bid, await market.reload(auction.id)

        bid, auction = asyncio.run(scenario())
        assert bid.amount == 110.0
        assert bid.status == "active"
        assert auction.data.current_bid == 110.0
        assert auction.data.winning_bid_id == bid.id
        assert auction.data.total_bids == 1

    def test_every_accepted_bid_clears_previous_plus_increment(self, market) -> None:
        buyers = [market.add_buyer(f"buyer-{i}") for i in range(3)]

        async def scenario():
            auction = await market.live_auction()
            for amount, buyer in zip([100.0, 110.0, 125.0, 135.0], buyers + buyers):
                await market.service.place_bid(auction.id, buyer, amount)
            with pytest.raises(ValidationError):
                await market.service.place_bid(auction.id, buyers[0], 144.99)
            return await market.reload(auction.id)

        auction = asyncio.run(scenario())
        amounts = [b.amount for b in sorted(auction.data.bids, key=lambda b: b.sequence)]
        assert amounts == [100.0, 110.0, 125.0, 135.0]
        for previous, current in zip(amounts, amounts[1:]):
            assert current >= previous + 10.0


class TestLedger:
    def test_previous_winner_is_outbid(self, market) -> None:
        a = market.add_buyer("buyer-a")
        b = market.add_buyer("buyer-b")

        async def scenario():
            auction = await market.live_auction()
            first = await market.service.place_bid(auction.id, a, 100.0)
            second = await market.service.place_bid(auction.id, b, 110.0)
            return first, second, await market.reload(auction.id)

        first, second, auction = asyncio.run(scenario())
        statuses = {bid.id: bid.status for bid in auction.data.bids}
        assert statuses == {first.id: "outbid", second.id: "active"}
        assert auction.data.winning_bidder_id == b

    def test_counters(self, market) -> None:
        a = market.add_buyer("buyer-a")
        b = market.add_buyer("buyer-b")

        async def scenario():
            auction = await market.live_auction()
            await market.service.place_bid(auction.id, a, 100.0)
            await market.service.place_bid(auction.id, b, 110.0)
            await market.service.place_bid(auction.id, a, 120.0)
            return await market.reload(auction.id)

        auction = asyncio.run(scenario())
        assert auction.data.total_bids == 3 == len(auction.data.bids)
        assert auction.data.unique_bidders == 2

    def test_bid_placed_published(self, market) -> None:
        buyer = market.add_buyer("buyer-1")

        async def scenario():
            auction = await market.live_auction()
            await market.service.place_bid(auction.id, buyer, 110.0)
            return auction

        auction = asyncio.run(scenario())
        [event] = market.publisher.of_type("bid_placed")
        assert event.auction_id == auction.id
        assert event.current_bid == 110.0
        assert event.next_min_bid == 120.0
        assert event.bid.bidder_id == buyer
        topic, _ = market.publisher.published[-1]
        assert topic == f"auction_{auction.id}"


class TestAdmission:
    def test_farmer_cannot_bid_on_own_auction(self, market) -> None:
        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ForbiddenError):
                await market.service.place_bid(auction.id, FARMER, 200.0)
            return await market.reload(auction.id)

        auction = asyncio.run(scenario())
        assert auction.data.bids == []
        assert auction.data.total_bids == 0

    @pytest.mark.parametrize(
        "fields",
        [
            {"status": "suspended"},
            {"status": "pending_verification"},
            {"kyc_status": "pending"},
            {"kyc_status": "rejected"},
        ],
    )
    def test_ineligible_bidder_rejected(self, market, fields) -> None:
        buyer = market.add_buyer("buyer-1", **fields)

        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ForbiddenError):
                await market.service.place_bid(auction.id, buyer, 110.0)

        asyncio.run(scenario())

    def test_unknown_bidder_rejected(self, market) -> None:
        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ForbiddenError):
                await market.service.place_bid(auction.id, "nobody", 110.0)

        asyncio.run(scenario())

    def test_insufficient_escrow_rejected_without_state_change(self, market) -> None:
        # 110 needs a deposit of 220
        buyer = market.add_buyer("buyer-1", deposit=219.0)

        async def scenario():
            auction = await market.live_auction()
            before = await market.reload(auction.id)
            with pytest.raises(ValidationError, match="Insufficient escrow"):
                await market.service.place_bid(auction.id, buyer, 110.0)
            return before, await market.reload(auction.id)

        before, after = asyncio.run(scenario())
        assert after.cas == before.cas
        assert after.data == before.data
        assert market.publisher.of_type("bid_placed") == []

    def test_missing_escrow_rejected(self, market) -> None:
        buyer = market.add_buyer("buyer-1", deposit=None)

        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ValidationError):
                await market.service.place_bid(auction.id, buyer, 100.0)

        asyncio.run(scenario())

    def test_released_hold_does_not_count(self, market) -> None:
        buyer = market.add_buyer("buyer-1")
        market.escrow.holds[f"hold-{buyer}"].data.status = "released"

        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ValidationError):
                await market.service.place_bid(auction.id, buyer, 100.0)

        asyncio.run(scenario())

    def test_eligibility_checked_before_amount(self, market) -> None:
        buyer = market.add_buyer("buyer-1", kyc_status="pending")

        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ForbiddenError):
                await market.service.place_bid(auction.id, buyer, 1.0)

        asyncio.run(scenario())


class TestAuctionState:
    def test_unknown_auction(self, market) -> None:
        buyer = market.add_buyer("buyer-1")
        with pytest.raises(NotFoundError):
            asyncio.run(market.service.place_bid("missing", buyer, 100.0))

    def test_scheduled_auction_rejects_bids(self, market) -> None:
        buyer = market.add_buyer("buyer-1")

        async def scenario():
            auction = await market.scheduled_auction()
            with pytest.raises(ConflictError):
                await market.service.place_bid(auction.id, buyer, 100.0)

        asyncio.run(scenario())

    def test_paused_auction_rejects_bids(self, market) -> None:
        buyer = market.add_buyer("buyer-1")

        async def scenario():
            auction = await market.live_auction()
            await market.service.pause_auction(auction.id, FARMER)
            with pytest.raises(ConflictError):
                await market.service.place_bid(auction.id, buyer, 100.0)

        asyncio.run(scenario())

    def test_live_but_past_end_time_rejects_bids(self, market) -> None:
        buyer = market.add_buyer("buyer-1")

        async def scenario():
            auction = await market.live_auction()
            market.clock.set(auction.data.end_time + timedelta(seconds=1))
            with pytest.raises(ConflictError, match="ended"):
                await market.service.place_bid(auction.id, buyer, 100.0)

        asyncio.run(scenario())

    def test_auto_bid_needs_a_ceiling(self, market) -> None:
        buyer = market.add_buyer("buyer-1")

        async def scenario():
            auction = await market.live_auction()
            with pytest.raises(ValidationError):
                await market.service.place_bid(auction.id, buyer, 100.0, is_auto_bid=True)
            with pytest.raises(ValidationError):
                await market.service.place_bid(
                    auction.id, buyer, 100.0, is_auto_bid=True, max_auto_bid_amount=90.0
                )

        asyncio.run(scenario())
