"""
Bid ledger: the append-only record of accepted bids inside an auction.

Recording a bid supersedes the previous winner (``active`` → ``outbid``),
appends the new bid as ``active`` and updates the auction's denormalized
winner fields and counters in the same draft, so they commit together.
"""

import uuid
from datetime import datetime
from typing import Optional

from farmbid.models.entities.couchbase.auctions import AuctionData, BidData

from . import rules
from .errors import ConflictError, ValidationError


class BidLedger:

    @staticmethod
    def check_open(data: AuctionData, now: datetime) -> None:
        if data.status != "live":
            raise ConflictError(f"Auction is not live (status: {data.status})")
        if rules.should_end(data, now):
            raise ConflictError("Auction has ended")

    @staticmethod
    def check_amount(
        data: AuctionData,
        amount: float,
        is_auto_bid: bool = False,
        max_auto_bid_amount: Optional[float] = None,
    ) -> None:
        min_bid = rules.next_min_bid(data)
        if amount < min_bid:
            raise ValidationError(f"Bid must be at least {min_bid:.2f}")
        if is_auto_bid:
            if max_auto_bid_amount is None:
                raise ValidationError("Auto-bids need a maximum auto-bid amount")
            if max_auto_bid_amount < amount:
                raise ValidationError("Maximum auto-bid amount cannot be below the bid amount")

    @staticmethod
    def record(
        auction_id: str,
        data: AuctionData,
        bidder_id: str,
        amount: float,
        now: datetime,
        is_auto_bid: bool = False,
        max_auto_bid_amount: Optional[float] = None,
    ) -> BidData:
        """Append an admitted bid and make it the current winner."""
        BidLedger.check_amount(data, amount, is_auto_bid, max_auto_bid_amount)

        previous = rules.current_winning_bid(data)
        if previous is not None and previous.status == "active":
            previous.status = "outbid"

        first_bid_from_bidder = not rules.has_bid_before(data, bidder_id)

        bid = BidData(
            id=str(uuid.uuid4()),
            auction_id=auction_id,
            bidder_id=bidder_id,
            amount=rules.money(amount),
            status="active",
            is_auto_bid=is_auto_bid,
            max_auto_bid_amount=(
                rules.money(max_auto_bid_amount) if is_auto_bid and max_auto_bid_amount is not None else None
            ),
            sequence=len(data.bids),
            created_at=now,
        )
        data.bids.append(bid)

        data.current_bid = bid.amount
        data.winning_bid_id = bid.id
        data.winning_bidder_id = bidder_id
        data.winning_bid_amount = bid.amount
        data.total_bids += 1
        if first_bid_from_bidder:
            data.unique_bidders += 1

        return bid
