"""
Derived auction reads as pure functions of auction state and the current time.

Nothing here touches storage or the clock; callers pass ``now`` in.
"""

import math
from datetime import datetime
from typing import Optional

from farmbid.models.entities.couchbase.auctions import AuctionData, BidData
from farmbid.models.entities.couchbase.listings import ListingData


MIN_AUCTION_DURATION_SECONDS = 5 * 60
MAX_ANTI_SNIPING_BUFFER_SECONDS = 300


def money(value: float) -> float:
    return round(value, 2)


def is_live(auction: AuctionData) -> bool:
    return auction.status == "live"


def can_start(auction: AuctionData, now: datetime) -> bool:
    return auction.status == "scheduled" and now >= auction.start_time


def should_end(auction: AuctionData, now: datetime) -> bool:
    return auction.status == "live" and now >= auction.end_time


def time_remaining(auction: AuctionData, now: datetime) -> int:
    """Whole seconds until ``end_time``, never negative."""
    remaining = (auction.end_time - now).total_seconds()
    return max(0, math.floor(remaining))


def next_min_bid(auction: AuctionData) -> float:
    if auction.current_bid is None:
        return money(auction.starting_bid)
    return money(auction.current_bid + auction.min_bid_increment)


def reserve_met(auction: AuctionData) -> bool:
    if auction.reserve_price is None:
        return True
    return auction.current_bid is not None and auction.current_bid >= auction.reserve_price


def has_sale(auction: AuctionData) -> bool:
    return auction.winning_bid_id is not None and reserve_met(auction)


def required_escrow(amount: float, listing: ListingData, deposit_percentage: float) -> float:
    """Deposit a bidder must hold before ``amount`` is admitted."""
    return money(amount * listing.quantity * listing.price_per_unit * deposit_percentage / 100)


def find_bid(auction: AuctionData, bid_id: Optional[str]) -> Optional[BidData]:
    if bid_id is None:
        return None
    for bid in auction.bids:
        if bid.id == bid_id:
            return bid
    return None


def current_winning_bid(auction: AuctionData) -> Optional[BidData]:
    return find_bid(auction, auction.winning_bid_id)


def has_bid_before(auction: AuctionData, bidder_id: str) -> bool:
    return any(b.bidder_id == bidder_id for b in auction.bids)
