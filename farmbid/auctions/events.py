"""
Realtime auction events and the publishing capability the engine depends on.

The engine never talks to sockets. It is handed a ``Publisher`` and calls
``publish(topic, event)`` after a transition has committed. Delivery is
fire-and-forget: a failing publisher is logged and never rolls back state.
"""

import logging
from datetime import datetime
from typing import Literal, Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel

from farmbid.models.entities.couchbase.auctions import AuctionData, BidData

logger = logging.getLogger(__name__)


def auction_topic(auction_id: str) -> str:
    return f"auction_{auction_id}"


class BidSummary(BaseModel):
    id: str
    bidder_id: str
    amount: float
    is_auto_bid: bool
    created_at: datetime


class WinningBidSummary(BaseModel):
    id: str
    bidder_id: str
    amount: float


class BidPlacedEvent(BaseModel):
    type: Literal["bid_placed"] = "bid_placed"
    auction_id: str
    bid: BidSummary
    current_bid: float
    next_min_bid: float


class AuctionStartedEvent(BaseModel):
    type: Literal["auction_started"] = "auction_started"
    auction_id: str
    start_time: datetime
    end_time: datetime


class AuctionEndedEvent(BaseModel):
    type: Literal["auction_ended"] = "auction_ended"
    auction_id: str
    end_time: datetime
    winning_bid: Optional[WinningBidSummary] = None
    reserve_met: bool


class AuctionExtendedEvent(BaseModel):
    type: Literal["auction_extended"] = "auction_extended"
    auction_id: str
    new_end_time: datetime
    reason: str


AuctionEvent = Union[
    BidPlacedEvent,
    AuctionStartedEvent,
    AuctionEndedEvent,
    AuctionExtendedEvent,
]


@runtime_checkable
class Publisher(Protocol):
    def publish(self, topic: str, event: AuctionEvent) -> None:
        ...


class NullPublisher:
    def publish(self, topic: str, event: AuctionEvent) -> None:
        logger.debug(f"Dropping {event.type} for {topic}: no publisher configured")


def safe_publish(publisher: Publisher, topic: str, event: AuctionEvent) -> None:
    try:
        publisher.publish(topic, event)
    except Exception as e:
        logger.warning(f"Failed to publish {event.type} to {topic}: {e}")


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def bid_placed(auction_id: str, bid: BidData, current_bid: float, next_min_bid: float) -> BidPlacedEvent:
    return BidPlacedEvent(
        auction_id=auction_id,
        bid=BidSummary(
            id=bid.id,
            bidder_id=bid.bidder_id,
            amount=bid.amount,
            is_auto_bid=bid.is_auto_bid,
            created_at=bid.created_at,
        ),
        current_bid=current_bid,
        next_min_bid=next_min_bid,
    )


def auction_started(auction_id: str, data: AuctionData) -> AuctionStartedEvent:
    return AuctionStartedEvent(
        auction_id=auction_id,
        start_time=data.actual_start_time or data.start_time,
        end_time=data.end_time,
    )


def auction_ended(auction_id: str, data: AuctionData) -> AuctionEndedEvent:
    winning = None
    if data.winning_bid_id:
        winning = WinningBidSummary(
            id=data.winning_bid_id,
            bidder_id=data.winning_bidder_id,
            amount=data.winning_bid_amount,
        )
    return AuctionEndedEvent(
        auction_id=auction_id,
        end_time=data.actual_end_time,
        winning_bid=winning,
        reserve_met=data.reserve_met,
    )


def auction_extended(auction_id: str, data: AuctionData, reason: str) -> AuctionExtendedEvent:
    return AuctionExtendedEvent(
        auction_id=auction_id,
        new_end_time=data.end_time,
        reason=reason,
    )
