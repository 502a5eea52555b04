from typing import List, Optional, Literal
from datetime import datetime
from pydantic import BaseModel, Field
from farmbid.clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


AuctionType = Literal["english", "dutch", "sealed"]

AuctionStatus = Literal[
    "scheduled",
    "live",
    "paused",
    "ended",
    "cancelled",
    "completed",
]

BidStatus = Literal["active", "outbid", "withdrawn", "winning", "expired"]


class BidData(BaseModel):
    """One accepted bid. Bids live inside their auction document so that a
    bid, the cascade it triggers and the auction counters commit in a single
    CAS write."""
    id: str
    auction_id: str
    bidder_id: str
    amount: float
    status: BidStatus = "active"
    is_auto_bid: bool = False
    max_auto_bid_amount: Optional[float] = None
    sequence: int  # insertion order == bid order
    created_at: datetime


class AuctionData(BaseCouchbaseEntityData):
    # Ownership (immutable after creation)
    listing_id: str
    farmer_id: str

    type: AuctionType = "english"
    status: AuctionStatus = "scheduled"

    # Schedule
    start_time: datetime
    end_time: datetime  # may be extended by anti-sniping
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    paused_at: Optional[datetime] = None

    # Pricing
    starting_bid: float
    reserve_price: Optional[float] = None
    current_bid: Optional[float] = None
    min_bid_increment: float = 1.0
    anti_sniping_buffer: int = 30  # seconds
    reserve_met: bool = False

    # Denormalized winner (updated atomically with the bid ledger)
    winning_bid_id: Optional[str] = None
    winning_bidder_id: Optional[str] = None
    winning_bid_amount: Optional[float] = None

    total_bids: int = 0
    unique_bidders: int = 0

    # Anti-sniping bookkeeping
    extensions_count: int = 0
    extended_for_bid_id: Optional[str] = None

    bids: List[BidData] = Field(default_factory=list)


class Auction(BaseModelCouchbase[AuctionData]):
    _collection_name = "auctions"
