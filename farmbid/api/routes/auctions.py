"""
API endpoints for auctions and bidding.

POST   /auctions                 — schedule an auction for a listing (farmer)
GET    /auctions                 — paginated list, optionally by status
GET    /auctions/user/bids       — caller's bids across auctions
GET    /auctions/user/auctions   — caller's own auctions (farmer)
GET    /auctions/{id}            — auction detail with bid history
POST   /auctions/{id}/bid        — place a bid
PUT    /auctions/{id}/start      — start a due scheduled auction (owner)
PUT    /auctions/{id}/end        — close bidding (owner)
PUT    /auctions/{id}/pause      — pause bidding (owner)
PUT    /auctions/{id}/resume     — resume bidding (owner)
PUT    /auctions/{id}/complete   — mark settled (admin)
DELETE /auctions/{id}            — cancel a scheduled auction (owner)
WS     /auctions/{id}/ws         — live events for one auction
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket
from pydantic import BaseModel

from farmbid.auctions import AuctionService, AuctionSpec, NotFoundError, auction_topic
from farmbid.auctions import rules
from farmbid.models.entities.couchbase.auctions import (
    Auction,
    AuctionStatus,
    AuctionType,
    BidData,
    BidStatus,
)
from farmbid.utils import log

from .dependencies import get_service, require_admin, require_authenticated, require_farmer

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auctions", tags=["auctions"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class CreateAuctionRequest(BaseModel):
    listing_id: str
    type: AuctionType = "english"
    start_time: datetime
    end_time: datetime
    starting_bid: float
    reserve_price: Optional[float] = None
    min_bid_increment: Optional[float] = None
    anti_sniping_buffer: Optional[int] = None


class PlaceBidRequest(BaseModel):
    amount: float
    is_auto_bid: bool = False
    max_auto_bid_amount: Optional[float] = None


class BidResponse(BaseModel):
    id: str
    auction_id: str
    bidder_id: str
    amount: float
    status: BidStatus
    is_auto_bid: bool
    max_auto_bid_amount: Optional[float] = None
    created_at: datetime


class AuctionResponse(BaseModel):
    id: str
    listing_id: str
    farmer_id: str
    type: AuctionType
    status: AuctionStatus
    start_time: datetime
    end_time: datetime
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    starting_bid: float
    reserve_price: Optional[float] = None
    current_bid: Optional[float] = None
    min_bid_increment: float
    next_min_bid: float
    anti_sniping_buffer: int
    reserve_met: bool
    winning_bid_id: Optional[str] = None
    winning_bidder_id: Optional[str] = None
    winning_bid_amount: Optional[float] = None
    total_bids: int
    unique_bidders: int
    extensions_count: int
    time_remaining: int
    created_at: Optional[datetime] = None
    bids: List[BidResponse] = []


class AuctionPage(BaseModel):
    items: List[AuctionResponse]
    page: int
    limit: int
    total: int


def _bid_to_response(bid: BidData) -> BidResponse:
    return BidResponse(
        id=bid.id,
        auction_id=bid.auction_id,
        bidder_id=bid.bidder_id,
        amount=bid.amount,
        status=bid.status,
        is_auto_bid=bid.is_auto_bid,
        max_auto_bid_amount=bid.max_auto_bid_amount,
        created_at=bid.created_at,
    )


def _auction_to_response(auction: Auction, now: datetime, include_bids: bool = False) -> AuctionResponse:
    d = auction.data
    bids = []
    if include_bids:
        bids = [_bid_to_response(b) for b in sorted(d.bids, key=lambda b: b.sequence, reverse=True)]
    return AuctionResponse(
        id=auction.id,
        listing_id=d.listing_id,
        farmer_id=d.farmer_id,
        type=d.type,
        status=d.status,
        start_time=d.start_time,
        end_time=d.end_time,
        actual_start_time=d.actual_start_time,
        actual_end_time=d.actual_end_time,
        starting_bid=d.starting_bid,
        reserve_price=d.reserve_price,
        current_bid=d.current_bid,
        min_bid_increment=d.min_bid_increment,
        next_min_bid=rules.next_min_bid(d),
        anti_sniping_buffer=d.anti_sniping_buffer,
        reserve_met=rules.reserve_met(d) if d.status == "live" else d.reserve_met,
        winning_bid_id=d.winning_bid_id,
        winning_bidder_id=d.winning_bidder_id,
        winning_bid_amount=d.winning_bid_amount,
        total_bids=d.total_bids,
        unique_bidders=d.unique_bidders,
        extensions_count=d.extensions_count,
        time_remaining=rules.time_remaining(d, now),
        created_at=d.created_at,
        bids=bids,
    )


# ---------------------------------------------------------------------------
# POST /auctions — create auction
# ---------------------------------------------------------------------------

@router.post("", response_model=AuctionResponse, status_code=201)
async def route_auction_create(
    body: CreateAuctionRequest,
    user: dict = Depends(require_farmer),
    service: AuctionService = Depends(get_service),
):
    """Schedule an auction for one of the caller's listings."""
    auction = await service.create_auction(AuctionSpec(**body.model_dump()), user["sub"])
    return _auction_to_response(auction, service.clock(), include_bids=True)


# ---------------------------------------------------------------------------
# GET /auctions — list
# ---------------------------------------------------------------------------

@router.get("", response_model=AuctionPage)
async def route_auctions_list(
    status: Optional[AuctionStatus] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    service: AuctionService = Depends(get_service),
):
    auctions, total = await service.list_auctions(status=status, page=page, limit=limit)
    now = service.clock()
    return AuctionPage(
        items=[_auction_to_response(a, now) for a in auctions],
        page=page,
        limit=limit,
        total=total,
    )


# ---------------------------------------------------------------------------
# GET /auctions/user/... — caller's bids and auctions
# ---------------------------------------------------------------------------

@router.get("/user/bids", response_model=List[BidResponse])
async def route_user_bids(
    user: dict = Depends(require_authenticated),
    service: AuctionService = Depends(get_service),
):
    bids = await service.get_user_bids(user["sub"])
    return [_bid_to_response(b) for b in bids]


@router.get("/user/auctions", response_model=List[AuctionResponse])
async def route_user_auctions(
    user: dict = Depends(require_authenticated),
    service: AuctionService = Depends(get_service),
):
    auctions = await service.get_user_auctions(user["sub"])
    now = service.clock()
    return [_auction_to_response(a, now) for a in auctions]


# ---------------------------------------------------------------------------
# GET /auctions/{id} — auction detail
# ---------------------------------------------------------------------------

@router.get("/{auction_id}", response_model=AuctionResponse)
async def route_auction_detail(auction_id: str, service: AuctionService = Depends(get_service)):
    """Get a single auction with its bids, newest first."""
    auction = await service.get_auction(auction_id)
    return _auction_to_response(auction, service.clock(), include_bids=True)


# ---------------------------------------------------------------------------
# POST /auctions/{id}/bid — place a bid
# ---------------------------------------------------------------------------

@router.post("/{auction_id}/bid", response_model=BidResponse, status_code=201)
async def route_place_bid(
    auction_id: str,
    body: PlaceBidRequest,
    user: dict = Depends(require_authenticated),
    service: AuctionService = Depends(get_service),
):
    bid = await service.place_bid(
        auction_id,
        user["sub"],
        body.amount,
        is_auto_bid=body.is_auto_bid,
        max_auto_bid_amount=body.max_auto_bid_amount,
    )
    return _bid_to_response(bid)


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

@router.put("/{auction_id}/start", response_model=AuctionResponse)
async def route_auction_start(
    auction_id: str,
    user: dict = Depends(require_farmer),
    service: AuctionService = Depends(get_service),
):
    auction = await service.start_auction(auction_id, user["sub"])
    return _auction_to_response(auction, service.clock())


@router.put("/{auction_id}/end", response_model=AuctionResponse)
async def route_auction_end(
    auction_id: str,
    user: dict = Depends(require_farmer),
    service: AuctionService = Depends(get_service),
):
    auction = await service.end_auction(auction_id, user["sub"])
    return _auction_to_response(auction, service.clock(), include_bids=True)


@router.put("/{auction_id}/pause", response_model=AuctionResponse)
async def route_auction_pause(
    auction_id: str,
    user: dict = Depends(require_farmer),
    service: AuctionService = Depends(get_service),
):
    auction = await service.pause_auction(auction_id, user["sub"])
    return _auction_to_response(auction, service.clock())


@router.put("/{auction_id}/resume", response_model=AuctionResponse)
async def route_auction_resume(
    auction_id: str,
    user: dict = Depends(require_farmer),
    service: AuctionService = Depends(get_service),
):
    auction = await service.resume_auction(auction_id, user["sub"])
    return _auction_to_response(auction, service.clock())


@router.put("/{auction_id}/complete", response_model=AuctionResponse)
async def route_auction_complete(
    auction_id: str,
    user: dict = Depends(require_admin),
    service: AuctionService = Depends(get_service),
):
    """Mark an ended auction settled. Releases the winner's escrow deposit."""
    auction = await service.complete_auction(auction_id)
    return _auction_to_response(auction, service.clock())


@router.delete("/{auction_id}", response_model=AuctionResponse)
async def route_auction_cancel(
    auction_id: str,
    user: dict = Depends(require_farmer),
    service: AuctionService = Depends(get_service),
):
    """Cancel an auction that has not gone live yet."""
    auction = await service.cancel_auction(auction_id, user["sub"])
    return _auction_to_response(auction, service.clock())


# ---------------------------------------------------------------------------
# WS /auctions/{id}/ws — live events
# ---------------------------------------------------------------------------

@router.websocket("/{auction_id}/ws")
async def route_auction_ws(websocket: WebSocket, auction_id: str):
    service: AuctionService = websocket.app.state.auction_service
    try:
        await service.get_auction(auction_id)
    except NotFoundError:
        await websocket.close(code=4404)
        return
    await websocket.app.state.hub.serve(auction_topic(auction_id), websocket)
