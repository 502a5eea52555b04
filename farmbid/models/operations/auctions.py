"""
Couchbase persistence for auctions.

Bids live inside the auction document, so one CAS-guarded replace commits
a bid together with everything it changed. Couchbase exceptions are
translated into the engine's error taxonomy here:
- ``CASMismatchException`` → ``ConcurrentUpdateError`` (the service retries)
- ``DocumentNotFoundException`` on replace → ``NotFoundError``
- any other ``CouchbaseException`` → ``InfrastructureError``
"""

import logging
from typing import Any, Dict, List, Optional

from couchbase.exceptions import CASMismatchException, CouchbaseException, DocumentNotFoundException

from farmbid.auctions.errors import ConcurrentUpdateError, InfrastructureError, NotFoundError
from farmbid.models.entities.couchbase.auctions import Auction, AuctionData, BidData

logger = logging.getLogger(__name__)


def _where(status: Optional[str], farmer_id: Optional[str]) -> tuple[str, Dict[str, Any]]:
    conditions = []
    params: Dict[str, Any] = {}
    if status:
        conditions.append("status = $status")
        params["status"] = status
    if farmer_id:
        conditions.append("farmer_id = $farmer_id")
        params["farmer_id"] = farmer_id
    return " AND ".join(conditions) or "1=1", params


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def auction_get(auction_id: str) -> Optional[Auction]:
    try:
        return await Auction.get(auction_id)
    except CouchbaseException as e:
        raise InfrastructureError(f"Failed to load auction {auction_id}: {e}") from e


async def auction_insert(data: AuctionData, user_id: Optional[str] = None) -> Auction:
    try:
        return await Auction.create(data, user_id=user_id)
    except CouchbaseException as e:
        raise InfrastructureError(f"Failed to create auction: {e}") from e


async def auction_replace(auction: Auction) -> Auction:
    """CAS-guarded replace of the whole auction document."""
    try:
        return await Auction.update(auction)
    except CASMismatchException as e:
        raise ConcurrentUpdateError(f"Auction {auction.id} was modified concurrently") from e
    except DocumentNotFoundException as e:
        raise NotFoundError(f"Auction {auction.id} not found") from e
    except CouchbaseException as e:
        raise InfrastructureError(f"Failed to write auction {auction.id}: {e}") from e


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def auction_search(
    status: Optional[str] = None,
    farmer_id: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Auction]:
    keyspace = Auction.get_keyspace()
    where, params = _where(status, farmer_id)
    try:
        rows = await keyspace.query(
            f"SELECT META().id, * FROM {keyspace} WHERE {where} "
            f"ORDER BY created_at DESC LIMIT $limit OFFSET $offset",
            limit=limit,
            offset=offset,
            **params,
        )
    except CouchbaseException as e:
        raise InfrastructureError(f"Auction search failed: {e}") from e
    return [a for a in (Auction.from_row(row) for row in rows) if a is not None]


async def auction_count(status: Optional[str] = None, farmer_id: Optional[str] = None) -> int:
    where, params = _where(status, farmer_id)
    try:
        return await Auction.get_keyspace().count(where, **params)
    except CouchbaseException as e:
        raise InfrastructureError(f"Auction count failed: {e}") from e


async def auction_find_by_listing(listing_id: str, status: str) -> List[Auction]:
    keyspace = Auction.get_keyspace()
    try:
        rows = await keyspace.query(
            f"SELECT META().id, * FROM {keyspace} "
            f"WHERE listing_id = $listing_id AND status = $status",
            listing_id=listing_id,
            status=status,
        )
    except CouchbaseException as e:
        raise InfrastructureError(f"Auction lookup by listing failed: {e}") from e
    return [a for a in (Auction.from_row(row) for row in rows) if a is not None]


async def auction_bids_by_bidder(bidder_id: str, limit: int = 100) -> List[BidData]:
    """A bidder's bids across all auctions, newest first."""
    keyspace = Auction.get_keyspace()
    try:
        rows = await keyspace.query(
            f"SELECT RAW b FROM {keyspace} AS a UNNEST a.bids AS b "
            f"WHERE b.bidder_id = $bidder_id "
            f"ORDER BY b.created_at DESC LIMIT $limit",
            bidder_id=bidder_id,
            limit=limit,
        )
    except CouchbaseException as e:
        raise InfrastructureError(f"Bid lookup for bidder {bidder_id} failed: {e}") from e
    return [BidData.model_validate(row) for row in rows]


class CouchbaseAuctionStore:
    """``AuctionStore`` backed by the ``auctions`` collection."""

    async def get(self, auction_id: str) -> Optional[Auction]:
        return await auction_get(auction_id)

    async def insert(self, data: AuctionData, user_id: Optional[str] = None) -> Auction:
        return await auction_insert(data, user_id=user_id)

    async def replace(self, auction: Auction) -> Auction:
        return await auction_replace(auction)

    async def search(
        self,
        status: Optional[str] = None,
        farmer_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Auction]:
        return await auction_search(status=status, farmer_id=farmer_id, limit=limit, offset=offset)

    async def count(self, status: Optional[str] = None, farmer_id: Optional[str] = None) -> int:
        return await auction_count(status=status, farmer_id=farmer_id)

    async def find_by_listing(self, listing_id: str, status: str) -> List[Auction]:
        return await auction_find_by_listing(listing_id, status)

    async def bids_by_bidder(self, bidder_id: str, limit: int = 100) -> List[BidData]:
        return await auction_bids_by_bidder(bidder_id, limit=limit)
