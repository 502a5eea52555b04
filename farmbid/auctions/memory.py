"""
In-memory implementations of the engine's collaborators.

Used by the test suite and by ``STORAGE_BACKEND=memory`` for local runs.
The auction store keeps serialized documents and a CAS counter per key, so
it enforces the same compare-and-swap contract as Couchbase.
"""

import itertools
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from farmbid.models.entities.couchbase.auctions import Auction, AuctionData, BidData
from farmbid.models.entities.couchbase.escrow_holds import EscrowHold, EscrowHoldData
from farmbid.models.entities.couchbase.listings import Listing, ListingData
from farmbid.models.entities.couchbase.users import User, UserData

from .errors import ConcurrentUpdateError, NotFoundError
from .events import AuctionEvent


class InMemoryAuctionStore:

    def __init__(self):
        self._docs: Dict[str, Tuple[dict, int]] = {}
        self._cas = itertools.count(1)

    def _load(self, auction_id: str) -> Auction:
        doc, cas = self._docs[auction_id]
        return Auction(id=auction_id, data=AuctionData.model_validate(doc), cas=cas)

    async def get(self, auction_id: str) -> Optional[Auction]:
        if auction_id not in self._docs:
            return None
        return self._load(auction_id)

    async def insert(self, data: AuctionData, user_id: Optional[str] = None) -> Auction:
        key = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        if data.created_at is None:
            data.created_at = now
        data.updated_at = now
        if user_id:
            data.created_by_user_id = user_id
        self._docs[key] = (data.model_dump(mode="json"), next(self._cas))
        return self._load(key)

    async def replace(self, auction: Auction) -> Auction:
        if auction.id not in self._docs:
            raise NotFoundError(f"Auction {auction.id} not found")
        _, stored_cas = self._docs[auction.id]
        if auction.cas != stored_cas:
            raise ConcurrentUpdateError(f"Auction {auction.id} was modified concurrently")
        auction.data.updated_at = datetime.now(timezone.utc)
        self._docs[auction.id] = (auction.data.model_dump(mode="json"), next(self._cas))
        return self._load(auction.id)

    def _all(self) -> List[Auction]:
        return [self._load(key) for key in self._docs]

    def _filtered(self, status: Optional[str], farmer_id: Optional[str]) -> List[Auction]:
        auctions = [
            a for a in self._all()
            if (status is None or a.data.status == status)
            and (farmer_id is None or a.data.farmer_id == farmer_id)
        ]
        return sorted(auctions, key=lambda a: a.data.created_at, reverse=True)

    async def search(
        self,
        status: Optional[str] = None,
        farmer_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Auction]:
        return self._filtered(status, farmer_id)[offset:offset + limit]

    async def count(self, status: Optional[str] = None, farmer_id: Optional[str] = None) -> int:
        return len(self._filtered(status, farmer_id))

    async def find_by_listing(self, listing_id: str, status: str) -> List[Auction]:
        return [
            a for a in self._all()
            if a.data.listing_id == listing_id and a.data.status == status
        ]

    async def bids_by_bidder(self, bidder_id: str, limit: int = 100) -> List[BidData]:
        bids = [
            bid
            for auction in self._all()
            for bid in auction.data.bids
            if bid.bidder_id == bidder_id
        ]
        bids.sort(key=lambda b: b.created_at, reverse=True)
        return bids[:limit]

    def bump(self, auction_id: str, **changes) -> None:
        """Write to a stored document behind the engine's back, as another process would."""
        doc, _ = self._docs[auction_id]
        doc = dict(doc, **changes)
        self._docs[auction_id] = (doc, next(self._cas))


class InMemoryUserDirectory:

    def __init__(self):
        self.users: Dict[str, User] = {}

    def add(self, user_id: str, **fields) -> User:
        user = User(id=user_id, data=UserData(**fields))
        self.users[user_id] = user
        return user

    async def get_user(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)


class InMemoryListingCatalog:

    def __init__(self):
        self.listings: Dict[str, Listing] = {}

    def add(self, listing_id: str, **fields) -> Listing:
        listing = Listing(id=listing_id, data=ListingData(**fields))
        self.listings[listing_id] = listing
        return listing

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        return self.listings.get(listing_id)


class InMemoryEscrowLedger:

    def __init__(self):
        self.holds: Dict[str, EscrowHold] = {}
        self.instructions: List[Tuple[str, str, str]] = []  # (action, hold_id, reason)

    def add(self, hold_id: str, **fields) -> EscrowHold:
        fields.setdefault("total_amount", fields.get("amount", 0.0) * 10)
        hold = EscrowHold(id=hold_id, data=EscrowHoldData(**fields))
        self.holds[hold_id] = hold
        return hold

    async def find_active_hold(self, buyer_id: str, listing_id: str) -> Optional[EscrowHold]:
        held = [
            h for h in self.holds.values()
            if h.data.buyer_id == buyer_id
            and h.data.listing_id == listing_id
            and h.data.status == "held"
        ]
        if not held:
            return None
        return max(held, key=lambda h: h.data.amount)

    async def release_hold(self, hold_id: str, reason: str) -> None:
        hold = self.holds[hold_id]
        hold.data.status = "released"
        hold.data.reason = reason
        hold.data.released_at = datetime.now(timezone.utc)
        self.instructions.append(("release", hold_id, reason))

    async def refund_hold(self, hold_id: str, reason: str) -> None:
        hold = self.holds[hold_id]
        hold.data.status = "refunded"
        hold.data.reason = reason
        hold.data.refunded_at = datetime.now(timezone.utc)
        self.instructions.append(("refund", hold_id, reason))


class RecordingPublisher:

    def __init__(self):
        self.published: List[Tuple[str, AuctionEvent]] = []

    def publish(self, topic: str, event: AuctionEvent) -> None:
        self.published.append((topic, event))

    def of_type(self, event_type: str) -> List[AuctionEvent]:
        return [event for _, event in self.published if event.type == event_type]
