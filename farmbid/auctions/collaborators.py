"""
Contracts the auction engine consumes from the rest of the marketplace.

Users, listings and escrow holds are owned by other subsystems. The engine
only reads them, and for escrow it can ask for a hold to be released or
refunded once an auction settles. Couchbase-backed implementations live in
``farmbid.models.operations``; in-memory ones in ``farmbid.auctions.memory``.
"""

from typing import List, Optional, Protocol, runtime_checkable

from farmbid.models.entities.couchbase.auctions import Auction, AuctionData, BidData
from farmbid.models.entities.couchbase.escrow_holds import EscrowHold
from farmbid.models.entities.couchbase.listings import Listing
from farmbid.models.entities.couchbase.users import User, UserData


@runtime_checkable
class AuctionStore(Protocol):
    """Versioned persistence for auction documents.

    ``replace`` must be compare-and-swap on ``auction.cas`` and raise
    ``ConcurrentUpdateError`` when the stored version moved on.
    """

    async def get(self, auction_id: str) -> Optional[Auction]:
        ...

    async def insert(self, data: AuctionData, user_id: Optional[str] = None) -> Auction:
        ...

    async def replace(self, auction: Auction) -> Auction:
        ...

    async def search(
        self,
        status: Optional[str] = None,
        farmer_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Auction]:
        ...

    async def count(self, status: Optional[str] = None, farmer_id: Optional[str] = None) -> int:
        ...

    async def find_by_listing(self, listing_id: str, status: str) -> List[Auction]:
        ...

    async def bids_by_bidder(self, bidder_id: str, limit: int = 100) -> List[BidData]:
        ...


@runtime_checkable
class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> Optional[User]:
        ...


@runtime_checkable
class ListingCatalog(Protocol):
    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        ...


@runtime_checkable
class EscrowLedger(Protocol):
    async def find_active_hold(self, buyer_id: str, listing_id: str) -> Optional[EscrowHold]:
        ...

    async def release_hold(self, hold_id: str, reason: str) -> None:
        ...

    async def refund_hold(self, hold_id: str, reason: str) -> None:
        ...


def is_farmer(user: UserData) -> bool:
    return user.role == "farmer"


def can_participate_in_auctions(user: UserData) -> bool:
    return user.status == "active" and user.kyc_status == "verified"
