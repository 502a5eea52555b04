"""
Demo data for ``STORAGE_BACKEND=memory``.

Gives a freshly started dev server something to auction:
- 1 admin, 1 farmer, 3 verified buyers
- 1 active listing owned by the farmer
- an escrow deposit per buyer large enough for bids up to 100

With ``AUTH_ENABLED=false`` the bearer token is the user id, so
``Authorization: Bearer buyer-1`` bids as the first buyer.
"""

from datetime import datetime, timezone

from farmbid.auctions.memory import InMemoryEscrowLedger, InMemoryListingCatalog, InMemoryUserDirectory
from farmbid.utils import log

logger = log.get_logger(__name__)

FARMER_ID = "farmer-1"
ADMIN_ID = "admin-1"
BUYER_IDS = ["buyer-1", "buyer-2", "buyer-3"]
LISTING_ID = "listing-tomatoes"

LISTING = {
    "farmer_id": FARMER_ID,
    "title": "Heirloom tomatoes",
    "description": "Mixed heirloom varieties, harvested this week",
    "category": "vegetables",
    "quantity": 10.0,
    "unit": "kg",
    "price_per_unit": 2.0,
    "status": "active",
}


def seed_memory(
    users: InMemoryUserDirectory,
    listings: InMemoryListingCatalog,
    escrow: InMemoryEscrowLedger,
    deposit_percentage: float = 10.0,
) -> None:
    users.add(ADMIN_ID, email="admin@farmbid.dev", role="admin", status="active", kyc_status="verified")
    users.add(FARMER_ID, email="farmer@farmbid.dev", role="farmer", status="active", kyc_status="verified")
    for buyer_id in BUYER_IDS:
        users.add(buyer_id, email=f"{buyer_id}@farmbid.dev", role="buyer", status="active", kyc_status="verified")

    listings.add(LISTING_ID, **LISTING)

    total = 100 * LISTING["quantity"] * LISTING["price_per_unit"]
    now = datetime.now(timezone.utc)
    for buyer_id in BUYER_IDS:
        escrow.add(
            f"hold-{buyer_id}",
            buyer_id=buyer_id,
            listing_id=LISTING_ID,
            status="held",
            amount=total * deposit_percentage / 100,
            total_amount=total,
            held_at=now,
        )

    logger.info(
        f"Seeded in-memory store: {len(users.users)} users, "
        f"{len(listings.listings)} listing(s), {len(escrow.holds)} escrow hold(s)"
    )
