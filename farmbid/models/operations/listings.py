from typing import Optional

from couchbase.exceptions import CouchbaseException

from farmbid.auctions.errors import InfrastructureError
from farmbid.models.entities.couchbase.listings import Listing


async def listing_get(listing_id: str) -> Optional[Listing]:
    return await Listing.get(listing_id)


class CouchbaseListingCatalog:

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        try:
            return await listing_get(listing_id)
        except CouchbaseException as e:
            raise InfrastructureError(f"Failed to load listing {listing_id}: {e}") from e
