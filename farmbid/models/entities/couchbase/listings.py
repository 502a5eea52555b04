from typing import Optional, Literal
from farmbid.clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class ListingData(BaseCouchbaseEntityData):
    farmer_id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    quantity: float
    unit: str = "kg"
    price_per_unit: float
    status: Literal["draft", "active", "sold", "archived"] = "active"


class Listing(BaseModelCouchbase[ListingData]):
    _collection_name = "listings"
