from typing import Optional, Literal
from datetime import datetime
from farmbid.clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


EscrowStatus = Literal["pending", "held", "released", "refunded", "disputed", "expired"]


class EscrowHoldData(BaseCouchbaseEntityData):
    buyer_id: str
    listing_id: str
    auction_id: Optional[str] = None
    type: Literal["auction_deposit", "transaction_deposit", "inspection_deposit"] = "auction_deposit"
    status: EscrowStatus = "pending"
    amount: float  # the deposit actually held
    total_amount: float  # transaction value the deposit was computed from
    payment_intent_id: Optional[str] = None
    reason: Optional[str] = None
    held_at: Optional[datetime] = None
    released_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None


class EscrowHold(BaseModelCouchbase[EscrowHoldData]):
    _collection_name = "escrow_holds"
