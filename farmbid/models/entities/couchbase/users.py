from typing import Optional, Literal
from farmbid.clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class UserData(BaseCouchbaseEntityData):
    phone: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: Literal["farmer", "buyer", "admin"] = "buyer"
    status: Literal["active", "inactive", "suspended", "pending_verification"] = "pending_verification"
    kyc_status: Literal["pending", "verified", "rejected"] = "pending"


class User(BaseModelCouchbase[UserData]):
    _collection_name = "users"
