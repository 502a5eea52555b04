from typing import Optional

from couchbase.exceptions import CouchbaseException

from farmbid.auctions.errors import InfrastructureError
from farmbid.models.entities.couchbase.users import User


async def user_get(user_id: str) -> Optional[User]:
    return await User.get(user_id)


class CouchbaseUserDirectory:

    async def get_user(self, user_id: str) -> Optional[User]:
        try:
            return await user_get(user_id)
        except CouchbaseException as e:
            raise InfrastructureError(f"Failed to load user {user_id}: {e}") from e
