import uuid
from datetime import datetime, timezone
from typing import ClassVar, Generic, Optional, TypeVar

from pydantic import BaseModel

from .keyspace import Keyspace, get_keyspace


class BaseCouchbaseEntityData(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None


DataT = TypeVar("DataT", bound=BaseCouchbaseEntityData)
T = TypeVar("T", bound="BaseModelCouchbase")


class BaseModelCouchbase(BaseModel, Generic[DataT]):
    """A document: its key, its typed body and the CAS it was read at.

    Subclasses set ``_collection_name``; the body is stored as JSON.
    """
    id: str
    data: DataT
    cas: Optional[int] = None

    _collection_name: ClassVar[str] = ""

    @classmethod
    def get_keyspace(cls) -> Keyspace:
        if not cls._collection_name:
            raise ValueError(f"_collection_name not set for {cls.__name__}")
        return get_keyspace(cls._collection_name)

    @classmethod
    def from_row(cls: type[T], row: dict) -> Optional[T]:
        """Build from a ``SELECT META().id, *`` row. Rows carry no CAS."""
        body = row.get(cls._collection_name)
        if not body:
            return None
        return cls(id=row["id"], data=body)

    @classmethod
    async def get(cls: type[T], id: str) -> Optional[T]:
        found = await cls.get_keyspace().fetch(id)
        if found is None:
            return None
        body, cas = found
        return cls(id=id, data=body, cas=cas)

    @classmethod
    async def create(cls: type[T], data: DataT, key: Optional[str] = None, user_id: Optional[str] = None) -> T:
        key = key or str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        data.created_at = data.created_at or now
        data.updated_at = now
        if user_id:
            data.created_by_user_id = user_id

        cas = await cls.get_keyspace().insert(key, data.model_dump(mode="json"))
        return cls(id=key, data=data, cas=cas)

    @classmethod
    async def update(cls: type[T], item: T) -> T:
        """Write ``item`` back, guarded by ``item.cas`` when it has one."""
        item.data.updated_at = datetime.now(timezone.utc)
        item.cas = await cls.get_keyspace().replace(item.id, item.data.model_dump(mode="json"), cas=item.cas)
        return item
