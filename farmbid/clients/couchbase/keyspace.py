from dataclasses import dataclass
from typing import Any, Optional, Tuple

from couchbase.exceptions import DocumentNotFoundException
from couchbase.options import QueryOptions, ReplaceOptions

from .config import get_cluster, DEFAULT_BUCKET_NAME


@dataclass(frozen=True)
class Keyspace:
    """A ``bucket.scope.collection`` triple plus the document I/O the models need."""
    bucket_name: str
    scope_name: str
    collection_name: str

    def __str__(self) -> str:
        return f"`{self.bucket_name}`.`{self.scope_name}`.`{self.collection_name}`"

    async def get_collection(self):
        cluster = await get_cluster()
        return cluster.bucket(self.bucket_name).scope(self.scope_name).collection(self.collection_name)

    async def fetch(self, key: str) -> Optional[Tuple[dict, int]]:
        """Return ``(document, cas)`` or None when the key does not exist."""
        collection = await self.get_collection()
        try:
            result = await collection.get(key)
        except DocumentNotFoundException:
            return None
        return result.content_as[dict], result.cas

    async def insert(self, key: str, doc: dict) -> int:
        collection = await self.get_collection()
        result = await collection.insert(key, doc)
        return result.cas

    async def replace(self, key: str, doc: dict, cas: Optional[int] = None) -> int:
        """Replace ``key``; with ``cas`` set, raises ``CASMismatchException`` on a stale version."""
        collection = await self.get_collection()
        if cas:
            result = await collection.replace(key, doc, ReplaceOptions(cas=cas))
        else:
            result = await collection.replace(key, doc)
        return result.cas

    async def query(self, statement: str, **params: Any) -> list:
        """Run N1QL with ``${keyspace}`` substituted and ``$name`` named parameters."""
        cluster = await get_cluster()
        statement = statement.replace("${keyspace}", str(self))
        options = QueryOptions(named_parameters=params) if params else QueryOptions()
        return [row async for row in cluster.query(statement, options)]

    async def count(self, where: str = "TRUE", **params: Any) -> int:
        rows = await self.query(f"SELECT RAW COUNT(*) FROM {self} WHERE {where}", **params)
        return int(rows[0]) if rows else 0


def get_keyspace(collection_name: str, scope_name: str = "_default", bucket_name: str = DEFAULT_BUCKET_NAME) -> Keyspace:
    return Keyspace(bucket_name, scope_name, collection_name)
