from .config import (
    DEFAULT_BUCKET_NAME,
    get_cluster,
    check_connection,
    validation_errors,
)
from .keyspace import (
    Keyspace,
    get_keyspace,
)
from .base_model import (
    BaseModelCouchbase,
    BaseCouchbaseEntityData,
)

from couchbase.exceptions import CASMismatchException, CouchbaseException, DocumentNotFoundException
