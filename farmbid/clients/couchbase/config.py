import os
import asyncio
from datetime import timedelta
from typing import List, Optional
from couchbase.auth import PasswordAuthenticator
from couchbase.exceptions import CouchbaseException
from acouchbase.cluster import Cluster as AsyncCluster
from couchbase.options import ClusterOptions

from farmbid.utils import log

logger = log.get_logger(__name__)

USERNAME = os.environ.get('COUCHBASE_USERNAME', '')
PASSWORD = os.environ.get('COUCHBASE_PASSWORD', '')
DEFAULT_BUCKET_NAME = os.environ.get('COUCHBASE_BUCKET', 'farmbid')
HOST = os.environ.get('COUCHBASE_HOST', '')
PROTOCOL = os.environ.get('COUCHBASE_PROTOCOL', 'couchbase')

VALID_PROTOCOLS = ('couchbase', 'couchbases')


def validation_errors() -> List[str]:
    """Collect configuration problems without raising.

    Validation is deferred until a connection is requested so that the
    entity modules stay importable when the service runs on the in-memory
    store.
    """
    errors = []
    if not USERNAME:
        errors.append("COUCHBASE_USERNAME is missing or empty")
    if not PASSWORD:
        errors.append("COUCHBASE_PASSWORD is missing or empty")
    if not HOST:
        errors.append("COUCHBASE_HOST is missing or empty")
    if not DEFAULT_BUCKET_NAME:
        errors.append("COUCHBASE_BUCKET is missing or empty")
    if PROTOCOL not in VALID_PROTOCOLS:
        errors.append(f"COUCHBASE_PROTOCOL '{PROTOCOL}' is invalid. Must be one of {VALID_PROTOCOLS}")
    return errors


def auth() -> PasswordAuthenticator:
    errors = validation_errors()
    if errors:
        raise ValueError("Invalid Couchbase Configuration:\n" + "\n".join(errors))
    return PasswordAuthenticator(USERNAME, PASSWORD)


_cluster: Optional[AsyncCluster] = None
_connect_lock = asyncio.Lock()


async def _connect(max_retries: int, initial_delay: float, max_delay: float) -> AsyncCluster:
    url = f"{PROTOCOL}://{HOST}"
    authenticator = auth()
    delay = initial_delay
    for attempt in range(1, max_retries + 1):
        try:
            cluster = await AsyncCluster.connect(url, ClusterOptions(authenticator))
            await cluster.wait_until_ready(timedelta(seconds=50))
            return cluster
        except CouchbaseException as e:
            if attempt == max_retries:
                raise
            logger.warning(f"Couchbase at {url} not ready (attempt {attempt}/{max_retries}): {e}")
            await asyncio.sleep(delay)
            delay = min(delay * 2, max_delay)
    raise ValueError(f"max_retries must be at least 1, got {max_retries}")


async def get_cluster(max_retries: int = 10, initial_delay: float = 1.0, max_delay: float = 30.0) -> AsyncCluster:
    """Shared cluster connection, opened on first use with exponential backoff."""
    global _cluster
    if _cluster is None:
        async with _connect_lock:
            if _cluster is None:
                _cluster = await _connect(max_retries, initial_delay, max_delay)
    return _cluster


async def check_connection() -> None:
    cluster = await get_cluster()
    await cluster.ping()
