"""
Escrow holds as seen from the auction engine.

Deposits are taken by the payments side; here we only look up the hold
that backs a bidder's participation and flip it to ``released`` or
``refunded`` when an auction settles. Moving money is not our concern.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from couchbase.exceptions import CASMismatchException, CouchbaseException

from farmbid.auctions.errors import InfrastructureError
from farmbid.models.entities.couchbase.escrow_holds import EscrowHold, EscrowStatus

logger = logging.getLogger(__name__)


async def escrow_hold_find_active(buyer_id: str, listing_id: str) -> Optional[EscrowHold]:
    """The largest ``held`` deposit of ``buyer_id`` against ``listing_id``."""
    keyspace = EscrowHold.get_keyspace()
    rows = await keyspace.query(
        f"SELECT META().id, * FROM {keyspace} "
        f"WHERE buyer_id = $buyer_id AND listing_id = $listing_id AND status = 'held' "
        f"ORDER BY amount DESC LIMIT 1",
        buyer_id=buyer_id,
        listing_id=listing_id,
    )
    for row in rows:
        hold = EscrowHold.from_row(row)
        if hold:
            return hold
    return None


async def _escrow_hold_settle(
    hold_id: str,
    status: EscrowStatus,
    reason: str,
    max_retries: int = 5,
) -> bool:
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        hold = await EscrowHold.get(hold_id)
        if not hold:
            logger.warning(f"Escrow hold {hold_id} not found, cannot mark {status}")
            return False
        if hold.data.status != "held":
            logger.info(f"Escrow hold {hold_id} is already {hold.data.status}")
            return False

        now = datetime.now(timezone.utc)
        hold.data.status = status
        hold.data.reason = reason
        if status == "released":
            hold.data.released_at = now
        else:
            hold.data.refunded_at = now

        try:
            await EscrowHold.update(hold)
            return True
        except CASMismatchException:
            if attempt == max_retries:
                raise
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2
    return False


async def escrow_hold_release(hold_id: str, reason: str) -> bool:
    return await _escrow_hold_settle(hold_id, "released", reason)


async def escrow_hold_refund(hold_id: str, reason: str) -> bool:
    return await _escrow_hold_settle(hold_id, "refunded", reason)


class CouchbaseEscrowLedger:

    async def find_active_hold(self, buyer_id: str, listing_id: str) -> Optional[EscrowHold]:
        try:
            return await escrow_hold_find_active(buyer_id, listing_id)
        except CouchbaseException as e:
            raise InfrastructureError(f"Escrow lookup failed: {e}") from e

    async def release_hold(self, hold_id: str, reason: str) -> None:
        await escrow_hold_release(hold_id, reason)

    async def refund_hold(self, hold_id: str, reason: str) -> None:
        await escrow_hold_refund(hold_id, reason)
