"""
Anti-sniping: push the close out when a bid lands inside the closing window.

A committed placement (a bid plus the auto-bid cascade it triggered) that
leaves ``time_remaining <= anti_sniping_buffer`` moves ``end_time`` out by
exactly ``anti_sniping_buffer``. ``max_extensions`` caps how often that can
happen per auction; ``None`` means no cap.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from farmbid.models.entities.couchbase.auctions import AuctionData

from . import rules

logger = logging.getLogger(__name__)

EXTENSION_REASON = "Anti-sniping protection activated"


class AntiSnipingGuard:

    def __init__(self, max_extensions: Optional[int] = None):
        self.max_extensions = max_extensions

    def in_window(self, data: AuctionData, now: datetime) -> bool:
        buffer = data.anti_sniping_buffer
        return buffer > 0 and rules.time_remaining(data, now) <= buffer

    def apply(self, auction_id: str, data: AuctionData, now: datetime) -> bool:
        """Extend ``data`` after a placement committed at ``now``. Returns True if extended."""
        if not rules.is_live(data) or data.winning_bid_id is None:
            return False
        if not self.in_window(data, now):
            return False
        if self.max_extensions is not None and data.extensions_count >= self.max_extensions:
            logger.info(
                f"Auction {auction_id} reached the extension cap ({self.max_extensions}); not extending"
            )
            return False

        data.end_time = data.end_time + timedelta(seconds=data.anti_sniping_buffer)
        data.extensions_count += 1
        data.extended_for_bid_id = data.winning_bid_id
        return True

    def reconcile(self, auction_id: str, data: AuctionData, now: datetime) -> bool:
        """Scheduler-side check.

        Extends only when the current winning bid was placed inside the
        closing window and has not produced an extension yet. An auction that
        merely approaches its deadline without late bids is left alone.
        """
        winning = rules.current_winning_bid(data)
        if winning is None or data.extended_for_bid_id == winning.id:
            return False
        landed_in_window = (data.end_time - winning.created_at).total_seconds() <= data.anti_sniping_buffer
        if not landed_in_window:
            return False
        return self.apply(auction_id, data, now)
