"""
Auto-bid (proxy) resolution.

A bidder's standing proxy is their latest auto-bid that is still ``active``
or ``outbid``; its ``max_auto_bid_amount`` is the ceiling. After a bid
raises the price, every proxy that is not the current winner and can still
afford ``current_bid + min_bid_increment`` counter-bids at exactly that
amount, through the same admission checks as a human bid.

Resolution runs in passes. Within a pass each proxy responds at most once,
in order of earliest registration. The cascade ends after a pass in which
nobody could bid. Every step strictly raises ``current_bid`` and ceilings
are finite, so it terminates; ``max_steps`` is a hard stop on top of that.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Set

from farmbid.models.entities.couchbase.auctions import AuctionData, BidData

from . import rules
from .errors import AuctionError
from .ledger import BidLedger

logger = logging.getLogger(__name__)

# Raises an AuctionError if ``bidder_id`` may not bid ``amount``.
AdmissionCheck = Callable[[str, float], Awaitable[None]]


@dataclass(frozen=True)
class Proxy:
    bidder_id: str
    ceiling: float
    registered_sequence: int


class AutoBidResolver:

    def __init__(self, max_steps: int = 500):
        self.max_steps = max_steps

    @staticmethod
    def standing_proxies(data: AuctionData) -> List[Proxy]:
        """Standing proxies ordered by when each bidder first registered one."""
        ceilings: Dict[str, float] = {}
        registered: Dict[str, int] = {}
        for bid in data.bids:
            if not bid.is_auto_bid or bid.max_auto_bid_amount is None:
                continue
            if bid.status not in ("active", "outbid"):
                continue
            registered.setdefault(bid.bidder_id, bid.sequence)
            ceilings[bid.bidder_id] = bid.max_auto_bid_amount
        proxies = [
            Proxy(bidder_id=bidder_id, ceiling=ceiling, registered_sequence=registered[bidder_id])
            for bidder_id, ceiling in ceilings.items()
        ]
        return sorted(proxies, key=lambda p: p.registered_sequence)

    @staticmethod
    def eligible(data: AuctionData) -> List[Proxy]:
        current = data.current_bid
        return [
            p for p in AutoBidResolver.standing_proxies(data)
            if p.bidder_id != data.winning_bidder_id
            and (current is None or p.ceiling > current)
        ]

    async def resolve(
        self,
        auction_id: str,
        data: AuctionData,
        now: datetime,
        admit: AdmissionCheck,
    ) -> List[BidData]:
        """Run the cascade on ``data`` in place and return the bids it placed."""
        placed: List[BidData] = []
        skipped: Set[str] = set()

        while True:
            progressed = False
            for proxy in self.eligible(data):
                if proxy.bidder_id in skipped or proxy.bidder_id == data.winning_bidder_id:
                    continue
                candidate = rules.next_min_bid(data)
                if candidate > proxy.ceiling:
                    continue
                if len(placed) >= self.max_steps:
                    logger.warning(
                        f"Auto-bid cascade on auction {auction_id} stopped after {len(placed)} steps"
                    )
                    return placed
                try:
                    await admit(proxy.bidder_id, candidate)
                except AuctionError as e:
                    logger.info(
                        f"Skipping auto-bid for {proxy.bidder_id} on auction {auction_id}: {e.message}"
                    )
                    skipped.add(proxy.bidder_id)
                    continue

                bid = BidLedger.record(
                    auction_id,
                    data,
                    proxy.bidder_id,
                    candidate,
                    now,
                    is_auto_bid=True,
                    max_auto_bid_amount=proxy.ceiling,
                )
                placed.append(bid)
                progressed = True

            if not progressed:
                return placed
