"""
Auction service — every auction write goes through here.

Writes to one auction are serialized twice over:
- in-process by a per-auction ``asyncio.Lock``, so concurrent requests and
  scheduler ticks queue up instead of racing;
- across processes by CAS on the auction document. A lost race re-reads
  the document and re-runs the whole attempt, validation included, with
  exponential backoff (10 ms, 20 ms, 40 ms, …).

Bids are embedded in the auction document, so a bid, the auto-bid cascade
it sets off, the anti-sniping extension and the counters commit in one
write or not at all. Events are published and escrow instructions issued
only after that write succeeded.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from farmbid.models.entities.couchbase.auctions import Auction, AuctionData, BidData
from farmbid.models.entities.couchbase.listings import Listing

from . import events, rules
from .anti_sniping import EXTENSION_REASON, AntiSnipingGuard
from .auto_bid import AutoBidResolver
from .collaborators import (
    AuctionStore,
    EscrowLedger,
    ListingCatalog,
    UserDirectory,
    can_participate_in_auctions,
    is_farmer,
)
from .errors import (
    ConcurrentUpdateError,
    ConflictError,
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
)
from .ledger import BidLedger
from .state_machine import AuctionSpec, AuctionStateMachine

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuctionSettings(BaseModel):
    min_bid_increment: float = 1.0
    anti_sniping_buffer: int = 30
    escrow_deposit_percentage: float = 10.0
    max_extensions: Optional[int] = None
    bid_max_retries: int = 5
    max_cascade_steps: int = 500


class AuctionLocks:
    """Lazily created per-key locks, dropped once nobody holds or waits on them."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock


@dataclass
class _Effects:
    """Side effects of one attempt, applied only after it commits."""
    published: List[events.AuctionEvent] = field(default_factory=list)
    refund_buyers: List[str] = field(default_factory=list)
    release_buyers: List[str] = field(default_factory=list)
    escrow_reason: str = ""
    changed: bool = True


Mutator = Callable[[Auction, _Effects], Awaitable[Any]]


class AuctionService:

    def __init__(
        self,
        store: AuctionStore,
        users: UserDirectory,
        listings: ListingCatalog,
        escrow: EscrowLedger,
        publisher: Optional[events.Publisher] = None,
        settings: Optional[AuctionSettings] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.users = users
        self.listings = listings
        self.escrow = escrow
        self.publisher = publisher or events.NullPublisher()
        self.settings = settings or AuctionSettings()
        self.clock = clock
        self.locks = AuctionLocks()
        self.auto_bids = AutoBidResolver(max_steps=self.settings.max_cascade_steps)
        self.anti_sniping = AntiSnipingGuard(max_extensions=self.settings.max_extensions)

    # ---------------------------------------------------------------------------
    # Serialized read-modify-write
    # ---------------------------------------------------------------------------

    async def _load(self, auction_id: str) -> Auction:
        auction = await self.store.get(auction_id)
        if auction is None:
            raise NotFoundError("Auction not found")
        return auction

    async def _mutate(self, auction_id: str, mutator: Mutator) -> Tuple[Auction, Any]:
        """Run *mutator* on a fresh copy of the auction and CAS-commit it.

        *mutator* edits ``auction.data`` in place and records side effects
        on the ``_Effects`` it is given. Raising an ``AuctionError`` aborts
        without writing. On a CAS conflict or a store failure the attempt is
        retried from a fresh read up to ``bid_max_retries`` times.
        """
        max_retries = self.settings.bid_max_retries
        async with self.locks.get(auction_id):
            backoff_ms = 10
            for attempt in range(max_retries + 1):
                try:
                    auction = await self._load(auction_id)
                    effects = _Effects()
                    result = await mutator(auction, effects)
                    if not effects.changed:
                        return auction, result
                    committed = await self.store.replace(auction)
                except InfrastructureError as e:
                    if attempt == max_retries:
                        if isinstance(e, ConcurrentUpdateError):
                            raise ConflictError("Concurrent update conflict, please retry") from e
                        raise
                    logger.debug(
                        f"Retrying write to auction {auction_id} "
                        f"(attempt {attempt + 1}/{max_retries}): {e.message}"
                    )
                    await asyncio.sleep(backoff_ms / 1000)
                    backoff_ms *= 2
                    continue
                break

        await self._apply_effects(committed, effects)
        return committed, result

    async def _apply_effects(self, auction: Auction, effects: _Effects) -> None:
        topic = events.auction_topic(auction.id)
        for event in effects.published:
            events.safe_publish(self.publisher, topic, event)

        for action, buyers in (("refund", effects.refund_buyers), ("release", effects.release_buyers)):
            for buyer_id in buyers:
                try:
                    hold = await self.escrow.find_active_hold(buyer_id, auction.data.listing_id)
                    if hold is None:
                        continue
                    if action == "refund":
                        await self.escrow.refund_hold(hold.id, effects.escrow_reason)
                    else:
                        await self.escrow.release_hold(hold.id, effects.escrow_reason)
                except Exception as e:
                    logger.error(
                        f"Failed to {action} escrow hold for buyer {buyer_id} "
                        f"on auction {auction.id}: {e}",
                        exc_info=True,
                    )

    # ---------------------------------------------------------------------------
    # Creation
    # ---------------------------------------------------------------------------

    async def create_auction(self, spec: AuctionSpec, farmer_id: str) -> Auction:
        farmer = await self.users.get_user(farmer_id)
        if farmer is None or not is_farmer(farmer.data):
            raise ForbiddenError("Only farmers can create auctions")

        listing = await self.listings.get_listing(spec.listing_id)
        if listing is None:
            raise NotFoundError("Listing not found")
        if listing.data.farmer_id != farmer_id:
            raise ForbiddenError("Listing does not belong to you")

        data = AuctionStateMachine.build(
            spec,
            farmer_id,
            self.clock(),
            default_min_bid_increment=self.settings.min_bid_increment,
            default_anti_sniping_buffer=self.settings.anti_sniping_buffer,
        )

        async with self.locks.get(f"listing:{spec.listing_id}"):
            if await self.store.find_by_listing(spec.listing_id, "scheduled"):
                raise ConflictError("Listing already has a scheduled auction")
            auction = await self.store.insert(data, user_id=farmer_id)

        logger.info(
            f"Auction {auction.id} scheduled for listing {spec.listing_id}: "
            f"{data.start_time.isoformat()} → {data.end_time.isoformat()}"
        )
        return auction

    # ---------------------------------------------------------------------------
    # Lifecycle transitions
    # ---------------------------------------------------------------------------

    async def start_auction(self, auction_id: str, caller_id: Optional[str] = None, system: bool = False) -> Auction:
        """Take a scheduled auction live. ``system`` skips the ownership check (scheduler)."""

        async def _start(auction: Auction, effects: _Effects) -> None:
            if not system:
                AuctionStateMachine.require_owner(auction.data, caller_id)
            AuctionStateMachine.start(auction.data, self.clock())
            effects.published.append(events.auction_started(auction.id, auction.data))

        auction, _ = await self._mutate(auction_id, _start)
        logger.info(f"Auction {auction_id} is live until {auction.data.end_time.isoformat()}")
        return auction

    async def end_auction(self, auction_id: str, caller_id: Optional[str] = None, system: bool = False) -> Auction:
        """Close bidding. Bidders who did not win a sale get their escrow refunded."""

        async def _end(auction: Auction, effects: _Effects) -> bool:
            data = auction.data
            if system:
                # A late bid may have pushed end_time out since the caller looked
                if not rules.should_end(data, self.clock()):
                    effects.changed = False
                    return False
            else:
                AuctionStateMachine.require_owner(data, caller_id)
            AuctionStateMachine.end(data, self.clock())
            effects.published.append(events.auction_ended(auction.id, data))

            winner = data.winning_bidder_id if rules.has_sale(data) else None
            bidders = list(dict.fromkeys(b.bidder_id for b in data.bids))
            effects.refund_buyers = [b for b in bidders if b != winner]
            effects.escrow_reason = (
                f"Auction {auction.id} ended without a sale"
                if winner is None
                else f"Outbid in auction {auction.id}"
            )
            return True

        auction, ended = await self._mutate(auction_id, _end)
        d = auction.data
        if not ended:
            logger.info(f"Auction {auction_id} is no longer due (status={d.status}, end_time={d.end_time.isoformat()})")
            return auction
        logger.info(
            f"Auction {auction_id} ended: bids={d.total_bids}, "
            f"winner={d.winning_bidder_id}, amount={d.winning_bid_amount}, reserve_met={d.reserve_met}"
        )
        return auction

    async def cancel_auction(self, auction_id: str, caller_id: str) -> Auction:

        async def _cancel(auction: Auction, effects: _Effects) -> None:
            AuctionStateMachine.require_owner(auction.data, caller_id)
            AuctionStateMachine.cancel(auction.data)

        auction, _ = await self._mutate(auction_id, _cancel)
        logger.info(f"Auction {auction_id} cancelled by {caller_id}")
        return auction

    async def pause_auction(self, auction_id: str, caller_id: str) -> Auction:

        async def _pause(auction: Auction, effects: _Effects) -> None:
            AuctionStateMachine.require_owner(auction.data, caller_id)
            AuctionStateMachine.pause(auction.data, self.clock())

        auction, _ = await self._mutate(auction_id, _pause)
        return auction

    async def resume_auction(self, auction_id: str, caller_id: str) -> Auction:

        async def _resume(auction: Auction, effects: _Effects) -> None:
            AuctionStateMachine.require_owner(auction.data, caller_id)
            AuctionStateMachine.resume(auction.data, self.clock())

        auction, _ = await self._mutate(auction_id, _resume)
        return auction

    async def complete_auction(self, auction_id: str) -> Auction:
        """Mark an ended auction settled and release the winner's deposit."""

        async def _complete(auction: Auction, effects: _Effects) -> None:
            data = auction.data
            AuctionStateMachine.complete(data)
            if rules.has_sale(data):
                effects.release_buyers = [data.winning_bidder_id]
                effects.escrow_reason = f"Auction {auction.id} settled"

        auction, _ = await self._mutate(auction_id, _complete)
        logger.info(f"Auction {auction_id} completed")
        return auction

    # ---------------------------------------------------------------------------
    # Bidding
    # ---------------------------------------------------------------------------

    async def _listing_for(self, data: AuctionData) -> Listing:
        listing = await self.listings.get_listing(data.listing_id)
        if listing is None:
            raise NotFoundError("Listing not found")
        return listing

    def _admission(self, data: AuctionData, listing: Listing):
        """Build the admission check for one attempt against ``data``.

        User and escrow lookups are cached for the attempt, so a long proxy
        cascade asks each collaborator once per bidder.
        """
        bidders: Dict[str, Any] = {}
        holds: Dict[str, Any] = {}

        async def admit(bidder_id: str, amount: float) -> None:
            if bidder_id == data.farmer_id:
                raise ForbiddenError("Farmers cannot bid on their own auctions")

            if bidder_id not in bidders:
                bidders[bidder_id] = await self.users.get_user(bidder_id)
            bidder = bidders[bidder_id]
            if bidder is None or not can_participate_in_auctions(bidder.data):
                raise ForbiddenError("You cannot participate in this auction")

            BidLedger.check_amount(data, amount)

            required = rules.required_escrow(
                amount, listing.data, self.settings.escrow_deposit_percentage
            )
            if bidder_id not in holds:
                holds[bidder_id] = await self.escrow.find_active_hold(bidder_id, data.listing_id)
            hold = holds[bidder_id]
            if hold is None or hold.data.status != "held" or hold.data.amount < required:
                raise ValidationError(
                    f"Insufficient escrow deposit. Please deposit "
                    f"{self.settings.escrow_deposit_percentage:g}% before bidding."
                )

        return admit

    def _placement_events(self, auction_id: str, data: AuctionData, placed: List[BidData], extended: bool):
        result: List[events.AuctionEvent] = [
            events.bid_placed(
                auction_id,
                bid,
                current_bid=bid.amount,
                next_min_bid=rules.money(bid.amount + data.min_bid_increment),
            )
            for bid in placed
        ]
        if extended:
            result.append(events.auction_extended(auction_id, data, EXTENSION_REASON))
        return result

    async def place_bid(
        self,
        auction_id: str,
        bidder_id: str,
        amount: float,
        is_auto_bid: bool = False,
        max_auto_bid_amount: Optional[float] = None,
    ) -> BidData:
        """Admit and record a bid, then let standing proxies respond.

        Returns the caller's bid as committed (it may already be ``outbid``
        if an auto-bidder countered inside the same placement).
        """

        async def _place(auction: Auction, effects: _Effects) -> str:
            now = self.clock()
            data = auction.data
            BidLedger.check_open(data, now)
            listing = await self._listing_for(data)
            admit = self._admission(data, listing)

            await admit(bidder_id, amount)
            bid = BidLedger.record(
                auction.id, data, bidder_id, amount, now,
                is_auto_bid=is_auto_bid,
                max_auto_bid_amount=max_auto_bid_amount,
            )
            placed = [bid]
            placed.extend(await self.auto_bids.resolve(auction.id, data, now, admit))
            extended = self.anti_sniping.apply(auction.id, data, now)
            effects.published.extend(self._placement_events(auction.id, data, placed, extended))
            return bid.id

        auction, bid_id = await self._mutate(auction_id, _place)
        bid = rules.find_bid(auction.data, bid_id)
        logger.info(
            f"Bid {bid_id} accepted on auction {auction_id}: {bidder_id} @ {bid.amount}; "
            f"current={auction.data.current_bid}, winner={auction.data.winning_bidder_id}"
        )
        return bid

    async def sweep_auto_bids(self, auction_id: str) -> List[BidData]:
        """Let standing proxies respond without a fresh bid (scheduler)."""

        async def _sweep(auction: Auction, effects: _Effects) -> List[BidData]:
            now = self.clock()
            data = auction.data
            if data.status != "live" or rules.should_end(data, now) or not AutoBidResolver.eligible(data):
                effects.changed = False
                return []
            listing = await self._listing_for(data)
            placed = await self.auto_bids.resolve(auction.id, data, now, self._admission(data, listing))
            if not placed:
                effects.changed = False
                return []
            extended = self.anti_sniping.apply(auction.id, data, now)
            effects.published.extend(self._placement_events(auction.id, data, placed, extended))
            return placed

        _, placed = await self._mutate(auction_id, _sweep)
        if placed:
            logger.info(f"Auto-bid sweep placed {len(placed)} bid(s) on auction {auction_id}")
        return placed

    async def check_anti_sniping(self, auction_id: str) -> bool:
        """Extend the auction if its latest bid landed in the closing window unanswered (scheduler)."""

        async def _check(auction: Auction, effects: _Effects) -> bool:
            now = self.clock()
            data = auction.data
            if data.status != "live" or rules.should_end(data, now):
                effects.changed = False
                return False
            extended = self.anti_sniping.reconcile(auction.id, data, now)
            if not extended:
                effects.changed = False
                return False
            effects.published.append(events.auction_extended(auction.id, data, EXTENSION_REASON))
            return True

        _, extended = await self._mutate(auction_id, _check)
        return extended

    # ---------------------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------------------

    async def get_auction(self, auction_id: str) -> Auction:
        return await self._load(auction_id)

    async def list_auctions(
        self, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Auction], int]:
        page = max(page, 1)
        items = await self.store.search(status=status, limit=limit, offset=(page - 1) * limit)
        total = await self.store.count(status=status)
        return items, total

    async def auctions_with_status(self, status: str, batch_size: int = 200) -> List[Auction]:
        found: List[Auction] = []
        offset = 0
        while True:
            batch = await self.store.search(status=status, limit=batch_size, offset=offset)
            found.extend(batch)
            if len(batch) < batch_size:
                return found
            offset += batch_size

    async def get_user_bids(self, user_id: str) -> List[BidData]:
        return await self.store.bids_by_bidder(user_id)

    async def get_user_auctions(self, user_id: str) -> List[Auction]:
        return await self.store.search(farmer_id=user_id, limit=100)
