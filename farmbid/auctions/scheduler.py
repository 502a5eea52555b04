"""APScheduler jobs that move auctions through time.

- promote: every ``promote_interval_seconds``, start scheduled auctions whose
  start time has passed.
- live: every ``live_interval_seconds``, end live auctions past their end
  time and, for the rest, let standing auto-bids respond and reconcile
  anti-sniping.

Each auction is handled through the service, so ticks take the same
per-auction critical section as API requests. One failing auction is
logged and skipped; the tick carries on with the others.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from farmbid.models.entities.couchbase.auctions import Auction

from . import rules
from .service import AuctionService

logger = logging.getLogger(__name__)


class AuctionScheduler:

    def __init__(
        self,
        service: AuctionService,
        promote_interval_seconds: int = 60,
        live_interval_seconds: int = 30,
    ):
        self.service = service
        self.promote_interval_seconds = promote_interval_seconds
        self.live_interval_seconds = live_interval_seconds
        self._scheduler: Optional[AsyncIOScheduler] = None

    async def promote_tick(self) -> int:
        """Start every due scheduled auction. Returns how many went live."""
        try:
            scheduled = await self.service.auctions_with_status("scheduled")
        except Exception as e:
            logger.error(f"Failed to query scheduled auctions: {e}", exc_info=True)
            return 0

        now = self.service.clock()
        started = 0
        for auction in scheduled:
            if not rules.can_start(auction.data, now):
                continue
            try:
                await self.service.start_auction(auction.id, system=True)
                started += 1
            except Exception as e:
                logger.error(f"Failed to start auction {auction.id}: {e}", exc_info=True)

        if started:
            logger.info(f"Started {started} scheduled auction(s)")
        return started

    async def _service_live_auction(self, auction: Auction) -> str:
        if rules.should_end(auction.data, self.service.clock()):
            closed = await self.service.end_auction(auction.id, system=True)
            if closed.data.status != "live":
                return "ended"
        await self.service.sweep_auto_bids(auction.id)
        await self.service.check_anti_sniping(auction.id)
        return "checked"

    async def live_tick(self) -> int:
        """End overdue live auctions and service the rest. Returns how many ended."""
        try:
            live = await self.service.auctions_with_status("live")
        except Exception as e:
            logger.error(f"Failed to query live auctions: {e}", exc_info=True)
            return 0

        ended = 0
        for auction in live:
            try:
                if await self._service_live_auction(auction) == "ended":
                    ended += 1
            except Exception as e:
                logger.error(f"Failed to process live auction {auction.id}: {e}", exc_info=True)

        if ended:
            logger.info(f"Ended {ended} live auction(s)")
        return ended

    def start(self) -> AsyncIOScheduler:
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.promote_tick,
            trigger=IntervalTrigger(seconds=self.promote_interval_seconds),
            id="auction_promote",
            name="Start scheduled auctions",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.add_job(
            self.live_tick,
            trigger=IntervalTrigger(seconds=self.live_interval_seconds),
            id="auction_live",
            name="End and service live auctions",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            f"Auction scheduler started (promote every {self.promote_interval_seconds}s, "
            f"live every {self.live_interval_seconds}s)"
        )
        return self._scheduler

    def shutdown(self) -> None:
        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Auction scheduler shut down")
