"""Auction state machine. Enforces valid lifecycle transitions.

Auction lifecycle:
    SCHEDULED → LIVE → ENDED → COMPLETED
    SCHEDULED → CANCELLED
    LIVE ⇄ PAUSED, PAUSED → ENDED

State semantics:
- scheduled: created by the farmer, waiting for its start time.
- live: accepting bids until ``end_time`` (which anti-sniping may push out).
- paused: temporarily closed to bids by the farmer; resuming shifts
  ``end_time`` by the time spent paused.
- ended: bidding closed, winner and reserve outcome fixed.
- completed: terminal, settlement finished on the payments side.
- cancelled: terminal, withdrawn before going live.

Methods mutate the ``AuctionData`` they are given. Callers hand in a draft
read from the store and commit it only if no error was raised, so a failed
transition never leaves partial state behind.
"""

from datetime import datetime, timezone
from typing import Dict, Optional, Set

from pydantic import BaseModel

from farmbid.models.entities.couchbase.auctions import AuctionData, AuctionStatus, AuctionType

from . import rules
from .errors import ConflictError, ForbiddenError, ValidationError


_TRANSITIONS: Dict[str, Set[str]] = {
    "scheduled": {"live", "cancelled"},
    "live": {"paused", "ended"},
    "paused": {"live", "ended"},
    "ended": {"completed"},
    # Terminal
    "cancelled": set(),
    "completed": set(),
}


class AuctionSpec(BaseModel):
    """What a farmer submits to schedule an auction."""
    listing_id: str
    type: AuctionType = "english"
    start_time: datetime
    end_time: datetime
    starting_bid: float
    reserve_price: Optional[float] = None
    min_bid_increment: Optional[float] = None
    anti_sniping_buffer: Optional[int] = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuctionStateMachine:
    """Validates and applies auction lifecycle transitions."""

    @staticmethod
    def valid_transitions(status: AuctionStatus) -> Set[str]:
        return set(_TRANSITIONS.get(status, set()))

    @staticmethod
    def is_terminal(status: AuctionStatus) -> bool:
        return not _TRANSITIONS.get(status)

    @staticmethod
    def validate_transition(data: AuctionData, target: AuctionStatus) -> None:
        allowed = _TRANSITIONS.get(data.status, set())
        if target not in allowed:
            allowed_str = ", ".join(sorted(allowed))
            raise ConflictError(
                f"Cannot move auction from {data.status} to {target}. "
                f"Allowed from {data.status}: [{allowed_str}]"
            )

    @staticmethod
    def require_owner(data: AuctionData, caller_id: Optional[str]) -> None:
        if caller_id != data.farmer_id:
            raise ForbiddenError("Auction does not belong to you")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    def build(
        spec: AuctionSpec,
        farmer_id: str,
        now: datetime,
        default_min_bid_increment: float = 1.0,
        default_anti_sniping_buffer: int = 30,
    ) -> AuctionData:
        """Validate a creation request and return the new scheduled auction."""
        start_time = _as_utc(spec.start_time)
        end_time = _as_utc(spec.end_time)

        if spec.type != "english":
            raise ValidationError(f"Auction type '{spec.type}' is not supported yet")
        if start_time <= now:
            raise ValidationError("Auction start time must be in the future")
        if end_time <= start_time:
            raise ValidationError("Auction end time must be after start time")
        if (end_time - start_time).total_seconds() < rules.MIN_AUCTION_DURATION_SECONDS:
            raise ValidationError("Auction must run for at least 5 minutes")
        if spec.starting_bid <= 0:
            raise ValidationError("Starting bid must be positive")
        if spec.reserve_price is not None:
            if spec.reserve_price <= 0:
                raise ValidationError("Reserve price must be positive")
            if spec.reserve_price < spec.starting_bid:
                raise ValidationError("Reserve price cannot be below the starting bid")

        increment = spec.min_bid_increment or default_min_bid_increment
        if increment <= 0:
            raise ValidationError("Minimum bid increment must be positive")

        buffer = spec.anti_sniping_buffer
        if buffer is None:
            buffer = default_anti_sniping_buffer
        if not 0 <= buffer <= rules.MAX_ANTI_SNIPING_BUFFER_SECONDS:
            raise ValidationError(
                f"Anti-sniping buffer must be between 0 and "
                f"{rules.MAX_ANTI_SNIPING_BUFFER_SECONDS} seconds"
            )

        return AuctionData(
            listing_id=spec.listing_id,
            farmer_id=farmer_id,
            type=spec.type,
            status="scheduled",
            start_time=start_time,
            end_time=end_time,
            starting_bid=rules.money(spec.starting_bid),
            reserve_price=rules.money(spec.reserve_price) if spec.reserve_price is not None else None,
            min_bid_increment=rules.money(increment),
            anti_sniping_buffer=buffer,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @staticmethod
    def start(data: AuctionData, now: datetime) -> None:
        AuctionStateMachine.validate_transition(data, "live")
        if data.status != "scheduled":
            raise ConflictError("Only scheduled auctions can be started")
        if not rules.can_start(data, now):
            raise ConflictError("Auction start time has not been reached")
        data.status = "live"
        data.actual_start_time = now

    @staticmethod
    def end(data: AuctionData, now: datetime) -> None:
        """Close bidding and fix the outcome.

        The current bid becomes ``winning`` when it constitutes a sale and
        ``expired`` when the reserve was not met.
        """
        AuctionStateMachine.validate_transition(data, "ended")
        data.status = "ended"
        data.actual_end_time = now
        data.paused_at = None
        data.reserve_met = rules.reserve_met(data)

        current = rules.current_winning_bid(data)
        if current is not None:
            current.status = "winning" if data.reserve_met else "expired"

    @staticmethod
    def cancel(data: AuctionData) -> None:
        AuctionStateMachine.validate_transition(data, "cancelled")
        data.status = "cancelled"

    @staticmethod
    def pause(data: AuctionData, now: datetime) -> None:
        AuctionStateMachine.validate_transition(data, "paused")
        data.status = "paused"
        data.paused_at = now

    @staticmethod
    def resume(data: AuctionData, now: datetime) -> None:
        if data.status != "paused":
            raise ConflictError(f"Cannot resume auction with status: {data.status}")
        AuctionStateMachine.validate_transition(data, "live")
        if data.paused_at is not None:
            data.end_time += now - data.paused_at
        data.status = "live"
        data.paused_at = None

    @staticmethod
    def complete(data: AuctionData) -> None:
        AuctionStateMachine.validate_transition(data, "completed")
        data.status = "completed"
