"""Tests for the auction state machine — creation rules and lifecycle transitions."""

from datetime import timedelta

import pytest

from farmbid.auctions import AuctionSpec, AuctionStateMachine, ConflictError, ForbiddenError, ValidationError
from farmbid.models.entities.couchbase.auctions import AuctionData, BidData

from conftest import T0


def _spec(**overrides) -> AuctionSpec:
    fields = dict(
        listing_id="L-1",
        start_time=T0 + timedelta(minutes=1),
        end_time=T0 + timedelta(minutes=11),
        starting_bid=100.0,
    )
    fields.update(overrides)
    return AuctionSpec(**fields)


def _auction(status: str = "scheduled", **overrides) -> AuctionData:
    data = AuctionStateMachine.build(_spec(), "F-1", T0)
    data.status = status
    for key, value in overrides.items():
        setattr(data, key, value)
    return data


def _bid(bid_id: str, amount: float, sequence: int = 0) -> BidData:
    return BidData(
        id=bid_id,
        auction_id="A-1",
        bidder_id=f"bidder-{bid_id}",
        amount=amount,
        sequence=sequence,
        created_at=T0,
    )


class TestBuild:
    def test_defaults_applied(self) -> None:
        data = AuctionStateMachine.build(_spec(), "F-1", T0)
        assert data.status == "scheduled"
        assert data.min_bid_increment == 1.0
        assert data.anti_sniping_buffer == 30
        assert data.current_bid is None
        assert data.total_bids == 0

    def test_configured_defaults_used_when_omitted(self) -> None:
        data = AuctionStateMachine.build(
            _spec(), "F-1", T0, default_min_bid_increment=5.0, default_anti_sniping_buffer=45
        )
        assert data.min_bid_increment == 5.0
        assert data.anti_sniping_buffer == 45

    def test_zero_buffer_is_allowed(self) -> None:
        data = AuctionStateMachine.build(_spec(anti_sniping_buffer=0), "F-1", T0)
        assert data.anti_sniping_buffer == 0

    @pytest.mark.parametrize(
        "overrides",
        [
            {"start_time": T0 - timedelta(seconds=1)},
            {"end_time": T0 + timedelta(minutes=1)},
            {"end_time": T0 + timedelta(minutes=5)},
            {"starting_bid": 0.0},
            {"reserve_price": 50.0},
            {"min_bid_increment": -1.0},
            {"anti_sniping_buffer": 301},
            {"type": "dutch"},
        ],
    )
    def test_rejects_invalid_requests(self, overrides) -> None:
        with pytest.raises(ValidationError):
            AuctionStateMachine.build(_spec(**overrides), "F-1", T0)

    def test_five_minutes_is_enough(self) -> None:
        spec = _spec(end_time=T0 + timedelta(minutes=6))
        assert AuctionStateMachine.build(spec, "F-1", T0).end_time == T0 + timedelta(minutes=6)


class TestTransitions:
    def test_start_when_due(self) -> None:
        data = _auction()
        now = data.start_time + timedelta(seconds=5)
        AuctionStateMachine.start(data, now)
        assert data.status == "live"
        assert data.actual_start_time == now

    def test_start_before_start_time_rejected(self) -> None:
        data = _auction()
        with pytest.raises(ConflictError):
            AuctionStateMachine.start(data, T0)
        assert data.status == "scheduled"

    def test_cannot_start_twice(self) -> None:
        data = _auction("live")
        with pytest.raises(ConflictError):
            AuctionStateMachine.start(data, data.start_time)

    def test_cancel_only_from_scheduled(self) -> None:
        data = _auction()
        AuctionStateMachine.cancel(data)
        assert data.status == "cancelled"
        with pytest.raises(ConflictError):
            AuctionStateMachine.cancel(_auction("live"))

    def test_terminal_states_have_no_exits(self) -> None:
        for status in ("cancelled", "completed"):
            assert AuctionStateMachine.is_terminal(status)
            assert AuctionStateMachine.valid_transitions(status) == set()
        assert not AuctionStateMachine.is_terminal("ended")

    def test_pause_and_resume_shift_end_time(self) -> None:
        data = _auction("live")
        original_end = data.end_time
        paused_at = data.start_time + timedelta(minutes=2)
        AuctionStateMachine.pause(data, paused_at)
        assert data.status == "paused"

        AuctionStateMachine.resume(data, paused_at + timedelta(minutes=3))
        assert data.status == "live"
        assert data.paused_at is None
        assert data.end_time == original_end + timedelta(minutes=3)

    def test_resume_requires_paused(self) -> None:
        with pytest.raises(ConflictError):
            AuctionStateMachine.resume(_auction("live"), T0)

    def test_complete_requires_ended(self) -> None:
        with pytest.raises(ConflictError):
            AuctionStateMachine.complete(_auction("live"))
        data = _auction("ended")
        AuctionStateMachine.complete(data)
        assert data.status == "completed"

    def test_require_owner(self) -> None:
        data = _auction()
        AuctionStateMachine.require_owner(data, "F-1")
        with pytest.raises(ForbiddenError):
            AuctionStateMachine.require_owner(data, "someone-else")


class TestEnd:
    def test_end_without_bids(self) -> None:
        data = _auction("live")
        AuctionStateMachine.end(data, data.end_time)
        assert data.status == "ended"
        assert data.actual_end_time == data.end_time
        assert data.reserve_met is True
        assert data.winning_bid_id is None

    def test_end_marks_current_bid_winning(self) -> None:
        data = _auction("live", bids=[_bid("b1", 100.0)], current_bid=100.0, winning_bid_id="b1")
        AuctionStateMachine.end(data, data.end_time)
        assert data.bids[0].status == "winning"
        assert data.reserve_met is True

    def test_unmet_reserve_expires_current_bid(self) -> None:
        data = _auction(
            "live",
            reserve_price=500.0,
            bids=[_bid("b1", 100.0)],
            current_bid=100.0,
            winning_bid_id="b1",
        )
        AuctionStateMachine.end(data, data.end_time)
        assert data.reserve_met is False
        assert data.bids[0].status == "expired"

    def test_paused_auction_can_end(self) -> None:
        data = _auction("paused", paused_at=T0)
        AuctionStateMachine.end(data, T0 + timedelta(minutes=20))
        assert data.status == "ended"
        assert data.paused_at is None

    def test_cannot_end_scheduled(self) -> None:
        with pytest.raises(ConflictError):
            AuctionStateMachine.end(_auction(), T0)
