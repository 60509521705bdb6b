"""
Tests for the bid lifecycle manager: placement, edits, accept / reject
and expiry.
"""

from datetime import timedelta

import pytest

from src.domain.enums import (
    BidStatus,
    LoadStatus,
    NotificationType,
    PlanType,
    TripStatus,
    VehicleType,
)
from src.domain.errors import (
    Conflict,
    InvalidState,
    NotFound,
    QuotaExceeded,
    Unauthorized,
    ValidationError,
)
from src.domain.quota import UPGRADE_PATH
from src.services.bid_manager import BidManager
from tests.conftest import START, make_offer, make_spec


async def _bid_status(bids, driver_id, bid_id) -> BidStatus:
    for bid in await bids.list_for_driver(driver_id):
        if bid.id == bid_id:
            return BidStatus(bid.status)
    raise AssertionError(f"bid {bid_id} not found")


class TestPlaceBid:
    @pytest.mark.asyncio
    async def test_bid_is_pending_and_owner_notified(
        self, bids, ledger, dispatcher, sink, open_load, add_user
    ):
        owner = await add_user()
        driver = await add_user(plan=PlanType.FREE)
        load = await open_load(owner)

        bid = await bids.create(driver, load.id, make_offer(600.0, message="Tomorrow"))
        await dispatcher.drain()

        assert bid.status == BidStatus.PENDING
        assert bid.proposed_price == 600.0
        assert (await ledger.usage(driver)).bids_placed == 1
        received = sink.to(owner)
        assert [n.type for n in received] == [NotificationType.BID_RECEIVED]
        assert received[0].data == {"load_id": load.id, "bid_id": bid.id}

    @pytest.mark.asyncio
    async def test_cannot_bid_on_own_load(self, bids, open_load, add_user):
        owner = await add_user()
        load = await open_load(owner)
        with pytest.raises(ValidationError):
            await bids.create(owner, load.id, make_offer())

    @pytest.mark.asyncio
    async def test_draft_load_not_accepting(self, bids, loads, add_user):
        owner = await add_user()
        driver = await add_user()
        draft = await loads.create(owner, make_spec())
        with pytest.raises(InvalidState, match="not accepting bids"):
            await bids.create(driver, draft.id, make_offer())

    @pytest.mark.asyncio
    async def test_unknown_load(self, bids, add_user):
        driver = await add_user()
        with pytest.raises(NotFound):
            await bids.create(driver, 404, make_offer())

    @pytest.mark.asyncio
    async def test_one_active_bid_per_driver(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        first = await bids.create(driver, load.id, make_offer())

        with pytest.raises(InvalidState, match="already have an active bid"):
            await bids.create(driver, load.id, make_offer(550.0))

        # Withdrawing frees the slot
        await bids.withdraw(first.id, driver)
        second = await bids.create(driver, load.id, make_offer(550.0))
        assert second.status == BidStatus.PENDING

    @pytest.mark.asyncio
    async def test_non_positive_price_rejected(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        with pytest.raises(ValidationError):
            await bids.create(driver, load.id, make_offer(0))

    @pytest.mark.asyncio
    async def test_free_tier_bid_quota(self, bids, open_load, add_user):
        driver = await add_user(plan=PlanType.FREE)
        for _ in range(3):
            load = await open_load()
            await bids.create(driver, load.id, make_offer())

        load = await open_load()
        with pytest.raises(QuotaExceeded) as exc_info:
            await bids.create(driver, load.id, make_offer())
        assert exc_info.value.limit == 3
        assert await bids.list_for_driver(driver, BidStatus.PENDING) != []
        assert len(await bids.list_for_driver(driver)) == 3


class TestVehicleChecks:
    @pytest.mark.asyncio
    async def test_matching_vehicle_accepted(self, bids, open_load, add_user, add_vehicle):
        driver = await add_user()
        vehicle = await add_vehicle(driver, VehicleType.MEDIUM_TRUCK)
        load = await open_load()

        bid = await bids.create(driver, load.id, make_offer(vehicle_id=vehicle))
        assert bid.vehicle_id == vehicle

    @pytest.mark.asyncio
    async def test_someone_elses_vehicle(self, bids, open_load, add_user, add_vehicle):
        driver = await add_user()
        other = await add_user()
        vehicle = await add_vehicle(other)
        load = await open_load()

        with pytest.raises(Unauthorized):
            await bids.create(driver, load.id, make_offer(vehicle_id=vehicle))

    @pytest.mark.asyncio
    async def test_wrong_vehicle_type(self, bids, open_load, add_user, add_vehicle):
        driver = await add_user()
        vehicle = await add_vehicle(driver, VehicleType.PICKUP)
        load = await open_load()

        with pytest.raises(ValidationError, match="Load requires one of"):
            await bids.create(driver, load.id, make_offer(vehicle_id=vehicle))

    @pytest.mark.asyncio
    async def test_inactive_vehicle(self, bids, open_load, add_user, add_vehicle):
        driver = await add_user()
        vehicle = await add_vehicle(driver, is_active=False)
        load = await open_load()

        with pytest.raises(ValidationError, match="not active"):
            await bids.create(driver, load.id, make_offer(vehicle_id=vehicle))

    @pytest.mark.asyncio
    async def test_unknown_vehicle(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        with pytest.raises(NotFound):
            await bids.create(driver, load.id, make_offer(vehicle_id=999))

    @pytest.mark.asyncio
    async def test_failed_vehicle_check_uses_no_quota(
        self, bids, ledger, open_load, add_user, add_vehicle
    ):
        driver = await add_user(plan=PlanType.FREE)
        vehicle = await add_vehicle(driver, VehicleType.PICKUP)
        load = await open_load()

        with pytest.raises(ValidationError):
            await bids.create(driver, load.id, make_offer(vehicle_id=vehicle))
        assert (await ledger.usage(driver)).bids_placed == 0


class TestEditAndWithdraw:
    @pytest.mark.asyncio
    async def test_update_price(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer(600.0))

        updated = await bids.update(bid.id, driver, {"proposed_price": 580.0})
        assert updated.proposed_price == 580.0

    @pytest.mark.asyncio
    async def test_only_bidder_may_edit(self, bids, open_load, add_user):
        driver = await add_user()
        stranger = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())

        with pytest.raises(Unauthorized):
            await bids.update(bid.id, stranger, {"proposed_price": 1.0})

    @pytest.mark.asyncio
    async def test_no_edits_after_bidding_closes(self, bids, loads, open_load, add_user):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        bid = await bids.create(driver, load.id, make_offer())
        await loads.close_bidding(load.id, owner)

        with pytest.raises(InvalidState):
            await bids.update(bid.id, driver, {"proposed_price": 500.0})

    @pytest.mark.asyncio
    async def test_unknown_patch_field(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())
        with pytest.raises(ValidationError):
            await bids.update(bid.id, driver, {"status": BidStatus.ACCEPTED})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["proposed_price", "currency"])
    async def test_required_field_cannot_be_cleared(self, bids, open_load, add_user, field):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())

        with pytest.raises(ValidationError, match=f"{field} cannot be null"):
            await bids.update(bid.id, driver, {field: None})

    @pytest.mark.asyncio
    async def test_malformed_currency_rejected(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())
        with pytest.raises(ValidationError, match="currency"):
            await bids.update(bid.id, driver, {"currency": ""})

    @pytest.mark.asyncio
    async def test_message_can_be_cleared(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer(message="Can load today"))

        updated = await bids.update(bid.id, driver, {"message": None})
        assert updated.message is None

    @pytest.mark.asyncio
    async def test_withdraw_twice(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())

        withdrawn = await bids.withdraw(bid.id, driver)
        assert withdrawn.status == BidStatus.WITHDRAWN
        with pytest.raises(InvalidState):
            await bids.withdraw(bid.id, driver)

    @pytest.mark.asyncio
    async def test_stranger_cannot_withdraw(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())
        with pytest.raises(Unauthorized):
            await bids.withdraw(bid.id, await add_user())


class TestAccept:
    @pytest.mark.asyncio
    async def test_accept_assigns_load_and_schedules_trip(
        self, bids, loads, trips, dispatcher, sink, open_load, add_user
    ):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        bid = await bids.create(driver, load.id, make_offer(612.5))

        trip = await bids.accept(bid.id, owner)
        await dispatcher.drain()

        assert trip.status == TripStatus.SCHEDULED
        assert trip.agreed_price == 612.5
        assert trip.driver_id == driver
        assert trip.bid_id == bid.id
        assert (await loads.get(load.id, owner)).status == LoadStatus.ASSIGNED
        assert await _bid_status(bids, driver, bid.id) == BidStatus.ACCEPTED
        accepted = sink.to(driver)
        assert accepted[-1].type == NotificationType.BID_ACCEPTED
        assert accepted[-1].data["trip_id"] == trip.id

    @pytest.mark.asyncio
    async def test_competing_bids_stay_pending_by_default(
        self, bids, open_load, add_user
    ):
        owner = await add_user()
        winner = await add_user()
        loser = await add_user()
        load = await open_load(owner)
        bid = await bids.create(winner, load.id, make_offer(600.0))
        other = await bids.create(loser, load.id, make_offer(650.0))

        await bids.accept(bid.id, owner)
        assert await _bid_status(bids, loser, other.id) == BidStatus.PENDING

    @pytest.mark.asyncio
    async def test_auto_reject_competing_bids(
        self, session_factory, ledger, dispatcher, sink, clock, open_load, add_user
    ):
        manager = BidManager(
            session_factory, ledger, dispatcher, clock=clock, auto_reject_competing=True
        )
        owner = await add_user()
        winner = await add_user()
        loser = await add_user()
        load = await open_load(owner)
        bid = await manager.create(winner, load.id, make_offer(600.0))
        other = await manager.create(loser, load.id, make_offer(650.0))

        await manager.accept(bid.id, owner)
        await dispatcher.drain()

        rejected = [b for b in await manager.list_for_driver(loser) if b.id == other.id][0]
        assert rejected.status == BidStatus.REJECTED
        assert rejected.reject_reason == "Another bid was accepted"
        assert [n.type for n in sink.to(loser)] == [NotificationType.BID_REJECTED]

    @pytest.mark.asyncio
    async def test_second_accept_is_a_conflict(self, bids, open_load, add_user):
        owner = await add_user()
        a = await add_user()
        b = await add_user()
        load = await open_load(owner)
        first = await bids.create(a, load.id, make_offer(600.0))
        second = await bids.create(b, load.id, make_offer(590.0))

        await bids.accept(first.id, owner)
        with pytest.raises(Conflict) as exc_info:
            await bids.accept(second.id, owner)
        assert exc_info.value.retryable
        with pytest.raises(Conflict):
            await bids.accept(first.id, owner)

    @pytest.mark.asyncio
    async def test_accept_after_bidding_closed(self, bids, loads, open_load, add_user):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        bid = await bids.create(driver, load.id, make_offer())
        await loads.close_bidding(load.id, owner)

        trip = await bids.accept(bid.id, owner)
        assert trip.status == TripStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_accept_on_cancelled_load(self, bids, loads, open_load, add_user):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        bid = await bids.create(driver, load.id, make_offer())
        await loads.cancel(load.id, owner)

        with pytest.raises(InvalidState, match="status CANCELLED"):
            await bids.accept(bid.id, owner)
        assert await _bid_status(bids, driver, bid.id) == BidStatus.PENDING

    @pytest.mark.asyncio
    async def test_only_owner_accepts(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())
        with pytest.raises(Unauthorized):
            await bids.accept(bid.id, driver)

    @pytest.mark.asyncio
    async def test_withdrawn_bid_cannot_be_accepted(self, bids, open_load, add_user):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        bid = await bids.create(driver, load.id, make_offer())
        await bids.withdraw(bid.id, driver)

        with pytest.raises(InvalidState):
            await bids.accept(bid.id, owner)

    @pytest.mark.asyncio
    async def test_unknown_bid(self, bids, add_user):
        with pytest.raises(NotFound):
            await bids.accept(12345, await add_user())


class TestRejectAndListing:
    @pytest.mark.asyncio
    async def test_reject_with_reason(self, bids, dispatcher, sink, open_load, add_user):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        bid = await bids.create(driver, load.id, make_offer())

        rejected = await bids.reject(bid.id, owner, reason="Too expensive")
        await dispatcher.drain()

        assert rejected.status == BidStatus.REJECTED
        assert rejected.reject_reason == "Too expensive"
        assert sink.to(driver)[-1].body == "Too expensive"

    @pytest.mark.asyncio
    async def test_only_owner_rejects(self, bids, open_load, add_user):
        driver = await add_user()
        load = await open_load()
        bid = await bids.create(driver, load.id, make_offer())
        with pytest.raises(Unauthorized):
            await bids.reject(bid.id, driver)

    @pytest.mark.asyncio
    async def test_list_for_load_cheapest_first_owner_only(
        self, bids, open_load, add_user
    ):
        owner = await add_user()
        load = await open_load(owner)
        for price in (700.0, 550.0, 620.0):
            await bids.create(await add_user(), load.id, make_offer(price))

        listed = await bids.list_for_load(load.id, owner)
        assert [b.proposed_price for b in listed] == [550.0, 620.0, 700.0]

        with pytest.raises(Unauthorized):
            await bids.list_for_load(load.id, await add_user())

    @pytest.mark.asyncio
    async def test_stats_cover_pending_bids(self, bids, open_load, add_user):
        owner = await add_user()
        load = await open_load(owner)
        assert (await bids.load_bid_stats(load.id)).count == 0

        for price in (600.0, 650.0, 700.01):
            await bids.create(await add_user(), load.id, make_offer(price))
        withdrawn_by = await add_user()
        withdrawn = await bids.create(withdrawn_by, load.id, make_offer(100.0))
        await bids.withdraw(withdrawn.id, withdrawn_by)

        stats = await bids.load_bid_stats(load.id)
        assert stats.count == 3
        assert stats.lowest == 600.0
        assert stats.highest == 700.01
        assert stats.average == 650.0

    @pytest.mark.asyncio
    async def test_stats_for_unknown_load(self, bids):
        with pytest.raises(NotFound):
            await bids.load_bid_stats(777)


class TestCanBidAndReceived:
    @pytest.mark.asyncio
    async def test_open_load_allows_bid(self, bids, open_load, add_user):
        load = await open_load()
        check = await bids.can_bid(await add_user(), load.id)
        assert check.allowed
        assert check.reason is None

    @pytest.mark.asyncio
    async def test_refusals_match_create(self, bids, loads, open_load, add_user):
        owner = await add_user()
        driver = await add_user()
        load = await open_load(owner)
        draft = await loads.create(owner, make_spec())

        own = await bids.can_bid(owner, load.id)
        assert own.reason == "You cannot bid on your own load"
        assert (await bids.can_bid(driver, draft.id)).reason == "Load is not accepting bids"

        await bids.create(driver, load.id, make_offer())
        check = await bids.can_bid(driver, load.id)
        assert not check.allowed
        assert check.reason == "You already have an active bid on this load"

    @pytest.mark.asyncio
    async def test_exhausted_quota_suggests_upgrade(
        self, bids, ledger, open_load, add_user
    ):
        driver = await add_user(plan=PlanType.FREE)
        for _ in range(3):
            await bids.create(driver, (await open_load()).id, make_offer())

        load = await open_load()
        check = await bids.can_bid(driver, load.id)
        assert not check.allowed
        assert check.upgrade_to == UPGRADE_PATH[PlanType.FREE]
        # Checking reserves nothing
        assert (await ledger.usage(driver)).bids_placed == 3

    @pytest.mark.asyncio
    async def test_can_bid_unknown_load(self, bids, add_user):
        with pytest.raises(NotFound):
            await bids.can_bid(await add_user(), 404)

    @pytest.mark.asyncio
    async def test_received_spans_owned_loads(self, bids, open_load, add_user):
        owner = await add_user()
        first = await open_load(owner)
        second = await open_load(owner)
        elsewhere = await open_load()

        kept = await bids.create(await add_user(), first.id, make_offer(610.0))
        other = await bids.create(await add_user(), second.id, make_offer(590.0))
        rejected = await bids.create(await add_user(), second.id, make_offer(700.0))
        await bids.create(await add_user(), elsewhere.id, make_offer())
        await bids.reject(rejected.id, owner)

        received = await bids.list_received(owner)
        assert {b.id for b in received} == {kept.id, other.id}
        assert all(b.status == BidStatus.PENDING for b in received)

        everything = await bids.list_received(owner, status=None)
        assert {b.id for b in everything} == {kept.id, other.id, rejected.id}
        only_rejected = await bids.list_received(owner, BidStatus.REJECTED)
        assert [b.id for b in only_rejected] == [rejected.id]


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expired_pending_bids_are_rejected(
        self, bids, clock, dispatcher, sink, open_load, add_user
    ):
        driver = await add_user()
        keeper = await add_user()
        load = await open_load()
        stale = await bids.create(
            driver, load.id, make_offer(expires_at=START + timedelta(hours=1))
        )
        fresh = await bids.create(
            keeper, load.id, make_offer(expires_at=START + timedelta(days=3))
        )

        assert await bids.expire_stale() == 0
        clock.advance(hours=2)
        assert await bids.expire_stale() == 1
        await dispatcher.drain()

        expired = (await bids.list_for_driver(driver))[0]
        assert expired.status == BidStatus.REJECTED
        assert expired.reject_reason == "Bid expired"
        assert await _bid_status(bids, keeper, fresh.id) == BidStatus.PENDING
        assert sink.to(driver)[-1].type == NotificationType.BID_REJECTED
        assert sink.to(driver)[-1].data["bid_id"] == stale.id

    @pytest.mark.asyncio
    async def test_bids_without_expiry_are_left_alone(
        self, bids, clock, open_load, add_user
    ):
        driver = await add_user()
        load = await open_load()
        await bids.create(driver, load.id, make_offer())

        clock.advance(days=365)
        assert await bids.expire_stale() == 0
