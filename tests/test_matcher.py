from datetime import timedelta

import pytest

from foodlink.errors import InvalidStateTransition, NotFound, NotPermitted
from foodlink.models.listing import ListingCategory, ListingStatus
from foodlink.services import listing_store, matcher, state_machine
from foodlink.services.expiry import utcnow
from foodlink.services.geo import Coordinates
from foodlink.services.role_gate import Viewer

from conftest import expire_listing, make_listing

# Bengaluru MG Road; Whitefield is roughly 15 km east of it
MG_ROAD = Coordinates(12.9756, 77.6066)
WHITEFIELD = (12.9698, 77.7500)


async def _request(database, receiver, listing):
    async with database.session() as db:
        return await state_machine.create_request(db, receiver, listing.id)


async def _accept(database, donor, req):
    async with database.session() as db:
        return await state_machine.accept_request(db, donor, req.id)


async def test_feed_reaps_expired_listings(database, donor, receiver):
    fresh = await make_listing(database, donor, title="Fresh")
    stale = await make_listing(database, donor, title="Stale", expiry_date=utcnow() - timedelta(hours=1))
    async with database.session() as db:
        matches = await matcher.receiver_feed(db, receiver)
    assert [m.listing.id for m in matches] == [fresh.id]
    async with database.session() as db:
        assert await listing_store.get_listing(db, stale.id) is None


async def test_listing_without_expiry_is_kept(database, donor, receiver):
    listing = await make_listing(database, donor, expiry_date=None)
    async with database.session() as db:
        matches = await matcher.receiver_feed(db, receiver)
    assert [m.listing.id for m in matches] == [listing.id]


async def test_feed_is_newest_first_and_skips_reserved(database, donor, receiver):
    first = await make_listing(database, donor, title="First")
    second = await make_listing(database, donor, title="Second")
    await make_listing(database, donor, title="Held", status=ListingStatus.RESERVED)
    async with database.session() as db:
        matches = await matcher.receiver_feed(db, receiver)
    assert [m.listing.id for m in matches] == [second.id, first.id]


async def test_category_filter(database, donor, receiver):
    veg = await make_listing(database, donor, category=ListingCategory.VEG)
    non_veg = await make_listing(database, donor, category=ListingCategory.NON_VEG)
    async with database.session() as db:
        only_non_veg = await matcher.receiver_feed(db, receiver, category=ListingCategory.NON_VEG)
        everything = await matcher.receiver_feed(db, receiver)
    assert [m.listing.id for m in only_non_veg] == [non_veg.id]
    assert {m.listing.id for m in everything} == {veg.id, non_veg.id}


async def test_distance_filter(database, donor, receiver):
    near = await make_listing(database, donor, latitude=12.9716, longitude=77.5946)
    far = await make_listing(database, donor, latitude=WHITEFIELD[0], longitude=WHITEFIELD[1])
    nowhere = await make_listing(database, donor, latitude=None, longitude=None)
    async with database.session() as db:
        within_5 = await matcher.receiver_feed(db, receiver, max_distance_km=5, origin=MG_ROAD)
        within_50 = await matcher.receiver_feed(db, receiver, max_distance_km=50, origin=MG_ROAD)
        no_origin = await matcher.receiver_feed(db, receiver, max_distance_km=5)
    assert [m.listing.id for m in within_5] == [near.id]
    assert within_5[0].distance_km == pytest.approx(1.37, abs=0.05)
    assert {m.listing.id for m in within_50} == {near.id, far.id}
    # Without a known position the filter is skipped and nothing is measured
    assert {m.listing.id for m in no_origin} == {near.id, far.id, nowhere.id}
    assert all(m.distance_km is None for m in no_origin)


async def test_distance_boundary_is_inclusive(database, donor):
    listing = await make_listing(database, donor, latitude=MG_ROAD.lat, longitude=MG_ROAD.lng)
    assert matcher.filter_by_distance([listing], MG_ROAD, 0) == [listing]


async def test_home_feed_donor_sees_only_own(database, donor, other_donor, receiver):
    mine = await make_listing(database, donor)
    theirs = await make_listing(database, other_donor)
    async with database.session() as db:
        donor_view = await matcher.home_feed(db, donor)
        receiver_view = await matcher.home_feed(db, receiver)
        anon_view = await matcher.home_feed(db, Viewer.anonymous())
    assert [m.listing.id for m in donor_view] == [mine.id]
    assert {m.listing.id for m in receiver_view} == {mine.id, theirs.id}
    assert {m.listing.id for m in anon_view} == {mine.id, theirs.id}


async def test_visible_listing(database, donor, receiver):
    listing = await make_listing(database, donor)
    reserved = await make_listing(database, donor, status=ListingStatus.RESERVED)
    expired = await make_listing(database, donor, expiry_date=utcnow() - timedelta(seconds=30))
    async with database.session() as db:
        assert (await matcher.visible_listing(db, receiver, listing.id)).id == listing.id
        # The owner still sees a reserved listing; others do not
        assert (await matcher.visible_listing(db, donor, reserved.id)).id == reserved.id
    for listing_id in (reserved.id, expired.id, 12345):
        with pytest.raises(NotFound):
            async with database.session() as db:
                await matcher.visible_listing(db, receiver, listing_id)


async def test_donor_dashboard_counts(database, donor, receiver, other_receiver):
    first = await make_listing(database, donor)
    second = await make_listing(database, donor)
    await make_listing(database, donor, status=ListingStatus.RESERVED)
    accepted = await _request(database, receiver, first)
    await _request(database, other_receiver, second)
    await _accept(database, donor, accepted)
    async with database.session() as db:
        dashboard = await matcher.donor_dashboard(db, donor)
    assert len(dashboard.listings) == 2
    assert dashboard.available_listings == 1
    assert dashboard.reserved_listings == 1
    assert dashboard.pending_requests == 1
    assert dashboard.accepted_requests == 1


async def test_dashboard_is_for_donors(database, receiver):
    with pytest.raises(NotPermitted):
        async with database.session() as db:
            await matcher.donor_dashboard(db, receiver)


async def test_inbox_keeps_accepted_history_for_the_right_donor(
    database, donor, other_donor, receiver, other_receiver
):
    listing = await make_listing(database, donor)
    other_listing = await make_listing(database, other_donor)
    accepted = await _request(database, receiver, listing)
    orphan = await _request(database, other_receiver, listing)
    await _request(database, receiver, other_listing)
    await _accept(database, donor, accepted)

    async with database.session() as db:
        inbox = await matcher.donor_inbox(db, donor)
        other_inbox = await matcher.donor_inbox(db, other_donor)

    assert inbox.active == []
    assert [v.request.id for v in inbox.history] == [accepted.id]
    assert inbox.history[0].listing is None
    assert inbox.history[0].request.listing_title == listing.title
    assert orphan.id not in {v.request.id for v in inbox.active + inbox.history}

    assert [v.request.listing_id for v in other_inbox.active] == [other_listing.id]
    assert other_inbox.history == []


async def test_inbox_splits_pending_and_rejected(database, donor, receiver, other_receiver):
    listing = await make_listing(database, donor)
    pending = await _request(database, other_receiver, listing)
    rejected = await _request(database, receiver, listing)
    async with database.session() as db:
        await state_machine.reject_request(db, donor, rejected.id)
    async with database.session() as db:
        inbox = await matcher.donor_inbox(db, donor)
    assert [v.request.id for v in inbox.active] == [pending.id]
    assert [v.request.id for v in inbox.history] == [rejected.id]
    assert inbox.history[0].listing.id == listing.id


async def test_receiver_requests_show_live_or_snapshot(database, donor, receiver):
    live = await make_listing(database, donor, title="Still here")
    gone = await make_listing(database, donor, title="Picked up")
    live_req = await _request(database, receiver, live)
    gone_req = await _request(database, receiver, gone)
    await _accept(database, donor, gone_req)
    async with database.session() as db:
        views = {v.request.id: v for v in await matcher.receiver_requests(db, receiver)}
    assert views[live_req.id].listing.title == "Still here"
    assert views[gone_req.id].listing is None
    assert views[gone_req.id].request.listing_title == "Picked up"


async def test_request_detail_is_private(database, donor, other_donor, receiver, other_receiver):
    listing = await make_listing(database, donor)
    req = await _request(database, receiver, listing)
    async with database.session() as db:
        assert (await matcher.request_detail(db, donor, req.id)).request.id == req.id
        assert (await matcher.request_detail(db, receiver, req.id)).listing.id == listing.id
    for viewer in (other_donor, other_receiver):
        with pytest.raises(NotFound):
            async with database.session() as db:
                await matcher.request_detail(db, viewer, req.id)


async def test_contact_only_after_accept(database, donor, receiver):
    listing = await make_listing(database, donor)
    req = await _request(database, receiver, listing)
    with pytest.raises(InvalidStateTransition):
        async with database.session() as db:
            await matcher.request_contact(db, receiver, req.id)
    await _accept(database, donor, req)
    async with database.session() as db:
        donor_card = await matcher.request_contact(db, receiver, req.id)
        receiver_card = await matcher.request_contact(db, donor, req.id)
    assert (donor_card.role, donor_card.name, donor_card.phone) == ("donor", "Dana Donor", "+91-555-0101")
    assert (receiver_card.role, receiver_card.email) == ("receiver", "receiver@example.com")
    assert receiver_card.phone == "+91-555-0202"


async def test_request_views_reap_expired_listing(database, donor, receiver):
    listing = await make_listing(database, donor)
    req = await _request(database, receiver, listing)
    await expire_listing(database, listing.id)

    async with database.session() as db:
        views = await matcher.receiver_requests(db, receiver)
        detail = await matcher.request_detail(db, receiver, req.id)
    assert views[0].listing is None
    assert detail.listing is None
    async with database.session() as db:
        assert await listing_store.get_listing(db, listing.id) is None


async def test_inbox_reaps_expired_listing(database, donor, receiver):
    listing = await make_listing(database, donor)
    await _request(database, receiver, listing)
    await expire_listing(database, listing.id)

    async with database.session() as db:
        inbox = await matcher.donor_inbox(db, donor)
    assert inbox.active == []
    async with database.session() as db:
        assert await listing_store.get_listing(db, listing.id) is None
