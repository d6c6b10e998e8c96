"""Who sees which listings and requests. Every read of available listings reaps expired ones first."""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.errors import InvalidStateTransition, NotFound
from foodlink.models.listing import Listing, ListingCategory, ListingStatus
from foodlink.models.request import FoodRequest, RequestStatus
from foodlink.models.user import User
from foodlink.services import listing_store, request_store, role_gate
from foodlink.services.expiry import is_expired
from foodlink.services.geo import Coordinates, coordinates_of, distance_km
from foodlink.services.role_gate import Action, Viewer

logger = logging.getLogger(__name__)


@dataclass
class ListingMatch:
    listing: Listing
    distance_km: float | None = None


@dataclass
class RequestView:
    request: FoodRequest
    # Live listing if it still exists; accepted requests fall back to their snapshot
    listing: Listing | None = None


@dataclass
class DonorDashboard:
    listings: list[Listing]
    available_listings: int
    reserved_listings: int
    pending_requests: int
    accepted_requests: int


@dataclass
class DonorInbox:
    active: list[RequestView]
    history: list[RequestView]


@dataclass
class ContactCard:
    user_id: int
    role: str
    name: str | None
    email: str
    phone: str | None


async def reap_expired(db: AsyncSession, listings: list[Listing], now: datetime | None = None) -> list[Listing]:
    """
    Delete available listings whose pickup window has passed and return the rest.
    The sweep is committed straight away so it stands even if the caller later fails;
    a listing someone else already deleted is skipped silently.
    """
    kept = []
    reaped = []
    for listing in listings:
        if listing.status == ListingStatus.AVAILABLE and is_expired(listing.expiry_date, now):
            if await listing_store.delete_listing(db, listing):
                reaped.append(listing.id)
            continue
        kept.append(listing)
    if reaped:
        await db.commit()
        logger.info("Reaped %d expired listings: %s", len(reaped), reaped)
    return kept


async def reap_if_expired(db: AsyncSession, listing: Listing, now: datetime | None = None) -> bool:
    return not await reap_expired(db, [listing], now)


async def live_listing(db: AsyncSession, listing_id: int, for_update: bool = False) -> Listing | None:
    """The listing if it still exists; an expired available one is reaped and reported as gone."""
    listing = await listing_store.get_listing(db, listing_id, for_update=for_update)
    if listing is None or await reap_if_expired(db, listing):
        return None
    return listing


async def available_listings(
    db: AsyncSession,
    donor_id: int | None = None,
    now: datetime | None = None,
) -> list[Listing]:
    listings = await listing_store.list_listings(db, donor_id=donor_id, status=ListingStatus.AVAILABLE)
    return await reap_expired(db, listings, now)


def filter_by_category(listings: list[Listing], category: ListingCategory | None) -> list[Listing]:
    if category is None:
        return list(listings)
    return [listing for listing in listings if listing.category == category]


def filter_by_distance(listings: list[Listing], origin: Coordinates, max_distance_km: float) -> list[Listing]:
    """Listings within max_distance_km of origin. Listings without coordinates never match."""
    within = []
    for listing in listings:
        point = coordinates_of(listing.latitude, listing.longitude)
        if point is not None and distance_km(origin, point) <= max_distance_km:
            within.append(listing)
    return within


def _with_distance(listings: list[Listing], origin: Coordinates | None) -> list[ListingMatch]:
    matches = []
    for listing in listings:
        point = coordinates_of(listing.latitude, listing.longitude)
        d = distance_km(origin, point) if origin is not None and point is not None else None
        matches.append(ListingMatch(listing=listing, distance_km=round(d, 2) if d is not None else None))
    return matches


async def receiver_feed(
    db: AsyncSession,
    viewer: Viewer,
    category: ListingCategory | None = None,
    max_distance_km: float | None = None,
    origin: Coordinates | None = None,
) -> list[ListingMatch]:
    """
    All donors' available listings. Category is an exact match; the distance filter only
    applies when the viewer's position is known (no origin, no filter).
    """
    listings = await available_listings(db)
    listings = filter_by_category(listings, category)
    if max_distance_km is not None and origin is not None:
        listings = filter_by_distance(listings, origin, max_distance_km)
    return _with_distance(listings, origin)


async def home_feed(
    db: AsyncSession,
    viewer: Viewer,
    category: ListingCategory | None = None,
    max_distance_km: float | None = None,
    origin: Coordinates | None = None,
) -> list[ListingMatch]:
    """Public feed. Donors only see their own available listings here; everyone else browses all."""
    donor_scope = role_gate.home_feed_donor_scope(viewer)
    if donor_scope is None:
        return await receiver_feed(db, viewer, category, max_distance_km, origin)
    listings = filter_by_category(await available_listings(db, donor_id=donor_scope), category)
    return _with_distance(listings, origin)


async def visible_listing(db: AsyncSession, viewer: Viewer, listing_id: int) -> Listing:
    """Point read: expired listings are reaped, invisible ones look missing."""
    listing = await live_listing(db, listing_id)
    if not listing:
        raise NotFound("Listing not found")
    if Action.VIEW not in role_gate.listing_actions(viewer, listing):
        raise NotFound("Listing not found")
    return listing


async def donor_dashboard(db: AsyncSession, viewer: Viewer) -> DonorDashboard:
    """Donor's own listings across every status, newest first, with headline counts."""
    role_gate.require_donor(viewer, "Only donors have a dashboard")
    listings = await reap_expired(db, await listing_store.list_listings(db, donor_id=viewer.uid))
    inbox = await donor_inbox(db, viewer)
    decided = [view.request for view in inbox.history]
    return DonorDashboard(
        listings=listings,
        available_listings=sum(1 for listing in listings if listing.status == ListingStatus.AVAILABLE),
        reserved_listings=sum(1 for listing in listings if listing.status == ListingStatus.RESERVED),
        pending_requests=len(inbox.active),
        accepted_requests=sum(1 for req in decided if req.status == RequestStatus.ACCEPTED),
    )


async def donor_inbox(db: AsyncSession, viewer: Viewer) -> DonorInbox:
    """
    Requests on the donor's listings. Once a listing is gone, a decided request still belongs
    here if its accept snapshot names this donor; undecided orphans are dropped.
    """
    role_gate.require_donor(viewer, "Only donors can view incoming requests")
    listings = await reap_expired(db, await listing_store.list_listings(db, donor_id=viewer.uid))
    own = {listing.id: listing for listing in listings}
    requests = await request_store.list_requests_for_donor(db, viewer.uid, list(own))
    active, history = [], []
    for req in requests:
        listing = own.get(req.listing_id)
        if listing is None and not (req.status in request_store.DECIDED and req.listing_title):
            continue
        view = RequestView(request=req, listing=listing)
        if req.status == RequestStatus.PENDING:
            active.append(view)
        else:
            history.append(view)
    return DonorInbox(active=active, history=history)


async def receiver_requests(db: AsyncSession, viewer: Viewer) -> list[RequestView]:
    role_gate.require_receiver(viewer, "Only receivers have requests")
    requests = await request_store.list_requests(db, receiver_id=viewer.uid)
    views = []
    for req in requests:
        listing = await live_listing(db, req.listing_id)
        views.append(RequestView(request=req, listing=listing))
    return views


async def request_detail(db: AsyncSession, viewer: Viewer, request_id: int) -> RequestView:
    req = await request_store.get_request(db, request_id)
    if not req:
        raise NotFound("Request not found")
    listing = await live_listing(db, req.listing_id)
    if Action.VIEW not in role_gate.request_actions(viewer, req, listing.donor_id if listing else None):
        raise NotFound("Request not found")
    return RequestView(request=req, listing=listing)


async def request_contact(db: AsyncSession, viewer: Viewer, request_id: int) -> ContactCard:
    """The other party's contact details; only shared after the donor accepted."""
    view = await request_detail(db, viewer, request_id)
    req = view.request
    if req.status != RequestStatus.ACCEPTED:
        raise InvalidStateTransition("Contact details are shared once a request is accepted")
    if viewer.uid == req.receiver_id:
        other_id, other_role = req.listing_donor_id, "donor"
    else:
        other_id, other_role = req.receiver_id, "receiver"
    other = await db.get(User, other_id) if other_id is not None else None
    if not other:
        raise NotFound("User not found")
    return ContactCard(user_id=other.id, role=other_role, name=other.name, email=other.email, phone=other.phone)
