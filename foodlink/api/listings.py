"""Listing routes: feed, donor dashboard, create/read/edit/delete, request a listing."""
from typing import Any

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.database import get_db
from foodlink.deps import get_optional_viewer, get_redis, get_viewer
from foodlink.errors import ValidationError
from foodlink.models.listing import Listing, ListingCategory
from foodlink.schemas.listing import (
    DashboardStats,
    DonorDashboardResponse,
    ListingCreate,
    ListingResponse,
    ListingUpdate,
)
from foodlink.schemas.request import RequestResponse
from foodlink.services import matcher, state_machine
from foodlink.services.geo import Coordinates
from foodlink.services.location_store import get_viewer_location
from foodlink.services.matcher import ListingMatch, RequestView
from foodlink.services.role_gate import Viewer

router = APIRouter(prefix="/listings", tags=["listings"])


def listing_to_response(listing: Listing, distance_km: float | None = None) -> ListingResponse:
    return ListingResponse.model_validate(listing).model_copy(update={"distance_km": distance_km})


def match_to_response(match: ListingMatch) -> ListingResponse:
    return listing_to_response(match.listing, match.distance_km)


def request_to_response(view: RequestView) -> RequestResponse:
    """Listing details come from the live listing while it exists, else from the accept snapshot."""
    response = RequestResponse.model_validate(view.request)
    listing = view.listing
    if listing is None:
        return response
    return response.model_copy(
        update={
            "listing_available": True,
            "listing_title": listing.title,
            "listing_description": listing.description,
            "listing_quantity": listing.quantity,
            "listing_category": listing.category,
            "listing_location_text": listing.location_text,
            "listing_latitude": listing.latitude,
            "listing_longitude": listing.longitude,
            "listing_image_url": listing.image_url,
            "listing_expiry_date": listing.expiry_date,
        }
    )


async def resolve_origin(viewer: Viewer, lat: float | None, lng: float | None, redis: Any) -> Coordinates | None:
    """Explicit coordinates win; otherwise the viewer's last reported location, if any."""
    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be given together")
    if lat is not None:
        return Coordinates(lat, lng)
    if viewer.uid is None:
        return None
    return await get_viewer_location(redis, viewer.uid)


@router.get("", response_model=list[ListingResponse])
async def list_available(
    category: ListingCategory | None = None,
    max_distance_km: float | None = Query(default=None, gt=0),
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    db: AsyncSession = Depends(get_db),
    redis: Any = Depends(get_redis),
    viewer: Viewer = Depends(get_optional_viewer),
):
    """Available listings for this viewer (donors: their own). Expired ones are removed on the way."""
    origin = await resolve_origin(viewer, lat, lng, redis)
    matches = await matcher.home_feed(db, viewer, category=category, max_distance_km=max_distance_km, origin=origin)
    return [match_to_response(m) for m in matches]


@router.get("/mine", response_model=DonorDashboardResponse)
async def donor_dashboard(
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Donor dashboard: own listings in every status plus request counts."""
    dashboard = await matcher.donor_dashboard(db, viewer)
    return DonorDashboardResponse(
        listings=[listing_to_response(listing) for listing in dashboard.listings],
        stats=DashboardStats(
            available_listings=dashboard.available_listings,
            reserved_listings=dashboard.reserved_listings,
            pending_requests=dashboard.pending_requests,
            accepted_requests=dashboard.accepted_requests,
        ),
    )


@router.post("", response_model=ListingResponse, status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: ListingCreate,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Post surplus food. Donors only; title, location, quantity, expiry and coordinates required."""
    listing = await state_machine.create_listing(db, viewer, body)
    return listing_to_response(listing)


@router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing(
    listing_id: int,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_optional_viewer),
):
    listing = await matcher.visible_listing(db, viewer, listing_id)
    return listing_to_response(listing)


@router.patch("/{listing_id}", response_model=ListingResponse)
async def update_listing(
    listing_id: int,
    body: ListingUpdate,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Edit one of your listings."""
    listing = await state_machine.update_listing(db, viewer, listing_id, body)
    return listing_to_response(listing)


@router.delete("/{listing_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_listing(
    listing_id: int,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Delete one of your listings. Requests already made against it are kept."""
    await state_machine.delete_listing(db, viewer, listing_id)
    return None


@router.post("/{listing_id}/requests", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def request_listing(
    listing_id: int,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Receiver asks the donor for this listing."""
    req = await state_machine.create_request(db, viewer, listing_id)
    listing = await matcher.visible_listing(db, viewer, listing_id)
    return request_to_response(RequestView(request=req, listing=listing))
