"""Listing and request lifecycle: enforce allowed transitions, ownership and the atomic accept."""
import logging
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.errors import Conflict, InvalidStateTransition, NotFound, ValidationError
from foodlink.models.listing import Listing, ListingStatus
from foodlink.models.request import FoodRequest, RequestStatus
from foodlink.schemas.listing import ListingCreate, ListingUpdate
from foodlink.services import listing_store, request_store, role_gate
from foodlink.services.expiry import as_utc, is_expired, utcnow
from foodlink.services.matcher import live_listing, reap_if_expired
from foodlink.services.role_gate import Action, Viewer

logger = logging.getLogger(__name__)

# Allowed request transitions: from_state -> {to_state, ...}
ALLOWED: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {RequestStatus.ACCEPTED, RequestStatus.REJECTED},
    RequestStatus.ACCEPTED: set(),
    RequestStatus.REJECTED: set(),
}

_REQUIRED_TEXT = {
    "title": "Title",
    "location_text": "Location",
    "quantity": "Quantity",
}


def check_transition(current: RequestStatus, to_status: RequestStatus) -> None:
    if to_status not in ALLOWED.get(current, set()):
        raise InvalidStateTransition(f"Request is already {current.value}; cannot move it to {to_status.value}")


def validate_listing_fields(values: dict[str, Any], now: datetime | None = None) -> None:
    """Raise ValidationError before any write if the listing would be incomplete."""
    missing = [label for key, label in _REQUIRED_TEXT.items() if not (values.get(key) or "").strip()]
    if values.get("expiry_date") is None:
        missing.append("Expiry date")
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    if values.get("latitude") is None or values.get("longitude") is None:
        raise ValidationError("Location coordinates are required")
    if is_expired(values["expiry_date"], now):
        raise ValidationError("Expiry date must be in the future")


def _snapshot(listing: Listing) -> dict[str, Any]:
    return {
        "listing_donor_id": listing.donor_id,
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


async def _live_listing(db: AsyncSession, listing_id: int) -> Listing:
    """Load a listing for a write; an expired available one is reaped and reported as missing."""
    listing = await live_listing(db, listing_id, for_update=True)
    if not listing:
        raise NotFound("Listing not found")
    return listing


async def create_listing(db: AsyncSession, viewer: Viewer, body: ListingCreate) -> Listing:
    role_gate.require_donor(viewer, "Only donors can create listings")
    values = body.model_dump()
    validate_listing_fields(values)
    listing = Listing(
        title=values["title"].strip(),
        description=(values["description"] or "").strip(),
        quantity=values["quantity"].strip(),
        category=values["category"],
        location_text=values["location_text"].strip(),
        latitude=values["latitude"],
        longitude=values["longitude"],
        expiry_date=as_utc(values["expiry_date"]),
        status=ListingStatus.AVAILABLE,
        donor_id=viewer.uid,
        donor_name=(values["donor_name"] or viewer.name or "Anonymous").strip() or "Anonymous",
        image_url=values["image_url"] or None,
    )
    listing = await listing_store.add_listing(db, listing)
    logger.info("Donor %s created listing %s", viewer.uid, listing.id)
    return listing


async def update_listing(db: AsyncSession, viewer: Viewer, listing_id: int, body: ListingUpdate) -> Listing:
    listing = await _live_listing(db, listing_id)
    role_gate.require_listing_action(viewer, listing, Action.EDIT)
    changes = body.model_dump(exclude_unset=True)
    merged = {
        "title": listing.title,
        "location_text": listing.location_text,
        "quantity": listing.quantity,
        "expiry_date": listing.expiry_date,
        "latitude": listing.latitude,
        "longitude": listing.longitude,
    }
    merged.update(changes)
    validate_listing_fields(merged)
    for key, value in changes.items():
        if value is None and key in ("description", "category"):
            continue
        if isinstance(value, str):
            value = value.strip()
        if key == "expiry_date":
            value = as_utc(value)
        if key == "image_url":
            value = value or None
        setattr(listing, key, value)
    listing.updated_at = utcnow()
    return await listing_store.save_listing(db, listing)


async def delete_listing(db: AsyncSession, viewer: Viewer, listing_id: int) -> None:
    listing = await listing_store.get_listing(db, listing_id, for_update=True)
    if not listing:
        raise NotFound("Listing not found")
    role_gate.require_listing_action(viewer, listing, Action.DELETE)
    await listing_store.delete_listing(db, listing)
    logger.info("Donor %s deleted listing %s", viewer.uid, listing_id)


async def create_request(db: AsyncSession, viewer: Viewer, listing_id: int) -> FoodRequest:
    """Receiver claims an available listing. One pending request per (listing, receiver)."""
    listing = await listing_store.get_listing(db, listing_id, for_update=True)
    if not listing:
        raise NotFound("Listing not found")
    if await reap_if_expired(db, listing):
        raise InvalidStateTransition("This listing has expired")
    if listing.status != ListingStatus.AVAILABLE:
        raise InvalidStateTransition("This listing is no longer available")
    role_gate.require_listing_action(viewer, listing, Action.REQUEST)
    if await request_store.find_pending(db, listing.id, viewer.uid):
        raise Conflict("You already have a pending request for this listing")
    req = FoodRequest(
        listing_id=listing.id,
        receiver_id=viewer.uid,
        receiver_name=viewer.name or "Anonymous",
        status=RequestStatus.PENDING,
        requested_at=utcnow(),
    )
    req = await request_store.add_request(db, req)
    logger.info("Receiver %s requested listing %s (request %s)", viewer.uid, listing.id, req.id)
    return req


async def _load_for_decision(
    db: AsyncSession,
    viewer: Viewer,
    request_id: int,
    action: Action,
    to_status: RequestStatus,
) -> tuple[FoodRequest, Listing | None]:
    req = await request_store.get_request(db, request_id, for_update=True)
    if not req:
        raise NotFound("Request not found")
    # An expired listing is reaped here, so the decision ends in NotFound
    listing = await live_listing(db, req.listing_id, for_update=True)
    owner_id = listing.donor_id if listing else req.listing_donor_id
    if owner_id is None:
        raise NotFound("Listing not found")
    role_gate.require_request_action(viewer, req, owner_id, action)
    check_transition(req.status, to_status)
    if listing is None:
        raise NotFound("Listing not found")
    return req, listing


async def accept_request(
    db: AsyncSession,
    viewer: Viewer,
    request_id: int,
    listing_id: int | None = None,
) -> FoodRequest:
    """
    Donor accepts a pending request. In one transaction: conditionally flip the request to
    ACCEPTED with a snapshot of the listing, then delete the listing. Any failure rolls back
    both, so "accepted" and "listing still exists" are never committed together.
    """
    req, listing = await _load_for_decision(db, viewer, request_id, Action.ACCEPT, RequestStatus.ACCEPTED)
    if listing_id is not None and listing_id != req.listing_id:
        raise ValidationError("Request does not belong to this listing")
    now = utcnow()
    updated = await request_store.compare_and_set_status(
        db,
        req,
        RequestStatus.PENDING,
        RequestStatus.ACCEPTED,
        accepted_at=now,
        decided_at=now,
        **_snapshot(listing),
    )
    if not updated:
        raise Conflict("This request was decided by someone else")
    if not await listing_store.delete_listing(db, listing):
        # Reaped or deleted concurrently; the caller's transaction rolls the accept back
        raise NotFound("Listing not found")
    logger.info("Donor %s accepted request %s; listing %s removed", viewer.uid, req.id, listing.id)
    return req


async def reject_request(db: AsyncSession, viewer: Viewer, request_id: int) -> FoodRequest:
    """Donor rejects a pending request. The listing stays available to others."""
    req, _ = await _load_for_decision(db, viewer, request_id, Action.REJECT, RequestStatus.REJECTED)
    updated = await request_store.compare_and_set_status(
        db,
        req,
        RequestStatus.PENDING,
        RequestStatus.REJECTED,
        decided_at=utcnow(),
    )
    if not updated:
        raise Conflict("This request was decided by someone else")
    logger.info("Donor %s rejected request %s", viewer.uid, req.id)
    return req
