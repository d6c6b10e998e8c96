"""Pydantic schemas for requests: responses, donor inbox, contact card."""
from datetime import datetime

from pydantic import BaseModel

from foodlink.models.listing import ListingCategory
from foodlink.models.request import RequestStatus


class RequestResponse(BaseModel):
    """A request plus the listing details it refers to (live listing, or the accept snapshot)."""
    id: int
    listing_id: int
    receiver_id: int
    receiver_name: str
    status: RequestStatus
    requested_at: datetime | None
    accepted_at: datetime | None = None
    decided_at: datetime | None = None
    listing_available: bool = False
    listing_title: str | None = None
    listing_description: str | None = None
    listing_quantity: str | None = None
    listing_category: ListingCategory | None = None
    listing_location_text: str | None = None
    listing_latitude: float | None = None
    listing_longitude: float | None = None
    listing_image_url: str | None = None
    listing_expiry_date: datetime | None = None

    class Config:
        from_attributes = True


class InboxResponse(BaseModel):
    """Donor's requests inbox: pending ones to decide, decided ones as history."""
    active: list[RequestResponse]
    history: list[RequestResponse]


class RequestDecision(BaseModel):
    """Optional body for accept: the listing the donor saw the request on."""
    listing_id: int | None = None


class ContactResponse(BaseModel):
    """The other party's contact details, shared once a request is accepted."""
    user_id: int
    role: str
    name: str | None = None
    email: str
    phone: str | None = None
