"""Pydantic schemas for listings: create, edit, responses."""
from datetime import datetime

from pydantic import BaseModel, Field

from foodlink.models.listing import ListingCategory, ListingStatus


class ListingCreate(BaseModel):
    """Request body for POST /listings. Blank text and missing coordinates are rejected by the service."""
    title: str = Field(..., max_length=200)
    description: str = Field(default="", max_length=5000)
    quantity: str = Field(..., max_length=100)
    category: ListingCategory = ListingCategory.VEG
    location_text: str = Field(..., max_length=255)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    expiry_date: datetime | None = None
    image_url: str | None = None
    donor_name: str | None = Field(default=None, max_length=255)


class ListingUpdate(BaseModel):
    """Request body for PATCH /listings/{id}; only the fields sent are changed."""
    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    quantity: str | None = Field(default=None, max_length=100)
    category: ListingCategory | None = None
    location_text: str | None = Field(default=None, max_length=255)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    expiry_date: datetime | None = None
    image_url: str | None = None


class ListingResponse(BaseModel):
    id: int
    title: str
    description: str
    quantity: str
    category: ListingCategory
    location_text: str
    latitude: float | None
    longitude: float | None
    expiry_date: datetime | None
    status: ListingStatus
    donor_id: int
    donor_name: str
    image_url: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Set when the viewer's position is known
    distance_km: float | None = None

    class Config:
        from_attributes = True


class DashboardStats(BaseModel):
    available_listings: int
    reserved_listings: int
    pending_requests: int
    accepted_requests: int


class DonorDashboardResponse(BaseModel):
    """Donor's own listings (every status) with headline counts."""
    listings: list[ListingResponse]
    stats: DashboardStats
