"""Listing model: a donor's surplus-food offer with a pickup deadline."""
import enum
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from foodlink.models.base import Base, str_enum


class ListingCategory(str, enum.Enum):
    VEG = "veg"
    NON_VEG = "non-veg"


class ListingStatus(str, enum.Enum):
    AVAILABLE = "available"
    # Kept for existing rows; nothing transitions a listing into it.
    RESERVED = "reserved"


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[ListingCategory] = mapped_column(
        str_enum(ListingCategory), nullable=False, default=ListingCategory.VEG, index=True
    )
    location_text: Mapped[str] = mapped_column(String(255), nullable=False)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Stored in UTC
    expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    status: Mapped[ListingStatus] = mapped_column(
        str_enum(ListingStatus), nullable=False, default=ListingStatus.AVAILABLE, index=True
    )
    donor_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    donor_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Anonymous")
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
