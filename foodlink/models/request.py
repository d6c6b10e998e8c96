"""Request model: a receiver's claim on one listing. Never deleted; doubles as pickup history."""
import enum
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from foodlink.models.base import Base, str_enum
from foodlink.models.listing import ListingCategory


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


_PENDING_ONLY = text("status = 'pending'")


class FoodRequest(Base):
    __tablename__ = "requests"
    # One pending request per receiver per listing; decided requests don't count.
    __table_args__ = (
        Index(
            "uq_requests_pending_listing_receiver",
            "listing_id",
            "receiver_id",
            unique=True,
            postgresql_where=_PENDING_ONLY,
            sqlite_where=_PENDING_ONLY,
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    # Plain reference: the listing is deleted on accept but the request stays.
    listing_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    receiver_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    receiver_name: Mapped[str] = mapped_column(String(255), nullable=False, default="Anonymous")
    status: Mapped[RequestStatus] = mapped_column(
        str_enum(RequestStatus), nullable=False, default=RequestStatus.PENDING, index=True
    )
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Snapshot of the listing, written only by the accept transition
    listing_donor_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    listing_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    listing_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    listing_quantity: Mapped[str | None] = mapped_column(String(100), nullable=True)
    listing_category: Mapped[ListingCategory | None] = mapped_column(str_enum(ListingCategory), nullable=True)
    listing_location_text: Mapped[str | None] = mapped_column(String(255), nullable=True)
    listing_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    listing_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    listing_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    listing_expiry_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
