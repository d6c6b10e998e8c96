"""User model: account, role and the contact details revealed after an accepted request."""
import enum
from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from foodlink.models.base import Base, str_enum


class UserRole(str, enum.Enum):
    DONOR = "donor"
    RECEIVER = "receiver"
    # Signed up but onboarding not finished; may be set once to donor or receiver.
    UNASSIGNED = "unassigned"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[UserRole] = mapped_column(str_enum(UserRole), nullable=False, default=UserRole.UNASSIGNED)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
