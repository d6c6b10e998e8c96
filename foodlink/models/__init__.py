from foodlink.models.base import Base
from foodlink.models.chat_log import ChatbotLog
from foodlink.models.listing import Listing, ListingCategory, ListingStatus
from foodlink.models.request import FoodRequest, RequestStatus
from foodlink.models.user import User, UserRole

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Listing",
    "ListingCategory",
    "ListingStatus",
    "FoodRequest",
    "RequestStatus",
    "ChatbotLog",
]
