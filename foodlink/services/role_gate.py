"""Role gate: the single place that decides who may do what to a listing or a request.

Pure predicates over (viewer, entity); state checks (pending, expired ...) stay in the
state machine. Endpoints never compare role strings themselves.
"""
import enum
from dataclasses import dataclass

from foodlink.errors import NotPermitted
from foodlink.models.listing import Listing, ListingStatus
from foodlink.models.request import FoodRequest
from foodlink.models.user import User, UserRole


class Role(str, enum.Enum):
    DONOR = "donor"
    RECEIVER = "receiver"
    UNASSIGNED = "unassigned"
    ANONYMOUS = "anonymous"


class Action(str, enum.Enum):
    VIEW = "view"
    EDIT = "edit"
    DELETE = "delete"
    REQUEST = "request"
    ACCEPT = "accept"
    REJECT = "reject"


_USER_ROLES = {
    UserRole.DONOR: Role.DONOR,
    UserRole.RECEIVER: Role.RECEIVER,
    UserRole.UNASSIGNED: Role.UNASSIGNED,
}


@dataclass(frozen=True)
class Viewer:
    uid: int | None
    role: Role
    name: str | None = None

    @classmethod
    def anonymous(cls) -> "Viewer":
        return cls(uid=None, role=Role.ANONYMOUS)

    @classmethod
    def from_user(cls, user: User) -> "Viewer":
        return cls(uid=user.id, role=_USER_ROLES.get(user.role, Role.UNASSIGNED), name=user.name)

    @property
    def is_donor(self) -> bool:
        return self.role is Role.DONOR and self.uid is not None

    @property
    def is_receiver(self) -> bool:
        return self.role is Role.RECEIVER and self.uid is not None


def listing_actions(viewer: Viewer, listing: Listing) -> frozenset[Action]:
    available = listing.status == ListingStatus.AVAILABLE
    owner = viewer.uid is not None and viewer.uid == listing.donor_id
    if viewer.is_donor and owner:
        return frozenset({Action.VIEW, Action.EDIT, Action.DELETE})
    if not available:
        return frozenset()
    if viewer.is_receiver and not owner:
        return frozenset({Action.VIEW, Action.REQUEST})
    return frozenset({Action.VIEW})


def request_actions(viewer: Viewer, req: FoodRequest, listing_donor_id: int | None) -> frozenset[Action]:
    """listing_donor_id: owner of the live listing, or None once it is gone (snapshot owner is used then)."""
    if viewer.uid is None:
        return frozenset()
    owner_id = listing_donor_id if listing_donor_id is not None else req.listing_donor_id
    if viewer.is_donor and owner_id == viewer.uid:
        return frozenset({Action.VIEW, Action.ACCEPT, Action.REJECT})
    if viewer.is_receiver and req.receiver_id == viewer.uid:
        return frozenset({Action.VIEW})
    return frozenset()


def require_listing_action(viewer: Viewer, listing: Listing, action: Action) -> None:
    if action in listing_actions(viewer, listing):
        return
    if action is Action.REQUEST:
        if viewer.uid is not None and viewer.uid == listing.donor_id:
            raise NotPermitted("You cannot request your own listing")
        if not viewer.is_receiver:
            raise NotPermitted("Only receivers can request food")
        raise NotPermitted("This listing is no longer available")
    raise NotPermitted("Only the donor who posted this listing can change it")


def require_request_action(
    viewer: Viewer,
    req: FoodRequest,
    listing_donor_id: int | None,
    action: Action,
) -> None:
    if action not in request_actions(viewer, req, listing_donor_id):
        raise NotPermitted("Only the donor who owns this listing can decide on its requests")


def require_donor(viewer: Viewer, message: str = "Only donors can do this") -> None:
    if not viewer.is_donor:
        raise NotPermitted(message)


def require_receiver(viewer: Viewer, message: str = "Only receivers can do this") -> None:
    if not viewer.is_receiver:
        raise NotPermitted(message)


def home_feed_donor_scope(viewer: Viewer) -> int | None:
    """Donors only see their own offers in the public feed; everyone else sees all donors'."""
    return viewer.uid if viewer.is_donor else None


def can_assign_role(current: UserRole) -> bool:
    return current == UserRole.UNASSIGNED
