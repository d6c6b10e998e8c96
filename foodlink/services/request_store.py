"""Request persistence: CRUD over the requests table plus scoped change-feed subscriptions."""
import logging
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.errors import Conflict
from foodlink.models.request import FoodRequest, RequestStatus
from foodlink.services.change_feed import ChangeEvent, ChangeFeed, ChangeKind, Subscription, record_change

logger = logging.getLogger(__name__)

COLLECTION = "requests"

DECIDED = (RequestStatus.ACCEPTED, RequestStatus.REJECTED)


def _event(kind: ChangeKind, req: FoodRequest) -> ChangeEvent:
    return ChangeEvent(
        kind=kind,
        collection=COLLECTION,
        id=req.id,
        attrs={
            "listing_id": req.listing_id,
            "receiver_id": req.receiver_id,
            "listing_donor_id": req.listing_donor_id,
            "status": req.status,
        },
    )


async def get_request(db: AsyncSession, request_id: int, for_update: bool = False) -> FoodRequest | None:
    q = select(FoodRequest).where(FoodRequest.id == request_id)
    if for_update:
        q = q.with_for_update()
    result = await db.execute(q)
    return result.scalar_one_or_none()


async def find_pending(db: AsyncSession, listing_id: int, receiver_id: int) -> FoodRequest | None:
    result = await db.execute(
        select(FoodRequest)
        .where(FoodRequest.listing_id == listing_id)
        .where(FoodRequest.receiver_id == receiver_id)
        .where(FoodRequest.status == RequestStatus.PENDING)
    )
    return result.scalars().first()


async def list_requests(
    db: AsyncSession,
    listing_id: int | None = None,
    receiver_id: int | None = None,
    status: RequestStatus | None = None,
) -> list[FoodRequest]:
    """Newest first; equality filters on listing, receiver and status."""
    q = select(FoodRequest)
    if listing_id is not None:
        q = q.where(FoodRequest.listing_id == listing_id)
    if receiver_id is not None:
        q = q.where(FoodRequest.receiver_id == receiver_id)
    if status is not None:
        q = q.where(FoodRequest.status == status)
    q = q.order_by(FoodRequest.requested_at.desc(), FoodRequest.id.desc())
    result = await db.execute(q)
    return list(result.scalars().all())


async def list_requests_for_donor(db: AsyncSession, donor_id: int, listing_ids: list[int]) -> list[FoodRequest]:
    """Requests on the donor's live listings, plus decided ones whose accept snapshot names this donor."""
    snapshot_owned = and_(
        FoodRequest.status.in_(DECIDED),
        FoodRequest.listing_title.is_not(None),
        FoodRequest.listing_donor_id == donor_id,
    )
    conditions = [snapshot_owned]
    if listing_ids:
        conditions.append(FoodRequest.listing_id.in_(listing_ids))
    q = (
        select(FoodRequest)
        .where(or_(*conditions))
        .order_by(FoodRequest.requested_at.desc(), FoodRequest.id.desc())
    )
    result = await db.execute(q)
    return list(result.scalars().all())


async def add_request(db: AsyncSession, req: FoodRequest) -> FoodRequest:
    """Insert; the partial unique index turns a concurrent duplicate into Conflict."""
    db.add(req)
    try:
        await db.flush()
    except IntegrityError:
        logger.warning("Duplicate pending request for listing %s by user %s", req.listing_id, req.receiver_id)
        raise Conflict("You already have a pending request for this listing")
    await db.refresh(req)
    record_change(db, _event(ChangeKind.ADDED, req))
    return req


async def compare_and_set_status(
    db: AsyncSession,
    req: FoodRequest,
    expected: RequestStatus,
    new_status: RequestStatus,
    **values: Any,
) -> bool:
    """Conditional update: only applies if the row is still in `expected`. False when another writer won."""
    result = await db.execute(
        update(FoodRequest)
        .where(FoodRequest.id == req.id)
        .where(FoodRequest.status == expected)
        .values(status=new_status, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    await db.refresh(req)
    record_change(db, _event(ChangeKind.MODIFIED, req))
    return True


def subscribe(
    feed: ChangeFeed,
    receiver_id: int | None = None,
    listing_id: int | None = None,
) -> Subscription:
    def matches(event: ChangeEvent) -> bool:
        if event.collection != COLLECTION:
            return False
        if receiver_id is not None and event.attrs.get("receiver_id") != receiver_id:
            return False
        if listing_id is not None and event.attrs.get("listing_id") != listing_id:
            return False
        return True

    return feed.subscribe(matches)
