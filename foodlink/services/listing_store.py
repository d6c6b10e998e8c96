"""Listing persistence: CRUD over the listings table plus scoped change-feed subscriptions."""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.models.listing import Listing, ListingStatus
from foodlink.services.change_feed import ChangeEvent, ChangeFeed, ChangeKind, Subscription, record_change

COLLECTION = "listings"


def _event(kind: ChangeKind, listing: Listing) -> ChangeEvent:
    return ChangeEvent(
        kind=kind,
        collection=COLLECTION,
        id=listing.id,
        attrs={"donor_id": listing.donor_id, "status": listing.status},
    )


async def get_listing(db: AsyncSession, listing_id: int, for_update: bool = False) -> Listing | None:
    q = select(Listing).where(Listing.id == listing_id)
    if for_update:
        q = q.with_for_update()
    result = await db.execute(q)
    return result.scalar_one_or_none()


async def list_listings(
    db: AsyncSession,
    donor_id: int | None = None,
    status: ListingStatus | None = None,
) -> list[Listing]:
    """Newest first; equality filters on donor and status."""
    q = select(Listing)
    if donor_id is not None:
        q = q.where(Listing.donor_id == donor_id)
    if status is not None:
        q = q.where(Listing.status == status)
    q = q.order_by(Listing.created_at.desc(), Listing.id.desc())
    result = await db.execute(q)
    return list(result.scalars().all())


async def add_listing(db: AsyncSession, listing: Listing) -> Listing:
    db.add(listing)
    await db.flush()
    await db.refresh(listing)
    record_change(db, _event(ChangeKind.ADDED, listing))
    return listing


async def save_listing(db: AsyncSession, listing: Listing) -> Listing:
    await db.flush()
    await db.refresh(listing)
    record_change(db, _event(ChangeKind.MODIFIED, listing))
    return listing


async def delete_listing(db: AsyncSession, listing: Listing) -> bool:
    """Delete by id. Returns False (no error) when another writer already removed it."""
    event = _event(ChangeKind.REMOVED, listing)
    result = await db.execute(delete(Listing).where(Listing.id == listing.id))
    if not result.rowcount:
        return False
    record_change(db, event)
    return True


def subscribe(
    feed: ChangeFeed,
    donor_id: int | None = None,
    status: ListingStatus | None = None,
) -> Subscription:
    def matches(event: ChangeEvent) -> bool:
        if event.collection != COLLECTION:
            return False
        if donor_id is not None and event.attrs.get("donor_id") != donor_id:
            return False
        if status is not None and event.attrs.get("status") != status:
            return False
        return True

    return feed.subscribe(matches)
