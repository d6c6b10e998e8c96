"""In-process change feed: committed writes fan out to subscriptions as added/modified/removed events.

Stores record events on the session. A commit moves them to the session's committed list,
a rollback drops them; Database.session() publishes the committed list when the unit of
work ends, so a rolled back write is never observed by a live view.
"""
import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

PENDING_EVENTS_KEY = "foodlink.change_events.pending"
COMMITTED_EVENTS_KEY = "foodlink.change_events.committed"


class ChangeKind(str, enum.Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    collection: str
    id: int
    # Scoping attributes (donor_id, status, listing_id, receiver_id ...) for subscription filters
    attrs: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "collection": self.collection, "id": self.id}


Predicate = Callable[[ChangeEvent], bool]

_CLOSED = object()


def record_change(db: AsyncSession, event: ChangeEvent) -> None:
    """Queue an event on the session; published once the transaction commits."""
    db.info.setdefault(PENDING_EVENTS_KEY, []).append(event)


def take_committed(db: AsyncSession) -> list[ChangeEvent]:
    db.info.pop(PENDING_EVENTS_KEY, None)
    return db.info.pop(COMMITTED_EVENTS_KEY, [])


@sa_event.listens_for(Session, "after_commit")
def _promote_pending(session: Session) -> None:
    pending = session.info.pop(PENDING_EVENTS_KEY, None)
    if pending:
        session.info.setdefault(COMMITTED_EVENTS_KEY, []).extend(pending)


@sa_event.listens_for(Session, "after_rollback")
def _drop_pending(session: Session) -> None:
    session.info.pop(PENDING_EVENTS_KEY, None)


class Subscription:
    """Async iterator over matching events. The consumer owns it and must close() it."""

    def __init__(self, feed: "ChangeFeed", predicate: Predicate | None = None) -> None:
        self._feed = feed
        self._predicate = predicate
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def offer(self, event: ChangeEvent) -> None:
        if self.closed:
            return
        if self._predicate is not None and not self._predicate(event):
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed.unsubscribe(self)
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()


class ChangeFeed:
    """Holds live subscriptions; one per open view (WebSocket, test consumer ...)."""

    def __init__(self) -> None:
        self._subscriptions: set[Subscription] = set()

    def subscribe(self, predicate: Predicate | None = None) -> Subscription:
        subscription = Subscription(self, predicate)
        self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            subscription.offer(event)

    def publish_many(self, events: list[ChangeEvent]) -> None:
        for event in events:
            self.publish(event)
        if events:
            logger.debug("Published %d change events to %d subscriptions", len(events), self.subscriber_count)

    def close(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()
