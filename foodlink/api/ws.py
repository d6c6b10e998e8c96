"""WebSocket live views: the listings feed and the requests inbox, re-derived on every committed change."""
import asyncio
import logging
from typing import Any, Awaitable, Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from foodlink.api.listings import match_to_response, request_to_response, resolve_origin
from foodlink.auth.security import user_id_from_token
from foodlink.database import Database
from foodlink.errors import FoodLinkError
from foodlink.models.listing import ListingCategory
from foodlink.models.user import User
from foodlink.services import listing_store, matcher, request_store
from foodlink.services.change_feed import ChangeEvent, Subscription
from foodlink.services.role_gate import Viewer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])

Render = Callable[[], Awaitable[dict[str, Any]]]


async def _viewer_from_query(websocket: WebSocket, database: Database) -> Viewer | None:
    """Anonymous without ?token=; None (socket closed) when the token is bad."""
    token = websocket.query_params.get("token")
    if not token:
        return Viewer.anonymous()
    user_id = user_id_from_token(token)
    user = None
    if user_id is not None:
        async with database.session() as db:
            user = await db.get(User, user_id)
    if user is None:
        await websocket.close(code=4001)
        return None
    return Viewer.from_user(user)


def _optional_float(websocket: WebSocket, name: str) -> float | None:
    raw = websocket.query_params.get(name)
    return float(raw) if raw not in (None, "") else None


def _inbox_events(donor_id: int) -> Callable[[ChangeEvent], bool]:
    """Request changes not owned by another donor, plus changes to this donor's listings."""

    def matches(event: ChangeEvent) -> bool:
        if event.collection == request_store.COLLECTION:
            return event.attrs.get("listing_donor_id") in (None, donor_id)
        return event.collection == listing_store.COLLECTION and event.attrs.get("donor_id") == donor_id

    return matches


async def _pump(websocket: WebSocket, subscription: Subscription, render: Render) -> None:
    async for event in subscription:
        payload = await render()
        payload["change"] = event.to_message()
        await websocket.send_json(payload)


async def _receive_until_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


async def _close_with_error(websocket: WebSocket) -> None:
    await websocket.send_json({"type": "error", "detail": "Live view unavailable, please reconnect"})
    await websocket.close(code=status.WS_1011_INTERNAL_ERROR)


async def _stream(websocket: WebSocket, subscription: Subscription, render: Render) -> None:
    """
    Send the current view, then a fresh one after every change, until the client goes away.
    A failed render ends the stream with an error frame and close code 1011.
    """
    try:
        try:
            initial = await render()
        except Exception:
            logger.warning("Live view failed to render", exc_info=True)
            await _close_with_error(websocket)
            return
        initial["change"] = None
        await websocket.send_json(initial)

        pump = asyncio.create_task(_pump(websocket, subscription, render))
        receiver = asyncio.create_task(_receive_until_disconnect(websocket))
        done, pending = await asyncio.wait({pump, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if pump not in done:
            return
        error = pump.exception()
        if error is not None:
            logger.warning("Live view stopped with an error", exc_info=error)
        if receiver in done or isinstance(error, WebSocketDisconnect):
            return
        if error is None:
            # Feed closed on shutdown
            await websocket.close(code=status.WS_1001_GOING_AWAY)
            return
        await _close_with_error(websocket)
    finally:
        subscription.close()


@router.websocket("/ws/listings")
async def listings_ws(websocket: WebSocket):
    """
    Live home feed. Query: token (optional), category, max_distance_km, lat, lng.
    Server pushes { type: 'listings', items: [...], change: {kind, collection, id} | null }.
    """
    await websocket.accept()
    database: Database = websocket.app.state.database
    viewer = await _viewer_from_query(websocket, database)
    if viewer is None:
        return
    try:
        raw_category = websocket.query_params.get("category")
        category = ListingCategory(raw_category) if raw_category else None
        max_distance_km = _optional_float(websocket, "max_distance_km")
        origin = await resolve_origin(
            viewer, _optional_float(websocket, "lat"), _optional_float(websocket, "lng"), websocket.app.state.redis
        )
    except (ValueError, FoodLinkError):
        await websocket.close(code=4003)
        return

    async def render() -> dict[str, Any]:
        async with database.session() as db:
            matches = await matcher.home_feed(db, viewer, category, max_distance_km, origin)
        return {"type": "listings", "items": [match_to_response(m).model_dump(mode="json") for m in matches]}

    await _stream(websocket, listing_store.subscribe(database.feed), render)


@router.websocket("/ws/requests")
async def requests_ws(websocket: WebSocket):
    """
    Live requests view (?token= required). Donors get their inbox, receivers their own requests:
    { type: 'inbox', active, history } or { type: 'my_requests', items }.
    """
    await websocket.accept()
    database: Database = websocket.app.state.database
    viewer = await _viewer_from_query(websocket, database)
    if viewer is None:
        return
    if viewer.is_donor:
        subscription = database.feed.subscribe(_inbox_events(viewer.uid))

        async def render() -> dict[str, Any]:
            async with database.session() as db:
                inbox = await matcher.donor_inbox(db, viewer)
            return {
                "type": "inbox",
                "active": [request_to_response(v).model_dump(mode="json") for v in inbox.active],
                "history": [request_to_response(v).model_dump(mode="json") for v in inbox.history],
            }

    elif viewer.is_receiver:
        subscription = request_store.subscribe(database.feed, receiver_id=viewer.uid)

        async def render() -> dict[str, Any]:
            async with database.session() as db:
                views = await matcher.receiver_requests(db, viewer)
            return {"type": "my_requests", "items": [request_to_response(v).model_dump(mode="json") for v in views]}

    else:
        await websocket.close(code=4003)
        return
    await _stream(websocket, subscription, render)
