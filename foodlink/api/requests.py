"""Request routes: donor inbox, receiver's requests, accept/reject, contact exchange."""
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from foodlink.api.listings import request_to_response
from foodlink.database import get_db
from foodlink.deps import get_viewer
from foodlink.schemas.request import ContactResponse, InboxResponse, RequestDecision, RequestResponse
from foodlink.services import matcher, state_machine
from foodlink.services.matcher import RequestView
from foodlink.services.role_gate import Viewer

router = APIRouter(prefix="/requests", tags=["requests"])


@router.get("/inbox", response_model=InboxResponse)
async def donor_inbox(
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Requests on your listings: pending ones to decide, decided ones as history."""
    inbox = await matcher.donor_inbox(db, viewer)
    return InboxResponse(
        active=[request_to_response(v) for v in inbox.active],
        history=[request_to_response(v) for v in inbox.history],
    )


@router.get("/mine", response_model=list[RequestResponse])
async def my_requests(
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Receiver's own requests, newest first."""
    views = await matcher.receiver_requests(db, viewer)
    return [request_to_response(v) for v in views]


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    view = await matcher.request_detail(db, viewer, request_id)
    return request_to_response(view)


@router.post("/{request_id}/accept", response_model=RequestResponse)
async def accept_request(
    request_id: int,
    body: RequestDecision | None = Body(default=None),
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Accept a pending request: snapshots the listing onto the request and removes the listing."""
    listing_id = body.listing_id if body else None
    req = await state_machine.accept_request(db, viewer, request_id, listing_id)
    return request_to_response(RequestView(request=req))


@router.post("/{request_id}/reject", response_model=RequestResponse)
async def reject_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """Reject a pending request. The listing stays available."""
    req = await state_machine.reject_request(db, viewer, request_id)
    view = await matcher.request_detail(db, viewer, req.id)
    return request_to_response(view)


@router.get("/{request_id}/contact", response_model=ContactResponse)
async def request_contact(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    viewer: Viewer = Depends(get_viewer),
):
    """The other party's name, email and phone, once the request is accepted."""
    card = await matcher.request_contact(db, viewer, request_id)
    return ContactResponse(user_id=card.user_id, role=card.role, name=card.name, email=card.email, phone=card.phone)
