"""FAQ chatbot endpoint. Every exchange is logged; a failed log write never breaks the reply."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError

from foodlink.database import get_database
from foodlink.deps import get_optional_viewer
from foodlink.models.chat_log import ChatbotLog
from foodlink.schemas.chat import ChatRequest, ChatResponse
from foodlink.services.chatbot import reply_for
from foodlink.services.role_gate import Viewer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    request: Request,
    viewer: Viewer = Depends(get_optional_viewer),
):
    """Answer a message with the first matching FAQ entry: { reply, intent }."""
    if not isinstance(body.message, str) or not body.message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid message")
    try:
        answer = reply_for(body.message)
    except Exception:
        logger.exception("Chatbot failed on message %r", body.message)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="chat_failed")
    try:
        async with get_database(request).session() as db:
            db.add(
                ChatbotLog(
                    session_id=body.session_id,
                    user_id=viewer.uid,
                    message=body.message,
                    response=answer.reply,
                    intent=answer.intent,
                )
            )
    except SQLAlchemyError:
        logger.warning("Could not log chatbot exchange", exc_info=True)
    return ChatResponse(reply=answer.reply, intent=answer.intent)
