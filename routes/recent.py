from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException, status
from fastapi.responses import StreamingResponse

from config import FEED_KEEPALIVE_SECONDS
from dependencies.auth import CurrentUser
from dependencies.message import ConversationListenerDep, MessageServiceDep
from logger.logger import logger
from models.message_model import RecentMessageResponse
from services.change_feed import ResumeExpired
from utils.sse import event_stream, parse_last_event_id

router = APIRouter()

@router.get("", response_model=List[RecentMessageResponse])
async def get_recent_messages(
    current_user: CurrentUser,
    message_service: MessageServiceDep,
    owner: Optional[str] = None
):
    """Get the current user's conversations, most recent activity first"""
    if owner is not None and owner != current_user.uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot read another user's conversations")
    return await message_service.get_recent_messages(current_user.uid)

@router.get("/stream")
async def stream_recent_messages(
    current_user: CurrentUser,
    listener: ConversationListenerDep,
    last_event_id: Optional[str] = Header(None)
):
    """Server-Sent Events stream of the current user's recent conversations"""
    resume_after = parse_last_event_id(last_event_id)
    try:
        subscription = await listener.subscribe_recent(current_user.uid, resume_after=resume_after)
    except ResumeExpired as e:
        logger.info(f"Resume failed for recent_messages/{current_user.uid}: {e}")
        subscription = await listener.subscribe_recent(current_user.uid)

    return StreamingResponse(
        event_stream(subscription, FEED_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-store"}
    )
