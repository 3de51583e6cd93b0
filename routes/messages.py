from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse

from config import FEED_KEEPALIVE_SECONDS, MESSAGES_PAGE_LIMIT
from dependencies.auth import CurrentUser
from dependencies.message import ConversationListenerDep, MessageServiceDep
from logger.logger import logger
from models.enums import SendStatus
from models.message_model import MessageCreate, MessageResponse, SendOutcome
from services.change_feed import ResumeExpired
from utils.sse import event_stream, parse_last_event_id

router = APIRouter()

SEND_STATUS_CODES = {
    SendStatus.DELIVERED: status.HTTP_201_CREATED,
    SendStatus.PARTIAL: status.HTTP_207_MULTI_STATUS,
    SendStatus.FAILED: status.HTTP_502_BAD_GATEWAY,
}

def ensure_owner(owner: Optional[str], current_user) -> str:
    """Partitions are only readable by their owner"""
    if owner is not None and owner != current_user.uid:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Cannot read another user's messages")
    return current_user.uid

@router.post(
    "",
    response_model=SendOutcome,
    status_code=status.HTTP_201_CREATED,
    responses={207: {"model": SendOutcome}, 502: {"model": SendOutcome}}
)
async def send_message(
    message: MessageCreate,
    response: Response,
    current_user: CurrentUser,
    message_service: MessageServiceDep
):
    """
    Send a message to another user

    201 when all four writes landed, 207 when the sender's copy exists but the
    recipient side is incomplete, 502 when nothing was written. Re-send with
    the same messageId to repair a 207.
    """
    outcome = await message_service.send_message(current_user, message)
    response.status_code = SEND_STATUS_CODES[outcome.status]
    return outcome

@router.get("", response_model=List[MessageResponse])
async def get_messages(
    peer: str,
    current_user: CurrentUser,
    message_service: MessageServiceDep,
    owner: Optional[str] = None,
    limit: int = Query(MESSAGES_PAGE_LIMIT, ge=1, le=MESSAGES_PAGE_LIMIT)
):
    """Get the messages exchanged with peer, oldest first"""
    owner_id = ensure_owner(owner, current_user)
    return await message_service.get_messages(owner_id, peer, limit)

@router.get("/stream")
async def stream_messages(
    peer: str,
    current_user: CurrentUser,
    listener: ConversationListenerDep,
    last_event_id: Optional[str] = Header(None)
):
    """
    Server-Sent Events stream of the conversation with peer

    Sends a snapshot frame then insert/update/delete frames. Reconnects that
    send Last-Event-ID resume from the retained window, or get a new snapshot.
    """
    resume_after = parse_last_event_id(last_event_id)
    try:
        subscription = await listener.subscribe_messages(current_user.uid, peer, resume_after=resume_after)
    except ResumeExpired as e:
        logger.info(f"Resume failed for messages/{current_user.uid}/{peer}: {e}")
        subscription = await listener.subscribe_messages(current_user.uid, peer)

    return StreamingResponse(
        event_stream(subscription, FEED_KEEPALIVE_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-store"}
    )
