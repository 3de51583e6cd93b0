from typing import Optional

from fastapi import HTTPException, status

from logger.logger import logger
from mappers.messages_mapper import message_db_to_document, recent_db_to_document
from models.enums import ChangeKind
from repos.message_repo import MessageRepository
from repos.recent_message_repo import RecentMessageRepository
from services.change_feed import ChangeFeed, Subscription


class ConversationListener:
    """
    Opens live subscriptions on a message partition or a recent-conversation index.

    A fresh subscription carries the current snapshot (``subscription.snapshot``)
    and then yields incremental change events. A resumed one carries no
    snapshot and yields the retained events after the resume token first.
    Raises ResumeExpired when the token falls outside the replay window or
    was issued by another feed instance.
    """

    def __init__(self, message_repo: MessageRepository, recent_repo: RecentMessageRepository, feed: ChangeFeed):
        self.message_repo = message_repo
        self.recent_repo = recent_repo
        self.feed = feed

    async def subscribe_messages(self, owner_id: str, peer_id: str,
                                 resume_after: Optional[str] = None) -> Subscription:
        """Subscribe to messages/{owner_id}/{peer_id}, oldest first"""
        if owner_id == peer_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot listen to a conversation with yourself")

        subscription = self.feed.subscribe(ChangeKind.MESSAGE, owner_id, peer_id, resume_after=resume_after)
        if subscription.resumed:
            return subscription

        try:
            messages = await self.message_repo.get_messages(owner_id, peer_id)
        except Exception:
            subscription.cancel()
            raise
        subscription.snapshot = [message_db_to_document(m) for m in messages]
        subscription.release()
        logger.info(f"Listening to messages/{owner_id}/{peer_id} from {len(messages)} messages")
        return subscription

    async def subscribe_recent(self, owner_id: str, resume_after: Optional[str] = None) -> Subscription:
        """Subscribe to recent_messages/{owner_id}, newest activity first"""
        subscription = self.feed.subscribe(ChangeKind.RECENT, owner_id, resume_after=resume_after)
        if subscription.resumed:
            return subscription

        try:
            entries = await self.recent_repo.get_recent_messages(owner_id)
        except Exception:
            subscription.cancel()
            raise
        subscription.snapshot = [recent_db_to_document(e) for e in entries]
        subscription.release()
        logger.info(f"Listening to recent_messages/{owner_id} from {len(entries)} conversations")
        return subscription
