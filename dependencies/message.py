from fastapi import Depends
from typing import Annotated

from repos.message_repo import MessageRepository
from repos.recent_message_repo import RecentMessageRepository
from services.change_feed import ChangeFeed, get_change_feed
from services.listener_service import ConversationListener
from services.message_service import MessageService
from .db import Database
from .user import get_user_repository

def get_message_repository(db: Database):
    """
    Dependency to get a message repository instance.
    """
    return MessageRepository(db)

def get_recent_message_repository(db: Database):
    """
    Dependency to get a recent-conversation repository instance.
    """
    return RecentMessageRepository(db)

def get_feed() -> ChangeFeed:
    """
    Dependency to get the process-wide change feed.
    """
    return get_change_feed()

def get_message_service(
    message_repo = Depends(get_message_repository),
    recent_repo = Depends(get_recent_message_repository),
    user_repo = Depends(get_user_repository),
    feed = Depends(get_feed)
):
    """
    Dependency to get a message service instance.
    """
    return MessageService(message_repo, recent_repo, user_repo, feed)

def get_conversation_listener(
    message_repo = Depends(get_message_repository),
    recent_repo = Depends(get_recent_message_repository),
    feed = Depends(get_feed)
):
    """
    Dependency to get a conversation listener instance.
    """
    return ConversationListener(message_repo, recent_repo, feed)

MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]
ConversationListenerDep = Annotated[ConversationListener, Depends(get_conversation_listener)]
