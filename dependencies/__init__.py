"""
Import common dependencies to make them available from the package level.
This allows imports like: from dependencies import get_current_user
"""
from .auth import get_current_user, get_auth_service
from .db import get_db, get_object_storage
from .user import get_user_repository, get_user_service
from .message import get_message_service, get_conversation_listener, get_feed
