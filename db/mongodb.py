# centralizes MongoDB utilities
from typing import Dict, Any, Optional

from bson import ObjectId

# Collection names mirror the top-level segment of each document path
USERS_COLLECTION = "users"
MESSAGES_COLLECTION = "messages"
RECENT_MESSAGES_COLLECTION = "recent_messages"


def new_uid() -> str:
    """Generate an opaque user identifier"""
    return str(ObjectId())


def message_path(owner_id: str, peer_id: str, message_id: str) -> str:
    return f"{MESSAGES_COLLECTION}/{owner_id}/{peer_id}/{message_id}"


def recent_message_key(owner_id: str, peer_id: str) -> str:
    """Document _id of the recent-conversation row for (owner, peer)"""
    return f"{owner_id}/{peer_id}"


def recent_message_path(owner_id: str, peer_id: str) -> str:
    return f"{RECENT_MESSAGES_COLLECTION}/{recent_message_key(owner_id, peer_id)}"


def strip_mongodb_id(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Drop the generated ObjectId of partition documents keyed by their own fields"""
    if document and isinstance(document.get("_id"), ObjectId):
        del document["_id"]
    return document
