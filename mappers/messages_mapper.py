from typing import Any, Dict

from db.schemas.messages_schema import MessageInDB, RecentMessageInDB
from models.message_model import MessageResponse, RecentMessageResponse

def message_db_to_response(message_db: MessageInDB) -> MessageResponse:
    """Convert one stored message copy to the API response model"""
    return MessageResponse(
        message_id=message_db.message_id,
        from_id=message_db.from_id,
        to_id=message_db.to_id,
        text=message_db.text,
        timestamp=message_db.timestamp
    )

def recent_db_to_response(entry_db: RecentMessageInDB) -> RecentMessageResponse:
    """Convert a recent_messages row to the API response model keyed by peer uid"""
    return RecentMessageResponse(
        id=entry_db.peer_id,
        text=entry_db.text,
        email=entry_db.email,
        from_id=entry_db.from_id,
        to_id=entry_db.to_id,
        profile_image_url=entry_db.profile_image_url,
        timestamp=entry_db.timestamp,
        status=entry_db.status,
        message_id=entry_db.message_id
    )

def message_db_to_document(message_db: MessageInDB) -> Dict[str, Any]:
    """Wire-form dict carried by message change events and snapshots"""
    return message_db_to_response(message_db).model_dump(by_alias=True)

def recent_db_to_document(entry_db: RecentMessageInDB) -> Dict[str, Any]:
    """Wire-form dict carried by recent change events and snapshots"""
    return recent_db_to_response(entry_db).model_dump(by_alias=True)
