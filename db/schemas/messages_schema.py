from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from db.mongodb import recent_message_key
from utils.time import ensure_utc


class MessageInDB(BaseModel):
    """One copy of a message, stored under messages/{ownerId}/{peerId}/{messageId}"""
    owner_id: str = Field(alias="ownerId")
    peer_id: str = Field(alias="peerId")
    message_id: str = Field(alias="messageId")
    from_id: str = Field(alias="fromId")
    to_id: str = Field(alias="toId")
    text: str
    timestamp: datetime

    model_config = {
        "populate_by_name": True,
    }

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)


class RecentMessageInDB(BaseModel):
    """
    Last-message summary stored under recent_messages/{ownerId}/{peerId}.

    email and profile_image_url describe the peer, so each participant's row
    shows the other side of the conversation.
    """
    owner_id: str = Field(alias="ownerId")
    peer_id: str = Field(alias="peerId")
    message_id: str = Field(alias="messageId")
    text: str
    email: str
    from_id: str = Field(alias="fromId")
    to_id: str = Field(alias="toId")
    profile_image_url: str = Field(alias="profileImageURL")
    timestamp: datetime
    status: bool = True

    model_config = {
        "populate_by_name": True,
    }

    @field_validator('timestamp')
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)

    @property
    def key(self) -> str:
        return recent_message_key(self.owner_id, self.peer_id)

    def to_document(self) -> dict:
        document = self.model_dump(by_alias=True)
        document["_id"] = self.key
        return document
