from pydantic import BaseModel, Field, computed_field
from typing import Optional, List
from datetime import datetime

from models.enums import SendStatus, WriteTarget

class MessageCreate(BaseModel):
    """Model for sending a new message"""
    to_id: str = Field(alias="toId")
    text: str
    # Filled from the token; when supplied it must match the caller
    from_id: Optional[str] = Field(default=None, alias="fromId")
    # Idempotency key; the server generates one when absent
    message_id: Optional[str] = Field(default=None, alias="messageId", min_length=1, max_length=128)

    model_config = {
        "populate_by_name": True,
    }

class MessageResponse(BaseModel):
    """Model for returning one message of a conversation"""
    message_id: str = Field(alias="messageId")
    from_id: str = Field(alias="fromId")
    to_id: str = Field(alias="toId")
    text: str
    timestamp: datetime

    model_config = {
        "populate_by_name": True,
    }

class RecentMessageResponse(BaseModel):
    """Model for one row of a user's recent conversations, id is the peer uid"""
    id: str
    text: str
    email: str
    from_id: str = Field(alias="fromId")
    to_id: str = Field(alias="toId")
    profile_image_url: str = Field(alias="profileImageURL")
    timestamp: datetime
    status: bool = True
    message_id: str = Field(alias="messageId")

    model_config = {
        "populate_by_name": True,
    }

class WriteResult(BaseModel):
    """Result of one of the four send-pipeline writes"""
    target: WriteTarget
    path: str
    ok: bool
    error: Optional[str] = None

class SendOutcome(BaseModel):
    """Per-write report of a send; status is never 'delivered' unless every write landed"""
    message_id: str = Field(alias="messageId")
    from_id: str = Field(alias="fromId")
    to_id: str = Field(alias="toId")
    text: str
    timestamp: Optional[datetime] = None
    status: SendStatus
    writes: List[WriteResult] = []

    model_config = {
        "populate_by_name": True,
    }

    @computed_field
    @property
    def error(self) -> Optional[str]:
        """Human-readable summary of failed writes"""
        failures = [f"{w.target.value}: {w.error}" for w in self.writes if not w.ok]
        if not failures:
            return None
        return "; ".join(failures)
