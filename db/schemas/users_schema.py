from pydantic import BaseModel, Field, EmailStr
from datetime import datetime
from utils.time import get_current_utc_time
from db.mongodb import new_uid

class UserInDB(BaseModel):
    """Database representation of a users/{uid} document"""
    uid: str = Field(default_factory=new_uid, alias="_id")
    email: EmailStr
    profile_image_url: str = Field(alias="profileImageURL")
    password_hash: str

    # Metadata
    created_at: datetime = Field(default_factory=get_current_utc_time)

    model_config = {
        "populate_by_name": True,
    }

    def to_document(self) -> dict:
        """Mongo document; uid is stored both as _id and as a plain field"""
        document = self.model_dump(by_alias=True)
        document["uid"] = self.uid
        return document
