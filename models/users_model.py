from pydantic import BaseModel, EmailStr, Field

class UserResponse(BaseModel):
    """Public profile returned to clients (users/{uid} without credentials)"""
    uid: str
    email: EmailStr
    profile_image_url: str = Field(alias="profileImageURL")

    # model_config helps with API docs
    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "examples": [
                {
                    "uid": "507f1f77bcf86cd799439011",
                    "email": "jane@example.com",
                    "profileImageURL": "http://localhost:8000/storage/avatars/507f1f77bcf86cd799439011"
                }
            ]
        }
    }
