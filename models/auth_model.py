from typing import Optional
from pydantic import BaseModel
from models.users_model import UserResponse

class Token(BaseModel):
    access_token: str
    token_type: str
    user: Optional[UserResponse] = None

class TokenData(BaseModel):
    uid: Optional[str] = None
    email: Optional[str] = None
