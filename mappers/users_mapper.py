from models.users_model import UserResponse
from db.schemas.users_schema import UserInDB

def user_db_to_response(user_db: UserInDB) -> UserResponse:
    """Convert database user schema to API response model"""
    return UserResponse(
        uid=user_db.uid,
        email=user_db.email,
        profile_image_url=user_db.profile_image_url
    )
