from typing import List, Optional

from fastapi import HTTPException, status
from minio import Minio
from pymongo.errors import DuplicateKeyError

from db.mongodb import new_uid
from db.schemas.users_schema import UserInDB
from logger.logger import logger
from mappers.users_mapper import user_db_to_response
from models.users_model import UserResponse
from repos.user_repo import UserRepository
from services import minio_service
from utils.security import get_password_hash

MIN_PASSWORD_LENGTH = 6

class UserService:
    """
    Service layer for user-related operations
    Registration, point lookup and partner listing
    """

    def __init__(self, user_repository: UserRepository):
        self.user_repo = user_repository

    async def register(self, email: str, password: str, avatar: Optional[bytes], minio_client: Minio) -> UserResponse:
        """
        Create an account: validate, upload the avatar, then write users/{uid}

        The user document is only written once the avatar is stored
        """
        if not avatar:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You must select an avatar image")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        existing_email = await self.user_repo.find_by_email(email)
        if existing_email:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

        try:
            avatar_data = minio_service.process_avatar(avatar)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        uid = new_uid()
        profile_image_url = await minio_service.upload_avatar(minio_client, uid, avatar_data)

        user = UserInDB(
            uid=uid,
            email=email,
            profile_image_url=profile_image_url,
            password_hash=get_password_hash(password)
        )
        try:
            created_user = await self.user_repo.create_user(user)
        except DuplicateKeyError:
            # Another registration for this email won the unique index
            logger.info(f"Email already registered concurrently, discarding avatar of {uid}")
            minio_service.delete_avatar(minio_client, uid)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")
        logger.info(f"Registered user {created_user.uid}")
        return user_db_to_response(created_user)

    async def resolve_user(self, uid: str) -> UserResponse:
        """Point lookup of a user profile"""
        user = await self.user_repo.find_by_uid(uid)
        if not user:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        return user_db_to_response(user)

    async def list_users(self, excluding: Optional[str] = None) -> List[UserResponse]:
        """Users available as conversation partners"""
        users = await self.user_repo.list_users(excluding=excluding)
        return [user_db_to_response(user) for user in users]
