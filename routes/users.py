from typing import List, Optional

from fastapi import APIRouter

from dependencies.auth import CurrentUser
from dependencies.user import UserServiceDep
from mappers.users_mapper import user_db_to_response
from models.users_model import UserResponse

router = APIRouter()

@router.get("/me", response_model=UserResponse)
async def read_users_me(current_user: CurrentUser):
    """Get the current user's profile"""
    return user_db_to_response(current_user)

@router.get("", response_model=List[UserResponse])
async def list_users(
    current_user: CurrentUser,
    user_service: UserServiceDep,
    excluding: Optional[str] = None
):
    """
    List conversation partners

    Excludes the current user unless another uid is given
    """
    return await user_service.list_users(excluding=excluding or current_user.uid)

@router.get("/{uid}", response_model=UserResponse)
async def get_user(uid: str, current_user: CurrentUser, user_service: UserServiceDep):
    """Resolve a user id to its public profile"""
    return await user_service.resolve_user(uid)
