# dependencies/auth.py
from fastapi import Depends
from typing import Annotated

from config import oauth2_scheme
from db.schemas.users_schema import UserInDB
from services.auth_service import AuthService
from dependencies.user import get_user_repository

def get_auth_service(user_repo = Depends(get_user_repository)):
    """
    Dependency to get an auth service instance.
    """
    return AuthService(user_repo)

async def get_current_user(
    token: str = Depends(oauth2_scheme),
    auth_service: AuthService = Depends(get_auth_service)
) -> UserInDB:
    """Get the current authenticated user from the JWT token."""
    return await auth_service.get_user_from_token(token)

# Create annotated types for cleaner dependency injection
CurrentUser = Annotated[UserInDB, Depends(get_current_user)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
