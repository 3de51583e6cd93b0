from typing import Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from pydantic import EmailStr

from dependencies.auth import AuthServiceDep
from dependencies.db import AvatarStorage
from dependencies.user import UserServiceDep
from models.auth_model import Token
from models.users_model import UserResponse

router = APIRouter()

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_service: UserServiceDep,
    minio_client: AvatarStorage,
    email: EmailStr = Form(...),
    password: str = Form(...),
    avatar: Optional[UploadFile] = File(None)
):
    """
    Create an account with an avatar image and return the public profile
    """
    try:
        avatar_data = await avatar.read() if avatar and avatar.filename else None
        return await user_service.register(email, password, avatar_data, minio_client)
    except HTTPException:
        # Re-raise HTTP exceptions to preserve status code and detail
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Registration error: {str(e)}"
        )

@router.post("/token", response_model=Token)
async def login_for_access_token(
    auth_service: AuthServiceDep,
    username: str = Form(...),
    password: str = Form(...)
):
    """
    Authenticate with email (sent as username) and password, return a JWT access token
    """
    try:
        return await auth_service.login(username, password)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Authentication error: {str(e)}"
        )
