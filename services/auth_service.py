from fastapi import HTTPException, status
from typing import Optional
from datetime import datetime, timezone, timedelta
import jwt

from utils.security import verify_password
from repos.user_repo import UserRepository
from mappers.users_mapper import user_db_to_response
from models.auth_model import Token, TokenData
from db.schemas.users_schema import UserInDB
from logger.logger import logger
from config import (
    JWT_SECRET_KEY,
    JWT_ALGORITHM,
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES
)

INVALID_CREDENTIALS = "Invalid email or password"

class AuthService:
    """
    Service layer for authentication-related operations
    Handles login and token issuing/validation
    """

    def __init__(self, user_repository: UserRepository):
        self.user_repo = user_repository

    async def login(self, email: str, password: str) -> Token:
        """
        Authenticate a user with email and password
        Bad credentials are reported with one message, whichever part was wrong
        """
        user_db = await self.user_repo.find_by_email(email)

        if not user_db or not verify_password(password, user_db.password_hash):
            logger.info(f"Failed login for {email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=INVALID_CREDENTIALS,
                headers={"WWW-Authenticate": "Bearer"},
            )

        access_token = self.create_access_token(
            TokenData(uid=user_db.uid, email=user_db.email),
            expires_delta=timedelta(minutes=JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        logger.info(f"Successfully logged in user {user_db.uid}")

        return Token(
            access_token=access_token,
            token_type="bearer",
            user=user_db_to_response(user_db)
        )

    def create_access_token(self, data: TokenData, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token."""
        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(minutes=15)

        token_data = {
            "sub": data.uid,
            "email": data.email,
            "exp": expire
        }
        return jwt.encode(token_data, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    async def get_user_from_token(self, token: str) -> UserInDB:
        """Decode a bearer token and load its user"""
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
            uid: str = payload.get("sub")
            if uid is None:
                raise credentials_exception
        except jwt.PyJWTError:
            raise credentials_exception

        user = await self.user_repo.find_by_uid(uid)
        if user is None:
            raise credentials_exception
        return user
