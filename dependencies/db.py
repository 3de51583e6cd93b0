# dependencies/db.py
from typing import Annotated

from fastapi import Depends
from minio import Minio
from motor.motor_asyncio import AsyncIOMotorDatabase

async def get_db() -> AsyncIOMotorDatabase:
    """
    Dependency for the users, messages and recent_messages collections.
    Answers 503 when MongoDB cannot be reached.
    """
    from db.db import get_db as db_connection
    return await db_connection()

async def get_object_storage() -> Minio:
    """
    Dependency for the MinIO client holding the avatar bucket.
    """
    from db.db import get_object_storage as object_storage
    return await object_storage()

Database = Annotated[AsyncIOMotorDatabase, Depends(get_db)]
AvatarStorage = Annotated[Minio, Depends(get_object_storage)]
