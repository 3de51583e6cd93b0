from fastapi import APIRouter, Response

from dependencies.db import AvatarStorage
from services.minio_service import AVATAR_CONTENT_TYPE, read_avatar

router = APIRouter()

@router.get("/avatars/{uid}")
async def get_avatar(uid: str, minio_client: AvatarStorage):
    """Serve the avatar image of a user"""
    data = read_avatar(minio_client, uid)
    return Response(
        content=data,
        media_type=AVATAR_CONTENT_TYPE,
        headers={"Content-Disposition": f"inline; filename=\"{uid}.jpg\""}
    )
