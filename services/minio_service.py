# services/minio_service.py
from typing import Tuple
import io

from fastapi import HTTPException, status
from minio import Minio
from minio.error import S3Error
from PIL import Image, UnidentifiedImageError

from config import settings
from logger.logger import logger

AVATAR_FOLDER = "avatars"
AVATAR_CONTENT_TYPE = "image/jpeg"


def avatar_object_name(uid: str) -> str:
    """Avatars are addressed by uid, one blob per user"""
    return f"{AVATAR_FOLDER}/{uid}"


def avatar_url(uid: str) -> str:
    """Public URL served by the storage route"""
    return f"{settings.PUBLIC_BASE_URL}/storage/{AVATAR_FOLDER}/{uid}"


def process_avatar(image_data: bytes, max_size: Tuple[int, int] = None, quality: int = None) -> bytes:
    """
    Normalise an uploaded avatar: RGB, bounded size, JPEG

    Raises ValueError when the bytes are not a readable image
    """
    if max_size is None:
        max_size = (settings.AVATAR_MAX_SIZE, settings.AVATAR_MAX_SIZE)
    if quality is None:
        quality = settings.AVATAR_JPEG_QUALITY

    try:
        image = Image.open(io.BytesIO(image_data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Avatar must be a valid image: {e}")

    # Flatten transparency onto white
    if image.mode in ('RGBA', 'LA'):
        background = Image.new('RGB', image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        image = background
    elif image.mode != 'RGB':
        image = image.convert('RGB')

    if image.size[0] > max_size[0] or image.size[1] > max_size[1]:
        image.thumbnail(max_size, Image.Resampling.LANCZOS)

    output = io.BytesIO()
    image.save(output, format='JPEG', quality=quality, optimize=True)
    return output.getvalue()


async def upload_avatar(minio_client: Minio, uid: str, data: bytes) -> str:
    """
    Store the processed avatar for uid and return its public URL

    Written once at registration; the object name depends only on uid
    """
    object_name = avatar_object_name(uid)
    try:
        minio_client.put_object(
            bucket_name=settings.MINIO_BUCKET,
            object_name=object_name,
            data=io.BytesIO(data),
            length=len(data),
            content_type=AVATAR_CONTENT_TYPE
        )
    except Exception as e:
        logger.error(f"Failed to push avatar {object_name} to storage: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to push image to storage: {str(e)}"
        )

    logger.info(f"Uploaded avatar {object_name} ({len(data)} bytes)")
    return avatar_url(uid)


def delete_avatar(minio_client: Minio, uid: str) -> None:
    """Remove the avatar of a registration that did not complete"""
    object_name = avatar_object_name(uid)
    try:
        minio_client.remove_object(settings.MINIO_BUCKET, object_name)
        logger.info(f"Removed avatar {object_name}")
    except Exception as e:
        logger.error(f"Failed to remove avatar {object_name}: {e}")


def read_avatar(minio_client: Minio, uid: str) -> bytes:
    """Read the avatar blob for uid; raises 404 when it does not exist"""
    object_name = avatar_object_name(uid)
    response = None
    try:
        response = minio_client.get_object(settings.MINIO_BUCKET, object_name)
        return response.read()
    except S3Error as e:
        logger.info(f"Avatar {object_name} not readable: {e}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Avatar for user '{uid}' not found"
        )
    except Exception as e:
        logger.error(f"Failed to read avatar {object_name}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Object storage service unavailable"
        )
    finally:
        if response is not None:
            response.close()
            response.release_conn()
