from fastapi import HTTPException, status, UploadFile
from config import get_supabase_storage, SUPABASE_STORAGE_BUCKET
import uuid
import os
import logging

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/gif", "image/webp"]
MAX_IMAGE_BYTES = 5 * 1024 * 1024


class StorageHelpers:
    """Image uploads for avatars, group photos and surplus listings"""

    def __init__(self):
        self._storage = None

    @property
    def storage(self):
        if self._storage is None:
            self._storage = get_supabase_storage()
        return self._storage

    async def upload_image(self, folder: str, owner_id: str, file: UploadFile) -> str:
        """
        Upload an image to Supabase Storage under {folder}/{owner_id}/ and return the public URL
        """
        if file.content_type not in ALLOWED_IMAGE_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File type {file.content_type} not allowed"
            )

        file_content = await file.read()
        if len(file_content) > MAX_IMAGE_BYTES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="File size must be less than 5MB"
            )

        file_extension = os.path.splitext(file.filename)[1] if file.filename else '.jpg'
        unique_filename = f"{folder}/{owner_id}/{uuid.uuid4()}{file_extension}"

        try:
            bucket = self.storage.from_(SUPABASE_STORAGE_BUCKET)
            bucket.upload(
                path=unique_filename,
                file=file_content,
                file_options={"content-type": file.content_type}
            )
            public_url = bucket.get_public_url(unique_filename)
            logger.info(f"Uploaded {unique_filename}")
            return public_url

        except Exception as upload_error:
            logger.error(f"Upload error for {unique_filename}: {str(upload_error)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to upload image"
            )

    def delete_image(self, image_url: str) -> bool:
        """Delete an image previously returned by upload_image"""
        marker = f"/storage/v1/object/public/{SUPABASE_STORAGE_BUCKET}/"
        if marker not in image_url:
            logger.warning(f"Not a storage URL from this bucket: {image_url}")
            return False

        file_path = image_url.split(marker, 1)[1].split("?", 1)[0]
        try:
            self.storage.from_(SUPABASE_STORAGE_BUCKET).remove([file_path])
            return True
        except Exception as e:
            logger.warning(f"Failed to delete image from storage: {str(e)}")
            return False


storage_helpers = StorageHelpers()
