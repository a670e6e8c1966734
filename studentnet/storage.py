import uuid
from functools import lru_cache
from typing import Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile

from studentnet.core.config import settings
from studentnet.core.exceptions import ExternalServiceError, InvalidUploadError
from studentnet.core.logging_config import get_logger

logger = get_logger("storage")

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
}

PROFILE_FOLDER = "profiles"
ACHIEVEMENT_FOLDER = "achievements"


class StorageClient:
    """S3-compatible object storage: store bytes, get back a public URL"""

    def __init__(self):
        self.client = boto3.client(
            's3',
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
            aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            region_name=settings.AWS_REGION
        )
        self.bucket_name = settings.S3_BUCKET_NAME

    @property
    def base_url(self) -> str:
        if settings.S3_PUBLIC_URL:
            return settings.S3_PUBLIC_URL.rstrip("/")
        if settings.S3_ENDPOINT_URL:
            return f"{settings.S3_ENDPOINT_URL.rstrip('/')}/{self.bucket_name}"
        return f"https://{self.bucket_name}.s3.{settings.AWS_REGION}.amazonaws.com"

    def _key_for(self, url: str) -> Optional[str]:
        prefix = self.base_url + "/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):]

    def store(self, data: bytes, extension: str, content_type: str, folder: str) -> str:
        object_name = f"{folder}/{uuid.uuid4().hex}.{extension}"
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=object_name,
                Body=data,
                ContentType=content_type
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error uploading file: {e}")
            raise ExternalServiceError("storage", "Failed to upload file. Please try again.") from e

        logger.info(f"Uploaded file: {object_name}")
        return f"{self.base_url}/{object_name}"

    def delete(self, url: str) -> None:
        object_name = self._key_for(url)
        if object_name is None:
            logger.warning(f"Not deleting foreign object URL: {url}")
            return
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=object_name)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error deleting file: {e}")
            raise ExternalServiceError("storage", "Failed to delete file.") from e
        logger.info(f"Deleted file: {object_name}")


@lru_cache()
def get_storage() -> StorageClient:
    return StorageClient()


def discard(storage: StorageClient, urls: Iterable[str]) -> None:
    """Best-effort cleanup after the owning record is already gone or updated"""
    for url in urls:
        try:
            storage.delete(url)
        except ExternalServiceError:
            logger.warning("Orphaned object left in storage", extra={"url": url})


def read_image_upload(upload: UploadFile) -> tuple:
    """Validate an uploaded image. Returns (data, extension, content_type)."""
    extension = ALLOWED_IMAGE_TYPES.get(upload.content_type or "")
    if not extension:
        raise InvalidUploadError("Invalid file type. Only JPG, JPEG, and PNG are allowed.")

    data = upload.file.read(settings.MAX_UPLOAD_BYTES + 1)
    if len(data) > settings.MAX_UPLOAD_BYTES:
        max_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
        raise InvalidUploadError(f"File size too large. Maximum size is {max_mb}MB.")
    if not data:
        raise InvalidUploadError("Uploaded file is empty.")
    return data, extension, upload.content_type
