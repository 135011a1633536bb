"""
StudyBuddy Backend — Object Store Service
===========================================

What:  Stores uploaded note files and returns their public URLs.
How:   `ObjectStore` is the contract; `GCSObjectStore` writes to a Google Cloud
       Storage bucket, `LocalObjectStore` writes below STORAGE_ROOT for
       development. `build_object_store()` picks one from settings, or returns
       None when uploads are disabled.
Who:   Called by NoteTreeService.create_note() before a file note is appended.

Object naming:
    {userId}/{subjectId}/{chapterId}/{epochMillis}_{originalFilename}

    The filename is reduced to its last path component, so a client cannot
    place objects outside its own prefix.

Upload checks (validate_upload):
    1. Size:       ≤ MAX_UPLOAD_SIZE (50MB); Content-Length is checked earlier
                   by UploadSizeLimitMiddleware
    2. MIME type:  declared type must be in ALLOWED_MIME_TYPES
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional
from urllib.parse import quote

import aiofiles
from google.api_core.exceptions import GoogleAPICallError
from google.auth.exceptions import GoogleAuthError
from google.cloud import storage

from studybuddy.config import Settings
from studybuddy.exceptions import ObjectStoreError, PayloadTooLargeError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/png",
    "text/plain",
}


@dataclass
class UploadedFile:
    """A file received from the client, fully read into memory."""

    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


def safe_filename(filename: str) -> str:
    """Last path component of a client filename ('a/b\\c.pdf' → 'c.pdf')."""
    name = PurePosixPath(filename.replace("\\", "/")).name
    return name or "upload"


def build_object_name(
    user_id: str,
    subject_id: str,
    chapter_id: str,
    filename: str,
    epoch_millis: Optional[int] = None,
) -> str:
    """Object key for an upload, unique per user/subject/chapter and millisecond."""
    if epoch_millis is None:
        epoch_millis = int(time.time() * 1000)
    return f"{user_id}/{subject_id}/{chapter_id}/{epoch_millis}_{safe_filename(filename)}"


def validate_upload(upload: UploadedFile, max_size: int) -> None:
    """
    Validate an uploaded file before it is sent to the object store.

    Raises:
        PayloadTooLargeError: file exceeds max_size
        ValidationError: empty file or disallowed MIME type
    """
    if upload.size > max_size:
        raise PayloadTooLargeError(max_size=max_size, actual_size=upload.size)

    if upload.size == 0:
        raise ValidationError(message="Uploaded file is empty", field="file")

    mime_type = (upload.content_type or "").split(";")[0].strip().lower()
    if mime_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            message=(
                f"File type '{mime_type or 'unknown'}' is not supported. "
                "Upload a PDF, Word, Excel, JPEG, PNG or plain text file."
            ),
            field="file",
            context={"content_type": mime_type, "allowed": sorted(ALLOWED_MIME_TYPES)},
        )


class ObjectStore(ABC):
    """
    Contract for blob storage backends.

    Implementations make stored objects publicly readable and return the
    public URL. Failures are raised as ObjectStoreError.
    """

    backend: str = "abstract"

    @abstractmethod
    async def put_object(self, name: str, content: bytes, content_type: str) -> str:
        """Store `content` under `name`; return the object's public URL."""
        ...

    @abstractmethod
    async def delete_object(self, name: str) -> None:
        """Remove an object. Best-effort: logs instead of raising."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        ...


class GCSObjectStore(ObjectStore):
    """
    Google Cloud Storage backend.

    The google-cloud-storage client is synchronous; every call runs in a worker
    thread so the event loop is not blocked.
    """

    backend = "gcs"

    def __init__(self, client: storage.Client, bucket_name: str, timeout: float = 60.0):
        self.client = client
        self.bucket = client.bucket(bucket_name)
        self.timeout = timeout
        logger.info("GCSObjectStore initialized with bucket=%s", bucket_name)

    def public_url(self, name: str) -> str:
        return f"https://storage.googleapis.com/{self.bucket.name}/{name}"

    def _upload(self, name: str, content: bytes, content_type: str) -> None:
        blob = self.bucket.blob(name)
        blob.upload_from_string(content, content_type=content_type, timeout=self.timeout)
        try:
            blob.make_public()
        except GoogleAPICallError as e:
            # Buckets with uniform access reject per-object ACLs; access is then
            # governed by the bucket policy.
            logger.warning("Could not make %s public: %s", name, str(e))

    async def put_object(self, name: str, content: bytes, content_type: str) -> str:
        try:
            await asyncio.to_thread(self._upload, name, content, content_type)
        except (GoogleAPICallError, GoogleAuthError, OSError) as e:
            logger.error("GCS upload failed for %s: %s", name, str(e))
            raise ObjectStoreError(
                message="Upload failed",
                context={"object": name, "error": str(e)},
            )
        logger.info("Object stored in GCS: %s (%d bytes)", name, len(content))
        return self.public_url(name)

    async def delete_object(self, name: str) -> None:
        try:
            await asyncio.to_thread(self.bucket.blob(name).delete)
            logger.info("Cleaned up object: %s", name)
        except (GoogleAPICallError, GoogleAuthError, OSError) as e:
            logger.warning("Failed to clean up object %s: %s", name, str(e))

    async def health_check(self) -> bool:
        try:
            return await asyncio.to_thread(self.bucket.exists)
        except (GoogleAPICallError, GoogleAuthError, OSError) as e:
            logger.warning("GCS health check failed: %s", str(e))
            return False


class LocalObjectStore(ObjectStore):
    """
    Development backend writing objects below STORAGE_ROOT.

    Directory structure mirrors the object name:
        storage/
        └── <userId>/<subjectId>/<chapterId>/1718000000000_lecture.pdf
    """

    backend = "local"

    def __init__(self, storage_root: str, base_url: str):
        self.storage_root = Path(storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")
        logger.info("LocalObjectStore initialized with storage_root=%s", self.storage_root)

    def _path_for(self, name: str) -> Path:
        path = (self.storage_root / name).resolve()
        if not path.is_relative_to(self.storage_root):
            raise ObjectStoreError(
                message="Invalid object name",
                context={"object": name},
            )
        return path

    def public_url(self, name: str) -> str:
        return f"{self.base_url}/{quote(name)}"

    async def put_object(self, name: str, content: bytes, content_type: str) -> str:
        path = self._path_for(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store object at %s: %s", path, str(e))
            raise ObjectStoreError(
                message="Upload failed",
                context={"object": name, "os_error": str(e)},
            )
        logger.info("Object stored: %s (%d bytes)", name, len(content))
        return self.public_url(name)

    async def delete_object(self, name: str) -> None:
        try:
            path = self._path_for(name)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up object: %s", name)
            else:
                logger.debug("Cleanup: object already gone: %s", name)
        except (OSError, ObjectStoreError) as e:
            logger.warning("Failed to clean up object %s: %s", name, str(e))

    async def health_check(self) -> bool:
        return self.storage_root.is_dir() and os.access(self.storage_root, os.W_OK)


def build_object_store(settings: Settings) -> Optional[ObjectStore]:
    """
    Build the configured object store, or None when uploads are disabled.

    A GCS backend whose client cannot be created (missing credentials, bad
    keyfile) is logged and treated as not configured.
    """
    if settings.object_store_backend == "local":
        return LocalObjectStore(settings.storage_root, settings.local_storage_base_url)

    if settings.object_store_backend == "gcs":
        if not settings.gcs_bucket_name:
            logger.warning("GCS_BUCKET_NAME is not set. File uploads disabled.")
            return None
        try:
            if settings.gcp_keyfile_path:
                client = storage.Client.from_service_account_json(
                    settings.gcp_keyfile_path,
                    project=settings.gcp_project_id or None,
                )
            else:
                client = storage.Client(project=settings.gcp_project_id or None)
        except (GoogleAuthError, OSError, ValueError) as e:
            logger.error("GCP initialization error: %s. File uploads disabled.", str(e))
            return None
        return GCSObjectStore(
            client, settings.gcs_bucket_name, timeout=settings.upload_timeout_seconds
        )

    logger.warning("Object store not configured. File uploads disabled.")
    return None
