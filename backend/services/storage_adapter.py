"""
Storage Adapter - GridFS-backed object storage for onboarding uploads.

Objects live in one GridFS bucket per category (menus, faqs, documents) and are
addressed by a generated path. Public URLs resolve through the file-serving
route, so a stored link is permanently addressable as long as the object exists.
"""
import hashlib
import io
import logging
import secrets
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, Optional, Tuple
from urllib.parse import quote
from motor.motor_asyncio import AsyncIOMotorGridFSBucket
from database import database
from utils.public_url import get_public_api_url

logger = logging.getLogger(__name__)

MENUS_BUCKET = "menus"
FAQS_BUCKET = "faqs"
DOCUMENTS_BUCKET = "documents"
BUCKETS = (MENUS_BUCKET, FAQS_BUCKET, DOCUMENTS_BUCKET)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StoredFileNotFound(StorageError):
    """Object not found in storage."""
    pass


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_object_path(folder: str, original_filename: str) -> str:
    """
    Collision-resistant object path: <folder>/<epoch-ms>-<random base36>.<ext>.
    The original extension is kept (lower-cased); the original name is not.
    """
    ext = PurePosixPath(original_filename or "").suffix.lower().lstrip(".")
    stamp = int(time.time() * 1000)
    token = _to_base36(secrets.randbelow(36 ** 10)).rjust(10, "0")
    name = f"{stamp}-{token}"
    if ext:
        name = f"{name}.{ext}"
    return f"{folder}/{name}"


class StorageAdapter(ABC):
    """Abstract base class for storage implementations."""

    @abstractmethod
    async def upload(self, content: bytes, bucket: str, path: str, content_type: str) -> str:
        """Store bytes under bucket/path and return the stored path."""
        pass

    @abstractmethod
    def get_public_url(self, bucket: str, path: str) -> str:
        """Public URL for a stored object."""
        pass

    @abstractmethod
    async def download(self, bucket: str, path: str) -> Tuple[bytes, str]:
        """Return (content, content_type)."""
        pass

    @abstractmethod
    async def exists(self, bucket: str, path: str) -> bool:
        pass


class GridFSStorageAdapter(StorageAdapter):
    """
    GridFS-based storage implementation.
    One GridFS bucket per category; the generated path is the GridFS filename.
    """

    def __init__(self):
        self._buckets: Dict[str, AsyncIOMotorGridFSBucket] = {}

    def _get_bucket(self, bucket: str) -> AsyncIOMotorGridFSBucket:
        if bucket not in BUCKETS:
            raise StorageError(f"Unknown bucket: {bucket}")
        if bucket not in self._buckets:
            db = database.get_db()
            self._buckets[bucket] = AsyncIOMotorGridFSBucket(db, bucket_name=bucket)
        return self._buckets[bucket]

    async def _find_file_doc(self, bucket: str, path: str) -> Optional[dict]:
        db = database.get_db()
        return await db[f"{bucket}.files"].find_one({"filename": path})

    async def upload(self, content: bytes, bucket: str, path: str, content_type: str) -> str:
        grid = self._get_bucket(bucket)
        try:
            file_id = await grid.upload_from_stream(
                path,
                io.BytesIO(content),
                metadata={
                    "content_type": content_type or "application/octet-stream",
                    "sha256_hash": hashlib.sha256(content).hexdigest(),
                    "upload_timestamp": datetime.now(timezone.utc).isoformat(),
                },
            )
        except Exception as e:
            raise StorageError(f"Upload to {bucket}/{path} failed: {e}") from e
        logger.info(f"File uploaded to GridFS: {bucket}/{path} ({file_id})")
        return path

    def get_public_url(self, bucket: str, path: str) -> str:
        return f"{get_public_api_url()}/api/files/{bucket}/{quote(path)}"

    async def download(self, bucket: str, path: str) -> Tuple[bytes, str]:
        grid = self._get_bucket(bucket)
        file_doc = await self._find_file_doc(bucket, path)
        if not file_doc:
            raise StoredFileNotFound(f"File not found: {bucket}/{path}")
        stream = io.BytesIO()
        await grid.download_to_stream(file_doc["_id"], stream)
        content_type = (file_doc.get("metadata") or {}).get("content_type", "application/octet-stream")
        return stream.getvalue(), content_type

    async def exists(self, bucket: str, path: str) -> bool:
        if bucket not in BUCKETS:
            return False
        return await self._find_file_doc(bucket, path) is not None


# Singleton instance
storage_adapter = GridFSStorageAdapter()
