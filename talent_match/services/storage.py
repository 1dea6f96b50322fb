"""
Raw resume storage in a GridFS bucket next to the profile data.
"""
import re
import time
import uuid
from typing import Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorGridFSBucket

from talent_match.models.models import StoredDocument
from talent_match.services import db as db_module
from talent_match.utils import config
from talent_match.utils.exceptions import NotFoundError, StorageError
from talent_match.utils.logging_config import get_logger

logger = get_logger(__name__)

BUCKET_NAME = "resumes"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(name: str) -> str:
    name = _UNSAFE_CHARS.sub("_", (name or "").strip()).strip("._")
    return name[:120] or "resume"


def build_storage_path(filename: str) -> str:
    """resumes/<epoch ms>_<random>_<name>, unique even for identical names in the same millisecond."""
    return f"{BUCKET_NAME}/{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}_{safe_filename(filename)}"


class DocumentStorage:
    def __init__(self, bucket: Optional[AsyncIOMotorGridFSBucket] = None, public_base_url: Optional[str] = None):
        self._bucket = bucket
        self.public_base_url = (public_base_url or config.PUBLIC_BASE_URL).rstrip("/")

    @property
    def bucket(self) -> AsyncIOMotorGridFSBucket:
        if self._bucket is None:
            self._bucket = AsyncIOMotorGridFSBucket(db_module.db, bucket_name=BUCKET_NAME)
        return self._bucket

    def url_for(self, file_id: str) -> str:
        return f"{self.public_base_url}/api/resumes/files/{file_id}"

    async def upload(self, filename: str, content: bytes, content_type: str, user_id: str) -> StoredDocument:
        path = build_storage_path(filename)
        try:
            file_id = await self.bucket.upload_from_stream(
                path,
                content,
                metadata={"content_type": content_type, "user_id": user_id, "original_name": filename},
            )
        except Exception as e:
            raise StorageError(f"Storage upload failed: {e}", path=path, cause=e) from e

        logger.info(f"Stored {len(content)} bytes at {path} ({file_id})")
        return StoredDocument(
            file_id=str(file_id),
            path=path,
            url=self.url_for(str(file_id)),
            content_type=content_type,
            size=len(content),
        )

    async def download(self, file_id: str) -> Tuple[bytes, str, str]:
        """Return (content, content type, stored path)."""
        try:
            oid = ObjectId(file_id)
        except (InvalidId, TypeError):
            raise NotFoundError("Document not found", resource="document", resource_id=file_id)
        try:
            grid_out = await self.bucket.open_download_stream(oid)
            content = await grid_out.read()
        except NoFile:
            raise NotFoundError("Document not found", resource="document", resource_id=file_id)
        except Exception as e:
            raise StorageError(f"Storage download failed: {e}", path=file_id, cause=e) from e
        metadata = grid_out.metadata or {}
        return content, metadata.get("content_type", "application/octet-stream"), grid_out.filename


def get_document_storage() -> DocumentStorage:
    return DocumentStorage()
