# SPDX-License-Identifier: Apache-2.0

"""
Photo storage for brigade verifications, backed by MongoDB GridFS.
"""

import os
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from urllib.parse import quote

import gridfs
from bson import ObjectId
from bson.errors import InvalidId
from gridfs.errors import NoFile
from werkzeug.utils import secure_filename
from opentelemetry import trace

from services.mongodb import MongoDBService
from middleware.error_handler import NotFoundException, ValidationException

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)

ALLOWED_PHOTO_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
DEFAULT_MAX_PHOTO_BYTES = 5 * 1024 * 1024
PHOTO_BUCKET = "photos"


@dataclass
class StoredFile:
    """Metadata of a stored photo."""
    file_id: str
    path: str
    url: str
    content_type: Optional[str]
    size: int


def photo_extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


class PhotoStorageService:
    """Stores and serves luminaria photos through a GridFS bucket."""

    def __init__(self, mongo_service: MongoDBService, max_bytes: Optional[int] = None):
        self.mongo_service = mongo_service
        self.max_bytes = max_bytes or int(os.getenv("MAX_PHOTO_BYTES", str(DEFAULT_MAX_PHOTO_BYTES)))
        self._bucket: Optional[gridfs.GridFSBucket] = None

    @property
    def bucket(self) -> gridfs.GridFSBucket:
        if self._bucket is None:
            self._bucket = gridfs.GridFSBucket(self.mongo_service.database, bucket_name=PHOTO_BUCKET)
        return self._bucket

    def validate_photo(self, filename: Optional[str], data: bytes) -> str:
        """
        Check name and size of an upload and return its safe file name.

        Raises:
            ValidationException: If the extension is not allowed, the file is
                empty or larger than the configured maximum
        """
        safe_name = secure_filename(filename or "")
        if not safe_name or photo_extension(safe_name) not in ALLOWED_PHOTO_EXTENSIONS:
            raise ValidationException(
                "Unsupported photo type",
                [{"field": "photo", "message": f"Allowed extensions: {', '.join(sorted(ALLOWED_PHOTO_EXTENSIONS))}"}]
            )
        if not data:
            raise ValidationException("Empty photo upload", [{"field": "photo", "message": "File is empty"}])
        if len(data) > self.max_bytes:
            raise ValidationException(
                "Photo too large",
                [{"field": "photo", "message": f"Maximum size is {self.max_bytes} bytes"}]
            )
        return safe_name

    def upload_photo(
        self,
        luminaria_id: str,
        filename: Optional[str],
        data: bytes,
        content_type: Optional[str],
        now: datetime
    ) -> StoredFile:
        """
        Store a verification photo.

        The GridFS file name is ``luminarias/{id}/{timestamp_ms}_{name}``.

        Returns:
            StoredFile with the API download URL
        """
        with tracer.start_as_current_span("storage.upload_photo") as span:
            safe_name = self.validate_photo(filename, data)
            path = f"luminarias/{luminaria_id}/{int(now.timestamp() * 1000)}_{safe_name}"

            span.set_attributes({
                "storage.luminaria_id": luminaria_id,
                "storage.size_bytes": len(data)
            })

            file_id = self.bucket.upload_from_stream(
                path,
                data,
                metadata={
                    "luminariaId": luminaria_id,
                    "contentType": content_type,
                    "originalName": filename
                }
            )

            url = f"/api/luminarias/{quote(luminaria_id, safe='')}/photos/{file_id}"
            logger.info(
                "Photo stored",
                extra={"luminaria_id": luminaria_id, "file_id": str(file_id), "size_bytes": len(data)}
            )
            return StoredFile(
                file_id=str(file_id),
                path=path,
                url=url,
                content_type=content_type,
                size=len(data)
            )

    def open_photo(self, file_id: str, luminaria_id: Optional[str] = None) -> gridfs.GridOut:
        """
        Open a stored photo for streaming.

        Raises:
            NotFoundException: If the id is malformed, unknown or belongs to
                another luminaria
        """
        try:
            stream = self.bucket.open_download_stream(ObjectId(file_id))
        except (InvalidId, NoFile, TypeError):
            raise NotFoundException(f"Photo {file_id} not found")

        metadata = stream.metadata or {}
        if luminaria_id is not None and metadata.get("luminariaId") != luminaria_id:
            stream.close()
            raise NotFoundException(f"Photo {file_id} not found")

        return stream

    def delete_photos_for(self, luminaria_id: str) -> int:
        """Remove every photo stored for a luminaria."""
        deleted = 0
        for grid_out in self.bucket.find({"metadata.luminariaId": luminaria_id}):
            self.bucket.delete(grid_out._id)
            deleted += 1
        return deleted
