"""Object storage for image bytes.

The core only needs ``put`` to turn uploaded bytes into an opaque reference
URL. Two backends: Cloudinary, and a local directory served by the API.
"""

from __future__ import annotations

import io
import logging
import uuid
from pathlib import Path, PurePath
from typing import TYPE_CHECKING, Protocol

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader

from snapx.errors import UpstreamFailure

if TYPE_CHECKING:
    from snapx.config import Settings
    from snapx.storage.pool import IOPool

logger = logging.getLogger(__name__)

MEDIA_ROUTE = "/api/v1/media"


class ObjectStorage(Protocol):
    """Protocol for binary image storage."""

    @property
    def backend_name(self) -> str:
        """Return the backend identifier string."""
        ...

    async def put(self, collection_id: str, filename: str, content: bytes, content_type: str | None) -> str:
        """Store bytes under the collection and return their public URL.

        Raises:
            UpstreamFailure: If the backend rejects or cannot receive the upload.
        """
        ...


class LocalObjectStorage:
    """Writes files under ``local_media_dir/<collection_id>/``."""

    def __init__(self, settings: Settings, pool: IOPool) -> None:
        self._pool = pool
        self._root = Path(settings.local_media_dir)
        self._base_url = settings.public_base_url.rstrip("/")

    @property
    def backend_name(self) -> str:
        return "local"

    @property
    def root(self) -> Path:
        return self._root

    async def put(self, collection_id: str, filename: str, content: bytes, content_type: str | None) -> str:
        suffix = PurePath(filename).suffix.lower()
        key = f"{uuid.uuid4().hex}{suffix}"
        target = self._root / collection_id / key

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

        try:
            await self._pool.run(_write)
        except OSError as exc:
            logger.exception("Failed to write %s", target)
            raise UpstreamFailure(f"Could not store {filename}") from exc
        return f"{self._base_url}{MEDIA_ROUTE}/{collection_id}/{key}"

    def resolve(self, collection_id: str, key: str) -> Path | None:
        """Return the on-disk path for a stored object, or None if absent."""
        if PurePath(collection_id).name != collection_id or PurePath(key).name != key:
            return None
        path = self._root / collection_id / key
        return path if path.is_file() else None


class CloudinaryObjectStorage:
    """Uploads into the ``<cloudinary_folder>/<collection_id>`` folder."""

    def __init__(self, settings: Settings, pool: IOPool) -> None:
        if not all([settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret]):
            raise ValueError(
                "SNAPX_CLOUDINARY_CLOUD_NAME, SNAPX_CLOUDINARY_API_KEY and SNAPX_CLOUDINARY_API_SECRET "
                "are required when SNAPX_OBJECT_STORAGE=cloudinary"
            )
        cloudinary.config(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            secure=True,
        )
        self._pool = pool
        self._folder = settings.cloudinary_folder

    @property
    def backend_name(self) -> str:
        return "cloudinary"

    async def put(self, collection_id: str, filename: str, content: bytes, content_type: str | None) -> str:
        def _upload() -> dict:
            return cloudinary.uploader.upload(
                io.BytesIO(content),
                folder=f"{self._folder}/{collection_id}",
                resource_type="image",
            )

        try:
            result = await self._pool.run(_upload)
        except cloudinary.exceptions.Error as exc:
            logger.exception("Cloudinary upload failed for %s", filename)
            raise UpstreamFailure(f"Could not store {filename}") from exc
        return result["secure_url"]


def build_object_storage(settings: Settings, pool: IOPool) -> ObjectStorage:
    """Create the object storage backend selected by SNAPX_OBJECT_STORAGE."""
    if settings.object_storage == "cloudinary":
        return CloudinaryObjectStorage(settings, pool)
    return LocalObjectStorage(settings, pool)
