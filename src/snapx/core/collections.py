"""Collection lifecycle and the owner's view of its images."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from snapx.core.authorization import ensure_owner
from snapx.errors import InvalidInput, NotFound

if TYPE_CHECKING:
    from snapx.core.ingestion import UploadedFile
    from snapx.storage.base import EmbeddingStore
    from snapx.storage.models import Collection, Image
    from snapx.storage.objects import ObjectStorage

logger = logging.getLogger(__name__)

# Object-storage prefix shared by all cover images, next to the per-collection folders.
COVERS_PREFIX = "covers"


class CollectionService:
    def __init__(self, store: EmbeddingStore, objects: ObjectStorage, max_file_size: int | None = None) -> None:
        self._store = store
        self._objects = objects
        self._max_file_size = max_file_size

    async def create(
        self,
        owner_id: str,
        name: str,
        description: str | None = None,
        cover: UploadedFile | None = None,
    ) -> Collection:
        """Create a collection owned by ``owner_id``. The owner never changes afterwards.

        An optional cover photo is stored under the shared covers prefix
        before the collection record is written.

        Raises:
            InvalidInput: If the name is blank or the cover is too large.
            UpstreamFailure: If the cover could not be stored.
        """
        name = name.strip()
        if not name:
            raise InvalidInput("Collection name required")
        cover_image = None
        if cover is not None:
            if self._max_file_size is not None and len(cover.content) > self._max_file_size:
                raise InvalidInput("Cover image too large")
            cover_image = await self._objects.put(COVERS_PREFIX, cover.filename, cover.content, cover.content_type)
        collection = await self._store.create_collection(
            name=name,
            owner_id=owner_id,
            description=description or None,
            cover_image=cover_image,
        )
        logger.info("Created collection %s for owner %s", collection.id, owner_id)
        return collection

    async def get(self, collection_id: str) -> Collection:
        collection = await self._store.get_collection(collection_id)
        if collection is None:
            raise NotFound("Collection not found")
        return collection

    async def list_owned(self, owner_id: str) -> list[Collection]:
        return await self._store.list_collections(owner_id)

    async def delete(self, collection_id: str, principal_id: str) -> int:
        """Delete an owned collection together with all of its images.

        Returns:
            Number of images removed.
        """
        collection = await self.get(collection_id)
        ensure_owner(collection, principal_id, "delete this collection")
        removed = await self._store.delete_collection(collection_id)
        logger.info("Deleted collection %s and %d images", collection_id, removed)
        return removed

    async def list_images(self, collection_id: str, principal_id: str) -> list[Image]:
        """Return every image of an owned collection, newest first."""
        collection = await self.get(collection_id)
        ensure_owner(collection, principal_id, "list all photos")
        images = await self._store.list_images(collection_id)
        logger.info("Listed %d images for collection %s", len(images), collection_id)
        return images
