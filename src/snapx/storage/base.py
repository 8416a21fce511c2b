"""Embedding store protocol.

The store persists collections and, per image, the embeddings extracted at
ingestion time. Images are insert-only: no operation updates an image in
place, so concurrent ingestions into one collection never conflict.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from snapx.config import Settings
    from snapx.storage.models import Collection, Embedding, Image
    from snapx.storage.pool import IOPool


class EmbeddingStore(Protocol):
    """Protocol for collection and image persistence.

    Backend failures surface as ``snapx.errors.UpstreamFailure``.
    """

    @property
    def backend_name(self) -> str:
        """Return the backend identifier string."""
        ...

    async def open(self) -> None:
        """Prepare the backend (connections, indexes)."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...

    async def create_collection(
        self,
        name: str,
        owner_id: str,
        description: str | None = None,
        cover_image: str | None = None,
    ) -> Collection:
        """Insert a collection with a system-generated id."""
        ...

    async def get_collection(self, collection_id: str) -> Collection | None:
        """Return the collection, or None if it does not exist."""
        ...

    async def list_collections(self, owner_id: str) -> list[Collection]:
        """Return the owner's collections, newest first."""
        ...

    async def delete_collection(self, collection_id: str) -> int:
        """Delete a collection and all of its images.

        Returns:
            Number of images removed by the cascade.
        """
        ...

    async def add_image(
        self,
        collection_id: str,
        image_reference: str,
        face_embeddings: Sequence[Embedding],
    ) -> Image:
        """Insert one image record with a system-generated id."""
        ...

    async def list_images(self, collection_id: str) -> list[Image]:
        """Return every image of the collection, newest first."""
        ...


def build_store(settings: Settings, pool: IOPool) -> EmbeddingStore:
    """Create the embedding store selected by SNAPX_STORE_BACKEND."""
    if settings.store_backend == "mongodb":
        from snapx.storage.mongo import MongoEmbeddingStore

        return MongoEmbeddingStore(settings, pool)

    from snapx.storage.memory import MemoryEmbeddingStore

    return MemoryEmbeddingStore()
