"""In-process embedding store.

Used for development and tests. State lives for the lifetime of the process.
"""

from __future__ import annotations

import itertools
import uuid
from typing import TYPE_CHECKING

from snapx.storage.models import Collection, Image

if TYPE_CHECKING:
    from collections.abc import Sequence

    from snapx.storage.models import Embedding


class MemoryEmbeddingStore:
    """Dictionary-backed store.

    Every method body runs without awaiting, so each mutation is atomic with
    respect to other coroutines on the event loop.
    """

    def __init__(self) -> None:
        self._collections: dict[str, Collection] = {}
        self._images: dict[str, Image] = {}
        # Insertion sequence breaks created_at ties for newest-first order.
        self._sequence: dict[str, int] = {}
        self._counter = itertools.count()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def open(self) -> None:
        return None

    async def close(self) -> None:
        self._collections.clear()
        self._images.clear()
        self._sequence.clear()

    async def create_collection(
        self,
        name: str,
        owner_id: str,
        description: str | None = None,
        cover_image: str | None = None,
    ) -> Collection:
        collection = Collection(
            id=uuid.uuid4().hex,
            name=name,
            owner_id=owner_id,
            description=description,
            cover_image=cover_image,
        )
        self._collections[collection.id] = collection
        self._sequence[collection.id] = next(self._counter)
        return collection

    async def get_collection(self, collection_id: str) -> Collection | None:
        return self._collections.get(collection_id)

    async def list_collections(self, owner_id: str) -> list[Collection]:
        owned = [c for c in self._collections.values() if c.owner_id == owner_id]
        return self._newest_first(owned)

    async def delete_collection(self, collection_id: str) -> int:
        if self._collections.pop(collection_id, None) is None:
            return 0
        self._sequence.pop(collection_id, None)
        doomed = [image_id for image_id, image in self._images.items() if image.collection_id == collection_id]
        for image_id in doomed:
            del self._images[image_id]
            self._sequence.pop(image_id, None)
        return len(doomed)

    async def add_image(
        self,
        collection_id: str,
        image_reference: str,
        face_embeddings: Sequence[Embedding],
    ) -> Image:
        image = Image(
            id=uuid.uuid4().hex,
            collection_id=collection_id,
            image_reference=image_reference,
            face_embeddings=tuple(tuple(float(x) for x in e) for e in face_embeddings),
        )
        self._images[image.id] = image
        self._sequence[image.id] = next(self._counter)
        return image

    async def list_images(self, collection_id: str) -> list[Image]:
        images = [i for i in self._images.values() if i.collection_id == collection_id]
        return self._newest_first(images)

    def _newest_first(self, records: list[Collection] | list[Image]) -> list:
        return sorted(records, key=lambda r: (r.created_at, self._sequence[r.id]), reverse=True)
