"""MongoDB embedding store.

Embeddings are stored denormalized inside each image document:

    images:      {_id, collectionId, imageReference, faceEmbeddings: number[][], createdAt}
    collections: {_id, name, description, coverImage, ownerId, createdAt}

pymongo is blocking, so every driver call goes through the shared ``IOPool``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from snapx.errors import UpstreamFailure
from snapx.storage.models import Collection, Image, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from snapx.config import Settings
    from snapx.storage.models import Embedding
    from snapx.storage.pool import IOPool

logger = logging.getLogger(__name__)

COLLECTIONS = "collections"
IMAGES = "images"

_NEWEST_FIRST = [("createdAt", DESCENDING), ("_id", DESCENDING)]


def _object_id(value: str) -> ObjectId | None:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _to_collection(doc: dict[str, Any]) -> Collection:
    return Collection(
        id=str(doc["_id"]),
        name=doc["name"],
        owner_id=doc["ownerId"],
        description=doc.get("description"),
        cover_image=doc.get("coverImage"),
        created_at=doc["createdAt"],
    )


def _to_image(doc: dict[str, Any]) -> Image:
    return Image(
        id=str(doc["_id"]),
        collection_id=str(doc["collectionId"]),
        image_reference=doc["imageReference"],
        face_embeddings=tuple(tuple(float(x) for x in e) for e in doc.get("faceEmbeddings", [])),
        created_at=doc["createdAt"],
    )


class MongoEmbeddingStore:
    """Embedding store backed by a MongoDB database."""

    def __init__(self, settings: Settings, pool: IOPool, client: MongoClient | None = None) -> None:
        self._pool = pool
        # tz_aware so createdAt round-trips as an aware UTC datetime.
        self._client: MongoClient = client or MongoClient(settings.mongo_uri, tz_aware=True)
        self._db = self._client[settings.mongo_database]
        self._collections = self._db[COLLECTIONS]
        self._images = self._db[IMAGES]

    @property
    def backend_name(self) -> str:
        return "mongodb"

    async def open(self) -> None:
        def _create_indexes() -> None:
            self._collections.create_index([("ownerId", ASCENDING), ("createdAt", DESCENDING)])
            self._images.create_index([("collectionId", ASCENDING), ("createdAt", DESCENDING)])

        await self._call(_create_indexes)
        logger.info("MongoDB indexes ensured on database %s", self._db.name)

    async def close(self) -> None:
        self._client.close()

    async def create_collection(
        self,
        name: str,
        owner_id: str,
        description: str | None = None,
        cover_image: str | None = None,
    ) -> Collection:
        doc: dict[str, Any] = {
            "name": name,
            "description": description,
            "coverImage": cover_image,
            "ownerId": owner_id,
            "createdAt": utcnow(),
        }
        result = await self._call(self._collections.insert_one, doc)
        doc["_id"] = result.inserted_id
        return _to_collection(doc)

    async def get_collection(self, collection_id: str) -> Collection | None:
        oid = _object_id(collection_id)
        if oid is None:
            return None
        doc = await self._call(self._collections.find_one, {"_id": oid})
        return _to_collection(doc) if doc is not None else None

    async def list_collections(self, owner_id: str) -> list[Collection]:
        def _find() -> list[dict[str, Any]]:
            return list(self._collections.find({"ownerId": owner_id}).sort(_NEWEST_FIRST))

        return [_to_collection(doc) for doc in await self._call(_find)]

    async def delete_collection(self, collection_id: str) -> int:
        oid = _object_id(collection_id)
        if oid is None:
            return 0

        def _delete() -> int:
            deleted = self._collections.delete_one({"_id": oid})
            if deleted.deleted_count == 0:
                return 0
            return self._images.delete_many({"collectionId": oid}).deleted_count

        return await self._call(_delete)

    async def add_image(
        self,
        collection_id: str,
        image_reference: str,
        face_embeddings: Sequence[Embedding],
    ) -> Image:
        oid = _object_id(collection_id)
        if oid is None:
            raise UpstreamFailure(f"Invalid collection id: {collection_id}")
        doc: dict[str, Any] = {
            "collectionId": oid,
            "imageReference": image_reference,
            "faceEmbeddings": [list(e) for e in face_embeddings],
            "createdAt": utcnow(),
        }
        result = await self._call(self._images.insert_one, doc)
        doc["_id"] = result.inserted_id
        return _to_image(doc)

    async def list_images(self, collection_id: str) -> list[Image]:
        oid = _object_id(collection_id)
        if oid is None:
            return []

        def _find() -> list[dict[str, Any]]:
            return list(self._images.find({"collectionId": oid}).sort(_NEWEST_FIRST))

        return [_to_image(doc) for doc in await self._call(_find)]

    async def _call(self, func: Callable[..., Any], *args: object) -> Any:
        try:
            return await self._pool.run(func, *args)
        except PyMongoError as exc:
            logger.exception("MongoDB call failed")
            raise UpstreamFailure("Embedding store unavailable") from exc
