"""Tests for the storage backends and the blocking I/O pool."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import cloudinary.exceptions
import pytest
from bson import ObjectId
from pymongo.errors import ServerSelectionTimeoutError

from snapx.config import Settings
from snapx.errors import UpstreamFailure
from snapx.storage.base import build_store
from snapx.storage.memory import MemoryEmbeddingStore
from snapx.storage.mongo import MongoEmbeddingStore
from snapx.storage.objects import (
    CloudinaryObjectStorage,
    LocalObjectStorage,
    build_object_storage,
)
from snapx.storage.pool import IOPool

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "max_concurrent_io": 2,
        "mongo_database": "snapx_test",
        "public_base_url": "http://photos.test",
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


@pytest.fixture()
def pool() -> Iterator[IOPool]:
    io_pool = IOPool(_make_settings())
    yield io_pool
    io_pool.shutdown()


def _mock_client() -> tuple[MagicMock, MagicMock, MagicMock]:
    """Return (client, collections, images) with client[db][name] wired up."""
    client = MagicMock()
    db = MagicMock()
    db.name = "snapx_test"
    collections = MagicMock()
    images = MagicMock()
    client.__getitem__.return_value = db
    db.__getitem__.side_effect = {"collections": collections, "images": images}.__getitem__
    return client, collections, images


# ---------------------------------------------------------------------------
# IOPool
# ---------------------------------------------------------------------------


class TestIOPool:
    async def test_run_returns_result(self, pool: IOPool) -> None:
        assert await pool.run(sum, [1, 2, 3]) == 6

    async def test_run_propagates_exceptions(self, pool: IOPool) -> None:
        def _boom() -> None:
            raise OSError("disk full")

        with pytest.raises(OSError, match="disk full"):
            await pool.run(_boom)
        assert pool.in_flight == 0
        assert pool.waiting == 0

    async def test_calls_beyond_limit_wait_for_a_slot(self, pool: IOPool) -> None:
        release = threading.Event()
        tasks = [asyncio.create_task(pool.run(release.wait, 5)) for _ in range(3)]
        for _ in range(200):
            if pool.in_flight == 2 and pool.waiting == 1:
                break
            await asyncio.sleep(0.01)

        assert pool.in_flight == 2
        assert pool.waiting == 1

        release.set()
        assert await asyncio.gather(*tasks) == [True, True, True]
        assert pool.in_flight == 0


# ---------------------------------------------------------------------------
# Memory store
# ---------------------------------------------------------------------------


class TestMemoryStore:
    async def test_delete_only_removes_own_images(self) -> None:
        store = MemoryEmbeddingStore()
        keep = await store.create_collection("Keep", "alice")
        drop = await store.create_collection("Drop", "alice")
        kept = await store.add_image(keep.id, "https://cdn.test/k.jpg", [(1.0,)])
        await store.add_image(drop.id, "https://cdn.test/d.jpg", [(1.0,)])

        assert await store.delete_collection(drop.id) == 1
        assert await store.get_collection(drop.id) is None
        assert await store.list_images(keep.id) == [kept]

    async def test_delete_missing_is_zero(self) -> None:
        assert await MemoryEmbeddingStore().delete_collection("nope") == 0

    async def test_embeddings_stored_as_float_tuples(self) -> None:
        store = MemoryEmbeddingStore()
        collection = await store.create_collection("C", "alice")
        image = await store.add_image(collection.id, "u", [[1, 2]])
        assert image.face_embeddings == ((1.0, 2.0),)

    def test_build_store_default_is_memory(self, pool: IOPool) -> None:
        assert build_store(_make_settings(), pool).backend_name == "memory"


# ---------------------------------------------------------------------------
# Mongo store
# ---------------------------------------------------------------------------


class TestMongoStore:
    async def test_create_collection_document(self, pool: IOPool) -> None:
        client, collections, _ = _mock_client()
        oid = ObjectId()
        collections.insert_one.return_value = MagicMock(inserted_id=oid)
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)

        collection = await store.create_collection("Gala", "alice", description="Annual")

        doc = collections.insert_one.call_args.args[0]
        assert doc["name"] == "Gala"
        assert doc["ownerId"] == "alice"
        assert doc["description"] == "Annual"
        assert collection.id == str(oid)
        assert collection.owner_id == "alice"

    async def test_add_image_persists_layout(self, pool: IOPool) -> None:
        client, _, images = _mock_client()
        images.insert_one.return_value = MagicMock(inserted_id=ObjectId())
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)
        cid = str(ObjectId())

        image = await store.add_image(cid, "https://cdn.test/a.jpg", [(0.1, 0.2), (0.3, 0.4)])

        doc = images.insert_one.call_args.args[0]
        assert doc["collectionId"] == ObjectId(cid)
        assert doc["imageReference"] == "https://cdn.test/a.jpg"
        assert doc["faceEmbeddings"] == [[0.1, 0.2], [0.3, 0.4]]
        assert isinstance(doc["createdAt"], datetime)
        assert image.collection_id == cid
        assert image.face_embeddings == ((0.1, 0.2), (0.3, 0.4))

    async def test_list_images_maps_documents(self, pool: IOPool) -> None:
        client, _, images = _mock_client()
        cid = ObjectId()
        created = datetime(2026, 1, 1, tzinfo=UTC)
        images.find.return_value.sort.return_value = [
            {
                "_id": ObjectId(),
                "collectionId": cid,
                "imageReference": "https://cdn.test/a.jpg",
                "faceEmbeddings": [[1, 2]],
                "createdAt": created,
            }
        ]
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)

        [image] = await store.list_images(str(cid))

        images.find.assert_called_once_with({"collectionId": cid})
        assert image.face_embeddings == ((1.0, 2.0),)
        assert image.created_at == created

    async def test_invalid_object_id_is_absent(self, pool: IOPool) -> None:
        client, collections, images = _mock_client()
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)

        assert await store.get_collection("not-an-object-id") is None
        assert await store.list_images("not-an-object-id") == []
        collections.find_one.assert_not_called()
        images.find.assert_not_called()

    async def test_delete_cascades(self, pool: IOPool) -> None:
        client, collections, images = _mock_client()
        collections.delete_one.return_value = MagicMock(deleted_count=1)
        images.delete_many.return_value = MagicMock(deleted_count=3)
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)
        cid = ObjectId()

        assert await store.delete_collection(str(cid)) == 3
        images.delete_many.assert_called_once_with({"collectionId": cid})

    async def test_delete_missing_skips_cascade(self, pool: IOPool) -> None:
        client, collections, images = _mock_client()
        collections.delete_one.return_value = MagicMock(deleted_count=0)
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)

        assert await store.delete_collection(str(ObjectId())) == 0
        images.delete_many.assert_not_called()

    async def test_driver_errors_become_upstream_failure(self, pool: IOPool) -> None:
        client, collections, _ = _mock_client()
        collections.find_one.side_effect = ServerSelectionTimeoutError("no servers")
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)

        with pytest.raises(UpstreamFailure):
            await store.get_collection(str(ObjectId()))

    async def test_open_creates_indexes(self, pool: IOPool) -> None:
        client, collections, images = _mock_client()
        store = MongoEmbeddingStore(_make_settings(), pool, client=client)

        await store.open()

        collections.create_index.assert_called_once()
        images.create_index.assert_called_once()


# ---------------------------------------------------------------------------
# Object storage
# ---------------------------------------------------------------------------


class TestLocalObjectStorage:
    async def test_put_writes_file_and_returns_url(self, pool: IOPool, tmp_path: Path) -> None:
        storage = LocalObjectStorage(_make_settings(local_media_dir=str(tmp_path)), pool)

        url = await storage.put("c1", "Photo.JPG", b"pixels", "image/jpeg")

        assert url.startswith("http://photos.test/api/v1/media/c1/")
        assert url.endswith(".jpg")
        key = url.rsplit("/", 1)[1]
        path = storage.resolve("c1", key)
        assert path is not None
        assert path.read_bytes() == b"pixels"

    def test_resolve_rejects_traversal(self, pool: IOPool, tmp_path: Path) -> None:
        storage = LocalObjectStorage(_make_settings(local_media_dir=str(tmp_path)), pool)
        assert storage.resolve("..", "secrets.txt") is None
        assert storage.resolve("c1", "../x") is None
        assert storage.resolve("c1", "missing.jpg") is None

    async def test_write_error_becomes_upstream_failure(self, pool: IOPool, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        storage = LocalObjectStorage(_make_settings(local_media_dir=str(blocker)), pool)

        with pytest.raises(UpstreamFailure):
            await storage.put("c1", "a.jpg", b"pixels", None)


class TestCloudinaryObjectStorage:
    def _settings(self) -> Settings:
        return _make_settings(
            object_storage="cloudinary",
            cloudinary_cloud_name="demo",
            cloudinary_api_key="key",
            cloudinary_api_secret="secret",
        )

    def test_requires_credentials(self, pool: IOPool) -> None:
        with pytest.raises(ValueError, match="SNAPX_CLOUDINARY_CLOUD_NAME"):
            CloudinaryObjectStorage(_make_settings(object_storage="cloudinary"), pool)

    def test_factory_selects_cloudinary(self, pool: IOPool) -> None:
        assert build_object_storage(self._settings(), pool).backend_name == "cloudinary"

    @patch("cloudinary.uploader.upload")
    async def test_put_uploads_into_collection_folder(self, mock_upload: MagicMock, pool: IOPool) -> None:
        mock_upload.return_value = {"secure_url": "https://res.cloudinary.com/demo/a.jpg"}
        storage = CloudinaryObjectStorage(self._settings(), pool)

        url = await storage.put("c1", "a.jpg", b"pixels", "image/jpeg")

        assert url == "https://res.cloudinary.com/demo/a.jpg"
        assert mock_upload.call_args.kwargs["folder"] == "snapx/c1"

    @patch("cloudinary.uploader.upload")
    async def test_upload_error_becomes_upstream_failure(self, mock_upload: MagicMock, pool: IOPool) -> None:
        mock_upload.side_effect = cloudinary.exceptions.Error("Socket error")
        storage = CloudinaryObjectStorage(self._settings(), pool)

        with pytest.raises(UpstreamFailure, match="a.jpg"):
            await storage.put("c1", "a.jpg", b"pixels", None)
