"""Ingestion coordinator: store an uploaded batch with its precomputed embeddings.

Ownership is checked once, before any per-file work. Each file then becomes
one image record independently: bytes go to object storage first, and the
record is inserted only once a reference URL exists. A failing file is
reported and the rest of the batch still commits. The batch fails as a whole
only when no image at all could be stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from snapx.core.authorization import ensure_owner
from snapx.core.embeddings import parse_embedding_sets
from snapx.errors import InvalidInput, NotFound, UpstreamFailure

if TYPE_CHECKING:
    from collections.abc import Sequence

    from snapx.storage.base import EmbeddingStore
    from snapx.storage.models import Image
    from snapx.storage.objects import ObjectStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    """One file of an upload batch, already read into memory."""

    filename: str
    content: bytes
    content_type: str | None = None


@dataclass(frozen=True)
class IngestFailure:
    """A file of the batch that could not be stored."""

    index: int
    filename: str
    error: str


@dataclass
class IngestResult:
    images: list[Image] = field(default_factory=list)
    failures: list[IngestFailure] = field(default_factory=list)


class IngestionCoordinator:
    """Validates ownership and commits one image record per uploaded file."""

    def __init__(
        self,
        store: EmbeddingStore,
        objects: ObjectStorage,
        embedding_dim: int | None = None,
        max_files: int = 20,
        max_file_size: int | None = None,
    ) -> None:
        self._store = store
        self._objects = objects
        self._embedding_dim = embedding_dim
        self._max_files = max_files
        self._max_file_size = max_file_size

    @property
    def max_file_size(self) -> int | None:
        return self._max_file_size

    async def check_batch(self, collection_id: str, principal_id: str, file_count: int) -> None:
        """Reject a batch before any file is read or stored.

        Raises:
            NotFound: If the collection does not exist.
            Forbidden: If ``principal_id`` does not own the collection.
            InvalidInput: If the batch is empty or larger than allowed.
        """
        collection = await self._store.get_collection(collection_id)
        if collection is None:
            raise NotFound("Collection not found")
        ensure_owner(collection, principal_id, "upload photos")

        if file_count == 0:
            raise InvalidInput("No files uploaded")
        if file_count > self._max_files:
            raise InvalidInput(f"Too many files: at most {self._max_files} per upload")

    async def ingest(
        self,
        collection_id: str,
        principal_id: str,
        files: Sequence[UploadedFile],
        embedding_sets: str | Sequence[object] | None,
    ) -> IngestResult:
        """Store ``files`` in the collection, paired by position with ``embedding_sets``.

        Raises:
            NotFound: If the collection does not exist.
            Forbidden: If ``principal_id`` does not own the collection.
            InvalidInput: If the batch is empty, larger than allowed, or every
                file was rejected for its size.
            UpstreamFailure: If no file could be stored because a backend failed.
        """
        await self.check_batch(collection_id, principal_id, len(files))

        sets = parse_embedding_sets(embedding_sets, len(files), self._embedding_dim)
        result = IngestResult()
        backend_failed = False
        for index, (upload, embeddings) in enumerate(zip(files, sets, strict=True)):
            if self._max_file_size is not None and len(upload.content) > self._max_file_size:
                result.failures.append(IngestFailure(index, upload.filename, "File too large"))
                continue
            reference: str | None = None
            try:
                reference = await self._objects.put(
                    collection_id, upload.filename, upload.content, upload.content_type
                )
                image = await self._store.add_image(collection_id, reference, embeddings)
            except UpstreamFailure as exc:
                backend_failed = True
                if reference is None:
                    logger.warning("Failed to upload %s (index %d): %s", upload.filename, index, exc)
                else:
                    logger.error(
                        "Orphaned object %s: %s (index %d) was stored but its record was not: %s",
                        reference,
                        upload.filename,
                        index,
                        exc,
                    )
                result.failures.append(IngestFailure(index, upload.filename, str(exc)))
                continue
            result.images.append(image)

        logger.info(
            "Ingested %d/%d images into collection %s (%d faces)",
            len(result.images),
            len(files),
            collection_id,
            sum(len(i.face_embeddings) for i in result.images),
        )
        if not result.images:
            if backend_failed:
                raise UpstreamFailure(f"No images could be stored ({len(result.failures)} failed)")
            raise InvalidInput(f"Every file exceeds the {self._max_file_size}-byte limit")
        return result
