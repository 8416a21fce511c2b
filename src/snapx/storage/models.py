"""Persisted records: collections and their images."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime

# One face descriptor. The dimension is fixed by the client-side extractor.
Embedding = tuple[float, ...]


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Collection:
    """An event gallery owned by exactly one principal."""

    id: str
    name: str
    owner_id: str
    description: str | None = None
    cover_image: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class Image:
    """One uploaded photo and the face embeddings found in it at ingestion time.

    ``face_embeddings`` may be empty, in which case the image never matches.
    """

    id: str
    collection_id: str
    image_reference: str
    face_embeddings: tuple[Embedding, ...] = ()
    created_at: datetime = field(default_factory=utcnow)
