"""Pydantic request/response schemas for the SnapX API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class CollectionResponse(BaseModel):
    id: str
    name: str
    description: str | None
    cover_image: str | None
    owner_id: str
    created_at: datetime


class ImageSummary(BaseModel):
    """An image as seen by clients. Embeddings are never returned."""

    id: str
    image_reference: str = Field(description="Public URL of the stored photo")
    created_at: datetime


class FindMyPhotosRequest(BaseModel):
    """Guest query. The descriptor is validated by the match engine so that a
    malformed value yields 400 rather than a schema error."""

    descriptor: Any = Field(default=None, description="Query face embedding (array of numbers)")


class MatchedImage(ImageSummary):
    distance: float = Field(description="Euclidean distance of the closest face in the image")


class IngestFailureResponse(BaseModel):
    index: int
    filename: str
    error: str


class IngestResponse(BaseModel):
    """Response for an upload batch. Failures are reported per file."""

    images: list[ImageSummary]
    failures: list[IngestFailureResponse]


class DeleteResponse(BaseModel):
    message: str = "Collection deleted"
    images_removed: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    store_backend: str
    object_storage: str
    io_in_flight: int
    io_waiting: int


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
