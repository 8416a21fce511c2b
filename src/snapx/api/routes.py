"""API route definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import FileResponse

from snapx.api.middleware import Principal
from snapx.api.schemas import (
    CollectionResponse,
    DeleteResponse,
    ErrorResponse,
    FindMyPhotosRequest,
    HealthResponse,
    ImageSummary,
    IngestFailureResponse,
    IngestResponse,
    MatchedImage,
)
from snapx.core.ingestion import UploadedFile
from snapx.storage.objects import LocalObjectStorage

if TYPE_CHECKING:
    from snapx.config import Settings
    from snapx.core.collections import CollectionService
    from snapx.core.ingestion import IngestionCoordinator
    from snapx.core.matcher import MatchEngine
    from snapx.storage.base import EmbeddingStore
    from snapx.storage.models import Collection, Image
    from snapx.storage.objects import ObjectStorage
    from snapx.storage.pool import IOPool

router = APIRouter(prefix="/api/v1")

_OWNER_ERRORS = {
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
}


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_store(request: Request) -> EmbeddingStore:
    store: EmbeddingStore = request.app.state.store
    return store


def _get_object_storage(request: Request) -> ObjectStorage:
    objects: ObjectStorage = request.app.state.object_storage
    return objects


def _get_io_pool(request: Request) -> IOPool:
    pool: IOPool = request.app.state.io_pool
    return pool


def _get_collections(request: Request) -> CollectionService:
    service: CollectionService = request.app.state.collections
    return service


def _get_ingestion(request: Request) -> IngestionCoordinator:
    coordinator: IngestionCoordinator = request.app.state.ingestion
    return coordinator


def _get_matcher(request: Request) -> MatchEngine:
    engine: MatchEngine = request.app.state.matcher
    return engine


async def _read_upload(upload: UploadFile, max_size: int | None, default_name: str = "upload") -> UploadedFile:
    """Read an upload, stopping one byte past ``max_size`` so oversized files stay detectable."""
    content = await upload.read(max_size + 1) if max_size is not None else await upload.read()
    return UploadedFile(
        filename=upload.filename or default_name,
        content=content,
        content_type=upload.content_type,
    )


def _collection_response(collection: Collection) -> CollectionResponse:
    return CollectionResponse(
        id=collection.id,
        name=collection.name,
        description=collection.description,
        cover_image=collection.cover_image,
        owner_id=collection.owner_id,
        created_at=collection.created_at,
    )


def _image_summary(image: Image) -> ImageSummary:
    return ImageSummary(id=image.id, image_reference=image.image_reference, created_at=image.created_at)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    pool = _get_io_pool(request)
    return HealthResponse(
        status="ok",
        store_backend=_get_store(request).backend_name,
        object_storage=_get_object_storage(request).backend_name,
        io_in_flight=pool.in_flight,
        io_waiting=pool.waiting,
    )


@router.post(
    "/collections",
    response_model=CollectionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    },
    summary="Create a collection",
)
async def create_collection(
    request: Request,
    principal: Principal,
    name: Annotated[str, Form(min_length=1, max_length=200)],
    description: Annotated[str | None, Form()] = None,
    cover: Annotated[UploadFile | None, File(description="Optional cover photo")] = None,
) -> CollectionResponse:
    """Create a collection owned by the authenticated principal."""
    settings = _get_settings(request)
    cover_file = await _read_upload(cover, settings.max_file_size) if cover is not None else None
    collection = await _get_collections(request).create(
        owner_id=principal,
        name=name,
        description=description,
        cover=cover_file,
    )
    return _collection_response(collection)


@router.get(
    "/collections",
    response_model=list[CollectionResponse],
    responses={status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse}},
    summary="List my collections",
)
async def list_my_collections(request: Request, principal: Principal) -> list[CollectionResponse]:
    """Return the authenticated principal's collections, newest first."""
    collections = await _get_collections(request).list_owned(principal)
    return [_collection_response(c) for c in collections]


@router.get(
    "/collections/{collection_id}",
    response_model=CollectionResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Get collection metadata",
)
async def get_collection(collection_id: str, request: Request) -> CollectionResponse:
    """Public: anyone holding the link may read a collection's metadata."""
    return _collection_response(await _get_collections(request).get(collection_id))


@router.delete(
    "/collections/{collection_id}",
    response_model=DeleteResponse,
    responses=_OWNER_ERRORS,
    summary="Delete a collection and its images",
)
async def delete_collection(collection_id: str, request: Request, principal: Principal) -> DeleteResponse:
    removed = await _get_collections(request).delete(collection_id, principal)
    return DeleteResponse(images_removed=removed)


@router.post(
    "/collections/{collection_id}/images",
    response_model=IngestResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        **_OWNER_ERRORS,
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
    summary="Upload photos with their face embeddings",
)
async def upload_images(
    collection_id: str,
    request: Request,
    principal: Principal,
    images: Annotated[list[UploadFile] | None, File(description="Photos of the batch")] = None,
    embeddings: Annotated[
        str | None,
        Form(description="JSON array with one list of face embeddings per uploaded photo, in order"),
    ] = None,
) -> IngestResponse:
    """Store a batch of photos. Embeddings are computed client-side before upload."""
    ingestion = _get_ingestion(request)
    uploads = images or []
    # Owner and batch size are settled before any file body is read.
    await ingestion.check_batch(collection_id, principal, len(uploads))
    files = [
        await _read_upload(upload, ingestion.max_file_size, default_name=f"image-{index}")
        for index, upload in enumerate(uploads)
    ]
    result = await ingestion.ingest(collection_id, principal, files, embeddings)
    return IngestResponse(
        images=[_image_summary(i) for i in result.images],
        failures=[IngestFailureResponse(index=f.index, filename=f.filename, error=f.error) for f in result.failures],
    )


@router.get(
    "/collections/{collection_id}/images",
    response_model=list[ImageSummary],
    responses=_OWNER_ERRORS,
    summary="List all photos of a collection",
)
async def list_collection_images(collection_id: str, request: Request, principal: Principal) -> list[ImageSummary]:
    """Owner only: every photo of the collection, newest first."""
    images = await _get_collections(request).list_images(collection_id, principal)
    return [_image_summary(i) for i in images]


@router.post(
    "/collections/{collection_id}/find-my-photos",
    response_model=list[MatchedImage],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    },
    summary="Find the photos containing a face",
)
async def find_my_photos(
    collection_id: str,
    request: Request,
    body: FindMyPhotosRequest | None = None,
) -> list[MatchedImage]:
    """Public: return the photos whose faces lie within the match threshold of the descriptor."""
    descriptor = body.descriptor if body is not None else None
    matches = await _get_matcher(request).find_matches(collection_id, descriptor)
    return [
        MatchedImage(
            id=m.image.id,
            image_reference=m.image.image_reference,
            created_at=m.image.created_at,
            distance=m.distance,
        )
        for m in matches
    ]


@router.get(
    "/media/{collection_id}/{key}",
    response_class=FileResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    summary="Serve a locally stored photo",
)
async def get_media(collection_id: str, key: str, request: Request) -> FileResponse:
    objects = _get_object_storage(request)
    path = objects.resolve(collection_id, key) if isinstance(objects, LocalObjectStorage) else None
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Media not found")
    return FileResponse(path)
