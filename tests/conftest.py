"""Shared test doubles."""

from __future__ import annotations

import pytest

from snapx.errors import UpstreamFailure
from snapx.storage.memory import MemoryEmbeddingStore


class FakeObjectStorage:
    """Records uploads and hands out deterministic URLs.

    Filenames listed in ``fail_on`` raise UpstreamFailure, like an
    unreachable CDN would.
    """

    backend_name = "fake"

    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.uploads: list[tuple[str, str, bytes]] = []

    async def put(self, collection_id: str, filename: str, content: bytes, content_type: str | None) -> str:
        if filename in self.fail_on:
            raise UpstreamFailure(f"Could not store {filename}")
        self.uploads.append((collection_id, filename, content))
        return f"https://cdn.test/{collection_id}/{len(self.uploads)}-{filename}"


@pytest.fixture()
def store() -> MemoryEmbeddingStore:
    return MemoryEmbeddingStore()


@pytest.fixture()
def objects() -> FakeObjectStorage:
    return FakeObjectStorage()
