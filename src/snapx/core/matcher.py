"""Match engine: find the images of a collection that contain a given face.

Linear scan over every stored embedding of the collection. An image matches
when ANY of its embeddings lies within ``threshold`` (Euclidean, inclusive)
of the query. Each image is reported once, with its best distance.

Callers depend only on ``find_matches``; the scan can be replaced by an
indexed nearest-neighbour structure behind it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from snapx.core.embeddings import distances_to, validate_query
from snapx.errors import NotFound

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

    from snapx.storage.base import EmbeddingStore
    from snapx.storage.models import Image

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD: float = 0.6


@dataclass(frozen=True)
class Match:
    """An image that contains the queried face."""

    image: Image
    distance: float


class MatchEngine:
    """Scans a collection's stored embeddings for a query embedding."""

    def __init__(
        self,
        store: EmbeddingStore,
        threshold: float = DEFAULT_THRESHOLD,
        embedding_dim: int | None = None,
    ) -> None:
        self._store = store
        self._threshold = threshold
        self._embedding_dim = embedding_dim

    @property
    def threshold(self) -> float:
        return self._threshold

    async def find_matches(self, collection_id: str, query_embedding: object) -> list[Match]:
        """Return the collection's images containing the queried face.

        Results are ordered by ascending distance; ties keep the store's
        newest-first order. An empty list is a valid outcome.

        Raises:
            InvalidInput: If ``query_embedding`` is malformed.
            NotFound: If the collection does not exist.
            UpstreamFailure: If the store is unreachable.
        """
        query = validate_query(query_embedding, self._embedding_dim)

        collection = await self._store.get_collection(collection_id)
        if collection is None:
            raise NotFound("Collection not found")

        images = await self._store.list_images(collection_id)
        matches: list[Match] = []
        for image in images:
            distance = self.best_distance(query, image)
            if distance is not None and distance <= self._threshold:
                matches.append(Match(image=image, distance=distance))
        matches.sort(key=lambda m: m.distance)

        logger.info(
            "Match query on collection %s: scanned %d images, %d matched",
            collection_id,
            len(images),
            len(matches),
        )
        return matches

    def best_distance(self, query: NDArray[np.float64], image: Image) -> float | None:
        """Smallest distance from ``query`` to any of the image's embeddings.

        Embeddings whose dimension differs from the query cannot be compared
        and are skipped. Returns None when nothing is comparable.
        """
        dim = query.shape[0]
        comparable = [e for e in image.face_embeddings if len(e) == dim]
        skipped = len(image.face_embeddings) - len(comparable)
        if skipped:
            logger.warning("Skipped %d embedding(s) of image %s with dimension != %d", skipped, image.id, dim)
        if not comparable:
            return None
        return float(distances_to(query, comparable).min())
