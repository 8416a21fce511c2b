"""Face embedding validation, tolerant parsing and Euclidean distance.

The dimension of an embedding is fixed by the client-side extractor
(128 for the browser model in use today). Nothing here assumes a value:
``expected_dim`` is either configured or ``None``, and comparisons only
ever happen between vectors of equal length.
"""

from __future__ import annotations

import json
import logging
import math
from numbers import Real
from typing import TYPE_CHECKING

import numpy as np

from snapx.errors import InvalidInput

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from snapx.storage.models import Embedding

logger = logging.getLogger(__name__)


def _is_number(value: object) -> bool:
    if not isinstance(value, Real) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except OverflowError:
        # JSON integers have no size limit; ones beyond float range are not embeddings.
        return False


def coerce_embedding(value: object, expected_dim: int | None = None) -> Embedding | None:
    """Return ``value`` as an embedding tuple, or None if it is not one.

    An embedding is a non-empty sequence of finite real numbers whose length
    equals ``expected_dim`` when that is set.
    """
    if not isinstance(value, (list, tuple)) or not value:
        return None
    if not all(_is_number(x) for x in value):
        return None
    if expected_dim is not None and len(value) != expected_dim:
        return None
    return tuple(float(x) for x in value)


def validate_query(descriptor: object, expected_dim: int | None = None) -> NDArray[np.float64]:
    """Validate a query descriptor and return it as a float64 vector.

    Raises:
        InvalidInput: If the descriptor is missing, not a numeric sequence,
            or has the wrong dimension.
    """
    if descriptor is None:
        raise InvalidInput("Valid face descriptor required")
    if not isinstance(descriptor, (list, tuple)):
        raise InvalidInput("Face descriptor must be an array of numbers")
    if expected_dim is not None and len(descriptor) != expected_dim:
        raise InvalidInput(f"Face descriptor must have {expected_dim} dimensions, got {len(descriptor)}")
    embedding = coerce_embedding(descriptor, expected_dim)
    if embedding is None:
        raise InvalidInput("Face descriptor must be a non-empty array of finite numbers")
    return np.asarray(embedding, dtype=np.float64)


def coerce_embedding_set(value: object, expected_dim: int | None = None) -> tuple[Embedding, ...] | None:
    """Return the embeddings found in one image, or None if the set is malformed.

    A set is a list of embeddings of one common dimension. An empty list is
    valid: the extractor found no face.
    """
    if not isinstance(value, (list, tuple)):
        return None
    embeddings: list[Embedding] = []
    for item in value:
        embedding = coerce_embedding(item, expected_dim)
        if embedding is None:
            return None
        embeddings.append(embedding)
    if len({len(e) for e in embeddings}) > 1:
        return None
    return tuple(embeddings)


def parse_embedding_sets(
    raw: str | Sequence[object] | None,
    count: int,
    expected_dim: int | None = None,
) -> list[tuple[Embedding, ...]]:
    """Pair ``count`` uploaded files with their embedding sets by position.

    ``raw`` is the JSON array sent alongside the upload (one entry per file,
    each entry a list of embeddings). Parsing is tolerant: an absent or
    undecodable payload, a missing entry, or a malformed entry yields an
    empty set for the affected files instead of failing the batch. Entries
    beyond ``count`` are ignored.
    """
    entries: Sequence[object] = ()
    if isinstance(raw, str):
        try:
            decoded = json.loads(raw) if raw.strip() else None
        except json.JSONDecodeError:
            logger.warning("Ignoring undecodable embeddings payload")
            decoded = None
        if isinstance(decoded, list):
            entries = decoded
        elif decoded is not None:
            logger.warning("Ignoring embeddings payload that is not an array")
    elif isinstance(raw, (list, tuple)):
        entries = raw

    sets: list[tuple[Embedding, ...]] = []
    for index in range(count):
        entry = entries[index] if index < len(entries) else None
        if entry is None:
            sets.append(())
            continue
        parsed = coerce_embedding_set(entry, expected_dim)
        if parsed is None:
            logger.warning("Malformed embedding set at index %d; storing image without embeddings", index)
            parsed = ()
        sets.append(parsed)
    return sets


def euclidean_distance(a: Sequence[float] | NDArray[np.float64], b: Sequence[float] | NDArray[np.float64]) -> float:
    """Return ``sqrt(sum((a_k - b_k) ** 2))``.

    Raises:
        ValueError: If the vectors differ in dimension.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Dimension mismatch: {va.shape[0]} != {vb.shape[0]}")
    return float(np.linalg.norm(va - vb))


def distances_to(query: NDArray[np.float64], embeddings: Sequence[Embedding]) -> NDArray[np.float64]:
    """Vectorized Euclidean distance from ``query`` to each of ``embeddings``.

    All embeddings must share the query's dimension.
    """
    if not embeddings:
        return np.empty(0, dtype=np.float64)
    matrix = np.asarray(embeddings, dtype=np.float64)
    return np.linalg.norm(matrix - query, axis=1)
