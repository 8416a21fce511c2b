"""Tests for embedding validation, parsing and distance."""

from __future__ import annotations

import json
import math

import numpy as np
import pytest

from snapx.core.embeddings import (
    coerce_embedding,
    coerce_embedding_set,
    distances_to,
    euclidean_distance,
    parse_embedding_sets,
    validate_query,
)
from snapx.errors import InvalidInput

# ---------------------------------------------------------------------------
# Distance
# ---------------------------------------------------------------------------


class TestEuclideanDistance:
    def test_known_value(self) -> None:
        assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == 5.0

    @pytest.mark.parametrize(
        ("a", "b"),
        [
            ([0.1, -0.2, 0.3], [0.4, 0.5, -0.6]),
            ([1e-3] * 128, [-1e-3] * 128),
            ([0.25, 0.75], [0.75, 0.25]),
        ],
    )
    def test_symmetric(self, a: list[float], b: list[float]) -> None:
        assert euclidean_distance(a, b) == euclidean_distance(b, a)

    def test_identity_is_zero(self) -> None:
        q = list(np.random.default_rng(7).normal(size=128))
        assert euclidean_distance(q, q) == 0.0

    def test_dimension_mismatch_raises(self) -> None:
        with pytest.raises(ValueError, match="Dimension mismatch"):
            euclidean_distance([1.0, 2.0], [1.0, 2.0, 3.0])

    def test_distances_to_matches_scalar_version(self) -> None:
        query = np.array([0.0, 1.0, 2.0])
        embeddings = [(0.0, 1.0, 2.0), (1.0, 1.0, 2.0), (0.0, 4.0, 6.0)]
        result = distances_to(query, embeddings)
        assert list(result) == [euclidean_distance(query, e) for e in embeddings]
        assert list(result) == [0.0, 1.0, 5.0]

    def test_distances_to_empty(self) -> None:
        assert distances_to(np.array([1.0]), []).shape == (0,)


# ---------------------------------------------------------------------------
# Query validation
# ---------------------------------------------------------------------------


class TestValidateQuery:
    def test_returns_float_vector(self) -> None:
        vector = validate_query([1, 2.5, -3])
        assert vector.dtype == np.float64
        assert list(vector) == [1.0, 2.5, -3.0]

    @pytest.mark.parametrize(
        "descriptor",
        [None, "0.1,0.2", {"0": 0.1}, 0.5, [], ["a", "b"], [0.1, None], [True, False], [0.1, math.nan], [[0.1]]],
    )
    def test_rejects_malformed(self, descriptor: object) -> None:
        with pytest.raises(InvalidInput):
            validate_query(descriptor)

    def test_enforces_configured_dimension(self) -> None:
        validate_query([0.0] * 4, expected_dim=4)
        with pytest.raises(InvalidInput, match="4 dimensions"):
            validate_query([0.0] * 3, expected_dim=4)

    def test_rejects_integer_beyond_float_range(self) -> None:
        with pytest.raises(InvalidInput):
            validate_query([10**400, 0.0])


# ---------------------------------------------------------------------------
# Tolerant parsing of upload payloads
# ---------------------------------------------------------------------------


class TestCoerce:
    def test_embedding(self) -> None:
        assert coerce_embedding([1, 2]) == (1.0, 2.0)
        assert coerce_embedding([1, 2], expected_dim=3) is None
        assert coerce_embedding("12") is None

    def test_empty_set_is_valid(self) -> None:
        assert coerce_embedding_set([]) == ()

    def test_mixed_dimensions_rejected(self) -> None:
        assert coerce_embedding_set([[0.1, 0.2], [0.1, 0.2, 0.3]]) is None

    def test_set_of_faces(self) -> None:
        assert coerce_embedding_set([[0.1, 0.2], [0.3, 0.4]]) == ((0.1, 0.2), (0.3, 0.4))


class TestParseEmbeddingSets:
    def test_pairs_by_position(self) -> None:
        raw = json.dumps([[[0.1, 0.2]], [], [[0.3, 0.4], [0.5, 0.6]]])
        assert parse_embedding_sets(raw, 3) == [((0.1, 0.2),), (), ((0.3, 0.4), (0.5, 0.6))]

    @pytest.mark.parametrize("raw", [None, "", "not json", '{"a": 1}', "42"])
    def test_absent_or_undecodable_payload_gives_empty_sets(self, raw: str | None) -> None:
        assert parse_embedding_sets(raw, 2) == [(), ()]

    def test_missing_entries_are_padded(self) -> None:
        assert parse_embedding_sets(json.dumps([[[1.0]]]), 3) == [((1.0,),), (), ()]

    def test_extra_entries_are_ignored(self) -> None:
        assert parse_embedding_sets(json.dumps([[[1.0]], [[2.0]]]), 1) == [((1.0,),)]

    def test_malformed_entry_only_affects_its_file(self) -> None:
        raw = json.dumps([[[0.1, 0.2]], "garbage", [[0.1, "x"]], [[0.5, 0.5]]])
        assert parse_embedding_sets(raw, 4) == [((0.1, 0.2),), (), (), ((0.5, 0.5),)]

    def test_configured_dimension_applies_to_sets(self) -> None:
        raw = json.dumps([[[0.1, 0.2]], [[0.1, 0.2, 0.3]]])
        assert parse_embedding_sets(raw, 2, expected_dim=3) == [(), ((0.1, 0.2, 0.3),)]

    def test_accepts_decoded_sequence(self) -> None:
        assert parse_embedding_sets([[[1.0, 2.0]]], 1) == [((1.0, 2.0),)]

    def test_integer_beyond_float_range_only_drops_its_set(self) -> None:
        raw = json.dumps([[[10**400, 0.0]], [[0.1, 0.2]]])
        assert parse_embedding_sets(raw, 2) == [(), ((0.1, 0.2),)]
