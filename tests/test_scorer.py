"""
Tests for cosine scanning, BM25 and score fusion.
"""

import math

import numpy as np
import pytest

from survival_rag.rag import HybridScorer
from survival_rag.rag.indexer import FAISSIndexer
from survival_rag.rag.scorer import bm25_idf, min_max_normalize


class TestFAISSIndexer:
    """Exhaustive cosine scan in insertion order."""

    def test_similarities_in_range(self):
        rng = np.random.default_rng(7)
        vectors = rng.normal(size=(50, 16)).astype(np.float32)
        indexer = FAISSIndexer.from_vectors(vectors)

        scores = indexer.similarities(rng.normal(size=16))

        assert scores.shape == (50,)
        assert np.all(scores >= -1.0) and np.all(scores <= 1.0)

    def test_identical_vector_scores_one(self):
        rng = np.random.default_rng(11)
        vectors = rng.normal(size=(10, 8)).astype(np.float32)
        indexer = FAISSIndexer.from_vectors(vectors)

        scores = indexer.similarities(vectors[4] * 3.0)

        assert scores[4] == pytest.approx(1.0, abs=1e-5)
        assert int(np.argmax(scores)) == 4

    def test_scores_follow_insertion_order(self):
        vectors = np.eye(3, dtype=np.float32)
        indexer = FAISSIndexer.from_vectors(vectors)

        np.testing.assert_allclose(indexer.similarities(np.array([0.0, 1.0, 0.0])), [0.0, 1.0, 0.0], atol=1e-6)

    def test_stored_vectors_are_not_modified(self):
        vectors = np.array([[3.0, 4.0]], dtype=np.float32)
        FAISSIndexer.from_vectors(vectors)

        np.testing.assert_array_equal(vectors, [[3.0, 4.0]])

    def test_dimension_mismatch(self):
        indexer = FAISSIndexer(4)
        with pytest.raises(ValueError):
            indexer.add(np.zeros((2, 3), dtype=np.float32))
        with pytest.raises(ValueError):
            indexer.similarities(np.zeros(3))


class TestNormalization:

    def test_min_max(self):
        np.testing.assert_allclose(min_max_normalize(np.array([2.0, 4.0, 6.0])), [0.0, 0.5, 1.0])

    def test_constant_positive_maps_to_one(self):
        np.testing.assert_array_equal(min_max_normalize(np.array([0.3, 0.3])), [1.0, 1.0])

    def test_all_zero_maps_to_zero(self):
        np.testing.assert_array_equal(min_max_normalize(np.zeros(3)), [0.0, 0.0, 0.0])

    def test_empty(self):
        assert min_max_normalize(np.array([])).size == 0

    def test_idf_never_negative(self):
        assert bm25_idf(10, 10) > 0
        assert bm25_idf(10, 1) == pytest.approx(math.log(1 + 9.5 / 1.5))
        assert bm25_idf(10, 0) == 0.0


class TestHybridScorer:
    """BM25 and fusion over a loaded knowledge base."""

    def test_bm25_prefers_shorter_chunk_for_shared_term(self, scenario_store):
        scorer = HybridScorer(scenario_store.load('basics'))

        scores = scorer.score_bm25(['a'])

        assert scores[1] > scores[0] == pytest.approx(scores[2])

    def test_bm25_zero_without_overlap(self, scenario_store):
        scorer = HybridScorer(scenario_store.load('basics'))

        np.testing.assert_array_equal(scorer.score_bm25(['parachute']), [0.0, 0.0, 0.0])

    def test_repeated_query_terms_count_once(self, scenario_store):
        scorer = HybridScorer(scenario_store.load('basics'))

        np.testing.assert_allclose(scorer.score_bm25(['flint', 'flint']), scorer.score_bm25(['flint']))

    def test_dense_scores_clamped(self, scenario_store):
        loaded = scenario_store.load('basics')
        scorer = HybridScorer(loaded)

        scores = scorer.score_dense(-loaded.vectors[0])

        assert np.all(scores >= 0.0) and np.all(scores <= 1.0)

    def test_alpha_validated(self, scenario_store):
        with pytest.raises(ValueError):
            HybridScorer(scenario_store.load('basics'), alpha=1.5)

    def test_lexical_only_fusion(self, scenario_store):
        scorer = HybridScorer(scenario_store.load('basics'), alpha=0.6)

        fused = scorer.hybrid_score(np.array([0.9, 0.1, 0.5]), np.array([0.0, 2.0, 1.0]), alpha=0.0)

        np.testing.assert_allclose(fused, [0.0, 1.0, 0.5])

    def test_fusion_monotonic_in_lexical_score(self, scenario_store):
        scorer = HybridScorer(scenario_store.load('basics'), alpha=0.6)
        dense = np.array([0.8, 0.2, 0.5, 0.4])
        others = [0, 2, 3]

        previous_rank = None
        for boost in [0.0, 0.5, 1.0, 2.0, 4.0, 8.0]:
            bm25 = np.array([3.0, boost, 1.0, 2.0])
            fused = scorer.hybrid_score(dense, bm25)
            rank = sum(1 for i in others if fused[i] > fused[1])

            if previous_rank is not None:
                assert rank <= previous_rank
            previous_rank = rank
