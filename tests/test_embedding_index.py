"""
Tests for batched chunk embedding.
"""

import asyncio
import threading
import time

import numpy as np
import pytest

from survival_rag.rag import BuildError, EmbeddingIndexBuilder

from conftest import FailingEmbedder, FakeEmbedder, make_chunk


class OutOfOrderEmbedder(FakeEmbedder):
    """Earlier batches finish last; tracks the peak number of calls in flight."""

    def __init__(self):
        super().__init__()
        self.in_flight = 0
        self.peak = 0
        self._lock = threading.Lock()

    def embed(self, batch, normalize=True):
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            # "chunk text 0" sleeps longest
            time.sleep(0.05 / (1 + int(batch[0].split()[-1])))
            return super().embed(batch, normalize)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def chunks():
    return [make_chunk('kb', i, f"chunk text {i}") for i in range(10)]


class TestEmbeddingIndexBuilder:
    """One vector per chunk, in chunk order."""

    def test_vectors_match_chunk_order(self, chunks):
        embedder = OutOfOrderEmbedder()
        builder = EmbeddingIndexBuilder(embedder, dimension=384, batch_size=3, max_concurrency=2)

        vectors = builder.build_sync(chunks)

        assert vectors.shape == (10, 384)
        np.testing.assert_allclose(vectors, FakeEmbedder().embed([c.content for c in chunks]))
        assert embedder.peak <= 2

    def test_progress_reports_every_batch(self, chunks):
        seen = []
        builder = EmbeddingIndexBuilder(FakeEmbedder(), dimension=384, batch_size=4)

        builder.build_sync(chunks, progress=lambda done, total: seen.append((done, total)))

        assert len(seen) == 3
        assert sorted(seen)[-1] == (10, 10)

    def test_empty_input(self):
        vectors = EmbeddingIndexBuilder(FakeEmbedder(), dimension=384).build_sync([])

        assert vectors.shape == (0, 384)

    def test_dimension_mismatch_is_build_error(self, chunks):
        builder = EmbeddingIndexBuilder(FakeEmbedder(dimension=128), dimension=384, batch_size=5)

        with pytest.raises(BuildError) as exc_info:
            builder.build_sync(chunks)

        assert exc_info.value.document_id == 'doc'

    def test_collaborator_failure_is_build_error_after_retries(self, chunks):
        embedder = FailingEmbedder()
        builder = EmbeddingIndexBuilder(embedder, dimension=384, batch_size=10, retry_attempts=3, retry_wait_sec=0)

        with pytest.raises(BuildError, match="unreachable"):
            builder.build_sync(chunks)

        assert embedder.calls == 3

    def test_transient_failure_is_retried(self, chunks):
        class FlakyEmbedder(FakeEmbedder):
            def embed(self, batch, normalize=True):
                self.calls += 1
                if self.calls == 1:
                    raise RuntimeError("busy")
                return super().embed(batch, normalize)

        builder = EmbeddingIndexBuilder(FlakyEmbedder(), dimension=384, batch_size=10, retry_attempts=2, retry_wait_sec=0)

        assert builder.build_sync(chunks).shape == (10, 384)

    def test_async_build(self, chunks):
        builder = EmbeddingIndexBuilder(FakeEmbedder(), dimension=384, batch_size=4)

        vectors = asyncio.run(builder.build(chunks))

        assert vectors.shape == (10, 384)

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            EmbeddingIndexBuilder(FakeEmbedder(), batch_size=0)
