"""
Embedding index builder.

Embeds chunk texts in batches through the embedding collaborator. Batches run
as a bounded-concurrency task queue and results are collected in submission
order, so vector i always belongs to chunk i.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Sequence

import numpy as np
from tenacity import Retrying, stop_after_attempt, wait_exponential

from ..config import settings
from .errors import BuildError
from .models import Chunk

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class EmbeddingIndexBuilder:
    """
    Produces one stored vector per chunk. Performs no scoring.
    """

    def __init__(
        self,
        embedder,
        dimension: int = settings.RAG_EMBEDDING_DIM,
        batch_size: int = settings.RAG_EMBED_BATCH_SIZE,
        max_concurrency: int = settings.RAG_EMBED_CONCURRENCY,
        retry_attempts: int = settings.RAG_EMBED_RETRY_ATTEMPTS,
        retry_wait_sec: float = settings.RAG_EMBED_RETRY_WAIT_SEC
    ):
        """
        Initialize builder.

        Args:
            embedder: Collaborator exposing embed(batch, normalize) -> vectors
            dimension: Declared corpus-wide embedding dimension
            batch_size: Texts per embedding request
            max_concurrency: Max batches in flight
            retry_attempts: Attempts per batch before the build fails
            retry_wait_sec: Backoff base between attempts
        """
        if batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.embedder = embedder
        self.dimension = dimension
        self.batch_size = batch_size
        self.max_concurrency = max(1, max_concurrency)
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait_sec = retry_wait_sec

    async def build(self, chunks: Sequence[Chunk], progress: Optional[ProgressCallback] = None) -> np.ndarray:
        """
        Embed all chunks.

        Args:
            chunks: Chunks in corpus order
            progress: Optional callback(done, total) after each finished batch

        Returns:
            float32 array of shape (len(chunks), dimension), row i for chunks[i]

        Raises:
            BuildError: If the collaborator fails or returns the wrong dimension
        """
        total = len(chunks)
        if total == 0:
            return np.zeros((0, self.dimension), dtype=np.float32)

        batches = [chunks[i:i + self.batch_size] for i in range(0, total, self.batch_size)]
        semaphore = asyncio.Semaphore(self.max_concurrency)
        loop = asyncio.get_running_loop()
        done = 0

        logger.info(f"[embedding_index] Embedding {total} chunks in {len(batches)} batches")

        async def run_batch(batch: Sequence[Chunk]) -> np.ndarray:
            nonlocal done
            texts = [chunk.content for chunk in batch]

            async with semaphore:
                try:
                    vectors = await loop.run_in_executor(None, self._embed, texts)
                except Exception as e:
                    raise BuildError(
                        f"Embedding failed: {e}",
                        document_id=batch[0].document_id,
                        details={'chunk_id': batch[0].id}
                    ) from e

            self._validate(batch, vectors)

            done += len(batch)
            logger.info(f"[embedding_index] Progress: {done}/{total} ({done / total * 100:.1f}%)")
            if progress is not None:
                progress(done, total)

            return vectors

        results: List[np.ndarray] = await asyncio.gather(*(run_batch(batch) for batch in batches))

        return np.vstack(results)

    def build_sync(self, chunks: Sequence[Chunk], progress: Optional[ProgressCallback] = None) -> np.ndarray:
        """Run build() on a fresh event loop."""
        return asyncio.run(self.build(chunks, progress))

    def _embed(self, texts: List[str]) -> np.ndarray:
        retrying = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_sec, max=30),
            reraise=True
        )
        for attempt in retrying:
            with attempt:
                return np.asarray(self.embedder.embed(texts, normalize=True), dtype=np.float32)

    def _validate(self, batch: Sequence[Chunk], vectors: np.ndarray) -> None:
        if vectors.ndim != 2 or vectors.shape[0] != len(batch):
            raise BuildError(
                f"Embedding collaborator returned shape {vectors.shape} for {len(batch)} texts",
                document_id=batch[0].document_id,
                details={'chunk_id': batch[0].id}
            )
        if vectors.shape[1] != self.dimension:
            raise BuildError(
                f"Embedding dimension {vectors.shape[1]} doesn't match corpus dimension {self.dimension}",
                document_id=batch[0].document_id,
                details={'chunk_id': batch[0].id}
            )
