"""
Hybrid query engine.

Scores every chunk of the selected knowledge base with BM25 and with cosine
similarity to the query embedding, fuses the normalized scores and returns a
ranked, deduplicated top-K list with source attribution.

Queries are stateless and only read immutable loaded data, so one engine can
serve concurrent queries. If the query embedding cannot be produced, the
query degrades to lexical-only scoring and the result is flagged.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np

from ..config import settings
from .chunker import tokenize
from .dedup import suppress_near_duplicates
from .errors import EmbeddingUnavailableError
from .models import RankedChunk
from .scorer import HybridScorer
from .store import CorpusStore, LoadedKnowledgeBase

logger = logging.getLogger(__name__)


@dataclass
class QueryResult:
    query: str
    kb_id: str
    results: List[RankedChunk] = field(default_factory=list)
    lexical_only: bool = False
    degradation_reason: Optional[str] = None

    def __len__(self) -> int:
        return len(self.results)


class HybridQueryEngine:
    """
    Ranks chunks of a knowledge base against a query.
    """

    def __init__(
        self,
        store: CorpusStore,
        embedder=None,
        alpha: float = settings.RAG_ALPHA_SEMANTIC,
        k1: float = settings.RAG_BM25_K1,
        b: float = settings.RAG_BM25_B,
        dedup_threshold: float = settings.RAG_DEDUP_THRESHOLD,
        embed_timeout_sec: float = settings.RAG_QUERY_EMBED_TIMEOUT_SEC,
        embed_workers: int = 2
    ):
        """
        Initialize query engine.

        Args:
            store: Published corpus
            embedder: Query embedding collaborator (embed(batch, normalize)); None means lexical-only
            alpha: Fusion weight of the semantic signal
            k1: BM25 term frequency saturation
            b: BM25 length normalization
            dedup_threshold: Cosine at or above which a lower-ranked chunk is dropped (<= 0 disables)
            embed_timeout_sec: Timeout for the query embedding call
            embed_workers: Threads available for query embedding calls
        """
        self.store = store
        self.embedder = embedder
        self.alpha = alpha
        self.k1 = k1
        self.b = b
        self.dedup_threshold = dedup_threshold
        self.embed_timeout_sec = embed_timeout_sec
        self.dimension = store.metadata().embedding_dim

        self._scorers: Dict[str, HybridScorer] = {}
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=embed_workers, thread_name_prefix='query-embed')

        if embedder is not None and hasattr(embedder, 'get_dimension'):
            store.check_dimension(embedder.get_dimension())

    def search(
        self,
        query: str,
        kb_id: str,
        k: int = settings.RAG_TOP_K,
        min_score: Optional[float] = settings.RAG_MIN_SCORE
    ) -> QueryResult:
        """
        Rank the chunks of a knowledge base for a query.

        Args:
            query: User query text
            kb_id: Selected knowledge base
            k: Maximum number of results
            min_score: Optional fused-score threshold

        Returns:
            QueryResult; an empty result list is a valid outcome

        Raises:
            KnowledgeBaseNotFoundError: Unknown kb_id
            CorruptIndexError: Stored data of this knowledge base is corrupt
        """
        start_time = time.time()
        kb = self.store.load(kb_id)
        terms = tokenize(query)

        if not terms or len(kb) == 0 or k <= 0:
            logger.info(f"[query_engine] Empty result for '{query}' on {kb_id}")
            return QueryResult(query=query, kb_id=kb_id)

        scorer = self._scorer(kb)

        # Lexical
        bm25_scores = scorer.score_bm25(terms)

        # Semantic, degrading to lexical-only
        alpha = self.alpha
        lexical_only = False
        degradation_reason = None
        dense_scores = np.zeros(len(kb), dtype=np.float64)

        try:
            query_embedding = self._embed_query(query)
            dense_scores = scorer.score_dense(query_embedding)
        except EmbeddingUnavailableError as e:
            logger.warning(f"[query_engine] Semantic scoring unavailable, using lexical-only: {e.message}")
            alpha = 0.0
            lexical_only = True
            degradation_reason = e.message

        fused = scorer.hybrid_score(dense_scores, bm25_scores, alpha=alpha)

        # Rank: fused desc, earlier chunk wins ties
        order = sorted(
            range(len(kb)),
            key=lambda i: (-fused[i], kb.chunks[i].chunk_index, i)
        )

        if min_score is not None:
            order = [i for i in order if fused[i] >= min_score]

        kept = suppress_near_duplicates(
            order,
            kb.vectors,
            [chunk.content for chunk in kb.chunks],
            self.dedup_threshold,
            limit=k
        )

        results = [
            RankedChunk(
                chunk=kb.chunks[i],
                rank=rank,
                score=float(fused[i]),
                lexical_score=float(bm25_scores[i]),
                semantic_score=float(dense_scores[i])
            )
            for rank, i in enumerate(kept, start=1)
        ]

        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(
            f"[query_engine] '{query}' on {kb_id}: {len(results)} results "
            f"(lexical_only={lexical_only}, {elapsed_ms:.1f}ms)"
        )

        return QueryResult(
            query=query,
            kb_id=kb_id,
            results=results,
            lexical_only=lexical_only,
            degradation_reason=degradation_reason
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    def _scorer(self, kb: LoadedKnowledgeBase) -> HybridScorer:
        scorer = self._scorers.get(kb.kb.id)
        if scorer is None:
            with self._lock:
                scorer = self._scorers.get(kb.kb.id)
                if scorer is None:
                    scorer = HybridScorer(kb, alpha=self.alpha, k1=self.k1, b=self.b)
                    self._scorers[kb.kb.id] = scorer
        return scorer

    def _embed_query(self, query: str) -> np.ndarray:
        """
        Embed the query with a timeout.

        Raises:
            EmbeddingUnavailableError: No embedder, failure, timeout or dimension mismatch
        """
        if self.embedder is None:
            raise EmbeddingUnavailableError("No embedding model configured")

        future = self._executor.submit(self.embedder.embed, [query], normalize=True)
        try:
            vectors = future.result(timeout=self.embed_timeout_sec)
        except FuturesTimeoutError:
            future.cancel()
            raise EmbeddingUnavailableError(f"Query embedding timed out after {self.embed_timeout_sec}s")
        except Exception as e:
            raise EmbeddingUnavailableError(f"Query embedding failed: {e}") from e

        vector = np.asarray(vectors, dtype=np.float32)
        if vector.ndim == 2 and vector.shape[0] == 1:
            vector = vector[0]

        if vector.shape != (self.dimension,):
            raise EmbeddingUnavailableError(
                f"Query embedding shape {vector.shape} doesn't match corpus dimension {self.dimension}"
            )
        if not np.all(np.isfinite(vector)):
            raise EmbeddingUnavailableError("Query embedding contains non-finite values")

        return vector
