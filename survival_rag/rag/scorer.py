"""
Hybrid scoring combining dense (semantic) and lexical (BM25) scores.

Both signals are min-max normalized over the candidate set of a query before
fusion, so neither dominates because of its natural range.
"""

import logging
import math
import numpy as np
from typing import Optional, Sequence

from ..config import settings
from .indexer import FAISSIndexer
from .store import LoadedKnowledgeBase

logger = logging.getLogger(__name__)


def bm25_idf(total_chunks: int, doc_freq: int) -> float:
    # Robertson/Sparck Jones IDF with +1 smoothing, never negative
    if doc_freq <= 0:
        return 0.0
    return math.log(1 + (total_chunks - doc_freq + 0.5) / (doc_freq + 0.5))


def min_max_normalize(scores: np.ndarray) -> np.ndarray:
    """
    Rescale scores to [0, 1].

    A constant distribution carries no ranking signal: it maps to all 1.0
    when positive and all 0.0 otherwise.
    """
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        return scores

    lo = scores.min()
    hi = scores.max()
    if hi - lo <= 1e-12:
        return np.full(scores.shape, 1.0 if hi > 0 else 0.0)

    return (scores - lo) / (hi - lo)


class HybridScorer:
    """
    Hybrid scorer over one loaded knowledge base.
    """

    def __init__(
        self,
        kb: LoadedKnowledgeBase,
        alpha: float = settings.RAG_ALPHA_SEMANTIC,
        k1: float = settings.RAG_BM25_K1,
        b: float = settings.RAG_BM25_B
    ):
        """
        Initialize hybrid scorer.

        Args:
            kb: Loaded knowledge base
            alpha: Weight for semantic score (1-alpha for lexical score)
            k1: BM25 term frequency saturation
            b: BM25 length normalization
        """
        if not 0.0 <= alpha <= 1.0:
            raise ValueError(f"alpha must be within [0, 1], got {alpha}")

        self.kb = kb
        self.alpha = alpha
        self.k1 = k1
        self.b = b
        self.indexer = FAISSIndexer.from_vectors(kb.vectors) if len(kb) else None

    def score_bm25(self, query_terms: Sequence[str]) -> np.ndarray:
        """
        Score every chunk using BM25.

        Args:
            query_terms: Tokenized query

        Returns:
            Array of shape (n_chunks,); chunks without overlap score 0
        """
        index = self.kb.lexical_index
        scores = np.zeros(len(self.kb), dtype=np.float64)
        avgdl = index.avg_chunk_length or 1.0

        for term in dict.fromkeys(query_terms):
            plist = index.postings.get(term)
            if not plist:
                continue

            idf = bm25_idf(index.total_chunks, len(plist))
            for posting in plist:
                position = self.kb.positions[posting.chunk_id]
                dl = index.chunk_lengths[posting.chunk_id]
                tf = posting.freq
                denom = tf + self.k1 * (1 - self.b + self.b * dl / avgdl)
                scores[position] += idf * tf * (self.k1 + 1) / denom

        return scores

    def score_dense(self, query_embedding: np.ndarray) -> np.ndarray:
        """
        Cosine similarity of the query against every chunk, negatives clamped to 0.

        Args:
            query_embedding: Query vector of the corpus dimension

        Returns:
            Array of shape (n_chunks,) with values in [0, 1]
        """
        if self.indexer is None:
            return np.zeros(0, dtype=np.float64)
        return np.maximum(self.indexer.similarities(query_embedding).astype(np.float64), 0.0)

    def hybrid_score(self, dense_scores: np.ndarray, bm25_scores: np.ndarray, alpha: Optional[float] = None) -> np.ndarray:
        """
        Combine normalized dense and BM25 scores.

        Args:
            dense_scores: Raw (clamped) cosine scores
            bm25_scores: Raw BM25 scores
            alpha: Override of the semantic weight (0 for lexical-only)

        Returns:
            Fused scores in [0, 1]
        """
        alpha = self.alpha if alpha is None else alpha
        lexical = min_max_normalize(bm25_scores)
        if alpha == 0.0:
            return lexical
        semantic = min_max_normalize(dense_scores)

        # Hybrid: alpha * semantic + (1-alpha) * lexical
        return alpha * semantic + (1 - alpha) * lexical
