"""
FAISS flat index for exhaustive cosine similarity scans.

Uses IndexFlatIP over L2-normalized copies of the stored vectors, so inner
product equals cosine similarity. Every query scores every vector; there is
no approximate structure.
"""

import logging
import numpy as np
import faiss

logger = logging.getLogger(__name__)


class FAISSIndexer:
    """
    FAISS index wrapper for similarity scans.
    """

    def __init__(self, dimension: int):
        """
        Initialize FAISS index.

        Args:
            dimension: Embedding dimension
        """
        self.dimension = dimension
        # IndexFlatIP: inner product (cosine for normalized vectors)
        self.index = faiss.IndexFlatIP(dimension)
        logger.debug(f"[indexer] Created FAISS IndexFlatIP with dimension {dimension}")

    @classmethod
    def from_vectors(cls, vectors: np.ndarray) -> 'FAISSIndexer':
        """
        Build an index over stored vectors.

        Args:
            vectors: Array of shape (n_vectors, dimension)

        Returns:
            FAISSIndexer instance
        """
        indexer = cls(vectors.shape[1])
        indexer.add(vectors)
        return indexer

    def add(self, embeddings: np.ndarray):
        """
        Add embeddings to index.

        Args:
            embeddings: Array of shape (n_vectors, dimension)
        """
        if embeddings.ndim != 2 or embeddings.shape[1] != self.dimension:
            raise ValueError(f"Embedding shape {embeddings.shape} doesn't match index dimension {self.dimension}")

        # Normalized float32 copy; stored vectors stay untouched
        embeddings = np.array(embeddings, dtype='float32', copy=True)
        faiss.normalize_L2(embeddings)

        self.index.add(embeddings)
        logger.debug(f"[indexer] Added {len(embeddings)} vectors, total: {self.index.ntotal}")

    def similarities(self, query_embedding: np.ndarray) -> np.ndarray:
        """
        Cosine similarity of the query against every stored vector.

        Args:
            query_embedding: Query vector of shape (dimension,) or (1, dimension)

        Returns:
            Array of shape (n_vectors,) in insertion order, values in [-1, 1]
        """
        # Ensure shape is (1, dimension)
        query = np.array(query_embedding, dtype='float32', copy=True).reshape(1, -1)
        if query.shape[1] != self.dimension:
            raise ValueError(f"Query dimension {query.shape[1]} doesn't match index dimension {self.dimension}")

        scores = np.zeros(self.index.ntotal, dtype=np.float32)
        if self.index.ntotal == 0:
            return scores

        faiss.normalize_L2(query)
        distances, indices = self.index.search(query, self.index.ntotal)

        # Scatter ranked results back to insertion order
        valid = indices[0] >= 0
        scores[indices[0][valid]] = distances[0][valid]

        return np.clip(scores, -1.0, 1.0)
