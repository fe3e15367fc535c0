"""
Embedding generation using sentence-transformers.

The same model embeds chunks at build time and queries at query time; the
corpus metadata records which one. On the device the model is loaded from a
local cache only.
"""

import logging
import numpy as np
from typing import Optional, Sequence
from sentence_transformers import SentenceTransformer

from ..config import settings

logger = logging.getLogger(__name__)


class Embedder:
    """
    Wrapper for sentence-transformers embedding model.
    """

    def __init__(
        self,
        model_name: str = settings.RAG_EMBEDDING_MODEL,
        device: Optional[str] = settings.RAG_EMBEDDING_DEVICE,
        cache_folder: Optional[str] = settings.RAG_MODEL_CACHE_DIR,
        local_files_only: bool = settings.RAG_EMBEDDING_LOCAL_ONLY,
        batch_size: int = settings.RAG_EMBED_BATCH_SIZE
    ):
        """
        Load the model.

        Args:
            model_name: HuggingFace model name
            device: torch device, None lets sentence-transformers pick
            cache_folder: Where model files are stored
            local_files_only: Never reach the network for model files
            batch_size: Encoder batch size
        """
        logger.info(f"[embedder] Loading model: {model_name} (local_only={local_files_only})")
        self.model = SentenceTransformer(
            model_name,
            device=device,
            cache_folder=cache_folder,
            local_files_only=local_files_only
        )
        self.model_name = model_name
        self.batch_size = batch_size
        self.dimension = self.model.get_sentence_embedding_dimension()
        logger.info(f"[embedder] Model loaded on {self.model.device}, dimension: {self.dimension}")

    def embed(self, batch: Sequence[str], normalize: bool = True) -> np.ndarray:
        """
        Mean-pooled sentence embeddings for a batch of texts.

        Returns:
            float32 array of shape (len(batch), dimension)
        """
        if not batch:
            return np.zeros((0, self.dimension), dtype=np.float32)

        embeddings = self.model.encode(
            list(batch),
            batch_size=self.batch_size,
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=normalize
        )

        return np.asarray(embeddings, dtype=np.float32)

    def get_dimension(self) -> int:
        return self.dimension
