"""
Near-duplicate suppression for ranked chunks.

Overlapping chunks and repeated boilerplate across manuals can produce
passages that say the same thing. Walking the ranking best-first, a chunk is
dropped when it repeats, or is nearly identical to, a chunk already kept.
"""

import logging
import numpy as np
from typing import List, Optional, Sequence
from sklearn.metrics.pairwise import cosine_similarity

logger = logging.getLogger(__name__)


def suppress_near_duplicates(
    order: Sequence[int],
    vectors: np.ndarray,
    contents: Sequence[str],
    threshold: float,
    limit: Optional[int] = None
) -> List[int]:
    """
    Filter a ranking, keeping the first of each group of near-duplicates.

    Args:
        order: Chunk positions, best first
        vectors: Stored chunk embeddings, shape (n_chunks, dim)
        contents: Chunk texts indexed by position
        threshold: Cosine similarity at or above which a chunk is a duplicate (<= 0 disables)
        limit: Stop once this many chunks are kept

    Returns:
        Kept positions in ranked order
    """
    kept: List[int] = []
    seen_contents = set()

    for position in order:
        if limit is not None and len(kept) >= limit:
            break

        content = contents[position]
        if content in seen_contents:
            logger.debug(f"[dedup] Dropped exact duplicate at position {position}")
            continue

        if threshold > 0 and kept:
            candidate = vectors[position].reshape(1, -1)
            max_sim = cosine_similarity(candidate, vectors[kept])[0].max()
            if max_sim >= threshold:
                logger.debug(f"[dedup] Dropped near duplicate at position {position} (cos={max_sim:.3f})")
                continue

        kept.append(position)
        seen_contents.add(content)

    return kept
