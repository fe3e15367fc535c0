"""
RAG Query Retrieval Agent

Runs the hybrid query engine against the published corpus and packs the
ranked chunks into a context block for the on-device language model.
"""

import json
import logging
import threading
import time
from typing import Any, Dict, Optional

from survival_rag.config import settings
from survival_rag.rag import CorpusStore, HybridQueryEngine, assemble_context

logger = logging.getLogger(__name__)

_engine: Optional[HybridQueryEngine] = None
_engine_lock = threading.Lock()


def get_engine(db_path: Optional[str] = None) -> HybridQueryEngine:
    """
    Process-wide query engine over the configured corpus, created on first use.

    When the embedding model cannot be loaded the engine serves lexical-only
    results instead of failing.
    """
    global _engine

    if _engine is None:
        with _engine_lock:
            if _engine is None:
                store = CorpusStore(db_path or settings.KB_DB_PATH)
                _engine = HybridQueryEngine(store, embedder=_load_embedder(store.metadata().embedding_model))
    return _engine


def reset_engine() -> None:
    """Drop the process-wide engine (e.g. after a corpus rebuild)."""
    global _engine

    with _engine_lock:
        if _engine is not None:
            _engine.close()
        _engine = None


def _load_embedder(model_name: str):
    from survival_rag.rag.embedder import Embedder

    try:
        return Embedder(model_name)
    except Exception as e:
        logger.warning(f"[rag_retriever] Embedding model unavailable, queries will be lexical-only: {e}")
        return None


def retrieve_context(
    query: str,
    kb_id: str,
    k: int = settings.RAG_TOP_K,
    min_score: Optional[float] = settings.RAG_MIN_SCORE,
    max_chars: int = settings.RAG_CONTEXT_MAX_CHARS,
    engine: Optional[HybridQueryEngine] = None
) -> Dict[str, Any]:
    """
    Main entry point for RAG query retrieval.

    Args:
        query: User query text
        kb_id: Knowledge base to search
        k: Maximum number of ranked chunks
        min_score: Optional fused-score threshold
        max_chars: Context budget in characters
        engine: Query engine, defaults to the process-wide one

    Returns:
        Dict with the context block, attributions and ranked items

    Raises:
        KnowledgeBaseNotFoundError: Unknown kb_id
        CorruptIndexError: Stored data of this knowledge base is corrupt
    """
    engine = engine or get_engine()
    start_time = time.time()

    result = engine.search(query, kb_id, k=k, min_score=min_score)
    assembled = assemble_context(result.results, max_chars=max_chars)

    elapsed = time.time() - start_time

    items = []
    for item in result.results:
        items.append({
            'rank': item.rank,
            'chunk_id': item.chunk.id,
            'document_id': item.chunk.document_id,
            'document_title': item.document_title,
            'section': item.section_title,
            'chunk_index': item.chunk.chunk_index,
            'score': {
                'hybrid': item.score,
                'dense': item.semantic_score,
                'lexical': item.lexical_score
            },
            'in_context': item in assembled.included,
            'content': item.chunk.content
        })

    logger.info(
        f"[rag_retriever] '{query}' on {kb_id}: {len(items)} ranked, "
        f"{len(assembled.included)} in context ({elapsed:.2f}s)"
    )

    return {
        'query': query,
        'kb_id': kb_id,
        'context': assembled.text,
        'attributions': [
            {'document_title': title, 'section': section} for title, section in assembled.attributions
        ],
        'items': items,
        'lexical_only': result.lexical_only,
        'degradation_reason': result.degradation_reason,
        'elapsed_sec': round(elapsed, 3)
    }


if __name__ == "__main__":
    import argparse

    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Query a knowledge base")
    parser.add_argument('query')
    parser.add_argument('--kb', default='critical-priority')
    parser.add_argument('-k', type=int, default=settings.RAG_TOP_K)
    args = parser.parse_args()

    print(json.dumps(retrieve_context(args.query, args.kb, k=args.k), indent=2))
