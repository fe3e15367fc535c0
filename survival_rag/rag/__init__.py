"""
RAG (Retrieval-Augmented Generation) utilities for offline knowledge bases.

Modules:
- normalizer: OCR text cleaning
- sectioner: Heading detection and sectioning
- chunker: Sentence chunking with token overlap
- lexical_index: BM25 postings
- embedder: Embedding generation
- embedding_index: Batched chunk embedding
- store: SQLite corpus artifact
- indexer: FAISS exhaustive similarity scan
- scorer: Hybrid scoring (dense + BM25)
- dedup: Near-duplicate suppression
- query_engine: Hybrid query engine
- context: Context assembly
"""

from .normalizer import clean_text
from .sectioner import extract_sections, is_heading
from .chunker import tokenize, chunk_text, chunk_documents
from .lexical_index import LexicalIndex, build_lexical_index
from .embedding_index import EmbeddingIndexBuilder
from .store import CorpusStore, CorpusWriter, LoadedKnowledgeBase
from .scorer import HybridScorer
from .query_engine import HybridQueryEngine, QueryResult
from .context import AssembledContext, assemble_context
from .errors import (
    BuildError,
    CorruptIndexError,
    EmbeddingUnavailableError,
    KnowledgeBaseError,
    KnowledgeBaseNotFoundError,
)

__all__ = [
    'clean_text', 'extract_sections', 'is_heading', 'tokenize', 'chunk_text', 'chunk_documents',
    'LexicalIndex', 'build_lexical_index', 'EmbeddingIndexBuilder',
    'CorpusStore', 'CorpusWriter', 'LoadedKnowledgeBase',
    'HybridScorer', 'HybridQueryEngine', 'QueryResult', 'AssembledContext', 'assemble_context',
    'BuildError', 'CorruptIndexError', 'EmbeddingUnavailableError', 'KnowledgeBaseError',
    'KnowledgeBaseNotFoundError',
]
