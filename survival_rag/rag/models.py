"""
Data model of a built corpus.

All records are frozen: the corpus is written once at build time and only
read afterwards.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class KnowledgeBase:
    id: str
    name: str
    description: str = ''
    doc_count: int = 0


@dataclass(frozen=True)
class Document:
    id: str
    title: str
    source_file: str
    category: str = ''


@dataclass(frozen=True)
class Section:
    title: str
    body: str


@dataclass(frozen=True)
class Chunk:
    """A bounded passage of document text, the unit of retrieval."""
    id: str
    kb_id: str
    document_id: str
    document_title: str
    section_title: str
    source_file: str
    category: str
    chunk_index: int
    content: str
    token_count: int


@dataclass(frozen=True)
class Posting:
    chunk_id: str
    freq: int


@dataclass(frozen=True)
class CorpusMetadata:
    """Build parameters stored alongside the corpus."""
    embedding_model: str
    embedding_dim: int
    chunk_size: int
    chunk_overlap: int
    min_chunk_length: Optional[int] = None
    created_at: Optional[datetime] = None
    extra: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class RankedChunk:
    """A chunk returned by the query engine, with its scores and attribution."""
    chunk: Chunk
    rank: int
    score: float
    lexical_score: float
    semantic_score: float

    @property
    def document_title(self) -> str:
        return self.chunk.document_title

    @property
    def section_title(self) -> str:
        return self.chunk.section_title

    @property
    def attribution(self) -> Tuple[str, str]:
        return (self.chunk.document_title, self.chunk.section_title)
