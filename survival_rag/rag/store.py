"""
Corpus store: the persisted, immutable SQLite artifact.

Holds knowledge bases, chunk rows, embedding vectors, BM25 postings and build
metadata. The writer builds into a temporary file and publishes it with an
atomic rename; the reader opens the artifact read-only and loads each
knowledge base once.
"""

import logging
import os
import sqlite3
import threading
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from dateutil import parser as dateparser

from ..config import settings
from .errors import BuildError, CorruptIndexError, KnowledgeBaseNotFoundError
from .lexical_index import LexicalIndex
from .models import Chunk, CorpusMetadata, KnowledgeBase

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE knowledge_bases (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    doc_count INTEGER DEFAULT 0
);

CREATE TABLE documents (
    id TEXT PRIMARY KEY,
    kb_id TEXT NOT NULL,
    document_id TEXT NOT NULL,
    title TEXT NOT NULL,
    section TEXT,
    source_file TEXT NOT NULL,
    category TEXT,
    chunk_index INTEGER NOT NULL,
    content TEXT NOT NULL,
    word_count INTEGER NOT NULL,
    FOREIGN KEY (kb_id) REFERENCES knowledge_bases(id)
);

CREATE TABLE embeddings (
    doc_id TEXT PRIMARY KEY,
    embedding BLOB NOT NULL,
    FOREIGN KEY (doc_id) REFERENCES documents(id)
);

CREATE TABLE bm25_index (
    kb_id TEXT NOT NULL,
    term TEXT NOT NULL,
    doc_frequencies TEXT NOT NULL,
    PRIMARY KEY (kb_id, term)
);

CREATE TABLE metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

CREATE INDEX idx_documents_kb ON documents(kb_id);
CREATE INDEX idx_documents_title ON documents(title);
CREATE INDEX idx_bm25_kb ON bm25_index(kb_id);
"""

_CHUNK_COLUMNS = "id, kb_id, document_id, title, section, source_file, category, chunk_index, content, word_count"


def encode_vector(vector: np.ndarray) -> bytes:
    """Flat little-endian IEEE-754 float32 bytes."""
    return np.asarray(vector, dtype='<f4').tobytes()


def decode_vector(blob: bytes, dimension: int, kb_id: str = '') -> np.ndarray:
    """
    Decode a stored embedding.

    Raises:
        CorruptIndexError: If the byte length is not dimension * 4
    """
    if blob is None or len(blob) != dimension * 4:
        size = 0 if blob is None else len(blob)
        raise CorruptIndexError(kb_id, f"embedding has {size} bytes, expected {dimension * 4}")
    return np.frombuffer(blob, dtype='<f4').astype(np.float32)


@dataclass(frozen=True)
class LoadedKnowledgeBase:
    """All read-only query-time data of one knowledge base."""
    kb: KnowledgeBase
    chunks: List[Chunk]
    lexical_index: LexicalIndex
    vectors: np.ndarray
    positions: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.chunks)


class CorpusWriter:
    """
    Single-threaded writer for a new corpus artifact.

    Writes into `<db_path>.tmp`; `publish()` renames it over `db_path`.
    As a context manager it publishes on success and discards on error.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self.tmp_path = f"{db_path}.tmp"

        try:
            os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
            if os.path.exists(self.tmp_path):
                os.remove(self.tmp_path)
            self.conn = sqlite3.connect(self.tmp_path)
            self.conn.executescript(SCHEMA)
        except (OSError, sqlite3.Error) as e:
            raise BuildError(f"Cannot initialize corpus store at {self.tmp_path}: {e}") from e

        logger.info(f"[store] Initialized corpus store at {self.tmp_path}")

    def write_metadata(self, values: Dict[str, Any]) -> None:
        try:
            with self.conn:
                self.conn.executemany(
                    "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
                    [(key, str(value)) for key, value in values.items()]
                )
        except sqlite3.Error as e:
            raise BuildError(f"Failed to write metadata: {e}") from e

    def write_knowledge_base(
        self,
        kb: KnowledgeBase,
        chunks: Sequence[Chunk],
        vectors: np.ndarray,
        lexical_index: LexicalIndex
    ) -> None:
        """
        Write one knowledge base in a single transaction.

        Raises:
            BuildError: On count mismatch or write failure (the KB is rolled back)
        """
        if len(chunks) != len(vectors):
            raise BuildError(
                f"Knowledge base {kb.id} has {len(chunks)} chunks but {len(vectors)} embeddings"
            )

        try:
            with self.conn:
                self.conn.execute(
                    "INSERT INTO knowledge_bases (id, name, description, doc_count) VALUES (?, ?, ?, ?)",
                    (kb.id, kb.name, kb.description, kb.doc_count)
                )
                self.conn.executemany(
                    f"INSERT INTO documents ({_CHUNK_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (c.id, kb.id, c.document_id, c.document_title, c.section_title, c.source_file,
                         c.category, c.chunk_index, c.content, c.token_count)
                        for c in chunks
                    ]
                )
                self.conn.executemany(
                    "INSERT INTO embeddings (doc_id, embedding) VALUES (?, ?)",
                    [(c.id, encode_vector(v)) for c, v in zip(chunks, vectors)]
                )
                self.conn.executemany(
                    "INSERT INTO bm25_index (kb_id, term, doc_frequencies) VALUES (?, ?, ?)",
                    lexical_index.to_rows(kb.id)
                )
        except sqlite3.Error as e:
            raise BuildError(f"Failed to write knowledge base {kb.id}: {e}") from e

        logger.info(
            f"[store] Saved {len(chunks)} chunks, {len(vectors)} embeddings, "
            f"{lexical_index.vocab_size} index terms for {kb.id}"
        )

    def publish(self) -> str:
        """Close the temporary file and atomically move it into place."""
        try:
            self.conn.close()
            os.replace(self.tmp_path, self.db_path)
        except (OSError, sqlite3.Error) as e:
            raise BuildError(f"Failed to publish corpus to {self.db_path}: {e}") from e
        logger.info(f"[store] Published corpus to {self.db_path}")
        return self.db_path

    def discard(self) -> None:
        self.conn.close()
        if os.path.exists(self.tmp_path):
            os.remove(self.tmp_path)
        logger.warning(f"[store] Discarded unpublished corpus {self.tmp_path}")

    def __enter__(self) -> 'CorpusWriter':
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is None:
            self.publish()
        else:
            self.discard()
        return False


class CorpusStore:
    """
    Read-only access to a published corpus.

    Knowledge bases are loaded lazily and cached; loaded data is never
    mutated, so a store can be shared by concurrent queries.
    """

    def __init__(self, db_path: str = settings.KB_DB_PATH):
        if not os.path.exists(db_path):
            raise FileNotFoundError(f"Corpus not found: {db_path}")
        self.db_path = db_path
        self._uri = Path(db_path).resolve().as_uri() + '?mode=ro'
        self._cache: Dict[str, LoadedKnowledgeBase] = {}
        self._lock = threading.Lock()
        self._metadata: Optional[CorpusMetadata] = None

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._uri, uri=True)

    def metadata(self) -> CorpusMetadata:
        if self._metadata is None:
            with closing(self._connect()) as conn:
                values = dict(conn.execute("SELECT key, value FROM metadata").fetchall())
            self._metadata = _parse_metadata(values)
        return self._metadata

    def check_dimension(self, expected: int) -> bool:
        """Runtime sanity check against the query embedder's dimension."""
        stored = self.metadata().embedding_dim
        if stored != expected:
            logger.warning(f"[store] Corpus dimension {stored} != query embedder dimension {expected}")
            return False
        return True

    def list_knowledge_bases(self) -> List[KnowledgeBase]:
        with closing(self._connect()) as conn:
            rows = conn.execute(
                "SELECT id, name, description, doc_count FROM knowledge_bases ORDER BY id"
            ).fetchall()
        return [KnowledgeBase(id=r[0], name=r[1], description=r[2] or '', doc_count=r[3] or 0) for r in rows]

    def get_knowledge_base(self, kb_id: str) -> KnowledgeBase:
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT id, name, description, doc_count FROM knowledge_bases WHERE id = ?", (kb_id,)
            ).fetchone()
        if row is None:
            raise KnowledgeBaseNotFoundError(kb_id)
        return KnowledgeBase(id=row[0], name=row[1], description=row[2] or '', doc_count=row[3] or 0)

    def get_chunk(self, chunk_id: str) -> Optional[Chunk]:
        """Point lookup of one chunk by id."""
        with closing(self._connect()) as conn:
            row = conn.execute(f"SELECT {_CHUNK_COLUMNS} FROM documents WHERE id = ?", (chunk_id,)).fetchone()
        return _row_to_chunk(row) if row else None

    def load(self, kb_id: str) -> LoadedKnowledgeBase:
        """
        Load chunks, postings and vectors of a knowledge base.

        Raises:
            KnowledgeBaseNotFoundError: Unknown kb_id
            CorruptIndexError: Stored data of this KB does not decode
        """
        loaded = self._cache.get(kb_id)
        if loaded is not None:
            return loaded

        with self._lock:
            loaded = self._cache.get(kb_id)
            if loaded is None:
                loaded = self._load(kb_id)
                self._cache[kb_id] = loaded
        return loaded

    def _load(self, kb_id: str) -> LoadedKnowledgeBase:
        kb = self.get_knowledge_base(kb_id)
        dimension = self.metadata().embedding_dim

        with closing(self._connect()) as conn:
            rows = conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM documents WHERE kb_id = ? ORDER BY rowid", (kb_id,)
            ).fetchall()
            chunks = [_row_to_chunk(row) for row in rows]

            vectors = np.zeros((len(chunks), dimension), dtype=np.float32)
            for i, chunk in enumerate(chunks):
                row = conn.execute("SELECT embedding FROM embeddings WHERE doc_id = ?", (chunk.id,)).fetchone()
                if row is None:
                    raise CorruptIndexError(kb_id, f"missing embedding for chunk {chunk.id}")
                vectors[i] = decode_vector(row[0], dimension, kb_id)

            posting_rows = conn.execute(
                "SELECT term, doc_frequencies FROM bm25_index WHERE kb_id = ?", (kb_id,)
            ).fetchall()

        lexical_index = LexicalIndex.from_rows(kb_id, posting_rows, {c.id: c.token_count for c in chunks})
        vectors.setflags(write=False)

        logger.info(
            f"[store] Loaded {kb_id}: {len(chunks)} chunks, {lexical_index.vocab_size} terms, dim {dimension}"
        )

        return LoadedKnowledgeBase(
            kb=kb,
            chunks=chunks,
            lexical_index=lexical_index,
            vectors=vectors,
            positions={chunk.id: i for i, chunk in enumerate(chunks)}
        )

    def stats(self) -> Dict[str, Any]:
        """Database statistics."""
        with closing(self._connect()) as conn:
            stats = {
                'documents': conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0],
                'embeddings': conn.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0],
                'index_terms': conn.execute("SELECT COUNT(*) FROM bm25_index").fetchone()[0],
                'avg_chunk_size': conn.execute("SELECT AVG(word_count) FROM documents").fetchone()[0] or 0,
            }
        stats['avg_chunk_size'] = round(stats['avg_chunk_size'])
        stats['db_size_mb'] = round(os.path.getsize(self.db_path) / 1024 / 1024, 2)
        return stats


def _row_to_chunk(row: Sequence[Any]) -> Chunk:
    return Chunk(
        id=row[0],
        kb_id=row[1],
        document_id=row[2],
        document_title=row[3],
        section_title=row[4] or row[3],
        source_file=row[5],
        category=row[6] or '',
        chunk_index=row[7],
        content=row[8],
        token_count=row[9],
    )


def _parse_metadata(values: Dict[str, str]) -> CorpusMetadata:
    known = {'embedding_model', 'embedding_dim', 'chunk_size', 'chunk_overlap', 'min_chunk_length', 'created_at'}
    created_at = values.get('created_at')
    min_chunk_length = values.get('min_chunk_length')
    return CorpusMetadata(
        embedding_model=values.get('embedding_model', settings.RAG_EMBEDDING_MODEL),
        embedding_dim=int(values.get('embedding_dim', settings.RAG_EMBEDDING_DIM)),
        chunk_size=int(values.get('chunk_size', settings.RAG_CHUNK_SIZE)),
        chunk_overlap=int(values.get('chunk_overlap', settings.RAG_CHUNK_OVERLAP)),
        min_chunk_length=int(min_chunk_length) if min_chunk_length else None,
        created_at=dateparser.parse(created_at) if created_at else None,
        extra={k: v for k, v in values.items() if k not in known},
    )
