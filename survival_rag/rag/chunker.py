"""
Sentence-based text chunking with token overlap for RAG retrieval.

Chunks section text into passages bounded by a token budget. Boundaries fall
between sentences only; the next chunk is seeded with the tail sentences of
the previous one to avoid boundary loss.
"""

import logging
import re
from typing import Iterable, List, Sequence, Tuple

from ..config import settings
from .models import Chunk, Document, Section

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r'[^\w\s]')
_SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')


def tokenize(text: str) -> List[str]:
    """
    Simple tokenizer for chunk size estimation and BM25 terms.

    Lower-cases, replaces non-word characters with spaces and splits on
    whitespace. Not the embedding model's tokenizer.
    """
    return _NON_WORD.sub(' ', text.lower()).split()


def split_sentences(text: str) -> List[str]:
    """Split text after sentence-ending punctuation, collapsing inner whitespace."""
    sentences = []
    for raw in _SENTENCE_BOUNDARY.split(text):
        sentence = ' '.join(raw.split())
        if sentence:
            sentences.append(sentence)
    return sentences


def chunk_text(
    text: str,
    chunk_size: int = settings.RAG_CHUNK_SIZE,
    chunk_overlap: int = settings.RAG_CHUNK_OVERLAP,
    min_chunk_length: int = settings.RAG_MIN_CHUNK_LENGTH,
    drop_short_trailing: bool = settings.RAG_DROP_SHORT_TRAILING_CHUNK
) -> List[str]:
    """
    Split text into chunks with sentence overlap.

    Args:
        text: Section body text
        chunk_size: Maximum tokens per chunk before the overlap seed
        chunk_overlap: Maximum tokens carried into the next chunk
        min_chunk_length: Minimum characters for a chunk closed mid-text
        drop_short_trailing: Also drop a final chunk shorter than the minimum

    Returns:
        List of chunk texts in order
    """
    chunks: List[str] = []
    current: List[Tuple[str, int]] = []
    current_tokens = 0

    for sentence in split_sentences(text):
        sentence_tokens = len(tokenize(sentence))

        if sentence_tokens > chunk_size:
            # Oversized sentence becomes its own chunk, never split
            _close(current, chunks, min_chunk_length)
            chunks.append(sentence)
            current, current_tokens = [], 0
            continue

        if current and current_tokens + sentence_tokens > chunk_size:
            _close(current, chunks, min_chunk_length)
            current = _overlap_suffix(current, chunk_overlap)
            current_tokens = sum(tokens for _, tokens in current)

        current.append((sentence, sentence_tokens))
        current_tokens += sentence_tokens

    # Add remaining chunk
    if current:
        chunk = ' '.join(sentence for sentence, _ in current)
        if drop_short_trailing and len(chunk) < min_chunk_length:
            logger.debug(f"[chunker] Dropped short trailing chunk ({len(chunk)} chars)")
        else:
            chunks.append(chunk)

    return chunks


def _close(current: Sequence[Tuple[str, int]], chunks: List[str], min_chunk_length: int) -> None:
    """Emit the buffer as a chunk if it meets the minimum length."""
    if not current:
        return
    chunk = ' '.join(sentence for sentence, _ in current)
    if len(chunk) >= min_chunk_length:
        chunks.append(chunk)
    else:
        logger.debug(f"[chunker] Skipped short chunk ({len(chunk)} chars)")


def _overlap_suffix(current: Sequence[Tuple[str, int]], chunk_overlap: int) -> List[Tuple[str, int]]:
    """Longest run of trailing sentences whose token total stays within the overlap."""
    suffix: List[Tuple[str, int]] = []
    overlap_tokens = 0

    for sentence, tokens in reversed(current):
        if overlap_tokens + tokens > chunk_overlap:
            break
        suffix.insert(0, (sentence, tokens))
        overlap_tokens += tokens

    return suffix


def chunk_document(
    kb_id: str,
    document: Document,
    sections: Sequence[Section],
    chunk_size: int = settings.RAG_CHUNK_SIZE,
    chunk_overlap: int = settings.RAG_CHUNK_OVERLAP,
    min_chunk_length: int = settings.RAG_MIN_CHUNK_LENGTH,
    drop_short_trailing: bool = settings.RAG_DROP_SHORT_TRAILING_CHUNK
) -> List[Chunk]:
    """
    Chunk every section of a document into Chunk records.

    Chunk ids are `{document_id}-chunk-{n}` with n running across sections.

    Args:
        kb_id: Owning knowledge base id
        document: Source document
        sections: Sections from the sectioner

    Returns:
        List of chunks in document order
    """
    chunks: List[Chunk] = []
    chunk_index = 0

    for section in sections:
        for content in chunk_text(section.body, chunk_size, chunk_overlap, min_chunk_length, drop_short_trailing):
            chunks.append(Chunk(
                id=f"{document.id}-chunk-{chunk_index}",
                kb_id=kb_id,
                document_id=document.id,
                document_title=document.title,
                section_title=section.title,
                source_file=document.source_file,
                category=document.category,
                chunk_index=chunk_index,
                content=content,
                token_count=len(tokenize(content)),
            ))
            chunk_index += 1

    return chunks


def chunk_documents(
    kb_id: str,
    documents: Iterable[Tuple[Document, Sequence[Section]]],
    chunk_size: int = settings.RAG_CHUNK_SIZE,
    chunk_overlap: int = settings.RAG_CHUNK_OVERLAP,
    min_chunk_length: int = settings.RAG_MIN_CHUNK_LENGTH,
    drop_short_trailing: bool = settings.RAG_DROP_SHORT_TRAILING_CHUNK
) -> List[Chunk]:
    """
    Chunk sectioned documents of one knowledge base.

    Args:
        kb_id: Knowledge base id
        documents: (document, sections) pairs in corpus order

    Returns:
        All chunks of the knowledge base in corpus order
    """
    chunks: List[Chunk] = []
    document_count = 0

    for document, sections in documents:
        document_chunks = chunk_document(
            kb_id, document, sections, chunk_size, chunk_overlap, min_chunk_length, drop_short_trailing
        )
        if not document_chunks:
            logger.warning(f"[chunker] No chunks for document {document.id}")
        chunks.extend(document_chunks)
        document_count += 1

    logger.info(f"[chunker] Created {len(chunks)} chunks from {document_count} documents")

    return chunks
