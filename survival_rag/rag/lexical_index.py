"""
BM25 inverted index over the chunks of one knowledge base.

Built once from the full chunk set and frozen; there is no incremental
update path.
"""

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .chunker import tokenize
from .errors import CorruptIndexError
from .models import Chunk, Posting

logger = logging.getLogger(__name__)


@dataclass
class LexicalIndex:
    # term -> postings in chunk order
    postings: Dict[str, List[Posting]] = field(default_factory=dict)
    # chunk_id -> chunk length (tokens)
    chunk_lengths: Dict[str, int] = field(default_factory=dict)

    @property
    def total_chunks(self) -> int:
        return len(self.chunk_lengths)

    @property
    def avg_chunk_length(self) -> float:
        if not self.chunk_lengths:
            return 0.0
        return sum(self.chunk_lengths.values()) / len(self.chunk_lengths)

    @property
    def vocab_size(self) -> int:
        return len(self.postings)

    def doc_freq(self, term: str) -> int:
        """Number of distinct chunks containing the term."""
        return len(self.postings.get(term, ()))

    def to_rows(self, kb_id: str) -> Iterator[Tuple[str, str, str]]:
        """Serialize as (kb_id, term, doc_frequencies_json) rows."""
        for term, plist in self.postings.items():
            payload = [{'chunk_id': p.chunk_id, 'freq': p.freq} for p in plist]
            yield kb_id, term, json.dumps(payload, separators=(',', ':'))

    @classmethod
    def from_rows(
        cls,
        kb_id: str,
        rows: Iterable[Tuple[str, str]],
        chunk_lengths: Dict[str, int]
    ) -> 'LexicalIndex':
        """
        Rebuild an index from stored (term, doc_frequencies_json) rows.

        Args:
            kb_id: Knowledge base the rows belong to
            rows: Stored posting rows
            chunk_lengths: chunk_id -> token count for every chunk of the KB

        Returns:
            LexicalIndex instance

        Raises:
            CorruptIndexError: If a posting does not decode or references an unknown chunk
        """
        index = cls(chunk_lengths=dict(chunk_lengths))

        for term, raw in rows:
            try:
                entries = json.loads(raw)
                plist = [Posting(chunk_id=str(e['chunk_id']), freq=int(e['freq'])) for e in entries]
            except (ValueError, TypeError, KeyError) as e:
                raise CorruptIndexError(kb_id, f"posting for term '{term}' does not decode: {e}")

            seen = set()
            for posting in plist:
                if posting.chunk_id not in index.chunk_lengths:
                    raise CorruptIndexError(kb_id, f"posting for term '{term}' references unknown chunk {posting.chunk_id}")
                if posting.chunk_id in seen or posting.freq <= 0:
                    raise CorruptIndexError(kb_id, f"posting for term '{term}' has an invalid entry for {posting.chunk_id}")
                seen.add(posting.chunk_id)

            index.postings[term] = plist

        return index


def build_lexical_index(chunks: Sequence[Chunk]) -> LexicalIndex:
    """
    Calculate per-term postings and per-chunk lengths.

    Args:
        chunks: All chunks of one knowledge base, in order

    Returns:
        LexicalIndex with one posting list per distinct term
    """
    logger.info(f"[lexical_index] Building BM25 index for {len(chunks)} chunks")

    index = LexicalIndex()

    for chunk in chunks:
        terms = tokenize(chunk.content)
        index.chunk_lengths[chunk.id] = len(terms)

        # Term frequency in chunk
        for term, freq in Counter(terms).items():
            index.postings.setdefault(term, []).append(Posting(chunk_id=chunk.id, freq=freq))

    logger.info(f"[lexical_index] Built index with {index.vocab_size} terms")

    return index
