"""
Shared test fixtures for the survival-rag test suite.

Provides: deterministic fake embedding collaborators, small on-disk corpora
built in tmp_path, source manuals for the build pipeline.
No embedding model is downloaded by any test.
"""

import json
import time
import zlib
from typing import List, Sequence

import numpy as np
import pytest

from survival_rag.rag import CorpusStore, CorpusWriter, HybridQueryEngine, build_lexical_index, tokenize
from survival_rag.rag.models import Chunk, KnowledgeBase

DIMENSION = 384


class FakeEmbedder:
    """Hashed character trigrams of the normalized text, L2-normalized."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls = 0

    def embed(self, batch: Sequence[str], normalize: bool = True) -> np.ndarray:
        self.calls += 1
        vectors = np.zeros((len(batch), self.dimension), dtype=np.float32)
        for row, text in enumerate(batch):
            padded = f" {' '.join(tokenize(text))} "
            for i in range(len(padded) - 2):
                vectors[row, zlib.crc32(padded[i:i + 3].encode('utf-8')) % self.dimension] += 1.0
        if normalize:
            norms = np.linalg.norm(vectors, axis=1, keepdims=True)
            norms[norms == 0] = 1.0
            vectors = vectors / norms
        return vectors

    def get_dimension(self) -> int:
        return self.dimension


class FailingEmbedder(FakeEmbedder):
    def embed(self, batch, normalize=True):
        self.calls += 1
        raise RuntimeError("embedding service unreachable")


class SlowEmbedder(FakeEmbedder):
    def __init__(self, delay: float = 1.0):
        super().__init__()
        self.delay = delay

    def embed(self, batch, normalize=True):
        time.sleep(self.delay)
        return super().embed(batch, normalize)


class NaNEmbedder(FakeEmbedder):
    def embed(self, batch, normalize=True):
        return np.full((len(batch), self.dimension), np.nan, dtype=np.float32)


def make_chunk(kb_id: str, index: int, content: str, document_id: str = 'doc', title: str = 'Manual',
               section: str = 'GENERAL') -> Chunk:
    return Chunk(
        id=f"{document_id}-chunk-{index}",
        kb_id=kb_id,
        document_id=document_id,
        document_title=title,
        section_title=section,
        source_file=f"{document_id}.txt",
        category='test',
        chunk_index=index,
        content=content,
        token_count=len(tokenize(content)),
    )


def write_corpus(db_path: str, knowledge_bases: dict, embedder=None) -> str:
    """
    Write a corpus artifact directly through CorpusWriter.

    Args:
        db_path: Artifact path
        knowledge_bases: kb_id -> list of chunk texts
        embedder: Embedding collaborator, FakeEmbedder by default
    """
    embedder = embedder or FakeEmbedder()
    with CorpusWriter(db_path) as writer:
        writer.write_metadata({
            'embedding_model': 'fake-trigram',
            'embedding_dim': DIMENSION,
            'chunk_size': 500,
            'chunk_overlap': 50,
            'created_at': '2024-01-01T00:00:00+00:00',
        })
        for kb_id, texts in knowledge_bases.items():
            chunks: List[Chunk] = [
                make_chunk(kb_id, i, text, document_id=f"{kb_id}-doc") for i, text in enumerate(texts)
            ]
            vectors = embedder.embed([c.content for c in chunks]) if chunks else np.zeros((0, DIMENSION))
            writer.write_knowledge_base(
                KnowledgeBase(id=kb_id, name=kb_id.title(), doc_count=1),
                chunks,
                vectors,
                build_lexical_index(chunks)
            )
    return db_path


SCENARIO_TEXTS = [
    "store canned jars in a cool dark place",
    "first aid for a sprained ankle",
    "build a fire using dry tinder and flint",
]


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def scenario_db(tmp_path):
    """Corpus with the canned/sprain/fire knowledge base plus an empty one."""
    return write_corpus(str(tmp_path / 'knowledge.db'), {'basics': SCENARIO_TEXTS, 'empty': []})


@pytest.fixture
def scenario_store(scenario_db):
    return CorpusStore(scenario_db)


@pytest.fixture
def scenario_engine(scenario_store, fake_embedder):
    engine = HybridQueryEngine(scenario_store, embedder=fake_embedder)
    yield engine
    engine.close()


MANUALS = {
    'first-aid.txt': (
        "FM 4-25.11 US ARMY FIRST AID\n"
        "INTRODUCTION\n"
        "This manual explains first aid for soldiers in the field. Read it before you need it.\n\n"
        "SPRAINS AND STRAINS\n"
        "A sprain is an injury to a ligament. Rest the injured ankle and apply a cold compress. "
        "Wrap the joint with an elastic bandage and elevate it above the heart. "
        "Do not walk on a badly sprained ankle if you can avoid it.\n\n"
        "BLEEDING\n"
        "Apply direct pressure to the wound with a clean dressing. "
        "If bleeding does not stop, apply a tourniquet above the wound. Page 3 of 40\n"
    ),
    'canning.txt': (
        "HOME CANNING GUIDE\n"
        "Store canned jars in a cool dark place. Check every lid for a proper seal before storage. "
        "Discard any jar with a bulging lid or an off smell. "
        "Label each jar with the contents and the date it was canned.\n"
    ),
    'fire.txt': (
        "FIRE CRAFT\n"
        "Build a fire using dry tinder and flint. Gather tinder, kindling and fuel before you strike. "
        "Shield the flame from wind and feed it small sticks first. "
        "Never leave a fire unattended and drown it completely before leaving.\n"
    ),
}


@pytest.fixture
def source_dir(tmp_path):
    """Directory of small source manuals."""
    directory = tmp_path / 'sources'
    directory.mkdir()
    for name, text in MANUALS.items():
        (directory / name).write_text(text, encoding='utf-8')
    return directory


@pytest.fixture
def manifest_path(tmp_path):
    manifest = {
        'knowledge_bases': [
            {
                'id': 'field-skills',
                'name': 'Field Skills',
                'description': 'First aid and fire craft',
                'documents': [
                    {'id': 'first-aid', 'title': 'First Aid', 'file': 'first-aid.txt', 'category': 'medical'},
                    {'id': 'fire', 'title': 'Fire Craft', 'file': 'fire.txt', 'category': 'fire'},
                ]
            },
            {
                'id': 'homestead',
                'name': 'Homestead',
                'documents': [
                    {'id': 'canning', 'title': 'Canning Guide', 'file': 'canning.txt', 'category': 'food'},
                ]
            }
        ]
    }
    path = tmp_path / 'knowledge_bases.json'
    path.write_text(json.dumps(manifest), encoding='utf-8')
    return path
