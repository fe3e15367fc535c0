"""
Corpus Build Agent

LangGraph workflow that turns the source manuals listed in the manifest into
the corpus artifact.

Workflow:
N0: LoadManifest → N1: ProcessDocuments → N2: GenerateEmbeddings →
N3: BuildBM25 → N4: SaveCorpus → N5: Statistics

The build is all-or-nothing: any BuildError aborts the workflow and the
temporary artifact is discarded, so no partial corpus is published.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TypedDict

from langgraph.graph import StateGraph, END

from survival_rag.config import settings
from survival_rag.rag import (
    BuildError,
    CorpusStore,
    CorpusWriter,
    EmbeddingIndexBuilder,
    build_lexical_index,
    chunk_documents,
    clean_text,
    extract_sections,
)
from survival_rag.rag.models import Document, KnowledgeBase

logger = logging.getLogger(__name__)


class BuilderState(TypedDict):
    """LangGraph state for the corpus build."""
    manifest_path: str
    source_dir: str
    output_path: str
    build_config: Dict[str, Any]  # Build parameters

    # Shared resources (not serialized)
    embedder: Any

    knowledge_bases: List[Dict[str, Any]]  # Manifest entries
    chunks: Dict[str, list]  # kb_id -> chunks
    vectors: Dict[str, Any]  # kb_id -> (n_chunks, dim) array
    lexical_indexes: Dict[str, Any]  # kb_id -> LexicalIndex
    stats: Dict[str, Any]


def node_0_load_manifest(state: BuilderState) -> BuilderState:
    """
    N0: LoadManifest

    Read the knowledge base manifest and validate document ids.
    """
    manifest_path = state['manifest_path']
    logger.info(f"[builder N0] Loading manifest {manifest_path}")

    try:
        with open(manifest_path, 'r', encoding='utf-8') as f:
            manifest = json.load(f)
    except (OSError, ValueError) as e:
        raise BuildError(f"Cannot read manifest {manifest_path}: {e}") from e

    knowledge_bases = manifest.get('knowledge_bases', [])
    if not knowledge_bases:
        raise BuildError(f"Manifest {manifest_path} lists no knowledge bases")

    seen_kbs = set()
    seen_docs = set()
    for kb in knowledge_bases:
        if not kb.get('id') or kb['id'] in seen_kbs:
            raise BuildError(f"Missing or duplicate knowledge base id: {kb.get('id')!r}")
        seen_kbs.add(kb['id'])

        for doc in kb.get('documents', []):
            if not doc.get('id') or not doc.get('file'):
                raise BuildError(f"Document entry without id or file in {kb['id']}", document_id=doc.get('id'))
            if doc['id'] in seen_docs:
                raise BuildError("Duplicate document id", document_id=doc['id'])
            seen_docs.add(doc['id'])

    logger.info(f"[builder N0] {len(knowledge_bases)} knowledge bases, {len(seen_docs)} documents")

    state['knowledge_bases'] = knowledge_bases
    return state


def node_1_process_documents(state: BuilderState) -> BuilderState:
    """
    N1: ProcessDocuments

    Read, clean, section and chunk every document.
    """
    config = state['build_config']
    chunks: Dict[str, list] = {}

    for kb in state['knowledge_bases']:
        sectioned = []

        for doc in kb.get('documents', []):
            document = Document(
                id=doc['id'],
                title=doc.get('title') or doc['id'],
                source_file=doc['file'],
                category=doc.get('category', '')
            )
            logger.info(f"[builder N1] Processing: {document.title}...")

            raw_text = _read_source(state['source_dir'], document)
            cleaned = clean_text(raw_text)
            sectioned.append((document, extract_sections(cleaned, document.title)))

        chunks[kb['id']] = chunk_documents(
            kb['id'],
            sectioned,
            chunk_size=config['chunk_size'],
            chunk_overlap=config['chunk_overlap'],
            min_chunk_length=config['min_chunk_length'],
            drop_short_trailing=config['drop_short_trailing']
        )

    state['chunks'] = chunks
    return state


def node_2_generate_embeddings(state: BuilderState) -> BuilderState:
    """
    N2: GenerateEmbeddings

    Embed chunks in ordered batches.
    """
    config = state['build_config']
    embedder = state['embedder']

    if embedder is None:
        logger.info("[builder N2] Loading embedding model (this may take a moment)...")
        from survival_rag.rag.embedder import Embedder
        embedder = Embedder(config['embedding_model'])
        state['embedder'] = embedder

    if hasattr(embedder, 'get_dimension') and embedder.get_dimension() != config['embedding_dim']:
        raise BuildError(
            f"Embedding model dimension {embedder.get_dimension()} "
            f"doesn't match corpus dimension {config['embedding_dim']}"
        )

    builder = EmbeddingIndexBuilder(
        embedder,
        dimension=config['embedding_dim'],
        batch_size=config['batch_size'],
        max_concurrency=config['embed_concurrency'],
        retry_attempts=config['embed_retry_attempts'],
        retry_wait_sec=config['embed_retry_wait_sec']
    )

    vectors = {}
    for kb_id, kb_chunks in state['chunks'].items():
        logger.info(f"[builder N2] Generating embeddings for {kb_id} ({len(kb_chunks)} chunks)")
        vectors[kb_id] = builder.build_sync(kb_chunks)

    state['vectors'] = vectors
    return state


def node_3_build_bm25(state: BuilderState) -> BuilderState:
    """
    N3: BuildBM25

    Build the inverted index of each knowledge base.
    """
    state['lexical_indexes'] = {
        kb_id: build_lexical_index(kb_chunks) for kb_id, kb_chunks in state['chunks'].items()
    }
    return state


def node_4_save_corpus(state: BuilderState) -> BuilderState:
    """
    N4: SaveCorpus

    Write everything into a temporary artifact and publish it atomically.
    """
    config = state['build_config']
    output_path = state['output_path']
    logger.info(f"[builder N4] Saving corpus to {output_path}")

    with CorpusWriter(output_path) as writer:
        writer.write_metadata({
            'embedding_model': config['embedding_model'],
            'embedding_dim': config['embedding_dim'],
            'chunk_size': config['chunk_size'],
            'chunk_overlap': config['chunk_overlap'],
            'min_chunk_length': config['min_chunk_length'],
            'created_at': datetime.now(timezone.utc).isoformat(),
        })

        for kb in state['knowledge_bases']:
            writer.write_knowledge_base(
                KnowledgeBase(
                    id=kb['id'],
                    name=kb.get('name') or kb['id'],
                    description=kb.get('description', ''),
                    doc_count=len(kb.get('documents', []))
                ),
                state['chunks'][kb['id']],
                state['vectors'][kb['id']],
                state['lexical_indexes'][kb['id']]
            )

    return state


def node_5_statistics(state: BuilderState) -> BuilderState:
    """
    N5: Statistics

    Report database statistics of the published corpus.
    """
    stats = CorpusStore(state['output_path']).stats()
    stats['chunks_per_kb'] = {kb_id: len(kb_chunks) for kb_id, kb_chunks in state['chunks'].items()}

    logger.info(f"[builder N5] Documents: {stats['documents']}")
    logger.info(f"[builder N5] Embeddings: {stats['embeddings']}")
    logger.info(f"[builder N5] Index terms: {stats['index_terms']}")
    logger.info(f"[builder N5] Avg chunk size: {stats['avg_chunk_size']} tokens")
    logger.info(f"[builder N5] Database size: {stats['db_size_mb']} MB")

    state['stats'] = stats
    return state


def _read_source(source_dir: str, document: Document) -> str:
    path = os.path.join(source_dir, document.source_file)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise BuildError(f"Cannot read source file {path}: {e}", document_id=document.id) from e


def build_workflow() -> StateGraph:
    """
    Build the LangGraph workflow.

    Returns:
        Compiled StateGraph
    """
    workflow = StateGraph(BuilderState)

    # Add nodes
    workflow.add_node("load_manifest", node_0_load_manifest)
    workflow.add_node("process_documents", node_1_process_documents)
    workflow.add_node("generate_embeddings", node_2_generate_embeddings)
    workflow.add_node("build_bm25", node_3_build_bm25)
    workflow.add_node("save_corpus", node_4_save_corpus)
    workflow.add_node("statistics", node_5_statistics)

    # Set entry point
    workflow.set_entry_point("load_manifest")

    # Add edges
    workflow.add_edge("load_manifest", "process_documents")
    workflow.add_edge("process_documents", "generate_embeddings")
    workflow.add_edge("generate_embeddings", "build_bm25")
    workflow.add_edge("build_bm25", "save_corpus")
    workflow.add_edge("save_corpus", "statistics")
    workflow.add_edge("statistics", END)

    return workflow.compile()


def build_corpus(
    manifest_path: Optional[str] = None,
    source_dir: Optional[str] = None,
    output_path: Optional[str] = None,
    embedder: Any = None,
    chunk_size: int = settings.RAG_CHUNK_SIZE,
    chunk_overlap: int = settings.RAG_CHUNK_OVERLAP,
    min_chunk_length: int = settings.RAG_MIN_CHUNK_LENGTH,
    drop_short_trailing: bool = settings.RAG_DROP_SHORT_TRAILING_CHUNK,
    batch_size: int = settings.RAG_EMBED_BATCH_SIZE
) -> Dict[str, Any]:
    """
    Main entry point for building the corpus.

    Args:
        manifest_path: Knowledge base manifest, defaults to settings
        source_dir: Root of the source text files, defaults to settings
        output_path: Corpus artifact path, defaults to settings
        embedder: Embedding collaborator; loads the configured model when None

    Returns:
        Dict with build stats

    Raises:
        BuildError: On any fatal build failure; nothing is published
    """
    manifest_path = manifest_path or settings.KB_MANIFEST_FILE
    source_dir = source_dir or settings.KB_SOURCE_DIR
    output_path = output_path or settings.KB_DB_PATH

    logger.info("[builder] ===== Knowledge Base Build =====")
    logger.info(f"[builder] Embedding model: {settings.RAG_EMBEDDING_MODEL}")
    logger.info(f"[builder] Chunk size: {chunk_size} tokens, overlap: {chunk_overlap} tokens")
    logger.info(f"[builder] Output: {output_path}")

    start_time = time.time()

    config = {
        'embedding_model': settings.RAG_EMBEDDING_MODEL,
        'embedding_dim': settings.RAG_EMBEDDING_DIM,
        'chunk_size': chunk_size,
        'chunk_overlap': chunk_overlap,
        'min_chunk_length': min_chunk_length,
        'drop_short_trailing': drop_short_trailing,
        'batch_size': batch_size,
        'embed_concurrency': settings.RAG_EMBED_CONCURRENCY,
        'embed_retry_attempts': settings.RAG_EMBED_RETRY_ATTEMPTS,
        'embed_retry_wait_sec': settings.RAG_EMBED_RETRY_WAIT_SEC,
    }

    initial_state = BuilderState(
        manifest_path=manifest_path,
        source_dir=source_dir,
        output_path=output_path,
        build_config=config,
        embedder=embedder,
        knowledge_bases=[],
        chunks={},
        vectors={},
        lexical_indexes={},
        stats={}
    )

    app = build_workflow()

    try:
        final_state = app.invoke(initial_state)
    except BuildError as e:
        logger.error(f"[builder] Build failed: {e}")
        raise

    elapsed = time.time() - start_time

    logger.info(f"[builder] ===== BUILD COMPLETE ({elapsed:.1f}s) =====")

    return {
        'db_path': output_path,
        'stats': final_state['stats'],
        'elapsed_sec': round(elapsed, 2)
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    result = build_corpus()
    print(json.dumps(result, indent=2))
