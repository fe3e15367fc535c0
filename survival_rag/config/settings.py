import os

# Corpus source and artifact paths
KB_SOURCE_DIR = os.getenv('KB_SOURCE_DIR', os.path.join(os.getcwd(), 'Critical Priority'))
KB_OUTPUT_DIR = os.getenv('KB_OUTPUT_DIR', os.path.join(os.getcwd(), 'build'))
KB_DB_FILENAME = os.getenv('KB_DB_FILENAME', 'knowledge.db')
KB_DB_PATH = os.getenv('KB_DB_PATH', os.path.join(KB_OUTPUT_DIR, KB_DB_FILENAME))

# Knowledge bases and their documents
KB_MANIFEST_FILE = os.getenv('KB_MANIFEST_FILE', os.path.join(os.path.dirname(__file__), 'knowledge_bases.json'))

# ===== BUILD: Chunking & Embedding =====

# Embedding Model
RAG_EMBEDDING_MODEL = os.getenv('RAG_EMBEDDING_MODEL', 'sentence-transformers/all-MiniLM-L6-v2')
RAG_EMBEDDING_DIM = int(os.getenv('RAG_EMBEDDING_DIM', '384'))

# Chunking Settings
RAG_CHUNK_SIZE = int(os.getenv('RAG_CHUNK_SIZE', '500'))  # tokens
RAG_CHUNK_OVERLAP = int(os.getenv('RAG_CHUNK_OVERLAP', '50'))  # tokens
RAG_MIN_CHUNK_LENGTH = int(os.getenv('RAG_MIN_CHUNK_LENGTH', '100'))  # characters
RAG_DROP_SHORT_TRAILING_CHUNK = os.getenv('RAG_DROP_SHORT_TRAILING_CHUNK', '0') == '1'

# Embedding batches
RAG_EMBED_BATCH_SIZE = int(os.getenv('RAG_EMBED_BATCH_SIZE', '32'))
RAG_EMBED_CONCURRENCY = int(os.getenv('RAG_EMBED_CONCURRENCY', '2'))  # in-flight batches
RAG_EMBED_RETRY_ATTEMPTS = int(os.getenv('RAG_EMBED_RETRY_ATTEMPTS', '3'))  # per batch
RAG_EMBED_RETRY_WAIT_SEC = float(os.getenv('RAG_EMBED_RETRY_WAIT_SEC', '2'))  # exponential backoff base

# ===== QUERY: Hybrid Retrieval =====

# BM25 parameters
RAG_BM25_K1 = float(os.getenv('RAG_BM25_K1', '1.2'))
RAG_BM25_B = float(os.getenv('RAG_BM25_B', '0.75'))

# Scoring Weights
RAG_ALPHA_SEMANTIC = float(os.getenv('RAG_ALPHA_SEMANTIC', '0.6'))  # Weight for cosine in hybrid

# Result selection
RAG_TOP_K = int(os.getenv('RAG_TOP_K', '5'))
RAG_MIN_SCORE = float(os.getenv('RAG_MIN_SCORE')) if os.getenv('RAG_MIN_SCORE') else None
RAG_DEDUP_THRESHOLD = float(os.getenv('RAG_DEDUP_THRESHOLD', '0.98'))  # 0 disables

# Query embedding call
RAG_QUERY_EMBED_TIMEOUT_SEC = float(os.getenv('RAG_QUERY_EMBED_TIMEOUT_SEC', '5.0'))

# Context assembly
RAG_CONTEXT_MAX_CHARS = int(os.getenv('RAG_CONTEXT_MAX_CHARS', '4000'))

# ===== Embedding model loading =====

RAG_EMBEDDING_DEVICE = os.getenv('RAG_EMBEDDING_DEVICE') or None  # e.g. 'cpu', 'cuda', 'mps'
RAG_MODEL_CACHE_DIR = os.getenv('RAG_MODEL_CACHE_DIR') or None
RAG_EMBEDDING_LOCAL_ONLY = os.getenv('RAG_EMBEDDING_LOCAL_ONLY', '0') == '1'
