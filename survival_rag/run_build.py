import argparse
import json
import logging
import sys

from survival_rag.agents.corpus_builder import build_corpus
from survival_rag.config import settings
from survival_rag.rag import BuildError


def main(argv=None):
    parser = argparse.ArgumentParser(description="Build the offline knowledge base corpus")
    parser.add_argument('--manifest', default=settings.KB_MANIFEST_FILE, help="Knowledge base manifest (JSON)")
    parser.add_argument('--source-dir', default=settings.KB_SOURCE_DIR, help="Directory of source text files")
    parser.add_argument('--output', default=settings.KB_DB_PATH, help="Corpus artifact path")
    parser.add_argument('--chunk-size', type=int, default=settings.RAG_CHUNK_SIZE)
    parser.add_argument('--chunk-overlap', type=int, default=settings.RAG_CHUNK_OVERLAP)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        result = build_corpus(
            manifest_path=args.manifest,
            source_dir=args.source_dir,
            output_path=args.output,
            chunk_size=args.chunk_size,
            chunk_overlap=args.chunk_overlap
        )
    except BuildError as e:
        print(f"[run_build] Build failed: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    print(f"[run_build] ===== BUILD COMPLETE =====")
    return 0


if __name__ == "__main__":
    sys.exit(main())
