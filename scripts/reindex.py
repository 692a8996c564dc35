#!/usr/bin/env python3
"""
Embedding backfill utility.
Embeds every record that lacks a vector from the current model version, then reports coverage.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from lifeinbox.core import config
from lifeinbox.core.dao import RecordStore
from lifeinbox.vector.index import EmbeddingIndex


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Backfill record embeddings")
    parser.add_argument("--db", default=None, help="Database path (default: DB_PATH)")
    parser.add_argument("--batch-size", type=int, default=config.REINDEX_BATCH_SIZE)
    parser.add_argument("--max-batches", type=int, default=None,
                        help="Stop after this many batches (default: until done)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Backfill embeddings. Returns the process exit code."""
    args = parse_args(argv)

    provider = config.get_embedding_provider()
    if provider is None:
        print(f"ERROR: No embedding provider available (EMBED_PROVIDER={config.EMBED_PROVIDER})")
        return 1

    store = RecordStore(args.db)
    index = EmbeddingIndex(store, provider)

    before = index.coverage()
    print(f"Found {before['total_records']} records, "
          f"{before['records_with_vectors']} with {index.model_version} vectors")

    print("Starting embedding backfill...")
    report = index.backfill(batch_size=args.batch_size, max_batches=args.max_batches)

    print(f"✓ Embedded {report.embedded} records ({report.failed} failed)")
    for record_id in report.failed_ids[:10]:
        print(f"  ... failed: {record_id}")

    after = index.coverage()
    print(f"Vector coverage: {after['vector_coverage']:.1f}% "
          f"({after['records_with_vectors']}/{after['total_records']})")
    print("Backfill complete!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
