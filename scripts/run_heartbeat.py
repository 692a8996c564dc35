#!/usr/bin/env python3
"""
Runs embedding backfill batches in the foreground, outside the serving process.

Pagination sessions live in the process that serves searches, which sweeps
them itself (see SearchService.start_maintenance), so this loop only reindexes.
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from lifeinbox.core import config
from lifeinbox.core.dao import RecordStore
from lifeinbox.core.heartbeat import Heartbeat, register_maintenance_tasks
from lifeinbox.vector.index import EmbeddingIndex


def main():
    """Main entry point for heartbeat script."""
    if not config.is_heartbeat_enabled():
        print("❌ Heartbeat requires HEARTBEAT_ENABLED=true")
        sys.exit(1)

    issues = config.validate_search_config()
    if issues:
        print(f"💥 Invalid configuration: {issues}")
        sys.exit(1)

    provider = config.get_embedding_provider()
    if provider is None:
        print("❌ No embedding provider available")
        sys.exit(1)

    heartbeat = Heartbeat()
    register_maintenance_tasks(heartbeat, None, EmbeddingIndex(RecordStore(), provider))

    print(f"🏃 Running tasks {heartbeat.list_tasks()} (Ctrl+C to stop)")
    try:
        heartbeat.start(background=False)
    finally:
        heartbeat.stop()


if __name__ == "__main__":
    main()
