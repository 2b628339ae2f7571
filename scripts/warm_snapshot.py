#!/usr/bin/env python3
"""Fetch jobs from the configured source and write a fresh snapshot.

Usage:
  python scripts/warm_snapshot.py [--source URL_OR_PATH] [--db-path data/jobmap.db]

Run this from the project root so the `jobmap` package can be imported. The
existing snapshot is discarded first so the source is always fetched.
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from jobmap.models.db import LoadError, SqliteKeyValueStore, _jobs_source, get_kv_store
from jobmap.models.records import (
    SNAPSHOT_DATA_KEY,
    SNAPSHOT_TIMESTAMP_KEY,
    RecordStore,
    source_from_setting,
)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--source", default=_jobs_source(), help="Jobs JSON URL or file path")
    parser.add_argument("--db-path", default=None, help="SQLite snapshot file (overrides DATABASE_URL)")
    args = parser.parse_args()

    snapshots = SqliteKeyValueStore(args.db_path) if args.db_path else get_kv_store()
    snapshots.delete(SNAPSHOT_DATA_KEY)
    snapshots.delete(SNAPSHOT_TIMESTAMP_KEY)

    store = RecordStore(source_from_setting(args.source), snapshots)
    try:
        asyncio.run(store.load())
    except LoadError as exc:
        print("Load failed:", exc)
        return 1

    records = store.all()
    with_locations = sum(1 for r in records if r.valid_locations)
    print(f"Wrote snapshot with {store.count()} jobs ({with_locations} with valid locations)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
