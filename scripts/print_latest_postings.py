#!/usr/bin/env python3

import os
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent  # ../scripts → project root
sys.path.insert(0, str(PROJECT_ROOT))

from modules.portal_watch.lib import db  # noqa: E402

DEFAULT_DB = os.getenv("SQLITE_PATH") or str(PROJECT_ROOT / "local" / "state" / "portalwatch.db")


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
        return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")
    except ValueError:
        return iso_str


def main():
    limit = 15
    if len(sys.argv) > 1:
        try:
            limit = int(sys.argv[1])
            if limit <= 0:
                raise ValueError
        except ValueError:
            print(f"Invalid limit: {sys.argv[1]}. Using default (15).", file=sys.stderr)
            limit = 15

    db_path = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_DB
    if not os.path.exists(db_path):
        print(f"Database not found: {db_path}")
        sys.exit(1)

    entries = db.latest_postings(db_path, limit)
    print(f"DATABASE: {db_path}")
    print("-" * 80)
    if not entries:
        print("  No postings recorded yet.")
        return

    for i, (source, external_id, title, location, url, ts) in enumerate(entries, 1):
        print(f"{i:2d}. [{format_timestamp(ts)}] {source} #{external_id}")
        print(f"     Title:    {title}")
        print(f"     Location: {location or '-'}")
        print(f"     URL:      {url}")
        print()


if __name__ == "__main__":
    main()
