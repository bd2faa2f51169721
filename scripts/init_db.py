#!/usr/bin/env python3
"""Initialize the database and optionally seed it with sample data from YAML."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from annotation_tool.config import get_log_level, get_seed_path
from annotation_tool.db.database import Database
from annotation_tool.services import MaintenanceService


def main():
    parser = argparse.ArgumentParser(description="Initialize the database")
    parser.add_argument("--db-path", type=str, help="Override database path")
    parser.add_argument(
        "--seed", nargs="?", const="", default=None, metavar="YAML",
        help="Load sample data (default file when no path is given)",
    )
    parser.add_argument(
        "--reset", action="store_true",
        help="Delete every image, label and annotation before seeding",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    db = Database(path=Path(args.db_path) if args.db_path else None)
    applied = db.init()
    print(f"Database initialized at: {db.path}")
    if applied:
        print(f"  Applied migrations: {', '.join(applied)}")

    service = MaintenanceService(db)
    seed_path = Path(args.seed) if args.seed else get_seed_path()

    if args.reset:
        result = service.reset(seed=args.seed is not None, seed_path=seed_path)
        print(f"  Reset complete: {result}")
    elif args.seed is not None:
        counts = service.seed_from_yaml(seed_path)
        print(
            f"  Seeded {counts['labels']} labels, {counts['images']} images, "
            f"{counts['annotations']} new annotations from {seed_path}"
        )

    db.close()
    print("Done.")


if __name__ == "__main__":
    main()
