#!/usr/bin/env python3
"""Import images and annotations from a CSV file produced by export_csv.py."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from annotation_tool.config import get_log_level
from annotation_tool.db.database import Database
from annotation_tool.errors import ValidationError
from annotation_tool.services import CsvService


def main():
    parser = argparse.ArgumentParser(description="Import annotations from CSV")
    parser.add_argument("input", help="CSV file to import")
    parser.add_argument("--db-path", type=str, help="Override database path")
    parser.add_argument("--user", default="csv-import", help="Recorded as creator of new rows")
    args = parser.parse_args()

    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        text = Path(args.input).read_text(encoding="utf-8-sig")
    except UnicodeDecodeError:
        print("Import rejected: CSV file must be UTF-8 encoded")
        sys.exit(1)
    db = Database(path=Path(args.db_path) if args.db_path else None)
    db.init()
    try:
        result = CsvService(db).import_csv(text, imported_by=args.user)
    except ValidationError as e:
        print(f"Import rejected: {e}")
        sys.exit(1)
    finally:
        db.close()

    print(result.message)
    for detail in result.error_details:
        print(f"  {detail}")
    sys.exit(1 if result.errors else 0)


if __name__ == "__main__":
    main()
