#!/usr/bin/env python3
"""Export every image and its annotations to a CSV file (or stdout)."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from annotation_tool.config import get_log_level
from annotation_tool.db.database import Database
from annotation_tool.services import CsvService


def main():
    parser = argparse.ArgumentParser(description="Export annotations to CSV")
    parser.add_argument("output", nargs="?", help="Output file (default: stdout)")
    parser.add_argument("--db-path", type=str, help="Override database path")
    args = parser.parse_args()

    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    db = Database(path=Path(args.db_path) if args.db_path else None)
    db.init()
    content = CsvService(db).export_csv()
    db.close()

    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        print(f"Wrote {args.output}", file=sys.stderr)
    else:
        sys.stdout.write(content)


if __name__ == "__main__":
    main()
