"""Database schema: DDL plus per-column metadata used for record validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

SCHEMA_DDL = """
PRAGMA foreign_keys = ON;

-- ==========================================================================
-- Images (one row per uploaded file)
-- ==========================================================================
CREATE TABLE IF NOT EXISTS images (
    image_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    filename        TEXT NOT NULL UNIQUE,
    original_name   TEXT NOT NULL,
    file_path       TEXT NOT NULL,
    file_size       INTEGER NOT NULL,
    mime_type       TEXT NOT NULL,
    uploaded_at     DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at      DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_images_filename ON images(filename);
CREATE INDEX IF NOT EXISTS idx_images_uploaded_at ON images(uploaded_at);

-- ==========================================================================
-- Labels (reusable categories)
-- ==========================================================================
CREATE TABLE IF NOT EXISTS labels (
    label_id          INTEGER PRIMARY KEY AUTOINCREMENT,
    label_name        TEXT NOT NULL UNIQUE,
    label_description TEXT,
    created_at        DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_labels_name ON labels(label_name);

-- ==========================================================================
-- Annotations (image <-> label junction)
-- ==========================================================================
CREATE TABLE IF NOT EXISTS annotations (
    annotation_id INTEGER PRIMARY KEY AUTOINCREMENT,
    image_id      INTEGER NOT NULL REFERENCES images(image_id) ON DELETE CASCADE,
    label_id      INTEGER NOT NULL REFERENCES labels(label_id) ON DELETE CASCADE,
    confidence    REAL DEFAULT 1.0
                  CHECK(confidence >= 0.0 AND confidence <= 1.0),
    created_at    DATETIME DEFAULT CURRENT_TIMESTAMP,
    UNIQUE(image_id, label_id)
);

CREATE INDEX IF NOT EXISTS idx_annotations_image ON annotations(image_id);
CREATE INDEX IF NOT EXISTS idx_annotations_label ON annotations(label_id);
"""

INTEGER = "INTEGER"
REAL = "REAL"
TEXT = "TEXT"
DATETIME = "DATETIME"

LABEL_NAME_MAX_LENGTH = 100


@dataclass(frozen=True)
class ForeignKey:
    table: str
    column: str
    on_delete: str = "CASCADE"


@dataclass(frozen=True)
class Column:
    name: str
    type: str
    nullable: bool = True
    unique: bool = False
    primary_key: bool = False
    default: Any = None
    predicate: Optional[Callable[[Any], bool]] = None
    predicate_message: str = "failed validation"
    foreign_key: Optional[ForeignKey] = None

    @property
    def required(self) -> bool:
        """True when a full record must supply this column."""
        return not (self.nullable or self.primary_key or self.default is not None)


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


TABLES: dict[str, tuple[Column, ...]] = {
    "images": (
        Column("image_id", INTEGER, nullable=False, primary_key=True),
        Column("filename", TEXT, nullable=False, unique=True),
        Column("original_name", TEXT, nullable=False),
        Column("file_path", TEXT, nullable=False),
        Column(
            "file_size", INTEGER, nullable=False,
            predicate=lambda v: v > 0,
            predicate_message="must be a positive number of bytes",
        ),
        Column(
            "mime_type", TEXT, nullable=False,
            predicate=lambda v: v.startswith("image/"),
            predicate_message="must be an image MIME type",
        ),
        Column("uploaded_at", DATETIME, nullable=False, default="CURRENT_TIMESTAMP"),
        Column("updated_at", DATETIME, nullable=False, default="CURRENT_TIMESTAMP"),
        Column("created_by", TEXT),
        Column("last_edited_by", TEXT),
    ),
    "labels": (
        Column("label_id", INTEGER, nullable=False, primary_key=True),
        Column(
            "label_name", TEXT, nullable=False, unique=True,
            predicate=lambda v: 0 < len(v.strip()) <= LABEL_NAME_MAX_LENGTH,
            predicate_message=f"must be 1-{LABEL_NAME_MAX_LENGTH} characters",
        ),
        Column("label_description", TEXT),
        Column("created_at", DATETIME, nullable=False, default="CURRENT_TIMESTAMP"),
    ),
    "annotations": (
        Column("annotation_id", INTEGER, nullable=False, primary_key=True),
        Column("image_id", INTEGER, nullable=False,
               foreign_key=ForeignKey("images", "image_id")),
        Column("label_id", INTEGER, nullable=False,
               foreign_key=ForeignKey("labels", "label_id")),
        Column(
            "confidence", REAL, nullable=False, default=1.0,
            predicate=lambda v: 0.0 <= v <= 1.0,
            predicate_message="must be between 0.0 and 1.0",
        ),
        Column("created_at", DATETIME, nullable=False, default="CURRENT_TIMESTAMP"),
        Column("created_by", TEXT),
        Column("last_edited_by", TEXT),
    ),
}


def get_columns(table: str) -> tuple[Column, ...]:
    if table not in TABLES:
        raise KeyError(f"Schema not found for table: {table}")
    return TABLES[table]


def writable_columns(table: str) -> set[str]:
    """Column names a caller may set directly (everything but the primary key)."""
    return {c.name for c in get_columns(table) if not c.primary_key}


def referencing_columns(table: str) -> list[tuple[str, Column]]:
    """(table, column) pairs whose foreign key points at ``table``."""
    refs: list[tuple[str, Column]] = []
    for name, columns in TABLES.items():
        for col in columns:
            if col.foreign_key and col.foreign_key.table == table:
                refs.append((name, col))
    return refs


def _type_ok(col: Column, value: Any) -> bool:
    if col.type == INTEGER:
        return isinstance(value, int) and not isinstance(value, bool)
    if col.type == REAL:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if col.type == TEXT:
        return isinstance(value, str)
    if col.type == DATETIME:
        return isinstance(value, (str, datetime))
    return True


_TYPE_NAMES = {
    INTEGER: "an integer",
    REAL: "a number",
    TEXT: "a string",
    DATETIME: "a timestamp",
}


def validate(table: str, record: dict[str, Any], partial: bool = False) -> ValidationResult:
    """
    Check ``record`` against the column definitions of ``table``.

    In full mode every required column must be present; in partial mode (used
    for updates) only the supplied keys are checked.  Keys that are not columns
    are ignored.  Never raises.
    """
    if table not in TABLES:
        return ValidationResult(False, [f"Unknown table '{table}'"])

    errors: list[str] = []
    for col in TABLES[table]:
        supplied = col.name in record
        value = record.get(col.name)

        if value is None:
            if col.required and (supplied or not partial):
                errors.append(f"Column '{col.name}' is required")
            continue

        if not _type_ok(col, value):
            errors.append(f"Column '{col.name}' must be {_TYPE_NAMES[col.type]}")
            continue

        if col.predicate is not None:
            try:
                ok = col.predicate(value)
            except Exception as exc:  # predicate bugs are reported, not raised
                errors.append(f"Column '{col.name}' validation error: {exc}")
                continue
            if not ok:
                errors.append(f"Column '{col.name}' {col.predicate_message}")

    return ValidationResult(not errors, errors)
