"""Unit tests for the DB layer: schema validator, connection wrapper,
migrations and all repositories.

Every test uses a fresh temporary SQLite file so tests are isolated.
"""

from __future__ import annotations

import sqlite3
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from annotation_tool.db.annotation_repo import AnnotationRepository
from annotation_tool.db.database import Database, RunResult, get_db, reset_db
from annotation_tool.db.image_repo import ImageRepository
from annotation_tool.db.label_repo import LabelRepository
from annotation_tool.db.migrations import (
    MIGRATIONS,
    applied_versions,
    apply_pending,
    verify_checksums,
)
from annotation_tool.db.schema import (
    INTEGER,
    SCHEMA_DDL,
    TABLES,
    Column,
    get_columns,
    referencing_columns,
    validate,
    writable_columns,
)
from annotation_tool.errors import ConstraintViolation, DatabaseBusyError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _tmp_path() -> Path:
    tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    tmp.close()
    return Path(tmp.name)


def _make_db() -> Database:
    """Return a Database backed by a fresh temporary file."""
    db = Database(path=_tmp_path())
    db.init()
    return db


def _image_record(**overrides) -> dict:
    record = dict(
        filename="img-001.jpg",
        original_name="holiday.jpg",
        file_path="/uploads/img-001.jpg",
        file_size=1024,
        mime_type="image/jpeg",
    )
    record.update(overrides)
    return record


def _count(db: Database, table: str) -> int:
    return db.query_one(f"SELECT COUNT(*) AS n FROM {table}")["n"]


# ===========================================================================
# 1. Schema & validator
# ===========================================================================

class TestValidator(unittest.TestCase):
    def test_valid_full_record(self):
        result = validate("images", _image_record())
        self.assertTrue(result.valid)
        self.assertEqual(result.errors, [])

    def test_missing_required_column(self):
        record = _image_record()
        del record["filename"]
        result = validate("images", record)
        self.assertFalse(result.valid)
        self.assertIn("Column 'filename' is required", result.errors)

    def test_defaults_and_primary_key_not_required(self):
        result = validate("labels", {"label_name": "cat"})
        self.assertTrue(result.valid)

    def test_wrong_type(self):
        result = validate("images", _image_record(file_size="big"))
        self.assertFalse(result.valid)
        self.assertIn("Column 'file_size' must be an integer", result.errors)

    def test_bool_is_not_a_number(self):
        self.assertFalse(validate("images", _image_record(file_size=True)).valid)
        self.assertFalse(
            validate("annotations", {"image_id": 1, "label_id": 1, "confidence": False}).valid
        )

    def test_predicates(self):
        self.assertFalse(validate("images", _image_record(file_size=0)).valid)
        self.assertFalse(validate("images", _image_record(mime_type="text/plain")).valid)
        self.assertFalse(validate("labels", {"label_name": "   "}).valid)
        self.assertFalse(validate("labels", {"label_name": "x" * 101}).valid)
        self.assertTrue(validate("labels", {"label_name": "x" * 100}).valid)

    def test_confidence_bounds(self):
        base = {"image_id": 1, "label_id": 2}
        self.assertTrue(validate("annotations", {**base, "confidence": 0}).valid)
        self.assertTrue(validate("annotations", {**base, "confidence": 1.0}).valid)
        result = validate("annotations", {**base, "confidence": 1.01})
        self.assertFalse(result.valid)
        self.assertIn("Column 'confidence' must be between 0.0 and 1.0", result.errors)
        self.assertFalse(validate("annotations", {**base, "confidence": -0.1}).valid)

    def test_partial_mode_checks_only_supplied_keys(self):
        self.assertTrue(validate("images", {"file_size": 10}, partial=True).valid)
        result = validate("images", {"filename": None}, partial=True)
        self.assertFalse(result.valid)
        self.assertIn("Column 'filename' is required", result.errors)

    def test_unknown_keys_ignored(self):
        self.assertTrue(validate("images", _image_record(colour="blue")).valid)

    def test_unknown_table_reported_not_raised(self):
        result = validate("widgets", {})
        self.assertFalse(result.valid)
        self.assertIn("Unknown table 'widgets'", result.errors)

    def test_raising_predicate_reported(self):
        broken = (Column("n", INTEGER, predicate=lambda v: 1 / 0),)
        with mock.patch.dict(TABLES, {"widgets": broken}):
            result = validate("widgets", {"n": 1})
        self.assertFalse(result.valid)
        self.assertIn("validation error", result.errors[0])

    def test_column_helpers(self):
        self.assertNotIn("image_id", writable_columns("images"))
        self.assertIn("created_by", writable_columns("images"))
        refs = referencing_columns("labels")
        self.assertEqual([(t, c.name) for t, c in refs], [("annotations", "label_id")])
        with self.assertRaises(KeyError):
            get_columns("widgets")


# ===========================================================================
# 2. Connection & transactions
# ===========================================================================

class TestDatabaseCore(unittest.TestCase):
    def setUp(self):
        self.db = _make_db()

    def tearDown(self):
        self.db.close()

    def test_tables_created(self):
        rows = self.db.query("SELECT name FROM sqlite_master WHERE type='table'")
        names = {r["name"] for r in rows}
        self.assertTrue({"images", "labels", "annotations", "migrations"} <= names)

    def test_indexes_created(self):
        rows = self.db.query("SELECT name FROM sqlite_master WHERE type='index'")
        names = {r["name"] for r in rows}
        for index in (
            "idx_images_filename", "idx_images_uploaded_at", "idx_labels_name",
            "idx_annotations_image", "idx_annotations_label",
        ):
            self.assertIn(index, names)

    def test_foreign_keys_enabled(self):
        self.assertEqual(self.db.query_one("PRAGMA foreign_keys")["foreign_keys"], 1)

    def test_query_one_zero_rows(self):
        self.assertIsNone(self.db.query_one("SELECT * FROM labels WHERE label_id = ?", (42,)))

    def test_run_outside_transaction_commits(self):
        result = self.db.run("INSERT INTO labels (label_name) VALUES (?)", ("cat",))
        self.assertIsInstance(result, RunResult)
        self.assertEqual(result.changes, 1)
        self.assertIsNotNone(result.last_id)

        other = sqlite3.connect(str(self.db.path))
        try:
            n = other.execute("SELECT COUNT(*) FROM labels").fetchone()[0]
        finally:
            other.close()
        self.assertEqual(n, 1)

    def test_transaction_rollback_on_error(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.db.run("INSERT INTO labels (label_name) VALUES ('a')")
                raise RuntimeError("boom")
        self.assertEqual(_count(self.db, "labels"), 0)
        self.assertFalse(self.db.in_transaction)

    def test_nested_transaction_rolls_back_whole_block(self):
        with self.assertRaises(ValueError):
            with self.db.transaction():
                self.db.run("INSERT INTO labels (label_name) VALUES ('a')")
                with self.db.transaction():
                    self.db.run("INSERT INTO labels (label_name) VALUES ('b')")
                self.assertTrue(self.db.in_transaction)
                raise ValueError("outer failure")
        self.assertEqual(_count(self.db, "labels"), 0)

    def test_inner_error_propagates_unchanged(self):
        with self.assertRaises(KeyError):
            with self.db.transaction():
                self.db.run("INSERT INTO labels (label_name) VALUES ('a')")
                with self.db.transaction():
                    raise KeyError("inner")
        self.assertEqual(_count(self.db, "labels"), 0)

    def test_nested_transaction_commits_once(self):
        with self.db.transaction():
            self.db.run("INSERT INTO labels (label_name) VALUES ('a')")
            with self.db.transaction():
                self.db.run("INSERT INTO labels (label_name) VALUES ('b')")
        self.assertEqual(_count(self.db, "labels"), 2)

    def test_busy_database_raises_retryable_error(self):
        other = Database(path=self.db.path, timeout=0.05)
        other.init()
        try:
            with self.db.transaction():
                self.db.run("INSERT INTO labels (label_name) VALUES ('held')")
                with self.assertRaises(DatabaseBusyError) as ctx:
                    other.run("INSERT INTO labels (label_name) VALUES ('blocked')")
                self.assertTrue(ctx.exception.retryable)
        finally:
            other.close()
        self.assertEqual(_count(self.db, "labels"), 1)

    def test_health(self):
        report = self.db.health()
        self.assertTrue(report["healthy"])
        self.assertTrue(report["database"]["foreign_keys_enabled"])
        self.assertEqual(report["database"]["journal_mode"], "wal")
        self.assertGreaterEqual(report["database"]["tables"], 4)
        self.assertIn("response_time_ms", report)

    def test_singleton(self):
        reset_db()
        try:
            db = get_db(_tmp_path())
            self.assertIs(get_db(), db)
        finally:
            reset_db()


# ===========================================================================
# 3. Migrations
# ===========================================================================

class TestMigrations(unittest.TestCase):
    def test_fresh_database_has_audit_columns(self):
        db = _make_db()
        try:
            self.assertEqual(applied_versions(db), [m.version for m in MIGRATIONS])
            for table in ("images", "annotations"):
                cols = {r["name"] for r in db.query(f"PRAGMA table_info({table})")}
                self.assertIn("created_by", cols)
                self.assertIn("last_edited_by", cols)
        finally:
            db.close()

    def test_init_is_idempotent(self):
        db = _make_db()
        try:
            self.assertEqual(db.init(), [])
            self.assertEqual(apply_pending(db), [])
            self.assertEqual(_count(db, "migrations"), len(MIGRATIONS))
        finally:
            db.close()

    def test_upgrades_bare_schema_in_place(self):
        path = _tmp_path()
        raw = sqlite3.connect(str(path))
        raw.executescript(SCHEMA_DDL)
        raw.execute(
            "INSERT INTO images (filename, original_name, file_path, file_size, mime_type) "
            "VALUES ('old.jpg', 'old.jpg', '/old.jpg', 10, 'image/jpeg')"
        )
        raw.commit()
        raw.close()

        db = Database(path=path)
        try:
            self.assertEqual(db.init(), ["001"])
            row = db.query_one("SELECT created_by FROM images WHERE filename = 'old.jpg'")
            self.assertEqual(row["created_by"], "system")
        finally:
            db.close()

    def test_checksum_mismatch_detected(self):
        db = _make_db()
        try:
            self.assertEqual(verify_checksums(db), [])
            db.run("UPDATE migrations SET checksum = 'tampered' WHERE version = '001'")
            self.assertEqual(verify_checksums(db), ["001"])
        finally:
            db.close()


# ===========================================================================
# 4. ImageRepository
# ===========================================================================

class TestImageRepository(unittest.TestCase):
    def setUp(self):
        self.db = _make_db()
        self.repo = ImageRepository(self.db)
        self.labels = LabelRepository(self.db)
        self.annotations = AnnotationRepository(self.db)

    def tearDown(self):
        self.db.close()

    def _annotate(self, image_id, name, confidence):
        label = self.labels.find_by_name(name) or self.labels.create({"label_name": name})
        self.annotations.create(
            {"image_id": image_id, "label_id": label.label_id, "confidence": confidence}
        )

    def test_create_and_find(self):
        image = self.repo.create(_image_record(created_by="ann@example.com"))
        self.assertIsNotNone(image.image_id)
        self.assertIsNotNone(image.uploaded_at)
        self.assertEqual(image.created_by, "ann@example.com")
        self.assertEqual(self.repo.find_by_id(image.image_id).filename, "img-001.jpg")
        self.assertEqual(self.repo.find_by_filename("img-001.jpg").image_id, image.image_id)
        self.assertTrue(self.repo.exists(image.image_id))

    def test_find_all_newest_first(self):
        old = self.repo.create(_image_record(uploaded_at="2024-01-01 09:00:00"))
        tied = self.repo.create(_image_record(
            filename="img-002.jpg", uploaded_at="2024-03-01 09:00:00"
        ))
        later = self.repo.create(_image_record(
            filename="img-003.jpg", uploaded_at="2024-03-01 09:00:00"
        ))
        self.assertEqual(
            [i.image_id for i in self.repo.find_all()],
            [later.image_id, tied.image_id, old.image_id],
        )

    def test_find_missing(self):
        self.assertIsNone(self.repo.find_by_id(999))
        self.assertIsNone(self.repo.find_by_filename("nope.jpg"))
        self.assertFalse(self.repo.exists(999))

    def test_duplicate_filename_is_constraint_violation(self):
        self.repo.create(_image_record())
        with self.assertRaises(ConstraintViolation) as ctx:
            self.repo.create(_image_record(original_name="again.jpg"))
        self.assertEqual(ctx.exception.table, "images")
        self.assertEqual(ctx.exception.constraint, "unique")
        self.assertIn("filename already exists", str(ctx.exception))

    def test_update(self):
        image = self.repo.create(_image_record())
        self.assertEqual(self.repo.update(image.image_id, {"original_name": "new.jpg"}), 1)
        self.assertEqual(self.repo.find_by_id(image.image_id).original_name, "new.jpg")
        self.assertEqual(self.repo.update(999, {"original_name": "x.jpg"}), 0)
        self.assertEqual(self.repo.update(image.image_id, {"bogus": 1}), 0)

    def test_delete(self):
        image = self.repo.create(_image_record())
        self.assertEqual(self.repo.delete(image.image_id).changes, 1)
        self.assertEqual(self.repo.delete(image.image_id).changes, 0)

    def test_schema_cascade_removes_annotations(self):
        image = self.repo.create(_image_record())
        self._annotate(image.image_id, "cat", 0.9)
        self._annotate(image.image_id, "dog", 0.4)
        self.repo.delete(image.image_id)
        row = self.db.query_one(
            "SELECT COUNT(*) AS n FROM annotations WHERE image_id = ?", (image.image_id,)
        )
        self.assertEqual(row["n"], 0)

    def test_find_with_labels(self):
        first = self.repo.create(_image_record(filename="a.jpg"))
        second = self.repo.create(_image_record(filename="b.jpg"))
        self._annotate(first.image_id, "cat", 0.9)
        self._annotate(first.image_id, "dog", 0.5)

        images = self.repo.find_with_labels()
        self.assertEqual([i.image_id for i in images], [second.image_id, first.image_id])
        annotated = images[1]
        self.assertEqual(dict(zip(annotated.labels, annotated.confidences)), {"cat": 0.9, "dog": 0.5})
        self.assertEqual(annotated.label_count, 2)
        self.assertEqual(images[0].labels, [])

    def test_search_by_label(self):
        cat = self.repo.create(_image_record(filename="cat.jpg"))
        dog = self.repo.create(_image_record(filename="dog.jpg"))
        self._annotate(cat.image_id, "cat", 1.0)
        self._annotate(cat.image_id, "indoor", 0.7)
        self._annotate(dog.image_id, "dog", 1.0)

        found = self.repo.search_by_label("cat")
        self.assertEqual([i.image_id for i in found], [cat.image_id])
        self.assertEqual(sorted(found[0].labels), ["cat", "indoor"])
        self.assertEqual(self.repo.search_by_label("horse"), [])

    def test_stats(self):
        image = self.repo.create(_image_record(filename="a.jpg", file_size=100))
        self.repo.create(_image_record(filename="b.jpg", file_size=300))
        self._annotate(image.image_id, "cat", 0.5)
        stats = self.repo.stats()
        self.assertEqual(stats["total_images"], 2)
        self.assertEqual(stats["avg_file_size"], 200)
        self.assertEqual(stats["total_annotations"], 1)
        self.assertEqual(stats["unannotated_images"], 1)


# ===========================================================================
# 5. LabelRepository
# ===========================================================================

class TestLabelRepository(unittest.TestCase):
    def setUp(self):
        self.db = _make_db()
        self.repo = LabelRepository(self.db)

    def tearDown(self):
        self.db.close()

    def test_create_and_find(self):
        label = self.repo.create({"label_name": "cat", "label_description": "Domestic feline"})
        self.assertEqual(self.repo.find_by_id(label.label_id).label_description, "Domestic feline")
        self.assertEqual(self.repo.find_by_name("cat").label_id, label.label_id)
        self.assertIsNone(self.repo.find_by_name("Cat"))

    def test_find_all_ordered_by_name(self):
        for name in ("dog", "cat", "bird"):
            self.repo.create({"label_name": name})
        self.assertEqual([l.label_name for l in self.repo.find_all()], ["bird", "cat", "dog"])

    def test_case_insensitive_lookup(self):
        label = self.repo.create({"label_name": "cat"})
        found = self.repo.find_by_name_ci("CAT")
        self.assertEqual(found.label_id, label.label_id)
        self.assertEqual(found.usage_count, 0)

    def test_duplicate_name(self):
        self.repo.create({"label_name": "cat"})
        with self.assertRaises(ConstraintViolation) as ctx:
            self.repo.create({"label_name": "cat"})
        self.assertEqual(ctx.exception.constraint, "unique")

    def test_search_matches_name_or_description(self):
        self.repo.create({"label_name": "cat", "label_description": "Domestic feline"})
        self.repo.create({"label_name": "dog", "label_description": "Domestic canine"})
        self.repo.create({"label_name": "tree"})
        self.assertEqual([l.label_name for l in self.repo.search("feline")], ["cat"])
        self.assertEqual(
            sorted(l.label_name for l in self.repo.search("domestic")), ["cat", "dog"]
        )

    def test_usage_stats(self):
        images = ImageRepository(self.db)
        annotations = AnnotationRepository(self.db)
        cat = self.repo.create({"label_name": "cat"})
        self.repo.create({"label_name": "unused"})
        for name in ("a.jpg", "b.jpg"):
            image = images.create(_image_record(filename=name))
            annotations.create(
                {"image_id": image.image_id, "label_id": cat.label_id, "confidence": 0.5}
            )

        labels = self.repo.find_with_usage_stats()
        self.assertEqual(labels[0].label_name, "cat")
        self.assertEqual(labels[0].usage_count, 2)
        self.assertAlmostEqual(labels[0].avg_confidence, 0.5)

        stats = self.repo.stats()
        self.assertEqual(stats["total_labels"], 2)
        self.assertEqual(stats["used_labels"], 1)
        self.assertEqual(stats["unused_labels"], 1)
        self.assertEqual(stats["max_usage"], 2)

    def test_update_and_delete(self):
        label = self.repo.create({"label_name": "cat"})
        self.assertEqual(self.repo.update(label.label_id, {"label_name": "kitten"}), 1)
        self.assertEqual(self.repo.find_by_id(label.label_id).label_name, "kitten")
        self.assertEqual(self.repo.update(999, {"label_name": "x"}), 0)
        self.assertEqual(self.repo.delete(label.label_id).changes, 1)
        self.assertEqual(self.repo.delete(label.label_id).changes, 0)


# ===========================================================================
# 6. AnnotationRepository
# ===========================================================================

class TestAnnotationRepository(unittest.TestCase):
    def setUp(self):
        self.db = _make_db()
        self.repo = AnnotationRepository(self.db)
        self.image = ImageRepository(self.db).create(_image_record())
        self.label = LabelRepository(self.db).create(
            {"label_name": "cat", "label_description": "Domestic feline"}
        )

    def tearDown(self):
        self.db.close()

    def test_create_defaults_confidence(self):
        ann = self.repo.create({"image_id": self.image.image_id, "label_id": self.label.label_id})
        self.assertEqual(ann.confidence, 1.0)
        self.assertIsNotNone(ann.created_at)

    def test_find_all_ordered_by_id(self):
        dog = LabelRepository(self.db).create({"label_name": "dog"})
        other = ImageRepository(self.db).create(_image_record(filename="img-002.jpg"))
        first = self.repo.create({"image_id": other.image_id, "label_id": dog.label_id})
        second = self.repo.create({"image_id": self.image.image_id, "label_id": self.label.label_id})
        third = self.repo.create({"image_id": self.image.image_id, "label_id": dog.label_id})
        self.assertEqual(
            [a.annotation_id for a in self.repo.find_all()],
            [first.annotation_id, second.annotation_id, third.annotation_id],
        )
        self.repo.delete(second.annotation_id)
        self.assertEqual(
            [(a.image_id, a.label_id) for a in self.repo.find_all()],
            [(other.image_id, dog.label_id), (self.image.image_id, dog.label_id)],
        )

    def test_dangling_reference_is_foreign_key_violation(self):
        with self.assertRaises(ConstraintViolation) as ctx:
            self.repo.create({"image_id": 999, "label_id": self.label.label_id})
        self.assertEqual(ctx.exception.constraint, "foreign_key")

    def test_engine_check_constraint(self):
        with self.assertRaises(ConstraintViolation) as ctx:
            self.repo.create({
                "image_id": self.image.image_id,
                "label_id": self.label.label_id,
                "confidence": 1.5,
            })
        self.assertEqual(ctx.exception.constraint, "check")
        self.assertEqual(_count(self.db, "annotations"), 0)

    def test_duplicate_pair(self):
        pair = {"image_id": self.image.image_id, "label_id": self.label.label_id}
        self.repo.create(pair)
        with self.assertRaises(ConstraintViolation) as ctx:
            self.repo.create(pair)
        self.assertEqual(ctx.exception.constraint, "unique")

    def test_joined_reads(self):
        self.repo.create({
            "image_id": self.image.image_id,
            "label_id": self.label.label_id,
            "confidence": 0.8,
        })
        by_image = self.repo.find_by_image_id(self.image.image_id)
        self.assertEqual(len(by_image), 1)
        self.assertEqual(by_image[0].label_name, "cat")
        self.assertEqual(by_image[0].label_description, "Domestic feline")

        by_label = self.repo.find_by_label_id(self.label.label_id)
        self.assertEqual(by_label[0].filename, "img-001.jpg")
        self.assertEqual(by_label[0].original_name, "holiday.jpg")
        self.assertEqual(self.repo.count_for_image(self.image.image_id), 1)

    def test_update_confidence(self):
        self.repo.create({"image_id": self.image.image_id, "label_id": self.label.label_id})
        changed = self.repo.update_confidence(
            self.image.image_id, self.label.label_id, 0.3, edited_by="bob@example.com"
        )
        self.assertEqual(changed, 1)
        ann = self.repo.find_pair(self.image.image_id, self.label.label_id)
        self.assertAlmostEqual(ann.confidence, 0.3)
        self.assertEqual(ann.last_edited_by, "bob@example.com")
        self.assertEqual(self.repo.update_confidence(999, self.label.label_id, 0.3), 0)

    def test_deletes(self):
        ann = self.repo.create({"image_id": self.image.image_id, "label_id": self.label.label_id})
        self.assertEqual(self.repo.delete(ann.annotation_id).changes, 1)
        self.repo.create({"image_id": self.image.image_id, "label_id": self.label.label_id})
        self.assertEqual(self.repo.delete_pair(self.image.image_id, self.label.label_id).changes, 1)
        self.assertEqual(self.repo.delete_pair(self.image.image_id, self.label.label_id).changes, 0)
        self.repo.create({"image_id": self.image.image_id, "label_id": self.label.label_id})
        self.assertEqual(self.repo.delete_by_label_id(self.label.label_id).changes, 1)
        self.assertEqual(self.repo.delete_by_image_id(self.image.image_id).changes, 0)


if __name__ == "__main__":
    unittest.main()
