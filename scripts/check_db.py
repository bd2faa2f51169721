"""Quick check of database state."""
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from annotation_tool.db import get_db
from annotation_tool.db.migrations import applied_versions, verify_checksums
from annotation_tool.services import ImageService, LabelService

db = get_db()

health = db.health()
print("=== Health ===")
print(f"  healthy: {health['healthy']} ({health['response_time_ms']} ms)")
for key, value in health.get("database", {}).items():
    print(f"  {key}: {value}")

print("\n=== Migrations ===")
print(f"  applied: {', '.join(applied_versions(db)) or 'none'}")
mismatched = verify_checksums(db)
if mismatched:
    print(f"  CHECKSUM MISMATCH: {', '.join(mismatched)}")

print("\n=== Images ===")
images = ImageService(db).list_images()
print(f"Total: {len(images)}")
for img in images:
    labels = ", ".join(
        f"{name} ({conf:.2f})" for name, conf in zip(img.labels, img.confidences)
    )
    print(f"  {img.image_id:>4} | {img.filename[:30]:<30} | {labels or '-'}")

print("\n=== Labels ===")
labels = LabelService(db).list_labels()
print(f"Total: {len(labels)}")
for label in labels:
    print(f"  {label.label_id:>4} | {label.label_name[:30]:<30} | used {label.usage_count}x")
