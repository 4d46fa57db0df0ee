import json
import shutil
from datetime import datetime, timedelta, UTC

from image_scanner.committer import BatchCommitter
from image_scanner.metadata.extract import MetadataExtractor
from image_scanner.models import ExtractedMetadata, Outcome
from image_scanner.reconciler import Reconciler

FROZEN = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

class TaggedExtractor(MetadataExtractor):
    """Real dimensions, fixed EXIF tags."""
    TAGS = {"Image Model": "TestCam", "EXIF DateTimeOriginal": "2020:01:02 03:04:05"}

    def extract(self, path, fields, token=None):
        meta = super().extract(path, fields, token)
        return ExtractedMetadata(meta.width, meta.height, dict(self.TAGS))

def reconcile_and_commit(reconciler, path):
    outcome = reconciler.reconcile(path)
    if outcome.record is not None:
        reconciler.committer.stage(outcome.record, outcome.marker)
        reconciler.committer.flush()
    return outcome

def test_move_keeps_previously_captured_metadata(store, make_image, settings_for, tmp_path):
    root = tmp_path / "photos"
    src = make_image(root / "old" / "pic.jpg")
    committer = BatchCommitter(store, 10)

    first = reconcile_and_commit(Reconciler(committer, settings_for(root), metadata=TaggedExtractor()), src)
    assert first.outcome is Outcome.NEW

    dst = root / "new" / "pic.jpg"
    dst.parent.mkdir()
    shutil.move(src, dst)
    # A plain JPEG from Pillow carries no EXIF, so nothing is re-extracted
    moved = reconcile_and_commit(Reconciler(committer, settings_for(root)), dst)

    assert moved.outcome is Outcome.MOVED
    assert moved.previous_path == str(src)
    rec = store.find_record_by_path(str(dst))
    assert rec.record_id == first.record.record_id
    assert rec.camera_model == "TestCam"
    assert rec.date_taken == datetime(2020, 1, 2, 3, 4, 5)
    assert json.loads(rec.extra_metadata) == TaggedExtractor.TAGS

def test_scanned_at_advances_when_clock_stands_still(store, make_image, settings_for, tmp_path):
    root = tmp_path / "photos"
    p = make_image(root / "pic.png", color=(255, 0, 0))
    reconciler = Reconciler(BatchCommitter(store, 10), settings_for(root), clock=lambda: FROZEN)

    first = reconcile_and_commit(reconciler, p)
    assert first.record.scanned_at == FROZEN
    assert first.marker.last_processed == FROZEN

    make_image(p, color=(0, 255, 0))
    second = reconcile_and_commit(reconciler, p)

    assert second.outcome is Outcome.MODIFIED
    assert second.record.record_id == first.record.record_id
    assert second.record.scanned_at == FROZEN + timedelta(microseconds=1)
    assert store.find_record_by_path(str(p)).scanned_at == FROZEN + timedelta(microseconds=1)

def test_clock_going_backwards_still_advances_scanned_at(store, make_image, settings_for, tmp_path):
    root = tmp_path / "photos"
    p = make_image(root / "pic.png", color=(255, 0, 0))
    times = iter([FROZEN, FROZEN - timedelta(hours=1)])
    reconciler = Reconciler(BatchCommitter(store, 10), settings_for(root), clock=lambda: next(times))

    reconcile_and_commit(reconciler, p)
    make_image(p, color=(0, 0, 255))
    second = reconcile_and_commit(reconciler, p)

    assert second.record.scanned_at == FROZEN + timedelta(microseconds=1)

def test_unchanged_file_builds_nothing(store, make_image, settings_for, tmp_path):
    root = tmp_path / "photos"
    p = make_image(root / "pic.png")
    reconciler = Reconciler(BatchCommitter(store, 10), settings_for(root), clock=lambda: FROZEN)

    reconcile_and_commit(reconciler, p)
    again = reconciler.reconcile(p)

    assert again.outcome is Outcome.UNCHANGED
    assert again.record is None and again.marker is None
    assert again.size_bytes == p.stat().st_size
