import sqlite3
import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Iterator, List, Optional, Sequence

from ..exceptions import DatabaseError
from ..models import CatalogRecord, ProcessedMarker

_RECORD_COLUMNS = """
    id, name, path, size_bytes, width, height, file_hash,
    file_created_at, file_modified_at, date_taken, camera_model,
    exif_data_json, scanned_at
"""


def _to_iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_record(row) -> CatalogRecord:
    (rid, name, path, size_bytes, width, height, file_hash,
     created, modified, date_taken, camera, exif_json, scanned) = row
    return CatalogRecord(
        record_id=int(rid),
        name=name,
        path=path,
        size_bytes=size_bytes,
        width=width,
        height=height,
        content_hash=file_hash,
        file_created_at=_from_iso(created),
        file_modified_at=_from_iso(modified),
        date_taken=_from_iso(date_taken),
        camera_model=camera,
        extra_metadata=exif_json,
        scanned_at=_from_iso(scanned),
    )


class CatalogStore:
    """
    SQLite implementation of the catalog: the images table (identity by
    content) and the processed_files ledger (path -> last hash).

    Writes go through commit_batch / upsert_records_batch, which are
    all-or-nothing. Any sqlite3 error during a write is rolled back and
    re-raised as DatabaseError.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Reads ---

    def find_marker_by_path(self, path: str) -> Optional[ProcessedMarker]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT path, file_hash, last_processed FROM processed_files WHERE path = ?",
            (str(path),),
        )
        row = cur.fetchone()
        if row is None:
            return None
        return ProcessedMarker(path=row[0], content_hash=row[1], last_processed=_from_iso(row[2]))

    def find_record_by_path(self, path: str) -> Optional[CatalogRecord]:
        """Live records only; a displaced record no longer owns its old path."""
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_RECORD_COLUMNS} FROM images WHERE path = ? AND live = 1", (str(path),))
        row = cur.fetchone()
        return _row_to_record(row) if row else None

    def find_record_by_hash(self, content_hash: str) -> Optional[CatalogRecord]:
        """Content-addressed lookup. Prefers a live record, then the oldest identity."""
        cur = self.conn.cursor()
        cur.execute(
            f"SELECT {_RECORD_COLUMNS} FROM images WHERE file_hash = ? ORDER BY live DESC, id ASC LIMIT 1",
            (content_hash,),
        )
        row = cur.fetchone()
        return _row_to_record(row) if row else None

    def find_record_by_id(self, record_id: int) -> Optional[CatalogRecord]:
        cur = self.conn.cursor()
        cur.execute(f"SELECT {_RECORD_COLUMNS} FROM images WHERE id = ?", (record_id,))
        row = cur.fetchone()
        return _row_to_record(row) if row else None

    def is_live(self, record_id: int) -> bool:
        cur = self.conn.cursor()
        cur.execute("SELECT live FROM images WHERE id = ?", (record_id,))
        row = cur.fetchone()
        return bool(row and row[0])

    def iter_records(self, include_stale: bool = False) -> Iterator[CatalogRecord]:
        cur = self.conn.cursor()
        if include_stale:
            cur.execute(f"SELECT {_RECORD_COLUMNS} FROM images ORDER BY id")
        else:
            cur.execute(f"SELECT {_RECORD_COLUMNS} FROM images WHERE live = 1 ORDER BY id")
        for row in cur:
            yield _row_to_record(row)

    def find_markers_by_hash(self, content_hash: str) -> List[ProcessedMarker]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT path, file_hash, last_processed FROM processed_files WHERE file_hash = ? ORDER BY path",
            (content_hash,),
        )
        return [ProcessedMarker(path=r[0], content_hash=r[1], last_processed=_from_iso(r[2]))
                for r in cur.fetchall()]

    def count_records(self, include_stale: bool = False) -> int:
        cur = self.conn.cursor()
        if include_stale:
            cur.execute("SELECT COUNT(*) FROM images")
        else:
            cur.execute("SELECT COUNT(*) FROM images WHERE live = 1")
        return cur.fetchone()[0]

    def count_markers(self) -> int:
        cur = self.conn.cursor()
        cur.execute("SELECT COUNT(*) FROM processed_files")
        return cur.fetchone()[0]

    # --- Writes ---

    def upsert_records_batch(self, records: Sequence[CatalogRecord]) -> List[CatalogRecord]:
        """Atomic: every record is written or none is. Returns records with ids assigned."""
        return self.commit_batch(records, [])

    def upsert_marker(self, marker: ProcessedMarker):
        self.commit_batch([], [marker])

    def commit_batch(self,
                     records: Sequence[CatalogRecord],
                     markers: Iterable[ProcessedMarker]) -> List[CatalogRecord]:
        """
        Writes records, then markers, inside one transaction.
        On failure nothing from the batch is visible and DatabaseError is raised.
        """
        saved: List[CatalogRecord] = []
        try:
            with self.conn:
                cur = self.conn.cursor()
                for rec in records:
                    saved.append(self._write_record(cur, rec))
                for marker in markers:
                    self._write_marker(cur, marker)
        except sqlite3.Error as e:
            logging.error(f"Catalog batch write failed, rolled back: {e}")
            raise DatabaseError(f"Batch write failed: {e}") from e
        return saved

    def _write_record(self, cur: sqlite3.Cursor, rec: CatalogRecord) -> CatalogRecord:
        # A path belongs to one live record. Whoever held it before is displaced.
        if rec.record_id is None:
            cur.execute("UPDATE images SET live = 0 WHERE path = ? AND live = 1", (rec.path,))
        else:
            cur.execute(
                "UPDATE images SET live = 0 WHERE path = ? AND live = 1 AND id != ?",
                (rec.path, rec.record_id),
            )
        if cur.rowcount:
            logging.warning(f"Record previously at {rec.path} was displaced by new content.")

        values = (
            rec.name, rec.path, rec.size_bytes, rec.width, rec.height, rec.content_hash,
            _to_iso(rec.file_created_at), _to_iso(rec.file_modified_at),
            _to_iso(rec.date_taken), rec.camera_model, rec.extra_metadata,
            _to_iso(rec.scanned_at),
        )

        if rec.record_id is None:
            cur.execute("""
                INSERT INTO images (
                    name, path, size_bytes, width, height, file_hash,
                    file_created_at, file_modified_at, date_taken, camera_model,
                    exif_data_json, scanned_at, live
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
            """, values)
            if cur.lastrowid is None:
                raise sqlite3.DatabaseError("INSERT failed to return a row ID.")
            return replace(rec, record_id=int(cur.lastrowid))

        cur.execute("""
            UPDATE images
            SET name = ?, path = ?, size_bytes = ?, width = ?, height = ?, file_hash = ?,
                file_created_at = ?, file_modified_at = ?, date_taken = ?, camera_model = ?,
                exif_data_json = ?, scanned_at = ?, live = 1
            WHERE id = ?
        """, values + (rec.record_id,))
        if cur.rowcount == 0:
            raise sqlite3.DatabaseError(f"Record id {rec.record_id} no longer exists.")
        return rec

    def _write_marker(self, cur: sqlite3.Cursor, marker: ProcessedMarker):
        cur.execute("""
            INSERT INTO processed_files (path, file_hash, last_processed)
            VALUES (?, ?, ?)
            ON CONFLICT(path) DO UPDATE SET
                file_hash = excluded.file_hash,
                last_processed = excluded.last_processed
        """, (marker.path, marker.content_hash, _to_iso(marker.last_processed)))
