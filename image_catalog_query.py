#!/usr/bin/env python

import argparse
import sqlite3
from pathlib import Path

from image_scanner.database.ops import CatalogStore


def connect_db(db_path: Path) -> sqlite3.Connection:
    if not db_path.exists():
        raise SystemExit(f"DB not found: {db_path}")
    return sqlite3.connect(db_path)


def list_records(conn: sqlite3.Connection, include_stale: bool = False):
    store = CatalogStore(conn)
    records = list(store.iter_records(include_stale=include_stale))
    if not records:
        print("Catalog is empty.")
        return

    print("id    | size_bytes | dims        | hash     | path")
    print("------+------------+-------------+----------+----------")
    for rec in records:
        dims = f"{rec.width}x{rec.height}"
        print(f"{rec.record_id:5d} | {str(rec.size_bytes).rjust(10)} | {dims.ljust(11)} | {rec.content_hash[:8]} | {rec.path}")


def show_record(conn: sqlite3.Connection, record_id: int):
    store = CatalogStore(conn)
    rec = store.find_record_by_id(record_id)
    if rec is None:
        print(f"No record with id={record_id}")
        return

    print("Image:")
    print(f"  id:            {rec.record_id}")
    print(f"  name:          {rec.name}")
    print(f"  path:          {rec.path}")
    print(f"  live:          {store.is_live(record_id)}")
    print(f"  size_bytes:    {rec.size_bytes}")
    print(f"  dimensions:    {rec.width}x{rec.height}")
    print(f"  hash:          {rec.content_hash}")
    print(f"  date_taken:    {rec.date_taken.isoformat() if rec.date_taken else ''}")
    print(f"  camera_model:  {rec.camera_model or ''}")
    print(f"  scanned_at:    {rec.scanned_at.isoformat() if rec.scanned_at else ''}")
    print(f"  exif:          {rec.extra_metadata or ''}")

    markers = store.find_markers_by_hash(rec.content_hash)
    if not markers:
        print("  (No processed-file markers)")
        return

    print("\n  Paths seen with this content:")
    for m in markers:
        seen = m.last_processed.isoformat() if m.last_processed else ''
        print(f"  {seen.ljust(32)} | {m.path}")


def _resolve_id_from_path(conn: sqlite3.Connection, path: Path):
    store = CatalogStore(conn)
    for cand in (str(path), path.as_posix()):
        rec = store.find_record_by_path(cand)
        if rec:
            return rec.record_id
    return None


def parse_args():
    p = argparse.ArgumentParser(description="Query helper for the image_scanner SQLite catalog.")
    p.add_argument("--db", required=True, help="Path to image_scanner.db")
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--list", action="store_true", help="List live catalog records")
    group.add_argument("--list-all", action="store_true", help="List all records, including displaced ones")
    group.add_argument("--id", type=int, help="Show details for a record by id")
    group.add_argument("--path", help="Show details for the live record at a path")
    return p.parse_args()


def main():
    args = parse_args()
    db_path = Path(args.db).resolve()
    conn = connect_db(db_path)

    try:
        if args.list:
            list_records(conn)
        elif args.list_all:
            list_records(conn, include_stale=True)
        elif args.id is not None:
            show_record(conn, args.id)
        elif args.path:
            path = Path(args.path).resolve()
            record_id = _resolve_id_from_path(conn, path)
            if record_id is None:
                print(f"No record found for path: {path}")
            else:
                show_record(conn, record_id)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
