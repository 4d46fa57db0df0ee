import sqlite3
import sys
import pytest
from datetime import datetime, UTC
from pathlib import Path

import image_catalog_query as icq

from image_scanner.database.ops import CatalogStore
from image_scanner.database.schema import init_schema
from image_scanner.models import CatalogRecord, ProcessedMarker

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

def make_record(path, content_hash, **kw):
    return CatalogRecord(
        name=Path(path).name, path=path, size_bytes=123, width=4, height=3,
        content_hash=content_hash, file_created_at=NOW, file_modified_at=NOW,
        scanned_at=NOW, **kw,
    )

def test_connect_db_missing(tmp_path):
    with pytest.raises(SystemExit):
        icq.connect_db(tmp_path / "none.db")

def test_list_empty_catalog(conn, capsys):
    icq.list_records(conn)
    assert "Catalog is empty." in capsys.readouterr().out

def test_list_and_show(conn, store, capsys):
    a, _ = store.upsert_records_batch([
        make_record("/src/a.jpg", "a" * 64, camera_model="cam"),
        make_record("/src/b.jpg", "b" * 64),
    ])
    store.upsert_marker(ProcessedMarker("/src/a.jpg", "a" * 64, NOW))
    store.upsert_marker(ProcessedMarker("/src/copy.jpg", "a" * 64, NOW))

    icq.list_records(conn)
    out = capsys.readouterr().out
    assert "/src/a.jpg" in out and "/src/b.jpg" in out
    assert "4x3" in out

    icq.show_record(conn, a.record_id)
    out = capsys.readouterr().out
    assert "camera_model:  cam" in out
    assert "live:          True" in out
    assert "/src/copy.jpg" in out

    icq.show_record(conn, 999)
    assert "No record with id=999" in capsys.readouterr().out

def test_list_all_includes_displaced(conn, store, capsys):
    store.upsert_records_batch([make_record("/src/a.jpg", "a" * 64)])
    store.upsert_records_batch([make_record("/src/a.jpg", "c" * 64)])

    icq.list_records(conn)
    assert capsys.readouterr().out.count("/src/a.jpg") == 1

    icq.list_records(conn, include_stale=True)
    assert capsys.readouterr().out.count("/src/a.jpg") == 2

def test_main_by_path(tmp_path, monkeypatch, capsys):
    db_path = tmp_path / "catalog.db"
    photo = (tmp_path / "a.jpg").resolve()
    conn = sqlite3.connect(db_path)
    init_schema(conn)
    CatalogStore(conn).upsert_records_batch([make_record(str(photo), "a" * 64)])
    conn.close()

    monkeypatch.setattr(sys, "argv", ["image_catalog_query.py", "--db", str(db_path), "--path", str(photo)])
    icq.main()
    assert f"path:          {photo}" in capsys.readouterr().out

    monkeypatch.setattr(sys, "argv", ["image_catalog_query.py", "--db", str(db_path), "--path", str(tmp_path / "x.jpg")])
    icq.main()
    assert "No record found for path" in capsys.readouterr().out
