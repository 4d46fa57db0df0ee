"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the catalog schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Image Catalog
        # One row per distinct content. Identity survives moves (path is updated in place).
        # live = 0 means another record has since taken over this path.
        conn.execute("""
        CREATE TABLE IF NOT EXISTS images (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            name             TEXT NOT NULL,
            path             TEXT NOT NULL,
            size_bytes       INTEGER NOT NULL,
            width            INTEGER NOT NULL DEFAULT 0,
            height           INTEGER NOT NULL DEFAULT 0,
            file_hash        TEXT NOT NULL,        -- SHA-256 hex
            file_created_at  TEXT NOT NULL,
            file_modified_at TEXT NOT NULL,
            date_taken       TEXT,
            camera_model     TEXT,
            exif_data_json   TEXT,
            scanned_at       TEXT NOT NULL,
            live             INTEGER NOT NULL DEFAULT 1
        );
        """)

        # 3. Processed Files Ledger
        # Path -> hash at last processing. Only used to skip re-reading unchanged files.
        conn.execute("""
        CREATE TABLE IF NOT EXISTS processed_files (
            id             INTEGER PRIMARY KEY AUTOINCREMENT,
            path           TEXT NOT NULL UNIQUE,
            file_hash      TEXT NOT NULL,
            last_processed TEXT NOT NULL
        );
        """)

        # 4. Indices
        conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS idx_images_live_path ON images(path) WHERE live = 1;")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_images_hash ON images(file_hash);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_images_name ON images(name);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_processed_files_hash ON processed_files(file_hash);")

    logging.debug("Database schema initialized.")
