"""
Opens the catalog database for a scan or export.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from .schema import init_schema

class DBManager:
    """
    Owns the single SQLite connection of a run. Only the scanning thread
    uses it; parallel workers never touch the catalog.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Opens the catalog (creating its folder on first use) and brings the
        schema up to date. Repeated calls return the open connection.
        """
        if self._conn:
            return self._conn

        if str(self.db_path) != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        logging.info(f"Opening catalog: {self.db_path}")
        self._conn = sqlite3.connect(self.db_path)

        # WAL: image_catalog_query can read while a scan is writing
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA temp_store=MEMORY;")

        init_schema(self._conn)
        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
