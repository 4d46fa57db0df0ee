import pytest
import sqlite3
from pathlib import Path
from PIL import Image

from image_scanner.config import ScanSettings
from image_scanner.database.schema import init_schema
from image_scanner.database.ops import CatalogStore

@pytest.fixture
def conn():
    """Returns an in-memory SQLite connection with the schema initialized."""
    c = sqlite3.connect(":memory:")
    init_schema(c)
    try:
        yield c
    finally:
        c.close()

@pytest.fixture
def store(conn):
    """Returns a CatalogStore attached to the in-memory DB."""
    return CatalogStore(conn)

@pytest.fixture
def make_image():
    """Writes a small real image; different colors give different content."""
    def _make(path: Path, color=(255, 0, 0), size=(8, 8)) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        fmt = {'.jpg': 'JPEG', '.jpeg': 'JPEG', '.png': 'PNG', '.gif': 'GIF', '.bmp': 'BMP'}[path.suffix.lower()]
        with Image.new("RGB", size, color=color) as im:
            im.save(path, format=fmt)
        return path
    return _make

@pytest.fixture
def settings_for():
    def _settings(root: Path, **overrides) -> ScanSettings:
        return ScanSettings(root=root, **overrides)
    return _settings
