"""
Configuration constants and run settings for the image scanner.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .exceptions import ConfigurationError

# --- File Type Definitions ---
DEFAULT_IMAGE_EXTS = ['.png', '.jpg', '.jpeg', '.bmp', '.gif']

# --- Metadata Parsing ---
# Names follow exifread's "<IFD> <Tag>" convention. A bare tag name
# ("Model") also matches, see metadata.extract.
DEFAULT_METADATA_FIELDS = [
    'Image Make',
    'Image Model',
    'EXIF DateTimeOriginal',
    'EXIF ExifImageWidth',
    'EXIF ExifImageLength',
    'EXIF ExposureTime',
    'EXIF FNumber',
]

DATE_TAGS = [
    'EXIF DateTimeOriginal',
]

CAMERA_MODEL_TAGS = [
    'Image Model',
]

# --- Hashing & Performance ---
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading
DEFAULT_BATCH_SIZE = 100

# --- Files ---
DEFAULT_DB_FILENAME = "image_scanner.db"
DEFAULT_LOG_FILENAME = "image_scanner.log"
SETTINGS_FILENAME = "appsettings.json"
SETTINGS_SECTION = "ImageScannerSettings"


@dataclass
class ScanSettings:
    """
    Everything a single scan run needs. Validated by the CLI before it
    reaches the Scanner.
    """
    root: Path
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_IMAGE_EXTS))
    recursive: bool = True
    min_size: int = 0
    max_size: int = 0       # 0 = no upper bound
    batch_size: int = DEFAULT_BATCH_SIZE
    metadata_fields: List[str] = field(default_factory=lambda: list(DEFAULT_METADATA_FIELDS))
    max_workers: int = 1

    def size_allowed(self, size_bytes: int) -> bool:
        if size_bytes < self.min_size:
            return False
        if self.max_size and size_bytes > self.max_size:
            return False
        return True


@dataclass
class AppSettings:
    """Values read from the optional JSON settings file."""
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_IMAGE_EXTS))
    batch_size: int = DEFAULT_BATCH_SIZE
    db_path: Path = Path(DEFAULT_DB_FILENAME)
    log_path: Path = Path(DEFAULT_LOG_FILENAME)
    metadata_fields: List[str] = field(default_factory=lambda: list(DEFAULT_METADATA_FIELDS))
    min_size: int = 0
    max_size: int = 0
    max_workers: int = 1


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """
    Reads the ImageScannerSettings section of a JSON settings file.
    A missing file yields the defaults; a malformed one raises ConfigurationError.
    """
    settings = AppSettings()
    if path is None or not path.exists():
        return settings

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot read settings file {path}: {e}") from e

    section = data.get(SETTINGS_SECTION, {}) if isinstance(data, dict) else {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"'{SETTINGS_SECTION}' in {path} must be an object")

    try:
        if "DefaultImageExtensions" in section:
            settings.extensions = [str(e) for e in section["DefaultImageExtensions"]]
        if "DatabaseBatchSize" in section:
            settings.batch_size = int(section["DatabaseBatchSize"])
        if "DatabasePath" in section:
            settings.db_path = Path(section["DatabasePath"])
        if "LogFilePath" in section:
            settings.log_path = Path(section["LogFilePath"])
        if "MetadataFieldsToExtract" in section:
            settings.metadata_fields = [str(f) for f in section["MetadataFieldsToExtract"]]
        if "MinFileSize" in section:
            settings.min_size = int(section["MinFileSize"])
        if "MaxFileSize" in section:
            settings.max_size = int(section["MaxFileSize"])
        if "MaxWorkers" in section:
            settings.max_workers = int(section["MaxWorkers"])
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid value in {path}: {e}") from e

    return settings
