import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional

import exifread
from PIL import Image, UnidentifiedImageError

from .. import config
from ..cancellation import CancellationToken
from ..models import ExtractedMetadata


class MetadataExtractor:
    """
    Reads image dimensions and EXIF tags.

    Strategies:
      - Dimensions: Pillow (reads the header only, no full decode).
      - Tags: 'exifread' (fast, Python-native). Formats without EXIF
        (PNG, GIF, BMP) simply produce no tags.

    extract() returns None when the file cannot be read as an image.
    That is a failed extraction, never "no metadata".
    """

    def extract(self,
                path: Path,
                fields: Iterable[str],
                token: Optional[CancellationToken] = None) -> Optional[ExtractedMetadata]:
        if token is not None:
            token.raise_if_cancelled()

        try:
            with Image.open(path) as im:
                width, height = im.size
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            logging.warning(f"Cannot read image dimensions for {path}: {e}")
            return None

        try:
            with path.open('rb') as f:
                # details=False skips MakerNotes and thumbnails
                raw_tags = exifread.process_file(f, details=False)
        except OSError as e:
            logging.warning(f"Cannot read file for metadata: {path}. Error: {e}")
            return None
        except Exception as e:
            # exifread raises assorted errors on malformed EXIF blocks;
            # the image itself is still usable.
            logging.debug(f"ExifRead failed for {path}: {e}")
            raw_tags = {}

        tags = self._select_tags(raw_tags, fields)
        return ExtractedMetadata(width=width, height=height, tags=tags)

    def _select_tags(self, raw_tags, fields: Iterable[str]) -> Dict[str, str]:
        """
        Keeps the requested tags. A request matches case-insensitively either
        the full exifread name ('Image Model') or the bare tag ('Model').
        '*' keeps everything.
        """
        wanted = {f.strip().lower() for f in fields if f.strip()}
        keep_all = '*' in wanted

        selected: Dict[str, str] = {}
        for name, value in raw_tags.items():
            if name in ('JPEGThumbnail', 'TIFFThumbnail'):
                continue
            full = name.lower()
            bare = full.split(' ', 1)[-1]
            if keep_all or full in wanted or bare in wanted:
                text = str(value).strip()
                if text:
                    selected[name] = text
        return selected


def parse_date_taken(tags: Dict[str, str]) -> Optional[datetime]:
    """EXIF dates look like 'YYYY:MM:DD HH:MM:SS'."""
    for tag in config.DATE_TAGS:
        if tag in tags:
            try:
                dt_str = tags[tag].replace(':', '-', 2)
                return datetime.strptime(dt_str, "%Y-%m-%d %H:%M:%S")
            except ValueError:
                continue
    return None


def parse_camera_model(tags: Dict[str, str]) -> Optional[str]:
    for tag in config.CAMERA_MODEL_TAGS:
        if tags.get(tag):
            return tags[tag]
    return None
