import csv
import logging
from pathlib import Path
from typing import List, Tuple

from .database.ops import CatalogStore
from .models import ScanResult


def summary_rows(result: ScanResult) -> List[Tuple[str, str]]:
    status = "Completed"
    if result.fatal_error:
        status = f"Failed: {result.fatal_error}"
    elif result.cancelled:
        status = "Cancelled by user"

    return [
        ("Total Files Found", str(result.found)),
        ("New Files Added", str(result.new)),
        ("Existing Files Modified", str(result.modified)),
        ("Existing Files Moved/Renamed", str(result.moved)),
        ("Files Unchanged", str(result.unchanged)),
        ("Files Skipped (Size Filter/Errors)", str(result.skipped)),
        ("Files with Errors", str(result.errors)),
        ("Total Bytes Processed", f"{result.bytes_counted / (1024.0 * 1024.0):.2f} MB"),
        ("Total Time Taken", f"{result.elapsed:.2f} seconds"),
        ("Status", status),
    ]


def format_summary(result: ScanResult) -> str:
    rows = summary_rows(result)
    width = max(len(label) for label, _ in rows)
    lines = ["Scan Summary", "-" * (width + 20)]
    for label, value in rows:
        lines.append(f"{label.ljust(width)} | {value}")
    return "\n".join(lines)


class CatalogReport:
    HEADERS = [
        "Id",
        "Name",
        "Path",
        "Size Bytes",
        "Width",
        "Height",
        "Hash",
        "Date Taken",
        "Camera Model",
        "Scanned At",
    ]

    def __init__(self, store: CatalogStore):
        self.store = store

    def export_csv(self, output_csv: Path, include_stale: bool = False) -> int:
        """Writes one row per catalog record. Returns the number of rows written."""
        logging.info(f"Exporting catalog -> {output_csv}")
        count = 0
        with open(output_csv, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(self.HEADERS)
            for rec in self.store.iter_records(include_stale=include_stale):
                writer.writerow([
                    rec.record_id,
                    rec.name,
                    rec.path,
                    rec.size_bytes,
                    rec.width,
                    rec.height,
                    rec.content_hash,
                    rec.date_taken.isoformat() if rec.date_taken else "",
                    rec.camera_model or "",
                    rec.scanned_at.isoformat() if rec.scanned_at else "",
                ])
                count += 1
        logging.info(f"Export complete. Wrote {count} records.")
        return count
