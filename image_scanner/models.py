from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional


@dataclass(frozen=True)
class CatalogRecord:
    """
    One catalog entry per distinct piece of content seen at a live path.
    record_id is None until the store has inserted it.
    """
    name: str
    path: str
    size_bytes: int
    width: int
    height: int
    content_hash: str
    file_created_at: datetime
    file_modified_at: datetime
    scanned_at: datetime
    date_taken: Optional[datetime] = None
    camera_model: Optional[str] = None
    extra_metadata: Optional[str] = None    # JSON object, None when empty
    record_id: Optional[int] = None


@dataclass(frozen=True)
class ProcessedMarker:
    """Path -> hash ledger entry used to skip unchanged files."""
    path: str
    content_hash: str
    last_processed: datetime


@dataclass(frozen=True)
class FileStat:
    size_bytes: int
    created_at: datetime
    modified_at: datetime


@dataclass(frozen=True)
class ExtractedMetadata:
    width: int
    height: int
    tags: Dict[str, str] = field(default_factory=dict)


class Outcome(Enum):
    UNCHANGED = "unchanged"
    NEW = "new"
    MODIFIED = "modified"
    MOVED = "moved"
    SKIPPED_POLICY = "skipped_policy"
    SKIPPED_ERROR = "skipped_error"


@dataclass
class Observation:
    """
    What was learned about a file before consulting the catalog
    (size filter, hash, metadata). Produced by Reconciler.inspect.
    """
    path: Path
    outcome: Optional[Outcome] = None   # set when inspection already decided
    stat: Optional[FileStat] = None
    content_hash: Optional[str] = None
    metadata: Optional[ExtractedMetadata] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class Reconciliation:
    """Final per-file decision, with the record and marker to persist."""
    path: Path
    outcome: Outcome
    size_bytes: int = 0
    record: Optional[CatalogRecord] = None
    marker: Optional[ProcessedMarker] = None
    previous_path: Optional[str] = None


@dataclass
class ScanResult:
    found: int = 0
    unchanged: int = 0
    new: int = 0
    modified: int = 0
    moved: int = 0
    skipped: int = 0
    errors: int = 0
    bytes_counted: int = 0
    elapsed: float = 0.0
    cancelled: bool = False
    fatal_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and self.fatal_error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def count(self, outcome: Outcome):
        if outcome is Outcome.UNCHANGED:
            self.unchanged += 1
        elif outcome is Outcome.NEW:
            self.new += 1
        elif outcome is Outcome.MODIFIED:
            self.modified += 1
        elif outcome is Outcome.MOVED:
            self.moved += 1
        elif outcome is Outcome.SKIPPED_POLICY:
            self.skipped += 1
        elif outcome is Outcome.SKIPPED_ERROR:
            self.skipped += 1
            self.errors += 1
