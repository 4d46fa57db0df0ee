import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Callable, Optional

from .cancellation import CancellationToken
from .committer import BatchCommitter
from .config import ScanSettings
from .exceptions import FileHashError
from .metadata.extract import MetadataExtractor, parse_camera_model, parse_date_taken
from .models import CatalogRecord, Observation, Outcome, ProcessedMarker, Reconciliation
from .scanning.filesystem import stat_file
from .scanning.hasher import FileHasher


def _utc_now() -> datetime:
    return datetime.now(UTC)


class Reconciler:
    """
    Decides, for one file at a time, how it relates to the catalog.

    inspect() does the file I/O (size filter, hash, metadata) and touches no
    store state except the marker hash it is handed, so it can run in a worker
    thread. classify() does identity resolution against the committer's view
    of the catalog and must run on the thread that owns the store.
    """

    def __init__(self,
                 committer: BatchCommitter,
                 settings: ScanSettings,
                 hasher: Optional[FileHasher] = None,
                 metadata: Optional[MetadataExtractor] = None,
                 clock: Callable[[], datetime] = _utc_now):
        self.committer = committer
        self.settings = settings
        self.hasher = hasher or FileHasher()
        self.metadata = metadata or MetadataExtractor()
        self.clock = clock

    def reconcile(self, path: Path, token: Optional[CancellationToken] = None) -> Reconciliation:
        marker = self.committer.store.find_marker_by_path(str(path))
        obs = self.inspect(path, marker.content_hash if marker else None, token)
        return self.classify(obs)

    # --- Steps 1-4: file I/O ---

    def inspect(self,
                path: Path,
                known_hash: Optional[str],
                token: Optional[CancellationToken] = None) -> Observation:
        try:
            st = stat_file(path)
        except OSError as e:
            logging.warning(f"Cannot stat {path}: {e}. Skipping.")
            return Observation(path, outcome=Outcome.SKIPPED_ERROR, reason=str(e))

        # Size policy comes first so rejected files are never read
        if not self.settings.size_allowed(st.size_bytes):
            logging.debug(f"Skipping file {path} due to size constraints (Size: {st.size_bytes}B).")
            return Observation(path, outcome=Outcome.SKIPPED_POLICY, stat=st, reason="size")

        try:
            content_hash = self.hasher.compute_hash(path, token)
        except FileHashError as e:
            logging.warning(f"Could not compute hash for {path}: {e}. Skipping.")
            return Observation(path, outcome=Outcome.SKIPPED_ERROR, stat=st, reason=str(e))

        if known_hash is not None and known_hash == content_hash:
            logging.debug(f"File {path} is unchanged. Skipping.")
            return Observation(path, outcome=Outcome.UNCHANGED, stat=st, content_hash=content_hash)

        meta = self.metadata.extract(path, self.settings.metadata_fields, token)
        if meta is None:
            logging.warning(f"Could not extract metadata for {path}. Skipping.")
            return Observation(path, outcome=Outcome.SKIPPED_ERROR, stat=st,
                               content_hash=content_hash, reason="metadata")

        return Observation(path, stat=st, content_hash=content_hash, metadata=meta)

    # --- Step 5-6: identity resolution ---

    def classify(self, obs: Observation) -> Reconciliation:
        if obs.outcome is not None:
            size = obs.stat.size_bytes if obs.stat else 0
            return Reconciliation(obs.path, obs.outcome, size_bytes=size)

        now = self.clock()
        path_str = str(obs.path)
        fresh = self._build_record(obs, now)

        by_hash = self.committer.find_record_by_hash(obs.content_hash)
        if by_hash is not None and by_hash.path == path_str:
            # Same content already catalogued here; the marker was stale or missing
            record = self._refresh(by_hash, fresh, now)
            outcome = Outcome.MODIFIED
            previous = None
        elif by_hash is not None:
            # Identical content is taken as proof of identity; the old path is not checked
            logging.info(
                f"File {obs.path.name} with hash {obs.content_hash[:7]}... seems to be a "
                f"moved/renamed version of {Path(by_hash.path).name}. Updating path."
            )
            record = self._move(by_hash, fresh, now)
            outcome = Outcome.MOVED
            previous = by_hash.path
        else:
            by_path = self.committer.find_record_by_path(path_str)
            if by_path is not None:
                # Edited in place: keep the identity, take the new content
                record = self._refresh(by_path, fresh, now)
                outcome = Outcome.MODIFIED
            else:
                record = fresh
                outcome = Outcome.NEW
            previous = None

        marker = ProcessedMarker(path=path_str, content_hash=obs.content_hash, last_processed=now)
        logging.debug(
            f"Prepared for DB: {record.name} ({outcome.value}, Size: {record.size_bytes}B, "
            f"Dim: {record.width}x{record.height})"
        )
        return Reconciliation(obs.path, outcome, size_bytes=obs.stat.size_bytes,
                              record=record, marker=marker, previous_path=previous)

    def _build_record(self, obs: Observation, now: datetime) -> CatalogRecord:
        tags = obs.metadata.tags
        return CatalogRecord(
            name=obs.path.name,
            path=str(obs.path),
            size_bytes=obs.stat.size_bytes,
            width=obs.metadata.width,
            height=obs.metadata.height,
            content_hash=obs.content_hash,
            file_created_at=obs.stat.created_at,
            file_modified_at=obs.stat.modified_at,
            scanned_at=now,
            date_taken=parse_date_taken(tags),
            camera_model=parse_camera_model(tags),
            extra_metadata=json.dumps(tags, sort_keys=True) if tags else None,
        )

    def _refresh(self, existing: CatalogRecord, fresh: CatalogRecord, now: datetime) -> CatalogRecord:
        return replace(fresh,
                       record_id=existing.record_id,
                       scanned_at=_advance(existing.scanned_at, now))

    def _move(self, existing: CatalogRecord, fresh: CatalogRecord, now: datetime) -> CatalogRecord:
        return replace(existing,
                       name=fresh.name,
                       path=fresh.path,
                       size_bytes=fresh.size_bytes,
                       width=fresh.width,
                       height=fresh.height,
                       file_created_at=fresh.file_created_at,
                       file_modified_at=fresh.file_modified_at,
                       scanned_at=_advance(existing.scanned_at, now),
                       date_taken=fresh.date_taken or existing.date_taken,
                       camera_model=fresh.camera_model or existing.camera_model,
                       extra_metadata=fresh.extra_metadata or existing.extra_metadata)


def _advance(previous: Optional[datetime], now: datetime) -> datetime:
    """scanned_at never goes backwards or stands still for a record."""
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now
