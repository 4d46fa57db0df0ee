import logging
from typing import Dict, Hashable, List, Optional

from .database.ops import CatalogStore
from .models import CatalogRecord, ProcessedMarker


class BatchCommitter:
    """
    Accumulates reconciled records and their markers and writes them to the
    catalog in one transaction per batch.

    Until a flush, pending records shadow what is stored: the lookups below
    consult the pending batch first, so a file processed later in the same
    run sees records that are staged but not yet written.
    """

    def __init__(self, store: CatalogStore, batch_size: int):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.store = store
        self.batch_size = batch_size
        self._records: Dict[Hashable, CatalogRecord] = {}
        self._markers: Dict[str, ProcessedMarker] = {}
        self.flushed_records = 0
        self.flushed_batches = 0

    def __len__(self):
        return len(self._records)

    @property
    def pending(self) -> List[CatalogRecord]:
        return list(self._records.values())

    @staticmethod
    def _key(record: CatalogRecord) -> Hashable:
        # Unsaved records have no identity yet; within a batch their content is unique
        if record.record_id is not None:
            return record.record_id
        return ('new', record.content_hash)

    def stage(self, record: CatalogRecord, marker: ProcessedMarker) -> bool:
        """
        Adds a record (replacing a pending version of the same identity) and
        its marker. Returns True when the batch is full and should be flushed.
        """
        self._records[self._key(record)] = record
        self._markers[marker.path] = marker
        return len(self._records) >= self.batch_size

    def find_record_by_hash(self, content_hash: str) -> Optional[CatalogRecord]:
        for rec in self._records.values():
            if rec.content_hash == content_hash:
                return rec
        stored = self._overlay(self.store.find_record_by_hash(content_hash))
        # A pending update may already carry different content for that identity
        if stored is not None and stored.content_hash != content_hash:
            return None
        return stored

    def find_record_by_path(self, path: str) -> Optional[CatalogRecord]:
        for rec in self._records.values():
            if rec.path == path:
                return rec
        stored = self._overlay(self.store.find_record_by_path(path))
        # A pending update may have moved it away from this path already
        if stored is not None and stored.path != path:
            return None
        return stored

    def _overlay(self, stored: Optional[CatalogRecord]) -> Optional[CatalogRecord]:
        if stored is None or stored.record_id is None:
            return stored
        return self._records.get(stored.record_id, stored)

    def flush(self) -> List[CatalogRecord]:
        """
        Writes every pending record and marker atomically and clears the batch.
        On DatabaseError nothing is written, the batch is kept and the error
        propagates to the caller.
        """
        if not self._records and not self._markers:
            return []

        count = len(self._records)
        logging.debug(f"Writing batch of {count} records to database...")
        saved = self.store.commit_batch(list(self._records.values()), list(self._markers.values()))

        self._records.clear()
        self._markers.clear()
        self.flushed_records += count
        self.flushed_batches += 1
        logging.info(f"Batch committed ({count} records).")
        return saved
