import logging
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Dict, Iterator, Optional

from tqdm import tqdm

from .cancellation import CancellationToken
from .committer import BatchCommitter
from .config import ScanSettings
from .database.db import DBManager
from .database.ops import CatalogStore
from .exceptions import DatabaseError
from .metadata.extract import MetadataExtractor
from .models import Outcome, Reconciliation, ScanResult
from .reconciler import Reconciler
from .scanning.filesystem import FileDiscoverer, normalize_extensions, root_is_valid
from .scanning.hasher import FileHasher

_COUNTED_OUTCOMES = (Outcome.UNCHANGED, Outcome.NEW, Outcome.MODIFIED, Outcome.MOVED)


class Scanner:
    """
    Runs one reconciliation pass: discover -> filter -> hash -> classify ->
    batch commit. Per-file failures become counters; a failed batch write
    ends the run and is reported in ScanResult.fatal_error.

    Cancellation is observed between files. A file that has started is
    reconciled to the end, so every found file gets an outcome.
    """

    def __init__(self,
                 store: CatalogStore,
                 hasher: Optional[FileHasher] = None,
                 discoverer: Optional[FileDiscoverer] = None,
                 metadata: Optional[MetadataExtractor] = None):
        self.store = store
        self.hasher = hasher or FileHasher()
        self.discoverer = discoverer or FileDiscoverer()
        self.metadata = metadata or MetadataExtractor()

    def run(self,
            settings: ScanSettings,
            token: Optional[CancellationToken] = None,
            progress: bool = False) -> ScanResult:
        token = token or CancellationToken()
        result = ScanResult()
        t0 = time.perf_counter()

        max_size = f"{settings.max_size}B" if settings.max_size else "Unlimited"
        logging.info(
            f"Effective settings: Extensions: [{', '.join(sorted(normalize_extensions(settings.extensions)))}], "
            f"Subdirectories: {settings.recursive}, BatchSize: {settings.batch_size}, "
            f"MinSize: {settings.min_size}B, MaxSize: {max_size}, Workers: {settings.max_workers}"
        )

        if not root_is_valid(settings.root):
            result.fatal_error = f"Root folder is missing or unreadable: {settings.root}"
            logging.error(result.fatal_error)
            result.elapsed = time.perf_counter() - t0
            return result

        committer = BatchCommitter(self.store, settings.batch_size)
        reconciler = Reconciler(committer, settings, self.hasher, self.metadata)
        paths = self.discoverer.discover(settings.root, settings.extensions, settings.recursive, token)

        bar = tqdm(desc="Processing images", unit="file", disable=not progress)
        try:
            if settings.max_workers > 1:
                self._run_parallel(paths, reconciler, committer, settings, token, result, bar)
            else:
                self._run_sequential(paths, reconciler, committer, token, result, bar)

            # Stream end, or cancellation: whatever is pending still gets written
            if len(committer):
                logging.debug("Writing final batch to database...")
            committer.flush()
        except DatabaseError as e:
            result.fatal_error = str(e)
            logging.error(f"Fatal storage error, scan aborted: {e}")
        finally:
            bar.close()

        result.cancelled = token.is_cancelled
        result.elapsed = time.perf_counter() - t0

        if result.cancelled:
            logging.warning("Scan cancelled by user.")
        logging.info(
            f"Scan finished. Found {result.found}, new {result.new}, modified {result.modified}, "
            f"moved {result.moved}, unchanged {result.unchanged}, skipped {result.skipped}, "
            f"errors {result.errors} in {result.elapsed:.2f}s."
        )
        return result

    def _run_sequential(self,
                        paths: Iterator[Path],
                        reconciler: Reconciler,
                        committer: BatchCommitter,
                        token: CancellationToken,
                        result: ScanResult,
                        bar):
        for path in paths:
            if token.is_cancelled:
                break
            result.found += 1
            bar.update(1)
            try:
                outcome = reconciler.reconcile(path)
            except Exception:
                logging.exception(f"Failed to process file: {path}. Skipping.")
                result.errors += 1
                continue
            self._apply(outcome, committer, result)

    def _run_parallel(self,
                      paths: Iterator[Path],
                      reconciler: Reconciler,
                      committer: BatchCommitter,
                      settings: ScanSettings,
                      token: CancellationToken,
                      result: ScanResult,
                      bar):
        """
        Workers do the file I/O (Reconciler.inspect). Marker reads, identity
        resolution and staging stay on this thread, so classification is
        serialized and the SQLite connection is never shared.

        No more files are submitted than there are workers, so a submitted
        file is a started one. After cancellation nothing new is submitted
        and the files already submitted are drained.
        """
        limit = settings.max_workers
        in_flight: Dict = {}
        exhausted = False

        with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
            while True:
                while not exhausted and not token.is_cancelled and len(in_flight) < limit:
                    path = next(paths, None)
                    if path is None:
                        exhausted = True
                        break
                    result.found += 1
                    bar.update(1)
                    try:
                        marker = self.store.find_marker_by_path(str(path))
                    except Exception:
                        logging.exception(f"Failed to process file: {path}. Skipping.")
                        result.errors += 1
                        continue
                    known = marker.content_hash if marker else None
                    in_flight[executor.submit(reconciler.inspect, path, known)] = path

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    path = in_flight.pop(future)
                    try:
                        outcome = reconciler.classify(future.result())
                    except Exception:
                        logging.exception(f"Failed to process file: {path}. Skipping.")
                        result.errors += 1
                        continue
                    self._apply(outcome, committer, result)

    def _apply(self, outcome: Reconciliation, committer: BatchCommitter, result: ScanResult):
        result.count(outcome.outcome)
        if outcome.outcome in _COUNTED_OUTCOMES:
            result.bytes_counted += outcome.size_bytes
        if outcome.record is not None:
            if committer.stage(outcome.record, outcome.marker):
                committer.flush()


class ImageScannerApp:
    """Opens the catalog database and runs scans against it."""

    def __init__(self, db_path: Path):
        self.db_manager = DBManager(db_path)

    def scan(self,
             settings: ScanSettings,
             token: Optional[CancellationToken] = None,
             progress: bool = True) -> ScanResult:
        logging.info(f"Starting image scan for folder: {settings.root}")
        with self.db_manager as conn:
            store = CatalogStore(conn)
            return Scanner(store).run(settings, token, progress=progress)
